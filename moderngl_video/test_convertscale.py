"""
Tests for format conversion and scaling

GPU encode/decode paths are compared against the CPU reference codec in
colorspace_core with a ±2 tolerance (8-bit rounding on both sides).
"""

import numpy as np
import pytest

from .colorspace_core import decode_planes, encode_planes
from .convert_core import ConvertSettings, ScaleMethod, fixate_output_size, is_passthrough, letterbox_scale
from .convertscale import ConvertScaleEngine
from .errors import ConfigurationError
from .frames import ColorMatrix, PixelFormat, VideoFrame, VideoInfo

YUV_FORMATS = [PixelFormat.NV12, PixelFormat.I420, PixelFormat.UYVY, PixelFormat.YUY2]


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def convert(gpu):
    engine = ConvertScaleEngine(gpu)
    yield engine
    engine.release()


@pytest.fixture
def gradient(make_gradient):
    return make_gradient(32, 16)


def max_plane_difference(frame, expected_planes):
    return max(int(np.abs(frame.plane_rows(i).astype(int) - rows.astype(int)).max())
               for i, rows in enumerate(expected_planes))


# ============================================================================
# LEVEL 1: Functional core
# ============================================================================

class TestConvertCore:

    def test_identical_rgb_geometry_is_passthrough(self):
        info = VideoInfo(PixelFormat.BGRA, 64, 32)
        assert is_passthrough(info, info)

    def test_yuv_matrix_change_is_not_passthrough(self):
        bt601 = VideoInfo(PixelFormat.NV12, 64, 32, ColorMatrix.BT601)
        bt709 = VideoInfo(PixelFormat.NV12, 64, 32, ColorMatrix.BT709)
        assert not is_passthrough(bt601, bt709)

    def test_format_or_size_change_is_not_passthrough(self):
        info = VideoInfo(PixelFormat.RGBA, 64, 32)
        assert not is_passthrough(info, VideoInfo(PixelFormat.BGRA, 64, 32))
        assert not is_passthrough(info, info.with_size(32, 16))

    def test_letterbox_scale(self):
        assert letterbox_scale(1920, 1080, 640, 640) == pytest.approx((1.0, 0.5625))
        assert letterbox_scale(1080, 1920, 640, 640) == pytest.approx((0.5625, 1.0))
        assert letterbox_scale(640, 360, 1280, 720) == pytest.approx((1.0, 1.0))

    def test_fixate_keeps_display_aspect_ratio(self):
        info = VideoInfo(PixelFormat.NV12, 1920, 1080)
        assert fixate_output_size(info, width=640) == (640, 360)
        assert fixate_output_size(info, height=360) == (640, 360)
        assert fixate_output_size(info, width=100, height=100) == (100, 100)

    def test_fixate_applies_pixel_aspect_ratio(self):
        anamorphic = VideoInfo(PixelFormat.I420, 720, 480, par_n=32, par_d=27)
        assert fixate_output_size(anamorphic, width=720) == (720, 405)

    def test_settings_accept_method_nicks(self):
        assert ConvertSettings(method='nearest').method is ScaleMethod.NEAREST
        with pytest.raises(ConfigurationError):
            ConvertSettings(method='bicubic')


# ============================================================================
# LEVEL 2: GPU conversion
# ============================================================================

class TestConversion:

    def test_same_geometry_is_passed_through(self, convert, gradient):
        frame = VideoFrame.from_rgba(gradient, PixelFormat.BGRA)
        frame.frame_index = 12
        convert.configure(frame.info, frame.info)
        assert convert.passthrough

        out = convert.process(frame)
        np.testing.assert_array_equal(out.to_rgba(), gradient)
        assert out.frame_index == 12

    def test_rgba_to_bgra_swaps_exactly(self, convert, gradient):
        frame = VideoFrame.from_rgba(gradient, PixelFormat.RGBA)
        convert.configure(frame.info, VideoInfo(PixelFormat.BGRA, 32, 16))
        out = convert.process(frame)
        assert out.info.format == PixelFormat.BGRA
        np.testing.assert_array_equal(out.to_rgba(), gradient)

    @pytest.mark.parametrize('fmt', YUV_FORMATS)
    @pytest.mark.parametrize('matrix', [ColorMatrix.BT601, ColorMatrix.BT709])
    def test_encode_matches_reference(self, convert, gradient, fmt, matrix):
        frame = VideoFrame.from_rgba(gradient, PixelFormat.RGBA)
        convert.configure(frame.info, VideoInfo(fmt, 32, 16, matrix))
        out = convert.process(frame)

        assert max_plane_difference(out, encode_planes(gradient, fmt, matrix)) <= 2

    @pytest.mark.parametrize('fmt', YUV_FORMATS)
    def test_decode_matches_reference(self, gpu, gradient, fmt):
        planes = encode_planes(gradient, fmt)
        frame = VideoFrame.allocate(VideoInfo(fmt, 32, 16))
        for index, rows in enumerate(planes):
            frame.write_plane(index, rows)

        with ConvertScaleEngine(gpu, method='nearest') as engine:
            engine.configure(frame.info, VideoInfo(PixelFormat.RGBA, 32, 16))
            out = engine.process(frame)

        expected = decode_planes(planes, fmt, 32, 16)
        assert np.abs(out.to_rgba().astype(int) - expected.astype(int)).max() <= 2

    def test_padded_output_strides(self, convert, gradient):
        frame = VideoFrame.from_rgba(gradient, PixelFormat.RGBA)
        out_info = VideoInfo(PixelFormat.I420, 32, 16)
        convert.configure(frame.info, out_info)
        out_frame = VideoFrame.allocate(out_info, strides=[64, 32, 32])

        result = convert.process(frame, out_frame)
        assert result is out_frame
        assert max_plane_difference(result, encode_planes(gradient, PixelFormat.I420)) <= 2

    def test_odd_sized_nv12(self, convert, make_solid_frame):
        frame = make_solid_frame(7, 5, (40, 200, 120, 255), PixelFormat.RGBA)
        convert.configure(frame.info, VideoInfo(PixelFormat.NV12, 7, 5))
        out = convert.process(frame)

        expected = encode_planes(frame.to_rgba(), PixelFormat.NV12)
        assert out.plane_rows(1).shape == (3, 8)
        assert max_plane_difference(out, expected) <= 1


class TestScaling:

    def test_nearest_upscale_duplicates_pixels(self, gpu):
        pixels = np.array([[[0, 0, 0, 255], [255, 255, 255, 255]]], dtype=np.uint8)
        frame = VideoFrame.from_rgba(pixels, PixelFormat.RGBA)
        with ConvertScaleEngine(gpu, method='nearest') as engine:
            engine.configure(frame.info, VideoInfo(PixelFormat.RGBA, 4, 1))
            row = engine.process(frame).to_rgba()[0, :, 0].tolist()
        assert row == [0, 0, 255, 255]

    def test_bilinear_upscale_interpolates(self, convert):
        pixels = np.array([[[0, 0, 0, 255], [255, 255, 255, 255]]], dtype=np.uint8)
        frame = VideoFrame.from_rgba(pixels, PixelFormat.RGBA)
        convert.configure(frame.info, VideoInfo(PixelFormat.RGBA, 4, 1))
        row = convert.process(frame).to_rgba()[0, :, 0].astype(int)
        assert row[0] <= 1 and row[3] >= 254
        assert 0 < row[1] < row[2] < 255

    def test_letterbox_borders(self, gpu, make_solid_frame):
        frame = make_solid_frame(64, 32, (255, 0, 0, 255), PixelFormat.RGBA)
        with ConvertScaleEngine(gpu, add_borders=True, border_color=0xFF0000FF) as engine:
            engine.configure(frame.info, VideoInfo(PixelFormat.RGBA, 32, 32))
            pixels = engine.process(frame).to_rgba().astype(int)

        assert pixels[4, 16, :3].tolist() == [0, 0, 255]
        assert pixels[27, 16, :3].tolist() == [0, 0, 255]
        assert pixels[16, 16, :3].tolist() == [255, 0, 0]
        assert pixels[8, 0, :3].tolist() == [255, 0, 0]

    def test_downscale_to_yuv(self, convert, make_solid_frame):
        frame = make_solid_frame(64, 48, (255, 255, 255, 255))
        convert.configure(frame.info, VideoInfo(PixelFormat.YUY2, 32, 24))
        out = convert.process(frame)
        rows = out.plane_rows(0).reshape(24, 16, 4).astype(int)
        assert np.abs(rows[..., 0] - 235).max() <= 1
        assert np.abs(rows[..., 1] - 128).max() <= 1

    def test_reconfigure_replaces_geometry(self, convert, make_solid_frame):
        frame = make_solid_frame(16, 16, (10, 20, 30, 255))
        convert.configure(frame.info, VideoInfo(PixelFormat.RGBA, 8, 8))
        convert.configure(frame.info, VideoInfo(PixelFormat.RGBA, 4, 4))
        assert convert.process(frame).info.size == (4, 4)

    def test_invalid_output_geometry(self, convert):
        with pytest.raises(ConfigurationError):
            convert.configure(VideoInfo(PixelFormat.RGBA, 16, 16), VideoInfo(PixelFormat.RGBA, 0, 16))
        assert not convert.configured
