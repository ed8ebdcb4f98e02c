"""
Tests for the frame data model

Pure CPU tests: plane layouts, strides and RGBA wrapping.
"""

import numpy as np
import pytest

from .errors import ConfigurationError
from .frames import (
    ColorMatrix,
    PixelFormat,
    VideoFrame,
    VideoInfo,
    chroma_size,
    default_strides,
    plane_layout,
)


class TestPixelFormat:
    """Format parsing and classification"""

    def test_parse_is_case_insensitive(self):
        assert PixelFormat.parse('nv12') is PixelFormat.NV12
        assert PixelFormat.parse(PixelFormat.BGRA) is PixelFormat.BGRA

    def test_parse_unknown_format_raises(self):
        with pytest.raises(ConfigurationError):
            PixelFormat.parse('P010')

    def test_only_rgb_formats_have_alpha(self):
        assert PixelFormat.BGRA.has_alpha
        assert PixelFormat.RGBA.has_alpha
        assert not PixelFormat.NV12.has_alpha
        assert not PixelFormat.UYVY.has_alpha

    def test_packed_422_family(self):
        assert PixelFormat.UYVY.is_packed_422
        assert PixelFormat.YUY2.is_packed_422
        assert not PixelFormat.I420.is_packed_422


class TestVideoInfo:

    def test_accepts_format_names_and_int_colorimetry(self):
        info = VideoInfo('i420', 64, 48, colorimetry=1)
        assert info.format is PixelFormat.I420
        assert info.colorimetry is ColorMatrix.BT709
        assert info.color_matrix_index == 1

    @pytest.mark.parametrize('width,height', [(0, 10), (10, 0), (-4, 4)])
    def test_validate_rejects_empty_dimensions(self, width, height):
        with pytest.raises(ConfigurationError):
            VideoInfo(PixelFormat.RGBA, width, height).validate()

    def test_validate_rejects_zero_par(self):
        with pytest.raises(ConfigurationError):
            VideoInfo(PixelFormat.RGBA, 8, 8, par_n=0).validate()

    def test_same_geometry_ignores_colorimetry(self):
        a = VideoInfo(PixelFormat.NV12, 32, 16, ColorMatrix.BT601)
        b = VideoInfo(PixelFormat.NV12, 32, 16, ColorMatrix.BT709)
        assert a.same_geometry(b)
        assert not a.same_geometry(b.with_size(32, 18))


# ============================================================================
# Plane geometry
# ============================================================================

class TestPlaneLayout:

    def test_rgb_is_single_four_component_plane(self):
        assert plane_layout(PixelFormat.BGRA, 7, 3) == [(7, 3, 4)]

    def test_nv12_odd_dimensions_round_chroma_up(self):
        assert chroma_size(5, 3) == (3, 2)
        assert plane_layout(PixelFormat.NV12, 5, 3) == [(5, 3, 1), (3, 2, 2)]

    def test_i420_has_three_planes(self):
        assert plane_layout(PixelFormat.I420, 4, 4) == [(4, 4, 1), (2, 2, 1), (2, 2, 1)]

    def test_packed_422_macropixels(self):
        assert plane_layout(PixelFormat.UYVY, 6, 2) == [(3, 2, 4)]
        assert plane_layout(PixelFormat.YUY2, 5, 2) == [(3, 2, 4)]

    def test_default_strides_are_four_byte_aligned(self):
        assert default_strides(PixelFormat.I420, 5, 3) == [8, 4, 4]
        assert default_strides(PixelFormat.NV12, 6, 2) == [8, 8]


# ============================================================================
# CPU frame storage
# ============================================================================

class TestVideoFrame:

    def test_allocate_is_zero_filled(self):
        frame = VideoFrame.allocate(VideoInfo(PixelFormat.NV12, 6, 4))
        assert len(frame.planes) == 2
        assert all(not plane.any() for plane in frame.planes)

    def test_allocate_zero_size_frame(self):
        frame = VideoFrame.allocate(VideoInfo(PixelFormat.RGBA, 0, 0))
        assert frame.planes[0].size == 0
        assert frame.info.size == (0, 0)

    def test_bgra_frames_store_swapped_channels(self):
        pixels = np.zeros((1, 2, 4), dtype=np.uint8)
        pixels[0, 0] = (10, 20, 30, 255)
        frame = VideoFrame.from_rgba(pixels, PixelFormat.BGRA)
        assert list(frame.planes[0][:4]) == [30, 20, 10, 255]
        np.testing.assert_array_equal(frame.to_rgba(), pixels)

    def test_padded_stride_is_respected(self):
        info = VideoInfo(PixelFormat.RGBA, 2, 2)
        frame = VideoFrame.allocate(info, strides=[16])
        rows = np.arange(16, dtype=np.uint8).reshape(2, 8)
        frame.write_plane(0, rows)

        assert list(frame.planes[0][8:16]) == [0] * 8   # padding untouched
        np.testing.assert_array_equal(frame.plane_rows(0), rows)

    def test_short_stride_is_rejected(self):
        info = VideoInfo(PixelFormat.RGBA, 4, 2)
        with pytest.raises(ValueError):
            VideoFrame(info, [np.zeros(32, dtype=np.uint8)], [8])

    def test_wrong_plane_count_is_rejected(self):
        info = VideoInfo(PixelFormat.I420, 4, 4)
        with pytest.raises(ValueError):
            VideoFrame(info, [np.zeros(16, dtype=np.uint8)], [4])

    def test_from_rgba_rejects_yuv_target(self):
        with pytest.raises(ConfigurationError):
            VideoFrame.from_rgba(np.zeros((2, 2, 4), dtype=np.uint8), PixelFormat.NV12)

    def test_copy_keeps_stream_metadata(self):
        frame = VideoFrame.allocate(VideoInfo(PixelFormat.RGBA, 2, 2), top_field_first=False)
        frame.frame_index = 7
        clone = frame.copy()
        clone.planes[0][0] = 99

        assert clone.top_field_first is False
        assert clone.frame_index == 7
        assert frame.planes[0][0] == 0
