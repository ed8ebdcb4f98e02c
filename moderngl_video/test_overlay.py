"""
Tests for the still-image overlay
"""

import logging

import numpy as np
import pytest
from PIL import Image

from .errors import AssetLoadError, ConfigurationError
from .frames import PixelFormat, VideoFrame, VideoInfo
from .overlay import OverlayEngine
from .overlay_core import OverlayRect, OverlaySettings, load_overlay_image, resolve_overlay_rect


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def logo_path(tmp_path):
    """4x2 opaque green PNG"""
    path = tmp_path / 'logo.png'
    Image.new('RGBA', (4, 2), (0, 255, 0, 255)).save(path)
    return path


@pytest.fixture
def half_transparent_logo_path(tmp_path):
    path = tmp_path / 'ghost.png'
    Image.new('RGBA', (4, 4), (255, 255, 255, 128)).save(path)
    return path


# ============================================================================
# LEVEL 1: Placement and loading
# ============================================================================

class TestOverlayRect:

    def test_absolute_position_and_image_size(self):
        rect = resolve_overlay_rect(OverlaySettings(x=10, y=20), 320, 240, 64, 32)
        assert rect == OverlayRect(10.0, 20.0, 64.0, 32.0)

    def test_relative_position_overrides_absolute(self):
        settings = OverlaySettings(x=10, y=20, relative_x=0.5, relative_y=0.25)
        rect = resolve_overlay_rect(settings, 320, 240, 64, 32)
        assert (rect.x, rect.y) == (160.0, 60.0)

    def test_explicit_size(self):
        rect = resolve_overlay_rect(OverlaySettings(width=100, height=50), 320, 240, 64, 32)
        assert (rect.w, rect.h) == (100.0, 50.0)

    def test_visibility(self):
        assert OverlayRect(300, 200, 64, 64).is_visible(320, 240)
        assert not OverlayRect(320, 0, 64, 64).is_visible(320, 240)
        assert not OverlayRect(-64, 0, 64, 64).is_visible(320, 240)
        assert not OverlayRect(0, 0, 0, 10).is_visible(320, 240)


class TestOverlaySettings:

    @pytest.mark.parametrize('changes', [{'x': -1}, {'alpha': 1.2}, {'relative_x': 1.5}])
    def test_invalid_values_raise(self, changes):
        with pytest.raises(ConfigurationError):
            OverlaySettings(**changes).validate()

    def test_image_must_be_rgba(self):
        with pytest.raises(ConfigurationError):
            OverlaySettings(image=np.zeros((4, 4, 3), dtype=np.uint8)).validate()


class TestLoadOverlayImage:

    def test_loads_straight_rgba(self, tmp_path):
        path = tmp_path / 'rgb.jpg'
        Image.new('RGB', (8, 6), (200, 10, 10)).save(path)
        pixels = load_overlay_image(path)
        assert pixels.shape == (6, 8, 4)
        assert (pixels[..., 3] == 255).all()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(AssetLoadError):
            load_overlay_image(tmp_path / 'nope.png')

    def test_garbage_file_raises(self, tmp_path):
        path = tmp_path / 'broken.png'
        path.write_bytes(b'not an image')
        with pytest.raises(AssetLoadError):
            load_overlay_image(path)


# ============================================================================
# LEVEL 2: Engine (GPU)
# ============================================================================

class TestOverlayEngine:

    def test_without_image_is_passthrough(self, gpu, make_solid_frame):
        frame = make_solid_frame(16, 16, (10, 20, 30, 255))
        with OverlayEngine(gpu) as engine:
            engine.configure(frame.info)
            assert engine.passthrough
            np.testing.assert_array_equal(engine.process(frame).to_rgba(), frame.to_rgba())

    def test_offscreen_overlay_is_passthrough(self, gpu, logo_path, make_solid_frame):
        frame = make_solid_frame(16, 16, (10, 20, 30, 255))
        with OverlayEngine(gpu, image_path=str(logo_path), x=64) as engine:
            engine.configure(frame.info)
            assert engine.passthrough

    def test_opaque_overlay_replaces_pixels_inside_rect(self, gpu, logo_path, make_solid_frame):
        frame = make_solid_frame(16, 16, (255, 0, 0, 255), PixelFormat.RGBA)
        with OverlayEngine(gpu, image_path=str(logo_path), x=4, y=8) as engine:
            engine.configure(frame.info)
            pixels = engine.process(frame).to_rgba()

        assert pixels[8, 4, :3].tolist() == [0, 255, 0]
        assert pixels[9, 7, :3].tolist() == [0, 255, 0]
        assert pixels[8, 8, :3].tolist() == [255, 0, 0]
        assert pixels[10, 4, :3].tolist() == [255, 0, 0]
        assert pixels[7, 4, :3].tolist() == [255, 0, 0]

    def test_alpha_mixes_with_video(self, gpu, half_transparent_logo_path, make_solid_frame):
        frame = make_solid_frame(8, 8, (0, 0, 0, 255), PixelFormat.RGBA)
        with OverlayEngine(gpu, image_path=str(half_transparent_logo_path), alpha=0.5) as engine:
            engine.configure(frame.info)
            pixels = engine.process(frame).to_rgba().astype(int)
        # 128/255 image alpha times 0.5 global alpha
        assert abs(pixels[1, 1, 0] - 64) <= 1
        assert pixels[1, 1, 3] == 255

    def test_relative_placement(self, gpu, logo_path, make_solid_frame):
        frame = make_solid_frame(20, 10, (0, 0, 0, 255), PixelFormat.RGBA)
        with OverlayEngine(gpu, image_path=str(logo_path), relative_x=0.5, relative_y=0.5) as engine:
            engine.configure(frame.info)
            pixels = engine.process(frame).to_rgba()
        assert pixels[5, 10, 1] == 255
        assert pixels[4, 10, 1] == 0

    def test_failed_load_keeps_previous_image(self, gpu, logo_path, tmp_path, caplog):
        with OverlayEngine(gpu, image_path=str(logo_path)) as engine:
            previous = engine.settings.image
            with caplog.at_level(logging.WARNING):
                engine.update(image_path=str(tmp_path / 'missing.png'), alpha=0.3)

            assert engine.settings.image is previous
            assert engine.settings.image_path == str(logo_path)
            assert engine.settings.alpha == 0.3
            assert any('Keeping previous overlay' in r.message for r in caplog.records)

    def test_clearing_image_path(self, gpu, logo_path):
        with OverlayEngine(gpu, image_path=str(logo_path)) as engine:
            engine.update(image_path=None)
            assert not engine.settings.has_image

    def test_yuv_frames(self, gpu, logo_path):
        info = VideoInfo(PixelFormat.I420, 16, 16)
        frame = VideoFrame.allocate(info)
        frame.write_plane(0, np.full((16, 16), 16, dtype=np.uint8))
        frame.write_plane(1, np.full((8, 8), 128, dtype=np.uint8))
        frame.write_plane(2, np.full((8, 8), 128, dtype=np.uint8))
        with OverlayEngine(gpu, image_path=str(logo_path), x=0, y=0) as engine:
            engine.configure(info)
            out = engine.process(frame)

        luma = out.plane_rows(0).astype(int)
        assert luma[0, 0] > 100        # green is bright
        assert abs(luma[8, 8] - 16) <= 1

    def test_scaling_is_rejected(self, gpu):
        with OverlayEngine(gpu) as engine:
            with pytest.raises(ConfigurationError):
                engine.configure(VideoInfo(PixelFormat.RGBA, 8, 8), VideoInfo(PixelFormat.RGBA, 4, 4))
