"""
Tests for the slot-ordered texture cache
"""

import numpy as np
import pytest

from .errors import FrameProcessingError
from .frames import PixelFormat, VideoFrame, VideoInfo
from .texture_cache import TextureCache


@pytest.fixture
def cache(gpu):
    texture_cache = TextureCache(gpu)
    yield texture_cache
    texture_cache.clear()


def rgba_plane(width, height, value=0):
    return np.full(width * height * 4, value, dtype=np.uint8)


class TestSlotReuse:

    def test_same_shape_reuses_texture(self, cache):
        first = cache.upload_plane(rgba_plane(8, 4), 0, PixelFormat.RGBA, 8, 4)
        cache.reset_slot_cursor()
        second = cache.upload_plane(rgba_plane(8, 4, 9), 0, PixelFormat.RGBA, 8, 4)

        assert second is first
        assert len(cache) == 1

    def test_shape_change_reallocates_slot(self, cache):
        first = cache.upload_plane(rgba_plane(8, 4), 0, PixelFormat.RGBA, 8, 4)
        cache.reset_slot_cursor()
        second = cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)

        assert second is not first
        assert second.size == (4, 4)
        assert len(cache) == 1

    def test_swizzle_change_reallocates_slot(self, cache):
        first = cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)
        cache.reset_slot_cursor()
        second = cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.BGRA, 4, 4)
        assert second is not first

    def test_uploads_in_one_frame_use_separate_slots(self, cache):
        a = cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)
        b = cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)
        assert a is not b
        assert len(cache) == 2

    def test_failed_upload_still_consumes_slot(self, cache):
        with pytest.raises(FrameProcessingError):
            cache.upload_plane(np.zeros(10, dtype=np.uint8), 0, PixelFormat.RGBA, 8, 4)
        cache.upload_plane(rgba_plane(8, 4), 0, PixelFormat.RGBA, 8, 4)

        # Next frame: slot 0 is still empty, slot 1 holds the texture
        cache.reset_slot_cursor()
        cache.upload_plane(rgba_plane(8, 4), 0, PixelFormat.RGBA, 8, 4)
        assert len(cache) == 2

    def test_clear_releases_everything(self, cache):
        cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)
        cache.upload_plane(rgba_plane(4, 4), 0, PixelFormat.RGBA, 4, 4)
        cache.clear()
        assert len(cache) == 0


class TestUploads:

    def test_padded_rows_are_packed(self, gpu, cache):
        # 2x2 RGBA with 12-byte rows (4 padding bytes each)
        data = np.array([1, 2, 3, 4, 5, 6, 7, 8, 0, 0, 0, 0,
                         9, 10, 11, 12, 13, 14, 15, 16, 0, 0, 0, 0], dtype=np.uint8)
        texture = cache.upload_plane(data, 0, PixelFormat.RGBA, 2, 2, stride=12)
        with gpu.activate():
            packed = texture.read(alignment=1)
        assert np.frombuffer(packed, dtype=np.uint8).tolist() == list(range(1, 17))

    def test_nv12_chroma_plane_is_two_component(self, cache):
        texture = cache.upload_plane(np.full(3 * 2 * 2, 128, dtype=np.uint8), 1,
                                     PixelFormat.NV12, 5, 3)
        assert texture.components == 2
        assert texture.size == (3, 2)

    def test_upload_frame_returns_one_texture_per_plane(self, cache):
        frame = VideoFrame.allocate(VideoInfo(PixelFormat.I420, 8, 8))
        textures = cache.upload_frame(frame)
        assert [t.size for t in textures] == [(8, 8), (4, 4), (4, 4)]
