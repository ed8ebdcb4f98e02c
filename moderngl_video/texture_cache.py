"""
Texture Cache - Imperative Shell

Per-engine pool of input textures. Uploads are matched to slots by call
order: the n-th upload of a frame reuses the n-th texture of the previous
frame when format and size still match, otherwise that slot is reallocated.
A steady stream of same-shaped frames therefore allocates only once.
"""

import logging
from typing import List, Optional, Tuple

import moderngl
import numpy as np

from .errors import FrameProcessingError
from .frames import PixelFormat, VideoFrame, plane_layout

logger = logging.getLogger(__name__)

# (components, swizzle, width, height)
SlotKey = Tuple[int, str, int, int]


class TextureCache:
    """Slot-ordered texture pool owned by one engine instance"""

    def __init__(self, gpu):
        self.gpu = gpu
        self._textures: List[Optional[moderngl.Texture]] = []
        self._keys: List[Optional[SlotKey]] = []
        self._cursor = 0

    def __len__(self) -> int:
        return sum(1 for texture in self._textures if texture is not None)

    def reset_slot_cursor(self) -> None:
        """Start a new frame: the next upload uses slot 0"""
        self._cursor = 0

    def upload_plane(self, data: np.ndarray, plane_index: int, fmt: PixelFormat,
                     width: int, height: int, stride: Optional[int] = None) -> moderngl.Texture:
        """Copy one plane into the texture at the next slot

        Args:
            data: Flat uint8 plane buffer
            plane_index: Plane number within the format's layout
            fmt: Pixel format of the frame the plane belongs to
            width: Frame width in pixels
            height: Frame height in pixels
            stride: Bytes per row in ``data`` (packed rows when omitted)

        Returns:
            Texture holding the plane (BGRA is exposed to shaders as RGBA)

        Raises:
            FrameProcessingError: The upload failed
        """
        slot = self._cursor
        self._cursor += 1

        fmt = PixelFormat.parse(fmt)
        tex_w, tex_h, components = plane_layout(fmt, width, height)[plane_index]
        row_bytes = tex_w * components
        if stride is None:
            stride = row_bytes
        data = np.asarray(data, dtype=np.uint8).reshape(-1)
        needed = stride * (tex_h - 1) + row_bytes
        if data.size < needed:
            raise FrameProcessingError(
                f"Plane {plane_index} holds {data.size} bytes, {needed} required", stage='upload')

        if stride == row_bytes:
            rows = data[:row_bytes * tex_h]
        else:
            rows = np.lib.stride_tricks.as_strided(
                data, shape=(tex_h, row_bytes), strides=(stride, 1))
        swizzle = 'BGRA' if fmt == PixelFormat.BGRA else 'RGBA'
        key = (components, swizzle, tex_w, tex_h)

        with self.gpu.activate():
            try:
                texture = self._slot_texture(slot, key)
                texture.write(np.ascontiguousarray(rows).tobytes(), alignment=1)
            except moderngl.Error as exc:
                raise FrameProcessingError(f"Texture upload failed: {exc}", stage='upload') from exc
        return texture

    def upload_frame(self, frame: VideoFrame) -> List[moderngl.Texture]:
        """Upload every plane of a frame, bound to texture units 0..n-1"""
        info = frame.info
        textures = [
            self.upload_plane(plane, index, info.format, info.width, info.height, stride)
            for index, (plane, stride) in enumerate(zip(frame.planes, frame.strides))
        ]
        with self.gpu.activate():
            for unit, texture in enumerate(textures):
                texture.use(location=unit)
        return textures

    def _slot_texture(self, slot: int, key: SlotKey) -> moderngl.Texture:
        while len(self._textures) <= slot:
            self._textures.append(None)
            self._keys.append(None)
        cached = self._textures[slot]
        if cached is not None and self._keys[slot] == key:
            return cached

        components, swizzle, width, height = key
        texture = self.gpu.texture((width, height), components)
        if components == 4:
            texture.swizzle = swizzle
        logger.debug("Texture cache slot %d: allocated %dx%d x%d (%s)",
                     slot, width, height, components, swizzle)

        if cached is not None:
            cached.release()
        self._textures[slot] = texture
        self._keys[slot] = key
        return texture

    def clear(self) -> None:
        """Release every cached texture"""
        with self.gpu.activate():
            for texture in self._textures:
                if texture is not None:
                    texture.release()
        self._textures.clear()
        self._keys.clear()
        self._cursor = 0
