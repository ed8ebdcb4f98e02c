"""
Video Frame Types - Shared Contract

Defines the data contract between callers and every engine: pixel formats,
colorimetry, frame geometry and CPU-side plane storage.

Plane layout per format:
    BGRA, RGBA   → 1 plane, 4 bytes per pixel
    NV12         → Y plane + interleaved UV plane at half resolution
    I420         → Y, U, V planes, chroma at half resolution
    UYVY, YUY2   → 1 plane of macropixels (2 pixels per 4 bytes)

Image row 0 is the top row. Planes are flat uint8 arrays addressed with a
per-plane stride (bytes per row, possibly padded).
"""

import enum
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import numpy as np

from .errors import ConfigurationError


class PixelFormat(enum.Enum):
    """Pixel layouts accepted and produced by the engines"""
    BGRA = 'BGRA'
    RGBA = 'RGBA'
    NV12 = 'NV12'
    I420 = 'I420'
    UYVY = 'UYVY'
    YUY2 = 'YUY2'

    @classmethod
    def parse(cls, value) -> 'PixelFormat':
        """Accept a PixelFormat or its case-insensitive name"""
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ConfigurationError(f"Unsupported pixel format: {value!r}") from None

    @property
    def is_rgb(self) -> bool:
        return self in (PixelFormat.BGRA, PixelFormat.RGBA)

    @property
    def is_yuv(self) -> bool:
        return not self.is_rgb

    @property
    def is_packed_422(self) -> bool:
        return self in (PixelFormat.UYVY, PixelFormat.YUY2)

    @property
    def has_alpha(self) -> bool:
        return self.is_rgb


class ColorMatrix(enum.IntEnum):
    """YUV matrix selector (the value is the shader colorimetry flag)"""
    BT601 = 0
    BT709 = 1


@dataclass(frozen=True)
class VideoInfo:
    """Frame geometry and format

    Attributes:
        format: Pixel layout
        width: Width in pixels
        height: Height in pixels
        colorimetry: YUV matrix used when decoding/encoding YUV planes
        par_n: Pixel aspect ratio numerator
        par_d: Pixel aspect ratio denominator
    """
    format: PixelFormat
    width: int
    height: int
    colorimetry: ColorMatrix = ColorMatrix.BT601
    par_n: int = 1
    par_d: int = 1

    def __post_init__(self):
        object.__setattr__(self, 'format', PixelFormat.parse(self.format))
        object.__setattr__(self, 'colorimetry', ColorMatrix(self.colorimetry))

    def validate(self) -> 'VideoInfo':
        """Raise ConfigurationError unless the geometry can be processed"""
        if self.width < 1 or self.height < 1:
            raise ConfigurationError(
                f"Invalid frame dimensions {self.width}x{self.height}"
            )
        if self.par_n < 1 or self.par_d < 1:
            raise ConfigurationError(
                f"Invalid pixel aspect ratio {self.par_n}/{self.par_d}"
            )
        return self

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def color_matrix_index(self) -> int:
        return int(self.colorimetry == ColorMatrix.BT709)

    def with_size(self, width: int, height: int) -> 'VideoInfo':
        return replace(self, width=width, height=height)

    def same_geometry(self, other: 'VideoInfo') -> bool:
        """Format and dimensions match (colorimetry and PAR ignored)"""
        return (self.format == other.format
                and self.width == other.width
                and self.height == other.height)


# ============================================================================
# Plane geometry
# ============================================================================

def chroma_size(width: int, height: int) -> Tuple[int, int]:
    """Size of a 4:2:0 chroma plane (odd dimensions round up)"""
    return (width + 1) // 2, (height + 1) // 2


def plane_layout(fmt: PixelFormat, width: int, height: int) -> List[Tuple[int, int, int]]:
    """Texture geometry of every plane

    Args:
        fmt: Pixel format
        width: Frame width in pixels
        height: Frame height in pixels

    Returns:
        List of (texels_per_row, rows, components) per plane
    """
    fmt = PixelFormat.parse(fmt)
    if fmt.is_rgb:
        return [(width, height, 4)]
    if fmt.is_packed_422:
        return [((width + 1) // 2, height, 4)]
    cw, ch = chroma_size(width, height)
    if fmt == PixelFormat.NV12:
        return [(width, height, 1), (cw, ch, 2)]
    return [(width, height, 1), (cw, ch, 1), (cw, ch, 1)]


def default_strides(fmt: PixelFormat, width: int, height: int) -> List[int]:
    """Row strides rounded up to 4 bytes"""
    return [(tw * comps + 3) & ~3 for tw, _, comps in plane_layout(fmt, width, height)]


# ============================================================================
# CPU frame storage
# ============================================================================

@dataclass
class VideoFrame:
    """One decoded frame in CPU memory

    Attributes:
        info: Format and geometry
        planes: One flat uint8 array per plane
        strides: Bytes per row for each plane
        top_field_first: Field order flag for interlaced content
        frame_index: Position in the stream, if known
    """
    info: VideoInfo
    planes: List[np.ndarray]
    strides: List[int]
    top_field_first: bool = True
    frame_index: Optional[int] = None
    layout: List[Tuple[int, int, int]] = field(init=False, repr=False)

    def __post_init__(self):
        self.layout = plane_layout(self.info.format, self.info.width, self.info.height)
        if len(self.planes) != len(self.layout) or len(self.strides) != len(self.layout):
            raise ValueError(
                f"{self.info.format.value} needs {len(self.layout)} planes, "
                f"got {len(self.planes)} planes and {len(self.strides)} strides"
            )
        for index, (plane, stride, (tw, rows, comps)) in enumerate(
                zip(self.planes, self.strides, self.layout)):
            if stride < tw * comps:
                raise ValueError(f"Plane {index}: stride {stride} shorter than row ({tw * comps} bytes)")
            needed = stride * (rows - 1) + tw * comps if rows else 0
            if plane.dtype != np.uint8 or plane.ndim != 1 or plane.size < needed:
                raise ValueError(f"Plane {index}: expected flat uint8 buffer of at least {needed} bytes")

    @classmethod
    def allocate(cls, info: VideoInfo, strides: Optional[List[int]] = None,
                 top_field_first: bool = True) -> 'VideoFrame':
        """Create a zero-filled frame"""
        if strides is None:
            strides = default_strides(info.format, info.width, info.height)
        layout = plane_layout(info.format, info.width, info.height)
        planes = [np.zeros(stride * rows, dtype=np.uint8)
                  for stride, (_, rows, _) in zip(strides, layout)]
        return cls(info, planes, list(strides), top_field_first)

    @classmethod
    def from_rgba(cls, pixels: np.ndarray, fmt: PixelFormat = PixelFormat.RGBA,
                  colorimetry: ColorMatrix = ColorMatrix.BT601) -> 'VideoFrame':
        """Wrap an HxWx4 RGBA uint8 image as a BGRA or RGBA frame"""
        fmt = PixelFormat.parse(fmt)
        if not fmt.is_rgb:
            raise ConfigurationError(f"from_rgba produces RGBA-family frames, not {fmt.value}")
        pixels = np.asarray(pixels, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected HxWx4 array, got shape {pixels.shape}")
        height, width = pixels.shape[:2]
        frame = cls.allocate(VideoInfo(fmt, width, height, colorimetry))
        if fmt == PixelFormat.BGRA:
            pixels = pixels[..., [2, 1, 0, 3]]
        frame.write_plane(0, pixels)
        return frame

    def plane_rows(self, index: int) -> np.ndarray:
        """View of a plane as (rows, row_bytes), stride padding removed"""
        tw, rows, comps = self.layout[index]
        stride = self.strides[index]
        plane = self.planes[index]
        if rows == 0 or stride == 0:
            return np.zeros((rows, tw * comps), dtype=np.uint8)
        padded = plane[:stride * rows] if plane.size >= stride * rows else np.pad(
            plane, (0, stride * rows - plane.size))
        return padded.reshape(rows, stride)[:, :tw * comps]

    def write_plane(self, index: int, rows: np.ndarray) -> None:
        """Copy packed plane rows into the strided plane buffer"""
        tw, height, comps = self.layout[index]
        rows = np.asarray(rows, dtype=np.uint8).reshape(height, tw * comps)
        stride = self.strides[index]
        plane = self.planes[index]
        for y in range(height):
            start = y * stride
            plane[start:start + tw * comps] = rows[y]

    def to_rgba(self) -> np.ndarray:
        """HxWx4 RGBA copy of an RGBA-family frame"""
        if not self.info.format.is_rgb:
            raise ConfigurationError(f"to_rgba needs an RGBA-family frame, not {self.info.format.value}")
        pixels = self.plane_rows(0).reshape(self.info.height, self.info.width, 4)
        if self.info.format == PixelFormat.BGRA:
            return pixels[..., [2, 1, 0, 3]].copy()
        return pixels.copy()

    def copy(self) -> 'VideoFrame':
        return VideoFrame(self.info, [p.copy() for p in self.planes], list(self.strides),
                          self.top_field_first, self.frame_index)
