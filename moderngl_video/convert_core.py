"""
Convert/Scale - Functional Core

Pure geometry for format conversion and scaling: letterbox placement,
output size fixation and the passthrough decision.
"""

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from .core import coerce_enum, display_aspect_ratio, scale_int
from .errors import ConfigurationError
from .frames import VideoInfo


class ScaleMethod(enum.IntEnum):
    BILINEAR = 0
    NEAREST = 1

    @property
    def nick(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class ConvertSettings:
    """Convert/scale parameters

    Attributes:
        method: Sampling used when sizes differ
        add_borders: Letterbox/pillarbox to keep the input aspect ratio
        border_color: ARGB32 fill for the bars
    """
    method: ScaleMethod = ScaleMethod.BILINEAR
    add_borders: bool = False
    border_color: int = 0xFF000000

    def __post_init__(self):
        object.__setattr__(self, 'method', coerce_enum(ScaleMethod, self.method))

    def validate(self) -> 'ConvertSettings':
        if not 0 <= int(self.border_color) <= 0xFFFFFFFF:
            raise ConfigurationError(f"border_color {self.border_color:#x} is not ARGB32")
        return self


def is_passthrough(in_info: VideoInfo, out_info: VideoInfo) -> bool:
    """Identical format, size and (for YUV) matrix: nothing to convert"""
    if not in_info.same_geometry(out_info):
        return False
    return in_info.format.is_rgb or in_info.colorimetry == out_info.colorimetry


def letterbox_scale(in_w: int, in_h: int, out_w: int, out_h: int) -> Tuple[float, float]:
    """Fraction of the output covered by the picture on each axis"""
    src_aspect = in_w / in_h
    dst_aspect = out_w / out_h
    if src_aspect > dst_aspect:
        return 1.0, dst_aspect / src_aspect
    return src_aspect / dst_aspect, 1.0


def fixate_output_size(in_info: VideoInfo, out_par_n: int = 1, out_par_d: int = 1,
                       width: Optional[int] = None, height: Optional[int] = None) -> Tuple[int, int]:
    """Choose the output size that preserves the input display aspect ratio

    Args:
        in_info: Input geometry (including its pixel aspect ratio)
        out_par_n: Output pixel aspect ratio numerator
        out_par_d: Output pixel aspect ratio denominator
        width: Output width if already fixed
        height: Output height if already fixed

    Returns:
        (width, height), each at least 1
    """
    if width is not None and height is not None:
        return width, height
    dar = display_aspect_ratio(in_info.width, in_info.height, in_info.par_n, in_info.par_d)
    if height is not None:
        w = scale_int(height, dar.numerator * out_par_d, dar.denominator * out_par_n)
        return max(w, 1), height
    if width is None:
        width = in_info.width
    h = scale_int(width, dar.denominator * out_par_n, dar.numerator * out_par_d)
    return width, max(h, 1)
