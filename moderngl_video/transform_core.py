"""
Transform - Functional Core

Orientation matrices and crop math for the transform engine.

The engine maps each destination texture coordinate back into the source:

    c   = dst_uv - 0.5
    src = M · c + 0.5 + offset

M and offset come from ``build_uv_transform``. Matrices are stored
column-major ``(m00, m10, m01, m11)``, the order GLSL ``mat2`` uniforms use.
Texture coordinates are top-down (v = 0 is image row 0).
"""

import enum
from dataclasses import dataclass
from typing import Tuple

from .errors import ConfigurationError
from .core import coerce_enum

Matrix2 = Tuple[float, float, float, float]


class Orientation(enum.IntEnum):
    """Flip/rotate method"""
    IDENTITY = 0
    ROTATE_90R = 1
    ROTATE_180 = 2
    ROTATE_90L = 3
    HORIZONTAL_FLIP = 4
    VERTICAL_FLIP = 5
    UL_LR = 6
    UR_LL = 7

    @property
    def nick(self) -> str:
        return _NICKS[self]

    @property
    def swaps_axes(self) -> bool:
        """True for orientations that exchange width and height"""
        return self in (Orientation.ROTATE_90R, Orientation.ROTATE_90L,
                        Orientation.UL_LR, Orientation.UR_LL)


_NICKS = {
    Orientation.IDENTITY: 'identity',
    Orientation.ROTATE_90R: '90r',
    Orientation.ROTATE_180: '180',
    Orientation.ROTATE_90L: '90l',
    Orientation.HORIZONTAL_FLIP: 'horizontal-flip',
    Orientation.VERTICAL_FLIP: 'vertical-flip',
    Orientation.UL_LR: 'ul-lr',
    Orientation.UR_LL: 'ur-ll',
}

# Source offset from destination center per orientation, column-major
ORIENTATION_MATRICES = {
    Orientation.IDENTITY: (1.0, 0.0, 0.0, 1.0),
    Orientation.ROTATE_90R: (0.0, -1.0, 1.0, 0.0),    # src = (v, 1 - u)
    Orientation.ROTATE_180: (-1.0, 0.0, 0.0, -1.0),
    Orientation.ROTATE_90L: (0.0, 1.0, -1.0, 0.0),    # src = (1 - v, u)
    Orientation.HORIZONTAL_FLIP: (-1.0, 0.0, 0.0, 1.0),
    Orientation.VERTICAL_FLIP: (1.0, 0.0, 0.0, -1.0),
    Orientation.UL_LR: (0.0, 1.0, 1.0, 0.0),          # transpose
    Orientation.UR_LL: (0.0, -1.0, -1.0, 0.0),        # anti-transpose
}


@dataclass(frozen=True)
class TransformSettings:
    """Flip/rotate/crop parameters

    Attributes:
        method: Orientation
        crop_top: Pixels trimmed from the top of the oriented frame
        crop_bottom: Pixels trimmed from the bottom of the oriented frame
        crop_left: Pixels trimmed from the left of the oriented frame
        crop_right: Pixels trimmed from the right of the oriented frame

    Top/bottom are measured against the source height and left/right against
    the source width, so for the axis-swapping orientations the trimmed
    fraction is exact but does not land on whole output pixels.
    """
    method: Orientation = Orientation.IDENTITY
    crop_top: int = 0
    crop_bottom: int = 0
    crop_left: int = 0
    crop_right: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'method', coerce_enum(Orientation, self.method))

    def validate(self) -> 'TransformSettings':
        for name in ('crop_top', 'crop_bottom', 'crop_left', 'crop_right'):
            value = getattr(self, name)
            if int(value) != value or value < 0:
                raise ConfigurationError(f"{name}={value} must be a non-negative integer")
        return self

    @property
    def has_crop(self) -> bool:
        return any((self.crop_top, self.crop_bottom, self.crop_left, self.crop_right))


def is_identity(settings: TransformSettings) -> bool:
    return settings.method == Orientation.IDENTITY and not settings.has_crop


def cropped_size(settings: TransformSettings, width: int, height: int) -> Tuple[int, int]:
    """Source size left after cropping (may be zero or negative)"""
    return (width - settings.crop_left - settings.crop_right,
            height - settings.crop_top - settings.crop_bottom)


def is_degenerate(settings: TransformSettings, width: int, height: int) -> bool:
    """True when the crop removes the whole frame"""
    w, h = cropped_size(settings, width, height)
    return w <= 0 or h <= 0


def transformed_size(settings: TransformSettings, width: int, height: int) -> Tuple[int, int]:
    """Natural output size: cropped size, swapped for transposing orientations

    Degenerate crops give (0, 0).
    """
    if is_degenerate(settings, width, height):
        return (0, 0)
    w, h = cropped_size(settings, width, height)
    if settings.method.swaps_axes:
        return (h, w)
    return (w, h)


def build_uv_transform(settings: TransformSettings, width: int,
                       height: int) -> Tuple[Matrix2, Tuple[float, float]]:
    """Matrix and offset mapping destination to source texture coordinates

    The crop window is applied to the centered destination coordinate, then
    the orientation maps it into the source:

        src = T · (diag(scale) · c + crop_offset) + 0.5

    so the combined matrix is ``T · diag(scale)`` and the offset is
    ``T · crop_offset``. Insets are fractions of the source width (left and
    right) and height (top and bottom).

    Args:
        settings: Orientation and crop
        width: Source width in pixels
        height: Source height in pixels

    Returns:
        (column-major 2x2 matrix, (offset_u, offset_v))
    """
    crop_l = settings.crop_left / width
    crop_r = settings.crop_right / width
    crop_t = settings.crop_top / height
    crop_b = settings.crop_bottom / height
    scale_x = 1.0 - crop_l - crop_r
    scale_y = 1.0 - crop_t - crop_b
    offset_x = (crop_l - crop_r) * 0.5
    offset_y = (crop_t - crop_b) * 0.5

    m00, m10, m01, m11 = ORIENTATION_MATRICES[settings.method]
    matrix = (m00 * scale_x, m10 * scale_x, m01 * scale_y, m11 * scale_y)
    offset = (m00 * offset_x + m01 * offset_y, m10 * offset_x + m11 * offset_y)
    return matrix, offset


def apply_uv_transform(matrix: Matrix2, offset: Tuple[float, float],
                       u: float, v: float) -> Tuple[float, float]:
    """Source coordinate for destination (u, v), as the vertex shader computes it"""
    m00, m10, m01, m11 = matrix
    cx, cy = u - 0.5, v - 0.5
    return (m00 * cx + m01 * cy + 0.5 + offset[0],
            m10 * cx + m11 * cy + 0.5 + offset[1])
