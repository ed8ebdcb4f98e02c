"""
Shared Geometry Core - Pure Functions

Rectangle math, aspect ratio helpers and parameter coercion used by the
engine cores. No GPU access, no side effects.

Coordinate conventions:
    Pixel space: origin top-left, y grows downward, integer pixels
    Device space (NDC): -1..1 on both axes; framebuffer row 0 holds image
    row 0, so pixel y maps to 2*y/height - 1
"""

import enum
from dataclasses import dataclass
from fractions import Fraction
from typing import Tuple, Type, TypeVar

from .errors import ConfigurationError

E = TypeVar('E', bound=enum.Enum)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned pixel rectangle"""
    x: int
    y: int
    w: int
    h: int

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0


# ============================================================================
# Parameter coercion
# ============================================================================

def coerce_enum(enum_cls: Type[E], value) -> E:
    """Resolve an enum member from a member, its int value or its nick

    Nicks are matched case-insensitively against the member name and the
    optional ``nick`` attribute (``-`` and ``_`` are interchangeable).

    Raises:
        ConfigurationError: No member matches
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        try:
            return enum_cls(value)
        except ValueError:
            raise ConfigurationError(
                f"{value} is not a valid {enum_cls.__name__}") from None
    if isinstance(value, str):
        key = value.strip().lower().replace('_', '-')
        for member in enum_cls:
            names = {member.name.lower().replace('_', '-')}
            nick = getattr(member, 'nick', None)
            if nick:
                names.add(nick)
            if key in names:
                return member
    raise ConfigurationError(f"{value!r} is not a valid {enum_cls.__name__}")


def check_range(name: str, value: float, low: float, high: float) -> None:
    """Raise ConfigurationError when value is outside [low, high]"""
    if not low <= value <= high:
        raise ConfigurationError(f"{name}={value} outside [{low}, {high}]")


def unpack_argb(color: int) -> Tuple[float, float, float, float]:
    """Split a 32-bit ARGB integer into normalized (r, g, b, a)"""
    color = int(color) & 0xFFFFFFFF
    a = (color >> 24) & 0xFF
    r = (color >> 16) & 0xFF
    g = (color >> 8) & 0xFF
    b = color & 0xFF
    return (r / 255.0, g / 255.0, b / 255.0, a / 255.0)


# ============================================================================
# Rectangles
# ============================================================================

def is_rectangle_contained(inner: Rect, outer: Rect) -> bool:
    """True when ``outer`` fully covers ``inner``"""
    return (outer.x <= inner.x and outer.y <= inner.y
            and outer.x + outer.w >= inner.x + inner.w
            and outer.y + outer.h >= inner.y + inner.h)


def clamp_rect(rect: Rect, width: int, height: int) -> Rect:
    """Intersect a rectangle with the (0, 0, width, height) frame"""
    x0 = min(max(rect.x, 0), width)
    y0 = min(max(rect.y, 0), height)
    x1 = min(max(rect.x + rect.w, 0), width)
    y1 = min(max(rect.y + rect.h, 0), height)
    return Rect(x0, y0, x1 - x0, y1 - y0)


def center_rect(src_w: int, src_h: int, dst: Rect) -> Rect:
    """Scale a source size to fit inside ``dst`` and center it

    Integer truncation matches the pixel placement used for padding offsets.
    """
    src_ratio = src_w / src_h
    dst_ratio = dst.w / dst.h
    if src_ratio > dst_ratio:
        w = dst.w
        h = int(dst.w / src_ratio)
        x = 0
        y = (dst.h - h) // 2
    elif src_ratio < dst_ratio:
        w = int(dst.h * src_ratio)
        h = dst.h
        x = (dst.w - w) // 2
        y = 0
    else:
        return dst
    return Rect(x + dst.x, y + dst.y, w, h)


def rect_to_ndc(rect: Rect, width: int, height: int) -> Tuple[float, float, float, float]:
    """Convert a pixel rectangle to device space (x0, y0, x1, y1)"""
    x0 = 2.0 * rect.x / width - 1.0
    y0 = 2.0 * rect.y / height - 1.0
    x1 = x0 + 2.0 * rect.w / width
    y1 = y0 + 2.0 * rect.h / height
    return (x0, y0, x1, y1)


# ============================================================================
# Aspect ratios
# ============================================================================

def display_aspect_ratio(width: int, height: int, par_n: int, par_d: int,
                         display_par_n: int = 1, display_par_d: int = 1) -> Fraction:
    """Display aspect ratio of a frame shown on a display with the given PAR

    Raises:
        ValueError: Any term is zero
    """
    num = width * par_n * display_par_d
    den = height * par_d * display_par_n
    if num == 0 or den == 0:
        raise ValueError(f"Cannot compute display ratio for {width}x{height}")
    return Fraction(num, den)


def scale_int(value: int, num: int, den: int) -> int:
    """value * num / den with truncation"""
    return (value * num) // den
