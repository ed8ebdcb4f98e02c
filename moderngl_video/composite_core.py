"""
Compositor - Functional Core

Pure placement logic for the compositor: per-pad destination rectangles,
sizing policies, the obscured-background test, overdraw elimination and
output size fixation. The GPU shell only draws what ``plan_composite``
returns.
"""

import enum
from dataclasses import dataclass, field
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple

from .core import (
    Rect,
    center_rect,
    check_range,
    clamp_rect,
    coerce_enum,
    display_aspect_ratio,
    is_rectangle_contained,
    scale_int,
)
from .errors import ConfigurationError
from .frames import VideoInfo


class _Nicked:
    @property
    def nick(self) -> str:
        return self.name.lower().replace('_', '-')


class BlendOperator(_Nicked, enum.IntEnum):
    """How a pad is blended onto the pads below it (premultiplied)

    SOURCE: dst = src
    OVER:   dst = src + dst * (1 - src.a)
    ADD:    dst = src + dst
    """
    SOURCE = 0
    OVER = 1
    ADD = 2


class SizingPolicy(_Nicked, enum.IntEnum):
    NONE = 0
    KEEP_ASPECT_RATIO = 1


class Background(_Nicked, enum.IntEnum):
    CHECKER = 0
    BLACK = 1
    WHITE = 2
    TRANSPARENT = 3


# Clear colors (r, g, b, a); the checker is drawn over opaque black
BACKGROUND_CLEAR_COLORS = {
    Background.CHECKER: (0.0, 0.0, 0.0, 1.0),
    Background.BLACK: (0.0, 0.0, 0.0, 1.0),
    Background.WHITE: (1.0, 1.0, 1.0, 1.0),
    Background.TRANSPARENT: (0.0, 0.0, 0.0, 0.0),
}

CHECKER_CELL_SIZE = 8


@dataclass(frozen=True)
class CompositorPadSettings:
    """Placement of one compositor input

    Attributes:
        xpos: Left edge in output pixels (may be negative)
        ypos: Top edge in output pixels (may be negative)
        width: Destination width, <= 0 for the input's own width
        height: Destination height, <= 0 for the input's own height
        alpha: Global opacity [0, 1]; 0 skips the pad
        operator: Blend operator
        sizing_policy: Fill the box or fit it keeping the aspect ratio
        zorder: Drawing order, higher is on top
    """
    xpos: int = 0
    ypos: int = 0
    width: int = -1
    height: int = -1
    alpha: float = 1.0
    operator: BlendOperator = BlendOperator.OVER
    sizing_policy: SizingPolicy = SizingPolicy.NONE
    zorder: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'operator', coerce_enum(BlendOperator, self.operator))
        object.__setattr__(self, 'sizing_policy', coerce_enum(SizingPolicy, self.sizing_policy))

    def validate(self) -> 'CompositorPadSettings':
        check_range('alpha', self.alpha, 0.0, 1.0)
        if self.zorder < 0:
            raise ConfigurationError(f"zorder={self.zorder} must be >= 0")
        return self


@dataclass(frozen=True)
class CompositorSettings:
    """Compositor-wide parameters

    Attributes:
        background: Fill drawn below all pads when not obscured
        zero_size_is_unscaled: Treat width/height 0 like -1 (input size)
    """
    background: Background = Background.CHECKER
    zero_size_is_unscaled: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'background', coerce_enum(Background, self.background))

    def validate(self) -> 'CompositorSettings':
        return self


@dataclass(frozen=True)
class PadPlacement:
    """Resolved destination of one pad

    Attributes:
        rect: Destination rectangle including sizing offsets (unclamped)
        x_offset: Horizontal padding added by keep-aspect-ratio
        y_offset: Vertical padding added by keep-aspect-ratio
    """
    rect: Rect
    x_offset: int = 0
    y_offset: int = 0


@dataclass(frozen=True)
class PadDraw:
    """One input to draw, in drawing order"""
    index: int
    rect: Rect
    alpha: float
    operator: BlendOperator


@dataclass(frozen=True)
class CompositePlan:
    draw_background: bool
    draws: List[PadDraw] = field(default_factory=list)


# ============================================================================
# Pad geometry
# ============================================================================

def _fraction_or_none(num: int, den: int) -> Optional[Fraction]:
    if den == 0:
        return None
    return Fraction(num, den)


def pad_output_size(settings: CompositorPadSettings, in_info: VideoInfo,
                    out_par_n: int = 1, out_par_d: int = 1,
                    zero_size_is_unscaled: bool = True) -> Tuple[int, int, int, int]:
    """Destination size of a pad and the padding offsets of its picture

    Args:
        settings: Pad placement
        in_info: Geometry of the pad's input frames
        out_par_n: Output pixel aspect ratio numerator
        out_par_d: Output pixel aspect ratio denominator
        zero_size_is_unscaled: width/height 0 means "input size"

    Returns:
        (width, height, x_offset, y_offset); width or height 0 when the pad
        cannot be placed
    """
    if zero_size_is_unscaled:
        pad_width = in_info.width if settings.width <= 0 else settings.width
        pad_height = in_info.height if settings.height <= 0 else settings.height
    else:
        pad_width = in_info.width if settings.width < 0 else settings.width
        pad_height = in_info.height if settings.height < 0 else settings.height

    if pad_width == 0 or pad_height == 0:
        return 0, 0, 0, 0

    try:
        dar = display_aspect_ratio(pad_width, pad_height, in_info.par_n, in_info.par_d,
                                   out_par_n, out_par_d)
    except ValueError:
        return 0, 0, 0, 0

    x_offset = y_offset = 0
    if settings.sizing_policy == SizingPolicy.NONE:
        if pad_height % dar.numerator == 0:
            pad_width = scale_int(pad_height, dar.numerator, dar.denominator)
        elif pad_width % dar.denominator == 0:
            pad_height = scale_int(pad_width, dar.denominator, dar.numerator)
        else:
            pad_width = scale_int(pad_height, dar.numerator, dar.denominator)
    else:
        from_dar = _fraction_or_none(in_info.width * in_info.par_n, in_info.height * in_info.par_d)
        to_dar = _fraction_or_none(pad_width * out_par_n, pad_height * out_par_d)
        if from_dar != to_dar:
            if from_dar is None:
                return 0, 0, 0, 0
            ratio = from_dar * Fraction(out_par_d, out_par_n)
            src_h = scale_int(pad_width, ratio.denominator, ratio.numerator)
            if src_h == 0:
                return 0, 0, 0, 0
            fitted = center_rect(pad_width, src_h, Rect(0, 0, pad_width, pad_height))
            x_offset, y_offset = fitted.x, fitted.y
            pad_width, pad_height = fitted.w, fitted.h

    return pad_width, pad_height, x_offset, y_offset


def pad_placement(settings: CompositorPadSettings, in_info: VideoInfo,
                  out_par_n: int = 1, out_par_d: int = 1,
                  zero_size_is_unscaled: bool = True) -> PadPlacement:
    width, height, x_offset, y_offset = pad_output_size(
        settings, in_info, out_par_n, out_par_d, zero_size_is_unscaled)
    rect = Rect(settings.xpos + x_offset, settings.ypos + y_offset, width, height)
    return PadPlacement(rect, x_offset, y_offset)


def pad_obscures(settings: CompositorPadSettings, in_info: VideoInfo,
                 placement: PadPlacement, rect: Rect) -> bool:
    """True when an opaque pad fully covers ``rect``

    Pads with global alpha below 1 or an alpha channel never obscure.
    """
    if settings.alpha != 1.0 or in_info.format.has_alpha:
        return False
    return is_rectangle_contained(rect, placement.rect)


# ============================================================================
# Frame planning
# ============================================================================

def _public_settings(pad) -> CompositorPadSettings:
    return pad.settings


def sort_by_zorder(pads: Sequence, settings_of=None) -> List:
    """Pads in drawing order (ties in unspecified order)

    Args:
        pads: Objects exposing pad settings
        settings_of: Returns a pad's CompositorPadSettings (``pad.settings``
            when omitted)
    """
    if settings_of is None:
        settings_of = _public_settings
    return sorted(pads, key=lambda pad: settings_of(pad).zorder)


def plan_composite(inputs: Sequence[Tuple[CompositorPadSettings, VideoInfo]],
                   out_info: VideoInfo, zero_size_is_unscaled: bool = True) -> CompositePlan:
    """Decide which pads to draw and whether the background is visible

    Args:
        inputs: (settings, input geometry) of every active pad, in z-order
        out_info: Output geometry
        zero_size_is_unscaled: See ``CompositorSettings``

    Returns:
        CompositePlan with the draws in z-order
    """
    out_w, out_h = out_info.width, out_info.height
    placements = [pad_placement(settings, info, out_info.par_n, out_info.par_d,
                                zero_size_is_unscaled)
                  for settings, info in inputs]

    draws = []
    for index, ((settings, info), placement) in enumerate(zip(inputs, placements)):
        if settings.alpha == 0.0:
            continue
        if placement.rect.is_empty:
            continue
        visible = clamp_rect(placement.rect, out_w, out_h)
        if visible.is_empty:
            continue
        covered = any(
            pad_obscures(above_settings, above_info, above_placement, visible)
            for (above_settings, above_info), above_placement
            in zip(inputs[index + 1:], placements[index + 1:])
        )
        if covered:
            continue
        draws.append(PadDraw(index, placement.rect, float(settings.alpha), settings.operator))

    full = Rect(0, 0, out_w, out_h)
    draw_background = not any(
        pad_obscures(inputs[d.index][0], inputs[d.index][1], placements[d.index], full)
        for d in draws
    )
    return CompositePlan(draw_background, draws)


def fixate_output_size(inputs: Sequence[Tuple[CompositorPadSettings, VideoInfo]],
                       out_par_n: int = 1, out_par_d: int = 1,
                       zero_size_is_unscaled: bool = True) -> Tuple[int, int]:
    """Smallest output that shows every pad

    Raises:
        ConfigurationError: No pad yields a usable size
    """
    best_width = best_height = -1
    for settings, info in inputs:
        width, height, x_offset, y_offset = pad_output_size(
            settings, info, out_par_n, out_par_d, zero_size_is_unscaled)
        if width == 0 or height == 0:
            continue
        best_width = max(best_width, width + max(settings.xpos + 2 * x_offset, 0))
        best_height = max(best_height, height + max(settings.ypos + 2 * y_offset, 0))
    if best_width <= 0 or best_height <= 0:
        raise ConfigurationError("No compositor input has a usable size")
    return best_width, best_height
