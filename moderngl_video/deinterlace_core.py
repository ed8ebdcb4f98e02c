"""
Deinterlace - Functional Core

Method/field-order selection for the deinterlace engine. The per-pixel work
runs on the GPU; these functions decide which kernel runs and with which
field parity.
"""

import enum
from dataclasses import dataclass

from .core import check_range, coerce_enum


class DeinterlaceMethod(enum.IntEnum):
    """Interlacing removal algorithm (values are the shader method ids)"""
    BOB = 0
    WEAVE = 1
    LINEAR = 2
    GREEDYH = 3

    @property
    def nick(self) -> str:
        return self.name.lower()

    @property
    def needs_history(self) -> bool:
        return self in (DeinterlaceMethod.WEAVE, DeinterlaceMethod.GREEDYH)


class FieldLayout(enum.IntEnum):
    AUTO = 0
    TOP_FIRST = 1
    BOTTOM_FIRST = 2

    @property
    def nick(self) -> str:
        return {0: 'auto', 1: 'tff', 2: 'bff'}[self.value]


@dataclass(frozen=True)
class DeinterlaceSettings:
    """Deinterlace parameters

    Attributes:
        method: Algorithm
        fields: Field order, or AUTO to follow each frame's flag
        motion_threshold: Greedy-H motion cut-off in normalized RGB distance
    """
    method: DeinterlaceMethod = DeinterlaceMethod.BOB
    fields: FieldLayout = FieldLayout.AUTO
    motion_threshold: float = 0.1

    def __post_init__(self):
        object.__setattr__(self, 'method', coerce_enum(DeinterlaceMethod, self.method))
        object.__setattr__(self, 'fields', coerce_enum(FieldLayout, self.fields))

    def validate(self) -> 'DeinterlaceSettings':
        check_range('motion_threshold', self.motion_threshold, 0.0, 1.0)
        return self


def resolve_top_field_first(layout: FieldLayout, frame_top_field_first: bool) -> bool:
    """Field order for one frame"""
    if layout == FieldLayout.TOP_FIRST:
        return True
    if layout == FieldLayout.BOTTOM_FIRST:
        return False
    return bool(frame_top_field_first)


def effective_method(method: DeinterlaceMethod, has_history: bool) -> DeinterlaceMethod:
    """History-based methods fall back to bob until a previous frame exists"""
    if method.needs_history and not has_history:
        return DeinterlaceMethod.BOB
    return method


def is_kept_row(row: int, top_field_first: bool) -> bool:
    """True when ``row`` belongs to the field copied through unchanged"""
    is_top = row % 2 == 0
    return is_top if top_field_first else not is_top
