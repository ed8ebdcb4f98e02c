"""
Unit tests for shared geometry helpers

Pure functions only - no GPU.
"""

import pytest

from .core import (
    Rect,
    center_rect,
    check_range,
    clamp_rect,
    coerce_enum,
    display_aspect_ratio,
    is_rectangle_contained,
    rect_to_ndc,
    scale_int,
    unpack_argb,
)
from .deinterlace_core import DeinterlaceMethod, FieldLayout
from .errors import ConfigurationError
from .transform_core import Orientation


class TestCoerceEnum:
    """Members, int values and nicks all resolve"""

    def test_member_passes_through(self):
        assert coerce_enum(Orientation, Orientation.ROTATE_180) is Orientation.ROTATE_180

    def test_int_value(self):
        assert coerce_enum(DeinterlaceMethod, 3) is DeinterlaceMethod.GREEDYH

    def test_nick_and_name_spellings(self):
        assert coerce_enum(Orientation, '90r') is Orientation.ROTATE_90R
        assert coerce_enum(Orientation, 'HORIZONTAL_FLIP') is Orientation.HORIZONTAL_FLIP
        assert coerce_enum(Orientation, 'horizontal-flip') is Orientation.HORIZONTAL_FLIP
        assert coerce_enum(FieldLayout, 'bff') is FieldLayout.BOTTOM_FIRST

    @pytest.mark.parametrize('value', [99, 'sideways', True, 1.5])
    def test_invalid_values_raise(self, value):
        with pytest.raises(ConfigurationError):
            coerce_enum(Orientation, value)


class TestParameterHelpers:

    def test_check_range_is_inclusive(self):
        check_range('alpha', 0.0, 0.0, 1.0)
        check_range('alpha', 1.0, 0.0, 1.0)
        with pytest.raises(ConfigurationError, match='alpha'):
            check_range('alpha', 1.01, 0.0, 1.0)

    def test_unpack_argb(self):
        r, g, b, a = unpack_argb(0x80FF0000)
        assert (r, g, b) == (1.0, 0.0, 0.0)
        assert a == pytest.approx(128 / 255)


# ============================================================================
# Rectangles
# ============================================================================

class TestRectangles:

    def test_containment(self):
        outer = Rect(0, 0, 100, 100)
        assert is_rectangle_contained(Rect(10, 10, 20, 20), outer)
        assert is_rectangle_contained(outer, outer)
        assert not is_rectangle_contained(Rect(90, 90, 20, 20), outer)

    def test_clamp_rect_to_frame(self):
        assert clamp_rect(Rect(-10, 5, 30, 200), 100, 100) == Rect(0, 5, 20, 95)
        assert clamp_rect(Rect(150, 0, 10, 10), 100, 100).is_empty

    def test_center_rect_letterbox(self):
        # 16:9 into a square: full width, centered vertically
        assert center_rect(1600, 900, Rect(0, 0, 100, 100)) == Rect(0, 22, 100, 56)

    def test_center_rect_pillarbox(self):
        assert center_rect(50, 100, Rect(10, 0, 100, 100)) == Rect(35, 0, 50, 100)

    def test_center_rect_same_ratio_returns_destination(self):
        dst = Rect(5, 5, 40, 20)
        assert center_rect(4, 2, dst) == dst

    def test_rect_to_ndc_top_rows_map_to_negative_y(self):
        x0, y0, x1, y1 = rect_to_ndc(Rect(0, 0, 50, 25), 100, 100)
        assert (x0, y0) == (-1.0, -1.0)
        assert x1 == pytest.approx(0.0)
        assert y1 == pytest.approx(-0.5)


class TestAspectRatio:

    def test_square_pixels(self):
        assert display_aspect_ratio(1920, 1080, 1, 1) == pytest.approx(16 / 9)

    def test_anamorphic_pixels(self):
        # DV NTSC widescreen
        dar = display_aspect_ratio(720, 480, 40, 33)
        assert dar.numerator / dar.denominator == pytest.approx(720 * 40 / (480 * 33))

    def test_zero_size_raises(self):
        with pytest.raises(ValueError):
            display_aspect_ratio(0, 480, 1, 1)

    def test_scale_int_truncates(self):
        assert scale_int(10, 2, 3) == 6
