"""
Tests for the command-line front end
"""

import argparse

import numpy as np
import pytest
from PIL import Image

from .cli import (
    build_parser,
    main,
    overlay_position_settings,
    parse_crop,
    parse_effect_assignments,
    parse_position,
    parse_size,
)


# ============================================================================
# LEVEL 1: Argument parsing
# ============================================================================

class TestEffectAssignments:

    def test_typed_values(self):
        result = parse_effect_assignments(['saturation=0', 'invert=yes', 'chroma_key_color=0xFF00FF00'])
        assert result == {'saturation': 0.0, 'invert': True, 'chroma_key_color': 0xFF00FF00}

    def test_dashes_become_underscores(self):
        assert parse_effect_assignments(['chroma-key-enabled=on']) == {'chroma_key_enabled': True}

    @pytest.mark.parametrize('pair', ['warmth=1', 'saturation', 'lut_path=x.cube'])
    def test_unknown_names_raise(self, pair):
        with pytest.raises(ValueError):
            parse_effect_assignments([pair])

    def test_bad_boolean_raises(self):
        with pytest.raises(ValueError):
            parse_effect_assignments(['invert=maybe'])


class TestValueParsers:

    def test_size(self):
        assert parse_size('640x360') == (640, 360)
        with pytest.raises(argparse.ArgumentTypeError):
            parse_size('640')

    def test_crop(self):
        assert parse_crop('1,2,3,4') == (1, 2, 3, 4)
        with pytest.raises(argparse.ArgumentTypeError):
            parse_crop('1,2')

    def test_position(self):
        assert parse_position('0.5,0.25') == (0.5, 0.25)
        with pytest.raises(argparse.ArgumentTypeError):
            parse_position('left,top')

    def test_overlay_position_fractions_are_relative(self):
        assert overlay_position_settings((0.9, 0.05)) == {'relative_x': 0.9, 'relative_y': 0.05}
        assert overlay_position_settings((20, 10)) == {'x': 20, 'y': 10}
        assert overlay_position_settings(None) == {}

    def test_parser_defaults(self):
        args = build_parser().parse_args(['in.png', 'out.png'])
        assert args.format == 'RGBA'
        assert args.effects == []
        assert args.overlay_alpha == 1.0
        assert args.scale is None


# ============================================================================
# LEVEL 2: End to end (GPU)
# ============================================================================

@pytest.fixture
def red_png(tmp_path):
    path = tmp_path / 'red.png'
    Image.new('RGBA', (8, 4), (255, 0, 0, 255)).save(path)
    return path


def read_png(path):
    with Image.open(path) as image:
        return np.array(image.convert('RGBA'))


class TestMain:

    def test_effects_and_rotation(self, gpu, red_png, tmp_path):
        out = tmp_path / 'out.png'
        assert main([str(red_png), str(out), '--effects', 'invert=true', '--transform', '90r']) == 0

        pixels = read_png(out)
        assert pixels.shape == (8, 4, 4)
        assert np.abs(pixels[0, 0, :3].astype(int) - [0, 255, 255]).max() <= 1

    def test_yuv_working_format_with_scaling(self, gpu, red_png, tmp_path):
        out = tmp_path / 'out.png'
        assert main([str(red_png), str(out), '--format', 'NV12', '--scale', '4x2']) == 0

        pixels = read_png(out).astype(int)
        assert pixels.shape == (2, 4, 4)
        assert np.abs(pixels[..., :3] - [255, 0, 0]).max() <= 3

    def test_missing_input_fails(self, gpu, tmp_path):
        assert main([str(tmp_path / 'none.png'), str(tmp_path / 'out.png')]) == 1

    def test_unknown_effect_fails(self, gpu, red_png, tmp_path):
        assert main([str(red_png), str(tmp_path / 'out.png'), '--effects', 'warmth=2']) == 1
