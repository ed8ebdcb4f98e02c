"""
Tests for 3-D LUT loading (.cube text and tiled .png images)
"""

import numpy as np
import pytest
from PIL import Image

from .errors import AssetLoadError
from .lut import identity_lut, load_lut_file, lut_from_image, parse_cube_lut


def cube_text(size, transform=lambda r, g, b: (r, g, b), header=''):
    """Build .cube text, red varying fastest"""
    lines = [header, f'LUT_3D_SIZE {size}']
    for b in range(size):
        for g in range(size):
            for r in range(size):
                values = transform(r / (size - 1), g / (size - 1), b / (size - 1))
                lines.append(' '.join(f'{v:.6f}' for v in values))
    return '\n'.join(lines) + '\n'


def tiled_lut_image(size, tiles_per_row):
    """Identity LUT image in the tile layout the loader expects"""
    rows = -(-size // tiles_per_row)
    pixels = np.zeros((rows * size, tiles_per_row * size, 3), dtype=np.uint8)
    ramp = np.round(np.linspace(0, 255, size)).astype(np.uint8)
    for b in range(size):
        x0 = (b % tiles_per_row) * size
        y0 = (b // tiles_per_row) * size
        pixels[y0:y0 + size, x0:x0 + size, 0] = ramp[None, :]
        pixels[y0:y0 + size, x0:x0 + size, 1] = ramp[:, None]
        pixels[y0:y0 + size, x0:x0 + size, 2] = ramp[b]
    return pixels


class TestCubeParsing:

    def test_identity_cube_matches_identity_lut(self):
        lut = parse_cube_lut(cube_text(3))
        assert lut.size == 3
        np.testing.assert_allclose(lut.table, identity_lut(3).table, atol=1e-6)

    def test_red_varies_fastest(self):
        lut = parse_cube_lut(cube_text(2, lambda r, g, b: (r, 0.0, 0.0)))
        # table[b, g, r]
        assert lut.table[0, 0, 1, 0] == pytest.approx(1.0)
        assert lut.table[1, 0, 0, 0] == pytest.approx(0.0)

    def test_comments_and_header_keywords_are_ignored(self):
        header = '# comment\nTITLE "test"\nDOMAIN_MIN 0 0 0\nDOMAIN_MAX 1 1 1'
        lut = parse_cube_lut(cube_text(2, header=header))
        assert lut.size == 2

    def test_missing_size_raises(self):
        with pytest.raises(AssetLoadError, match='LUT_3D_SIZE'):
            parse_cube_lut('0 0 0\n1 1 1\n')

    def test_wrong_entry_count_raises(self):
        text = 'LUT_3D_SIZE 2\n' + '0 0 0\n' * 7
        with pytest.raises(AssetLoadError, match='expected 8'):
            parse_cube_lut(text)

    def test_garbage_line_raises(self):
        text = 'LUT_3D_SIZE 2\n0 0 zero\n'
        with pytest.raises(AssetLoadError, match='line 2'):
            parse_cube_lut(text)

    def test_size_out_of_range_raises(self):
        with pytest.raises(AssetLoadError):
            parse_cube_lut('LUT_3D_SIZE 1\n0 0 0\n')


class TestImageLuts:

    @pytest.mark.parametrize('size,tiles_per_row', [(4, 2), (4, 4), (9, 3)])
    def test_tiled_identity_image(self, size, tiles_per_row):
        lut = lut_from_image(tiled_lut_image(size, tiles_per_row))
        assert lut.size == size
        np.testing.assert_allclose(lut.table, identity_lut(size).table, atol=1 / 255)

    def test_non_cube_pixel_count_raises(self):
        with pytest.raises(AssetLoadError, match='N\\^3'):
            lut_from_image(np.zeros((10, 10, 3), dtype=np.uint8))


class TestLoadLutFile:

    def test_loads_cube_file(self, tmp_path):
        path = tmp_path / 'film.cube'
        path.write_text(cube_text(2, lambda r, g, b: (1 - r, 1 - g, 1 - b)))
        lut = load_lut_file(path)
        assert lut.source == str(path)
        assert lut.table[0, 0, 0].tolist() == pytest.approx([1.0, 1.0, 1.0])

    def test_loads_png_file(self, tmp_path):
        path = tmp_path / 'identity.png'
        Image.fromarray(tiled_lut_image(4, 4)).save(path)
        lut = load_lut_file(path)
        assert lut.size == 4

    def test_unknown_extension_raises(self, tmp_path):
        path = tmp_path / 'grade.3dl'
        path.write_text('')
        with pytest.raises(AssetLoadError, match='extension'):
            load_lut_file(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(AssetLoadError) as excinfo:
            load_lut_file(tmp_path / 'missing.cube')
        assert excinfo.value.path.endswith('missing.cube')
