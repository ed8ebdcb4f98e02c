"""
3-D LUT loading.

Two encodings are accepted:

- ``.cube`` text: ``LUT_3D_SIZE N`` followed by N³ ``r g b`` lines, red
  varying fastest, then green, then blue.
- ``.png`` image: N² tiles of N×N pixels laid out left-to-right,
  top-to-bottom. Tile b holds blue slice b; inside a tile x is red and y is
  green.

Both produce a float32 table indexed ``table[b, g, r] -> (r, g, b)``, which
is the memory order of an N×N×N GL texture with x = red.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from .errors import AssetLoadError

logger = logging.getLogger(__name__)

CUBE_MIN_SIZE = 2
CUBE_MAX_SIZE = 64
IMAGE_MAX_SIZE = 256

# Header keywords accepted and ignored in .cube files
CUBE_IGNORED_KEYWORDS = ('TITLE', 'DOMAIN_MIN', 'DOMAIN_MAX', 'LUT_1D_SIZE')


@dataclass(frozen=True)
class Lut3D:
    """Immutable parsed lookup table

    Attributes:
        size: Edge length N
        table: float32 array of shape (N, N, N, 3) indexed [b, g, r]
        source: File the table was read from (if any)
    """
    size: int
    table: np.ndarray
    source: Optional[str] = None


def identity_lut(size: int) -> Lut3D:
    """LUT mapping every color to itself"""
    ramp = np.linspace(0.0, 1.0, size, dtype=np.float32)
    b, g, r = np.meshgrid(ramp, ramp, ramp, indexing='ij')
    return Lut3D(size, np.stack([r, g, b], axis=-1))


def parse_cube_lut(text: str, source: Optional[str] = None) -> Lut3D:
    """Parse ``.cube`` text

    Raises:
        AssetLoadError: Missing/invalid size, unparseable line or wrong
            number of entries
    """
    size = None
    values = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith('#'):
            continue
        parts = line.split()
        keyword = parts[0].upper()
        if keyword == 'LUT_3D_SIZE':
            try:
                size = int(parts[1])
            except (IndexError, ValueError):
                raise AssetLoadError(f"line {line_number}: bad LUT_3D_SIZE", source) from None
            if not CUBE_MIN_SIZE <= size <= CUBE_MAX_SIZE:
                raise AssetLoadError(
                    f"LUT_3D_SIZE {size} outside [{CUBE_MIN_SIZE}, {CUBE_MAX_SIZE}]", source)
            continue
        if keyword in CUBE_IGNORED_KEYWORDS:
            continue
        if size is None:
            raise AssetLoadError(f"line {line_number}: table data before LUT_3D_SIZE", source)
        try:
            triplet = [float(v) for v in parts[:3]]
        except ValueError:
            raise AssetLoadError(f"line {line_number}: cannot parse {line!r}", source) from None
        if len(triplet) != 3:
            raise AssetLoadError(f"line {line_number}: expected 3 values", source)
        if len(values) < size ** 3:
            values.append(triplet)

    if size is None:
        raise AssetLoadError("no LUT_3D_SIZE declaration", source)
    if len(values) != size ** 3:
        raise AssetLoadError(f"expected {size ** 3} entries, found {len(values)}", source)
    table = np.array(values, dtype=np.float32).reshape(size, size, size, 3)
    return Lut3D(size, table, source)


def lut_from_image(pixels: np.ndarray, source: Optional[str] = None) -> Lut3D:
    """Reassemble a tiled 2-D LUT image

    Args:
        pixels: HxWx3 (or x4) uint8 image

    Raises:
        AssetLoadError: Pixel count is not a cube, or tiles do not fit
    """
    pixels = np.asarray(pixels)
    height, width = pixels.shape[:2]
    total = width * height
    size = next((s for s in range(2, IMAGE_MAX_SIZE + 1) if s ** 3 == total), None)
    if size is None:
        raise AssetLoadError(f"{width}x{height} image is not an N^3 LUT", source)
    tiles_per_row = width // size
    if tiles_per_row == 0:
        raise AssetLoadError(f"{width}px wide image cannot hold {size}px tiles", source)

    table = np.empty((size, size, size, 3), dtype=np.float32)
    for b in range(size):
        x0 = (b % tiles_per_row) * size
        y0 = (b // tiles_per_row) * size
        tile = pixels[y0:y0 + size, x0:x0 + size, :3]
        if tile.shape[:2] != (size, size):
            raise AssetLoadError(f"tile {b} falls outside the {width}x{height} image", source)
        table[b] = tile.astype(np.float32) / 255.0
    return Lut3D(size, table, source)


def load_lut_file(path: Union[str, Path]) -> Lut3D:
    """Load a ``.cube`` or ``.png`` LUT

    Raises:
        AssetLoadError: Unknown extension, unreadable or malformed file
    """
    path = Path(path)
    suffix = path.suffix.lower()
    try:
        if suffix == '.cube':
            lut = parse_cube_lut(path.read_text(), str(path))
        elif suffix == '.png':
            with Image.open(path) as image:
                lut = lut_from_image(np.asarray(image.convert('RGB')), str(path))
        else:
            raise AssetLoadError(f"unsupported LUT extension {suffix!r}", str(path))
    except (OSError, UnicodeDecodeError) as exc:
        raise AssetLoadError(f"cannot read LUT: {exc}", str(path)) from exc
    logger.info("Loaded %d^3 LUT from %s", lut.size, path)
    return lut
