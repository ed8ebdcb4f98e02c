"""
Overlay - Functional Core

Overlay placement and image loading. The image is decoded once with Pillow
into a straight (non-premultiplied) RGBA8 array that lives inside the
immutable settings snapshot.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .core import check_range
from .errors import AssetLoadError, ConfigurationError

logger = logging.getLogger(__name__)

RELATIVE_DISABLED = -1.0


@dataclass(frozen=True)
class OverlaySettings:
    """Overlay image placement

    Attributes:
        image_path: PNG/JPEG (any Pillow format) to overlay, None for none
        x: Left edge in pixels
        y: Top edge in pixels
        width: Drawn width, 0 for the image's own width
        height: Drawn height, 0 for the image's own height
        alpha: Global opacity [0, 1]
        relative_x: Left edge as a fraction of the frame width; negative
            disables it in favour of ``x``
        relative_y: Top edge as a fraction of the frame height; negative
            disables it in favour of ``y``
        image: Decoded HxWx4 uint8 image (loaded from image_path)
    """
    image_path: Optional[str] = None
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    alpha: float = 1.0
    relative_x: float = RELATIVE_DISABLED
    relative_y: float = RELATIVE_DISABLED
    image: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    def validate(self) -> 'OverlaySettings':
        for name in ('x', 'y', 'width', 'height'):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name}={getattr(self, name)} must be >= 0")
        check_range('alpha', self.alpha, 0.0, 1.0)
        check_range('relative_x', self.relative_x, -1.0, 1.0)
        check_range('relative_y', self.relative_y, -1.0, 1.0)
        if self.image is not None:
            image = self.image
            if image.dtype != np.uint8 or image.ndim != 3 or image.shape[2] != 4:
                raise ConfigurationError(f"Overlay image must be HxWx4 uint8, got {image.shape}")
        return self

    @property
    def has_image(self) -> bool:
        return self.image is not None and self.image.size > 0


@dataclass(frozen=True)
class OverlayRect:
    """Overlay destination in (fractional) frame pixels"""
    x: float
    y: float
    w: float
    h: float

    def is_visible(self, frame_w: int, frame_h: int) -> bool:
        """True when the rectangle overlaps the frame"""
        if self.w <= 0 or self.h <= 0:
            return False
        return (self.x < frame_w and self.y < frame_h
                and self.x + self.w > 0 and self.y + self.h > 0)


def resolve_overlay_rect(settings: OverlaySettings, frame_w: int, frame_h: int,
                         image_w: int, image_h: int) -> OverlayRect:
    """Where the overlay lands in a frame of the given size

    Relative coordinates (>= 0) override the absolute ones.
    """
    x = settings.relative_x * frame_w if settings.relative_x >= 0.0 else float(settings.x)
    y = settings.relative_y * frame_h if settings.relative_y >= 0.0 else float(settings.y)
    w = float(settings.width if settings.width > 0 else image_w)
    h = float(settings.height if settings.height > 0 else image_h)
    return OverlayRect(x, y, w, h)


def load_overlay_image(path: Union[str, Path]) -> np.ndarray:
    """Decode an image file into straight HxWx4 RGBA uint8

    Raises:
        AssetLoadError: Missing, unreadable or undecodable file
    """
    try:
        with Image.open(path) as image:
            pixels = np.array(image.convert('RGBA'), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as exc:
        raise AssetLoadError(f"cannot decode overlay image: {exc}", str(path)) from exc
    if pixels.size == 0:
        raise AssetLoadError("overlay image is empty", str(path))
    logger.info("Loaded %dx%d overlay image from %s", pixels.shape[1], pixels.shape[0], path)
    return pixels
