"""
Shared pytest fixtures

GPU tests request the ``gpu`` fixture and are skipped on hosts without an
OpenGL 3.3 context (headless CI without EGL, for example).
"""

import numpy as np
import pytest

from .errors import ConfigurationError
from .frames import PixelFormat, VideoFrame
from .gpu_context import GPUContext


@pytest.fixture(scope='session')
def gpu():
    """Process-wide GPU context, or skip"""
    try:
        return GPUContext.shared()
    except ConfigurationError as exc:
        pytest.skip(f"No OpenGL 3.3 context: {exc}")


def solid_frame(width, height, rgba, fmt=PixelFormat.BGRA):
    """Frame filled with one RGBA color"""
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[...] = rgba
    return VideoFrame.from_rgba(pixels, fmt)


def gradient_pixels(width, height, seed=0):
    """Smooth RGBA test image with opaque alpha"""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width)[None, :]
    y = np.linspace(0, 255, height)[:, None]
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = np.clip(x + 0 * y, 0, 255)
    pixels[..., 1] = np.clip(y + 0 * x, 0, 255)
    pixels[..., 2] = rng.integers(0, 256, size=(height, width))
    pixels[..., 3] = 255
    return pixels


@pytest.fixture
def make_solid_frame():
    return solid_frame


@pytest.fixture
def make_gradient():
    return gradient_pixels
