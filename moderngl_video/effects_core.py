"""
Effects - Functional Core

Color grading parameters, their documented defaults and the mapping to
shader uniforms.

Order of operations in the grading pass:
    brightness → contrast → saturation → hue → gamma → sepia → invert
    → chroma key → vignette → noise → clamp → 3-D LUT
Sharpen/blur (sharpness ≠ 0) runs as extra passes afterwards.
"""

import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .core import check_range, unpack_argb
from .errors import ConfigurationError
from .lut import Lut3D

# Below this magnitude hue, sepia, vignette, noise and sharpness are off
EFFECT_EPSILON = 0.001

# 9-tap Gaussian used by the sharpen/blur passes
BLUR_WEIGHTS = (0.028532, 0.067234, 0.124009, 0.179044, 0.20236,
                0.179044, 0.124009, 0.067234, 0.028532)


@dataclass(frozen=True)
class EffectsSettings:
    """Color grading parameters

    Attributes:
        brightness: Added to every channel [-1, 1]
        contrast: Scale around mid-grey [0, 2]
        saturation: 0 = greyscale, 1 = unchanged [0, 2]
        hue: Rotation, ±1 maps to ±π [-1, 1]
        gamma: Exponent 1/gamma [0.01, 10]
        sharpness: >0 unsharp mask, <0 blur [-1, 1]
        sepia: Sepia mix amount [0, 1]
        invert: Invert RGB
        noise: Grain amount [0, 1]
        vignette: Edge darkening amount [0, 1]
        chroma_key_enabled: Key out ``chroma_key_color``
        chroma_key_color: ARGB32 key color
        chroma_key_tolerance: Distance fully keyed out [0, 1]
        chroma_key_smoothness: Soft edge width [0, 1]
        lut_path: .cube or .png 3-D LUT, None for no LUT
        lut: Table loaded from lut_path (or supplied directly)
    """
    brightness: float = 0.0
    contrast: float = 1.0
    saturation: float = 1.0
    hue: float = 0.0
    gamma: float = 1.0
    sharpness: float = 0.0
    sepia: float = 0.0
    invert: bool = False
    noise: float = 0.0
    vignette: float = 0.0
    chroma_key_enabled: bool = False
    chroma_key_color: int = 0xFF00FF00
    chroma_key_tolerance: float = 0.2
    chroma_key_smoothness: float = 0.1
    lut_path: Optional[str] = None
    lut: Optional[Lut3D] = field(default=None, compare=False, repr=False)

    def validate(self) -> 'EffectsSettings':
        """Check every parameter range

        Raises:
            ConfigurationError: First out-of-range parameter
        """
        check_range('brightness', self.brightness, -1.0, 1.0)
        check_range('contrast', self.contrast, 0.0, 2.0)
        check_range('saturation', self.saturation, 0.0, 2.0)
        check_range('hue', self.hue, -1.0, 1.0)
        check_range('gamma', self.gamma, 0.01, 10.0)
        check_range('sharpness', self.sharpness, -1.0, 1.0)
        check_range('sepia', self.sepia, 0.0, 1.0)
        check_range('noise', self.noise, 0.0, 1.0)
        check_range('vignette', self.vignette, 0.0, 1.0)
        check_range('chroma_key_tolerance', self.chroma_key_tolerance, 0.0, 1.0)
        check_range('chroma_key_smoothness', self.chroma_key_smoothness, 0.0, 1.0)
        if not 0 <= int(self.chroma_key_color) <= 0xFFFFFFFF:
            raise ConfigurationError(f"chroma_key_color {self.chroma_key_color:#x} is not ARGB32")
        return self

    @property
    def lut_size(self) -> int:
        return self.lut.size if self.lut is not None else 0


_DEFAULTS = EffectsSettings()
# Key details only matter while keying is enabled; the LUT is checked separately
_IGNORED_WHEN_DEFAULT = {'chroma_key_color', 'chroma_key_tolerance', 'chroma_key_smoothness',
                         'lut_path', 'lut'}


def is_identity(settings: EffectsSettings) -> bool:
    """True when the grading pass would leave every pixel unchanged"""
    for f in fields(EffectsSettings):
        if f.name in _IGNORED_WHEN_DEFAULT:
            continue
        if getattr(settings, f.name) != getattr(_DEFAULTS, f.name):
            return False
    return settings.lut is None


def needs_sharpen_pass(settings: EffectsSettings) -> bool:
    return abs(settings.sharpness) > EFFECT_EPSILON


def hue_radians(hue: float) -> float:
    return hue * math.pi


def grading_uniforms(settings: EffectsSettings, width: int, height: int,
                     frame_index: int) -> Dict[str, Any]:
    """Uniform values for the grading pass

    Args:
        settings: Current parameters
        width: Output width in pixels (noise hash coordinates)
        height: Output height in pixels
        frame_index: Frames processed so far (noise seed)
    """
    lut_size = settings.lut_size
    key_r, key_g, key_b, _ = unpack_argb(settings.chroma_key_color)
    return {
        'u_brightness': float(settings.brightness),
        'u_contrast': float(settings.contrast),
        'u_saturation': float(settings.saturation),
        'u_hue': hue_radians(settings.hue),
        'u_gamma': float(settings.gamma),
        'u_sepia': float(settings.sepia),
        'u_invert': int(bool(settings.invert)),
        'u_noise': float(settings.noise),
        'u_vignette': float(settings.vignette),
        'u_chroma_key_enabled': int(bool(settings.chroma_key_enabled)),
        'u_chroma_key_color': (key_r, key_g, key_b),
        'u_chroma_key_tolerance': float(settings.chroma_key_tolerance),
        'u_chroma_key_smoothness': float(settings.chroma_key_smoothness),
        'u_output_size': (float(width), float(height)),
        'u_frame_index': float(frame_index),
        'u_has_lut': int(lut_size > 0),
        'u_lut_size': float(max(lut_size, 1)),
    }
