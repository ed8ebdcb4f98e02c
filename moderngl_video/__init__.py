"""
ModernGL Video Package

GPU video frame processing using functional core, imperative shell pattern.

Modules:
- frames, core, *_core, lut: Pure data model and geometry (no GPU)
- colorspace_core, shaders: YUV math shared by the CPU reference and GLSL
- gpu_context, texture_cache, yuv_output: Shared GPU plumbing
- engine: Common configure/update/process lifecycle
- compositor, deinterlace, effects, transform, convertscale, overlay:
  One engine per operation (imperative side effects)
"""

from .errors import (
    VideoEngineError,
    ConfigurationError,
    CompileFailed,
    FrameProcessingError,
    AssetLoadError,
)

from .frames import (
    # Frame data model
    PixelFormat,
    ColorMatrix,
    VideoInfo,
    VideoFrame,
    plane_layout,
)

from .colorspace_core import (
    # CPU reference codec
    yuv_to_rgb,
    rgb_to_yuv,
    encode_planes,
    decode_planes,
)

from .composite_core import (
    BlendOperator,
    SizingPolicy,
    Background,
    CompositorPadSettings,
    CompositorSettings,
)
from .convert_core import ScaleMethod, ConvertSettings
from .deinterlace_core import DeinterlaceMethod, FieldLayout, DeinterlaceSettings
from .effects_core import EffectsSettings
from .lut import Lut3D, load_lut_file, parse_cube_lut
from .overlay_core import OverlaySettings, load_overlay_image
from .transform_core import Orientation, TransformSettings

from .gpu_context import GPUContext
from .texture_cache import TextureCache
from .yuv_output import YUVOutput
from .timing import FrameTimings

from .compositor import CompositorEngine, CompositorPad
from .convertscale import ConvertScaleEngine
from .deinterlace import DeinterlaceEngine
from .effects import EffectsEngine
from .overlay import OverlayEngine
from .transform import TransformEngine

__all__ = [
    # Errors
    'VideoEngineError',
    'ConfigurationError',
    'CompileFailed',
    'FrameProcessingError',
    'AssetLoadError',

    # Frames
    'PixelFormat',
    'ColorMatrix',
    'VideoInfo',
    'VideoFrame',
    'plane_layout',

    # Colorspace
    'yuv_to_rgb',
    'rgb_to_yuv',
    'encode_planes',
    'decode_planes',

    # Settings
    'BlendOperator',
    'SizingPolicy',
    'Background',
    'CompositorPadSettings',
    'CompositorSettings',
    'ScaleMethod',
    'ConvertSettings',
    'DeinterlaceMethod',
    'FieldLayout',
    'DeinterlaceSettings',
    'EffectsSettings',
    'Lut3D',
    'load_lut_file',
    'parse_cube_lut',
    'OverlaySettings',
    'load_overlay_image',
    'Orientation',
    'TransformSettings',

    # GPU
    'GPUContext',
    'TextureCache',
    'YUVOutput',
    'FrameTimings',

    # Engines
    'CompositorEngine',
    'CompositorPad',
    'ConvertScaleEngine',
    'DeinterlaceEngine',
    'EffectsEngine',
    'OverlayEngine',
    'TransformEngine',
]
