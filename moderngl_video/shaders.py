"""
Shared GLSL Library

Shader source assembled at link time:

    #version 330
    #defines for the variant (sampling mode, packed layout)
    colorspace helpers (generated from colorspace_core matrices)
    sample_video(uv) for the input format
    engine-specific fragment body

Every engine fragment body reads its input through ``sample_video(uv)`` so
one body serves all pixel formats. Texture coordinates are top-down: uv.y = 0
is image row 0.
"""

import enum
from typing import Dict, Optional

from .colorspace_core import colorspace_glsl
from .frames import PixelFormat

GLSL_VERSION = "#version 330\n"


class SamplerKind(enum.Enum):
    """Shader input family; BGRA shares RGBA through texture swizzle"""
    RGBA = 'rgba'
    NV12 = 'nv12'
    I420 = 'i420'
    UYVY = 'uyvy'
    YUY2 = 'yuy2'


def sampler_kind(fmt: PixelFormat) -> SamplerKind:
    fmt = PixelFormat.parse(fmt)
    if fmt.is_rgb:
        return SamplerKind.RGBA
    return SamplerKind[fmt.name]


# ============================================================================
# Vertex shaders
# ============================================================================

# Full-screen quad, texture coordinates follow framebuffer rows
FULLSCREEN_VERTEX_SHADER = """
#version 330

in vec2 in_position;
out vec2 v_texcoord;

void main() {
    gl_Position = vec4(in_position, 0.0, 1.0);
    v_texcoord = in_position * 0.5 + 0.5;
}
"""


# ============================================================================
# Input sampling
# ============================================================================

PLANE_SAMPLING_GLSL = """
uniform sampler2D u_plane0;
uniform sampler2D u_plane1;
uniform sampler2D u_plane2;
uniform int u_color_matrix;
uniform vec2 u_frame_size;

vec4 fetch_nearest(sampler2D tex, vec2 uv) {
    ivec2 size = textureSize(tex, 0);
    ivec2 p = clamp(ivec2(floor(uv * vec2(size))), ivec2(0), size - 1);
    return texelFetch(tex, p, 0);
}

vec4 sample_plane(sampler2D tex, vec2 uv) {
#ifdef NEAREST_SAMPLING
    return fetch_nearest(tex, uv);
#else
    return texture(tex, uv);
#endif
}
"""

SAMPLE_VIDEO_GLSL: Dict[SamplerKind, str] = {
    SamplerKind.RGBA: """
vec4 sample_video(vec2 uv) {
    return sample_plane(u_plane0, uv);
}
""",
    SamplerKind.NV12: """
vec4 sample_video(vec2 uv) {
    float y = sample_plane(u_plane0, uv).r;
    vec2 uv_chroma = sample_plane(u_plane1, uv).rg;
    return vec4(yuv_to_rgb(vec3(y, uv_chroma), u_color_matrix), 1.0);
}
""",
    SamplerKind.I420: """
vec4 sample_video(vec2 uv) {
    float y = sample_plane(u_plane0, uv).r;
    float u = sample_plane(u_plane1, uv).r;
    float v = sample_plane(u_plane2, uv).r;
    return vec4(yuv_to_rgb(vec3(y, u, v), u_color_matrix), 1.0);
}
""",
}

# Packed 4:2:2: one RGBA texel per macropixel, always fetched unfiltered
PACKED_422_SAMPLE_GLSL = """
vec4 sample_video(vec2 uv) {
    ivec2 size = textureSize(u_plane0, 0);
    float pixel_x = clamp(uv.x, 0.0, 1.0) * u_frame_size.x;
    int macro_x = clamp(int(floor(pixel_x * 0.5)), 0, size.x - 1);
    int sub = clamp(int(floor(pixel_x)) - macro_x * 2, 0, 1);
    int row = clamp(int(floor(uv.y * float(size.y))), 0, size.y - 1);
    vec4 texel = texelFetch(u_plane0, ivec2(macro_x, row), 0);
#ifdef PACKED_UYVY
    vec3 yuv = vec3(sub == 0 ? texel.g : texel.a, texel.r, texel.b);
#else
    vec3 yuv = vec3(sub == 0 ? texel.r : texel.b, texel.g, texel.a);
#endif
    return vec4(yuv_to_rgb(yuv, u_color_matrix), 1.0);
}
"""
SAMPLE_VIDEO_GLSL[SamplerKind.UYVY] = PACKED_422_SAMPLE_GLSL
SAMPLE_VIDEO_GLSL[SamplerKind.YUY2] = PACKED_422_SAMPLE_GLSL


def _defines(names) -> str:
    return ''.join(f"#define {name}\n" for name in names)


def build_fragment_shader(body: str, kind: Optional[SamplerKind] = None,
                          nearest: bool = False, defines=()) -> str:
    """Assemble a complete fragment shader

    Args:
        body: Engine fragment code (uniforms, outputs, main)
        kind: Input family; None omits the sample_video helpers
        nearest: Compile the unfiltered sampling variant
        defines: Extra preprocessor symbols

    Returns:
        GLSL 3.30 source ready for GPUContext.compile
    """
    names = list(defines)
    if nearest:
        names.append('NEAREST_SAMPLING')
    if kind == SamplerKind.UYVY:
        names.append('PACKED_UYVY')
    parts = [GLSL_VERSION, _defines(names), colorspace_glsl()]
    if kind is not None:
        parts.append(PLANE_SAMPLING_GLSL)
        parts.append(SAMPLE_VIDEO_GLSL[kind])
    parts.append(body)
    return ''.join(parts)


def input_uniforms(frame_info) -> Dict[str, object]:
    """Uniform values that accompany sample_video for one input frame

    Plane i is expected on texture unit i.
    """
    return {
        'u_plane0': 0,
        'u_plane1': 1,
        'u_plane2': 2,
        'u_color_matrix': frame_info.color_matrix_index,
        'u_frame_size': (float(frame_info.width), float(frame_info.height)),
    }
