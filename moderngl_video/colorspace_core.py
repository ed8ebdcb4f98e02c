"""
Colorspace Codec - Functional Core

Limited-range BT.601 / BT.709 conversion matrices and CPU reference
implementations of the GPU decode/encode paths.

The GLSL library used by every shader is generated from the same numpy
matrices (see ``colorspace_glsl``), so the CPU reference and the GPU agree.

Conventions:
    decode: rgb = clamp(YUV_TO_RGB @ (yuv - YUV_OFFSET), 0, 1)
    encode: yuv = clamp(RGB_TO_YUV @ rgb + YUV_OFFSET, 0, 1)
    Values are normalized floats; 8-bit storage rounds to nearest.
"""

from typing import Dict, List

import numpy as np

from .frames import ColorMatrix, PixelFormat, chroma_size


YUV_OFFSET = np.array([16.0 / 255.0, 128.0 / 255.0, 128.0 / 255.0], dtype=np.float32)

# Rows produce R, G, B from (Y, U, V)
YUV_TO_RGB: Dict[ColorMatrix, np.ndarray] = {
    ColorMatrix.BT601: np.array([
        [1.164383, 0.0, 1.596027],
        [1.164383, -0.391762, -0.812968],
        [1.164383, 2.017232, 0.0],
    ], dtype=np.float32),
    ColorMatrix.BT709: np.array([
        [1.164383, 0.0, 1.792741],
        [1.164383, -0.213249, -0.532909],
        [1.164383, 2.112402, 0.0],
    ], dtype=np.float32),
}

# Rows produce Y, U, V from (R, G, B)
RGB_TO_YUV: Dict[ColorMatrix, np.ndarray] = {
    ColorMatrix.BT601: np.array([
        [0.256788, 0.504129, 0.097906],
        [-0.148223, -0.290993, 0.439216],
        [0.439216, -0.367788, -0.071427],
    ], dtype=np.float32),
    ColorMatrix.BT709: np.array([
        [0.182586, 0.614231, 0.062007],
        [-0.100644, -0.338572, 0.439216],
        [0.439216, -0.398942, -0.040274],
    ], dtype=np.float32),
}


def matrix_for(colorimetry) -> ColorMatrix:
    """Resolve the colorimetry flag (1 = BT.709, anything else = BT.601)"""
    return ColorMatrix.BT709 if int(colorimetry) == 1 else ColorMatrix.BT601


# ============================================================================
# Per-pixel math
# ============================================================================

def yuv_to_rgb(yuv: np.ndarray, colorimetry=ColorMatrix.BT601) -> np.ndarray:
    """Decode normalized YUV (..., 3) to clamped RGB (..., 3)"""
    m = YUV_TO_RGB[matrix_for(colorimetry)]
    rgb = (np.asarray(yuv, dtype=np.float32) - YUV_OFFSET) @ m.T
    return np.clip(rgb, 0.0, 1.0)


def rgb_to_yuv(rgb: np.ndarray, colorimetry=ColorMatrix.BT601) -> np.ndarray:
    """Encode normalized RGB (..., 3) to clamped YUV (..., 3)"""
    m = RGB_TO_YUV[matrix_for(colorimetry)]
    yuv = np.asarray(rgb, dtype=np.float32) @ m.T + YUV_OFFSET
    return np.clip(yuv, 0.0, 1.0)


def to_unorm8(values: np.ndarray) -> np.ndarray:
    """Round normalized floats to 8-bit the way the GPU stores them"""
    return np.clip(np.floor(np.asarray(values) * 255.0 + 0.5), 0, 255).astype(np.uint8)


def from_unorm8(values: np.ndarray) -> np.ndarray:
    return np.asarray(values, dtype=np.float32) / 255.0


# ============================================================================
# CPU reference encode / decode
# ============================================================================

def _block_average(rgb: np.ndarray) -> np.ndarray:
    """Average every 2x2 block, replicating the last row/column for odd sizes"""
    height, width = rgb.shape[:2]
    cw, ch = chroma_size(width, height)
    xs = np.arange(cw) * 2
    ys = np.arange(ch) * 2
    x1 = np.minimum(xs + 1, width - 1)
    y1 = np.minimum(ys + 1, height - 1)
    return (rgb[ys][:, xs] + rgb[ys][:, x1] + rgb[y1][:, xs] + rgb[y1][:, x1]) * 0.25


def encode_planes(rgba: np.ndarray, fmt: PixelFormat,
                  colorimetry=ColorMatrix.BT601) -> List[np.ndarray]:
    """Reference encoder: HxWx4 RGBA uint8 → packed plane rows

    Returns the rows of each plane as (rows, row_bytes) uint8 arrays, in the
    layout produced by ``frames.plane_layout``.
    """
    fmt = PixelFormat.parse(fmt)
    rgba = np.asarray(rgba, dtype=np.uint8)
    height, width = rgba.shape[:2]
    if fmt == PixelFormat.RGBA:
        return [rgba.reshape(height, width * 4).copy()]
    if fmt == PixelFormat.BGRA:
        return [rgba[..., [2, 1, 0, 3]].reshape(height, width * 4).copy()]

    rgb = from_unorm8(rgba[..., :3])
    if fmt.is_packed_422:
        pairs = (width + 1) // 2
        x0 = np.arange(pairs) * 2
        x1 = np.minimum(x0 + 1, width - 1)
        yuv0 = rgb_to_yuv(rgb[:, x0], colorimetry)
        yuv1 = rgb_to_yuv(rgb[:, x1], colorimetry)
        u = (yuv0[..., 1] + yuv1[..., 1]) * 0.5
        v = (yuv0[..., 2] + yuv1[..., 2]) * 0.5
        if fmt == PixelFormat.UYVY:
            packed = np.stack([u, yuv0[..., 0], v, yuv1[..., 0]], axis=-1)
        else:
            packed = np.stack([yuv0[..., 0], u, yuv1[..., 0], v], axis=-1)
        return [to_unorm8(packed).reshape(height, pairs * 4)]

    luma = to_unorm8(rgb_to_yuv(rgb, colorimetry)[..., 0])
    chroma = rgb_to_yuv(_block_average(rgb), colorimetry)
    ch, cw = chroma.shape[:2]
    if fmt == PixelFormat.NV12:
        return [luma, to_unorm8(chroma[..., 1:3]).reshape(ch, cw * 2)]
    return [luma, to_unorm8(chroma[..., 1]), to_unorm8(chroma[..., 2])]


def decode_planes(planes: List[np.ndarray], fmt: PixelFormat, width: int, height: int,
                  colorimetry=ColorMatrix.BT601) -> np.ndarray:
    """Reference decoder: plane rows → HxWx4 RGBA uint8

    Chroma is sampled nearest-neighbour; alpha is opaque for YUV input.
    """
    fmt = PixelFormat.parse(fmt)
    if fmt.is_rgb:
        pixels = np.asarray(planes[0], dtype=np.uint8).reshape(height, width, 4)
        if fmt == PixelFormat.BGRA:
            pixels = pixels[..., [2, 1, 0, 3]]
        return pixels.copy()

    ys = np.arange(height)
    xs = np.arange(width)
    if fmt.is_packed_422:
        texels = from_unorm8(np.asarray(planes[0]).reshape(height, -1, 4))
        macro = texels[:, xs // 2]
        odd = (xs % 2 == 1)[None, :]
        if fmt == PixelFormat.UYVY:
            luma = np.where(odd, macro[..., 3], macro[..., 1])
            u, v = macro[..., 0], macro[..., 2]
        else:
            luma = np.where(odd, macro[..., 2], macro[..., 0])
            u, v = macro[..., 1], macro[..., 3]
        yuv = np.stack([luma, u, v], axis=-1)
    else:
        cw, ch = chroma_size(width, height)
        luma = from_unorm8(np.asarray(planes[0]).reshape(height, width))
        if fmt == PixelFormat.NV12:
            uv = from_unorm8(np.asarray(planes[1]).reshape(ch, cw, 2))
            u, v = uv[..., 0], uv[..., 1]
        else:
            u = from_unorm8(np.asarray(planes[1]).reshape(ch, cw))
            v = from_unorm8(np.asarray(planes[2]).reshape(ch, cw))
        grid = np.ix_(ys // 2, xs // 2)
        yuv = np.stack([luma, u[grid], v[grid]], axis=-1)

    rgb = yuv_to_rgb(yuv, colorimetry)
    alpha = np.ones(rgb.shape[:2] + (1,), dtype=np.float32)
    return to_unorm8(np.concatenate([rgb, alpha], axis=-1))


# ============================================================================
# GLSL generation
# ============================================================================

def glsl_vec3(values) -> str:
    return 'vec3({:.6f}, {:.6f}, {:.6f})'.format(*(float(v) for v in values))


def glsl_mat3(matrix: np.ndarray) -> str:
    """GLSL mat3 literal for ``matrix`` (GLSL constructors are column-major)"""
    columns = ', '.join(glsl_vec3(matrix[:, c]) for c in range(3))
    return f'mat3({columns})'


def colorspace_glsl() -> str:
    """Shared GLSL helpers: matrix constants plus yuv_to_rgb / rgb_to_yuv"""
    return f"""
const vec3 YUV_OFFSET = {glsl_vec3(YUV_OFFSET)};
const mat3 BT601_YUV_TO_RGB = {glsl_mat3(YUV_TO_RGB[ColorMatrix.BT601])};
const mat3 BT709_YUV_TO_RGB = {glsl_mat3(YUV_TO_RGB[ColorMatrix.BT709])};
const mat3 BT601_RGB_TO_YUV = {glsl_mat3(RGB_TO_YUV[ColorMatrix.BT601])};
const mat3 BT709_RGB_TO_YUV = {glsl_mat3(RGB_TO_YUV[ColorMatrix.BT709])};

vec3 yuv_to_rgb(vec3 yuv, int color_matrix) {{
    mat3 m = color_matrix == 1 ? BT709_YUV_TO_RGB : BT601_YUV_TO_RGB;
    return clamp(m * (yuv - YUV_OFFSET), 0.0, 1.0);
}}

vec3 rgb_to_yuv(vec3 rgb, int color_matrix) {{
    mat3 m = color_matrix == 1 ? BT709_RGB_TO_YUV : BT601_RGB_TO_YUV;
    return clamp(m * rgb + YUV_OFFSET, 0.0, 1.0);
}}
"""
