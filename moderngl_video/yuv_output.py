"""
Colorspace Codec Output - Imperative Shell

Writes an engine's RGBA render target into a caller frame.

RGBA-family outputs are read back directly. YUV outputs run encode passes,
one fragment per output texel:

    luma pass    → Y plane at full resolution
    chroma pass  → UV (NV12) or U + V (I420) at half resolution, each texel
                   the average of a 2x2 RGB block (edges clamped)
    packed pass  → one UYVY/YUY2 macropixel per texel: two lumas and the
                   average chroma of the pixel pair
"""

import logging
from typing import List, Optional

import moderngl
import numpy as np

from .errors import FrameProcessingError
from .frames import PixelFormat, VideoFrame, plane_layout
from .gpu_context import set_uniforms
from .shaders import build_fragment_shader

logger = logging.getLogger(__name__)


# ============================================================================
# Shader Source Code
# ============================================================================

ENCODE_COMMON_GLSL = """
uniform sampler2D u_source;
uniform int u_color_matrix;

vec3 source_rgb(ivec2 p) {
    ivec2 size = textureSize(u_source, 0);
    return texelFetch(u_source, clamp(p, ivec2(0), size - 1), 0).rgb;
}

vec3 block_average(ivec2 chroma_pos) {
    ivec2 base = chroma_pos * 2;
    return (source_rgb(base) + source_rgb(base + ivec2(1, 0))
            + source_rgb(base + ivec2(0, 1)) + source_rgb(base + ivec2(1, 1))) * 0.25;
}
"""

LUMA_FRAGMENT_SHADER = ENCODE_COMMON_GLSL + """
out vec4 f_color;

void main() {
    vec3 rgb = source_rgb(ivec2(gl_FragCoord.xy));
    f_color = vec4(rgb_to_yuv(rgb, u_color_matrix).x, 0.0, 0.0, 1.0);
}
"""

NV12_CHROMA_FRAGMENT_SHADER = ENCODE_COMMON_GLSL + """
out vec4 f_color;

void main() {
    vec3 yuv = rgb_to_yuv(block_average(ivec2(gl_FragCoord.xy)), u_color_matrix);
    f_color = vec4(yuv.y, yuv.z, 0.0, 1.0);
}
"""

I420_CHROMA_FRAGMENT_SHADER = ENCODE_COMMON_GLSL + """
layout(location = 0) out vec4 f_u;
layout(location = 1) out vec4 f_v;

void main() {
    vec3 yuv = rgb_to_yuv(block_average(ivec2(gl_FragCoord.xy)), u_color_matrix);
    f_u = vec4(yuv.y, 0.0, 0.0, 1.0);
    f_v = vec4(yuv.z, 0.0, 0.0, 1.0);
}
"""

PACKED_FRAGMENT_SHADER = ENCODE_COMMON_GLSL + """
out vec4 f_color;

void main() {
    ivec2 q = ivec2(gl_FragCoord.xy);
    int width = textureSize(u_source, 0).x;
    int x0 = q.x * 2;
    int x1 = min(x0 + 1, width - 1);
    vec3 yuv0 = rgb_to_yuv(source_rgb(ivec2(x0, q.y)), u_color_matrix);
    vec3 yuv1 = rgb_to_yuv(source_rgb(ivec2(x1, q.y)), u_color_matrix);
    vec2 chroma = (yuv0.yz + yuv1.yz) * 0.5;
#ifdef PACKED_UYVY
    f_color = vec4(chroma.x, yuv0.x, chroma.y, yuv1.x);
#else
    f_color = vec4(yuv0.x, chroma.x, yuv1.x, chroma.y);
#endif
}
"""


def read_texture_rows(texture, components: int) -> np.ndarray:
    """Read a uint8 texture back as (rows, row_bytes)"""
    width, height = texture.size
    data = texture.read(alignment=1)
    return np.frombuffer(data, dtype=np.uint8).reshape(height, width * components)


class YUVOutput:
    """Output encoder for one (width, height, format) configuration

    Side effects:
    - Allocates one render target per output plane for YUV formats
    - Compiles encode programs through the shared GPU context
    """

    def __init__(self, gpu):
        self.gpu = gpu
        self.width = 0
        self.height = 0
        self.format: Optional[PixelFormat] = None
        self._targets: List[moderngl.Texture] = []
        self._passes = []

    @property
    def configured(self) -> bool:
        return self.format is not None

    def configure(self, width: int, height: int, fmt: PixelFormat) -> None:
        """Allocate encode targets; a no-op for RGBA-family formats"""
        fmt = PixelFormat.parse(fmt)
        if (width, height, fmt) == (self.width, self.height, self.format):
            return
        self.release()
        self.width, self.height, self.format = width, height, fmt
        if fmt.is_rgb:
            return

        layout = plane_layout(fmt, width, height)
        with self.gpu.activate():
            self._targets = [self.gpu.texture((tw, th), comps, filtered=False)
                             for tw, th, comps in layout]
            if fmt.is_packed_422:
                defines = ['PACKED_UYVY'] if fmt == PixelFormat.UYVY else []
                self._passes = [(
                    self.gpu.pipeline(build_fragment_shader(PACKED_FRAGMENT_SHADER, defines=defines)),
                    self.gpu.ctx.framebuffer(color_attachments=[self._targets[0]]),
                )]
            else:
                chroma_source = (NV12_CHROMA_FRAGMENT_SHADER if fmt == PixelFormat.NV12
                                 else I420_CHROMA_FRAGMENT_SHADER)
                self._passes = [
                    (self.gpu.pipeline(build_fragment_shader(LUMA_FRAGMENT_SHADER)),
                     self.gpu.ctx.framebuffer(color_attachments=[self._targets[0]])),
                    (self.gpu.pipeline(build_fragment_shader(chroma_source)),
                     self.gpu.ctx.framebuffer(color_attachments=self._targets[1:])),
                ]
        logger.debug("YUV output configured: %dx%d %s", width, height, fmt.value)

    def encode(self, source: moderngl.Texture, color_matrix: int) -> List[np.ndarray]:
        """Run the encode passes over ``source`` and read every plane back

        Returns:
            Plane rows as (rows, row_bytes) uint8 arrays
        """
        with self.gpu.activate():
            if self.format.is_rgb:
                rows = read_texture_rows(source, 4)
                if self.format == PixelFormat.BGRA:
                    rows = rows.reshape(self.height, self.width, 4)[..., [2, 1, 0, 3]]
                return [rows.reshape(self.height, self.width * 4)]

            source.use(location=0)
            for pipeline, fbo in self._passes:
                set_uniforms(pipeline.program, {'u_source': 0, 'u_color_matrix': int(color_matrix)})
                fbo.use()
                pipeline.vao.render(moderngl.TRIANGLE_STRIP)
            layout = plane_layout(self.format, self.width, self.height)
            return [read_texture_rows(texture, comps)
                    for texture, (_, _, comps) in zip(self._targets, layout)]

    def write_frame(self, source: moderngl.Texture, out_frame: VideoFrame) -> VideoFrame:
        """Encode ``source`` into the planes of ``out_frame`` (strides honoured)

        Raises:
            FrameProcessingError: out_frame does not match the configuration
        """
        info = out_frame.info
        if (info.width, info.height, info.format) != (self.width, self.height, self.format):
            raise FrameProcessingError(
                f"Output frame {info.width}x{info.height} {info.format.value} does not match "
                f"encoder {self.width}x{self.height} {self.format.value if self.format else None}",
                stage='readback')
        for index, rows in enumerate(self.encode(source, info.color_matrix_index)):
            out_frame.write_plane(index, rows)
        return out_frame

    def release(self) -> None:
        """Free the encode targets"""
        if self._targets or self._passes:
            with self.gpu.activate():
                for _, fbo in self._passes:
                    fbo.release()
                for texture in self._targets:
                    texture.release()
        self._targets = []
        self._passes = []
        self.width = self.height = 0
        self.format = None
