"""
Convert/Scale Engine - Imperative Shell

Any-format to any-format conversion with bilinear or nearest scaling and
optional letterboxing. The input is decoded by ``sample_video`` and drawn
into an RGBA target at output size; the shared encoder writes the output
format.
"""

import logging

from .convert_core import ConvertSettings, ScaleMethod, is_passthrough, letterbox_scale
from .core import unpack_argb
from .engine import FrameEngine, draw
from .shaders import build_fragment_shader, input_uniforms, sampler_kind

logger = logging.getLogger(__name__)


# ============================================================================
# Shader Source Code
# ============================================================================

# Quad shrunk around the center for letterboxing
SCALE_VERTEX_SHADER = """
#version 330

in vec2 in_position;
out vec2 v_texcoord;

uniform vec2 u_scale;

void main() {
    gl_Position = vec4(in_position * u_scale, 0.0, 1.0);
    v_texcoord = in_position * 0.5 + 0.5;
}
"""

CONVERT_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

void main() {
    f_color = sample_video(v_texcoord);
}
"""


class ConvertScaleEngine(FrameEngine):
    """Format conversion and scaling

    Example:
        engine = ConvertScaleEngine(method='nearest')
        engine.configure(VideoInfo('NV12', 1920, 1080), VideoInfo('RGBA', 640, 360))
        rgba = engine.process(frame)
    """

    settings_class = ConvertSettings
    stage = 'convertscale'

    def _build_pipeline(self, kind, method):
        fragment = build_fragment_shader(CONVERT_FRAGMENT_SHADER, kind,
                                         nearest=method == ScaleMethod.NEAREST)
        return self.gpu.pipeline(fragment, SCALE_VERTEX_SHADER)

    def _warm_pipelines(self, state):
        self._pipeline(sampler_kind(state.in_info.format), self.settings.method)

    def _is_passthrough(self, settings, state):
        return is_passthrough(state.in_info, state.out_info)

    def _render(self, state, settings, frame, textures):
        in_info, out_info = state.in_info, state.out_info
        pipeline = self._pipeline(sampler_kind(in_info.format), settings.method)
        fbo = state.framebuffers['main']
        fbo.use()
        if settings.add_borders:
            scale = letterbox_scale(in_info.width, in_info.height, out_info.width, out_info.height)
            fbo.clear(*unpack_argb(settings.border_color))
        else:
            scale = (1.0, 1.0)
            fbo.clear(0.0, 0.0, 0.0, 1.0)

        uniforms = input_uniforms(frame.info)
        uniforms['u_scale'] = scale
        draw(pipeline, fbo, uniforms)
