"""
Deinterlace Engine - Imperative Shell

Three passes per frame:
1. Decode the input into an RGBA 'input' target (unfiltered)
2. Deinterlace 'input' (+ 'previous') into 'main'
3. GPU copy of 'input' into 'previous' so history is one frame behind

History is invalid after every (re)configure until one frame completed.
"""

import logging

import moderngl

from .deinterlace_core import (
    DeinterlaceMethod,
    DeinterlaceSettings,
    effective_method,
    resolve_top_field_first,
)
from .engine import FrameEngine, draw
from .errors import ConfigurationError
from .shaders import build_fragment_shader, input_uniforms, sampler_kind

logger = logging.getLogger(__name__)

# Texture units above the input planes
CURRENT_UNIT = 4
PREVIOUS_UNIT = 5


# ============================================================================
# Shader Source Code
# ============================================================================

DECODE_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

void main() {
    f_color = sample_video(v_texcoord);
}
"""

DEINTERLACE_FRAGMENT_SHADER = """
out vec4 f_color;

uniform sampler2D u_current;
uniform sampler2D u_previous;
uniform int u_method;
uniform int u_top_field_first;
uniform float u_motion_threshold;

void main() {
    ivec2 p = ivec2(gl_FragCoord.xy);
    ivec2 size = textureSize(u_current, 0);
    vec4 current = texelFetch(u_current, p, 0);

    bool is_top = (p.y % 2) == 0;
    bool keep = u_top_field_first != 0 ? is_top : !is_top;
    if (keep) {
        f_color = current;
        return;
    }

    // Missing field line: neighbours from the same frame, clamped at the edges
    vec4 above = texelFetch(u_current, ivec2(p.x, max(p.y - 1, 0)), 0);
    vec4 below = texelFetch(u_current, ivec2(p.x, min(p.y + 1, size.y - 1)), 0);
    vec4 interpolated = (above + below) * 0.5;

    if (u_method == METHOD_WEAVE) {
        f_color = texelFetch(u_previous, p, 0);
    } else if (u_method == METHOD_GREEDYH) {
        vec4 previous = texelFetch(u_previous, p, 0);
        float motion = length(current.rgb - previous.rgb);
        f_color = motion < u_motion_threshold ? previous : interpolated;
    } else {
        f_color = interpolated;
    }
}
"""


def _method_constants() -> str:
    return ''.join(f"const int METHOD_{m.name} = {m.value};\n" for m in DeinterlaceMethod)


class DeinterlaceEngine(FrameEngine):
    """Bob / weave / linear / greedy-H deinterlacer with one frame of history"""

    settings_class = DeinterlaceSettings
    stage = 'deinterlace'

    def _check_geometry(self, in_info, out_info):
        if in_info.size != out_info.size:
            raise ConfigurationError(
                f"deinterlace cannot scale: {in_info.width}x{in_info.height} -> "
                f"{out_info.width}x{out_info.height}")

    def _build_state(self, state):
        super()._build_state(state)
        state.add_target('input', state.in_info.size)
        state.add_target('previous', state.in_info.size)
        state.has_history = False

    def _build_pipeline(self, kind, variant):
        if variant == 'deinterlace':
            return self.gpu.pipeline(
                build_fragment_shader(_method_constants() + DEINTERLACE_FRAGMENT_SHADER))
        return self.gpu.pipeline(build_fragment_shader(DECODE_FRAGMENT_SHADER, kind, nearest=True))

    def _warm_pipelines(self, state):
        kind = sampler_kind(state.in_info.format)
        self._pipeline(kind, 'decode')
        self._pipeline(kind, 'deinterlace')

    @property
    def has_history(self) -> bool:
        with self._lock:
            return self._state is not None and self._state.has_history

    def _render(self, state, settings, frame, textures):
        kind = sampler_kind(frame.info.format)
        draw(self._pipeline(kind, 'decode'), state.framebuffers['input'], input_uniforms(frame.info))

        method = effective_method(settings.method, state.has_history)
        if method != settings.method:
            logger.debug("deinterlace: no history yet, %s falls back to bob", settings.method.nick)
        state.targets['input'].use(location=CURRENT_UNIT)
        state.targets['previous'].use(location=PREVIOUS_UNIT)
        draw(self._pipeline(kind, 'deinterlace'), state.framebuffers['main'], {
            'u_current': CURRENT_UNIT,
            'u_previous': PREVIOUS_UNIT,
            'u_method': int(method),
            'u_top_field_first': int(resolve_top_field_first(settings.fields, frame.top_field_first)),
            'u_motion_threshold': float(settings.motion_threshold),
        })

        self.gpu.ctx.copy_framebuffer(state.targets['previous'], state.framebuffers['input'])

    def _frame_done(self, state, settings):
        state.has_history = True

    def reset_history(self) -> None:
        """Forget the previous frame (e.g. after a seek)"""
        with self._lock:
            if self._state is not None:
                self._state.has_history = False
