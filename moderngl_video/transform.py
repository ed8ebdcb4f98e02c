"""
Transform Engine - Imperative Shell

Flip, rotate and crop in one pass. The vertex stage maps destination
texture coordinates into the source with the matrix from
``transform_core.build_uv_transform``; anything landing outside the source
is opaque black.

When configured without an explicit output geometry the output follows the
transformed size, and changing the crop or orientation reconfigures it.
"""

import logging

from .engine import FrameEngine, draw
from .frames import VideoFrame
from .shaders import build_fragment_shader, input_uniforms, sampler_kind
from .transform_core import (
    TransformSettings,
    build_uv_transform,
    is_degenerate,
    is_identity,
    transformed_size,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Shader Source Code
# ============================================================================

TRANSFORM_VERTEX_SHADER = """
#version 330

in vec2 in_position;
out vec2 v_texcoord;

uniform mat2 u_uv_matrix;
uniform vec2 u_uv_offset;

void main() {
    gl_Position = vec4(in_position, 0.0, 1.0);
    vec2 tc = in_position * 0.5 + 0.5;
    v_texcoord = u_uv_matrix * (tc - 0.5) + 0.5 + u_uv_offset;
}
"""

TRANSFORM_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

void main() {
    if (any(lessThan(v_texcoord, vec2(0.0))) || any(greaterThan(v_texcoord, vec2(1.0)))) {
        f_color = vec4(0.0, 0.0, 0.0, 1.0);
        return;
    }
    f_color = sample_video(v_texcoord);
}
"""


class TransformEngine(FrameEngine):
    """Orientation (8 methods) and pixel crop

    Example:
        engine = TransformEngine(method='90r', crop_left=100, crop_right=100)
        engine.configure(VideoInfo('NV12', 1920, 1080))   # output 1080x1720
        rotated = engine.process(frame)
    """

    settings_class = TransformSettings
    stage = 'transform'

    def __init__(self, *args, **kwargs):
        self._auto_output = True
        super().__init__(*args, **kwargs)

    def default_output(self, in_info):
        # Degenerate crops still configure; process() returns an empty frame
        width, height = transformed_size(self.settings, in_info.width, in_info.height)
        return in_info.with_size(max(width, 1), max(height, 1))

    def configure(self, in_info, out_info=None):
        self._auto_output = out_info is None
        super().configure(in_info, out_info)

    def update(self, **changes):
        """Apply setting changes; an auto-sized output follows the new crop"""
        updated = super().update(**changes)
        in_info, out_info = self.in_info, self.out_info
        if self._auto_output and in_info is not None:
            wanted = self.default_output(in_info)
            if wanted != out_info:
                logger.info("transform: output follows crop/orientation, %dx%d -> %dx%d",
                            out_info.width, out_info.height, wanted.width, wanted.height)
                self.configure(in_info)
        return updated

    def _uses_exact_mapping(self, settings, state) -> bool:
        """Output pixels land on source texel centers"""
        natural = transformed_size(settings, state.in_info.width, state.in_info.height)
        if settings.method.swaps_axes and settings.has_crop:
            return False
        return natural == state.out_info.size

    def _build_pipeline(self, kind, nearest):
        fragment = build_fragment_shader(TRANSFORM_FRAGMENT_SHADER, kind, nearest=nearest)
        return self.gpu.pipeline(fragment, TRANSFORM_VERTEX_SHADER)

    def _warm_pipelines(self, state):
        self._pipeline(sampler_kind(state.in_info.format),
                       self._uses_exact_mapping(self.settings, state))

    def _is_passthrough(self, settings, state):
        return is_identity(settings) and state.in_info == state.out_info

    def process(self, frame, out_frame=None):
        """Transform one frame

        A crop removing the whole frame yields a zero-size frame in the
        output format instead of an error.
        """
        settings, state = self._snapshot()
        state = self._require_state(state, frame)
        if is_degenerate(settings, frame.info.width, frame.info.height):
            logger.debug("transform: crop covers the frame, returning an empty frame")
            return VideoFrame.allocate(state.out_info.with_size(0, 0))
        return super().process(frame, out_frame)

    def _render(self, state, settings, frame, textures):
        in_info = state.in_info
        matrix, offset = build_uv_transform(settings, in_info.width, in_info.height)
        pipeline = self._pipeline(sampler_kind(in_info.format),
                                  self._uses_exact_mapping(settings, state))
        uniforms = input_uniforms(frame.info)
        uniforms['u_uv_matrix'] = matrix
        uniforms['u_uv_offset'] = offset
        draw(pipeline, state.framebuffers['main'], uniforms)
