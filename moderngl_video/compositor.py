"""
Compositor Engine - Imperative Shell

Blends any number of input pads into one output frame.

Per frame:
1. ``plan_composite`` picks the visible pads and the background decision
2. The 'main' target is cleared (and the checker drawn) unless covered
3. Each pad is uploaded and drawn as a quad with its blend operator,
   premultiplied alpha throughout
4. The shared encoder writes the output format

Pads carry their own settings; changing a pad's zorder re-sorts the pad
list.
"""

import dataclasses
import logging
import threading
from typing import Dict, List, Mapping, Optional

import moderngl
import numpy as np

from .composite_core import (
    BACKGROUND_CLEAR_COLORS,
    CHECKER_CELL_SIZE,
    Background,
    BlendOperator,
    CompositorPadSettings,
    CompositorSettings,
    fixate_output_size,
    plan_composite,
    sort_by_zorder,
)
from .core import rect_to_ndc
from .engine import RenderState, draw
from .errors import ConfigurationError, FrameProcessingError
from .frames import VideoFrame, VideoInfo
from .gpu_context import GPUContext, PipelineState, set_uniforms
from .shaders import SamplerKind, build_fragment_shader, input_uniforms, sampler_kind
from .texture_cache import TextureCache
from .timing import FrameTimings, timed

logger = logging.getLogger(__name__)

# (src_rgb, dst_rgb, src_alpha, dst_alpha) for premultiplied sources
BLEND_FUNCTIONS = {
    BlendOperator.SOURCE: (moderngl.ONE, moderngl.ZERO, moderngl.ONE, moderngl.ZERO),
    BlendOperator.OVER: (moderngl.ONE, moderngl.ONE_MINUS_SRC_ALPHA,
                         moderngl.ONE, moderngl.ONE_MINUS_SRC_ALPHA),
    BlendOperator.ADD: (moderngl.ONE, moderngl.ONE, moderngl.ONE, moderngl.ONE),
}


# ============================================================================
# Shader Source Code
# ============================================================================

QUAD_VERTEX_SHADER = """
#version 330

in vec2 in_position;
in vec2 in_texcoord;
out vec2 v_texcoord;

void main() {
    gl_Position = vec4(in_position, 0.0, 1.0);
    v_texcoord = in_texcoord;
}
"""

PAD_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

uniform float u_alpha;

void main() {
    vec4 color = sample_video(v_texcoord);
    color.a *= u_alpha;
    color.rgb *= color.a;
    f_color = color;
}
"""

CHECKER_FRAGMENT_SHADER = """
out vec4 f_color;

void main() {
    ivec2 p = ivec2(gl_FragCoord.xy);
    int cell = (p.x / CELL_SIZE + p.y / CELL_SIZE) % 2;
    float gray = cell == 1 ? 0.75 : 0.5;
    f_color = vec4(vec3(gray), 1.0);
}
"""


class CompositorPad:
    """One compositor input

    Created by ``CompositorEngine.request_pad``; settings are changed with
    ``update`` and take effect on the next composite.
    """

    def __init__(self, engine: 'CompositorEngine', name: str, settings: CompositorPadSettings):
        self.engine = engine
        self.name = name
        self._settings = settings

    @property
    def settings(self) -> CompositorPadSettings:
        with self.engine._lock:
            return self._settings

    def update(self, **changes) -> CompositorPadSettings:
        """Apply placement changes atomically

        Raises:
            ConfigurationError: A value is out of range (nothing is changed)
        """
        with self.engine._lock:
            try:
                updated = dataclasses.replace(self._settings, **changes).validate()
            except TypeError as exc:
                raise ConfigurationError(str(exc)) from exc
            resort = updated.zorder != self._settings.zorder
            self._settings = updated
            if resort:
                self.engine._pads = self.engine._sorted_pads(self.engine._pads)
        return updated

    def __repr__(self):
        return f"CompositorPad({self.name!r}, {self._settings})"


class CompositorEngine:
    """N-input compositor with per-pad position, size, alpha and operator

    Example:
        comp = CompositorEngine(background='black')
        base = comp.request_pad()
        logo = comp.request_pad(xpos=20, ypos=20, alpha=0.8, zorder=1)
        comp.configure(VideoInfo('BGRA', 1280, 720))
        out = comp.composite({base: frame, logo: logo_frame})
    """

    stage = 'compositor'

    def __init__(self, gpu: Optional[GPUContext] = None, enable_timing: bool = False, **settings):
        self.gpu = gpu if gpu is not None else GPUContext.shared()
        self._lock = threading.Lock()
        self._settings = CompositorSettings(**settings).validate()
        self._pads: List[CompositorPad] = []
        self._pad_counter = 0
        self._cache = TextureCache(self.gpu)
        self._state: Optional[RenderState] = None
        self._pipelines: Dict[tuple, PipelineState] = {}
        self._quad_vbo = None
        self.timings = FrameTimings() if enable_timing else None

    # ------------------------------------------------------------------
    # Settings and pads
    # ------------------------------------------------------------------

    @property
    def settings(self) -> CompositorSettings:
        with self._lock:
            return self._settings

    def update(self, **changes) -> CompositorSettings:
        with self._lock:
            try:
                updated = dataclasses.replace(self._settings, **changes).validate()
            except TypeError as exc:
                raise ConfigurationError(str(exc)) from exc
            self._settings = updated
        return updated

    @property
    def pads(self) -> List[CompositorPad]:
        """Pads in drawing order"""
        with self._lock:
            return list(self._pads)

    def request_pad(self, **settings) -> CompositorPad:
        """Add an input

        Raises:
            ConfigurationError: Invalid pad settings
        """
        pad_settings = CompositorPadSettings(**settings).validate()
        with self._lock:
            pad = CompositorPad(self, f"sink_{self._pad_counter}", pad_settings)
            self._pad_counter += 1
            self._pads = self._sorted_pads(self._pads + [pad])
        logger.debug("compositor: added %s", pad.name)
        return pad

    @staticmethod
    def _sorted_pads(pads: List[CompositorPad]) -> List[CompositorPad]:
        # Caller holds _lock
        return sort_by_zorder(pads, settings_of=lambda pad: pad._settings)

    def release_pad(self, pad: CompositorPad) -> None:
        with self._lock:
            if pad not in self._pads:
                raise ConfigurationError(f"{pad.name} does not belong to this compositor")
            self._pads = [p for p in self._pads if p is not pad]
        logger.debug("compositor: released %s", pad.name)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._state is not None

    @property
    def out_info(self) -> Optional[VideoInfo]:
        with self._lock:
            return self._state.out_info if self._state else None

    def fixate_output_size(self, input_infos: Mapping[CompositorPad, VideoInfo],
                           out_par_n: int = 1, out_par_d: int = 1):
        """Smallest output size showing every pad with known input geometry"""
        with self._lock:
            pads, settings = list(self._pads), self._settings
        inputs = [(pad.settings, input_infos[pad]) for pad in pads if pad in input_infos]
        return fixate_output_size(inputs, out_par_n, out_par_d, settings.zero_size_is_unscaled)

    def configure(self, out_info: VideoInfo) -> None:
        """Build the output target and encoder for ``out_info``

        Raises:
            ConfigurationError: Invalid geometry or pipeline build failure
        """
        try:
            out_info = out_info.validate()
        except ConfigurationError:
            self._discard_state()
            raise
        with self._lock:
            current = self._state
        if current is not None and current.out_info == out_info:
            return

        state = RenderState(self.gpu, out_info, out_info)
        try:
            with self.gpu.activate():
                if self._quad_vbo is None:
                    self._quad_vbo = self.gpu.ctx.buffer(reserve=4 * 4 * 4)
                state.add_target('main', out_info.size)
                state.output.configure(out_info.width, out_info.height, out_info.format)
                self._checker_pipeline()
        except (moderngl.Error, ConfigurationError) as exc:
            state.release()
            self._discard_state()
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"{self.stage}: GPU resource creation failed: {exc}") from exc

        with self._lock:
            self._state = state
        if current is not None:
            current.release()
        logger.info("%s configured: %dx%d %s", self.stage,
                    out_info.width, out_info.height, out_info.format.value)

    def _discard_state(self) -> None:
        with self._lock:
            state, self._state = self._state, None
        if state is not None:
            state.release()

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def _checker_pipeline(self) -> PipelineState:
        return self.gpu.pipeline(build_fragment_shader(
            CHECKER_FRAGMENT_SHADER, defines=[f'CELL_SIZE {CHECKER_CELL_SIZE}']))

    def _pad_pipeline(self, kind: SamplerKind, operator: BlendOperator, nearest: bool) -> PipelineState:
        """Pipeline for (input family, operator, sampling), built on first use"""
        key = (kind, operator, nearest)
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            program = self.gpu.compile(
                build_fragment_shader(PAD_FRAGMENT_SHADER, kind, nearest=nearest),
                QUAD_VERTEX_SHADER)
            with self.gpu.activate():
                vao = self.gpu.ctx.vertex_array(
                    program, [(self._quad_vbo, '2f 2f', 'in_position', 'in_texcoord')])
            pipeline = PipelineState(program, vao, BLEND_FUNCTIONS[operator])
            self._pipelines[key] = pipeline
            logger.debug("%s: built pipeline %s/%s%s", self.stage, kind.value,
                         operator.nick, '/nearest' if nearest else '')
        return pipeline

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def composite(self, frames: Mapping[CompositorPad, VideoFrame],
                  out_frame: Optional[VideoFrame] = None) -> VideoFrame:
        """Blend the current frame of every pad

        Args:
            frames: Frame per pad; pads without a frame are inactive
            out_frame: Destination frame (allocated when omitted)

        Returns:
            The output frame, complete when this returns

        Raises:
            ConfigurationError: Engine not configured
            FrameProcessingError: This frame failed; the engine remains usable
        """
        with self._lock:
            state, settings = self._state, self._settings
            active = [(pad, pad._settings) for pad in self._pads if pad in frames]
        if state is None:
            raise ConfigurationError(f"{self.stage}: engine not configured")

        out_info = state.out_info
        plan = plan_composite([(pad_settings, frames[pad].info) for pad, pad_settings in active],
                              out_info, settings.zero_size_is_unscaled)
        if out_frame is None:
            out_frame = VideoFrame.allocate(out_info)

        stage = 'render'
        with timed(self.timings, f'{self.stage}_total'):
            try:
                with self.gpu.activate() as ctx:
                    self._cache.reset_slot_cursor()
                    fbo = state.framebuffers['main']
                    fbo.use()
                    with timed(self.timings, 'render'):
                        self._draw_background(fbo, settings.background, plan.draw_background)
                        for pad_draw in plan.draws:
                            pad, _ = active[pad_draw.index]
                            self._draw_pad(ctx, fbo, out_info, frames[pad], pad_draw)
                        ctx.disable(moderngl.BLEND)
                    stage = 'readback'
                    with timed(self.timings, 'readback'):
                        state.output.write_frame(state.targets['main'], out_frame)
                        ctx.finish()
            except moderngl.Error as exc:
                logger.error("%s: GPU failure during %s: %s", self.stage, stage, exc)
                raise FrameProcessingError(str(exc), stage=stage) from exc
            except FrameProcessingError as exc:
                logger.error("%s: frame failed: %s", self.stage, exc)
                raise
        return out_frame

    def _draw_background(self, fbo, background: Background, visible: bool) -> None:
        if not visible:
            fbo.clear(*BACKGROUND_CLEAR_COLORS[Background.TRANSPARENT])
            return
        fbo.clear(*BACKGROUND_CLEAR_COLORS[background])
        if background == Background.CHECKER:
            draw(self._checker_pipeline(), fbo, {})

    def _draw_pad(self, ctx, fbo, out_info: VideoInfo, frame: VideoFrame, pad_draw) -> None:
        info = frame.info
        rect = pad_draw.rect
        with timed(self.timings, 'upload'):
            self._cache.upload_frame(frame)

        x0, y0, x1, y1 = rect_to_ndc(rect, out_info.width, out_info.height)
        # Texture row 0 sits at pixel row rect.y
        self._quad_vbo.write(np.array([
            [x0, y0, 0.0, 0.0],
            [x1, y0, 1.0, 0.0],
            [x0, y1, 0.0, 1.0],
            [x1, y1, 1.0, 1.0],
        ], dtype='f4').tobytes())

        nearest = (rect.w, rect.h) == (info.width, info.height)
        pipeline = self._pad_pipeline(sampler_kind(info.format), pad_draw.operator, nearest)
        uniforms = input_uniforms(info)
        uniforms['u_alpha'] = pad_draw.alpha
        set_uniforms(pipeline.program, uniforms)

        ctx.enable(moderngl.BLEND)
        ctx.blend_equation = moderngl.FUNC_ADD
        ctx.blend_func = pipeline.blend
        fbo.use()
        pipeline.vao.render(moderngl.TRIANGLE_STRIP)

    # ------------------------------------------------------------------
    # Timing and teardown
    # ------------------------------------------------------------------

    def get_timing_summary(self) -> Dict[str, Dict[str, float]]:
        if self.timings is None:
            return {}
        return self.timings.summary()

    def log_timing_summary(self) -> None:
        if self.timings is not None:
            self.timings.log_summary(f"{self.stage} timing")

    def release(self) -> None:
        """Release the output target, cached textures and quad buffer"""
        self._discard_state()
        self._cache.clear()
        with self.gpu.activate():
            for pipeline in self._pipelines.values():
                pipeline.vao.release()
            if self._quad_vbo is not None:
                self._quad_vbo.release()
        self._pipelines.clear()
        self._quad_vbo = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
