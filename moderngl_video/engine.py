"""
Engine Base - Imperative Shell

Shared lifecycle for the single-input engines (deinterlace, effects,
transform, convert/scale, overlay):

    configure(in_info, out_info)  → builds render targets + output encoder
    update(**changes)             → validated copy-on-write settings swap
    process(frame)                → upload, render, encode, read back

Settings and configured state are swapped under a short per-engine lock.
GPU resource creation happens outside that lock; frames render from a
snapshot taken at the start of the call.
"""

import dataclasses
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import moderngl

from .errors import ConfigurationError, FrameProcessingError
from .frames import VideoFrame, VideoInfo
from .gpu_context import GPUContext, PipelineState, set_uniforms
from .shaders import SamplerKind
from .texture_cache import TextureCache
from .timing import FrameTimings, timed
from .yuv_output import YUVOutput

logger = logging.getLogger(__name__)


class RenderState:
    """GPU objects sized for one configured geometry

    Attributes:
        in_info: Configured input geometry
        out_info: Configured output geometry
        targets: Named RGBA8 render targets
        framebuffers: Framebuffer per render target
        output: Encoder writing the 'main' target into output frames
    """

    def __init__(self, gpu: GPUContext, in_info: VideoInfo, out_info: VideoInfo):
        self.gpu = gpu
        self.in_info = in_info
        self.out_info = out_info
        self.targets: Dict[str, moderngl.Texture] = {}
        self.framebuffers: Dict[str, moderngl.Framebuffer] = {}
        self.output = YUVOutput(gpu)
        self.has_history = False

    def add_target(self, name: str, size: Tuple[int, int]) -> moderngl.Texture:
        with self.gpu.activate():
            texture = self.gpu.texture(size, 4)
            self.targets[name] = texture
            self.framebuffers[name] = self.gpu.ctx.framebuffer(color_attachments=[texture])
        return texture

    def release(self) -> None:
        with self.gpu.activate():
            for fbo in self.framebuffers.values():
                fbo.release()
            for texture in self.targets.values():
                texture.release()
            self.output.release()
        self.targets.clear()
        self.framebuffers.clear()


class FrameEngine:
    """Base class for engines with one input and one output frame

    Subclasses set ``settings_class`` and ``stage`` and implement
    ``_render``; they may extend ``_build_state`` and ``_is_passthrough``.
    """

    settings_class = None
    stage = 'engine'

    def __init__(self, gpu: Optional[GPUContext] = None, enable_timing: bool = False, **settings):
        """Borrow the GPU context and validate the initial settings

        Args:
            gpu: GPU context (the process-wide shared context when omitted)
            enable_timing: Record per-stage timings
            **settings: Initial values for the engine's settings dataclass

        Raises:
            ConfigurationError: Invalid settings or no GPU device
        """
        self.gpu = gpu if gpu is not None else GPUContext.shared()
        self._lock = threading.Lock()
        self._settings = self.settings_class(**self._resolve_assets(settings)).validate()
        self._cache = TextureCache(self.gpu)
        self._state: Optional[RenderState] = None
        self._pipelines: Dict[Tuple[Any, ...], PipelineState] = {}
        self.timings = FrameTimings() if enable_timing else None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def settings(self):
        """Current immutable settings snapshot"""
        with self._lock:
            return self._settings

    def update(self, **changes):
        """Apply setting changes atomically

        Raises:
            ConfigurationError: A value is out of range (nothing is changed)
        """
        changes = self._resolve_assets(changes)
        with self._lock:
            try:
                updated = dataclasses.replace(self._settings, **changes).validate()
            except TypeError as exc:
                raise ConfigurationError(str(exc)) from exc
            self._settings = updated
        return updated

    def _resolve_assets(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Load file-backed assets named in ``changes`` (runs outside the lock)

        Returns the changes to apply. Assets that fail to load are dropped
        from the changes so the previous asset stays active.
        """
        return changes

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._state is not None

    @property
    def in_info(self) -> Optional[VideoInfo]:
        with self._lock:
            return self._state.in_info if self._state else None

    @property
    def out_info(self) -> Optional[VideoInfo]:
        with self._lock:
            return self._state.out_info if self._state else None

    def default_output(self, in_info: VideoInfo) -> VideoInfo:
        """Output geometry used when configure() gets no out_info"""
        return in_info

    def configure(self, in_info: VideoInfo, out_info: Optional[VideoInfo] = None) -> None:
        """Build render targets for a new input/output geometry

        Reconfiguring with identical geometry keeps the current state.

        Raises:
            ConfigurationError: Invalid geometry or pipeline build failure;
                the engine stays unconfigured until a later call succeeds
        """
        try:
            in_info = in_info.validate()
            out_info = (out_info if out_info is not None else self.default_output(in_info)).validate()
            self._check_geometry(in_info, out_info)
        except ConfigurationError:
            self._discard_state()
            raise
        with self._lock:
            current = self._state
        if current is not None and current.in_info == in_info and current.out_info == out_info:
            return

        state = RenderState(self.gpu, in_info, out_info)
        try:
            with self.gpu.activate():
                self._build_state(state)
                state.output.configure(out_info.width, out_info.height, out_info.format)
                self._warm_pipelines(state)
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
        logger.info("%s configured: %dx%d %s -> %dx%d %s", self.stage,
                    in_info.width, in_info.height, in_info.format.value,
                    out_info.width, out_info.height, out_info.format.value)

    def _check_geometry(self, in_info: VideoInfo, out_info: VideoInfo) -> None:
        """Reject input/output combinations the engine cannot produce"""

    def _build_state(self, state: RenderState) -> None:
        """Allocate the engine's render targets (runs with the GPU active)"""
        state.add_target('main', state.out_info.size)

    def _warm_pipelines(self, state: RenderState) -> None:
        """Build the pipelines the configured input needs so failures surface here"""

    def _discard_state(self) -> None:
        with self._lock:
            state, self._state = self._state, None
        if state is not None:
            state.release()

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def _pipeline(self, kind: SamplerKind, variant) -> PipelineState:
        """Pipeline for (input family, variant), built on first use"""
        key = (kind, variant)
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            pipeline = self._build_pipeline(kind, variant)
            self._pipelines[key] = pipeline
            logger.debug("%s: built pipeline %s/%s", self.stage, kind.value, variant)
        return pipeline

    def _build_pipeline(self, kind: SamplerKind, variant) -> PipelineState:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    @property
    def passthrough(self) -> bool:
        """True when process() would return the input unchanged"""
        with self._lock:
            state, settings = self._state, self._settings
        return state is not None and self._is_passthrough(settings, state)

    def _is_passthrough(self, settings, state: RenderState) -> bool:
        return False

    def _snapshot(self) -> Tuple[Any, Optional[RenderState]]:
        with self._lock:
            return self._settings, self._state

    def _require_state(self, state: Optional[RenderState], frame: VideoFrame) -> RenderState:
        if state is None:
            raise ConfigurationError(f"{self.stage}: engine not configured")
        if not frame.info.same_geometry(state.in_info):
            raise FrameProcessingError(
                f"Frame {frame.info.width}x{frame.info.height} {frame.info.format.value} does not "
                f"match configured input {state.in_info.width}x{state.in_info.height} "
                f"{state.in_info.format.value}", stage='upload')
        return state

    def process(self, frame: VideoFrame, out_frame: Optional[VideoFrame] = None) -> VideoFrame:
        """Process one frame synchronously

        Args:
            frame: Input frame matching the configured input geometry
            out_frame: Destination frame (allocated when omitted)

        Returns:
            The output frame, complete when this returns

        Raises:
            ConfigurationError: Engine not configured
            FrameProcessingError: This frame failed; the engine remains usable
        """
        settings, state = self._snapshot()
        state = self._require_state(state, frame)

        if self._is_passthrough(settings, state):
            logger.debug("%s: passthrough", self.stage)
            return frame.copy()

        if out_frame is None:
            out_frame = VideoFrame.allocate(state.out_info, top_field_first=frame.top_field_first)
        out_frame.frame_index = frame.frame_index
        stage = 'upload'
        with timed(self.timings, f'{self.stage}_total'):
            try:
                with self.gpu.activate():
                    with timed(self.timings, 'upload'):
                        self._cache.reset_slot_cursor()
                        textures = self._cache.upload_frame(frame)
                    stage = 'render'
                    with timed(self.timings, 'render'):
                        self._render(state, settings, frame, textures)
                    stage = 'readback'
                    with timed(self.timings, 'readback'):
                        state.output.write_frame(state.targets['main'], out_frame)
                        self.gpu.ctx.finish()
            except moderngl.Error as exc:
                logger.error("%s: GPU failure during %s: %s", self.stage, stage, exc)
                raise FrameProcessingError(str(exc), stage=stage) from exc
            except FrameProcessingError as exc:
                logger.error("%s: frame failed: %s", self.stage, exc)
                raise
        self._frame_done(state, settings)
        return out_frame

    def _render(self, state: RenderState, settings, frame: VideoFrame,
                textures: List[moderngl.Texture]) -> None:
        raise NotImplementedError

    def _frame_done(self, state: RenderState, settings) -> None:
        """Hook run after a frame completed successfully"""

    # ------------------------------------------------------------------
    # Timing and teardown
    # ------------------------------------------------------------------

    def get_timing_summary(self) -> Dict[str, Dict[str, float]]:
        """Timing per stage (empty when timing is disabled)"""
        if self.timings is None:
            return {}
        return self.timings.summary()

    def log_timing_summary(self) -> None:
        if self.timings is not None:
            self.timings.log_summary(f"{self.stage} timing")

    def release(self) -> None:
        """Release GPU resources owned by this engine

        Side effects:
        - Frees render targets, encoder targets and cached input textures
        - The shared GPU context and its compiled programs stay alive
        """
        with self._lock:
            state, self._state = self._state, None
        if state is not None:
            state.release()
        self._cache.clear()

    def __enter__(self):
        """Context manager support"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager cleanup"""
        self.release()


def draw(pipeline: PipelineState, fbo, uniforms: Dict[str, Any]) -> None:
    """Render a full-screen pass into ``fbo`` (GPU must be active)"""
    set_uniforms(pipeline.program, uniforms)
    fbo.use()
    pipeline.vao.render(moderngl.TRIANGLE_STRIP)
