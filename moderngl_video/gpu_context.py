"""
GPU Context - Imperative Shell

Process-wide OpenGL context shared by every engine.

- One standalone moderngl context per process, created lazily by
  ``GPUContext.shared()`` behind a one-time construction lock and never torn
  down before exit.
- Programs are compiled once per distinct shader source and reused by every
  engine (the "pipeline library").
- All GL calls happen inside ``activate()``, which serializes GPU access and
  makes the context current on the calling thread.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import moderngl
import numpy as np

from .errors import CompileFailed, ConfigurationError
from .shaders import FULLSCREEN_VERTEX_SHADER

logger = logging.getLogger(__name__)

GL_REQUIRED_VERSION = 330

FULLSCREEN_QUAD = np.array([
    [-1, -1],  # Bottom-left
    [ 1, -1],  # Bottom-right
    [-1,  1],  # Top-left
    [ 1,  1],  # Top-right
], dtype='f4')


@dataclass(frozen=True)
class PipelineState:
    """Compiled program plus the fixed-function state it is drawn with

    Attributes:
        program: Linked shader program
        vao: Vertex array binding the program to its vertex buffer
        blend: (src_rgb, dst_rgb, src_alpha, dst_alpha) or None for no blending
    """
    program: Any
    vao: Any
    blend: Optional[Tuple[int, int, int, int]] = None


def set_uniforms(program, values: Dict[str, Any]) -> None:
    """Write uniform values, ignoring names the compiler optimized out"""
    for name, value in values.items():
        member = program.get(name, None)
        if member is not None:
            member.value = value


def _create_standalone_context():
    try:
        return moderngl.create_standalone_context(require=GL_REQUIRED_VERSION)
    except Exception as exc:
        logger.debug("Default OpenGL backend unavailable (%s), trying EGL", exc)
        try:
            return moderngl.create_standalone_context(require=GL_REQUIRED_VERSION, backend='egl')
        except Exception:
            raise ConfigurationError(f"No OpenGL 3.3 device available: {exc}") from exc


class GPUContext:
    """Shared GPU device handle

    Engines borrow this object; they never release it.
    """

    _shared: Optional['GPUContext'] = None
    _shared_lock = threading.Lock()

    def __init__(self, ctx=None):
        """Create the GL context and the shared full-screen quad

        Args:
            ctx: Existing moderngl context to wrap (a standalone context is
                created when omitted)

        Raises:
            ConfigurationError: No usable OpenGL 3.3 device
        """
        self.ctx = ctx if ctx is not None else _create_standalone_context()
        self.lock = threading.RLock()
        self._depth = 0
        self._programs: Dict[Tuple[str, str], Any] = {}
        self._vaos: Dict[int, Any] = {}
        self.fullscreen_vbo = self.ctx.buffer(FULLSCREEN_QUAD.tobytes())

        info = self.ctx.info
        self.renderer = info.get('GL_RENDERER', 'unknown')
        self.vendor = info.get('GL_VENDOR', 'unknown')
        self.version = info.get('GL_VERSION', 'unknown')
        logger.info("GPU device: %s (%s, OpenGL %s)", self.renderer, self.vendor, self.version)

    @classmethod
    def shared(cls) -> 'GPUContext':
        """Process-wide context, created on first use

        Raises:
            ConfigurationError: No usable OpenGL 3.3 device
        """
        if cls._shared is None:
            with cls._shared_lock:
                if cls._shared is None:
                    cls._shared = cls()
        return cls._shared

    @contextmanager
    def activate(self):
        """Hold the GPU lock with the context current on this thread

        Re-entrant. Blending is reset to disabled on the outermost entry so
        every engine starts from the same fixed-function state.
        """
        with self.lock:
            outermost = self._depth == 0
            if outermost:
                self.ctx.__enter__()
                self.ctx.disable(moderngl.BLEND)
            self._depth += 1
            try:
                yield self.ctx
            finally:
                self._depth -= 1
                if outermost:
                    self.ctx.__exit__(None, None, None)

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def compile(self, fragment_shader: str, vertex_shader: str = FULLSCREEN_VERTEX_SHADER):
        """Compile and link a program, reusing an identical earlier build

        Raises:
            CompileFailed: GLSL compilation or link error
        """
        key = (vertex_shader, fragment_shader)
        with self.activate():
            program = self._programs.get(key)
            if program is not None:
                return program
            try:
                program = self.ctx.program(vertex_shader=vertex_shader, fragment_shader=fragment_shader)
            except moderngl.Error as exc:
                raise CompileFailed(f"Shader build failed: {exc}") from exc
            self._programs[key] = program
        logger.debug("Compiled program #%d (%d programs cached)", program.glo, len(self._programs))
        return program

    def fullscreen_vao(self, program):
        """Vertex array drawing the shared full-screen quad with ``program``"""
        with self.activate():
            vao = self._vaos.get(program.glo)
            if vao is None:
                vao = self.ctx.vertex_array(program, [(self.fullscreen_vbo, '2f', 'in_position')])
                self._vaos[program.glo] = vao
        return vao

    def pipeline(self, fragment_shader: str, vertex_shader: str = FULLSCREEN_VERTEX_SHADER,
                 blend=None) -> PipelineState:
        program = self.compile(fragment_shader, vertex_shader)
        return PipelineState(program, self.fullscreen_vao(program), blend)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def texture(self, size: Tuple[int, int], components: int, data=None,
                filtered: bool = True):
        """2-D uint8 texture with clamp-to-edge addressing"""
        with self.activate():
            texture = self.ctx.texture(size, components, data, alignment=1)
            mode = moderngl.LINEAR if filtered else moderngl.NEAREST
            texture.filter = (mode, mode)
            texture.repeat_x = False
            texture.repeat_y = False
        return texture

    def texture3d(self, size: int, data: np.ndarray):
        """Cubic float RGB texture with linear filtering and clamped edges"""
        with self.activate():
            texture = self.ctx.texture3d((size, size, size), 3,
                                         np.ascontiguousarray(data, dtype='f4').tobytes(),
                                         alignment=1, dtype='f4')
            texture.filter = (moderngl.LINEAR, moderngl.LINEAR)
            texture.repeat_x = False
            texture.repeat_y = False
            texture.repeat_z = False
        return texture

    def finish(self):
        """Block until all submitted GPU work has completed"""
        with self.activate():
            self.ctx.finish()
