"""
Error taxonomy for the video engines.

- ConfigurationError: the current configuration cannot be used (bad format,
  bad dimensions, shader build failure). Engines refuse frames until a
  successful reconfigure.
- FrameProcessingError: one frame failed on the GPU; the engine stays usable.
- AssetLoadError: a LUT or overlay image could not be loaded; the previously
  loaded asset stays active.
"""

from typing import Optional


class VideoEngineError(Exception):
    """Base class for every error raised by the engines"""


class ConfigurationError(VideoEngineError):
    """Unsupported or invalid engine configuration"""


class CompileFailed(ConfigurationError):
    """GLSL compilation or program link failed"""


class FrameProcessingError(VideoEngineError):
    """A single frame could not be processed

    Args:
        message: Human readable description
        stage: Pipeline stage that failed (upload, render, readback, ...)
    """

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class AssetLoadError(VideoEngineError):
    """A LUT file or overlay image could not be read or decoded"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
