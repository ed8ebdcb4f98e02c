"""
Overlay Engine - Imperative Shell

Alpha-blends one still image over the video in a single pass. Pixels
outside the overlay rectangle pass through unchanged. Without a loaded
image (or with the rectangle off-frame) the engine is bypassed.

The image lives in the settings snapshot; its texture is re-uploaded only
when a different image is installed.
"""

import logging
from typing import Any, Dict

import numpy as np

from .engine import FrameEngine, draw
from .errors import AssetLoadError, ConfigurationError
from .overlay_core import OverlaySettings, load_overlay_image, resolve_overlay_rect
from .shaders import build_fragment_shader, input_uniforms, sampler_kind

logger = logging.getLogger(__name__)

OVERLAY_UNIT = 4


# ============================================================================
# Shader Source Code
# ============================================================================

OVERLAY_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

uniform sampler2D u_overlay;
uniform vec4 u_overlay_rect;    // x, y, width, height in pixels
uniform float u_overlay_alpha;

void main() {
    vec4 video = sample_video(v_texcoord);
    vec2 p = gl_FragCoord.xy;
    vec2 rel = p - u_overlay_rect.xy;
    if (rel.x >= 0.0 && rel.y >= 0.0 && rel.x < u_overlay_rect.z && rel.y < u_overlay_rect.w) {
        vec4 overlay = texture(u_overlay, rel / u_overlay_rect.zw);
        video.rgb = mix(video.rgb, overlay.rgb, overlay.a * u_overlay_alpha);
    }
    f_color = video;
}
"""


class OverlayEngine(FrameEngine):
    """Still-image overlay (logo, watermark)

    Example:
        engine = OverlayEngine(image_path='logo.png', relative_x=0.9, relative_y=0.05)
        engine.configure(VideoInfo('NV12', 1920, 1080))
        out = engine.process(frame)
    """

    settings_class = OverlaySettings
    stage = 'overlay'

    def __init__(self, *args, **kwargs):
        self._overlay_texture = None
        self._overlay_source = None
        super().__init__(*args, **kwargs)

    def _resolve_assets(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        if 'image_path' not in changes:
            return changes
        changes = dict(changes)
        path = changes['image_path']
        if not path:
            changes['image_path'] = None
            changes['image'] = None
            logger.info("Overlay image cleared")
            return changes
        try:
            changes['image'] = load_overlay_image(path)
            changes['image_path'] = str(path)
        except AssetLoadError as exc:
            logger.warning("Keeping previous overlay, %s failed to load: %s", path, exc)
            del changes['image_path']
        return changes

    def _check_geometry(self, in_info, out_info):
        if in_info.size != out_info.size:
            raise ConfigurationError(
                f"overlay cannot scale: {in_info.width}x{in_info.height} -> "
                f"{out_info.width}x{out_info.height}")

    def _build_pipeline(self, kind, variant):
        return self.gpu.pipeline(build_fragment_shader(OVERLAY_FRAGMENT_SHADER, kind, nearest=True))

    def _warm_pipelines(self, state):
        self._pipeline(sampler_kind(state.in_info.format), 'overlay')

    def _overlay_rect(self, settings, state):
        image = settings.image
        return resolve_overlay_rect(settings, state.in_info.width, state.in_info.height,
                                    image.shape[1], image.shape[0])

    def _is_passthrough(self, settings, state):
        if state.in_info != state.out_info:
            return False
        if not settings.has_image:
            return True
        return not self._overlay_rect(settings, state).is_visible(*state.in_info.size)

    def _bind_overlay(self, image) -> None:
        """Upload ``image`` unless it is already on the GPU (GPU active)"""
        if image is not self._overlay_source:
            if self._overlay_texture is not None:
                self._overlay_texture.release()
            height, width = image.shape[:2]
            self._overlay_texture = self.gpu.texture((width, height), 4,
                                                     np.ascontiguousarray(image).tobytes())
            self._overlay_source = image
            logger.debug("overlay: uploaded %dx%d image", width, height)
        self._overlay_texture.use(location=OVERLAY_UNIT)

    def _render(self, state, settings, frame, textures):
        uniforms = input_uniforms(frame.info)
        if settings.has_image:
            rect = self._overlay_rect(settings, state)
            self._bind_overlay(settings.image)
            uniforms.update({
                'u_overlay': OVERLAY_UNIT,
                'u_overlay_rect': (rect.x, rect.y, rect.w, rect.h),
                'u_overlay_alpha': float(settings.alpha),
            })
        else:
            # Format conversion only: an empty rectangle matches no pixel
            uniforms['u_overlay_rect'] = (0.0, 0.0, 0.0, 0.0)
        draw(self._pipeline(sampler_kind(frame.info.format), 'overlay'),
             state.framebuffers['main'], uniforms)

    def release(self) -> None:
        super().release()
        if self._overlay_texture is not None:
            with self.gpu.activate():
                self._overlay_texture.release()
        self._overlay_texture = None
        self._overlay_source = None
