"""
Effects Engine - Imperative Shell

Color grading in one pass, optional sharpen/blur in three more:

    grade      input → 'graded' (or straight to 'main' without sharpening)
    blur H     'graded' → 'blur_h'
    blur V     'blur_h' → 'blur_v'
    unsharp    'graded' + 'blur_v' → 'main'

The loaded LUT lives in the settings snapshot (copy-on-write), so a frame
always sees either the old or the new table. Its GPU texture is rebuilt at
the next frame boundary.
"""

import logging
from typing import Any, Dict, Optional

from .effects_core import (
    BLUR_WEIGHTS,
    EffectsSettings,
    grading_uniforms,
    is_identity,
    needs_sharpen_pass,
)
from .engine import FrameEngine, draw
from .errors import AssetLoadError, ConfigurationError
from .lut import Lut3D, identity_lut, load_lut_file
from .shaders import build_fragment_shader, input_uniforms, sampler_kind

logger = logging.getLogger(__name__)

LUT_UNIT = 4
SOURCE_UNIT = 5
BLURRED_UNIT = 6


# ============================================================================
# Shader Source Code
# ============================================================================

GRADE_FRAGMENT_SHADER = """
in vec2 v_texcoord;
out vec4 f_color;

uniform float u_brightness;
uniform float u_contrast;
uniform float u_saturation;
uniform float u_hue;
uniform float u_gamma;
uniform float u_sepia;
uniform int u_invert;
uniform float u_noise;
uniform float u_vignette;
uniform int u_chroma_key_enabled;
uniform vec3 u_chroma_key_color;
uniform float u_chroma_key_tolerance;
uniform float u_chroma_key_smoothness;
uniform vec2 u_output_size;
uniform float u_frame_index;
uniform int u_has_lut;
uniform float u_lut_size;
uniform sampler3D u_lut;

const float PI = 3.14159265358979;
const float EFFECT_EPSILON = 0.001;

float hash12(vec2 p, float frame) {
    vec3 p3 = fract(vec3(p.xyx) * 0.1031 + frame * 0.00137);
    p3 += dot(p3, p3.yzx + 33.33);
    return fract((p3.x + p3.y) * p3.z);
}

vec3 rgb_to_hsv(vec3 c) {
    vec4 K = vec4(0.0, -1.0 / 3.0, 2.0 / 3.0, -1.0);
    vec4 p = mix(vec4(c.bg, K.wz), vec4(c.gb, K.xy), step(c.b, c.g));
    vec4 q = mix(vec4(p.xyw, c.r), vec4(c.r, p.yzx), step(p.x, c.r));
    float d = q.x - min(q.w, q.y);
    float e = 1.0e-10;
    return vec3(abs(q.z + (q.w - q.y) / (6.0 * d + e)), d / (q.x + e), q.x);
}

vec3 hsv_to_rgb(vec3 c) {
    vec4 K = vec4(1.0, 2.0 / 3.0, 1.0 / 3.0, 3.0);
    vec3 p = abs(fract(c.xxx + K.xyz) * 6.0 - K.www);
    return c.z * mix(K.xxx, clamp(p - K.xxx, 0.0, 1.0), c.y);
}

void main() {
    vec4 color = sample_video(v_texcoord);
    vec3 rgb = color.rgb;
    float alpha = color.a;

    rgb += u_brightness;
    rgb = (rgb - 0.5) * u_contrast + 0.5;

    float luma = dot(rgb, vec3(0.2126, 0.7152, 0.0722));
    rgb = mix(vec3(luma), rgb, u_saturation);

    if (abs(u_hue) > EFFECT_EPSILON) {
        vec3 hsv = rgb_to_hsv(clamp(rgb, 0.0, 1.0));
        hsv.x = fract(hsv.x + u_hue / (2.0 * PI));
        rgb = hsv_to_rgb(hsv);
    }

    rgb = pow(clamp(rgb, 0.0001, 1.0), vec3(1.0 / u_gamma));

    if (u_sepia > EFFECT_EPSILON) {
        vec3 sepia = vec3(
            dot(rgb, vec3(0.393, 0.769, 0.189)),
            dot(rgb, vec3(0.349, 0.686, 0.168)),
            dot(rgb, vec3(0.272, 0.534, 0.131))
        );
        rgb = mix(rgb, sepia, u_sepia);
    }

    if (u_invert != 0) {
        rgb = 1.0 - rgb;
    }

    if (u_chroma_key_enabled != 0) {
        float dist = distance(rgb, u_chroma_key_color);
        alpha *= smoothstep(u_chroma_key_tolerance,
                            u_chroma_key_tolerance + u_chroma_key_smoothness, dist);
    }

    if (u_vignette > EFFECT_EPSILON) {
        float dist = length(v_texcoord - 0.5) * 1.414;
        rgb *= 1.0 - smoothstep(0.5, 1.0, dist) * u_vignette;
    }

    if (u_noise > EFFECT_EPSILON) {
        float n = hash12(v_texcoord * u_output_size, u_frame_index);
        rgb += (n - 0.5) * u_noise * 0.5;
    }

    rgb = clamp(rgb, 0.0, 1.0);

    // Remap into texel centers so the table edges do not bleed
    if (u_has_lut != 0) {
        vec3 coord = rgb * ((u_lut_size - 1.0) / u_lut_size) + 0.5 / u_lut_size;
        rgb = texture(u_lut, coord).rgb;
    }

    f_color = vec4(rgb, alpha);
}
"""

BLUR_FRAGMENT_SHADER = """
out vec4 f_color;

uniform sampler2D u_source;
uniform ivec2 u_direction;

const float WEIGHTS[9] = float[](%s);

void main() {
    ivec2 p = ivec2(gl_FragCoord.xy);
    ivec2 size = textureSize(u_source, 0);
    vec4 sum = vec4(0.0);
    for (int i = -4; i <= 4; i++) {
        ivec2 q = clamp(p + u_direction * i, ivec2(0), size - 1);
        sum += texelFetch(u_source, q, 0) * WEIGHTS[i + 4];
    }
    f_color = sum;
}
""" % ', '.join(f'{w:.6f}' for w in BLUR_WEIGHTS)

UNSHARP_FRAGMENT_SHADER = """
out vec4 f_color;

uniform sampler2D u_source;
uniform sampler2D u_blurred;
uniform float u_sharpness;

void main() {
    ivec2 p = ivec2(gl_FragCoord.xy);
    vec4 original = texelFetch(u_source, p, 0);
    vec4 blurred = texelFetch(u_blurred, p, 0);
    vec3 rgb;
    if (u_sharpness > 0.0) {
        rgb = clamp(original.rgb + (original.rgb - blurred.rgb) * u_sharpness, 0.0, 1.0);
    } else {
        rgb = mix(original.rgb, blurred.rgb, abs(u_sharpness));
    }
    f_color = vec4(rgb, original.a);
}
"""


class EffectsEngine(FrameEngine):
    """Color grading, sharpen/blur and 3-D LUT

    Example:
        engine = EffectsEngine(saturation=0.0, lut_path='film.cube')
        engine.configure(VideoInfo('BGRA', 1280, 720))
        graded = engine.process(frame)
    """

    settings_class = EffectsSettings
    stage = 'effects'

    def __init__(self, *args, **kwargs):
        self.frame_index = 0
        self._lut_texture = None
        self._lut_texture_source: Optional[Lut3D] = None
        self._placeholder_lut = None
        super().__init__(*args, **kwargs)

    def _resolve_assets(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        if 'lut_path' not in changes:
            return changes
        changes = dict(changes)
        path = changes['lut_path']
        if not path:
            changes['lut_path'] = None
            changes['lut'] = None
            logger.info("LUT cleared")
            return changes
        try:
            changes['lut'] = load_lut_file(path)
            changes['lut_path'] = str(path)
        except AssetLoadError as exc:
            logger.warning("Keeping previous LUT, %s failed to load: %s", path, exc)
            del changes['lut_path']
        return changes

    def _check_geometry(self, in_info, out_info):
        if in_info.size != out_info.size:
            raise ConfigurationError(
                f"effects cannot scale: {in_info.width}x{in_info.height} -> "
                f"{out_info.width}x{out_info.height}")

    def _build_state(self, state):
        super()._build_state(state)
        for name in ('graded', 'blur_h', 'blur_v'):
            state.add_target(name, state.out_info.size)

    def _build_pipeline(self, kind, variant):
        if variant == 'grade':
            return self.gpu.pipeline(build_fragment_shader(GRADE_FRAGMENT_SHADER, kind, nearest=True))
        if variant == 'blur':
            return self.gpu.pipeline(build_fragment_shader(BLUR_FRAGMENT_SHADER))
        return self.gpu.pipeline(build_fragment_shader(UNSHARP_FRAGMENT_SHADER))

    def _warm_pipelines(self, state):
        self._pipeline(sampler_kind(state.in_info.format), 'grade')

    def _is_passthrough(self, settings, state):
        return is_identity(settings) and state.in_info == state.out_info

    def _bind_lut(self, lut: Optional[Lut3D]) -> None:
        """Make the LUT texture match ``lut`` and bind it (GPU active)"""
        if lut is None:
            if self._placeholder_lut is None:
                self._placeholder_lut = self.gpu.texture3d(2, identity_lut(2).table)
            self._placeholder_lut.use(location=LUT_UNIT)
            return
        if lut is not self._lut_texture_source:
            if self._lut_texture is not None:
                self._lut_texture.release()
            self._lut_texture = self.gpu.texture3d(lut.size, lut.table)
            self._lut_texture_source = lut
            logger.debug("effects: uploaded %d^3 LUT", lut.size)
        self._lut_texture.use(location=LUT_UNIT)

    def _render(self, state, settings, frame, textures):
        kind = sampler_kind(frame.info.format)
        width, height = state.out_info.size
        sharpen = needs_sharpen_pass(settings)

        self._bind_lut(settings.lut)
        uniforms = input_uniforms(frame.info)
        uniforms.update(grading_uniforms(settings, width, height, self.frame_index))
        uniforms['u_lut'] = LUT_UNIT
        draw(self._pipeline(kind, 'grade'),
             state.framebuffers['graded' if sharpen else 'main'], uniforms)

        if not sharpen:
            return
        blur = self._pipeline(kind, 'blur')
        state.targets['graded'].use(location=SOURCE_UNIT)
        draw(blur, state.framebuffers['blur_h'], {'u_source': SOURCE_UNIT, 'u_direction': (1, 0)})
        state.targets['blur_h'].use(location=SOURCE_UNIT)
        draw(blur, state.framebuffers['blur_v'], {'u_source': SOURCE_UNIT, 'u_direction': (0, 1)})

        state.targets['graded'].use(location=SOURCE_UNIT)
        state.targets['blur_v'].use(location=BLURRED_UNIT)
        draw(self._pipeline(kind, 'unsharp'), state.framebuffers['main'], {
            'u_source': SOURCE_UNIT,
            'u_blurred': BLURRED_UNIT,
            'u_sharpness': float(settings.sharpness),
        })

    def _frame_done(self, state, settings):
        self.frame_index += 1

    def release(self) -> None:
        super().release()
        with self.gpu.activate():
            for texture in (self._lut_texture, self._placeholder_lut):
                if texture is not None:
                    texture.release()
        self._lut_texture = None
        self._lut_texture_source = None
        self._placeholder_lut = None
