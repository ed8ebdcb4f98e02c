"""
Command-line front end: run a still image through a chain of engines.

Examples:
  python -m moderngl_video in.png out.png --effects saturation=0 contrast=1.2
  python -m moderngl_video in.png out.png --transform 90r --crop 0,0,100,100
  python -m moderngl_video in.png out.png --format NV12 --scale 640x360 --add-borders
  python -m moderngl_video in.png out.png --lut film.cube --overlay logo.png --overlay-pos 0.9,0.05
"""

import argparse
import dataclasses
import logging
import sys
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from .convertscale import ConvertScaleEngine
from .deinterlace import DeinterlaceEngine
from .effects import EffectsEngine
from .effects_core import EffectsSettings
from .errors import VideoEngineError
from .frames import PixelFormat, VideoFrame
from .gpu_context import GPUContext
from .overlay import OverlayEngine
from .transform import TransformEngine

logger = logging.getLogger(__name__)


# ============================================================================
# Argument parsing helpers
# ============================================================================

def parse_effect_assignments(pairs: Sequence[str]) -> Dict[str, object]:
    """Turn ``name=value`` strings into EffectsSettings keyword arguments

    Raises:
        ValueError: Unknown parameter or unparseable value
    """
    types = {f.name: f.type for f in dataclasses.fields(EffectsSettings)
             if f.name not in ('lut', 'lut_path')}
    result = {}
    for pair in pairs:
        name, sep, raw = pair.partition('=')
        name = name.strip().replace('-', '_')
        if not sep or name not in types:
            raise ValueError(f"Unknown effect assignment {pair!r} (known: {', '.join(sorted(types))})")
        kind = types[name]
        raw = raw.strip()
        if kind is bool:
            if raw.lower() not in ('1', '0', 'true', 'false', 'yes', 'no', 'on', 'off'):
                raise ValueError(f"{name} expects a boolean, got {raw!r}")
            result[name] = raw.lower() in ('1', 'true', 'yes', 'on')
        elif kind is int:
            result[name] = int(raw, 0)
        else:
            result[name] = float(raw)
    return result


def parse_size(text: str) -> Tuple[int, int]:
    """'WxH' → (W, H)"""
    try:
        width, height = (int(v) for v in text.lower().split('x'))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}") from None
    return width, height


def parse_crop(text: str) -> Tuple[int, int, int, int]:
    """'T,B,L,R' → (top, bottom, left, right)"""
    try:
        top, bottom, left, right = (int(v) for v in text.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected TOP,BOTTOM,LEFT,RIGHT, got {text!r}") from None
    return top, bottom, left, right


def parse_position(text: str) -> Tuple[float, float]:
    """'X,Y' → (x, y)"""
    try:
        x, y = (float(v) for v in text.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y, got {text!r}") from None
    return x, y


def overlay_position_settings(position: Optional[Tuple[float, float]]) -> Dict[str, object]:
    """Fractions in [0, 1) place the overlay relative to the frame, anything else is pixels"""
    if position is None:
        return {}
    x, y = position
    if 0.0 <= x < 1.0 and 0.0 <= y < 1.0:
        return {'relative_x': x, 'relative_y': y}
    return {'x': int(x), 'y': int(y)}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='python -m moderngl_video',
        description='Process a still image with the GPU video engines',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split('Examples:', 1)[1] if __doc__ else None,
    )
    parser.add_argument('input', help='Input image (any format Pillow reads)')
    parser.add_argument('output', help='Output image')
    parser.add_argument('--format', default='RGBA',
                        help='Pixel format used between engines (default: RGBA)')
    parser.add_argument('--bt709', action='store_true',
                        help='Use the BT.709 matrix for YUV formats (default: BT.601)')
    parser.add_argument('--deinterlace', metavar='METHOD',
                        help='Deinterlace with bob, weave, linear or greedyh')
    parser.add_argument('--effects', nargs='+', metavar='NAME=VALUE', default=[],
                        help='Color grading parameters, e.g. saturation=0 hue=0.5')
    parser.add_argument('--lut', metavar='PATH', help='3-D LUT (.cube or .png)')
    parser.add_argument('--transform', metavar='METHOD',
                        help='Orientation: identity, 90r, 180, 90l, horizontal-flip, '
                             'vertical-flip, ul-lr, ur-ll')
    parser.add_argument('--crop', type=parse_crop, metavar='T,B,L,R',
                        help='Pixels to crop from each edge')
    parser.add_argument('--scale', type=parse_size, metavar='WxH', help='Output size')
    parser.add_argument('--nearest', action='store_true',
                        help='Nearest-neighbour scaling (default: bilinear)')
    parser.add_argument('--add-borders', action='store_true',
                        help='Letterbox/pillarbox to keep the aspect ratio when scaling')
    parser.add_argument('--overlay', metavar='PATH', help='Image to overlay')
    parser.add_argument('--overlay-pos', type=parse_position, metavar='X,Y',
                        help='Overlay position in pixels, or fractions of the frame')
    parser.add_argument('--overlay-alpha', type=float, default=1.0,
                        help='Overlay opacity (default: 1.0)')
    parser.add_argument('--timing', action='store_true', help='Log per-stage timing')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


# ============================================================================
# Processing chain
# ============================================================================

def load_frame(path: str) -> VideoFrame:
    with Image.open(path) as image:
        pixels = np.array(image.convert('RGBA'), dtype=np.uint8)
    return VideoFrame.from_rgba(pixels, PixelFormat.RGBA)


def save_frame(frame: VideoFrame, path: str) -> None:
    Image.fromarray(frame.to_rgba(), 'RGBA').save(path)


def build_chain(args, gpu: GPUContext) -> List[Tuple[object, Optional[Tuple[int, int]]]]:
    """Engines in processing order with their requested output size"""
    timing = args.timing
    chain = []
    if args.deinterlace:
        chain.append((DeinterlaceEngine(gpu, timing, method=args.deinterlace), None))
    effects = parse_effect_assignments(args.effects)
    if args.lut:
        effects['lut_path'] = args.lut
    if effects:
        chain.append((EffectsEngine(gpu, timing, **effects), None))
    if args.transform or args.crop:
        top, bottom, left, right = args.crop or (0, 0, 0, 0)
        chain.append((TransformEngine(gpu, timing, method=args.transform or 'identity',
                                      crop_top=top, crop_bottom=bottom,
                                      crop_left=left, crop_right=right), None))
    if args.scale:
        chain.append((ConvertScaleEngine(gpu, timing, method='nearest' if args.nearest else 'bilinear',
                                         add_borders=args.add_borders), args.scale))
    if args.overlay:
        chain.append((OverlayEngine(gpu, timing, image_path=args.overlay, alpha=args.overlay_alpha,
                                    **overlay_position_settings(args.overlay_pos)), None))
    return chain


def run_chain(frame: VideoFrame, chain) -> VideoFrame:
    for engine, size in chain:
        out_info = frame.info.with_size(*size) if size else None
        engine.configure(frame.info, out_info)
        frame = engine.process(frame)
        if frame.info.width == 0 or frame.info.height == 0:
            raise VideoEngineError(f"{engine.stage} produced an empty frame")
    return frame


def convert(frame: VideoFrame, fmt: PixelFormat, gpu: GPUContext, colorimetry=None) -> VideoFrame:
    """Convert to another pixel format at the same size"""
    if colorimetry is None:
        colorimetry = frame.info.colorimetry
    out_info = dataclasses.replace(frame.info, format=fmt, colorimetry=colorimetry)
    with ConvertScaleEngine(gpu) as engine:
        engine.configure(frame.info, out_info)
        return engine.process(frame)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')
    try:
        work_format = PixelFormat.parse(args.format)
        gpu = GPUContext.shared()
        chain = build_chain(args, gpu)
        frame = load_frame(args.input)
        if work_format != PixelFormat.RGBA:
            frame = convert(frame, work_format, gpu, 1 if args.bt709 else 0)
        frame = run_chain(frame, chain)
        if frame.info.format != PixelFormat.RGBA:
            frame = convert(frame, PixelFormat.RGBA, gpu)
        save_frame(frame, args.output)
    except (VideoEngineError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        return 1

    for engine, _ in chain:
        if args.timing:
            engine.log_timing_summary()
        engine.release()
    logger.info("Wrote %dx%d image to %s", frame.info.width, frame.info.height, args.output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
