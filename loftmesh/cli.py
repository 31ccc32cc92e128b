"""
Command line front end: build a lathe mesh from a profile (and optional
height map) and export it, check it, or open the preview window.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from . import config
from .config import LatheParams, NormalMode
from .export import FORMATS, ExportError
from .heightfield import decode_height_field
from .log import setup_logging
from .profile import load_profile, save_profile
from .session import LoftSession

logger = logging.getLogger(__name__)


def _bool(text: str) -> bool:
    value = text.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {text!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loftmesh",
        description="Revolve a Bézier profile into a displaced, capped, printable mesh.")

    io_group = parser.add_argument_group("input / output")
    io_group.add_argument("--profile", type=Path, help="Profile JSON (anchors).  Default: straight cylinder.")
    io_group.add_argument("--save-profile", type=Path, help="Write the profile in use to this JSON file.")
    io_group.add_argument("--texture", type=Path, help="Height map image (red channel drives displacement).")
    io_group.add_argument("--contrast", type=float, default=1.0, help="Contrast applied to the height map.")
    io_group.add_argument("--blur", type=float, default=0.0, help="Gaussian blur radius for the height map (px).")
    io_group.add_argument("--out", type=Path, help="Output file.  Format from --format or the suffix.")
    io_group.add_argument("--format", choices=FORMATS, help="Export format (.stl suffix means stl-binary).")
    io_group.add_argument("--check", action="store_true", help="Report whether body + caps are watertight.")
    io_group.add_argument("--preview", action="store_true", help="Open the pyglet preview window.")

    geo = parser.add_argument_group("geometry")
    geo.add_argument("--rings", type=int, default=config.RINGS, help="Rings along the axis.")
    geo.add_argument("--segments", type=int, default=config.SEGMENTS, help="Segments around the axis.")
    geo.add_argument("--radius", type=float, default=config.BASE_RADIUS, help="Base radius of a new profile.")
    geo.add_argument("--height", type=float, default=config.HEIGHT, help="Total height.")
    geo.add_argument("--twist", type=float, default=config.TWIST_DEG, help="Twist of the top ring in degrees.")
    geo.add_argument("--taper", type=float, default=config.TAPER, help="Radius multiplier at the top ring.")
    geo.add_argument("--min-radius", type=float, default=config.MIN_RADIUS, help="Smallest allowed radius.")

    disp = parser.add_argument_group("displacement")
    disp.add_argument("--displacement-scale", type=float, default=config.DISPLACEMENT_SCALE)
    disp.add_argument("--displacement-bias", type=float, default=config.DISPLACEMENT_BIAS)
    disp.add_argument("--normal-mode", choices=[m.value for m in NormalMode], default=config.NORMAL_MODE)
    disp.add_argument("--falloff-enabled", type=_bool, default=config.FALLOFF_ENABLED)
    disp.add_argument("--falloff-top", type=float, default=config.FALLOFF_TOP)
    disp.add_argument("--falloff-bottom", type=float, default=config.FALLOFF_BOTTOM)
    disp.add_argument("--falloff-power", type=float, default=config.FALLOFF_POWER)

    sm = parser.add_argument_group("smoothing")
    sm.add_argument("--enable-smoothing", type=_bool, default=config.ENABLE_SMOOTHING)
    sm.add_argument("--geometry-smoothing", type=int, default=config.GEOMETRY_SMOOTHING)
    sm.add_argument("--smoothing-passes", type=int, default=config.SMOOTHING_PASSES)

    tex = parser.add_argument_group("texture mapping")
    tex.add_argument("--texture-repeat-u", type=float, default=config.TEXTURE_REPEAT_U)
    tex.add_argument("--texture-repeat-v", type=float, default=config.TEXTURE_REPEAT_V)
    tex.add_argument("--texture-rotation", type=float, default=config.TEXTURE_ROTATION_DEG)
    tex.add_argument("--texture-opacity", type=float, default=config.TEXTURE_OPACITY)

    exp = parser.add_argument_group("export transform")
    exp.add_argument("--export-scale", type=float, default=config.EXPORT_SCALE)
    exp.add_argument("--swap-yz", type=_bool, default=config.EXPORT_SWAP_YZ,
                     help="Make the revolution axis the vertical axis of the export.")

    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for debug output.")
    parser.add_argument("--log-file", type=Path, help="Also write the log to this file.")
    return parser


def params_from_args(args: argparse.Namespace) -> LatheParams:
    values = {name: getattr(args, name) for name in LatheParams.field_names()}
    return LatheParams(**values)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO,
                  str(args.log_file) if args.log_file else None)

    params = params_from_args(args)
    profile = None
    if args.profile is not None:
        try:
            profile = load_profile(args.profile)
        except (OSError, ValueError, KeyError) as e:
            logger.error("[error] cannot read profile %s: %s", args.profile, e)
            return 1

    session = LoftSession(params, profile)
    session.loader.contrast = args.contrast
    session.loader.blur_radius = args.blur
    try:
        logger.info("[info] grid %d × %d  radius %.3f  height %.3f",
                    params.ring_count, params.segment_count, params.radius, params.height)

        if args.texture is not None and args.preview and args.out is None and not args.check:
            # the window opens at once; the height map lands on a later frame
            session.load_texture(str(args.texture))
        elif args.texture is not None:
            try:
                field = decode_height_field(str(args.texture), args.contrast, args.blur)
            except OSError as e:
                logger.error("[error] height map %s could not be decoded: %s", args.texture, e)
                return 1
            session.texture_path = str(args.texture)
            session.set_height_field(field)
        session.current()

        if args.save_profile is not None:
            save_profile(session.profile, args.save_profile)
            logger.info("[profile] saved → %s", args.save_profile)

        if args.check:
            report = session.check_watertight()
            logger.info("[check] watertight: %s  (boundary edges %d, non-manifold %d)",
                        report.watertight, report.boundary_edges, report.non_manifold_edges)
            if not report.watertight:
                return 1

        if args.out is not None:
            try:
                session.export(str(args.out), args.format)
            except ExportError as e:
                logger.error("[error] %s", e)
                return 1

        if args.preview:
            from .viewer import run_viewer
            out = str(args.out) if args.out is not None else "loftmesh.stl"
            run_viewer(session, out, args.format)
    finally:
        session.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
