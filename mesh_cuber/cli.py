"""Command line interface for the cube slicer."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .objio import default_workers
from .pipeline import SlicingOptions, generate_cubes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mesh-cuber")
    parser.add_argument("input", nargs="?", help="Path to source .obj file")
    parser.add_argument("output", help="Output directory for cubes, textures and metadata.json")
    parser.add_argument("--texture", help="Source texture image")
    parser.add_argument("--job", help="JSON job description; command line values override it")
    parser.add_argument("--grid", type=int, nargs=3, metavar=("X", "Y", "Z"), help="Cube grid dimensions")
    parser.add_argument("--texture-slices", type=int, nargs=2, metavar=("X", "Y"), help="Texture tile grid dimensions")
    parser.add_argument("--texture-scale", type=float, help="Uniform scale applied to packed textures")
    parser.add_argument("--max-texture-size", type=int, help="Largest packed texture side, in pixels")
    parser.add_argument("--mtl", dest="mtl_override", help="Material library name written into every cube")
    parser.add_argument("--workers", type=int, default=None, help=f"Worker threads (default: {default_workers()})")
    parser.add_argument("--glb", action="store_true", help="Also write a .glb per cube")
    parser.add_argument("--no-ebo", action="store_true", help="Skip the binary .ebo companion files")
    parser.add_argument("--debug", action="store_true", help="Write transform debug images next to textures")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    return parser


def options_from_args(args: argparse.Namespace) -> SlicingOptions:
    if args.job:
        opts = SlicingOptions.from_json(Path(args.job).read_text(encoding="utf-8"))
    else:
        opts = SlicingOptions()

    if args.input:
        opts.obj = args.input
    if args.texture:
        opts.texture = args.texture
    if args.grid:
        opts.cube_grid = tuple(args.grid)
    if args.texture_slices:
        opts.texture_slice_x, opts.texture_slice_y = args.texture_slices
    if args.texture_scale is not None:
        opts.texture_scale = args.texture_scale
    if args.max_texture_size is not None:
        opts.max_texture_size = args.max_texture_size
    if args.mtl_override:
        opts.mtl_override = args.mtl_override
    if args.workers is not None:
        opts.workers = args.workers
    if args.glb:
        opts.write_glb = True
    if args.no_ebo:
        opts.write_ebo = False
    if args.debug:
        opts.debug = True
    return opts


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        opts = options_from_args(args)
        metadata = generate_cubes(opts, args.output)
    except (ValueError, OSError) as exc:
        raise SystemExit(f"mesh-cuber: {exc}")

    print(f"Wrote {metadata.occupied_count} cubes ({metadata.vertex_count} vertices) to {args.output}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
