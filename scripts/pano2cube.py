#!/usr/bin/env python3
import argparse
import logging
import sys
from pathlib import Path

from panocube import config
from panocube.converter import ConversionOptions, assemble_cross, convert_sync
from panocube.errors import PanocubeError
from panocube.faces import FACE_ORDER
from panocube.imageio import save_raster


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Convert an equirectangular panorama into six cube face images"
    )
    parser.add_argument(
        "source",
        help="Panorama path, http(s) URL or data URI",
    )
    parser.add_argument(
        "--out",
        default="cubemap",
        help="Output directory (default: cubemap)",
    )
    parser.add_argument(
        "--face-size",
        type=int,
        default=config.DEFAULT_FACE_SIZE,
        help=f"Edge length of each face in pixels (default: {config.DEFAULT_FACE_SIZE})",
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Use bilinear sampling instead of Lanczos",
    )
    parser.add_argument(
        "--lanczos-radius",
        type=int,
        default=config.DEFAULT_LANCZOS_RADIUS,
        help=f"Lanczos kernel radius (default: {config.DEFAULT_LANCZOS_RADIUS})",
    )
    parser.add_argument(
        "--format",
        default="jpeg",
        choices=sorted(config.IMAGE_FORMATS),
        help="Output image format (default: jpeg)",
    )
    parser.add_argument(
        "--quality",
        type=int,
        default=config.DEFAULT_QUALITY,
        help=f"JPEG/WebP quality 1-100 (default: {config.DEFAULT_QUALITY})",
    )
    parser.add_argument(
        "--cross",
        action="store_true",
        help="Also write a horizontal-cross preview (cross.<ext>)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-face timings",
    )
    return parser.parse_args(argv)


def print_progress(percent, face):
    print(f"[{percent:5.1f}%] {face.value}")


def write_faces(faces, out_dir, image_format, quality, cross):
    ext = config.IMAGE_FORMATS[image_format][1]
    out_dir.mkdir(parents=True, exist_ok=True)
    for face in FACE_ORDER:
        path = out_dir / f"{face.value}{ext}"
        save_raster(faces[face.value], path, quality=quality)
        print(f"Wrote {path}")
    if cross:
        path = out_dir / f"cross{ext}"
        save_raster(assemble_cross(faces), path, quality=quality)
        print(f"Wrote {path}")


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s: %(message)s",
    )
    out_dir = Path(args.out).expanduser().resolve()
    options = ConversionOptions(
        face_size=args.face_size,
        high_quality=not args.fast,
        lanczos_radius=args.lanczos_radius,
        on_progress=print_progress,
        output="raster",
    )
    try:
        faces = convert_sync(args.source, options)
        write_faces(faces, out_dir, args.format, args.quality, args.cross)
    except (PanocubeError, OSError) as e:
        print(f"Conversion failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
