"""Command-line entry point for the GDx export pipeline.

Usage:
    gdx-export SOURCE DESTINATION [--formats jpg png pdf] [--clean] [--dry-run]
"""

import argparse
import logging
import sys
from pathlib import Path

from gdx_export.config import (
    DEFAULT_DPI,
    DEFAULT_FORMATS,
    DEFAULT_INKSCAPE,
    DEFAULT_MAGICK,
    DEFAULT_TIMEOUT,
    SUPPORTED_FORMATS,
    PipelineConfig,
    setup_logging,
)
from gdx_export.exceptions import ValidationError
from gdx_export.export_sort import GDxExportSorter

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BATCH_FAILED = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gdx-export",
        description="Convert GDx export reports and file them under canonical patient names.",
    )
    parser.add_argument("source", type=Path, help="Directory containing one subdirectory per export")
    parser.add_argument("destination", type=Path, help="Archive directory for converted files")
    parser.add_argument(
        "--inkscape", type=Path, default=DEFAULT_INKSCAPE,
        help=f"Inkscape executable (default: {DEFAULT_INKSCAPE})",
    )
    parser.add_argument(
        "--magick", type=Path, default=DEFAULT_MAGICK,
        help=f"ImageMagick executable (default: {DEFAULT_MAGICK})",
    )
    parser.add_argument(
        "--formats", nargs="+", choices=SUPPORTED_FORMATS, default=list(DEFAULT_FORMATS),
        help="Output formats to produce (default: %(default)s)",
    )
    parser.add_argument("--dpi", type=int, default=DEFAULT_DPI, help="PNG resolution (default: %(default)s)")
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT,
        help="Seconds to wait for each converter call (default: %(default)s)",
    )
    parser.add_argument(
        "--clean", action="store_true",
        help="Delete each source batch once all requested outputs are archived",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Report intended actions without running converters or touching files",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = PipelineConfig(
        source_dir=args.source,
        dest_dir=args.destination,
        inkscape=args.inkscape,
        magick=args.magick,
        formats=tuple(args.formats),
        dpi=args.dpi,
        timeout=args.timeout,
        clean=args.clean,
        dry_run=args.dry_run,
    )

    try:
        summary = GDxExportSorter(config).execute()
    except ValidationError as exc:
        logger.error("%s", exc)
        return EXIT_INVALID

    # --- Human-readable summary ---
    prefix = "[dry run] " if summary["dry_run"] else ""
    print(
        f"\n{prefix}Processed {summary['batches']} batch(es): "
        f"{summary['succeeded']} succeeded, {summary['failed']} failed, "
        f"{summary['cleaned']} cleaned up"
    )
    for result in summary["results"]:
        if result.ok:
            for fmt, dest in result.destinations.items():
                print(f"  {result.batch_dir.name}  [{fmt}]  -> {dest}")
        else:
            print(f"  {result.batch_dir.name}  FAILED  {'; '.join(result.errors)}")

    return EXIT_BATCH_FAILED if summary["failed"] else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
