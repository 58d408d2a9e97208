"""Command line entry point.

Usage:
    wayslope monaco.osm.pbf srtm.tif slopes.json --filter highway
    python -m wayslope monaco.osm.pbf srtm.tif slopes.geojson --format geojson

Exit codes: 0 on success (per-way drops included), 1 on a fatal error,
2 on invalid arguments.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from wayslope import __version__
from wayslope.constants import LogConfig, OutputConfig, PipelineConfig, RasterConfig, SamplingMethod
from wayslope.core.errors import FatalError
from wayslope.output import write_report
from wayslope.pipeline import run

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wayslope",
        description="Compute per-segment slope profiles of OSM ways from an elevation raster",
    )
    parser.add_argument("extract", type=Path, help="OSM PBF extract")
    parser.add_argument("raster", type=Path, help="Elevation raster in geographic coordinates (e.g. GeoTIFF)")
    parser.add_argument("output", type=Path, help="Output file")
    parser.add_argument(
        "--filter",
        dest="filter_expression",
        default=None,
        help="Tag filter, e.g. 'highway=primary,cycleway' (default: all ways)",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=OutputConfig.FORMATS,
        default=None,
        help="Output format (default: geojson for *.geojson outputs, json otherwise)",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        default=PipelineConfig.DEFAULT_WORKERS,
        help=f"Worker threads for the slope stage (default: {PipelineConfig.DEFAULT_WORKERS})",
    )
    parser.add_argument(
        "--sampling",
        choices=[m.value for m in SamplingMethod],
        default=RasterConfig.DEFAULT_SAMPLING.value,
        help="Raster sampling method (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=LogConfig.LEVELS,
        default=LogConfig.DEFAULT_LEVEL,
        help="Logging verbosity (default: %(default)s)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _resolve_format(output: Path, requested: Optional[str]) -> str:
    if requested:
        return requested
    return "geojson" if output.suffix.lower() == ".geojson" else OutputConfig.DEFAULT_FORMAT


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # --help and --version exit with 0, usage errors with 2
        return EXIT_OK if exc.code in (0, None) else EXIT_USAGE

    logging.basicConfig(level=args.log_level, format=LogConfig.FORMAT)
    output_format = _resolve_format(args.output, args.output_format)

    try:
        report = run(
            extract_path=args.extract,
            raster_path=args.raster,
            filter_expression=args.filter_expression,
            workers=args.workers,
            sampling=SamplingMethod(args.sampling),
        )
    except FatalError as exc:
        logger.error(f"{exc.code}: {exc.message}")
        return EXIT_FATAL

    try:
        write_report(report, args.output, output_format=output_format)
    except OSError as exc:
        logger.error(f"Cannot write {args.output}: {exc}")
        return EXIT_FATAL

    summary = report.summary()
    logger.info(
        f"Done: {summary['features_emitted']} ways written, {summary['features_dropped']} dropped, "
        f"diagnostics {summary['diagnostics']}"
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
