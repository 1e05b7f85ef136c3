"""Command-line interface for tilecp."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, TypeVar

from tilecp import __version__
from tilecp.config import (
    DEFAULT_BATCH_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_ENCODING,
    DEFAULT_QUEUE_SIZE,
    CopyConfiguration,
    parse_key_value,
    parse_zoom_levels,
    resolve_config_path,
)
from tilecp.copier import copy_tiles
from tilecp.crs import WGS84, bbox_to_wgs84
from tilecp.errors import ConfigError, TileCopyError
from tilecp.logging_utils import LogOptions, configure_logging
from tilecp.mbtiles import CopyDuplicateMode, MbtType
from tilecp.tiles import BoundingBox

LOGGER = logging.getLogger("tilecp.cli")

T = TypeVar("T")


def _argparse_type(parser_fn: Callable[[str], T]) -> Callable[[str], T]:
    """Adapt a ConfigError-raising parser into an argparse type callable."""

    def convert(value: str) -> T:
        try:
            return parser_fn(value)
        except (ConfigError, ValueError) as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc

    convert.__name__ = parser_fn.__name__
    return convert


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the tilecp command."""
    parser = argparse.ArgumentParser(
        prog="tilecp",
        description="Bulk copy tiles from a tile source into an MBTiles file.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce log output to warnings and errors.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON on stderr.",
    )
    parser.add_argument(
        "--log-file",
        help="Optional path for JSON log output.",
    )

    parser.add_argument(
        "-s",
        "--source",
        required=True,
        help="Source id, URL template, or MBTiles path; comma separate to combine sources.",
    )
    parser.add_argument(
        "-o",
        "--output-file",
        required=True,
        help="Path to the MBTiles file to copy to.",
    )
    parser.add_argument(
        "--config",
        help="Path to a JSON sources config (defaults to $TILECP_CONFIG).",
    )
    parser.add_argument(
        "--mbtiles-type",
        "--dst-type",
        dest="mbtiles_type",
        choices=[item.value for item in MbtType],
        help="Schema of a new destination file. Ignored if the file exists. "
        "Defaults to normalized.",
    )
    parser.add_argument(
        "--url-query",
        help="Query string passed to sources that support it.",
    )
    parser.add_argument(
        "--encoding",
        "--encodings",
        dest="encoding",
        default=DEFAULT_ENCODING,
        help="Accepted encodings as in an Accept-Encoding header; 'identity' disables "
        "compression. Ignored for image tiles.",
    )
    parser.add_argument(
        "--on-duplicate",
        choices=[item.value for item in CopyDuplicateMode],
        default=CopyDuplicateMode.OVERRIDE.value,
        help="What to do when a tile already exists in the destination.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help="Number of tiles fetched concurrently.",
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        default=DEFAULT_QUEUE_SIZE,
        help="Fetched tiles waiting to be written before fetching pauses.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help="Tiles written per insert batch.",
    )
    parser.add_argument(
        "--batch-seconds",
        type=float,
        default=DEFAULT_BATCH_SECONDS,
        help="Write a partial batch once this many seconds passed since the last write.",
    )
    parser.add_argument(
        "--bbox",
        action="append",
        type=_argparse_type(BoundingBox.parse),
        default=[],
        help="Bounds to copy as left,bottom,right,top (repeatable). Overlaps are copied once.",
    )
    parser.add_argument(
        "--bbox-crs",
        default=WGS84,
        help="CRS of the --bbox values.",
    )
    zooms = parser.add_argument_group("zoom selection")
    zooms.add_argument("--min-zoom", "--minzoom", dest="min_zoom", type=int)
    zooms.add_argument("--max-zoom", "--maxzoom", dest="max_zoom", type=int)
    zooms.add_argument(
        "-z",
        "--zoom-levels",
        "--zooms",
        dest="zoom_levels",
        type=_argparse_type(parse_zoom_levels),
        action="append",
        default=[],
        help="Comma separated zoom levels to copy (repeatable).",
    )
    parser.add_argument(
        "--skip-agg-tiles-hash",
        action="store_true",
        help="Do not compute the agg_tiles_hash metadata value.",
    )
    parser.add_argument(
        "--set-meta",
        metavar="KEY=VALUE",
        action="append",
        type=_argparse_type(parse_key_value),
        default=[],
        help="Set a metadata value after copying (repeatable).",
    )
    parser.add_argument(
        "--metrics-json",
        help="Write timing metrics for the run to this JSON file.",
    )
    parser.add_argument(
        "--save-config",
        help="Save the resolved sources and copy settings as JSON (use - to print them).",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> CopyConfiguration:
    """Build an immutable copy configuration from parsed arguments."""
    bboxes = tuple(bbox_to_wgs84(bbox, args.bbox_crs) for bbox in args.bbox)
    zoom_levels = tuple(zoom for group in args.zoom_levels for zoom in group)
    return CopyConfiguration(
        source=args.source,
        output_file=Path(args.output_file),
        mbtiles_type=MbtType(args.mbtiles_type) if args.mbtiles_type else None,
        url_query=args.url_query,
        encoding=args.encoding,
        on_duplicate=CopyDuplicateMode(args.on_duplicate),
        concurrency=args.concurrency,
        queue_size=args.queue_size,
        batch_size=args.batch_size,
        batch_seconds=args.batch_seconds,
        bboxes=bboxes,
        min_zoom=args.min_zoom,
        max_zoom=args.max_zoom,
        zoom_levels=zoom_levels,
        skip_agg_tiles_hash=args.skip_agg_tiles_hash,
        set_meta=tuple(args.set_meta),
        config_path=resolve_config_path(args.config),
        metrics_json=Path(args.metrics_json) if args.metrics_json else None,
        save_config=Path(args.save_config) if args.save_config else None,
    )


def _report_error(error: BaseException) -> None:
    """Log a fatal error, or print it when error logging is disabled."""
    if LOGGER.isEnabledFor(logging.ERROR) and logging.getLogger().handlers:
        LOGGER.error("%s", error)
    else:
        print(error, file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI entrypoint and return an exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    log_options = LogOptions(
        verbose=args.verbose or 0,
        quiet=bool(args.quiet),
        log_file=Path(args.log_file) if args.log_file else None,
        json_console=bool(args.log_json),
    )
    configure_logging(log_options)

    if args.zoom_levels and (args.min_zoom is not None or args.max_zoom is not None):
        parser.error("--zoom-levels cannot be combined with --min-zoom/--max-zoom")
    if not args.zoom_levels and args.max_zoom is None:
        parser.error("--max-zoom or --zoom-levels is required")

    try:
        config = config_from_args(args)
        result = copy_tiles(config)
    except TileCopyError as exc:
        _report_error(exc)
        return 1
    LOGGER.debug("Copy summary: %s", result.as_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
