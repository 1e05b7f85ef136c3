"""Copy run orchestration: sources, destination, pipeline, and finalization."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

from tilecp import __version__
from tilecp.config import CopyConfiguration
from tilecp.encoding import parse_accept_encoding
from tilecp.errors import ConfigError
from tilecp.mbtiles import Mbtiles, MbtType, TileRow
from tilecp.perf import PerfTracker
from tilecp.pipeline import CopyPipeline
from tilecp.progress import CopyProgress, ProgressReporter
from tilecp.schema import TileSink, finalize, init_schema
from tilecp.sources.base import SourceSet
from tilecp.sources.registry import create_source, load_sources_config, source_entries
from tilecp.tiles import TileCoord, compute_tile_ranges, iterate_tiles

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CopyResult:
    """Summary of a finished copy run."""

    total: int
    empty: int
    non_empty: int
    mbt_type: MbtType
    agg_tiles_hash: str | None
    elapsed: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "empty": self.empty,
            "non_empty": self.non_empty,
            "mbt_type": self.mbt_type.value,
            "agg_tiles_hash": self.agg_tiles_hash,
            "elapsed_seconds": round(self.elapsed, 3),
        }


async def run_tile_copy(
    config: CopyConfiguration,
    sources: SourceSet,
    sink: TileSink,
    *,
    perf: PerfTracker | None = None,
) -> CopyResult:
    """Copy the configured tile ranges from sources into an open sink."""
    perf = perf or PerfTracker(enabled=False)
    accepted = parse_accept_encoding(config.encoding)
    tile_info = sources.output_info(accepted)
    ranges = compute_tile_ranges(config)

    with perf.span("init_schema"):
        mbt_type = init_schema(sink, sources.get_tilejson(), tile_info, config.mbtiles_type)

    progress = CopyProgress.from_ranges(ranges)
    reporter = ProgressReporter(progress)
    LOGGER.info(
        "Copying %s %s tiles from %s to %s",
        progress.total,
        tile_info,
        config.source,
        config.output_file,
    )

    async def fetch(coord: TileCoord) -> bytes:
        return await sources.get_tile_content(coord, config.url_query, accepted)

    def write(batch: Sequence[TileRow]) -> None:
        sink.insert_tiles(mbt_type, config.on_duplicate, batch)

    pipeline = CopyPipeline(
        fetch,
        write,
        progress,
        concurrency=config.concurrency,
        queue_size=config.queue_size,
        batch_size=config.batch_size,
        batch_seconds=config.batch_seconds,
        reporter=reporter,
        perf=perf,
    )
    with perf.span("copy"):
        await pipeline.run(iterate_tiles(ranges))
    reporter.report_final()

    with perf.span("finalize"):
        agg_hash = finalize(
            sink,
            set_meta=config.set_meta,
            skip_agg_tiles_hash=config.skip_agg_tiles_hash,
            non_empty=progress.non_empty,
        )
    return CopyResult(
        total=progress.total,
        empty=progress.empty,
        non_empty=progress.non_empty,
        mbt_type=mbt_type,
        agg_tiles_hash=agg_hash,
        elapsed=progress.elapsed,
    )


async def _copy(
    config: CopyConfiguration,
    entries: Sequence[tuple[str, Mapping[str, Any]]],
    perf: PerfTracker,
) -> CopyResult:
    sources = SourceSet([create_source(source_id, entry) for source_id, entry in entries])
    try:
        with Mbtiles(config.output_file).open_or_new() as sink:
            return await run_tile_copy(config, sources, sink, perf=perf)
    finally:
        await sources.aclose()


def save_config(
    config: CopyConfiguration,
    entries: Sequence[tuple[str, Mapping[str, Any]]],
    path: Path,
) -> None:
    """Write the resolved sources and copy settings as JSON; ``-`` prints them.

    The ``sources`` section is a valid ``--config`` file on its own.
    """
    sources: dict[str, dict[str, Any]] = {}
    for source_id, entry in entries:
        saved = dict(entry)
        if "path" in saved:
            saved["path"] = str(Path(saved["path"]).resolve())
        sources[source_id] = saved
    text = json.dumps({"sources": sources, "copy": config.as_dict()}, indent=2) + "\n"
    if str(path) == "-":
        sys.stdout.write(text)
        return
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to save config {path}: {exc}") from exc
    LOGGER.info("Configuration saved to %s", path)


def copy_tiles(config: CopyConfiguration) -> CopyResult:
    """Run a complete copy and return its summary."""
    LOGGER.info("tilecp tile copier v%s", __version__)
    configured = load_sources_config(config.config_path) if config.config_path else {}
    if config.config_path:
        LOGGER.info("Using sources config %s", config.config_path)
    entries = source_entries(config.source, configured)
    if config.save_config is not None:
        save_config(config, entries, config.save_config)
    else:
        LOGGER.info("Use --save-config to save or print configuration.")
    perf = PerfTracker(enabled=config.metrics_json is not None)
    perf.start()
    result = asyncio.run(_copy(config, entries, perf))
    perf.stop()
    if config.metrics_json is not None:
        perf.write(config.metrics_json, **result.as_dict())
        LOGGER.info("Timing metrics written to %s", config.metrics_json)
    return result
