"""Benchmark copy throughput against a synthetic tile source."""

from __future__ import annotations

import argparse
import asyncio
import csv
import gzip
from pathlib import Path
from time import perf_counter
from typing import Any

from tilecp.config import CopyConfiguration
from tilecp.copier import run_tile_copy
from tilecp.mbtiles import Mbtiles, MbtType
from tilecp.sources.base import SourceSet, TileInfo
from tilecp.tiles import TileCoord


class SyntheticSource:
    """Vector tile source that returns a small generated payload per tile."""

    source_id = "synthetic"

    def __init__(self, delay: float, empty_every: int) -> None:
        self.delay = delay
        self.empty_every = empty_every

    def get_tile_info(self) -> TileInfo:
        return TileInfo("mvt", "gzip")

    def get_tilejson(self) -> dict[str, Any]:
        return {"tilejson": "3.0.0", "name": "synthetic"}

    async def get_tile(self, coord: TileCoord, url_query: str | None) -> bytes:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.empty_every and (coord.x + coord.y) % self.empty_every == 0:
            return b""
        return gzip.compress(f"tile {coord}".encode("utf-8"), mtime=0)

    async def aclose(self) -> None:
        return None


def _parse_levels(value: str) -> list[int]:
    return [int(part) for part in value.split(",") if part.strip()]


def main() -> int:
    """CLI entrypoint for copy benchmarks."""
    parser = argparse.ArgumentParser(description="Benchmark tile copy throughput.")
    parser.add_argument(
        "--max-zoom",
        type=int,
        default=6,
        help="Copy zoom levels 0..max-zoom of the whole world.",
    )
    parser.add_argument(
        "--concurrency",
        type=_parse_levels,
        default=[1, 4, 16],
        help="Comma separated concurrency levels to compare.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=0.0,
        help="Simulated fetch latency in seconds.",
    )
    parser.add_argument(
        "--empty-every",
        type=int,
        default=7,
        help="Make every Nth tile empty (0 disables).",
    )
    parser.add_argument(
        "--mbtiles-type",
        choices=[item.value for item in MbtType],
        default=MbtType.NORMALIZED.value,
        help="Destination schema.",
    )
    parser.add_argument(
        "--output-dir",
        default="benchmarks/copy",
        help="Base output directory.",
    )
    parser.add_argument(
        "--csv-path",
        help="Optional CSV output path override.",
    )
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = Path(args.csv_path) if args.csv_path else output_dir / "copy.csv"

    rows: list[dict[str, object]] = []
    for concurrency in args.concurrency:
        output_file = output_dir / f"copy_c{concurrency:03d}.mbtiles"
        if output_file.exists():
            output_file.unlink()
        config = CopyConfiguration(
            source="synthetic",
            output_file=output_file,
            mbtiles_type=MbtType(args.mbtiles_type),
            concurrency=concurrency,
            max_zoom=args.max_zoom,
            skip_agg_tiles_hash=True,
        )
        sources = SourceSet([SyntheticSource(args.delay, args.empty_every)])
        start = perf_counter()
        with Mbtiles(output_file).open_or_new() as sink:
            result = asyncio.run(run_tile_copy(config, sources, sink))
        elapsed = perf_counter() - start
        rows.append(
            {
                "concurrency": concurrency,
                "tiles": result.total,
                "non_empty": result.non_empty,
                "seconds": round(elapsed, 6),
                "tiles_per_second": round(result.total / elapsed, 1) if elapsed else 0.0,
            }
        )

    csv_path.parent.mkdir(parents=True, exist_ok=True)
    with csv_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(
            handle,
            fieldnames=["concurrency", "tiles", "non_empty", "seconds", "tiles_per_second"],
        )
        writer.writeheader()
        writer.writerows(rows)

    print(f"Wrote {len(rows)} rows to {csv_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
