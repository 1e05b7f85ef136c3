from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

from tilecp.mbtiles import CopyDuplicateMode, Mbtiles, MbtType, TileRow
from tilecp.sources.base import TileInfo
from tilecp.tiles import TileCoord


class FakeSource:
    """In-memory tile source keyed by XYZ coordinate."""

    def __init__(
        self,
        tiles: Mapping[tuple[int, int, int], bytes] | None = None,
        *,
        source_id: str = "fake",
        info: TileInfo | None = None,
        tilejson: Mapping[str, Any] | None = None,
        default: bytes | Callable[[TileCoord], bytes] = b"",
        fail_on: TileCoord | None = None,
        delay: float = 0.0,
    ) -> None:
        self.source_id = source_id
        self.tiles = dict(tiles or {})
        self.info = info or TileInfo("png")
        self.tilejson = dict(tilejson or {"tilejson": "3.0.0", "name": source_id})
        self.default = default
        self.fail_on = fail_on
        self.delay = delay
        self.requested: list[TileCoord] = []
        self.queries: list[str | None] = []
        self.closed = False

    def get_tile_info(self) -> TileInfo:
        return self.info

    def get_tilejson(self) -> dict[str, Any]:
        return dict(self.tilejson)

    async def get_tile(self, coord: TileCoord, url_query: str | None) -> bytes:
        self.requested.append(coord)
        self.queries.append(url_query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if coord == self.fail_on:
            raise RuntimeError(f"boom at {coord}")
        key = (coord.z, coord.x, coord.y)
        if key in self.tiles:
            return self.tiles[key]
        if callable(self.default):
            return self.default(coord)
        return self.default

    async def aclose(self) -> None:
        self.closed = True


class FakeSink:
    """Records sink calls without touching SQLite."""

    def __init__(self, *, empty: bool = True, detected: MbtType = MbtType.FLAT) -> None:
        self.empty = empty
        self.detected = detected
        self.schema: MbtType | None = None
        self.metadata: dict[str, Any] = {}
        self.batches: list[list[TileRow]] = []
        self.hash_calls = 0

    def is_empty(self) -> bool:
        return self.empty

    def init_schema(self, mbt_type: MbtType) -> None:
        self.schema = mbt_type
        self.empty = False

    def detect_type(self) -> MbtType:
        return self.detected

    def insert_metadata(self, tilejson: Mapping[str, Any]) -> None:
        self.metadata.update(tilejson)

    def insert_tiles(
        self,
        mbt_type: MbtType,
        on_duplicate: CopyDuplicateMode,
        batch: Sequence[TileRow],
    ) -> None:
        self.batches.append(list(batch))

    def set_metadata_value(self, key: str, value: str | None) -> None:
        if value is None:
            self.metadata.pop(key, None)
        else:
            self.metadata[key] = value

    def update_agg_tiles_hash(self) -> str:
        self.hash_calls += 1
        return "HASH"

    @property
    def rows(self) -> list[TileRow]:
        return [row for batch in self.batches for row in batch]


def write_mbtiles(
    path: Path,
    tiles: Iterable[TileRow],
    *,
    mbt_type: MbtType = MbtType.FLAT,
    metadata: Mapping[str, Any] | None = None,
) -> Path:
    """Create an MBTiles file holding XYZ tiles and metadata."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with Mbtiles(path).open_or_new() as mbt:
        mbt.init_schema(mbt_type)
        if metadata:
            mbt.insert_metadata(metadata)
        mbt.insert_tiles(mbt_type, CopyDuplicateMode.OVERRIDE, list(tiles))
    return path


def with_src_env(base_env: dict[str, str] | None = None) -> dict[str, str]:
    """Return an environment with repo src/ on PYTHONPATH."""
    env = dict(base_env or os.environ)
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    if src_path.exists():
        existing = env.get("PYTHONPATH", "")
        entries = [entry for entry in existing.split(os.pathsep) if entry]
        src_str = str(src_path)
        if src_str not in entries:
            entries.insert(0, src_str)
        env["PYTHONPATH"] = os.pathsep.join(entries)
    return env
