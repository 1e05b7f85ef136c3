"""Tile source reading from an existing MBTiles file."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Mapping

from tilecp.encoding import IDENTITY
from tilecp.errors import SinkError, SourceError
from tilecp.mbtiles import Mbtiles, metadata_to_tilejson
from tilecp.sources.base import TileInfo, normalize_format, sniff_tile
from tilecp.tiles import TileCoord


class MbtilesTileSource:
    """Serve tiles from an MBTiles archive opened read-only."""

    def __init__(self, source_id: str, path: Path) -> None:
        self.source_id = source_id
        self.path = Path(path)
        self._mbt = Mbtiles(self.path)
        # one read connection shared by the fetch workers
        self._lock = threading.Lock()
        try:
            self._mbt.open_readonly()
            metadata = self._mbt.get_metadata()
            self._info = self._detect_info(metadata.get("format"))
        except (SinkError, sqlite3.Error) as exc:
            self._mbt.close()
            raise SourceError(f"Unable to open source {source_id}: {exc}") from exc
        self._tilejson = metadata_to_tilejson(metadata)
        self._tilejson.setdefault("name", source_id)

    @classmethod
    def from_config(cls, source_id: str, entry: Mapping[str, Any]) -> MbtilesTileSource:
        return cls(source_id, Path(str(entry["path"])))

    def _detect_info(self, declared: str | None) -> TileInfo:
        sample = self._first_tile()
        sniffed_format, encoding = sniff_tile(sample) if sample else (None, IDENTITY)
        if declared:
            tile_format = normalize_format(declared)
        elif sniffed_format:
            tile_format = sniffed_format
        elif encoding != IDENTITY:
            tile_format = "mvt"
        else:
            raise SourceError(f"Cannot determine tile format of {self.path}")
        return TileInfo(tile_format, encoding)

    def _first_tile(self) -> bytes:
        row = self._mbt.conn.execute(
            "SELECT tile_data FROM tiles WHERE tile_data IS NOT NULL LIMIT 1"
        ).fetchone()
        return bytes(row[0]) if row else b""

    def get_tile_info(self) -> TileInfo:
        return self._info

    def get_tilejson(self) -> dict[str, Any]:
        return dict(self._tilejson)

    def _read_tile(self, coord: TileCoord) -> bytes | None:
        with self._lock:
            return self._mbt.get_tile(coord.z, coord.x, coord.y)

    async def get_tile(self, coord: TileCoord, url_query: str | None) -> bytes:
        try:
            data = await asyncio.to_thread(self._read_tile, coord)
        except SinkError as exc:
            raise SourceError(str(exc)) from exc
        return data or b""

    async def aclose(self) -> None:
        with self._lock:
            self._mbt.close()
