"""MBTiles archive access: schema creation, batched inserts, and metadata."""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Any, Iterable, Mapping, Sequence, Tuple

from tilecp.errors import SinkError

LOGGER = logging.getLogger(__name__)

TileRow = Tuple[int, int, int, bytes]

AGG_TILES_HASH = "agg_tiles_hash"

_FLAT_SCHEMA = """
CREATE TABLE IF NOT EXISTS metadata (name TEXT NOT NULL PRIMARY KEY, value TEXT);
CREATE TABLE IF NOT EXISTS tiles (
    zoom_level INTEGER NOT NULL,
    tile_column INTEGER NOT NULL,
    tile_row INTEGER NOT NULL,
    tile_data BLOB,
    PRIMARY KEY (zoom_level, tile_column, tile_row)
);
"""

_FLAT_WITH_HASH_SCHEMA = """
CREATE TABLE IF NOT EXISTS metadata (name TEXT NOT NULL PRIMARY KEY, value TEXT);
CREATE TABLE IF NOT EXISTS tiles_with_hash (
    zoom_level INTEGER NOT NULL,
    tile_column INTEGER NOT NULL,
    tile_row INTEGER NOT NULL,
    tile_data BLOB,
    tile_hash TEXT,
    PRIMARY KEY (zoom_level, tile_column, tile_row)
);
CREATE VIEW IF NOT EXISTS tiles AS
    SELECT zoom_level, tile_column, tile_row, tile_data FROM tiles_with_hash;
"""

_NORMALIZED_SCHEMA = """
CREATE TABLE IF NOT EXISTS metadata (name TEXT NOT NULL PRIMARY KEY, value TEXT);
CREATE TABLE IF NOT EXISTS map (
    zoom_level INTEGER NOT NULL,
    tile_column INTEGER NOT NULL,
    tile_row INTEGER NOT NULL,
    tile_id TEXT,
    PRIMARY KEY (zoom_level, tile_column, tile_row)
);
CREATE TABLE IF NOT EXISTS images (tile_data BLOB, tile_id TEXT NOT NULL PRIMARY KEY);
CREATE VIEW IF NOT EXISTS tiles AS
    SELECT map.zoom_level AS zoom_level, map.tile_column AS tile_column,
           map.tile_row AS tile_row, images.tile_data AS tile_data
    FROM map JOIN images ON images.tile_id = map.tile_id;
CREATE VIEW IF NOT EXISTS tiles_with_hash AS
    SELECT map.zoom_level AS zoom_level, map.tile_column AS tile_column,
           map.tile_row AS tile_row, images.tile_data AS tile_data,
           images.tile_id AS tile_hash
    FROM map JOIN images ON images.tile_id = map.tile_id;
"""


class MbtType(str, Enum):
    """Physical layout of an MBTiles archive."""

    FLAT = "flat"
    FLAT_WITH_HASH = "flat-with-hash"
    NORMALIZED = "normalized"


class CopyDuplicateMode(str, Enum):
    """Behavior when an inserted tile already exists in the destination."""

    OVERRIDE = "override"
    IGNORE = "ignore"
    ABORT = "abort"


_CONFLICT_CLAUSE = {
    CopyDuplicateMode.OVERRIDE: "INSERT OR REPLACE",
    CopyDuplicateMode.IGNORE: "INSERT OR IGNORE",
    CopyDuplicateMode.ABORT: "INSERT",
}

_SCALAR_METADATA = (
    "name",
    "version",
    "description",
    "attribution",
    "type",
    "legend",
    "template",
    "format",
    "generator",
    "minzoom",
    "maxzoom",
)


def invert_y(zoom: int, y: int) -> int:
    """Flip a row index between XYZ and TMS numbering."""
    return (1 << zoom) - 1 - y


def tile_hash(data: bytes) -> str:
    """Return the upper-case MD5 hex digest used as tile id."""
    return hashlib.md5(data).hexdigest().upper()


def tilejson_to_metadata(tilejson: Mapping[str, Any]) -> dict[str, str]:
    """Flatten a TileJSON mapping into MBTiles metadata rows."""
    metadata: dict[str, str] = {}
    extra: dict[str, Any] = {}
    for key, value in tilejson.items():
        if value is None or key in ("tilejson", "tiles"):
            continue
        if key in ("bounds", "center"):
            metadata[key] = ",".join(str(item) for item in value)
        elif key in _SCALAR_METADATA or isinstance(value, (str, int, float)):
            metadata[key] = str(value)
        else:
            extra[key] = value
    if extra:
        metadata["json"] = json.dumps(extra, sort_keys=True)
    return metadata


def metadata_to_tilejson(metadata: Mapping[str, str]) -> dict[str, Any]:
    """Rebuild a TileJSON mapping from MBTiles metadata rows."""
    tilejson: dict[str, Any] = {"tilejson": "3.0.0"}
    for key, value in metadata.items():
        if key == "json":
            try:
                extra = json.loads(value)
            except json.JSONDecodeError:
                LOGGER.warning("Ignoring malformed json metadata value.")
                continue
            if isinstance(extra, dict):
                tilejson.update(extra)
        elif key in ("bounds", "center"):
            try:
                tilejson[key] = [float(item) for item in value.split(",")]
            except ValueError:
                LOGGER.warning("Ignoring malformed %s metadata value: %s", key, value)
        elif key in ("minzoom", "maxzoom"):
            try:
                tilejson[key] = int(value)
            except ValueError:
                LOGGER.warning("Ignoring malformed %s metadata value: %s", key, value)
        elif key != AGG_TILES_HASH:
            tilejson[key] = value
    return tilejson


class Mbtiles:
    """A single MBTiles file and its SQLite connection."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._conn: sqlite3.Connection | None = None

    def __repr__(self) -> str:
        return f"Mbtiles({str(self.path)!r})"

    def __enter__(self) -> Mbtiles:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise SinkError(f"{self.path} is not open")
        return self._conn

    def open_or_new(self) -> Mbtiles:
        """Open the file for writing, creating it when missing."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Inserts run on a worker thread; a single writer owns the connection.
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
        except (OSError, sqlite3.Error) as exc:
            raise SinkError(f"Unable to open {self.path}: {exc}") from exc
        return self

    def open_readonly(self) -> Mbtiles:
        if not self.path.exists():
            raise SinkError(f"MBTiles file not found: {self.path}")
        try:
            self._conn = sqlite3.connect(
                f"{self.path.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False
            )
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to open {self.path}: {exc}") from exc
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _object_names(self, kind: str) -> set[str]:
        rows = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = ?", (kind,)
        ).fetchall()
        return {row[0] for row in rows}

    def is_empty(self) -> bool:
        """Return True when the database has no tables, views, or indexes."""
        try:
            (count,) = self.conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to inspect {self.path}: {exc}") from exc
        return count == 0

    def init_schema(self, mbt_type: MbtType) -> None:
        """Create the tables and views for a layout."""
        script = {
            MbtType.FLAT: _FLAT_SCHEMA,
            MbtType.FLAT_WITH_HASH: _FLAT_WITH_HASH_SCHEMA,
            MbtType.NORMALIZED: _NORMALIZED_SCHEMA,
        }[mbt_type]
        LOGGER.debug("Creating %s schema in %s", mbt_type.value, self.path)
        try:
            self.conn.executescript(script)
            self.conn.commit()
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to create {mbt_type.value} schema: {exc}") from exc

    def detect_type(self) -> MbtType:
        """Detect the layout of an existing archive."""
        try:
            tables = self._object_names("table")
            views = self._object_names("view")
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to inspect {self.path}: {exc}") from exc
        if "tiles_with_hash" in tables:
            return MbtType.FLAT_WITH_HASH
        if {"map", "images"} <= tables and "tiles" in views:
            return MbtType.NORMALIZED
        if "tiles" in tables:
            return MbtType.FLAT
        raise SinkError(f"{self.path} is not a recognized MBTiles file")

    def insert_metadata(self, tilejson: Mapping[str, Any]) -> None:
        """Store a TileJSON document as metadata rows."""
        rows = sorted(tilejson_to_metadata(tilejson).items())
        try:
            with self.conn:
                self.conn.executemany(
                    "INSERT OR REPLACE INTO metadata (name, value) VALUES (?, ?)", rows
                )
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to write metadata: {exc}") from exc

    def set_metadata_value(self, key: str, value: str | None) -> None:
        """Set one metadata value, deleting the key when value is None."""
        try:
            with self.conn:
                if value is None:
                    self.conn.execute("DELETE FROM metadata WHERE name = ?", (key,))
                else:
                    self.conn.execute(
                        "INSERT OR REPLACE INTO metadata (name, value) VALUES (?, ?)",
                        (key, value),
                    )
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to set metadata {key}: {exc}") from exc

    def get_metadata(self) -> dict[str, str]:
        try:
            rows = self.conn.execute("SELECT name, value FROM metadata").fetchall()
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to read metadata: {exc}") from exc
        return {name: value for name, value in rows if value is not None}

    def get_metadata_value(self, key: str) -> str | None:
        return self.get_metadata().get(key)

    def insert_tiles(
        self,
        mbt_type: MbtType,
        on_duplicate: CopyDuplicateMode,
        batch: Sequence[TileRow],
    ) -> None:
        """Insert a batch of XYZ tiles in one transaction."""
        if not batch:
            return
        insert = _CONFLICT_CLAUSE[on_duplicate]
        rows = [(z, x, invert_y(z, y), data) for z, x, y, data in batch]
        try:
            with self.conn:
                if mbt_type is MbtType.FLAT:
                    self.conn.executemany(
                        f"{insert} INTO tiles (zoom_level, tile_column, tile_row, tile_data) "
                        "VALUES (?, ?, ?, ?)",
                        rows,
                    )
                elif mbt_type is MbtType.FLAT_WITH_HASH:
                    self.conn.executemany(
                        f"{insert} INTO tiles_with_hash "
                        "(zoom_level, tile_column, tile_row, tile_data, tile_hash) "
                        "VALUES (?, ?, ?, ?, ?)",
                        [(z, x, row, data, tile_hash(data)) for z, x, row, data in rows],
                    )
                else:
                    hashed = [(z, x, row, data, tile_hash(data)) for z, x, row, data in rows]
                    self.conn.executemany(
                        "INSERT OR IGNORE INTO images (tile_id, tile_data) VALUES (?, ?)",
                        [(digest, data) for _, _, _, data, digest in hashed],
                    )
                    self.conn.executemany(
                        f"{insert} INTO map (zoom_level, tile_column, tile_row, tile_id) "
                        "VALUES (?, ?, ?, ?)",
                        [(z, x, row, digest) for z, x, row, _, digest in hashed],
                    )
        except sqlite3.IntegrityError as exc:
            raise SinkError(f"Tile already exists in {self.path}: {exc}") from exc
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to insert {len(batch)} tiles: {exc}") from exc
        LOGGER.debug("Inserted %s tiles into %s", len(batch), self.path)

    def get_tile(self, zoom: int, x: int, y: int) -> bytes | None:
        """Return XYZ tile bytes or None when the tile is missing."""
        try:
            row = self.conn.execute(
                "SELECT tile_data FROM tiles "
                "WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?",
                (zoom, x, invert_y(zoom, y)),
            ).fetchone()
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to read tile {zoom}/{x}/{y}: {exc}") from exc
        if row is None or row[0] is None:
            return None
        return bytes(row[0])

    def iter_tiles(self) -> Iterable[TileRow]:
        """Yield ``(z, column, tms_row, data)`` in aggregate-hash order."""
        return self.conn.execute(
            "SELECT zoom_level, tile_column, tile_row, tile_data FROM tiles "
            "ORDER BY zoom_level, tile_column, tile_row"
        )

    def calc_agg_tiles_hash(self) -> str:
        """Compute the MD5 over every tile's coordinates and bytes."""
        digest = hashlib.md5()
        try:
            for zoom, column, row, data in self.iter_tiles():
                digest.update(str(zoom).encode())
                digest.update(str(column).encode())
                digest.update(str(row).encode())
                if data is not None:
                    digest.update(bytes(data))
        except sqlite3.Error as exc:
            raise SinkError(f"Unable to compute {AGG_TILES_HASH}: {exc}") from exc
        return digest.hexdigest().upper()

    def update_agg_tiles_hash(self) -> str:
        """Recompute and store the aggregate tiles hash."""
        value = self.calc_agg_tiles_hash()
        LOGGER.debug("Updating %s to %s", AGG_TILES_HASH, value)
        self.set_metadata_value(AGG_TILES_HASH, value)
        return value
