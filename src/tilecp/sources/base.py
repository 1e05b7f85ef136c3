"""Shared tile source types, the source protocol, and multi-source composition."""

from __future__ import annotations

import zlib
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from tilecp.encoding import IDENTITY, negotiate, recode
from tilecp.errors import ConfigError, SourceError
from tilecp.tilejson import merge_tilejson
from tilecp.tiles import TileCoord

IMAGE_FORMATS = ("png", "jpeg", "webp", "gif")
ENCODABLE_FORMATS = ("mvt", "json")

_FORMAT_ALIASES = {
    "jpg": "jpeg",
    "pbf": "mvt",
    "mvt": "mvt",
    "geojson": "json",
}


def normalize_format(value: str) -> str:
    """Normalize a format name or file extension to a known tile format."""
    name = value.strip().lower().lstrip(".")
    name = _FORMAT_ALIASES.get(name, name)
    if name not in IMAGE_FORMATS + ENCODABLE_FORMATS:
        raise ConfigError(f"Unsupported tile format: {value}")
    return name


def sniff_tile(data: bytes) -> tuple[str | None, str]:
    """Guess ``(format, encoding)`` of a tile payload from its magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return ("png", IDENTITY)
    if data.startswith(b"\xff\xd8\xff"):
        return ("jpeg", IDENTITY)
    if data.startswith((b"GIF87a", b"GIF89a")):
        return ("gif", IDENTITY)
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return ("webp", IDENTITY)
    if data.startswith(b"\x1f\x8b"):
        return (None, "gzip")
    if data[:1] == b"\x78" and len(data) > 1 and (data[0] * 256 + data[1]) % 31 == 0:
        return (None, "zlib")
    if data.lstrip()[:1] in (b"{", b"["):
        return ("json", IDENTITY)
    return (None, IDENTITY)


@dataclass(frozen=True)
class TileInfo:
    """Format and content encoding of the tiles a source produces."""

    format: str
    encoding: str = IDENTITY

    def __str__(self) -> str:
        if self.encoding == IDENTITY:
            return self.format
        return f"{self.format} ({self.encoding})"

    def is_encodable(self) -> bool:
        return self.format in ENCODABLE_FORMATS

    @property
    def metadata_format(self) -> str:
        """Return the value of the MBTiles ``format`` metadata key."""
        return "pbf" if self.format == "mvt" else self.format


class TileSource(Protocol):
    """Protocol implemented by tile sources."""

    source_id: str

    def get_tile_info(self) -> TileInfo:
        ...

    def get_tilejson(self) -> dict[str, Any]:
        ...

    async def get_tile(self, coord: TileCoord, url_query: str | None) -> bytes:
        ...

    async def aclose(self) -> None:
        ...


class SourceSet:
    """One or more sources fetched together for every tile coordinate.

    Several sources can only be combined when they all produce vector tiles;
    their payloads are concatenated, which is a valid MVT merge.
    """

    def __init__(self, sources: Sequence[TileSource]) -> None:
        if not sources:
            raise ConfigError("At least one source is required.")
        formats = {source.get_tile_info().format for source in sources}
        if len(formats) > 1:
            raise ConfigError(
                "Cannot combine sources with different formats: "
                + ", ".join(sorted(formats))
            )
        if len(sources) > 1 and formats != {"mvt"}:
            raise ConfigError("Only vector tile sources can be combined.")
        self.sources = list(sources)

    @property
    def source_ids(self) -> list[str]:
        return [source.source_id for source in self.sources]

    def get_tile_info(self) -> TileInfo:
        if len(self.sources) == 1:
            return self.sources[0].get_tile_info()
        return TileInfo(self.sources[0].get_tile_info().format, IDENTITY)

    def get_tilejson(self) -> dict[str, Any]:
        return merge_tilejson(source.get_tilejson() for source in self.sources)

    def output_info(self, accepted: Sequence[str]) -> TileInfo:
        """Return the tile info of payloads produced for an encoding preference."""
        info = self.get_tile_info()
        if not info.is_encodable():
            return info
        if len(self.sources) == 1 and info.encoding in accepted:
            return info
        return TileInfo(info.format, negotiate(list(accepted)))

    async def get_tile_content(
        self,
        coord: TileCoord,
        url_query: str | None,
        accepted: Sequence[str],
    ) -> bytes:
        """Fetch a tile from every source and encode it for the destination."""
        target = self.output_info(accepted)
        if len(self.sources) == 1:
            source = self.sources[0]
            data = await source.get_tile(coord, url_query)
            return self._recode(data, source.get_tile_info(), target, coord)
        parts: list[bytes] = []
        for source in self.sources:
            data = await source.get_tile(coord, url_query)
            if data:
                parts.append(self._recode(data, source.get_tile_info(), TileInfo("mvt"), coord))
        if not parts:
            return b""
        return self._recode(b"".join(parts), TileInfo("mvt"), target, coord)

    @staticmethod
    def _recode(data: bytes, current: TileInfo, target: TileInfo, coord: TileCoord) -> bytes:
        if not data or not current.is_encodable() or current.encoding == target.encoding:
            return data
        try:
            return recode(data, current.encoding, target.encoding)
        except (OSError, EOFError, ValueError, zlib.error) as exc:
            raise SourceError(f"Unable to re-encode tile {coord}: {exc}") from exc

    async def aclose(self) -> None:
        for source in self.sources:
            await source.aclose()
