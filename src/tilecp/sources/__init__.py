"""Tile source exports."""

from tilecp.sources.base import SourceSet, TileInfo, TileSource
from tilecp.sources.http import HttpTileSource
from tilecp.sources.mbtiles import MbtilesTileSource
from tilecp.sources.registry import (
    create_source,
    load_sources_config,
    resolve_sources,
    source_entries,
    source_types,
)

__all__ = [
    "HttpTileSource",
    "MbtilesTileSource",
    "SourceSet",
    "TileInfo",
    "TileSource",
    "create_source",
    "load_sources_config",
    "resolve_sources",
    "source_entries",
    "source_types",
]
