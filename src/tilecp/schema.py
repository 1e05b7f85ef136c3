"""Destination schema selection, initial metadata, and post-copy finalization."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Protocol, Sequence

from tilecp import __version__
from tilecp.mbtiles import CopyDuplicateMode, MbtType, TileRow
from tilecp.sources.base import TileInfo

LOGGER = logging.getLogger(__name__)

DEFAULT_MBT_TYPE = MbtType.NORMALIZED
GENERATOR = f"tilecp v{__version__}"


class TileSink(Protocol):
    """Destination archive operations used by a copy run."""

    def is_empty(self) -> bool:
        ...

    def init_schema(self, mbt_type: MbtType) -> None:
        ...

    def detect_type(self) -> MbtType:
        ...

    def insert_metadata(self, tilejson: Mapping[str, Any]) -> None:
        ...

    def insert_tiles(
        self,
        mbt_type: MbtType,
        on_duplicate: CopyDuplicateMode,
        batch: Sequence[TileRow],
    ) -> None:
        ...

    def set_metadata_value(self, key: str, value: str | None) -> None:
        ...

    def update_agg_tiles_hash(self) -> str:
        ...


def init_schema(
    sink: TileSink,
    tilejson: Mapping[str, Any],
    tile_info: TileInfo,
    override: MbtType | None = None,
) -> MbtType:
    """Prepare the destination and return the layout to insert with.

    An empty destination gets the requested layout (normalized by default) and
    the merged source metadata. A destination that already has a schema keeps
    its detected layout.
    """
    if sink.is_empty():
        mbt_type = override or DEFAULT_MBT_TYPE
        LOGGER.info("Creating %s schema", mbt_type.value)
        sink.init_schema(mbt_type)
        metadata = dict(tilejson)
        metadata["format"] = tile_info.metadata_format
        metadata["generator"] = GENERATOR
        sink.insert_metadata(metadata)
        return mbt_type
    mbt_type = sink.detect_type()
    if override is not None and override is not mbt_type:
        LOGGER.warning(
            "Destination already uses the %s schema; ignoring requested %s schema.",
            mbt_type.value,
            override.value,
        )
    else:
        LOGGER.info("Appending to existing %s schema", mbt_type.value)
    return mbt_type


def finalize(
    sink: TileSink,
    *,
    set_meta: Iterable[tuple[str, str]],
    skip_agg_tiles_hash: bool,
    non_empty: int,
) -> str | None:
    """Apply metadata overrides and refresh the aggregate hash.

    Returns the new aggregate hash, or None when it was not computed.
    """
    for key, value in set_meta:
        LOGGER.info("Setting metadata key=%s value=%s", key, value)
        sink.set_metadata_value(key, value)
    if skip_agg_tiles_hash:
        return None
    if non_empty == 0:
        LOGGER.info("No tiles were copied, skipping agg_tiles_hash computation")
        return None
    LOGGER.info("Computing agg_tiles_hash value...")
    return sink.update_agg_tiles_hash()
