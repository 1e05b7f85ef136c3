from __future__ import annotations

import logging

from tilecp.mbtiles import MbtType
from tilecp.schema import DEFAULT_MBT_TYPE, GENERATOR, finalize, init_schema
from tilecp.sources.base import TileInfo
from tests.utils import FakeSink


def test_init_schema_creates_default_layout() -> None:
    sink = FakeSink()
    mbt_type = init_schema(sink, {"name": "roads"}, TileInfo("mvt", "gzip"))
    assert mbt_type is DEFAULT_MBT_TYPE is MbtType.NORMALIZED
    assert sink.schema is MbtType.NORMALIZED
    assert sink.metadata["format"] == "pbf"
    assert sink.metadata["generator"] == GENERATOR
    assert sink.metadata["name"] == "roads"


def test_init_schema_uses_requested_layout_for_new_file() -> None:
    sink = FakeSink()
    assert init_schema(sink, {}, TileInfo("png"), MbtType.FLAT) is MbtType.FLAT
    assert sink.schema is MbtType.FLAT
    assert sink.metadata["format"] == "png"


def test_init_schema_keeps_existing_layout(caplog) -> None:
    sink = FakeSink(empty=False, detected=MbtType.FLAT_WITH_HASH)
    caplog.set_level(logging.WARNING, logger="tilecp.schema")
    mbt_type = init_schema(sink, {"name": "x"}, TileInfo("png"), MbtType.FLAT)
    assert mbt_type is MbtType.FLAT_WITH_HASH
    assert sink.schema is None
    assert sink.metadata == {}
    assert "ignoring requested flat schema" in caplog.text


def test_finalize_sets_metadata_and_hash() -> None:
    sink = FakeSink(empty=False)
    result = finalize(
        sink, set_meta=[("name", "renamed")], skip_agg_tiles_hash=False, non_empty=3
    )
    assert result == "HASH"
    assert sink.hash_calls == 1
    assert sink.metadata["name"] == "renamed"


def test_finalize_skips_hash_when_requested_or_nothing_copied() -> None:
    sink = FakeSink(empty=False)
    assert finalize(sink, set_meta=[], skip_agg_tiles_hash=True, non_empty=5) is None
    assert finalize(sink, set_meta=[], skip_agg_tiles_hash=False, non_empty=0) is None
    assert sink.hash_calls == 0
