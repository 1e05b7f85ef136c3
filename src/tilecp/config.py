"""Copy configuration model and argument parsing helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from tilecp.errors import ConfigError
from tilecp.mbtiles import CopyDuplicateMode, MbtType
from tilecp.tiles import MAX_ZOOM, BoundingBox

ENV_CONFIG = "TILECP_CONFIG"

DEFAULT_ENCODING = "gzip"
DEFAULT_CONCURRENCY = 1
DEFAULT_QUEUE_SIZE = 500
DEFAULT_BATCH_SIZE = 1000
DEFAULT_BATCH_SECONDS = 60.0


@dataclass(frozen=True)
class CopyConfiguration:
    """Everything a copy run needs, fixed before the run starts."""

    source: str
    output_file: Path
    mbtiles_type: MbtType | None = None
    url_query: str | None = None
    encoding: str = DEFAULT_ENCODING
    on_duplicate: CopyDuplicateMode = CopyDuplicateMode.OVERRIDE
    concurrency: int = DEFAULT_CONCURRENCY
    queue_size: int = DEFAULT_QUEUE_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_seconds: float = DEFAULT_BATCH_SECONDS
    bboxes: tuple[BoundingBox, ...] = ()
    min_zoom: int | None = None
    max_zoom: int | None = None
    zoom_levels: tuple[int, ...] = ()
    skip_agg_tiles_hash: bool = False
    set_meta: tuple[tuple[str, str], ...] = ()
    config_path: Path | None = None
    metrics_json: Path | None = None
    save_config: Path | None = None

    def __post_init__(self) -> None:
        if self.max_zoom is None and not self.zoom_levels:
            raise ConfigError("Either --max-zoom or --zoom-levels is required.")
        if self.zoom_levels and (self.min_zoom is not None or self.max_zoom is not None):
            raise ConfigError("--zoom-levels cannot be combined with --min-zoom/--max-zoom.")
        zooms = list(self.zoom_levels) + [
            value for value in (self.min_zoom, self.max_zoom) if value is not None
        ]
        for zoom in zooms:
            if not 0 <= zoom <= MAX_ZOOM:
                raise ConfigError(f"Zoom level {zoom} is outside 0..{MAX_ZOOM}.")
        if (
            self.min_zoom is not None
            and self.max_zoom is not None
            and self.min_zoom > self.max_zoom
        ):
            raise ConfigError("--min-zoom must not exceed --max-zoom.")
        for name in ("concurrency", "queue_size", "batch_size"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name.replace('_', '-')} must be at least 1.")
        if self.batch_seconds <= 0:
            raise ConfigError("batch-seconds must be positive.")

    def as_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "output_file": str(self.output_file),
            "mbtiles_type": self.mbtiles_type.value if self.mbtiles_type else None,
            "url_query": self.url_query,
            "encoding": self.encoding,
            "on_duplicate": self.on_duplicate.value,
            "concurrency": self.concurrency,
            "queue_size": self.queue_size,
            "batch_size": self.batch_size,
            "batch_seconds": self.batch_seconds,
            "bboxes": [list(bbox.as_tuple()) for bbox in self.bboxes],
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "zoom_levels": list(self.zoom_levels),
            "skip_agg_tiles_hash": self.skip_agg_tiles_hash,
            "set_meta": dict(self.set_meta),
        }


def parse_key_value(value: str) -> tuple[str, str]:
    """Parse a ``key=value`` pair; both sides must be non-empty."""
    key, sep, item = value.partition("=")
    if not sep or not key or not item:
        raise ConfigError(f"Invalid key=value pair: {value}")
    return key, item


def parse_zoom_levels(value: str) -> list[int]:
    """Parse a comma separated list of zoom levels."""
    zooms: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            zooms.append(int(part))
        except ValueError as exc:
            raise ConfigError(f"Invalid zoom level: {part}") from exc
    return zooms


def resolve_config_path(value: str | None) -> Path | None:
    """Return the sources config path from the argument or environment."""
    if value:
        return Path(value)
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Path(env_path)
    return None
