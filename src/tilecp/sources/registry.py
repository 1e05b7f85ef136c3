"""Source registry: build tile sources from config entries or source arguments."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

from tilecp.contracts import validate_sources_config
from tilecp.errors import ConfigError
from tilecp.sources.base import SourceSet, TileSource
from tilecp.sources.http import HttpTileSource
from tilecp.sources.mbtiles import MbtilesTileSource

SourceFactory = Callable[[str, Mapping[str, Any]], TileSource]

LOGGER = logging.getLogger(__name__)

_SOURCE_FACTORIES: dict[str, SourceFactory] = {
    "http": HttpTileSource.from_config,
    "mbtiles": MbtilesTileSource.from_config,
}


def source_types() -> list[str]:
    return sorted(_SOURCE_FACTORIES)


def create_source(source_id: str, entry: Mapping[str, Any]) -> TileSource:
    """Instantiate a source from a config entry."""
    source_type = str(entry.get("type", ""))
    try:
        factory = _SOURCE_FACTORIES[source_type]
    except KeyError as exc:
        raise ConfigError(f"Unknown source type '{source_type}' for source {source_id}") from exc
    return factory(source_id, entry)


def load_sources_config(path: Path) -> dict[str, dict[str, Any]]:
    """Load and validate a sources config file.

    Relative ``path`` values of file-based sources are resolved against the
    directory holding the config file.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Unable to read sources config {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Sources config {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigError("Sources config must be a JSON object.")
    validate_sources_config(payload)
    sources: dict[str, dict[str, Any]] = {}
    for source_id, raw in payload["sources"].items():
        entry = dict(raw)
        if "path" in entry and not Path(entry["path"]).is_absolute():
            entry["path"] = str(path.parent / entry["path"])
        sources[source_id] = entry
    return sources


def detect_source(value: str) -> tuple[str, dict[str, Any]] | None:
    """Build an ad-hoc ``(id, entry)`` pair from a URL template or MBTiles path."""
    if value.startswith(("http://", "https://")):
        host = urlsplit(value).hostname or "http"
        return host, {"type": "http", "url": value}
    candidate = Path(value)
    if candidate.suffix.lower() == ".mbtiles" and candidate.is_file():
        return candidate.stem, {"type": "mbtiles", "path": str(candidate)}
    return None


def source_entries(
    source: str,
    configured: Mapping[str, Mapping[str, Any]] | None = None,
) -> list[tuple[str, dict[str, Any]]]:
    """Return the ``(id, entry)`` pairs named by a comma separated source argument."""
    configured = configured or {}
    names = [name.strip() for name in source.split(",") if name.strip()]
    if not names:
        raise ConfigError("No source specified.")
    if len(names) > 1 and any(name.startswith(("http://", "https://")) for name in names):
        # URL templates may contain commas, treat the whole value as one source.
        names = [source.strip()]
    entries: list[tuple[str, dict[str, Any]]] = []
    for name in names:
        if name in configured:
            entries.append((name, dict(configured[name])))
            continue
        detected = detect_source(name)
        if detected is None:
            available = ", ".join(sorted(configured)) or "none"
            raise ConfigError(f"Unknown source: {name} (configured sources: {available})")
        LOGGER.info("Auto-detected %s source %s", detected[1]["type"], detected[0])
        entries.append(detected)
    return entries


def resolve_sources(
    source: str,
    configured: Mapping[str, Mapping[str, Any]] | None = None,
) -> SourceSet:
    """Resolve a comma separated source argument into a SourceSet."""
    entries = source_entries(source, configured)
    return SourceSet([create_source(source_id, entry) for source_id, entry in entries])
