"""TileJSON merging for one or more tile sources."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

TILEJSON_VERSION = "3.0.0"


def _union_bounds(values: Iterable[list[float]]) -> list[float] | None:
    result: list[float] | None = None
    for bounds in values:
        if len(bounds) != 4:
            continue
        if result is None:
            result = list(bounds)
        else:
            result = [
                min(result[0], bounds[0]),
                min(result[1], bounds[1]),
                max(result[2], bounds[2]),
                max(result[3], bounds[3]),
            ]
    return result


def merge_tilejson(documents: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge TileJSON documents from several sources into one.

    Names, descriptions, and attributions are joined, zoom limits widened,
    bounds unioned, and vector layers concatenated. The first source's center
    and any other keys win.
    """
    docs = [dict(doc) for doc in documents]
    if not docs:
        return {"tilejson": TILEJSON_VERSION}
    if len(docs) == 1:
        merged = dict(docs[0])
        merged["tilejson"] = TILEJSON_VERSION
        return merged

    merged: dict[str, Any] = {"tilejson": TILEJSON_VERSION}
    for key in ("name", "description", "attribution"):
        values = [str(doc[key]) for doc in docs if doc.get(key)]
        if values:
            separator = "," if key == "name" else "\n"
            merged[key] = separator.join(dict.fromkeys(values))
    minzooms = [doc["minzoom"] for doc in docs if doc.get("minzoom") is not None]
    maxzooms = [doc["maxzoom"] for doc in docs if doc.get("maxzoom") is not None]
    if minzooms:
        merged["minzoom"] = min(minzooms)
    if maxzooms:
        merged["maxzoom"] = max(maxzooms)
    bounds = _union_bounds(doc["bounds"] for doc in docs if doc.get("bounds"))
    if bounds is not None:
        merged["bounds"] = bounds
    layers: list[Any] = []
    for doc in docs:
        layers.extend(doc.get("vector_layers") or [])
    if layers:
        merged["vector_layers"] = layers
    for doc in docs:
        for key, value in doc.items():
            merged.setdefault(key, value)
    merged["tilejson"] = TILEJSON_VERSION
    return merged
