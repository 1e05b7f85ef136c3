"""Tile coordinates, tile rectangles, and bounding-box to tile-range helpers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator, Sequence, Tuple

if TYPE_CHECKING:
    from tilecp.config import CopyConfiguration

MAX_ZOOM = 30
WEB_MERCATOR_LAT = 85.05112877980659


@dataclass(frozen=True, order=True)
class TileCoord:
    """A single tile in the XYZ tile pyramid."""

    z: int
    x: int
    y: int

    def __str__(self) -> str:
        return f"{self.z}/{self.x}/{self.y}"


@dataclass(frozen=True)
class TileRect:
    """Inclusive range of tile indices at one zoom level."""

    zoom: int
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    def __post_init__(self) -> None:
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise ValueError(f"Invalid tile rectangle: {self}")

    def __str__(self) -> str:
        return f"{self.zoom}: ({self.min_x},{self.min_y}) - ({self.max_x},{self.max_y})"

    def size(self) -> int:
        """Return the number of tiles covered by the rectangle."""
        return (self.max_x - self.min_x + 1) * (self.max_y - self.min_y + 1)

    def is_overlapping(self, other: TileRect) -> bool:
        """Return True when both rectangles share at least one tile."""
        return (
            self.zoom == other.zoom
            and self.min_x <= other.max_x
            and self.max_x >= other.min_x
            and self.min_y <= other.max_y
            and self.max_y >= other.min_y
        )

    def is_row_adjacent(self, other: TileRect) -> bool:
        """Return True when other has the same rows and touches self horizontally."""
        return (
            self.zoom == other.zoom
            and self.min_y == other.min_y
            and self.max_y == other.max_y
            and (other.min_x == self.max_x + 1 or other.max_x + 1 == self.min_x)
        )

    def difference(self, other: TileRect) -> list[TileRect]:
        """Return up to four rectangles covering self minus other.

        Left and right parts keep the full height of self, top and bottom parts
        are limited to the columns shared with other.
        """
        parts: list[TileRect] = []
        if self.min_x < other.min_x:
            parts.append(TileRect(self.zoom, self.min_x, self.min_y, other.min_x - 1, self.max_y))
        if self.max_x > other.max_x:
            parts.append(TileRect(self.zoom, other.max_x + 1, self.min_y, self.max_x, self.max_y))
        inner_min_x = max(self.min_x, other.min_x)
        inner_max_x = min(self.max_x, other.max_x)
        if self.min_y < other.min_y:
            parts.append(TileRect(self.zoom, inner_min_x, self.min_y, inner_max_x, other.min_y - 1))
        if self.max_y > other.max_y:
            parts.append(TileRect(self.zoom, inner_min_x, other.max_y + 1, inner_max_x, self.max_y))
        return parts

    def coords(self) -> Iterator[TileCoord]:
        """Yield every coordinate in the rectangle, column by column."""
        for x in range(self.min_x, self.max_x + 1):
            for y in range(self.min_y, self.max_y + 1):
                yield TileCoord(self.zoom, x, y)


@dataclass(frozen=True)
class BoundingBox:
    """Geographic bounds in degrees."""

    left: float
    bottom: float
    right: float
    top: float

    @classmethod
    def parse(cls, value: str) -> BoundingBox:
        """Parse a ``left,bottom,right,top`` string."""
        parts = [part.strip() for part in value.replace(" ", ",").split(",") if part.strip()]
        if len(parts) != 4:
            raise ValueError(f"Invalid bounding box: {value}")
        try:
            left, bottom, right, top = (float(part) for part in parts)
        except ValueError as exc:
            raise ValueError(f"Invalid bounding box: {value}") from exc
        if left > right:
            raise ValueError(
                f"Invalid bounding box: {value} (left exceeds right; split boxes crossing the "
                "antimeridian in two)"
            )
        if bottom > top:
            raise ValueError(f"Invalid bounding box: {value} (bottom exceeds top)")
        return cls(left, bottom, right, top)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.bottom, self.right, self.top)


WORLD = BoundingBox(-180.0, -WEB_MERCATOR_LAT, 180.0, WEB_MERCATOR_LAT)


def tile_index(lon: float, lat: float, zoom: int) -> tuple[int, int]:
    """Convert longitude and latitude to the XYZ tile index at a zoom level."""
    n = float(1 << zoom)
    max_value = (1 << zoom) - 1
    lat_rad = math.radians(lat)
    x = math.floor((lon + 180.0) / 360.0 * n)
    y = math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n)
    return (min(max(x, 0), max_value), min(max(y, 0), max_value))


def bbox_to_rect(bbox: BoundingBox, zoom: int) -> TileRect:
    """Return the tile rectangle covering a bounding box at a zoom level."""
    min_x, min_y = tile_index(bbox.left, bbox.top, zoom)
    max_x, max_y = tile_index(bbox.right, bbox.bottom, zoom)
    return TileRect(zoom, min_x, min_y, max(min_x, max_x), max(min_y, max_y))


def append_rect(rectangles: list[TileRect], new_rect: TileRect) -> None:
    """Add a rectangle to the list without covering any tile twice."""
    for rect in rectangles:
        if rect == new_rect:
            return
        if rect.is_overlapping(new_rect):
            for part in new_rect.difference(rect):
                append_rect(rectangles, part)
            return

    merged = new_rect
    index = _adjacent_index(rectangles, merged)
    while index is not None:
        neighbour = rectangles.pop(index)
        merged = TileRect(
            merged.zoom,
            min(merged.min_x, neighbour.min_x),
            merged.min_y,
            max(merged.max_x, neighbour.max_x),
            merged.max_y,
        )
        index = _adjacent_index(rectangles, merged)
    rectangles.append(merged)


def _adjacent_index(rectangles: Sequence[TileRect], rect: TileRect) -> int | None:
    for index, candidate in enumerate(rectangles):
        if candidate.is_row_adjacent(rect):
            return index
    return None


def resolve_zooms(
    *,
    min_zoom: int | None,
    max_zoom: int | None,
    zoom_levels: Sequence[int] = (),
) -> list[int]:
    """Expand a min/max zoom pair or return the explicit zoom list."""
    if max_zoom is not None:
        start = min_zoom if min_zoom is not None else 0
        return list(range(start, max_zoom + 1))
    return list(zoom_levels)


def tile_ranges(zooms: Iterable[int], boxes: Sequence[BoundingBox]) -> list[TileRect]:
    """Compute non-overlapping tile rectangles for every zoom and box."""
    ranges: list[TileRect] = []
    boxes = list(boxes) or [WORLD]
    for zoom in zooms:
        for bbox in boxes:
            append_rect(ranges, bbox_to_rect(bbox, zoom))
    return ranges


def compute_tile_ranges(config: CopyConfiguration) -> list[TileRect]:
    """Compute tile rectangles for a copy configuration."""
    zooms = resolve_zooms(
        min_zoom=config.min_zoom,
        max_zoom=config.max_zoom,
        zoom_levels=config.zoom_levels,
    )
    return tile_ranges(zooms, config.bboxes)


def iterate_tiles(rectangles: Iterable[TileRect]) -> Iterator[TileCoord]:
    """Lazily yield every tile coordinate of the given rectangles in order."""
    for rect in rectangles:
        yield from rect.coords()


def total_tiles(rectangles: Iterable[TileRect]) -> int:
    return sum(rect.size() for rect in rectangles)
