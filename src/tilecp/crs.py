"""Reproject bounding boxes given in other CRSs to longitude/latitude."""

from __future__ import annotations

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError

from tilecp.errors import ConfigError
from tilecp.tiles import BoundingBox

WGS84 = "EPSG:4326"


def normalize_crs(value: str | CRS) -> CRS:
    """Normalize CRS input into a pyproj CRS object."""
    try:
        return CRS.from_user_input(value)
    except CRSError as exc:
        raise ConfigError(f"Invalid CRS: {value}") from exc


def is_wgs84(value: str | CRS) -> bool:
    return normalize_crs(value) == normalize_crs(WGS84)


def _linspace(start: float, stop: float, count: int) -> list[float]:
    if count <= 1:
        return [start]
    step = (stop - start) / (count - 1)
    return [start + step * index for index in range(count)]


def bbox_to_wgs84(bbox: BoundingBox, src: str | CRS, *, densify_pts: int = 21) -> BoundingBox:
    """Return the lon/lat envelope of a box expressed in ``src``.

    Edges are densified so curved edges in the target CRS are not clipped.
    """
    if is_wgs84(src):
        return bbox
    tx = Transformer.from_crs(normalize_crs(src), normalize_crs(WGS84), always_xy=True)
    steps = densify_pts + 2
    xs: list[float] = []
    ys: list[float] = []
    for x in _linspace(bbox.left, bbox.right, steps):
        xs.extend([x, x])
        ys.extend([bbox.bottom, bbox.top])
    for y in _linspace(bbox.bottom, bbox.top, steps):
        xs.extend([bbox.left, bbox.right])
        ys.extend([y, y])
    out_xs, out_ys = tx.transform(xs, ys)
    return BoundingBox(min(out_xs), min(out_ys), max(out_xs), max(out_ys))
