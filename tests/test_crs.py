from __future__ import annotations

import pytest

from tilecp.crs import bbox_to_wgs84, is_wgs84
from tilecp.errors import ConfigError
from tilecp.tiles import BoundingBox


def test_wgs84_bbox_is_unchanged() -> None:
    bbox = BoundingBox(2.0, 1.0, 2.5, 1.5)
    assert bbox_to_wgs84(bbox, "EPSG:4326") is bbox
    assert is_wgs84("epsg:4326")


def test_bbox_from_web_mercator_axis_order() -> None:
    bbox = BoundingBox(222638.98, 111325.14, 278298.73, 166998.31)
    result = bbox_to_wgs84(bbox, "EPSG:3857")

    assert result.left < result.right
    assert result.bottom < result.top
    assert result.left == pytest.approx(2.0, abs=1e-4)
    assert result.bottom == pytest.approx(1.0, abs=1e-4)
    assert result.right == pytest.approx(2.5, abs=1e-4)
    assert result.top == pytest.approx(1.5, abs=1e-4)


def test_invalid_crs() -> None:
    with pytest.raises(ConfigError, match="Invalid CRS"):
        bbox_to_wgs84(BoundingBox(0, 0, 1, 1), "EPSG:not-a-code")
