"""XYZ tile source backed by an HTTP URL template."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Mapping
from urllib.parse import urlsplit

import httpx

from tilecp.encoding import IDENTITY
from tilecp.errors import ConfigError, SourceError
from tilecp.sources.base import TileInfo, normalize_format
from tilecp.tiles import TileCoord

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
EMPTY_STATUSES = frozenset({204, 404})


def _guess_format(url: str) -> str:
    suffix = PurePosixPath(urlsplit(url).path).suffix
    if not suffix:
        raise ConfigError(f"Cannot guess tile format from URL, set 'format': {url}")
    return normalize_format(suffix)


class HttpTileSource:
    """Fetch tiles from a ``{z}/{x}/{y}`` URL template.

    ``{-y}`` in the template requests TMS row numbering. Missing tiles (HTTP 204
    or 404) are reported as empty payloads, every other non-success status is
    an error.
    """

    def __init__(
        self,
        source_id: str,
        url: str,
        *,
        tile_format: str | None = None,
        encoding: str = IDENTITY,
        headers: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        tilejson: Mapping[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if "{z}" not in url or "{x}" not in url or ("{y}" not in url and "{-y}" not in url):
            raise ConfigError(f"URL template must contain {{z}}, {{x}} and {{y}}: {url}")
        self.source_id = source_id
        self.url = url
        self._info = TileInfo(
            normalize_format(tile_format) if tile_format else _guess_format(url),
            encoding,
        )
        self._tilejson = dict(tilejson or {})
        self._client = httpx.AsyncClient(
            headers=dict(headers or {}),
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(cls, source_id: str, entry: Mapping[str, Any]) -> HttpTileSource:
        return cls(
            source_id,
            str(entry["url"]),
            tile_format=entry.get("format"),
            encoding=str(entry.get("encoding", IDENTITY)),
            headers=entry.get("headers"),
            timeout=float(entry.get("timeout", DEFAULT_TIMEOUT)),
            tilejson=entry.get("tilejson"),
        )

    def get_tile_info(self) -> TileInfo:
        return self._info

    def get_tilejson(self) -> dict[str, Any]:
        tilejson: dict[str, Any] = {"tilejson": "3.0.0", "name": self.source_id}
        tilejson.update(self._tilejson)
        return tilejson

    def tile_url(self, coord: TileCoord, url_query: str | None = None) -> str:
        url = (
            self.url.replace("{z}", str(coord.z))
            .replace("{x}", str(coord.x))
            .replace("{-y}", str((1 << coord.z) - 1 - coord.y))
            .replace("{y}", str(coord.y))
        )
        if url_query:
            url = f"{url}{'&' if '?' in url else '?'}{url_query.lstrip('?')}"
        return url

    async def get_tile(self, coord: TileCoord, url_query: str | None) -> bytes:
        url = self.tile_url(coord, url_query)
        try:
            response = await self._client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise SourceError(f"Failed to fetch tile {coord} from {self.source_id}: {exc}") from exc
        if response.status_code in EMPTY_STATUSES:
            LOGGER.debug("No tile at %s", url, extra={"tile": str(coord)})
            return b""
        if not response.is_success:
            raise SourceError(
                f"Failed to fetch tile {coord} from {self.source_id}: "
                f"HTTP {response.status_code}"
            )
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()
