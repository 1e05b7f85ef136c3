"""Accept-Encoding parsing and tile payload re-encoding."""

from __future__ import annotations

import gzip
import zlib

from tilecp.errors import EncodingParseError

IDENTITY = "identity"
GZIP = "gzip"
ZLIB = "zlib"

SUPPORTED_ENCODINGS = (GZIP, ZLIB, IDENTITY)
_ALIASES = {"x-gzip": GZIP, "deflate": ZLIB, "*": GZIP}


def parse_accept_encoding(value: str) -> list[str]:
    """Parse an Accept-Encoding style value into encodings ordered by preference.

    Entries with ``q=0`` are dropped. Entries with equal weights keep the order
    in which they were given.
    """
    weighted: list[tuple[float, int, str]] = []
    for position, raw in enumerate(value.split(",")):
        entry = raw.strip()
        if not entry:
            continue
        name, _, params = entry.partition(";")
        name = name.strip().lower()
        if not name or " " in name:
            raise EncodingParseError(f"Unable to parse encodings argument: {value!r}")
        quality = 1.0
        if params:
            key, sep, raw_q = params.strip().partition("=")
            if key.strip() != "q" or not sep:
                raise EncodingParseError(f"Unable to parse encodings argument: {value!r}")
            try:
                quality = float(raw_q)
            except ValueError as exc:
                raise EncodingParseError(
                    f"Unable to parse encodings argument: {value!r}"
                ) from exc
            if not 0.0 <= quality <= 1.0:
                raise EncodingParseError(f"Unable to parse encodings argument: {value!r}")
        if quality > 0:
            weighted.append((-quality, position, name))
    if not weighted and value.strip():
        raise EncodingParseError(f"No acceptable encodings in: {value!r}")
    return [name for _, _, name in sorted(weighted)]


def negotiate(accepted: list[str]) -> str:
    """Pick the first accepted encoding this tool can produce."""
    for name in accepted:
        name = _ALIASES.get(name, name)
        if name in SUPPORTED_ENCODINGS:
            return name
    return IDENTITY


def decode(data: bytes, encoding: str) -> bytes:
    """Return the identity bytes of a payload."""
    if not data or encoding == IDENTITY:
        return data
    if encoding == GZIP:
        return gzip.decompress(data)
    if encoding == ZLIB:
        return zlib.decompress(data)
    raise ValueError(f"Unsupported tile encoding: {encoding}")


def encode(data: bytes, encoding: str) -> bytes:
    if not data or encoding == IDENTITY:
        return data
    if encoding == GZIP:
        return gzip.compress(data, mtime=0)
    if encoding == ZLIB:
        return zlib.compress(data)
    raise ValueError(f"Unsupported tile encoding: {encoding}")


def recode(data: bytes, current: str, target: str) -> bytes:
    """Re-encode a payload from one content encoding to another."""
    if current == target:
        return data
    return encode(decode(data, current), target)
