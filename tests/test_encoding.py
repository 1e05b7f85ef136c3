from __future__ import annotations

import gzip
import zlib

import pytest

from tilecp.encoding import decode, encode, negotiate, parse_accept_encoding, recode
from tilecp.errors import EncodingParseError


def test_parse_accept_encoding_orders_by_weight() -> None:
    assert parse_accept_encoding("gzip") == ["gzip"]
    assert parse_accept_encoding("br;q=0.5, gzip, identity;q=0.1") == ["gzip", "br", "identity"]
    assert parse_accept_encoding("zlib, gzip") == ["zlib", "gzip"]


def test_parse_accept_encoding_drops_zero_weight() -> None:
    assert parse_accept_encoding("gzip;q=0, identity") == ["identity"]
    assert parse_accept_encoding("") == []


@pytest.mark.parametrize("value", ["gzip;q=abc", "gzip;level=1", "gzip;q=2", "gz ip", "gzip;q=0"])
def test_parse_accept_encoding_rejects_malformed(value: str) -> None:
    with pytest.raises(EncodingParseError):
        parse_accept_encoding(value)


def test_negotiate() -> None:
    assert negotiate(["br", "deflate"]) == "zlib"
    assert negotiate(["x-gzip"]) == "gzip"
    assert negotiate(["*"]) == "gzip"
    assert negotiate(["br"]) == "identity"
    assert negotiate([]) == "identity"


def test_encode_decode() -> None:
    payload = b"vector tile bytes"
    assert gzip.decompress(encode(payload, "gzip")) == payload
    assert zlib.decompress(encode(payload, "zlib")) == payload
    assert decode(encode(payload, "gzip"), "gzip") == payload
    assert encode(b"", "gzip") == b""
    assert encode(payload, "gzip") == encode(payload, "gzip")
    with pytest.raises(ValueError):
        encode(payload, "br")


def test_recode_between_encodings() -> None:
    payload = b"layer"
    zipped = gzip.compress(payload)
    assert zlib.decompress(recode(zipped, "gzip", "zlib")) == payload
    assert recode(zipped, "gzip", "identity") == payload
    assert recode(zipped, "gzip", "gzip") is zipped
