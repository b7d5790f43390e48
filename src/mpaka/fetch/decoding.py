from __future__ import annotations

import zlib
from typing import Optional

import brotli


class ContentDecodingError(ValueError):
    pass


def _inflate(raw: bytes) -> bytes:
    # Servers disagree on whether "deflate" means zlib-wrapped or raw deflate.
    try:
        return zlib.decompress(raw)
    except zlib.error:
        return zlib.decompress(raw, -zlib.MAX_WBITS)


def decode_body(raw: bytes, content_encoding: Optional[str]) -> bytes:
    """
    Undo the Content-Encoding of a response body.

    Stacked codings are removed in reverse order of application. Raises
    ContentDecodingError for an unknown coding or a body that fails to decode.
    """
    codings = [c.strip().lower() for c in (content_encoding or "").split(",") if c.strip()]
    body = raw
    for coding in reversed(codings):
        try:
            if coding == "identity":
                continue
            if coding in ("gzip", "x-gzip"):
                body = zlib.decompress(body, 16 + zlib.MAX_WBITS)
            elif coding == "deflate":
                body = _inflate(body)
            elif coding == "br":
                body = brotli.decompress(body)
            else:
                raise ContentDecodingError(f"Unsupported content-encoding: {coding}")
        except (zlib.error, brotli.error) as e:
            raise ContentDecodingError(f"Corrupt {coding} body: {e}") from e
    return body
