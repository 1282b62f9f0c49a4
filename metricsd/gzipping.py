"""Gzip helpers for request bodies."""

from __future__ import annotations

import gzip
import zlib


def compress(data: bytes) -> bytes:
    """Gzip ``data`` at the best compression level."""
    return gzip.compress(data, compresslevel=9)


def decompress(data: bytes) -> bytes:
    """Gunzip ``data``; raises ValueError when it is not valid gzip."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as err:
        raise ValueError(f"failed to decompress gzip data: {err}") from err