"""HMAC-SHA256 signing of request and response bodies."""

from __future__ import annotations

import hashlib
import hmac

HEADER_KEY = "HashSHA256"


class InvalidSignatureError(ValueError):
    """The signature sent with a request does not match its body."""

    def __init__(self, mac: str) -> None:
        super().__init__("invalid hash in request header")
        self.mac = mac


def compute_hmac_sha256(data: bytes, key: str) -> str:
    """Hex digest of HMAC-SHA256 of ``data`` under ``key``."""
    return hmac.new(key.encode("utf-8"), data, hashlib.sha256).hexdigest()


def verify_hmac_sha256(data: bytes, key: str, expected_mac: str) -> str:
    """Check ``expected_mac`` against ``data`` and return the computed digest.

    An empty ``expected_mac`` is not checked and yields an empty string.
    """
    if not expected_mac:
        return ""
    mac = compute_hmac_sha256(data, key)
    if not hmac.compare_digest(mac.encode("ascii"), expected_mac.encode("utf-8")):
        raise InvalidSignatureError(mac)
    return mac