"""Random numbers from a cryptographically strong source."""

from __future__ import annotations

import secrets

_MAX_INT64 = 2**63 - 1


def generate_random_float64() -> float:
    """A random float in the range [0, 1)."""
    return secrets.randbelow(_MAX_INT64) / _MAX_INT64