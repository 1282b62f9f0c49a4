"""Metrics server and agent: gauges and counters over HTTP, gzip and HMAC-SHA256 signing."""

__version__ = "0.1.0"

__all__ = [
    "agent",
    "config",
    "examples",
    "gzipping",
    "handlers_json",
    "handlers_plain",
    "memory",
    "metrics",
    "middleware",
    "randomness",
    "response",
    "router",
    "sender",
    "server",
    "sign",
    "storage",
]