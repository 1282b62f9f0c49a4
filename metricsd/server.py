"""The HTTP server that runs the metrics application."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from werkzeug.serving import BaseWSGIServer, WSGIRequestHandler, make_server

from metricsd.config import Config

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 5.0
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_IDLE_TIMEOUT = 120.0

_DEFAULT_PORT = 80


class _RequestHandler(WSGIRequestHandler):
    timeout = DEFAULT_READ_TIMEOUT


def _split_addr(addr: str) -> tuple[str, int]:
    """Host and port of a ``host:port`` address; an empty host means all interfaces."""
    if not addr:
        return "0.0.0.0", _DEFAULT_PORT
    host, sep, port_text = addr.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {addr!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError as err:
        raise ValueError(f"invalid port in address {addr!r}") from err
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in address {addr!r}")
    return host or "0.0.0.0", port


class Server:
    """Serves a WSGI application at the configured address."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def make_server(self, handler: Callable[..., Iterable[bytes]]) -> BaseWSGIServer:
        """A threaded server bound to the configured address, not yet serving."""
        host, port = _split_addr(self.config.addr)
        return make_server(
            host, port, handler, threaded=True, request_handler=_RequestHandler
        )

    def start(self, handler: Callable[..., Iterable[bytes]]) -> None:
        """Serve ``handler`` until interrupted."""
        logger.info("starting server: %s", self.config)
        srv = self.make_server(handler)
        try:
            srv.serve_forever()
        finally:
            srv.server_close()

    def store_interval(self) -> int:
        """Interval of saving metrics, in seconds."""
        return self.config.store_interval