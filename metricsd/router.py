"""The WSGI application of the metrics server: routes and middleware chain."""

from __future__ import annotations

import itertools
import logging
import secrets
import socket
import threading
from typing import Callable, Iterable

from werkzeug.exceptions import HTTPException, MethodNotAllowed
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from metricsd import handlers_json, handlers_plain
from metricsd.config import Config
from metricsd.middleware import compress_responses, decompress_requests, log_requests
from metricsd.storage import Repository

logger = logging.getLogger(__name__)

WSGIApp = Callable[..., Iterable[bytes]]

COMPRESS_LEVEL = 5
COMPRESSED_TYPES = ("application/json", "text/html")
NO_DATABASE_MESSAGE = "не указана база данных"

_REQUEST_ID_PREFIX = f"{socket.gethostname() or 'localhost'}/{secrets.token_urlsafe(8)}"
_request_counter = itertools.count(1)
_request_counter_lock = threading.Lock()


def _next_request_id() -> str:
    with _request_counter_lock:
        number = next(_request_counter)
    return f"{_REQUEST_ID_PREFIX}-{number:06d}"


def _not_found() -> Response:
    resp = Response(
        "404 page not found\n", status=404, content_type="text/plain; charset=utf-8"
    )
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


class MetricsApp:
    """Dispatches requests to the JSON and plain-text handlers."""

    def __init__(self, config: Config, storage: Repository) -> None:
        self.config = config
        self.storage = storage
        if config.is_database_enabled():
            ping_handler = handlers_json.ping(storage)
        else:
            ping_handler = handlers_json.ping_unavailable(NO_DATABASE_MESSAGE)

        plain_index = handlers_plain.index(storage)
        json_update = handlers_json.update(config, storage)
        json_updates = handlers_json.bulk_update(config, storage)
        json_value = handlers_json.value(config, storage)
        plain_update = handlers_plain.update(storage)
        plain_value = handlers_plain.value(storage)

        self._endpoints: dict[str, Callable[[Request, dict], Response]] = {
            "index": lambda request, args: plain_index(request),
            "update": lambda request, args: json_update(request),
            "updates": lambda request, args: json_updates(request),
            "value": lambda request, args: json_value(request),
            "ping": lambda request, args: ping_handler(request),
            "plain_update": lambda request, args: plain_update(request),
            "plain_value": lambda request, args: plain_value(
                request, args["mtype"], args["name"]
            ),
        }
        self._url_map = Map(
            [
                Rule("/", endpoint="index", methods=["GET"]),
                Rule("/update", endpoint="update", methods=["POST"]),
                Rule("/updates", endpoint="updates", methods=["POST"]),
                Rule("/value", endpoint="value", methods=["POST"]),
                Rule("/ping", endpoint="ping", methods=["GET"]),
                Rule("/update/<path:rest>", endpoint="plain_update", methods=["POST"]),
                Rule("/value/<mtype>/<name>", endpoint="plain_value", methods=["GET"]),
            ],
            strict_slashes=False,
            merge_slashes=False,
        )

    def __call__(self, environ, start_response):
        request = Request(environ)
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, args = adapter.match()
        except MethodNotAllowed as exc:
            resp = Response(status=405)
            if exc.valid_methods:
                resp.headers["Allow"] = ", ".join(exc.valid_methods)
        except HTTPException:
            resp = _not_found()
        else:
            resp = self._endpoints[endpoint](request, args)
        return resp(environ, start_response)


def _with_request_id(app: WSGIApp) -> WSGIApp:
    def middleware(environ, start_response):
        if not environ.get("HTTP_X_REQUEST_ID"):
            environ["HTTP_X_REQUEST_ID"] = _next_request_id()
        return app(environ, start_response)

    return middleware


def _recover(app: WSGIApp) -> WSGIApp:
    def middleware(environ, start_response):
        try:
            return app(environ, start_response)
        except Exception:
            logger.exception("panic while handling %s", environ.get("PATH_INFO", ""))
            return Response(status=500)(environ, start_response)

    return middleware


def _strip_slashes(app: WSGIApp) -> WSGIApp:
    def middleware(environ, start_response):
        path = environ.get("PATH_INFO", "")
        if len(path) > 1 and path.endswith("/"):
            environ["PATH_INFO"] = path[:-1]
        return app(environ, start_response)

    return middleware


def create_app(config: Config, storage: Repository) -> WSGIApp:
    """The server application wrapped in its middleware chain."""
    app: WSGIApp = MetricsApp(config, storage)
    app = log_requests(app)
    app = decompress_requests(app)
    app = compress_responses(app, COMPRESS_LEVEL, COMPRESSED_TYPES)
    app = _strip_slashes(app)
    app = _recover(app)
    app = _with_request_id(app)
    return app