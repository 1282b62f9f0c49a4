"""WSGI middleware: gzip request bodies, gzip responses, request logging."""

from __future__ import annotations

import gzip
import io
import logging
import time
from typing import Callable, Iterable, Iterator

from werkzeug.wrappers import Request, Response
from werkzeug.wsgi import get_input_stream

from metricsd.gzipping import decompress

logger = logging.getLogger(__name__)

WSGIApp = Callable[..., Iterable[bytes]]

DECOMPRESS_ERROR = "Ошибка при декомпрессии содержимого запроса gzip"


def _read_body(environ: dict) -> bytes:
    return get_input_stream(environ).read()


def _replace_body(environ: dict, body: bytes) -> None:
    environ["wsgi.input"] = io.BytesIO(body)
    environ["CONTENT_LENGTH"] = str(len(body))
    environ.pop("HTTP_TRANSFER_ENCODING", None)
    environ["wsgi.input_terminated"] = False


def decompress_requests(app: WSGIApp) -> WSGIApp:
    """Unpack request bodies sent with ``Content-Encoding: gzip``."""
    logger.info("decompress middleware enabled")

    def middleware(environ, start_response):
        if environ.get("HTTP_CONTENT_ENCODING", "") != "gzip":
            return app(environ, start_response)
        logger.debug("content encoded with gzip, replacing body")
        try:
            body = decompress(_read_body(environ))
        except ValueError as err:
            logger.error("error while decompressing request body: %s", err)
            response = Response(
                DECOMPRESS_ERROR + "\n",
                status=400,
                content_type="text/plain; charset=utf-8",
            )
            response.headers["X-Content-Type-Options"] = "nosniff"
            return response(environ, start_response)
        _replace_body(environ, body)
        return app(environ, start_response)

    return middleware


def compress_responses(app: WSGIApp, level: int, content_types: Iterable[str]) -> WSGIApp:
    """Gzip responses of the given content types for clients that accept gzip."""
    allowed = frozenset(content_types)

    def middleware(environ, start_response):
        request = Request(environ)
        response = Response.from_app(app, environ, buffered=True)
        if (
            request.accept_encodings.quality("gzip") > 0
            and response.mimetype in allowed
            and "Content-Encoding" not in response.headers
            and request.method != "HEAD"
            and response.status_code not in (204, 304)
        ):
            response.set_data(gzip.compress(response.get_data(), compresslevel=level))
            response.headers["Content-Encoding"] = "gzip"
            response.vary.add("Accept-Encoding")
        return response(environ, start_response)

    return middleware


def log_requests(app: WSGIApp) -> WSGIApp:
    """Log every request and its response, bodies included."""
    logger.info("logger middleware enabled")

    def middleware(environ, start_response):
        body = _read_body(environ)
        _replace_body(environ, body)
        request_fields = {
            "method": environ.get("REQUEST_METHOD", ""),
            "path": environ.get("PATH_INFO", ""),
            "remote_addr": environ.get("REMOTE_ADDR", ""),
            "user_agent": environ.get("HTTP_USER_AGENT", ""),
            "request_id": environ.get("HTTP_X_REQUEST_ID", ""),
            "headers": dict(Request(environ).headers),
            "body": body.decode("utf-8", errors="replace"),
        }
        captured: dict = {"status": 0, "headers": []}

        def capturing_start_response(status, headers, exc_info=None):
            captured["status"] = int(status.split(" ", 1)[0])
            captured["headers"] = list(headers)
            if exc_info is not None:
                return start_response(status, headers, exc_info)
            return start_response(status, headers)

        started = time.monotonic()
        result = app(environ, capturing_start_response)

        def tee() -> Iterator[bytes]:
            chunks: list[bytes] = []
            try:
                for chunk in result:
                    chunks.append(chunk)
                    yield chunk
            finally:
                close = getattr(result, "close", None)
                if close is not None:
                    close()
                sent = b"".join(chunks)
                response_fields = {
                    "status": captured["status"],
                    "response_bytes": len(sent),
                    "headers": dict(captured["headers"]),
                    "body": sent.decode("utf-8", errors="replace"),
                    "duration": time.monotonic() - started,
                }
                logger.info(
                    "request completed: %s %s -> %d",
                    request_fields["method"],
                    request_fields["path"],
                    response_fields["status"],
                    extra={"http_request": request_fields, "http_response": response_fields},
                )

        return tee()

    return middleware