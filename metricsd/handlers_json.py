"""HTTP handlers of the JSON API: index, ping, update, bulk update and value."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from werkzeug.wrappers import Request, Response

from metricsd import response
from metricsd.config import Config
from metricsd.metrics import Metric
from metricsd.sign import HEADER_KEY, compute_hmac_sha256, verify_hmac_sha256
from metricsd.storage import Repository, StorageError

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Response]

BULK_UPDATE_MESSAGE = "Metrics updated successfully"


def _text_error(message: str, status: int) -> Response:
    """A plain-text error response."""
    resp = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


def _metric_from_json(data: Any) -> Metric:
    if data is None:
        return Metric(name="", mtype="")
    return Metric.from_dict(data)


def _check_signature(config: Config, request: Request, body: bytes) -> None:
    """Raise InvalidSignatureError when signing is on and the header does not match."""
    if not config.is_request_signing_enabled():
        return
    expected = request.headers.get(HEADER_KEY, "")
    computed = verify_hmac_sha256(body, config.private_key, expected)
    logger.debug("request signature checked: sent=%s computed=%s", expected, computed)


def index(storage: Repository) -> Handler:
    """A handler that returns every stored metric as a JSON array."""

    def handle(request: Request) -> Response:
        try:
            body = json.dumps(
                [metric.to_dict() for metric in storage.get_metrics()],
                separators=(",", ":"),
                allow_nan=False,
                ensure_ascii=False,
            )
        except ValueError as err:
            return _text_error(str(err), 500)
        return Response(body, status=200, content_type="application/json")

    return handle


def ping(storage: Repository) -> Handler:
    """A handler that queries ``storage`` and answers ``pong``."""

    def handle(request: Request) -> Response:
        storage.get_metrics()
        return response.ok("pong")

    return handle


def ping_unavailable(message: str) -> Handler:
    """A handler that always reports ``message`` as a server error."""

    def handle(request: Request) -> Response:
        return response.error(message, 500)

    return handle


def update(config: Config, storage: Repository) -> Handler:
    """A handler that updates one metric sent as a JSON object."""

    def handle(request: Request) -> Response:
        body = request.get_data()
        logger.debug("request body: %s", body.decode("utf-8", errors="replace"))
        try:
            _check_signature(config, request, body)
            metric = _metric_from_json(json.loads(body))
        except ValueError as err:
            logger.error("error while parsing metric: %s", err)
            return _text_error(str(err), 400)
        logger.debug("parsed metric: %s", metric)

        try:
            storage.update_metric(metric)
        except StorageError as err:
            return _text_error(str(err), 400)

        stored = storage.get_metric(metric.mtype, metric.name)
        if stored is not None:
            message = f"metric {metric} updated, result: {stored}"
        else:
            message = f"metric {metric} not found"
        logger.info(message)
        return response.ok(message)

    return handle


def bulk_update(config: Config, storage: Repository) -> Handler:
    """A handler that updates the metrics sent as a JSON array."""

    def handle(request: Request) -> Response:
        body = request.get_data()
        try:
            _check_signature(config, request, body)
        except ValueError as err:
            logger.debug("validate request failed: %s", err)
            return response.error(err, 400)

        try:
            data = json.loads(body)
            if data is None:
                data = []
            if not isinstance(data, list):
                raise ValueError("metrics must be a JSON array")
            items = [_metric_from_json(entry) for entry in data]
        except ValueError as err:
            logger.debug("json decode failed: %s", err)
            return response.error(err, 400)

        try:
            storage.update_metrics(items)
        except StorageError as err:
            return _text_error(str(err), 400)

        logger.info(BULK_UPDATE_MESSAGE)
        return response.ok(BULK_UPDATE_MESSAGE)

    return handle


def value(config: Config, storage: Repository) -> Handler:
    """A handler that returns the metric named in a JSON request, signed when a key is set."""

    def handle(request: Request) -> Response:
        try:
            requested = _metric_from_json(json.loads(request.get_data()))
        except ValueError as err:
            return _text_error(str(err), 400)

        metric = storage.get_metric(requested.mtype, requested.name)
        if metric is None:
            missing = Metric(name=requested.name, mtype=requested.mtype)
            return _text_error(f"{missing} not found", 404)

        try:
            encoded = metric.to_json()
        except ValueError as err:
            return _text_error(str(err), 500)

        resp = Response(encoded, status=200, content_type="application/json")
        if config.is_request_signing_enabled():
            resp.headers[HEADER_KEY] = compute_hmac_sha256(encoded, config.private_key)
        return resp

    return handle