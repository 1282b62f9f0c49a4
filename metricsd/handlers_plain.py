"""HTTP handlers of the plain-text API: index, update by path and value by path."""

from __future__ import annotations

import logging
import math
import re
from typing import Callable

from werkzeug.wrappers import Request, Response

from metricsd.metrics import Metric, MetricType, new_counter, new_gauge
from metricsd.storage import Repository, StorageError, format_counter, format_gauge

logger = logging.getLogger(__name__)

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_INFINITY_WORDS = {"inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"}
_EXPECTED_PARTS = 5


def _text_error(message: str, status: int) -> Response:
    """A plain-text error response."""
    resp = Response(message + "\n", status=status, content_type="text/plain; charset=utf-8")
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp


def _parse_int64(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"invalid integer: {text!r}")
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return number


def _parse_float64(text: str) -> float:
    if not text or text != text.strip() or "_" in text:
        raise ValueError(f"invalid float: {text!r}")
    number = float(text)
    if math.isinf(number) and text.lower() not in _INFINITY_WORDS:
        raise ValueError(f"float out of range: {text!r}")
    return number


def _type_name(mtype) -> str:
    return mtype.value if isinstance(mtype, MetricType) else str(mtype)


def index(storage: Repository) -> Callable[[Request], Response]:
    """A handler that lists every metric as ``type/name: value`` lines."""

    def handle(request: Request) -> Response:
        lines = []
        for metric in storage.get_metrics():
            if metric.mtype == MetricType.GAUGE:
                lines.append(f"gauge/{metric.name}: {format_gauge(metric.value)}\n")
            elif metric.mtype == MetricType.COUNTER:
                lines.append(f"counter/{metric.name}: {format_counter(metric.delta)}\n")
            else:
                lines.append(f"unknown/{metric.name}\n")
        return Response("".join(lines), status=200, content_type="text/html")

    return handle


def update(storage: Repository) -> Callable[[Request], Response]:
    """A handler for ``/update/<type>/<name>/<value>``."""

    def handle(request: Request) -> Response:
        parts = request.path.split("/")
        if len(parts) != _EXPECTED_PARTS:
            return _text_error("Page not found", 404)
        _, _, type_text, name, raw_value = parts

        metric: Metric
        if type_text == MetricType.COUNTER.value:
            try:
                metric = new_counter(name, _parse_int64(raw_value))
            except ValueError:
                return _text_error("Invalid metrics value, must be convertable to int64", 400)
        elif type_text == MetricType.GAUGE.value:
            try:
                metric = new_gauge(name, _parse_float64(raw_value))
            except ValueError:
                return _text_error("Invalid metrics value, must be convertable to float64", 400)
        else:
            return _text_error("Invalid metrics type, must be: counter or gauge", 400)

        try:
            storage.update_metric(metric)
        except StorageError as err:
            return _text_error(str(err), 400)

        stored = storage.get_metric(metric.mtype, name)
        if stored is not None:
            message = (
                f"metric {type_text}/{name} updated with value {raw_value}, result: {stored}"
            )
        else:
            message = f"metric {type_text}/{name} not found"
        logger.info(message)
        return Response(message, status=200, content_type="text/plain")

    return handle


def value(storage: Repository) -> Callable[[Request, str, str], Response]:
    """A handler taking the request and the type and name from ``/value/<type>/<name>``."""

    def handle(request: Request, mtype: str, name: str) -> Response:
        metric = storage.get_metric(mtype, name)
        if metric is None:
            return _text_error(f"{_type_name(mtype)} {name} not found", 404)
        return Response(metric.value_string(), status=200, content_type="text/plain")

    return handle