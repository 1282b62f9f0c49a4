"""Standard JSON status responses."""

from __future__ import annotations

import json
from typing import Any, Union

from werkzeug.wrappers import Response

STATUS_OK = "OK"
STATUS_ERROR = "Error"


def _respond(payload: dict[str, Any], status_code: int) -> Response:
    body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return Response(body, status=status_code, content_type="application/json")


def ok(message: str) -> Response:
    """A 200 response with status OK and an optional message."""
    payload: dict[str, Any] = {"status": STATUS_OK}
    if message:
        payload["message"] = message
    return _respond(payload, 200)


def error(err: Union[BaseException, str], status_code: int) -> Response:
    """An error response carrying the error's text."""
    payload: dict[str, Any] = {"status": STATUS_ERROR}
    text = str(err)
    if text:
        payload["error"] = text
    return _respond(payload, status_code)