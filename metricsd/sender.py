"""Sending batches of metrics to the server's ``/updates`` route."""

from __future__ import annotations

import json
import logging
import socket
import time
from typing import Callable, Iterable, Optional

import requests

from metricsd.gzipping import compress
from metricsd.metrics import Metric
from metricsd.sign import HEADER_KEY, compute_hmac_sha256

logger = logging.getLogger(__name__)

MAX_SEND_RETRIES = 3
BACKOFF_FACTOR = 2
REQUEST_TIMEOUT = 10.0


def _error_chain(err: BaseException) -> Iterable[BaseException]:
    seen: set[int] = set()
    current: Optional[BaseException] = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def is_retriable_send_error(err: BaseException) -> bool:
    """Whether ``err`` is a network failure or timeout worth retrying."""
    logger.debug("is_retriable_send_error: %r", err)
    retriable = (
        requests.exceptions.Timeout,
        requests.exceptions.ConnectionError,
        socket.timeout,
        TimeoutError,
        ConnectionError,
    )
    return any(isinstance(item, retriable) for item in _error_chain(err))


class UpdatesSender:
    """Posts metric batches as JSON, optionally gzipped and signed."""

    def __init__(
        self,
        server_url: str,
        private_key: str = "",
        compress: bool = True,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], object] = time.sleep,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.server_url = server_url
        self.private_key = private_key
        self.compress = compress
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    @property
    def url(self) -> str:
        return f"{self.server_url}/updates"

    def post(self, items: Iterable[Metric]) -> None:
        """Send one batch; raises requests' errors, or HTTPError on a non-200 reply."""
        items = list(items)
        logger.info("sending metrics batch to %s: %s", self.url, items)
        body = json.dumps(
            [item.to_dict() for item in items],
            separators=(",", ":"),
            allow_nan=False,
            ensure_ascii=False,
        ).encode("utf-8")

        headers = {"Content-Type": "application/json"}
        if self.private_key:
            headers[HEADER_KEY] = compute_hmac_sha256(body, self.private_key)
        if self.compress:
            headers["Content-Encoding"] = "gzip"
            body = compress(body)

        resp = self.session.post(self.url, data=body, headers=headers, timeout=self.timeout)
        try:
            if resp.status_code != 200:
                raise requests.HTTPError(
                    f"unexpected status code: {resp.status_code}", response=resp
                )
        finally:
            resp.close()

    def send(self, items: Iterable[Metric], worker_id: int = 0) -> None:
        """Send a batch, retrying network failures up to MAX_SEND_RETRIES times."""
        items = list(items)
        last_error: Optional[BaseException] = None
        for attempt in range(MAX_SEND_RETRIES + 1):
            if attempt > 0:
                delay = attempt * BACKOFF_FACTOR - 1
                logger.info(
                    "worker %d: retrying to send metrics (try=%d) in %d seconds",
                    worker_id,
                    attempt,
                    delay,
                )
                self._sleep(delay)
            try:
                self.post(items)
            except (OSError, ValueError) as err:
                last_error = err
                logger.error(
                    "worker %d: failed to send metrics (try=%d): %s", worker_id, attempt, err
                )
                if not is_retriable_send_error(err):
                    logger.debug("worker %d: non-retriable error, stopping retries", worker_id)
                    raise
            else:
                return
        raise ConnectionError(
            f"failed to send metrics after {MAX_SEND_RETRIES} retries"
        ) from last_error