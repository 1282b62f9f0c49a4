"""Client-side helpers used by the API usage examples."""

from __future__ import annotations

import time

import requests

from metricsd.metrics import new_gauge

SERVER_ADDR = "http://localhost:8080"
SAVE_DELAY = 0.1
REQUEST_TIMEOUT = 10.0


def setup_test_metric(server_addr: str = SERVER_ADDR) -> None:
    """Post the gauge TestGauge = 123.45 and wait for the server to save it.

    Raises requests' exceptions when the server cannot be reached.
    """
    metric = new_gauge("TestGauge", 123.45)
    resp = requests.post(
        server_addr + "/update", data=metric.to_json(), timeout=REQUEST_TIMEOUT
    )
    resp.close()
    time.sleep(SAVE_DELAY)