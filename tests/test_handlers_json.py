import json

import pytest
from werkzeug.test import EnvironBuilder

from metricsd import handlers_json
from metricsd.config import Config
from metricsd.memory import MemStorage
from metricsd.metrics import new_counter
from metricsd.sign import HEADER_KEY, compute_hmac_sha256

KEY = "secret"


def make_request(path, body=b"", method="POST", headers=None):
    return EnvironBuilder(path=path, method=method, data=body, headers=headers or {}).get_request()


class RecordingStorage:
    def __init__(self, items):
        self.items = items
        self.calls = 0

    def get_metrics(self):
        self.calls += 1
        return self.items


@pytest.fixture
def storage():
    return MemStorage(Config())


def test_ping_success():
    fake = RecordingStorage([new_counter("metric1", 1), new_counter("metric1", 2)])
    resp = handlers_json.ping(fake)(make_request("/ping", method="GET"))
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/json"
    assert json.loads(resp.get_data()) == {"status": "OK", "message": "pong"}
    assert fake.calls == 1


def test_ping_unavailable():
    resp = handlers_json.ping_unavailable("не указана база данных")(make_request("/ping", method="GET"))
    assert resp.status_code == 500
    assert json.loads(resp.get_data()) == {"status": "Error", "error": "не указана база данных"}


def test_update_gauge(storage):
    body = json.dumps({"id": "TestGauge", "type": "gauge", "value": 123.45}).encode()
    resp = handlers_json.update(Config(), storage)(make_request("/update", body))
    assert resp.status_code == 200
    payload = json.loads(resp.get_data())
    assert payload["status"] == "OK"
    assert "updated" in payload["message"]
    assert storage.get_gauge("TestGauge") == 123.45


def test_update_counter_accumulates(storage):
    handler = handlers_json.update(Config(), storage)
    body = json.dumps({"id": "c", "type": "counter", "delta": 3}).encode()
    handler(make_request("/update", body))
    resp = handler(make_request("/update", body))
    assert resp.status_code == 200
    assert storage.get_counter("c") == 6


def test_update_invalid_json(storage):
    resp = handlers_json.update(Config(), storage)(make_request("/update", b"{not json"))
    assert resp.status_code == 400
    assert resp.headers["Content-Type"] == "text/plain; charset=utf-8"


def test_update_unknown_type(storage):
    body = json.dumps({"id": "x", "type": "weird", "value": 1.0}).encode()
    resp = handlers_json.update(Config(), storage)(make_request("/update", body))
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "unsupported metric type: weird\n"


def test_update_missing_value(storage):
    body = json.dumps({"id": "x", "type": "gauge"}).encode()
    resp = handlers_json.update(Config(), storage)(make_request("/update", body))
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "gauge value is nil\n"


def test_update_signature_checked(storage):
    config = Config(private_key=KEY)
    body = json.dumps({"id": "g", "type": "gauge", "value": 1.5}).encode()
    handler = handlers_json.update(config, storage)

    bad = handler(make_request("/update", body, headers={HEADER_KEY: "00"}))
    assert bad.status_code == 400
    assert bad.get_data(as_text=True) == "invalid hash in request header\n"
    assert storage.get_gauge("g") is None

    good = handler(
        make_request("/update", body, headers={HEADER_KEY: compute_hmac_sha256(body, KEY)})
    )
    assert good.status_code == 200
    assert storage.get_gauge("g") == 1.5


def test_update_without_hash_header_is_accepted(storage):
    config = Config(private_key=KEY)
    body = json.dumps({"id": "g", "type": "gauge", "value": 2.0}).encode()
    resp = handlers_json.update(config, storage)(make_request("/update", body))
    assert resp.status_code == 200
    assert storage.get_gauge("g") == 2.0


def test_bulk_update(storage):
    body = json.dumps(
        [
            {"id": "TestGauge1", "type": "gauge", "value": 123.45},
            {"id": "TestCounter1", "type": "counter", "delta": 42},
        ]
    ).encode()
    resp = handlers_json.bulk_update(Config(), storage)(make_request("/updates", body))
    assert resp.status_code == 200
    assert json.loads(resp.get_data()) == {
        "status": "OK",
        "message": "Metrics updated successfully",
    }
    assert storage.get_gauge("TestGauge1") == 123.45
    assert storage.get_counter("TestCounter1") == 42


def test_bulk_update_not_array(storage):
    body = json.dumps({"id": "g", "type": "gauge", "value": 1}).encode()
    resp = handlers_json.bulk_update(Config(), storage)(make_request("/updates", body))
    assert resp.status_code == 400
    assert json.loads(resp.get_data())["status"] == "Error"


def test_bulk_update_bad_signature(storage):
    body = b"[]"
    resp = handlers_json.bulk_update(Config(private_key=KEY), storage)(
        make_request("/updates", body, headers={HEADER_KEY: "abc"})
    )
    assert resp.status_code == 400
    assert json.loads(resp.get_data()) == {
        "status": "Error",
        "error": "invalid hash in request header",
    }


def test_bulk_update_storage_error(storage):
    body = json.dumps([{"id": "c", "type": "counter"}]).encode()
    resp = handlers_json.bulk_update(Config(), storage)(make_request("/updates", body))
    assert resp.status_code == 400
    assert resp.get_data(as_text=True) == "counter delta is nil\n"


def test_value_found_and_signed(storage):
    storage.update_gauge("TestGauge", 123.45)
    body = json.dumps({"id": "TestGauge", "type": "gauge"}).encode()
    resp = handlers_json.value(Config(private_key=KEY), storage)(make_request("/value", body))
    assert resp.status_code == 200
    data = resp.get_data()
    assert json.loads(data) == {"id": "TestGauge", "type": "gauge", "value": 123.45}
    assert resp.headers[HEADER_KEY] == compute_hmac_sha256(data, KEY)


def test_value_unsigned_without_key(storage):
    storage.increment_counter("c", 7)
    body = json.dumps({"id": "c", "type": "counter"}).encode()
    resp = handlers_json.value(Config(), storage)(make_request("/value", body))
    assert json.loads(resp.get_data()) == {"id": "c", "type": "counter", "delta": 7}
    assert HEADER_KEY not in resp.headers


def test_value_not_found(storage):
    body = json.dumps({"id": "missing", "type": "gauge"}).encode()
    resp = handlers_json.value(Config(), storage)(make_request("/value", body))
    assert resp.status_code == 404
    assert resp.get_data(as_text=True) == "Metric{Name: missing, Type: gauge} not found\n"


def test_value_bad_json(storage):
    resp = handlers_json.value(Config(), storage)(make_request("/value", b"oops"))
    assert resp.status_code == 400


def test_index_lists_metrics(storage):
    storage.update_gauge("g", 0.5)
    storage.increment_counter("c", 2)
    resp = handlers_json.index(storage)(make_request("/", method="GET"))
    assert resp.status_code == 200
    assert resp.headers["Content-Type"] == "application/json"
    assert json.loads(resp.get_data()) == [
        {"id": "g", "type": "gauge", "value": 0.5},
        {"id": "c", "type": "counter", "delta": 2},
    ]