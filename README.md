# metricsd

A small metrics system in two parts:

* a **server**: a WSGI application that accepts gauge and counter metrics
  and keeps them in memory (`metricsd.memory.MemStorage`), optionally saving
  them to a JSON file and reading them back at start-up;
* an **agent** (`metricsd.agent.Agent`): it periodically reads process and
  system figures and sends them to the server in gzip-compressed, optionally
  signed, batches.

Both are used from Python; the package installs no commands.

## Metric types

* `gauge`: a floating-point value; every update replaces it.
* `counter`: an integer; every update adds its delta to it.

Metrics travel as JSON objects:

```json
{"id": "Alloc", "type": "gauge", "value": 123.45}
{"id": "PollCount", "type": "counter", "delta": 5}
```

`metricsd.metrics` holds the `Metric` dataclass, the `MetricType`
enumeration and the helpers `new_gauge(name, value)` and
`new_counter(name, delta)`:

```python
from metricsd.metrics import Metric, new_counter, new_gauge

gauge = new_gauge("Alloc", 123.45)
print(gauge.to_json())              # b'{"id":"Alloc","type":"gauge","value":123.45}'
print(new_counter("PollCount", 5).value_string())   # 5
print(Metric.from_dict({"id": "x", "type": "gauge", "value": 1}).value)   # 1.0
```

`value_string()` writes gauges in plain decimal form without an exponent.

## HTTP API

`metricsd.router.create_app(config, storage)` returns the WSGI application.

| Method | Path                             | Answer                                              |
|--------|----------------------------------|-----------------------------------------------------|
| POST   | `/update`                        | updates one metric sent as JSON; JSON status reply  |
| POST   | `/updates`                       | updates a JSON array of metrics; JSON status reply  |
| POST   | `/value`                         | the stored metric named by `id` and `type`, as JSON |
| GET    | `/ping`                          | see below                                           |
| GET    | `/`                              | every metric as `gauge/<name>: <value>` lines       |
| POST   | `/update/<type>/<name>/<value>`  | updates one metric from the path; plain text        |
| GET    | `/value/<type>/<name>`           | the metric's value as plain text, 404 if absent     |

Unknown paths answer 404 and wrong methods 405. A trailing slash is removed
before routing. Request bodies sent with `Content-Encoding: gzip` are
unpacked (a broken body gives 400). JSON and HTML responses are gzipped at
level 5 for clients that accept gzip. Every request gets an `X-Request-Id`
if it has none, and is logged with its body and response through the
`logging` module. An exception inside a handler turns into a 500 reply.

`/ping` answers `{"status":"OK","message":"pong"}` after reading the
storage when the configuration has a database DSN set; without one it
answers 500 with `{"status":"Error","error":"не указана база данных"}`.

The parts are usable on their own: `metricsd.handlers_json` and
`metricsd.handlers_plain` build request handlers for a storage, and
`metricsd.middleware` holds `decompress_requests`, `compress_responses` and
`log_requests` as WSGI wrappers. `metricsd.response.ok(message)` and
`metricsd.response.error(err, status_code)` build the JSON status replies.

## Signing

With `Config.private_key` set, the bodies of `/update` and `/updates` are
checked against the `HashSHA256` header, a hex HMAC-SHA256 of the
uncompressed body. A request without the header is accepted unchecked; a
wrong one gets 400. Replies from `/value` then carry the same header.

```python
from metricsd.sign import InvalidSignatureError, compute_hmac_sha256, verify_hmac_sha256

body = b'[{"id":"Alloc","type":"gauge","value":1.5}]'
digest = compute_hmac_sha256(body, "secret")
verify_hmac_sha256(body, "secret", digest)        # returns the digest
try:
    verify_hmac_sha256(body, "secret", "0" * 64)
except InvalidSignatureError as err:
    print(err)                                     # invalid hash in request header
```

## Running the server

```python
from metricsd.config import Config
from metricsd.memory import MemStorage
from metricsd.router import create_app
from metricsd.server import Server

config = Config(
    addr="localhost:8080",
    store_interval=300,
    file_storage_path="metrics.json",
    restore=True,
)
storage = MemStorage(config)
try:
    Server(config).start(create_app(config, storage))
finally:
    storage.close()
```

`Server.start(handler)` serves until interrupted; `Server.make_server(handler)`
returns a threaded werkzeug server, bound but not yet serving. The
application is an ordinary WSGI callable, so any WSGI server can host it.

Storage with a `file_storage_path`:

* `store_interval` above zero: the metrics are written every that many
  seconds by a background thread, and once more by `close()`;
* `store_interval` of zero: they are written after every change;
* `restore=True`: the file is read at start-up and applied as updates
  (errors are logged, not raised).

`MemStorage` also takes `gauges` and `counters` mappings as initial contents,
and offers `update_gauge`, `increment_counter`, `get_gauges`,
`get_counters`, `store_to_file`, `restore_from_file` and `dump`.

## Running the agent

```python
import threading
from metricsd.agent import Agent

agent = Agent("http://localhost:8080", poll_interval=2, report_interval=10,
              private_key="secret", rate_limit=3)
runner = threading.Thread(target=agent.run)
runner.start()
...
agent.stop()
runner.join()
```

Every poll interval the agent replaces its readings: process memory and
garbage-collector figures under the usual runtime names (`Alloc`,
`HeapSys`, `NumGC`, `PauseTotalNs` and so on; figures the interpreter does
not have are reported as 0), `TotalMemory`, `FreeMemory`,
`CPUutilization1`…`N`, the counter `PollCount` and a `RandomValue` gauge.
Every report interval a snapshot is queued; `get_metrics()` resets
`PollCount` to zero as it takes it. `rate_limit` workers send the batches
through `metricsd.sender.UpdatesSender` to `<server>/updates`, gzipped, and
signed when a private key is given. Connection errors and timeouts are
retried up to three times, after pauses of 1, 3 and 5 seconds; other
failures, including a reply other than 200, are not retried. Results are
logged.

`metricsd.examples.setup_test_metric(server_addr)` posts the gauge
`TestGauge = 123.45` to a running server.

## What it does not do

* There is no database storage: metrics live only in `MemStorage` and its
  JSON file. A database DSN in `Config` only changes what `/ping` answers.
* There are no command-line programs, no flag or environment parsing and no
  database migrations; server and agent are started from Python code.
* There are no profiling endpoints.