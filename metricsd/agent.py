"""The agent: polls process and system metrics and reports them to the server."""

from __future__ import annotations

import gc
import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

import psutil

from metricsd.metrics import Metric, new_counter, new_gauge
from metricsd.randomness import generate_random_float64
from metricsd.sender import UpdatesSender

logger = logging.getLogger(__name__)

_QUEUE_POLL = 0.1


class _GCStats:
    """Collects garbage-collector pause statistics through ``gc.callbacks``."""

    def __init__(self) -> None:
        self._started = 0
        self.pause_total_ns = 0
        self.last_gc_ns = 0
        self.num_gc = 0

    def __call__(self, phase: str, info: dict) -> None:
        if phase == "start":
            self._started = time.perf_counter_ns()
        elif phase == "stop":
            self.pause_total_ns += max(time.perf_counter_ns() - self._started, 0)
            self.last_gc_ns = time.time_ns()
            self.num_gc += 1


_gc_stats = _GCStats()
gc.callbacks.append(_gc_stats)


@dataclass
class Job:
    """A batch of metrics waiting to be sent."""

    metrics: list[Metric] = field(default_factory=list)


@dataclass
class Result:
    """The outcome of sending one job."""

    job: Job
    error: Optional[BaseException] = None


class Agent:
    """Polls metrics every ``poll_interval`` seconds and reports them every ``report_interval``.

    ``rate_limit`` workers send the reports concurrently.
    """

    def __init__(
        self,
        server_url: str,
        poll_interval: float,
        report_interval: float,
        private_key: str = "",
        rate_limit: int = 1,
    ) -> None:
        self.server_url = server_url
        self.poll_interval = float(poll_interval)
        self.report_interval = float(report_interval)
        self.send_compressed_data = True
        self.private_key = private_key
        self.rate_limit = rate_limit

        self._gauges: dict[str, float] = {}
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._process = psutil.Process()
        self._send_queue: "queue.Queue[Optional[Job]]" = queue.Queue(
            maxsize=max(rate_limit, 1)
        )
        self._result_queue: "queue.Queue[Optional[Result]]" = queue.Queue()
        self.sender = UpdatesSender(
            server_url,
            private_key=private_key,
            compress=self.send_compressed_data,
            sleep=self._stop.wait,
        )

    def is_request_signing_enabled(self) -> bool:
        """Whether requests are signed with the private key."""
        return self.private_key != ""

    def run(self) -> None:
        """Poll, report and send until ``stop`` is called."""
        logger.info(
            "starting agent: server_url=%s poll_interval=%s report_interval=%s "
            "send_compressed_data=%s send_hash=%s rate_limit=%d",
            self.server_url,
            self.poll_interval,
            self.report_interval,
            self.send_compressed_data,
            self.is_request_signing_enabled(),
            self.rate_limit,
        )
        producers = [
            threading.Thread(target=self._run_polls, name="agent-poll", daemon=True),
            threading.Thread(target=self._run_reports, name="agent-report", daemon=True),
        ]
        workers = [
            threading.Thread(target=self._worker, args=(i,), name=f"agent-worker-{i}", daemon=True)
            for i in range(self.rate_limit)
        ]
        collector = threading.Thread(target=self._collector, name="agent-collector", daemon=True)
        for thread in (*producers, *workers, collector):
            thread.start()

        self._stop.wait()

        for thread in producers:
            thread.join()
        for _ in workers:
            self._send_queue.put(None)
        for thread in workers:
            thread.join()
        self._result_queue.put(None)
        collector.join()
        logger.info("agent stopped")

    def stop(self) -> None:
        """Ask a running agent to finish."""
        self._stop.set()

    def _run_polls(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.poll()

    def _run_reports(self) -> None:
        while not self._stop.wait(self.report_interval):
            job = Job(self.get_metrics())
            while not self._stop.is_set():
                try:
                    self._send_queue.put(job, timeout=_QUEUE_POLL)
                    break
                except queue.Full:
                    continue

    def _worker(self, worker_id: int) -> None:
        logger.debug("worker %d started", worker_id)
        while True:
            job = self._send_queue.get()
            if job is None:
                return
            logger.debug("worker %d received job", worker_id)
            try:
                self.sender.send(job.metrics, worker_id)
            except (OSError, ValueError) as err:
                self._result_queue.put(Result(job, err))
            else:
                self._result_queue.put(Result(job))

    def _collector(self) -> None:
        while True:
            result = self._result_queue.get()
            if result is None:
                return
            if result.error is not None:
                logger.error("collector: %s", result.error)
            else:
                logger.info("collector: metrics sent successfully")

    def poll(self) -> None:
        """Take one fresh reading of all metrics."""
        with self._lock:
            self.reset_metrics()
            self.collect_runtime_metrics()
            self.collect_additional_metrics()
            self._counters["PollCount"] = self._counters.get("PollCount", 0) + 1
            self._gauges["RandomValue"] = generate_random_float64()
            logger.info("collected metrics, poll_count=%d", self._counters["PollCount"])

    def reset_metrics(self) -> None:
        """Forget every collected metric."""
        self._gauges = {}
        self._counters = {}

    def collect_runtime_metrics(self) -> None:
        """Collect memory and garbage-collector figures of this process."""
        mem = self._process.memory_info()
        rss = float(mem.rss)
        vms = float(mem.vms)
        stats = gc.get_stats()
        frees = float(sum(s.get("collected", 0) for s in stats))
        blocks = float(sys.getallocatedblocks())
        cpu = self._process.cpu_times()
        cpu_seconds = cpu.user + cpu.system
        gc_fraction = (_gc_stats.pause_total_ns / 1e9) / cpu_seconds if cpu_seconds > 0 else 0.0
        threshold = gc.get_threshold()[0]
        pending = gc.get_count()[0]

        self._gauges.update(
            {
                "Alloc": rss,
                "BuckHashSys": 0.0,
                "Frees": frees,
                "GCCPUFraction": gc_fraction,
                "GCSys": 0.0,
                "HeapAlloc": rss,
                "HeapIdle": max(vms - rss, 0.0),
                "HeapInuse": rss,
                "HeapObjects": blocks,
                "HeapReleased": 0.0,
                "HeapSys": vms,
                "LastGC": float(_gc_stats.last_gc_ns),
                "Lookups": 0.0,
                "MCacheInuse": 0.0,
                "MCacheSys": 0.0,
                "MSpanInuse": 0.0,
                "MSpanSys": 0.0,
                "Mallocs": blocks + frees,
                "NextGC": float(max(threshold - pending, 0)),
                "NumForcedGC": 0.0,
                "NumGC": float(sum(s.get("collections", 0) for s in stats)),
                "OtherSys": 0.0,
                "PauseTotalNs": float(_gc_stats.pause_total_ns),
                "StackInuse": 0.0,
                "StackSys": float(threading.stack_size()),
                "Sys": vms,
                "TotalAlloc": rss,
            }
        )

    def collect_additional_metrics(self) -> None:
        """Collect system memory and per-CPU utilisation."""
        virtual = psutil.virtual_memory()
        self._gauges["TotalMemory"] = float(virtual.total)
        self._gauges["FreeMemory"] = float(virtual.free)
        for number, percent in enumerate(psutil.cpu_percent(interval=None, percpu=True), 1):
            self._gauges[f"CPUutilization{number}"] = float(percent)

    def get_metrics(self) -> list[Metric]:
        """A snapshot of gauges then counters; resets PollCount to zero."""
        with self._lock:
            logger.info("read metrics for job, poll_count=%d", self._counters.get("PollCount", 0))
            items = [new_gauge(name, value) for name, value in self._gauges.items()]
            items.extend(new_counter(name, delta) for name, delta in self._counters.items())
            self._counters["PollCount"] = 0
        return items