"""In-memory metric storage with optional persistence to a JSON file."""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Iterable, Mapping, Optional, Union

from metricsd.config import Config
from metricsd.metrics import Metric, MetricType
from metricsd.storage import Repository, StorageError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


def _as_type(mtype: Union[MetricType, str]) -> Optional[MetricType]:
    try:
        return MetricType(mtype)
    except ValueError:
        return None


class MemStorage(Repository):
    """Gauges and counters kept in dictionaries.

    ``gauges`` and ``counters`` replace the initial contents, after any
    restore from file has been done.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        gauges: Optional[Mapping[str, float]] = None,
        counters: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._config = config if config is not None else Config()
        self._gauges: dict[str, float] = {}
        self._counters: dict[str, int] = {}
        self._lock = threading.RLock()
        self._stop = threading.Event()
        self._saver: Optional[threading.Thread] = None
        logger.debug("memory storage created")

        if self._config.is_restore_enabled():
            try:
                self.restore_from_file()
            except (OSError, ValueError, StorageError) as err:
                logger.error("failed to read metrics from file: %s", err)

        if gauges is not None:
            self._gauges = {name: float(value) for name, value in gauges.items()}
        if counters is not None:
            self._counters = {name: int(value) for name, value in counters.items()}

        if self._periodic_store():
            self._saver = threading.Thread(
                target=self._store_loop, name="metrics-store", daemon=True
            )
            self._saver.start()

    def _periodic_store(self) -> bool:
        return self._config.is_store_enabled() and not self._config.is_sync_store()

    def _store_loop(self) -> None:
        interval = float(self._config.store_interval)
        while not self._stop.wait(interval):
            logger.info(
                "store %d metrics to file %s",
                self.count(),
                self._config.file_storage_path,
            )
            try:
                self.store_to_file()
            except (OSError, StorageError, ValueError) as err:
                logger.error("failed to store metrics to file: %s", err)

    def close(self) -> None:
        """Stop periodic saving and write the metrics out one last time."""
        if not self._periodic_store():
            return
        self._stop.set()
        if self._saver is not None:
            self._saver.join()
            self._saver = None
        self.store_to_file()

    def update_gauge(self, name: str, value: float) -> None:
        """Overwrite a gauge."""
        with self._lock:
            self._gauges[name] = float(value)

    def increment_counter(self, name: str, value: int) -> None:
        """Add ``value`` to a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + int(value)

    def update_metric(self, metric: Metric) -> None:
        """Set a gauge or add to a counter; raises StorageError on bad input."""
        mtype = _as_type(metric.mtype)
        if mtype is MetricType.GAUGE:
            if metric.value is None:
                raise StorageError("gauge value is nil")
            self.update_gauge(metric.name, metric.value)
        elif mtype is MetricType.COUNTER:
            if metric.delta is None:
                raise StorageError("counter delta is nil")
            self.increment_counter(metric.name, metric.delta)
        else:
            type_name = metric.mtype.value if isinstance(metric.mtype, MetricType) else metric.mtype
            raise StorageError(f"unsupported metric type: {type_name}")

        if self._config.is_store_enabled() and self._config.is_sync_store():
            try:
                self.store_to_file()
            except (OSError, StorageError, ValueError) as err:
                logger.error(
                    "error while trying to syncroniously store metrics to file: %s", err
                )

    def update_metrics(self, items: Iterable[Metric]) -> None:
        """Apply several updates in order, stopping at the first error."""
        for item in items:
            self.update_metric(item)

    def get_gauges(self) -> dict[str, float]:
        """A copy of all gauges."""
        with self._lock:
            return dict(self._gauges)

    def get_counters(self) -> dict[str, int]:
        """A copy of all counters."""
        with self._lock:
            return dict(self._counters)

    def get_gauge(self, name: str) -> Optional[float]:
        """A gauge's value, or None when absent."""
        with self._lock:
            return self._gauges.get(name)

    def get_counter(self, name: str) -> Optional[int]:
        """A counter's value, or None when absent."""
        with self._lock:
            return self._counters.get(name)

    def count(self) -> int:
        """Total number of gauges and counters."""
        with self._lock:
            return len(self._gauges) + len(self._counters)

    def get_metric(self, mtype: Union[MetricType, str], name: str) -> Optional[Metric]:
        """The metric of this type and name, or None when absent."""
        kind = _as_type(mtype)
        if kind is MetricType.COUNTER:
            delta = self.get_counter(name)
            return None if delta is None else Metric(name, kind, delta=delta)
        if kind is MetricType.GAUGE:
            value = self.get_gauge(name)
            return None if value is None else Metric(name, kind, value=value)
        return None

    def get_metrics(self) -> list[Metric]:
        """All gauges followed by all counters."""
        with self._lock:
            items = [Metric(name, MetricType.GAUGE, value=v) for name, v in self._gauges.items()]
            items.extend(
                Metric(name, MetricType.COUNTER, delta=d) for name, d in self._counters.items()
            )
        return items

    def store_to_file(self) -> None:
        """Write all metrics to the configured file as indented JSON."""
        path = self._config.file_storage_path
        logger.debug("store metrics to file %s", path)

        handle = None
        last_error: Optional[OSError] = None
        for attempt in range(MAX_RETRIES + 1):
            try:
                handle = open(path, "w", encoding="utf-8")
                break
            except OSError as err:
                last_error = err
                logger.error("Attempt %d: Error opening file: %s", attempt + 1, err)
                time.sleep((attempt + 1) * 2 - 1)

        if handle is None:
            raise StorageError(
                f"failed to open file after {MAX_RETRIES} attempts: {last_error}"
            ) from last_error

        with handle:
            payload = [metric.to_dict() for metric in self.get_metrics()]
            handle.write(json.dumps(payload, indent=4, ensure_ascii=False) + "\n")

    def restore_from_file(self) -> None:
        """Load metrics saved earlier and apply them as updates."""
        path = self._config.file_storage_path
        logger.debug("load metrics from file %s", path)
        with open(path, encoding="utf-8") as handle:
            parsed = json.load(handle)
        if parsed is None:
            parsed = []
        if not isinstance(parsed, list):
            raise ValueError("metrics file must hold a JSON array")
        for item in parsed:
            self.update_metric(Metric.from_dict(item))
        logger.info("Metrics restored from file %s: %d metrics", path, self.count())

    def dump(self) -> dict[str, int]:
        """Log and return the number of gauges, counters and their total."""
        with self._lock:
            summary = {
                "gauges": len(self._gauges),
                "counters": len(self._counters),
                "total": len(self._gauges) + len(self._counters),
            }
        logger.info("Memory storage dump: %s", summary)
        return summary