"""The storage interface shared by metric repositories."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from metricsd.metrics import Metric, MetricType, new_gauge


class StorageError(Exception):
    """A metric could not be stored or read."""


def format_gauge(value: float) -> str:
    """A gauge value as plain decimal text."""
    return new_gauge("", value).value_string()


def format_counter(value: int) -> str:
    """A counter value as decimal text."""
    return str(int(value))


class Repository(ABC):
    """A store of gauges and counters."""

    def close(self) -> None:
        """Release any resources held by the store."""

    def __enter__(self) -> "Repository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def count(self) -> int:
        """Total number of metrics held."""

    @abstractmethod
    def get_metrics(self) -> list[Metric]:
        """All metrics held."""

    @abstractmethod
    def get_metric(self, mtype: MetricType, name: str) -> Optional[Metric]:
        """The metric of this type and name, or None when absent."""

    def get_counter(self, name: str) -> Optional[int]:
        """A counter's value, or None when absent."""
        metric = self.get_metric(MetricType.COUNTER, name)
        return None if metric is None else metric.delta

    def get_gauge(self, name: str) -> Optional[float]:
        """A gauge's value, or None when absent."""
        metric = self.get_metric(MetricType.GAUGE, name)
        return None if metric is None else metric.value

    @abstractmethod
    def update_metric(self, metric: Metric) -> None:
        """Set a gauge or add to a counter; raises StorageError on bad input."""

    def update_metrics(self, items: Iterable[Metric]) -> None:
        """Apply several updates in order, stopping at the first error."""
        for item in items:
            self.update_metric(item)