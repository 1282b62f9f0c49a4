"""Metric records exchanged between the agent and the server."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union


class MetricType(str, Enum):
    """Supported kinds of metric."""

    COUNTER = "counter"
    GAUGE = "gauge"


def _type_name(mtype: Union[MetricType, str]) -> str:
    return mtype.value if isinstance(mtype, MetricType) else str(mtype)


def _format_float(value: float) -> str:
    """Shortest plain decimal form of a float, without an exponent."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _coerce_type(raw: Any) -> Union[MetricType, str]:
    if not isinstance(raw, str):
        raise ValueError(f"metric type must be a string, got {raw!r}")
    try:
        return MetricType(raw)
    except ValueError:
        return raw


@dataclass
class Metric:
    """A named gauge or counter; ``delta`` holds counters, ``value`` gauges."""

    name: str
    mtype: Union[MetricType, str]
    delta: Optional[int] = None
    value: Optional[float] = None

    def __str__(self) -> str:
        type_name = _type_name(self.mtype)
        if self.delta is not None:
            return f"Metric{{Name: {self.name}, Type: {type_name}, Delta: {self.delta}}}"
        if self.value is not None:
            return f"Metric{{Name: {self.name}, Type: {type_name}, Value: {self.value:f}}}"
        return f"Metric{{Name: {self.name}, Type: {type_name}}}"

    def value_string(self) -> str:
        """The metric's value as plain text; empty for an unknown type."""
        if self.mtype == MetricType.COUNTER:
            if self.delta is None:
                raise ValueError(f"counter {self.name} has no delta")
            return str(self.delta)
        if self.mtype == MetricType.GAUGE:
            if self.value is None:
                raise ValueError(f"gauge {self.name} has no value")
            return _format_float(self.value)
        return ""

    def to_dict(self) -> dict[str, Any]:
        """The JSON object form, leaving out unset values."""
        data: dict[str, Any] = {"id": self.name, "type": _type_name(self.mtype)}
        if self.delta is not None:
            data["delta"] = self.delta
        if self.value is not None:
            data["value"] = self.value
        return data

    def to_json(self) -> bytes:
        """Compact JSON encoding; raises ValueError for NaN or infinity."""
        return json.dumps(
            self.to_dict(), separators=(",", ":"), allow_nan=False, ensure_ascii=False
        ).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> "Metric":
        """Build a metric from a decoded JSON object, checking field types."""
        if not isinstance(data, dict):
            raise ValueError(f"metric must be a JSON object, got {type(data).__name__}")
        name = data.get("id", "")
        if name is None:
            name = ""
        if not isinstance(name, str):
            raise ValueError(f"metric id must be a string, got {name!r}")
        raw_type = data.get("type", "")
        mtype = _coerce_type("" if raw_type is None else raw_type)

        delta = data.get("delta")
        if delta is not None and (isinstance(delta, bool) or not isinstance(delta, int)):
            raise ValueError(f"metric delta must be an integer, got {delta!r}")

        value = data.get("value")
        if value is not None:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"metric value must be a number, got {value!r}")
            value = float(value)

        return cls(name=name, mtype=mtype, delta=delta, value=value)


def new_counter(name: str, delta: int) -> Metric:
    """A counter metric carrying ``delta``."""
    return Metric(name=name, mtype=MetricType.COUNTER, delta=delta)


def new_gauge(name: str, value: float) -> Metric:
    """A gauge metric carrying ``value``."""
    return Metric(name=name, mtype=MetricType.GAUGE, value=float(value))