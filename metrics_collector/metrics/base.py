from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..errors import (
    InvalidCounterValue,
    InvalidGaugeValue,
    InvalidMetricName,
    InvalidMetricType,
)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

POLL_COUNT = "PollCount"
RANDOM_VALUE = "RandomValue"

_FLOAT_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


KNOWN_KINDS = frozenset(kind.value for kind in MetricKind)


@dataclass(frozen=True)
class Metric:
    """A single named gauge or counter, the unit of exchange everywhere.

    ``kind`` is kept as the raw wire string so that malformed records can be
    represented long enough to be rejected by :meth:`validate`.
    """

    id: str
    kind: str
    value: Optional[float] = None  # gauges only
    delta: Optional[int] = None  # counters only

    @classmethod
    def gauge(cls, metric_id: str, value: float) -> "Metric":
        return cls(id=metric_id, kind=MetricKind.GAUGE.value, value=value)

    @classmethod
    def counter(cls, metric_id: str, delta: int) -> "Metric":
        return cls(id=metric_id, kind=MetricKind.COUNTER.value, delta=delta)

    @property
    def is_gauge(self) -> bool:
        return self.kind == MetricKind.GAUGE.value

    @property
    def is_counter(self) -> bool:
        return self.kind == MetricKind.COUNTER.value

    def validate(self) -> "Metric":
        """Return ``self`` if exactly the field matching ``kind`` is set."""
        if not self.id:
            raise InvalidMetricName("metric id is required")
        if self.kind not in KNOWN_KINDS:
            raise InvalidMetricType(f"invalid metric type: {self.kind!r}")
        if self.is_gauge:
            if self.value is None or self.delta is not None:
                raise InvalidGaugeValue(f"gauge {self.id!r} must carry a value and no delta")
            if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
                raise InvalidGaugeValue(f"gauge {self.id!r} value must be a number")
            if not math.isfinite(self.value):
                raise InvalidGaugeValue(f"gauge {self.id!r} has a non-finite value")
        else:
            if self.delta is None or self.value is not None:
                raise InvalidCounterValue(f"counter {self.id!r} must carry a delta and no value")
            if isinstance(self.delta, bool) or not isinstance(self.delta, int):
                raise InvalidCounterValue(f"counter {self.id!r} delta must be an integer")
            if not INT64_MIN <= self.delta <= INT64_MAX:
                raise InvalidCounterValue(f"counter {self.id!r} delta is out of range")
        return self

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "type": self.kind}
        if self.value is not None:
            payload["value"] = self.value
        if self.delta is not None:
            payload["delta"] = self.delta
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Metric":
        return cls(
            id=str(data.get("id") or ""),
            kind=str(data.get("type") or ""),
            value=data.get("value"),
            delta=data.get("delta"),
        )


def parse_metric(kind: str, name: str, raw: str) -> Metric:
    """Build a validated metric from URL path segments."""
    if kind == MetricKind.GAUGE.value:
        if not _FLOAT_RE.match(raw):
            raise InvalidGaugeValue(f"invalid gauge value: {raw!r}")
        metric = Metric.gauge(name, float(raw))
    elif kind == MetricKind.COUNTER.value:
        if not _INT_RE.match(raw):
            raise InvalidCounterValue(f"invalid counter value: {raw!r}")
        metric = Metric.counter(name, int(raw))
    else:
        raise InvalidMetricType(f"invalid metric type: {kind!r}")
    return metric.validate()


def ensure_kind(kind: str) -> str:
    if kind not in KNOWN_KINDS:
        raise InvalidMetricType(f"invalid metric type: {kind!r}")
    return kind


def _format_float(value: float) -> str:
    # Plain notation, shortest round-trip digits, no trailing zeros.
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_value(metric: Metric) -> str:
    if metric.is_gauge:
        return _format_float(metric.value)
    return str(metric.delta)
