"""Update semantics for stored metrics.

Gauges are last-write-wins. Counters accumulate: each incoming delta is
added to the stored total, so applying the same update twice counts twice.
"""

from __future__ import annotations

from typing import Iterable, MutableMapping, Optional

from ..errors import InvalidCounterValue
from .base import INT64_MAX, INT64_MIN, Metric


def merge(current: Optional[Metric], incoming: Metric) -> Metric:
    incoming.validate()
    if incoming.is_gauge:
        return incoming

    base = current.delta if current is not None and current.is_counter else 0
    total = base + incoming.delta
    if not INT64_MIN <= total <= INT64_MAX:
        raise InvalidCounterValue(f"counter {incoming.id!r} overflows int64")
    return Metric.counter(incoming.id, total)


def merge_batch(current: MutableMapping[str, Metric], batch: Iterable[Metric]) -> None:
    """Merge ``batch`` into ``current`` in order, in place.

    Later records see the results of earlier ones. A failing record stops the
    batch and leaves the records merged before it applied.
    """
    for metric in batch:
        current[metric.id] = merge(current.get(metric.id), metric)
