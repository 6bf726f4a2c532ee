from __future__ import annotations

import asyncio
from typing import Dict, Iterable, Sequence

from ..errors import MetricNotFound
from ..metrics.base import Metric
from ..metrics.merge import merge, merge_batch
from .base import Store


class MemoryStore(Store):
    """Process-local store.

    Mutations are serialised by one lock. Readers copy the mapping without
    awaiting, so they always see a state between two complete mutations. A
    batch is applied under a single lock acquisition but is not rolled back:
    records merged before a failing one stay applied.
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}
        self._lock = asyncio.Lock()

    async def update_metric(self, metric: Metric) -> Metric:
        async with self._lock:
            merged = merge(self._metrics.get(metric.id), metric)
            self._metrics[metric.id] = merged
            return merged

    async def update_batch(self, metrics: Sequence[Metric]) -> None:
        async with self._lock:
            merge_batch(self._metrics, metrics)

    async def get_metric(self, metric_id: str) -> Metric:
        try:
            return self._metrics[metric_id]
        except KeyError:
            raise MetricNotFound(f"metric {metric_id!r} not found") from None

    async def get_all_gauges(self) -> Dict[str, float]:
        return {key: m.value for key, m in list(self._metrics.items()) if m.is_gauge}

    async def get_all_counters(self) -> Dict[str, int]:
        return {key: m.delta for key, m in list(self._metrics.items()) if m.is_counter}

    async def snapshot(self) -> Dict[str, Metric]:
        return dict(self._metrics)

    async def restore(self, records: Iterable[Metric]) -> None:
        restored = {record.id: record.validate() for record in records}
        async with self._lock:
            self._metrics = restored
