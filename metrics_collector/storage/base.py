from abc import ABC, abstractmethod
from typing import Dict, Iterable, Sequence

from ..metrics.base import Metric


class Store(ABC):
    """Uniform contract for the server-side metric state.

    Every mutation goes through the merge engine. Implementations differ only
    in persistence, batch atomicity and retry behaviour.
    """

    async def open(self) -> None:
        """Prepare the backend before serving."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def update_metric(self, metric: Metric) -> Metric:
        """Merge ``metric`` into the store and return the stored result."""

    @abstractmethod
    async def update_batch(self, metrics: Sequence[Metric]) -> None:
        """Merge every record of ``metrics`` in order."""

    @abstractmethod
    async def get_metric(self, metric_id: str) -> Metric:
        """Return the stored metric or raise ``MetricNotFound``."""

    @abstractmethod
    async def get_all_gauges(self) -> Dict[str, float]:
        ...

    @abstractmethod
    async def get_all_counters(self) -> Dict[str, int]:
        ...

    @abstractmethod
    async def snapshot(self) -> Dict[str, Metric]:
        """Copy of every stored record, keyed by id."""

    @abstractmethod
    async def restore(self, records: Iterable[Metric]) -> None:
        """Replace the whole store contents with ``records``."""

    async def ping(self) -> None:
        """Liveness probe; a no-op for backends without external dependencies."""
