from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, Optional, Sequence, TypeVar

from sqlalchemy import delete, select, text
from sqlalchemy.exc import (
    DBAPIError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..db import create_engine, init_db
from ..errors import BackendRejected, BackendUnavailable, MetricNotFound
from ..metrics.base import Metric, MetricKind
from ..metrics.merge import merge
from ..models import MetricRow
from ..retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry
from .base import Store

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_connection_error(exc: BaseException) -> bool:
    """Connection-level failures are worth retrying; query errors are not."""
    if isinstance(exc, DBAPIError):
        return exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError))
    return isinstance(exc, (PoolTimeoutError, OSError, asyncio.TimeoutError))


class SQLStore(Store):
    """Store backed by a single ``metrics`` table.

    Every operation runs in its own transaction, so a batch either commits
    completely or not at all. Writers from this process are serialised by a
    lock; rows are also read ``FOR UPDATE`` where the database supports it.
    """

    def __init__(
        self,
        dsn: str,
        echo: bool = False,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.dsn = dsn
        self.echo = echo
        self.policy = policy
        self.stop_event = stop_event
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None
        self._write_lock = asyncio.Lock()

    def _sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            self._engine, self._sessions = create_engine(self.dsn, echo=self.echo)
        return self._sessions

    async def open(self) -> None:
        self._sessionmaker()
        await self._retry("open", lambda: init_db(self._engine))
        logger.info("SQL store ready")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None

    async def _retry(self, op: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await retry(
                f"sql.{op}",
                fn,
                is_connection_error,
                BackendUnavailable,
                policy=self.policy,
                stop_event=self.stop_event,
            )
        except SQLAlchemyError as exc:
            raise BackendRejected(f"sql.{op}: {exc}") from exc

    async def _transaction(self, op: str, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        sessions = self._sessionmaker()

        async def attempt() -> T:
            async with sessions() as session:
                async with session.begin():
                    return await work(session)

        return await self._retry(op, attempt)

    @staticmethod
    async def _merge_row(session: AsyncSession, metric: Metric) -> Metric:
        row = await session.get(MetricRow, metric.id, with_for_update=True)
        merged = merge(row.to_metric() if row is not None else None, metric)
        if row is None:
            session.add(MetricRow.from_metric(merged))
        else:
            row.apply(merged)
        await session.flush()
        return merged

    async def update_metric(self, metric: Metric) -> Metric:
        async with self._write_lock:
            return await self._transaction(
                "update_metric", lambda session: self._merge_row(session, metric)
            )

    async def update_batch(self, metrics: Sequence[Metric]) -> None:
        async def work(session: AsyncSession) -> None:
            for metric in metrics:
                await self._merge_row(session, metric)

        async with self._write_lock:
            await self._transaction("update_batch", work)

    async def get_metric(self, metric_id: str) -> Metric:
        async def work(session: AsyncSession) -> Metric:
            row = await session.get(MetricRow, metric_id)
            if row is None:
                raise MetricNotFound(f"metric {metric_id!r} not found")
            return row.to_metric()

        return await self._transaction("get_metric", work)

    async def get_all_gauges(self) -> Dict[str, float]:
        async def work(session: AsyncSession) -> Dict[str, float]:
            result = await session.execute(
                select(MetricRow.id, MetricRow.value).where(
                    MetricRow.type == MetricKind.GAUGE.value
                )
            )
            return {metric_id: value for metric_id, value in result.all()}

        return await self._transaction("get_all_gauges", work)

    async def get_all_counters(self) -> Dict[str, int]:
        async def work(session: AsyncSession) -> Dict[str, int]:
            result = await session.execute(
                select(MetricRow.id, MetricRow.delta).where(
                    MetricRow.type == MetricKind.COUNTER.value
                )
            )
            return {metric_id: delta for metric_id, delta in result.all()}

        return await self._transaction("get_all_counters", work)

    async def snapshot(self) -> Dict[str, Metric]:
        async def work(session: AsyncSession) -> Dict[str, Metric]:
            result = await session.execute(select(MetricRow))
            return {row.id: row.to_metric() for row in result.scalars()}

        return await self._transaction("snapshot", work)

    async def restore(self, records: Iterable[Metric]) -> None:
        validated = {record.id: record.validate() for record in records}

        async def work(session: AsyncSession) -> None:
            await session.execute(delete(MetricRow))
            session.add_all(MetricRow.from_metric(metric) for metric in validated.values())

        async with self._write_lock:
            await self._transaction("restore", work)

    async def ping(self) -> None:
        self._sessionmaker()
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise BackendUnavailable(f"sql.ping: {exc}") from exc
