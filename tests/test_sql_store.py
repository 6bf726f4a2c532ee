import asyncio
import time

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from metrics_collector.db import normalize_dsn
from metrics_collector.errors import BackendRejected, BackendUnavailable, InvalidMetricType
from metrics_collector.metrics import Metric
from metrics_collector.retry import RetryPolicy
from metrics_collector.storage import SQLStore
from metrics_collector.storage.sql import is_connection_error

from .conftest import FAST_POLICY


@pytest.mark.asyncio
async def test_batch_with_invalid_record_rolls_back(sql_store):
    await sql_store.update_batch([Metric.counter("PollCount", 5), Metric.gauge("Alloc", 1.0)])
    before = await sql_store.snapshot()

    with pytest.raises(InvalidMetricType):
        await sql_store.update_batch(
            [
                Metric.counter("PollCount", 1),
                Metric.gauge("Alloc", 99.0),
                Metric.gauge("NewGauge", 3.0),
                Metric(id="Broken", kind="histogram", value=1.0),
            ]
        )

    assert await sql_store.snapshot() == before


@pytest.mark.asyncio
async def test_state_survives_reopen(tmp_path):
    dsn = f"sqlite+aiosqlite:///{tmp_path / 'durable.db'}"
    first = SQLStore(dsn, policy=FAST_POLICY)
    await first.open()
    await first.update_metric(Metric.counter("hits", 4))
    await first.close()

    second = SQLStore(dsn, policy=FAST_POLICY)
    await second.open()
    try:
        await second.update_metric(Metric.counter("hits", 1))
        assert (await second.get_metric("hits")).delta == 5
    finally:
        await second.close()


@pytest.mark.asyncio
async def test_connection_errors_are_retried(sql_store):
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))
        return "ok"

    assert await sql_store._retry("flaky", flaky) == "ok"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_connection_errors_exhaust_into_backend_unavailable(sql_store):
    calls = []

    async def down():
        calls.append(1)
        raise ConnectionRefusedError("refused")

    with pytest.raises(BackendUnavailable):
        await sql_store._retry("down", down)
    assert len(calls) == FAST_POLICY.max_attempts


@pytest.mark.asyncio
async def test_shutdown_interrupts_retry_backoff(tmp_path):
    stop_event = asyncio.Event()
    store = SQLStore(
        f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}",
        policy=RetryPolicy(delays=(5.0, 5.0, 5.0)),
        stop_event=stop_event,
    )
    calls = []

    async def down():
        calls.append(1)
        stop_event.set()
        raise ConnectionRefusedError("refused")

    started = time.monotonic()
    with pytest.raises(BackendUnavailable, match="interrupted"):
        await store._retry("down", down)
    assert time.monotonic() - started < 1.0
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_query_errors_are_not_retried(sql_store):
    calls = []

    async def constraint():
        calls.append(1)
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    with pytest.raises(BackendRejected):
        await sql_store._retry("constraint", constraint)
    assert len(calls) == 1


def test_is_connection_error():
    assert is_connection_error(OperationalError("SELECT 1", {}, Exception("gone")))
    assert is_connection_error(ConnectionRefusedError())
    assert not is_connection_error(IntegrityError("INSERT", {}, Exception("dup")))
    assert not is_connection_error(ValueError("bad"))


@pytest.mark.parametrize(
    "dsn, expected",
    [
        ("postgres://u:p@db:5432/metrics", "postgresql+asyncpg://u:p@db:5432/metrics"),
        ("postgresql://u@db/metrics", "postgresql+asyncpg://u@db/metrics"),
        ("sqlite+aiosqlite:///./m.db", "sqlite+aiosqlite:///./m.db"),
    ],
)
def test_normalize_dsn(dsn, expected):
    assert normalize_dsn(dsn) == expected
