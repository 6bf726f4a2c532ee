import pytest
import pytest_asyncio

from metrics_collector.config import ServerSettings
from metrics_collector.retry import RetryPolicy
from metrics_collector.storage import MemoryStore, SQLStore

FAST_POLICY = RetryPolicy(delays=(0.01, 0.02, 0.03))

_ENV_VARS = (
    "ADDRESS",
    "STORE_INTERVAL",
    "FILE_STORAGE_PATH",
    "RESTORE",
    "DATABASE_DSN",
    "KEY",
    "POLL_INTERVAL",
    "REPORT_INTERVAL",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    store = SQLStore(f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}", policy=FAST_POLICY)
    await store.open()
    try:
        yield store
    finally:
        await store.close()


@pytest.fixture
def server_settings(tmp_path):
    return ServerSettings(
        address="127.0.0.1:8080",
        file_storage_path=str(tmp_path / "backup" / "metrics-db.json"),
        restore=False,
        store_interval=300,
    )


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    if request.param == "memory":
        yield MemoryStore()
        return
    backend = SQLStore(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}", policy=FAST_POLICY)
    await backend.open()
    try:
        yield backend
    finally:
        await backend.close()
