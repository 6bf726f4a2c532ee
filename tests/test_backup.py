import json

import pytest

from metrics_collector.metrics import Metric
from metrics_collector.storage import Backup, MemoryStore, load_snapshot, save_snapshot


@pytest.mark.asyncio
async def test_round_trip_reproduces_store(store, tmp_path):
    path = tmp_path / "nested" / "metrics-db.json"
    await store.update_batch(
        [
            Metric.gauge("Alloc", 123.45),
            Metric.gauge("RandomValue", 0.25),
            Metric.counter("PollCount", 7),
        ]
    )

    assert await save_snapshot(store, path) == 3

    fresh = MemoryStore()
    assert await load_snapshot(fresh, path) == 3
    assert await fresh.snapshot() == await store.snapshot()


@pytest.mark.asyncio
async def test_file_is_one_json_object_keyed_by_id(memory_store, tmp_path):
    path = tmp_path / "metrics-db.json"
    await memory_store.update_metric(Metric.counter("PollCount", 2))
    await save_snapshot(memory_store, path)

    data = json.loads(path.read_text())
    assert data == {"PollCount": {"id": "PollCount", "type": "counter", "delta": 2}}


@pytest.mark.asyncio
async def test_save_overwrites_previous_file(memory_store, tmp_path):
    path = tmp_path / "metrics-db.json"
    await memory_store.update_metric(Metric.gauge("a", 1.0))
    await save_snapshot(memory_store, path)
    await memory_store.restore([Metric.gauge("b", 2.0)])
    await save_snapshot(memory_store, path)

    assert set(json.loads(path.read_text())) == {"b"}
    assert list(tmp_path.iterdir()) == [path]


@pytest.mark.asyncio
async def test_missing_file_is_a_noop(memory_store, tmp_path):
    await memory_store.update_metric(Metric.gauge("kept", 1.0))

    assert await load_snapshot(memory_store, tmp_path / "absent.json") == 0
    assert await memory_store.snapshot() == {"kept": Metric.gauge("kept", 1.0)}


@pytest.mark.asyncio
async def test_blank_file_is_a_noop(memory_store, tmp_path):
    path = tmp_path / "metrics-db.json"
    path.write_text("  \n")

    assert await load_snapshot(memory_store, path) == 0
    assert await memory_store.snapshot() == {}


@pytest.mark.asyncio
async def test_corrupt_backup_is_logged_not_raised(memory_store, tmp_path, caplog):
    path = tmp_path / "metrics-db.json"
    path.write_text('{"x": {"type": "histogram", "value": 1}}')
    await memory_store.update_metric(Metric.gauge("kept", 1.0))

    assert await Backup(memory_store, path).restore() is False
    assert await memory_store.snapshot() == {"kept": Metric.gauge("kept", 1.0)}
    assert "failed to restore backup" in caplog.text


@pytest.mark.parametrize(
    "record",
    [
        {"type": "counter", "delta": 1.5},
        {"type": "counter", "delta": "3"},
        {"type": "gauge", "value": "1.5"},
        {"type": "gauge", "value": True},
    ],
)
@pytest.mark.asyncio
async def test_mistyped_values_are_not_restored(memory_store, tmp_path, record):
    path = tmp_path / "metrics-db.json"
    path.write_text(json.dumps({"m": record}))

    assert await Backup(memory_store, path).restore() is False
    assert await memory_store.snapshot() == {}


@pytest.mark.asyncio
async def test_unwritable_target_is_logged_not_raised(memory_store, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")

    assert await Backup(memory_store, blocker / "metrics-db.json").save() is False
