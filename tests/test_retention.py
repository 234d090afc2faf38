from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest
from conftest import seed_record

from energy_tracker.errors import BackendUnavailable
from energy_tracker.retention import RetentionManager, history_collection
from energy_tracker.store import MemoryDocumentStore


def test_cutoff_for():
    manager = RetentionManager(MemoryDocumentStore(), retention_days=30)
    assert manager.cutoff_for(date(2024, 6, 30)) == date(2024, 5, 31)


def test_retention_days_must_be_positive():
    with pytest.raises(ValueError):
        RetentionManager(MemoryDocumentStore(), retention_days=0)


@pytest.mark.asyncio
async def test_purge_deletes_only_older_records(store):
    for day in ["2024-04-30", "2024-05-01", "2024-05-02", "2024-06-01"]:
        seed_record(store, "U", day, 1.0)
    seed_record(store, "V", "2024-04-30", 1.0)
    manager = RetentionManager(store)

    assert await manager.purge_older_than("U", date(2024, 5, 2)) == 2

    remaining = [d.id for d in await store.query(history_collection("U"), order_by="date")]
    assert remaining == ["2024-05-02", "2024-06-01"]
    assert len(await store.query(history_collection("V"))) == 1


@pytest.mark.asyncio
async def test_purge_is_idempotent(store):
    seed_record(store, "U", "2024-04-30", 1.0)
    manager = RetentionManager(store)

    assert await manager.purge_older_than("U", date(2024, 5, 1)) == 1
    assert await manager.purge_older_than("U", date(2024, 5, 1)) == 0
    assert store.commits == [1]


@pytest.mark.asyncio
async def test_purge_in_bounded_batches(store):
    start = date(2020, 1, 1)
    for i in range(1203):
        seed_record(store, "U", (start + timedelta(days=i)).isoformat(), 1.0)

    manager = RetentionManager(store, retention_days=30)
    assert await manager.purge_older_than("U", date(2024, 1, 1)) == 1203

    assert store.commits == [500, 500, 203]


@pytest.mark.asyncio
async def test_configured_batch_size(store):
    for i in range(5):
        seed_record(store, "U", f"2024-01-0{i + 1}", 1.0)

    manager = RetentionManager(store, batch_size=2)
    await manager.purge_older_than("U", date(2024, 2, 1))

    assert store.commits == [2, 2, 1]


@pytest.mark.asyncio
async def test_scheduled_purge_uses_window(store):
    seed_record(store, "U", "2024-05-01", 1.0)
    seed_record(store, "U", "2024-05-02", 1.0)
    manager = RetentionManager(store, retention_days=30)

    manager.schedule_purge("U", date(2024, 6, 1))
    await manager.drain()

    # cutoff is 2024-05-02, which itself is kept
    assert [d.id for d in await store.query(history_collection("U"))] == ["2024-05-02"]


@pytest.mark.asyncio
async def test_scheduled_purge_swallows_failures(store, caplog):
    store.query = AsyncMock(side_effect=BackendUnavailable("offline"))
    manager = RetentionManager(store)

    task = manager.schedule_purge("U", date(2024, 6, 1))
    await manager.drain()

    assert task.result() == 0
    assert "Retention purge failed" in caplog.text


@pytest.mark.asyncio
async def test_scheduled_purge_logs_unexpected_errors(store, caplog):
    store.query = AsyncMock(side_effect=RuntimeError("boom"))
    manager = RetentionManager(store)

    task = manager.schedule_purge("U", date(2024, 6, 1))
    await manager.drain()

    assert task.result() == 0
    assert "Unexpected error purging history for user U" in caplog.text


@pytest.mark.asyncio
async def test_old_days_gone_after_write(store, service, clock):
    seed_record(store, "U", "2024-04-01", 3.0)
    seed_record(store, "U", "2024-05-20", 2.0)

    await service.aggregation.recompute_totals("U")
    await service.retention.drain()

    assert await service.get_range("U", date(2024, 4, 1), date(2024, 4, 30)) == []
    kept = await service.get_range("U", date(2024, 5, 1), clock().date())
    assert [r.date for r in kept] == [date(2024, 5, 20), date(2024, 6, 1)]
