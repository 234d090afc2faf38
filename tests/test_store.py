"""Tests for the in-memory document store and the bounded batch writer."""
import pytest

from energy_tracker.errors import BackendUnavailable, ConflictError
from energy_tracker.store import BoundedBatchWriter, MemoryDocumentStore, split_path


def test_split_path():
    assert split_path("users/u1/consumption_history/2024-06-01") == (
        "users/u1/consumption_history", "2024-06-01")
    with pytest.raises(ValueError):
        split_path("devices")


@pytest.mark.asyncio
async def test_set_get_merge_delete():
    store = MemoryDocumentStore()
    await store.set("devices/a", {"model": "X1", "nested": {"a": 1}})
    await store.set("devices/a", {"nested": {"b": 2}}, merge=True)

    assert await store.get("devices/a") == {"model": "X1", "nested": {"a": 1, "b": 2}}

    await store.set("devices/a", {"model": "X2"})
    assert await store.get("devices/a") == {"model": "X2"}

    await store.delete("devices/a")
    assert await store.get("devices/a") is None


@pytest.mark.asyncio
async def test_query_filters_order_and_limit():
    store = MemoryDocumentStore()
    for day, total in [("2024-06-03", 3.0), ("2024-06-01", 1.0), ("2024-06-02", 2.0)]:
        await store.set(f"users/u1/consumption_history/{day}", {"date": day, "total": total})
    await store.set("users/u2/consumption_history/2024-06-01", {"date": "2024-06-01"})
    # a nested sub-collection must not leak into the parent query
    await store.set("users/u1/consumption_history/2024-06-01/extra/x", {"date": "2024-06-01"})

    docs = await store.query(
        "users/u1/consumption_history",
        filters=[("date", ">=", "2024-06-02")],
        order_by="date",
    )
    assert [d.id for d in docs] == ["2024-06-02", "2024-06-03"]

    limited = await store.query("users/u1/consumption_history", order_by="date", limit=1)
    assert [d.id for d in limited] == ["2024-06-01"]


@pytest.mark.asyncio
async def test_returned_data_is_a_copy():
    store = MemoryDocumentStore()
    await store.set("devices/a", {"tags": {"x": 1}})
    data = await store.get("devices/a")
    data["tags"]["x"] = 99
    assert (await store.get("devices/a"))["tags"]["x"] == 1


@pytest.mark.asyncio
async def test_transaction_writes_apply_only_on_success():
    store = MemoryDocumentStore()

    async def failing(txn):
        await txn.get("devices/a")
        txn.set("devices/a", {"model": "X1"})
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await store.run_transaction(failing)
    assert await store.get("devices/a") is None

    async def ok(txn):
        txn.set("devices/a", {"model": "X1"})
        return "done"

    assert await store.run_transaction(ok) == "done"
    assert await store.get("devices/a") == {"model": "X1"}


@pytest.mark.asyncio
async def test_transaction_read_after_write_rejected():
    store = MemoryDocumentStore()

    async def bad(txn):
        txn.set("devices/a", {"model": "X1"})
        await txn.get("devices/a")

    with pytest.raises(ConflictError):
        await store.run_transaction(bad)


@pytest.mark.asyncio
async def test_batch_over_backend_limit_fails():
    store = MemoryDocumentStore(max_batch_size=2)
    batch = store.batch()
    for i in range(3):
        batch.set(f"devices/{i}", {"i": i})
    with pytest.raises(BackendUnavailable):
        await batch.commit()


@pytest.mark.asyncio
async def test_bounded_writer_flushes_at_limit():
    store = MemoryDocumentStore(max_batch_size=500)
    for i in range(1203):
        await store.set(f"devices/{i}", {"i": i})

    async with BoundedBatchWriter(store) as writer:
        for i in range(1203):
            await writer.delete(f"devices/{i}")

    assert store.commits == [500, 500, 203]
    assert writer.committed == 1203
    assert await store.query("devices") == []


@pytest.mark.asyncio
async def test_bounded_writer_never_exceeds_backend_limit():
    store = MemoryDocumentStore(max_batch_size=3)
    writer = BoundedBatchWriter(store, limit=10)
    assert writer.limit == 3

    for i in range(7):
        await writer.set(f"devices/{i}", {"i": i})
    await writer.flush()

    assert store.commits == [3, 3, 1]
    assert len(await store.query("devices")) == 7


@pytest.mark.asyncio
async def test_bounded_writer_flush_is_noop_when_empty():
    store = MemoryDocumentStore()
    writer = BoundedBatchWriter(store)
    await writer.flush()
    assert store.commits == []
