# store.py
"""Document store boundary.

The engine talks to a collection-of-documents backend through the small
interface below: get by id, equality/range queries with ordering, set with
optional merge, delete, bounded write batches and transactions. Paths are
slash separated, e.g. ``users/<uid>/consumption_history/2024-06-01``.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from energy_tracker.errors import BackendUnavailable, ConflictError

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_SIZE = 500

T = TypeVar("T")

# (field, operator, value)
Filter = tuple[str, str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


@dataclass
class Document:
    id: str
    path: str
    data: dict[str, Any]


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


class Transaction(ABC):
    """Reads must happen before writes, as in Firestore."""

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Document]: ...

    @abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    @abstractmethod
    def delete(self, path: str) -> None: ...


class WriteBatch(ABC):
    @abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    @abstractmethod
    def delete(self, path: str) -> None: ...

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    def __len__(self) -> int: ...


class DocumentStore(ABC):
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Document]: ...

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None: ...

    @abstractmethod
    async def delete(self, path: str) -> None: ...

    @abstractmethod
    def batch(self) -> WriteBatch: ...

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run ``fn`` atomically; the backend may call it more than once."""

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]


class BoundedBatchWriter:
    """Queues writes and commits them in batches of at most ``limit`` ops."""

    def __init__(self, store: DocumentStore, limit: int | None = None) -> None:
        self._store = store
        self.limit = min(limit or store.max_batch_size, store.max_batch_size)
        if self.limit <= 0:
            raise ValueError("batch limit must be positive")
        self._batch = store.batch()
        self.committed = 0
        self.flushes = 0

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self._batch.set(path, data, merge=merge)
        await self._flush_if_full()

    async def delete(self, path: str) -> None:
        self._batch.delete(path)
        await self._flush_if_full()

    async def _flush_if_full(self) -> None:
        if len(self._batch) >= self.limit:
            await self.flush()

    async def flush(self) -> None:
        pending = len(self._batch)
        if not pending:
            return
        await self._batch.commit()
        self.committed += pending
        self.flushes += 1
        _LOGGER.debug(f"Flushed batch of {pending} writes")
        self._batch = self._store.batch()

    async def __aenter__(self) -> "BoundedBatchWriter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.flush()


# ---------------- IN-MEMORY BACKEND ----------------
def _matches(data: dict[str, Any], filters: Iterable[Filter]) -> bool:
    for field_name, op, value in filters:
        if field_name not in data:
            return False
        try:
            if not _OPERATORS[op](data[field_name], value):
                return False
        except TypeError:
            return False
    return True


def _merge(target: dict[str, Any], data: dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


class MemoryDocumentStore(DocumentStore):
    """Process-local document store with Firestore-like semantics."""

    def __init__(self, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> None:
        self.max_batch_size = max_batch_size
        self._docs: dict[str, dict[str, Any]] = {}
        self._txn_lock = asyncio.Lock()
        self.commits: list[int] = []

    def _write(self, path: str, data: dict[str, Any], merge: bool) -> None:
        path = path.strip("/")
        split_path(path)
        if merge and path in self._docs:
            _merge(self._docs[path], data)
        else:
            self._docs[path] = copy.deepcopy(data)

    def _remove(self, path: str) -> None:
        self._docs.pop(path.strip("/"), None)

    def _get(self, path: str) -> dict[str, Any] | None:
        data = self._docs.get(path.strip("/"))
        return copy.deepcopy(data) if data is not None else None

    def _query(self, collection, filters=(), order_by=None, limit=None) -> list[Document]:
        prefix = collection.strip("/") + "/"
        filters = list(filters)
        found = []
        for path, data in self._docs.items():
            if not path.startswith(prefix) or "/" in path[len(prefix):]:
                continue
            if _matches(data, filters):
                found.append(Document(id=path[len(prefix):], path=path, data=copy.deepcopy(data)))
        if order_by:
            found = [d for d in found if order_by in d.data]
            found.sort(key=lambda d: d.data[order_by])
        else:
            found.sort(key=lambda d: d.id)
        if limit is not None:
            found = found[:limit]
        return found

    async def get(self, path):
        return self._get(path)

    async def query(self, collection, filters=(), order_by=None, limit=None):
        return self._query(collection, filters, order_by, limit)

    async def set(self, path, data, merge=False):
        async with self._txn_lock:
            self._write(path, data, merge)

    async def delete(self, path):
        async with self._txn_lock:
            self._remove(path)

    def batch(self) -> "_MemoryBatch":
        return _MemoryBatch(self)

    async def run_transaction(self, fn):
        async with self._txn_lock:
            txn = _MemoryTransaction(self)
            result = await fn(txn)
            txn.apply()
            return result


class _MemoryTransaction(Transaction):
    def __init__(self, store: MemoryDocumentStore) -> None:
        self._store = store
        self._writes: list[tuple[str, str, dict[str, Any] | None, bool]] = []

    async def get(self, path):
        if self._writes:
            raise ConflictError("Transaction reads must happen before writes", operation="get")
        return self._store._get(path)

    async def query(self, collection, filters=(), order_by=None, limit=None):
        if self._writes:
            raise ConflictError("Transaction reads must happen before writes", operation="query")
        return self._store._query(collection, filters, order_by, limit)

    def set(self, path, data, merge=False):
        self._writes.append(("set", path, data, merge))

    def delete(self, path):
        self._writes.append(("delete", path, None, False))

    def apply(self) -> None:
        for kind, path, data, merge in self._writes:
            if kind == "set":
                self._store._write(path, data, merge)
            else:
                self._store._remove(path)


class _MemoryBatch(WriteBatch):
    def __init__(self, store: MemoryDocumentStore) -> None:
        self._store = store
        self._ops: list[tuple[str, str, dict[str, Any] | None, bool]] = []

    def set(self, path, data, merge=False):
        self._ops.append(("set", path, data, merge))

    def delete(self, path):
        self._ops.append(("delete", path, None, False))

    def __len__(self):
        return len(self._ops)

    async def commit(self):
        if len(self._ops) > self._store.max_batch_size:
            raise BackendUnavailable(
                f"Batch of {len(self._ops)} writes exceeds limit {self._store.max_batch_size}",
                operation="batch_commit",
            )
        async with self._store._txn_lock:
            for kind, path, data, merge in self._ops:
                if kind == "set":
                    self._store._write(path, data, merge)
                else:
                    self._store._remove(path)
        self._store.commits.append(len(self._ops))
        self._ops = []
