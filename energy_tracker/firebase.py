# firebase.py
import asyncio
import base64
import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore import async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from energy_tracker.errors import BackendUnavailable, ConflictError, NotFoundError
from energy_tracker.store import (
    DEFAULT_MAX_BATCH_SIZE,
    Document,
    DocumentStore,
    Transaction,
    WriteBatch,
)

_LOGGER = logging.getLogger(__name__)


def init_firebase(key_base64: str | None):
    if firebase_admin._apps:
        return

    if not key_base64:
        raise RuntimeError("FIREBASE_KEY_BASE64 not set")

    cred_dict = json.loads(
        base64.b64decode(key_base64).decode("utf-8")
    )

    cred = credentials.Certificate(cred_dict)

    firebase_admin.initialize_app(cred)
    _LOGGER.info(f"Firebase initialised for project {cred_dict.get('project_id')}")


def get_firestore(key_base64: str | None):
    init_firebase(key_base64)
    return firestore_async.client()


def _translate(ex: Exception, operation: str) -> Exception:
    if isinstance(ex, google_exceptions.NotFound):
        return NotFoundError(str(ex), operation=operation)
    if isinstance(ex, (google_exceptions.Aborted, google_exceptions.FailedPrecondition,
                       google_exceptions.Conflict)):
        return ConflictError(str(ex), operation=operation)
    return BackendUnavailable(str(ex), operation=operation)


def _to_documents(snapshots) -> list[Document]:
    return [
        Document(id=snap.id, path=snap.reference.path, data=snap.to_dict() or {})
        for snap in snapshots
    ]


class FirestoreDocumentStore(DocumentStore):
    """Document store on top of the firebase_admin async Firestore client.

    A semaphore bounds the number of requests in flight; Google API errors are
    re-raised as the engine's typed errors.
    """

    def __init__(self, client, max_in_flight: int = 8,
                 max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> None:
        self._client = client
        self._semaphore = asyncio.Semaphore(max_in_flight)
        self.max_batch_size = max_batch_size

    def build_query(self, collection, filters=(), order_by=None, limit=None):
        query = self._client.collection(collection)
        for field_name, op, value in filters:
            query = query.where(filter=FieldFilter(field_name, op, value))
        if order_by:
            query = query.order_by(order_by)
        if limit is not None:
            query = query.limit(limit)
        return query

    def document(self, path):
        return self._client.document(path)

    async def call(self, operation: str, awaitable):
        async with self._semaphore:
            try:
                return await awaitable
            except google_exceptions.GoogleAPIError as ex:
                raise _translate(ex, operation) from ex

    async def get(self, path):
        snapshot = await self.call("get", self.document(path).get())
        return snapshot.to_dict() if snapshot.exists else None

    async def query(self, collection, filters=(), order_by=None, limit=None):
        snapshots = await self.call(
            "query", self.build_query(collection, filters, order_by, limit).get()
        )
        return _to_documents(snapshots)

    async def set(self, path, data, merge=False):
        await self.call("set", self.document(path).set(data, merge=merge))

    async def delete(self, path):
        await self.call("delete", self.document(path).delete())

    def batch(self) -> "FirestoreBatch":
        return FirestoreBatch(self, self._client.batch())

    async def run_transaction(self, fn):
        @async_transactional
        async def _run(transaction):
            return await fn(FirestoreTransaction(self, transaction))

        return await self.call("transaction", _run(self._client.transaction()))


class FirestoreTransaction(Transaction):
    def __init__(self, store: FirestoreDocumentStore, transaction) -> None:
        self._store = store
        self._txn = transaction

    async def get(self, path):
        snapshot = await self._store.document(path).get(transaction=self._txn)
        return snapshot.to_dict() if snapshot.exists else None

    async def query(self, collection, filters=(), order_by=None, limit=None):
        query = self._store.build_query(collection, filters, order_by, limit)
        return _to_documents(await query.get(transaction=self._txn))

    def set(self, path, data, merge=False):
        self._txn.set(self._store.document(path), data, merge=merge)

    def delete(self, path):
        self._txn.delete(self._store.document(path))


class FirestoreBatch(WriteBatch):
    def __init__(self, store: FirestoreDocumentStore, batch) -> None:
        self._store = store
        self._batch = batch
        self._count = 0

    def set(self, path, data, merge=False):
        self._batch.set(self._store.document(path), data, merge=merge)
        self._count += 1

    def delete(self, path):
        self._batch.delete(self._store.document(path))
        self._count += 1

    def __len__(self):
        return self._count

    async def commit(self):
        await self._store.call("batch_commit", self._batch.commit())
        self._count = 0
