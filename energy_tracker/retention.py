# retention.py
import asyncio
import logging
from datetime import date, timedelta

from energy_tracker.errors import EngineError
from energy_tracker.store import BoundedBatchWriter, DocumentStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def history_collection(user_id: str) -> str:
    return f"users/{user_id}/consumption_history"


class RetentionManager:
    """Deletes daily records that fell out of the rolling retention window."""

    def __init__(
        self,
        store: DocumentStore,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        batch_size: int | None = None,
    ) -> None:
        if retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        self._store = store
        self.retention_days = retention_days
        self.batch_size = batch_size or store.max_batch_size
        self._pending: set[asyncio.Task] = set()

    def cutoff_for(self, today: date) -> date:
        return today - timedelta(days=self.retention_days)

    async def purge_older_than(self, user_id: str, cutoff: date) -> int:
        """Delete every record dated strictly before ``cutoff``; returns the count."""
        stale = await self._store.query(
            history_collection(user_id),
            filters=[("date", "<", cutoff.isoformat())],
            order_by="date",
        )
        if not stale:
            return 0

        async with BoundedBatchWriter(self._store, self.batch_size) as writer:
            for doc in stale:
                await writer.delete(doc.path)

        _LOGGER.info(
            f"Purged {len(stale)} consumption records before {cutoff} for user {user_id} "
            f"in {writer.flushes} batch(es)"
        )
        return len(stale)

    def schedule_purge(self, user_id: str, today: date) -> asyncio.Task:
        """Fire-and-forget purge; failures are logged, never raised."""
        task = asyncio.get_running_loop().create_task(
            self._safe_purge(user_id, self.cutoff_for(today))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _safe_purge(self, user_id: str, cutoff: date) -> int:
        try:
            return await self.purge_older_than(user_id, cutoff)
        except EngineError as ex:
            _LOGGER.warning(f"Retention purge failed: {ex}")
        except Exception:
            _LOGGER.exception(f"Unexpected error purging history for user {user_id}")
        return 0

    async def drain(self) -> None:
        """Wait for outstanding purges."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
