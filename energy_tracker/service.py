# service.py
import logging
from datetime import date, datetime
from typing import Callable
from zoneinfo import ZoneInfo

from energy_tracker.aggregation import AggregationStore
from energy_tracker.cache import CacheLayer
from energy_tracker.catalog import DeviceCatalog
from energy_tracker.config import Settings
from energy_tracker.firebase import FirestoreDocumentStore, get_firestore
from energy_tracker.models import DailyConsumptionRecord, MonthlyAggregate, WeeklyAggregate
from energy_tracker.retention import RetentionManager
from energy_tracker.rollup import group_by_month, group_by_week
from energy_tracker.store import DocumentStore

_LOGGER = logging.getLogger(__name__)


class EnergyService:
    """Owns one document store, its caches and the engine components on top.

    Constructed explicitly and handed to callers; nothing here is global.
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Settings | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        if now is None:
            tz = ZoneInfo(self.settings.timezone)

            def now() -> datetime:
                return datetime.now(tz)
        self.now = now
        self.cache = CacheLayer()
        self.retention = RetentionManager(
            store,
            retention_days=self.settings.retention_days,
            batch_size=self.settings.batch_size,
        )
        self.aggregation = AggregationStore(store, self.retention, now=now)
        self.catalog = DeviceCatalog(store, self.cache, self.aggregation, now=now)

    async def start(self) -> None:
        await self.catalog.warm_up()

    async def close(self) -> None:
        await self.retention.drain()

    async def initialize_user(self, user_id: str) -> DailyConsumptionRecord:
        """Called on a user's first sign-in; leaves an existing record alone."""
        return await self.aggregation.initialize_user(user_id)

    async def get_range(self, user_id: str, start: date, end: date) -> list[DailyConsumptionRecord]:
        return await self.aggregation.get_range(user_id, start, end)

    async def get_weekly(self, user_id: str, start: date, end: date) -> list[WeeklyAggregate]:
        return group_by_week(await self.aggregation.get_range(user_id, start, end))

    async def get_monthly(self, user_id: str, start: date, end: date) -> list[MonthlyAggregate]:
        return group_by_month(await self.aggregation.get_range(user_id, start, end))


def create_firestore_service(settings: Settings) -> EnergyService:
    store = FirestoreDocumentStore(
        get_firestore(settings.firebase_key_base64),
        max_in_flight=settings.max_in_flight,
        max_batch_size=settings.batch_size,
    )
    _LOGGER.info("Using Firestore document store")
    return EnergyService(store, settings)
