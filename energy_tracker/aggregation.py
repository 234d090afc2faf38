# aggregation.py
"""Per-user daily consumption records.

One document per (user, day) under ``users/{uid}/consumption_history/{date}``.
``total_consumption`` is the full-day projection from the current devices
(sum of power * usage hours) until all 24 hours have been sampled; from then
on it is the sum of the hourly samples. ``hourly_consumption`` only ever holds
synthetic samples and is kept for display.
"""
import logging
from datetime import date, datetime
from typing import Awaitable, Callable, Iterable, Mapping

from energy_tracker.catalog import load_user_devices
from energy_tracker.errors import EngineError
from energy_tracker.models import DailyConsumptionRecord, Device, DeviceConsumption
from energy_tracker.retention import RetentionManager, history_collection
from energy_tracker.store import DocumentStore, Transaction
from energy_tracker.synthesizer import (
    DEFAULT_USAGE_PROFILE,
    HourProfile,
    check_hour,
    hourly_consumption,
)

_LOGGER = logging.getLogger(__name__)


def record_path(user_id: str, day: date) -> str:
    return f"{history_collection(user_id)}/{day.isoformat()}"


def build_devices_consumption(devices: Iterable[Device]) -> dict[str, DeviceConsumption]:
    return {
        device.id: DeviceConsumption(
            manufacturer=device.manufacturer,
            model=device.model,
            daily_consumption=device.daily_consumption,
        )
        for device in devices
    }


def projected_total(devices: Iterable[Device]) -> float:
    return sum(device.daily_consumption for device in devices)


def settle_total(record: DailyConsumptionRecord, devices: list[Device]) -> float:
    if record.is_complete:
        return record.hourly_total
    return projected_total(devices)


class AggregationStore:
    def __init__(
        self,
        store: DocumentStore,
        retention: RetentionManager | None = None,
        now: Callable[[], datetime] = datetime.now,
        profile: Mapping[int, HourProfile] = DEFAULT_USAGE_PROFILE,
    ) -> None:
        self._store = store
        self._retention = retention
        self._now = now
        self.profile = profile

    def today(self) -> date:
        return self._now().date()

    async def _load(self, txn: Transaction, user_id: str, day: date):
        # all reads happen before any write in the transaction
        devices = await load_user_devices(txn, user_id)
        existing = await txn.get(record_path(user_id, day))
        if existing:
            record = DailyConsumptionRecord.from_document(existing)
        else:
            record = DailyConsumptionRecord(date=day)
        return devices, record, existing is None

    async def _write(self, operation: str, user_id: str, day: date,
                     fn: Callable[[Transaction], Awaitable]):
        try:
            result = await self._store.run_transaction(fn)
        except EngineError as ex:
            ex.user_id = ex.user_id or user_id
            ex.day = ex.day or day.isoformat()
            ex.operation = ex.operation if ex.operation not in (None, "transaction") else operation
            _LOGGER.error(f"Consumption write failed: {ex}")
            raise
        if self._retention is not None:
            self._retention.schedule_purge(user_id, self.today())
        return result

    async def recompute_totals(self, user_id: str, day: date | None = None) -> DailyConsumptionRecord:
        """Rewrite the day's total and per-device breakdown from the user's devices."""
        day = day or self.today()
        stamp = self._now()

        async def _apply(txn: Transaction) -> DailyConsumptionRecord:
            devices, record, _ = await self._load(txn, user_id, day)
            record.devices_consumption = build_devices_consumption(devices)
            record.total_consumption = settle_total(record, devices)
            record.last_updated = stamp
            txn.set(record_path(user_id, day), record.to_document())
            return record

        record = await self._write("recompute_totals", user_id, day, _apply)
        _LOGGER.info(
            f"Updated consumption history for {day}: {record.total_consumption:.3f} kWh "
            f"for user {user_id}"
        )
        return record

    async def record_hour_sample(self, user_id: str, hour: int | None = None,
                                 day: date | None = None) -> float:
        """Store the synthetic sample for ``hour``, replacing any earlier one."""
        now = self._now()
        hour = now.hour if hour is None else check_hour(hour)
        day = day or now.date()

        async def _apply(txn: Transaction) -> float:
            devices, record, created = await self._load(txn, user_id, day)
            value = hourly_consumption(devices, hour, self.profile)
            record.hourly_consumption[hour] = value
            if created:
                record.devices_consumption = build_devices_consumption(devices)
            record.total_consumption = settle_total(record, devices)
            record.last_updated = now
            txn.set(record_path(user_id, day), record.to_document())
            return value

        value = await self._write("record_hour_sample", user_id, day, _apply)
        _LOGGER.debug(f"Recorded hourly consumption for {day} hour {hour}: {value:.3f} kWh")
        return value

    async def initialize_user(self, user_id: str) -> DailyConsumptionRecord:
        """Create today's empty record for a new user if it does not exist yet."""
        day = self.today()
        stamp = self._now()

        async def _apply(txn: Transaction) -> DailyConsumptionRecord:
            existing = await txn.get(record_path(user_id, day))
            if existing:
                return DailyConsumptionRecord.from_document(existing)
            record = DailyConsumptionRecord(date=day, last_updated=stamp)
            txn.set(record_path(user_id, day), record.to_document())
            return record

        return await self._write("initialize_user", user_id, day, _apply)

    async def get_range(self, user_id: str, start: date, end: date) -> list[DailyConsumptionRecord]:
        """Records with start <= date <= end, oldest first. Missing days are absent."""
        if start > end:
            return []
        try:
            docs = await self._store.query(
                history_collection(user_id),
                filters=[("date", ">=", start.isoformat()), ("date", "<=", end.isoformat())],
                order_by="date",
            )
        except EngineError as ex:
            _LOGGER.warning(f"Error fetching daily consumption for user {user_id} "
                            f"({start}..{end}): {ex}")
            return []
        return [DailyConsumptionRecord.from_document(doc.data) for doc in docs]

    async def get_hourly(self, user_id: str, day: date) -> dict[int, float]:
        try:
            data = await self._store.get(record_path(user_id, day))
        except EngineError as ex:
            _LOGGER.warning(f"Error fetching hourly consumption for user {user_id} on {day}: {ex}")
            return {}
        if not data:
            return {}
        return dict(sorted(DailyConsumptionRecord.from_document(data).hourly_consumption.items()))
