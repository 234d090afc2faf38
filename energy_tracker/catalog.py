# catalog.py
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from energy_tracker.cache import KIND_CATEGORIES, KIND_USER_DEVICES, CacheLayer
from energy_tracker.errors import EngineError, NotFoundError, ValidationFailed
from energy_tracker.models import HOURS_PER_DAY, Category, Device, OwnerFlag
from energy_tracker.store import DocumentStore

if TYPE_CHECKING:
    from energy_tracker.aggregation import AggregationStore

_LOGGER = logging.getLogger(__name__)

DEVICES_COLLECTION = "devices"
CATEGORIES_COLLECTION = "categories"


def device_path(device_id: str) -> str:
    return f"{DEVICES_COLLECTION}/{device_id}"


async def load_user_devices(reader, user_id: str) -> list[Device]:
    """Fetch a user's devices through a store or an open transaction."""
    docs = await reader.query(
        DEVICES_COLLECTION,
        filters=[("owner_flag", "==", OwnerFlag.USER.value), ("user_id", "==", user_id)],
    )
    return [Device.from_document(doc.id, doc.data) for doc in docs]


def validate_device_fields(manufacturer: str, model: str, power_kw: float,
                           usage_hours: float, operation: str) -> None:
    if not manufacturer or not model:
        raise ValidationFailed("Manufacturer and model are required", operation=operation)
    if not isinstance(power_kw, (int, float)) or not math.isfinite(power_kw) or power_kw <= 0:
        raise ValidationFailed(f"Power consumption must be a positive number, got {power_kw!r}",
                               operation=operation)
    if (not isinstance(usage_hours, (int, float)) or not math.isfinite(usage_hours)
            or not 0 <= usage_hours <= HOURS_PER_DAY):
        raise ValidationFailed(f"Usage hours must be within 0..24, got {usage_hours!r}",
                               operation=operation)


class DeviceCatalog:
    """Preset templates and user-owned devices.

    Every mutation invalidates the user's cached device list and refreshes
    today's consumption record through the aggregation store.
    """

    def __init__(
        self,
        store: DocumentStore,
        cache: CacheLayer,
        aggregation: AggregationStore | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._cache = cache
        self._aggregation = aggregation
        self._now = now

    # ---------------- CATEGORIES ----------------
    async def _fetch_categories(self) -> list[Category]:
        docs = await self._store.query(CATEGORIES_COLLECTION)
        categories = []
        for doc in docs:
            try:
                categories.append(Category(id=int(doc.id), name=doc.data.get("name", "")))
            except ValueError:
                _LOGGER.warning(f"Skipping category with non-numeric id {doc.id!r}")
        return sorted(categories, key=lambda c: c.id)

    async def warm_up(self) -> None:
        try:
            categories = await self._fetch_categories()
        except EngineError as ex:
            _LOGGER.warning(f"Error caching categories: {ex}")
            return
        self._cache.put(KIND_CATEGORIES, "all", categories)

    async def list_categories(self) -> list[Category]:
        try:
            categories = await self._cache.get_or_load(
                KIND_CATEGORIES, "all", self._fetch_categories
            )
        except EngineError as ex:
            _LOGGER.warning(f"Error fetching categories: {ex}")
            return []
        # the cached list is shared
        return list(categories)

    # ---------------- READS ----------------
    async def list_preset_devices(self, category_id: int | None = None) -> list[Device]:
        filters = [("owner_flag", "==", OwnerFlag.TEMPLATE.value)]
        if category_id is not None:
            filters.append(("category_id", "==", category_id))
        try:
            docs = await self._store.query(DEVICES_COLLECTION, filters=filters)
        except EngineError as ex:
            _LOGGER.warning(f"Error fetching preset devices: {ex}")
            return []
        return [Device.from_document(doc.id, doc.data) for doc in docs]

    async def list_user_devices(self, user_id: str) -> list[Device]:
        try:
            devices = await self._cache.get_or_load(
                KIND_USER_DEVICES, user_id, lambda: load_user_devices(self._store, user_id)
            )
        except EngineError as ex:
            _LOGGER.warning(f"Error fetching devices for user {user_id}: {ex}")
            return []
        return list(devices)

    async def get_device(self, device_id: str, user_id: str | None = None) -> Device:
        """Fetch one device; with ``user_id``, other users' devices are hidden."""
        data = await self._store.get(device_path(device_id))
        if data is None:
            raise NotFoundError(f"Device {device_id} not found", operation="get_device")
        device = Device.from_document(device_id, data)
        if user_id is not None and device.owner_flag is OwnerFlag.USER and device.user_id != user_id:
            raise NotFoundError(f"Device {device_id} not found", user_id=user_id,
                                operation="get_device")
        return device

    # ---------------- WRITES ----------------
    async def claim_or_create_device(
        self,
        user_id: str,
        category_id: int,
        manufacturer: str,
        model: str,
        power_kw: float,
        usage_hours: float = 0,
    ) -> str:
        """Claim a matching template or create a new device; returns its id.

        The lookup and the write share one transaction, so a template can only
        be claimed once.
        """
        validate_device_fields(manufacturer, model, power_kw, usage_hours, "claim_or_create_device")
        stamp = self._now()

        async def _claim(txn):
            matches = await txn.query(
                DEVICES_COLLECTION,
                filters=[
                    ("manufacturer", "==", manufacturer),
                    ("model", "==", model),
                    ("power_consumption", "==", power_kw),
                    ("owner_flag", "==", OwnerFlag.TEMPLATE.value),
                ],
                limit=1,
            )
            if matches:
                template = matches[0]
                txn.set(template.path, {
                    **template.data,
                    "owner_flag": OwnerFlag.USER.value,
                    "user_id": user_id,
                    "usage_hours_per_day": usage_hours,
                    "last_updated": stamp,
                })
                return template.id, True

            device_id = self._store.new_id()
            txn.set(device_path(device_id), {
                "category_id": category_id,
                "manufacturer": manufacturer,
                "model": model,
                "power_consumption": power_kw,
                "usage_hours_per_day": usage_hours,
                "owner_flag": OwnerFlag.USER.value,
                "user_id": user_id,
                "created_at": stamp,
                "last_updated": stamp,
            })
            return device_id, False

        try:
            device_id, claimed = await self._store.run_transaction(_claim)
        except EngineError as ex:
            ex.user_id = user_id
            ex.operation = "claim_or_create_device"
            _LOGGER.error(f"Error adding device: {ex}")
            raise

        if claimed:
            _LOGGER.info(f"Claimed preset device {device_id} for user {user_id}")
        else:
            _LOGGER.info(f"Added new user device {model} ({device_id}) for user {user_id}")

        await self._after_mutation(user_id)
        return device_id

    async def update_device(
        self,
        device_id: str,
        user_id: str,
        category_id: int,
        manufacturer: str,
        model: str,
        power_kw: float,
        usage_hours: float,
    ) -> None:
        validate_device_fields(manufacturer, model, power_kw, usage_hours, "update_device")
        stamp = self._now()

        async def _update(txn):
            current = await txn.get(device_path(device_id))
            self._check_owner(current, device_id, user_id, "update_device")
            txn.set(device_path(device_id), {
                **current,
                "category_id": category_id,
                "manufacturer": manufacturer,
                "model": model,
                "power_consumption": power_kw,
                "usage_hours_per_day": usage_hours,
                "owner_flag": OwnerFlag.USER.value,
                "user_id": user_id,
                "last_updated": stamp,
            })

        await self._mutate("update_device", user_id, _update)
        _LOGGER.info(f"Device updated: {device_id}")
        await self._after_mutation(user_id)

    async def delete_device(self, device_id: str, user_id: str) -> None:
        async def _delete(txn):
            current = await txn.get(device_path(device_id))
            self._check_owner(current, device_id, user_id, "delete_device")
            txn.delete(device_path(device_id))

        await self._mutate("delete_device", user_id, _delete)
        _LOGGER.info(f"Device deleted: {device_id}")
        await self._after_mutation(user_id)

    @staticmethod
    def _check_owner(data, device_id: str, user_id: str, operation: str) -> None:
        # someone else's device is reported as missing
        if not data or data.get("user_id") != user_id:
            raise NotFoundError(f"Device {device_id} not found", user_id=user_id,
                                operation=operation)

    async def _mutate(self, operation: str, user_id: str, fn) -> None:
        try:
            await self._store.run_transaction(fn)
        except EngineError as ex:
            ex.user_id = ex.user_id or user_id
            ex.operation = operation
            _LOGGER.error(f"Device write failed: {ex}")
            raise

    async def _after_mutation(self, user_id: str) -> None:
        self._cache.invalidate(KIND_USER_DEVICES, user_id)
        if self._aggregation is None:
            return
        # the device write has already committed at this point
        try:
            await self._aggregation.recompute_totals(user_id)
            await self._aggregation.record_hour_sample(user_id)
        except EngineError as ex:
            _LOGGER.warning(f"Device saved but today's consumption is stale: {ex}")
