# seed.py
"""Populate the categories and preset (template) devices.

Safe to run repeatedly: categories are keyed by id and presets by
manufacturer + model, and anything already present is skipped.
"""
import asyncio
import logging

from energy_tracker.catalog import CATEGORIES_COLLECTION, DEVICES_COLLECTION, device_path
from energy_tracker.config import Settings, configure_logging
from energy_tracker.firebase import FirestoreDocumentStore, get_firestore
from energy_tracker.models import OwnerFlag
from energy_tracker.store import BoundedBatchWriter, DocumentStore
from energy_tracker.synthesizer import DeviceCategory

_LOGGER = logging.getLogger(__name__)

PRESET_DEVICES = [
    {
        "id": "1",
        "category_id": int(DeviceCategory.AIR_CONDITIONER),
        "manufacturer": "Samsung",
        "model": "AC-5000",
        "power_consumption": 1.5,
        "usage_hours_per_day": 4.0,
    },
    {
        "id": "2",
        "category_id": int(DeviceCategory.AIR_CONDITIONER),
        "manufacturer": "LG",
        "model": "AC-6000",
        "power_consumption": 1.8,
        "usage_hours_per_day": 3.0,
    },
]


async def seed_categories(store: DocumentStore, writer: BoundedBatchWriter) -> int:
    added = 0
    for category in DeviceCategory:
        path = f"{CATEGORIES_COLLECTION}/{int(category)}"
        if await store.get(path) is not None:
            _LOGGER.debug(f"Skipped existing category: {category.label}")
            continue
        await writer.set(path, {"id": str(int(category)), "name": category.label})
        added += 1
    return added


async def seed_presets(store: DocumentStore, writer: BoundedBatchWriter,
                       presets=PRESET_DEVICES) -> int:
    added = 0
    for preset in presets:
        existing = await store.query(
            DEVICES_COLLECTION,
            filters=[("manufacturer", "==", preset["manufacturer"]),
                     ("model", "==", preset["model"])],
            limit=1,
        )
        if existing:
            _LOGGER.debug(f"Skipped existing device: {preset['manufacturer']} {preset['model']}")
            continue
        data = {key: value for key, value in preset.items() if key != "id"}
        data["owner_flag"] = OwnerFlag.TEMPLATE.value
        await writer.set(device_path(preset["id"]), data)
        added += 1
    return added


async def seed(store: DocumentStore) -> tuple[int, int]:
    """Write missing categories and presets; returns how many of each were added."""
    async with BoundedBatchWriter(store) as writer:
        categories = await seed_categories(store, writer)
        presets = await seed_presets(store, writer)
    _LOGGER.info(f"Seeded {categories} categories and {presets} preset devices")
    return categories, presets


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    store = FirestoreDocumentStore(
        get_firestore(settings.firebase_key_base64),
        max_in_flight=settings.max_in_flight,
        max_batch_size=settings.batch_size,
    )
    asyncio.run(seed(store))


if __name__ == "__main__":
    main()
