from datetime import datetime, timezone

import pytest

from energy_tracker.config import Settings
from energy_tracker.models import OwnerFlag
from energy_tracker.service import EnergyService
from energy_tracker.store import MemoryDocumentStore


class FakeClock:
    """Callable clock the tests can move by hand."""

    def __init__(self, value: datetime):
        self.value = value

    def __call__(self) -> datetime:
        return self.value


def seed(store: MemoryDocumentStore, path: str, data: dict) -> None:
    store._write(path, data, merge=False)


def seed_template(store, device_id, manufacturer, model, power, category_id=1, usage_hours=0):
    seed(store, f"devices/{device_id}", {
        "category_id": category_id,
        "manufacturer": manufacturer,
        "model": model,
        "power_consumption": power,
        "usage_hours_per_day": usage_hours,
        "owner_flag": OwnerFlag.TEMPLATE.value,
    })


def seed_user_device(store, device_id, user_id, power, usage_hours, category_id=1,
                     manufacturer="Acme", model="X1"):
    seed(store, f"devices/{device_id}", {
        "category_id": category_id,
        "manufacturer": manufacturer,
        "model": model,
        "power_consumption": power,
        "usage_hours_per_day": usage_hours,
        "owner_flag": OwnerFlag.USER.value,
        "user_id": user_id,
    })


def seed_record(store, user_id, day: str, total: float, hourly=None):
    seed(store, f"users/{user_id}/consumption_history/{day}", {
        "date": day,
        "total_consumption": total,
        "hourly_consumption": hourly or {},
        "devices_consumption": {},
        "last_updated": None,
    })


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def service(store, clock):
    return EnergyService(store, Settings(retention_days=30), now=clock)
