"""HTTP surface tests against the in-memory store."""
from unittest.mock import AsyncMock, patch

import pytest
from conftest import seed, seed_record, seed_user_device
from fastapi.testclient import TestClient

from energy_tracker.auth import verify_user
from energy_tracker.errors import BackendUnavailable
from energy_tracker.main import create_app


@pytest.fixture
def client(service):
    app = create_app(service)
    app.dependency_overrides[verify_user] = lambda: "u1"
    with TestClient(app) as client:
        yield client


DEVICE = {
    "category_id": 1,
    "manufacturer": "Acme",
    "model": "X1",
    "power_consumption": 1.5,
    "usage_hours_per_day": 4,
}


def test_root(client):
    assert client.get("/").json() == {"status": "Backend running"}


def test_categories(store, service):
    seed(store, "categories/2", {"name": "TV"})
    seed(store, "categories/1", {"name": "Air Conditioner"})
    app = create_app(service)

    with TestClient(app) as client:
        response = client.get("/categories")

    assert response.status_code == 200
    assert response.json() == [{"id": 1, "name": "Air Conditioner"}, {"id": 2, "name": "TV"}]


def test_add_device_and_read_back(client):
    response = client.post("/devices", json=DEVICE)
    assert response.status_code == 200
    device_id = response.json()["device_id"]

    devices = client.get("/devices").json()
    assert [d["id"] for d in devices] == [device_id]
    assert devices[0]["user_id"] == "u1"

    daily = client.get("/consumption/daily", params={"start": "2024-06-01", "end": "2024-06-01"})
    assert daily.status_code == 200
    (record,) = daily.json()
    assert record["total_consumption"] == pytest.approx(6.0)
    assert record["devices_consumption"][device_id]["model"] == "X1"


@pytest.mark.parametrize("field, value", [
    ("power_consumption", 0),
    ("usage_hours_per_day", 25),
    ("manufacturer", ""),
])
def test_invalid_device_rejected(client, field, value):
    response = client.post("/devices", json={**DEVICE, field: value})
    assert response.status_code == 422


def test_update_and_delete(client):
    device_id = client.post("/devices", json=DEVICE).json()["device_id"]

    response = client.put(f"/devices/{device_id}", json={**DEVICE, "usage_hours_per_day": 8})
    assert response.json() == {"message": "Device updated"}
    assert client.get("/devices").json()[0]["usage_hours_per_day"] == 8

    assert client.delete(f"/devices/{device_id}").json() == {"message": "Device deleted"}
    assert client.get("/devices").json() == []


def test_foreign_device_is_not_found(store, client):
    seed_user_device(store, "d9", "someone-else", power=1.0, usage_hours=1)

    assert client.put("/devices/d9", json=DEVICE).status_code == 404
    response = client.delete("/devices/d9")
    assert response.status_code == 404
    assert response.json() == {"detail": "Device d9 not found"}


def test_backend_failure_maps_to_503(store, client):
    store.run_transaction = AsyncMock(side_effect=BackendUnavailable("offline"))

    response = client.post("/devices", json=DEVICE)

    assert response.status_code == 503
    assert response.json() == {"detail": "offline"}


def test_presets(store, client):
    seed(store, "devices/t1", {"category_id": 3, "manufacturer": "Acme", "model": "F1",
                               "power_consumption": 0.2, "owner_flag": "template"})

    presets = client.get("/devices/presets", params={"category_id": 3}).json()
    assert [p["id"] for p in presets] == ["t1"]
    assert client.get("/devices/presets", params={"category_id": 4}).json() == []


def test_hourly_sample(store, client):
    seed_user_device(store, "d1", "u1", power=2.4, usage_hours=10)

    sample = client.post("/consumption/sample").json()
    assert sample["date"] == "2024-06-01"
    assert sample["hour"] == 8

    hourly = client.get("/consumption/hourly", params={"day": "2024-06-01"}).json()
    assert hourly["hourly_consumption"] == {"8": pytest.approx(sample["consumption"])}


def test_weekly_and_monthly(store, client):
    for day in ["2024-05-30", "2024-05-31", "2024-06-03"]:
        seed_record(store, "u1", day, 2.0)
    params = {"start": "2024-05-25", "end": "2024-06-05"}

    weekly = client.get("/consumption/weekly", params=params).json()
    assert [(w["week"], w["total_consumption"]) for w in weekly] == [
        ("2024-W22", 4.0), ("2024-W23", 2.0)]

    monthly = client.get("/consumption/monthly", params=params).json()
    assert [(m["month"], m["days_count"]) for m in monthly] == [("2024-05", 2), ("2024-06", 1)]


def test_reversed_range_is_empty(client):
    params = {"start": "2024-06-05", "end": "2024-06-01"}
    assert client.get("/consumption/daily", params=params).json() == []


def test_missing_bearer_prefix(service):
    app = create_app(service)
    with TestClient(app) as client:
        response = client.get("/devices", headers={"Authorization": "Basic abc"})
    assert response.status_code == 401


def test_invalid_firebase_token(service):
    app = create_app(service)
    with patch("energy_tracker.auth.auth.verify_id_token", side_effect=ValueError("bad")):
        with TestClient(app) as client:
            response = client.get("/devices", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid Firebase token"}


def test_valid_firebase_token(store, service):
    seed_user_device(store, "d1", "u7", power=1.0, usage_hours=1)
    app = create_app(service)
    with patch("energy_tracker.auth.auth.verify_id_token", return_value={"uid": "u7"}):
        with TestClient(app) as client:
            devices = client.get("/devices", headers={"Authorization": "Bearer ok"}).json()
    assert [d["id"] for d in devices] == ["d1"]


def test_get_single_device(store, client):
    seed_user_device(store, "d1", "u1", power=1.0, usage_hours=1)
    seed_user_device(store, "d2", "someone-else", power=1.0, usage_hours=1)

    response = client.get("/devices/d1")
    assert response.status_code == 200
    assert response.json()["user_id"] == "u1"
    assert client.get("/devices/d2").status_code == 404
    assert client.get("/devices/missing").status_code == 404


def test_init_consumption_is_idempotent(store, client):
    first = client.post("/consumption/init")
    assert first.status_code == 200
    assert first.json()["date"] == "2024-06-01"
    assert first.json()["total_consumption"] == 0.0

    seed_record(store, "u1", "2024-06-01", 4.5)
    assert client.post("/consumption/init").json()["total_consumption"] == 4.5
