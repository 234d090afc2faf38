# models.py
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

HOURS_PER_DAY = 24


class OwnerFlag(str, Enum):
    TEMPLATE = "template"
    USER = "user"


class Category(BaseModel):
    id: int
    name: str


class Device(BaseModel):
    id: str
    category_id: int
    manufacturer: str
    model: str
    power_consumption: float = Field(ge=0)
    usage_hours_per_day: float = Field(default=0, ge=0, le=HOURS_PER_DAY)
    owner_flag: OwnerFlag = OwnerFlag.TEMPLATE
    user_id: str | None = None

    @model_validator(mode="after")
    def check_ownership(self):
        if self.owner_flag is OwnerFlag.TEMPLATE and self.user_id is not None:
            raise ValueError("template devices cannot have a user_id")
        if self.owner_flag is OwnerFlag.USER and not self.user_id:
            raise ValueError("user-owned devices need a user_id")
        return self

    @property
    def daily_consumption(self) -> float:
        return self.power_consumption * self.usage_hours_per_day

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "Device":
        return cls(
            id=doc_id,
            category_id=int(data.get("category_id", 0)),
            manufacturer=data.get("manufacturer", ""),
            model=data.get("model", ""),
            power_consumption=float(data.get("power_consumption") or 0.0),
            usage_hours_per_day=float(data.get("usage_hours_per_day") or 0.0),
            owner_flag=OwnerFlag(data.get("owner_flag", OwnerFlag.TEMPLATE.value)),
            user_id=data.get("user_id"),
        )


class DeviceInput(BaseModel):
    """Request body for creating or editing a device."""

    category_id: int
    manufacturer: str = Field(min_length=1)
    model: str = Field(min_length=1)
    power_consumption: float = Field(gt=0)
    usage_hours_per_day: float = Field(default=0, ge=0, le=HOURS_PER_DAY)


class DeviceConsumption(BaseModel):
    manufacturer: str
    model: str
    daily_consumption: float


class DailyConsumptionRecord(BaseModel):
    date: date
    total_consumption: float = 0.0
    hourly_consumption: dict[int, float] = Field(default_factory=dict)
    devices_consumption: dict[str, DeviceConsumption] = Field(default_factory=dict)
    last_updated: datetime | None = None

    @property
    def hourly_total(self) -> float:
        return sum(self.hourly_consumption.values())

    @property
    def is_complete(self) -> bool:
        return len(self.hourly_consumption) >= HOURS_PER_DAY

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "DailyConsumptionRecord":
        hourly = data.get("hourly_consumption") or {}
        devices = data.get("devices_consumption") or {}
        return cls(
            date=date.fromisoformat(data["date"]),
            total_consumption=float(data.get("total_consumption") or 0.0),
            hourly_consumption={int(h): float(v) for h, v in hourly.items()},
            devices_consumption={
                device_id: DeviceConsumption(
                    manufacturer=entry.get("manufacturer", ""),
                    model=entry.get("model", ""),
                    daily_consumption=float(entry.get("daily_consumption") or 0.0),
                )
                for device_id, entry in devices.items()
            },
            last_updated=data.get("last_updated"),
        )

    def to_document(self) -> dict[str, Any]:
        # Document stores only accept string map keys
        return {
            "date": self.date.isoformat(),
            "total_consumption": self.total_consumption,
            "hourly_consumption": {
                str(hour): value for hour, value in sorted(self.hourly_consumption.items())
            },
            "devices_consumption": {
                device_id: entry.model_dump()
                for device_id, entry in self.devices_consumption.items()
            },
            "last_updated": self.last_updated,
        }


class WeeklyAggregate(BaseModel):
    week: str
    year: int
    week_number: int
    start_date: date
    end_date: date
    total_consumption: float = 0.0
    days_count: int = 0


class MonthlyAggregate(BaseModel):
    month: str
    year: int
    month_name: str
    start_date: date
    end_date: date
    total_consumption: float = 0.0
    days_count: int = 0
