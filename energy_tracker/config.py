# config.py
import logging
import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    firebase_key_base64: str | None = None
    retention_days: int = 30
    batch_size: int = 500
    max_in_flight: int = 8
    timezone: str = "UTC"
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            firebase_key_base64=os.environ.get("FIREBASE_KEY_BASE64"),
            retention_days=_env_int("RETENTION_DAYS", 30),
            batch_size=_env_int("BATCH_SIZE", 500),
            max_in_flight=_env_int("MAX_IN_FLIGHT", 8),
            timezone=os.environ.get("TIMEZONE", "UTC"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
