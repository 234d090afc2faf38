# errors.py
from __future__ import annotations

from datetime import date


class EngineError(Exception):
    """Base error for the consumption engine.

    Carries the user, day and operation that failed so the log line is
    actionable on its own.
    """

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        day: date | str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.day = str(day) if day is not None else None
        self.operation = operation

    def __str__(self) -> str:
        context = [
            f"{name}={value}"
            for name, value in (
                ("operation", self.operation),
                ("user_id", self.user_id),
                ("date", self.day),
            )
            if value is not None
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ValidationFailed(EngineError):
    """Malformed device attributes."""


class NotFoundError(EngineError):
    """Missing device, category or record."""


class BackendUnavailable(EngineError):
    """Network or document store failure."""


class ConflictError(EngineError):
    """An atomic claim or recompute could not be applied consistently."""
