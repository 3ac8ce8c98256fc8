"""
Domain-specific exception hierarchy for the widget scheduler.

Every error carries a stable ``code`` and an HTTP-equivalent status so the
widget API layer can map it without inspecting messages, plus a ``context``
dict (business, resource, requested window) for actionable logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    code = "scheduling_error"
    http_status = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {
            key: value for key, value in context.items() if value is not None
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "context": {key: str(value) for key, value in self.context.items()},
        }


class InvalidInputError(SchedulingError):
    """Malformed date, non-positive duration, unknown resource and similar."""

    code = "invalid_input"
    http_status = 400


class ResourceNotFoundError(InvalidInputError):
    """Raised when a widget or inventory item does not exist or is inactive."""

    code = "not_found"
    http_status = 404


class ProviderDegradedError(SchedulingError):
    """The external calendar could not be queried; busy data is unknown."""

    code = "provider_degraded"
    http_status = 503


class BookingConflictError(SchedulingError):
    """Base class for commit-time conflicts (409 semantics)."""

    code = "conflict"
    http_status = 409


class InsufficientCapacityError(BookingConflictError):
    """Requested quantity exceeds the remaining capacity of an inventory item."""

    code = "insufficient_capacity"

    def __init__(self, message: str, *, available: int, requested: int, **context: Any) -> None:
        super().__init__(message, available=available, requested=requested, **context)
        self.available = available
        self.requested = requested


class SlotNoLongerAvailableError(BookingConflictError):
    """Another booking took the requested time since availability was read."""

    code = "slot_unavailable"


class PartialCommitError(SchedulingError):
    """
    One side of a booking was applied and the other was not.

    Either the calendar event exists without a local record or the record
    exists without its calendar event. Nothing is rolled back automatically.
    """

    code = "partial_commit"
    http_status = 207

    def __init__(self, message: str, *, booking_id: Optional[str] = None, **context: Any) -> None:
        super().__init__(message, booking_id=booking_id, **context)
        self.booking_id = booking_id


class RateLimitExceededError(SchedulingError):
    """Too many booking attempts for one key inside the limiter window."""

    code = "rate_limited"
    http_status = 429


class StoreUnavailableError(SchedulingError):
    """The record store could not persist a change; nothing was recorded."""

    code = "store_unavailable"
    http_status = 503
