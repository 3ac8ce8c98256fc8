"""
Domain models for time ranges, slots, inventory and bookings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Any, Dict, Optional

import pendulum
from pendulum import Date, DateTime

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Strict overlap; ranges that only touch at an endpoint do not overlap."""
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class DateRange:
    """
    Day-granular booking range.

    ``end_date`` of ``None`` means a single-day booking. The range covers
    every day from ``start_date`` to ``last_day`` inclusive, i.e. the
    half-open span ``[start_date, last_day + 1 day)``.
    """
    start_date: Date
    end_date: Optional[Date] = None

    def __post_init__(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError(
                f"End date {self.end_date} must not be before start date {self.start_date}"
            )

    @property
    def last_day(self) -> Date:
        return self.end_date if self.end_date is not None else self.start_date

    def overlaps(self, other: "DateRange") -> bool:
        return self.start_date <= other.last_day and other.start_date <= self.last_day

    def days(self) -> int:
        return self.last_day.toordinal() - self.start_date.toordinal() + 1

    def __str__(self) -> str:
        if self.end_date is None or self.end_date == self.start_date:
            return self.start_date.isoformat()
        return f"{self.start_date.isoformat()}..{self.end_date.isoformat()}"


@dataclass(frozen=True)
class DayHours:
    """Opening window for one weekday."""
    opens: time
    closes: time

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.opens.strftime("%H:%M"), "end": self.closes.strftime("%H:%M")}


@dataclass
class BusinessHours:
    """
    Weekly opening hours keyed by weekday name.

    A missing or ``None`` entry means the business is closed that day.
    """
    days: Dict[str, Optional[DayHours]] = field(default_factory=dict)

    def for_date(self, target_date: Date) -> Optional[DayHours]:
        """Get the opening window for a specific day, or None when closed."""
        return self.days.get(WEEKDAY_NAMES[target_date.weekday()])


@dataclass(frozen=True)
class CandidateSlot:
    """A generated appointment start; created per request and never stored."""
    start: DateTime
    duration_minutes: int

    @property
    def end(self) -> DateTime:
        return self.start.add(minutes=self.duration_minutes)


class UnavailableReason(str, Enum):
    BUSY = "busy"
    NOTICE = "notice"
    PAST = "past"
    INVENTORY = "inventory"


@dataclass(frozen=True)
class AnnotatedSlot:
    """
    A candidate slot with its availability verdict.

    Unavailable slots stay in the result so widgets can render them disabled.
    """
    start: DateTime
    duration_minutes: int
    available: bool = True
    reason: Optional[UnavailableReason] = None

    @property
    def display_time(self) -> str:
        """12-hour clock label, e.g. ``09:00 AM``."""
        return self.start.format("hh:mm A")

    def mark_unavailable(self, reason: UnavailableReason) -> "AnnotatedSlot":
        if not self.available:
            return self
        return AnnotatedSlot(
            start=self.start,
            duration_minutes=self.duration_minutes,
            available=False,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "datetime": self.start.to_iso8601_string(),
            "time": self.display_time,
            "available": self.available,
            "reason": self.reason.value if self.reason else None,
        }


class TimeBookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold on to their time window.
COMMITTED_TIME_STATUSES = frozenset({TimeBookingStatus.PENDING, TimeBookingStatus.CONFIRMED})
# Statuses shown in booking lists.
LISTED_TIME_STATUSES = COMMITTED_TIME_STATUSES | {TimeBookingStatus.COMPLETED}


class ResourceBookingStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class CustomerRef:
    """Who the booking is for. Opaque to the engine."""
    email: Optional[str] = None
    name: Optional[str] = None
    submission_id: Optional[str] = None

    def masked(self) -> Dict[str, Optional[str]]:
        return {
            "email": "***" if self.email else None,
            "name": self.name,
            "submission_id": self.submission_id,
        }


@dataclass(frozen=True)
class InventoryItem:
    id: str
    business_id: str
    total_quantity: int
    is_active: bool = True
    name: str = ""
    item_type: str = "equipment"
    sku: Optional[str] = None


@dataclass
class ResourceBooking:
    id: str
    business_id: str
    inventory_item_id: str
    date_range: DateRange
    quantity: int
    status: ResourceBookingStatus = ResourceBookingStatus.ACTIVE
    customer: CustomerRef = field(default_factory=CustomerRef)
    service_type: Optional[str] = None
    widget_id: Optional[str] = None
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))

    @property
    def is_active(self) -> bool:
        return self.status == ResourceBookingStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookingId": self.id,
            "inventoryItemId": self.inventory_item_id,
            "startDate": self.date_range.start_date.isoformat(),
            "endDate": self.date_range.end_date.isoformat() if self.date_range.end_date else None,
            "quantity": self.quantity,
            "status": self.status.value,
        }


@dataclass
class TimeBooking:
    id: str
    business_id: str
    start: DateTime
    duration_minutes: int
    status: TimeBookingStatus = TimeBookingStatus.PENDING
    customer: CustomerRef = field(default_factory=CustomerRef)
    service_type: Optional[str] = None
    widget_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    calendar_event_id: Optional[str] = None
    created_at: DateTime = field(default_factory=lambda: pendulum.now("UTC"))

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.start.add(minutes=self.duration_minutes))

    @property
    def is_committed(self) -> bool:
        return self.status in COMMITTED_TIME_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookingId": self.id,
            "appointmentDatetime": self.start.to_iso8601_string(),
            "duration": self.duration_minutes,
            "status": self.status.value,
        }
