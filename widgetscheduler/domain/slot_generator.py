"""
Candidate slot generation for a single business day.

Pure domain logic without any external dependencies (no API calls, no
database, no I/O).
"""

from __future__ import annotations

from datetime import time
from typing import Iterator, List, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidInputError
from .models import BusinessHours, CandidateSlot, DayHours


def resolve_timezone(name: str):
    """Return the pendulum timezone for an IANA id or raise InvalidInputError."""
    try:
        return pendulum.timezone(name)
    except (ValueError, KeyError) as exc:
        raise InvalidInputError(f"Unknown timezone: {name!r}", timezone=name) from exc


def at_time(target_date: Date, moment: time, timezone: str) -> DateTime:
    """Anchor a wall-clock time on a calendar day in the given timezone."""
    return pendulum.datetime(
        target_date.year,
        target_date.month,
        target_date.day,
        moment.hour,
        moment.minute,
        tz=timezone,
    )


def generate_slots(
    opens: time,
    closes: time,
    duration_minutes: int,
    buffer_minutes: int,
    target_date: Date,
    timezone: str,
) -> Iterator[CandidateSlot]:
    """
    Lazily produce candidate slots, earliest first.

    Starting at ``opens`` the cursor emits a slot whenever ``cursor +
    duration`` still ends at or before ``closes`` and then advances by
    ``duration + buffer``. Nothing is emitted when the business opens at or
    after closing time, or when no full slot fits.

    Inputs are validated eagerly; the returned iterator is a pure function of
    the arguments, so calling again restarts the sequence.

    Raises:
        InvalidInputError: If the duration is not positive, the buffer is
            negative or the timezone is unknown
    """
    if duration_minutes <= 0:
        raise InvalidInputError(
            "Slot duration must be greater than zero",
            duration_minutes=duration_minutes,
        )
    if buffer_minutes < 0:
        raise InvalidInputError(
            "Slot buffer must not be negative",
            buffer_minutes=buffer_minutes,
        )
    resolve_timezone(timezone)

    return _iter_slots(opens, closes, duration_minutes, buffer_minutes, target_date, timezone)


def _iter_slots(
    opens: time,
    closes: time,
    duration_minutes: int,
    buffer_minutes: int,
    target_date: Date,
    timezone: str,
) -> Iterator[CandidateSlot]:
    if opens >= closes:
        return

    cursor = at_time(target_date, opens, timezone)
    close_instant = at_time(target_date, closes, timezone)
    step = duration_minutes + buffer_minutes

    while cursor.add(minutes=duration_minutes) <= close_instant:
        yield CandidateSlot(start=cursor, duration_minutes=duration_minutes)
        cursor = cursor.add(minutes=step)


class SlotGenerator:
    """
    Generates the candidate slots of one day from weekly business hours.

    Example:
        Hours: 09:00 - 17:00, duration 60, buffer 15
        Slots: 09:00, 10:15, 11:30, 12:45, 14:00, 15:15
    """

    def __init__(
        self,
        business_hours: BusinessHours,
        duration_minutes: int,
        buffer_minutes: int,
        timezone: str,
    ):
        self.business_hours = business_hours
        self.duration_minutes = duration_minutes
        self.buffer_minutes = buffer_minutes
        self.timezone = timezone

    def hours_for(self, target_date: Date) -> Optional[DayHours]:
        return self.business_hours.for_date(target_date)

    def for_day(self, target_date: Date) -> Tuple[Optional[DayHours], List[CandidateSlot]]:
        """
        Get the opening window and candidate slots for a day.

        Returns ``(None, [])`` when the business is closed that day.
        """
        day_hours = self.hours_for(target_date)
        if day_hours is None:
            return None, []

        slots = list(
            generate_slots(
                opens=day_hours.opens,
                closes=day_hours.closes,
                duration_minutes=self.duration_minutes,
                buffer_minutes=self.buffer_minutes,
                target_date=target_date,
                timezone=self.timezone,
            )
        )
        return day_hours, slots
