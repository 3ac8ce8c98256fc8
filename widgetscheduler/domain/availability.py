"""
Availability resolution: flags candidate slots against busy data and notice.

The resolver never drops a slot. Every candidate comes back in its original
order, either available or flagged with the reason it cannot be booked.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Iterable, List, Optional, Sequence

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidInputError
from .intervals import any_overlap, expand
from .models import AnnotatedSlot, CandidateSlot, TimeRange, UnavailableReason
from .slot_generator import resolve_timezone


def parse_query_date(value: str, timezone: str) -> Date:
    """
    Parse an ISO 8601 calendar date (``YYYY-MM-DD``).

    Raises:
        InvalidInputError: If the string is not a valid calendar date
    """
    resolve_timezone(timezone)
    if not isinstance(value, str):
        raise InvalidInputError("Date must be a YYYY-MM-DD string", date=value)
    try:
        return pendulum.from_format(value.strip(), "YYYY-MM-DD", tz=timezone).date()
    except (ValueError, TypeError) as exc:
        raise InvalidInputError(f"Invalid date: {value!r}", date=value) from exc


def resolve_slots(
    candidate_slots: Sequence[CandidateSlot],
    busy_intervals: Iterable[TimeRange],
    buffer_minutes: int,
    now: DateTime,
    min_hours_notice: float,
    *,
    conflict_duration_minutes: Optional[int] = None,
    timezone: str = "UTC",
    query_date: Optional[Date] = None,
) -> List[AnnotatedSlot]:
    """
    Annotate each candidate slot with its availability.

    A slot covers ``[start, start + conflict_duration)`` for collision
    testing, which may differ from the spacing the slots were generated with.
    It is unavailable when:

    - it overlaps any busy interval expanded by ``buffer_minutes``, or
    - the query date is today in ``timezone`` and the slot starts before
      ``now + min_hours_notice``, or
    - the query date is already in the past.

    Args:
        candidate_slots: Slots in generation order
        busy_intervals: Busy time ranges from the calendar provider
        buffer_minutes: Padding applied to both ends of each busy interval
        now: Current instant
        min_hours_notice: Minimum lead time for same-day bookings
        conflict_duration_minutes: Length used for collision tests; defaults
            to each slot's own duration
        timezone: Business timezone deciding what "today" means
        query_date: Day being queried; defaults to the first slot's day

    Returns:
        One AnnotatedSlot per candidate, same order
    """
    if not candidate_slots:
        return []

    if conflict_duration_minutes is not None and conflict_duration_minutes <= 0:
        raise InvalidInputError(
            "Conflict duration must be greater than zero",
            conflict_duration_minutes=conflict_duration_minutes,
        )

    if query_date is None:
        query_date = candidate_slots[0].start.in_timezone(timezone).date()

    today = now.in_timezone(timezone).date()
    notice_cutoff = now + timedelta(hours=min_hours_notice)
    buffered_busy = [expand(busy, buffer_minutes) for busy in busy_intervals]

    annotated: List[AnnotatedSlot] = []

    for candidate in candidate_slots:
        slot = AnnotatedSlot(start=candidate.start, duration_minutes=candidate.duration_minutes)
        span = TimeRange(
            start=candidate.start,
            end=candidate.start.add(
                minutes=conflict_duration_minutes or candidate.duration_minutes
            ),
        )

        if query_date < today:
            slot = slot.mark_unavailable(UnavailableReason.PAST)
        elif any_overlap(span, buffered_busy):
            slot = slot.mark_unavailable(UnavailableReason.BUSY)
        elif query_date == today and candidate.start < notice_cutoff:
            slot = slot.mark_unavailable(UnavailableReason.NOTICE)

        annotated.append(slot)

    return annotated


def mark_inventory_shortfall(slots: Iterable[AnnotatedSlot]) -> List[AnnotatedSlot]:
    """Flag every slot when the requested inventory cannot be supplied that day."""
    return [slot.mark_unavailable(UnavailableReason.INVENTORY) for slot in slots]


class AvailabilityResolver:
    """
    Resolves candidate slots for one business's slot configuration.
    """

    def __init__(
        self,
        buffer_minutes: int,
        min_hours_notice: float,
        timezone: str,
        conflict_duration_minutes: Optional[int] = None,
    ):
        self.buffer_minutes = buffer_minutes
        self.min_hours_notice = min_hours_notice
        self.timezone = timezone
        self.conflict_duration_minutes = conflict_duration_minutes

    def resolve(
        self,
        candidate_slots: Sequence[CandidateSlot],
        busy_intervals: Iterable[TimeRange],
        now: DateTime,
        query_date: Optional[Date] = None,
    ) -> List[AnnotatedSlot]:
        return resolve_slots(
            candidate_slots,
            busy_intervals,
            self.buffer_minutes,
            now,
            self.min_hours_notice,
            conflict_duration_minutes=self.conflict_duration_minutes,
            timezone=self.timezone,
            query_date=query_date,
        )
