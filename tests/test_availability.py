"""
Tests for availability resolution.
"""

import pendulum
import pytest
from datetime import time

from widgetscheduler.domain.availability import (
    AvailabilityResolver,
    mark_inventory_shortfall,
    parse_query_date,
    resolve_slots,
)
from widgetscheduler.domain.exceptions import InvalidInputError
from widgetscheduler.domain.models import TimeRange, UnavailableReason
from widgetscheduler.domain.slot_generator import generate_slots

TZ = "Europe/Berlin"
MONDAY = pendulum.date(2025, 3, 10)
TUESDAY = pendulum.date(2025, 3, 11)
LAST_WEEK = pendulum.datetime(2025, 3, 3, 12, 0, tz=TZ)


def _slots(day=MONDAY, duration=60, buffer=15):
    return list(generate_slots(time(9, 0), time(17, 0), duration, buffer, day, TZ))


def _busy(start: str, end: str, day: str = "2025-03-10") -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"{day} {start}", tz=TZ),
        end=pendulum.parse(f"{day} {end}", tz=TZ),
    )


def _verdicts(slots):
    return [(slot.start.format("HH:mm"), slot.available) for slot in slots]


class TestBusyConflicts:
    """Busy intervals are padded by the buffer and compared strictly."""

    def test_buffered_busy_interval_blocks_neighbouring_slots(self):
        """Busy 10:00-11:00 with 15 min buffer blocks 09:45-11:15."""
        resolved = resolve_slots(_slots(), [_busy("10:00", "11:00")], 15, LAST_WEEK, 2, timezone=TZ)

        assert _verdicts(resolved) == [
            ("09:00", False),
            ("10:15", False),
            ("11:30", True),
            ("12:45", True),
            ("14:00", True),
            ("15:15", True),
        ]
        assert resolved[0].reason == UnavailableReason.BUSY

    def test_slot_touching_busy_interval_stays_available(self):
        resolved = resolve_slots(_slots(buffer=0), [_busy("10:00", "11:00")], 0, LAST_WEEK, 2, timezone=TZ)

        assert ("09:00", True) in _verdicts(resolved)
        assert ("10:00", False) in _verdicts(resolved)
        assert ("11:00", True) in _verdicts(resolved)

    def test_busy_interval_inside_slot_blocks_it(self):
        resolved = resolve_slots(_slots(), [_busy("09:20", "09:40")], 0, LAST_WEEK, 2, timezone=TZ)

        assert resolved[0].available is False
        assert all(slot.available for slot in resolved[1:])

    def test_every_candidate_is_returned_in_order(self):
        candidates = _slots()
        busy = [_busy("08:00", "18:00")]

        resolved = resolve_slots(candidates, busy, 15, LAST_WEEK, 2, timezone=TZ)

        assert [slot.start for slot in resolved] == [slot.start for slot in candidates]
        assert not any(slot.available for slot in resolved)

    def test_conflict_duration_differs_from_slot_duration(self):
        """30 min slots checked as if they lasted 60 minutes."""
        candidates = _slots(duration=30, buffer=0)
        busy = [_busy("10:00", "10:30")]

        plain = resolve_slots(candidates, busy, 0, LAST_WEEK, 2, timezone=TZ)
        wide = resolve_slots(
            candidates, busy, 0, LAST_WEEK, 2, conflict_duration_minutes=60, timezone=TZ
        )

        assert ("09:30", True) in _verdicts(plain)
        assert ("09:00", True) in _verdicts(wide)
        assert ("09:30", False) in _verdicts(wide)
        assert ("10:00", False) in _verdicts(wide)

    def test_non_positive_conflict_duration_raises(self):
        with pytest.raises(InvalidInputError):
            resolve_slots(_slots(), [], 0, LAST_WEEK, 2, conflict_duration_minutes=0, timezone=TZ)

    def test_no_candidates(self):
        assert resolve_slots([], [_busy("10:00", "11:00")], 15, LAST_WEEK, 2, timezone=TZ) == []


class TestNoticeAndPast:
    """Same-day notice and past-date handling."""

    def test_today_slots_before_notice_cutoff_are_unavailable(self):
        """now=14:00 with 2 hours notice: anything starting before 16:00 is out."""
        now = pendulum.datetime(2025, 3, 10, 14, 0, tz=TZ)

        resolved = resolve_slots(_slots(), [], 15, now, 2, timezone=TZ)

        assert not any(slot.available for slot in resolved)
        assert {slot.reason for slot in resolved} == {UnavailableReason.NOTICE}

    def test_slot_starting_exactly_at_cutoff_is_available(self):
        now = pendulum.datetime(2025, 3, 10, 13, 15, tz=TZ)

        resolved = resolve_slots(_slots(), [], 15, now, 2, timezone=TZ)

        assert _verdicts(resolved)[-2:] == [("14:00", False), ("15:15", True)]

    def test_tomorrow_is_not_notice_filtered(self):
        now = pendulum.datetime(2025, 3, 10, 14, 0, tz=TZ)

        resolved = resolve_slots(_slots(day=TUESDAY), [], 15, now, 2, timezone=TZ, query_date=TUESDAY)

        assert all(slot.available for slot in resolved)

    def test_today_is_decided_in_business_timezone(self):
        """23:30 UTC on the 9th is already the 10th in Berlin."""
        now = pendulum.datetime(2025, 3, 9, 23, 30, tz="UTC")

        resolved = resolve_slots(_slots(), [], 15, now, 12, timezone=TZ)

        # cutoff is 11:30 UTC = 12:30 Berlin
        assert _verdicts(resolved)[:4] == [
            ("09:00", False),
            ("10:15", False),
            ("11:30", False),
            ("12:45", True),
        ]

    def test_busy_reason_wins_over_notice(self):
        now = pendulum.datetime(2025, 3, 10, 8, 0, tz=TZ)

        resolved = resolve_slots(_slots(), [_busy("09:00", "09:30")], 0, now, 2, timezone=TZ)

        assert resolved[0].reason == UnavailableReason.BUSY

    def test_past_date_marks_everything_unavailable(self):
        now = pendulum.datetime(2025, 3, 11, 8, 0, tz=TZ)

        resolved = resolve_slots(_slots(), [], 15, now, 2, timezone=TZ, query_date=MONDAY)

        assert {slot.reason for slot in resolved} == {UnavailableReason.PAST}


class TestResolver:
    """Tests for AvailabilityResolver and helpers."""

    def test_resolver_is_idempotent(self):
        resolver = AvailabilityResolver(buffer_minutes=15, min_hours_notice=2, timezone=TZ)
        busy = [_busy("10:00", "11:00")]

        first = resolver.resolve(_slots(), busy, LAST_WEEK, MONDAY)
        second = resolver.resolve(_slots(), busy, LAST_WEEK, MONDAY)

        assert [slot.to_dict() for slot in first] == [slot.to_dict() for slot in second]

    def test_inventory_shortfall_flags_all_slots(self):
        resolved = resolve_slots(_slots(), [_busy("10:00", "11:00")], 15, LAST_WEEK, 2, timezone=TZ)

        flagged = mark_inventory_shortfall(resolved)

        assert not any(slot.available for slot in flagged)
        assert flagged[0].reason == UnavailableReason.BUSY
        assert flagged[2].reason == UnavailableReason.INVENTORY


class TestParseQueryDate:
    """Tests for query date parsing."""

    def test_valid_date(self):
        assert parse_query_date("2025-03-10", TZ) == MONDAY

    @pytest.mark.parametrize("value", ["2025-02-30", "10/03/2025", "tomorrow", ""])
    def test_malformed_date_raises(self, value):
        with pytest.raises(InvalidInputError):
            parse_query_date(value, TZ)
