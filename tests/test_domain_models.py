"""
Tests for domain models.
"""

import pendulum
import pytest
from datetime import time

from widgetscheduler.domain.models import (
    AnnotatedSlot,
    BusinessHours,
    CustomerRef,
    DateRange,
    DayHours,
    ResourceBooking,
    TimeBooking,
    TimeBookingStatus,
    TimeRange,
    UnavailableReason,
)


class TestTimeRange:
    """Tests for TimeRange model."""

    def test_create_valid_time_range(self):
        """Test creating a valid time range."""
        start = pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin")
        end = pendulum.parse("2025-03-10 17:00", tz="Europe/Berlin")

        tr = TimeRange(start=start, end=end)

        assert tr.start == start
        assert tr.end == end
        assert tr.duration_minutes() == 480  # 8 hours

    def test_invalid_time_range_raises_error(self):
        """Test that creating an invalid time range raises ValueError."""
        start = pendulum.parse("2025-03-10 17:00", tz="Europe/Berlin")
        end = pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin")

        with pytest.raises(ValueError, match="Start time .* must be before end time"):
            TimeRange(start=start, end=end)

    def test_empty_time_range_raises_error(self):
        """Zero-length ranges are rejected as well."""
        start = pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin")

        with pytest.raises(ValueError):
            TimeRange(start=start, end=start)

    def test_overlaps(self):
        """Test overlap detection."""
        tr1 = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 12:00", tz="Europe/Berlin")
        )
        tr2 = TimeRange(
            start=pendulum.parse("2025-03-10 11:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 14:00", tz="Europe/Berlin")
        )
        tr3 = TimeRange(
            start=pendulum.parse("2025-03-10 14:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 17:00", tz="Europe/Berlin")
        )

        assert tr1.overlaps(tr2)
        assert tr2.overlaps(tr1)
        assert not tr1.overlaps(tr3)

    def test_touching_ranges_do_not_overlap(self):
        """Ranges sharing only an endpoint are not in conflict."""
        morning = TimeRange(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 10:00", tz="Europe/Berlin")
        )
        next_hour = TimeRange(
            start=pendulum.parse("2025-03-10 10:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 11:00", tz="Europe/Berlin")
        )

        assert not morning.overlaps(next_hour)
        assert not next_hour.overlaps(morning)

    def test_overlap_across_timezones(self):
        """The same instant in different zones is compared as an instant."""
        berlin = TimeRange(
            start=pendulum.parse("2025-03-10 10:00", tz="Europe/Berlin"),
            end=pendulum.parse("2025-03-10 11:00", tz="Europe/Berlin")
        )
        utc = TimeRange(
            start=pendulum.parse("2025-03-10 09:30", tz="UTC"),
            end=pendulum.parse("2025-03-10 10:30", tz="UTC")
        )

        assert berlin.overlaps(utc)


class TestDateRange:
    """Tests for day-granular ranges used by inventory bookings."""

    def test_single_day(self):
        day = DateRange(start_date=pendulum.date(2025, 3, 10))

        assert day.last_day == pendulum.date(2025, 3, 10)
        assert day.days() == 1
        assert str(day) == "2025-03-10"

    def test_multi_day(self):
        rental = DateRange(start_date=pendulum.date(2025, 3, 10), end_date=pendulum.date(2025, 3, 12))

        assert rental.days() == 3
        assert str(rental) == "2025-03-10..2025-03-12"

    def test_end_before_start_raises_error(self):
        with pytest.raises(ValueError, match="must not be before start date"):
            DateRange(start_date=pendulum.date(2025, 3, 12), end_date=pendulum.date(2025, 3, 10))

    def test_overlap_is_inclusive_of_last_day(self):
        """A rental ending on the 12th collides with one starting on the 12th."""
        first = DateRange(start_date=pendulum.date(2025, 3, 10), end_date=pendulum.date(2025, 3, 12))
        second = DateRange(start_date=pendulum.date(2025, 3, 12))
        third = DateRange(start_date=pendulum.date(2025, 3, 13), end_date=pendulum.date(2025, 3, 14))

        assert first.overlaps(second)
        assert second.overlaps(first)
        assert not first.overlaps(third)

    def test_single_days_overlap_only_on_same_day(self):
        monday = DateRange(start_date=pendulum.date(2025, 3, 10))
        tuesday = DateRange(start_date=pendulum.date(2025, 3, 11))

        assert monday.overlaps(DateRange(start_date=pendulum.date(2025, 3, 10)))
        assert not monday.overlaps(tuesday)


class TestBusinessHours:
    """Tests for weekly business hours."""

    def test_for_date_returns_weekday_hours(self):
        hours = BusinessHours(days={"monday": DayHours(opens=time(9, 0), closes=time(17, 0))})

        assert hours.for_date(pendulum.date(2025, 3, 10)) == DayHours(time(9, 0), time(17, 0))

    def test_missing_or_null_day_is_closed(self):
        hours = BusinessHours(days={"monday": DayHours(time(9, 0), time(17, 0)), "saturday": None})

        assert hours.for_date(pendulum.date(2025, 3, 8)) is None  # Saturday
        assert hours.for_date(pendulum.date(2025, 3, 9)) is None  # Sunday

    def test_day_hours_to_dict(self):
        assert DayHours(time(8, 30), time(16, 0)).to_dict() == {"start": "08:30", "end": "16:00"}


class TestAnnotatedSlot:
    """Tests for slot verdicts."""

    def test_display_time_uses_twelve_hour_clock(self):
        morning = AnnotatedSlot(start=pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin"), duration_minutes=60)
        afternoon = AnnotatedSlot(start=pendulum.parse("2025-03-10 14:15", tz="Europe/Berlin"), duration_minutes=60)

        assert morning.display_time == "09:00 AM"
        assert afternoon.display_time == "02:15 PM"

    def test_mark_unavailable_keeps_first_reason(self):
        slot = AnnotatedSlot(start=pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin"), duration_minutes=60)

        busy = slot.mark_unavailable(UnavailableReason.BUSY)
        again = busy.mark_unavailable(UnavailableReason.INVENTORY)

        assert slot.available
        assert not busy.available
        assert again.reason == UnavailableReason.BUSY

    def test_to_dict(self):
        slot = AnnotatedSlot(
            start=pendulum.parse("2025-03-10 09:00", tz="Europe/Berlin"),
            duration_minutes=60,
        ).mark_unavailable(UnavailableReason.NOTICE)

        data = slot.to_dict()

        assert data["time"] == "09:00 AM"
        assert data["available"] is False
        assert data["reason"] == "notice"
        assert data["datetime"].startswith("2025-03-10T09:00:00")


class TestBookings:
    """Tests for booking records."""

    def test_time_booking_window_and_status(self):
        booking = TimeBooking(
            id="b1",
            business_id="biz",
            start=pendulum.parse("2025-03-10 10:00", tz="Europe/Berlin"),
            duration_minutes=45,
        )

        assert booking.time_range.end == pendulum.parse("2025-03-10 10:45", tz="Europe/Berlin")
        assert booking.is_committed

        booking.status = TimeBookingStatus.CANCELLED
        assert not booking.is_committed

    def test_resource_booking_to_dict(self):
        booking = ResourceBooking(
            id="r1",
            business_id="biz",
            inventory_item_id="bin",
            date_range=DateRange(start_date=pendulum.date(2025, 3, 10)),
            quantity=2,
        )

        assert booking.to_dict() == {
            "bookingId": "r1",
            "inventoryItemId": "bin",
            "startDate": "2025-03-10",
            "endDate": None,
            "quantity": 2,
            "status": "active",
        }

    def test_customer_masking_hides_email(self):
        customer = CustomerRef(email="jane@example.com", name="Jane")

        assert customer.masked()["email"] == "***"
        assert CustomerRef().masked()["email"] is None
