"""
Tests for the in-memory and JSON-file record stores.
"""

import asyncio

import pendulum
import pytest

from widgetscheduler.adapters.memory_store import InMemoryRecordStore, JsonFileRecordStore
from widgetscheduler.config import AppConfig
from widgetscheduler.domain.exceptions import ResourceNotFoundError, StoreUnavailableError
from widgetscheduler.domain.models import (
    CustomerRef,
    DateRange,
    ResourceBooking,
    ResourceBookingStatus,
    TimeBooking,
    TimeBookingStatus,
    TimeRange,
)

TZ = "Europe/Berlin"


def _time_booking(booking_id: str, start: str, status=TimeBookingStatus.PENDING) -> TimeBooking:
    return TimeBooking(
        id=booking_id,
        business_id="biz",
        start=pendulum.parse(f"2025-03-10 {start}", tz=TZ),
        duration_minutes=60,
        status=status,
        customer=CustomerRef(email="jane@example.com", name="Jane"),
    )


class TestInMemoryRecordStore:
    """Tests for query semantics of the in-memory store."""

    def test_time_bookings_overlapping_skips_cancelled(self):
        store = InMemoryRecordStore()
        window = TimeRange(
            start=pendulum.parse("2025-03-10 10:30", tz=TZ),
            end=pendulum.parse("2025-03-10 11:30", tz=TZ),
        )

        async def scenario():
            await store.insert_time_booking(_time_booking("live", "10:00"))
            await store.insert_time_booking(_time_booking("gone", "10:00", TimeBookingStatus.CANCELLED))
            await store.insert_time_booking(_time_booking("later", "11:30"))
            return await store.time_bookings_overlapping("biz", window)

        assert [booking.id for booking in asyncio.run(scenario())] == ["live"]

    def test_list_time_bookings_filters_and_orders(self):
        store = InMemoryRecordStore()
        day = TimeRange(
            start=pendulum.parse("2025-03-10 00:00", tz=TZ),
            end=pendulum.parse("2025-03-11 00:00", tz=TZ),
        )
        bookings = [
            _time_booking("late", "15:00"),
            _time_booking("done", "09:00", TimeBookingStatus.COMPLETED),
            _time_booking("gone", "11:00", TimeBookingStatus.CANCELLED),
            _time_booking("other-widget", "12:00"),
        ]
        bookings[-1].widget_id = "w2"
        next_day = _time_booking("next-day", "10:00")
        next_day.start = next_day.start.add(days=1)

        async def scenario():
            for booking in [*bookings, next_day]:
                await store.insert_time_booking(booking)
            return (
                await store.list_time_bookings("biz"),
                await store.list_time_bookings("biz", starting_in=day),
                await store.list_time_bookings("biz", widget_id="w2"),
            )

        everything, on_day, w2 = asyncio.run(scenario())

        assert [b.id for b in everything] == ["done", "other-widget", "late", "next-day"]
        assert [b.id for b in on_day] == ["done", "other-widget", "late"]
        assert [b.id for b in w2] == ["other-widget"]

    def test_list_resource_bookings_covering_day(self):
        store = InMemoryRecordStore()

        def rental(booking_id, first, last=None, item_id="bin"):
            return ResourceBooking(
                id=booking_id,
                business_id="biz",
                inventory_item_id=item_id,
                date_range=DateRange(
                    start_date=pendulum.date(2025, 3, first),
                    end_date=pendulum.date(2025, 3, last) if last else None,
                ),
                quantity=1,
            )

        async def scenario():
            await store.insert_resource_booking(rental("week", 10, 16))
            await store.insert_resource_booking(rental("single", 12))
            await store.insert_resource_booking(rental("trailer", 12, item_id="trailer"))
            await store.insert_resource_booking(rental("before", 9))
            await store.insert_resource_booking(rental("gone", 12))
            await store.set_resource_booking_status("gone", ResourceBookingStatus.CANCELLED)
            return (
                await store.list_resource_bookings("biz", on_day=pendulum.date(2025, 3, 12)),
                await store.list_resource_bookings("biz", item_id="bin", on_day=pendulum.date(2025, 3, 12)),
                await store.list_resource_bookings("biz", on_day=pendulum.date(2025, 3, 17)),
            )

        covering, bins_only, after = asyncio.run(scenario())

        assert [b.id for b in covering] == ["week", "single", "trailer"]
        assert [b.id for b in bins_only] == ["week", "single"]
        assert after == []

    def test_update_unknown_booking_raises(self):
        with pytest.raises(ResourceNotFoundError):
            asyncio.run(InMemoryRecordStore().update_time_booking("nope", status=TimeBookingStatus.CONFIRMED))

    def test_from_config_without_state_file_stays_in_memory(self):
        config = AppConfig(widgets=[{"id": "w1", "business_id": "biz"}])

        store = JsonFileRecordStore.from_config(config)

        assert type(store) is InMemoryRecordStore
        assert "w1" in store.widgets


class TestJsonFileRecordStore:
    """Bookings survive a reload from the state file."""

    def test_round_trip_through_state_file(self, tmp_path):
        state_file = tmp_path / "state" / "bookings.json"
        store = JsonFileRecordStore(state_file)
        resource = ResourceBooking(
            id="r1",
            business_id="biz",
            inventory_item_id="bin",
            date_range=DateRange(start_date=pendulum.date(2025, 3, 10), end_date=pendulum.date(2025, 3, 12)),
            quantity=2,
        )

        async def scenario():
            await store.insert_resource_booking(resource)
            await store.set_resource_booking_status("r1", ResourceBookingStatus.CANCELLED)
            await store.insert_time_booking(_time_booking("t1", "10:00"))
            await store.update_time_booking("t1", calendar_event_id="evt-1")

        asyncio.run(scenario())
        reloaded = JsonFileRecordStore(state_file)

        assert state_file.exists()
        assert reloaded.resource_bookings["r1"].status == ResourceBookingStatus.CANCELLED
        assert reloaded.resource_bookings["r1"].date_range.end_date == pendulum.date(2025, 3, 12)
        assert reloaded.time_bookings["t1"].calendar_event_id == "evt-1"
        assert reloaded.time_bookings["t1"].start == pendulum.parse("2025-03-10 10:00", tz=TZ)
        assert reloaded.time_bookings["t1"].customer.email == "jane@example.com"

    def test_invalid_state_file(self, tmp_path):
        state_file = tmp_path / "bookings.json"
        state_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid JSON"):
            JsonFileRecordStore(state_file)

    def test_write_replaces_file_without_leftovers(self, tmp_path):
        state_dir = tmp_path / "state"
        store = JsonFileRecordStore(state_dir / "bookings.json")

        async def scenario():
            await store.insert_time_booking(_time_booking("t1", "10:00"))
            await store.insert_time_booking(_time_booking("t2", "12:00"))

        asyncio.run(scenario())

        assert [path.name for path in state_dir.iterdir()] == ["bookings.json"]
        assert set(JsonFileRecordStore(state_dir / "bookings.json").time_bookings) == {"t1", "t2"}


class TestUnwritableStateFile:
    """Changes that cannot be written are taken back out of memory."""

    def _blocked_path(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        return blocker / "bookings.json"

    def test_failed_insert_leaves_no_booking(self, tmp_path):
        store = JsonFileRecordStore(self._blocked_path(tmp_path))

        with pytest.raises(StoreUnavailableError, match="Could not write state file") as exc_info:
            asyncio.run(store.insert_time_booking(_time_booking("t1", "10:00")))

        assert exc_info.value.http_status == 503
        assert isinstance(exc_info.value.__cause__, OSError)
        assert store.time_bookings == {}

    def test_failed_update_keeps_previous_version(self, tmp_path):
        store = JsonFileRecordStore(tmp_path / "bookings.json")
        asyncio.run(store.insert_time_booking(_time_booking("t1", "10:00")))
        store.state_file = self._blocked_path(tmp_path)

        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.update_time_booking("t1", status=TimeBookingStatus.CANCELLED))

        assert store.time_bookings["t1"].status == TimeBookingStatus.PENDING

    def test_failed_status_change_keeps_rental_active(self, tmp_path):
        store = JsonFileRecordStore(tmp_path / "bookings.json")
        rental = ResourceBooking(
            id="r1",
            business_id="biz",
            inventory_item_id="bin",
            date_range=DateRange(start_date=pendulum.date(2025, 3, 10)),
            quantity=1,
        )
        asyncio.run(store.insert_resource_booking(rental))
        store.state_file = self._blocked_path(tmp_path)

        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.set_resource_booking_status("r1", ResourceBookingStatus.CANCELLED))

        assert store.resource_bookings["r1"].is_active
