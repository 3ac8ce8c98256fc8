"""
Record store boundary consumed by the ledger, the guard and the scheduler.

The engine never talks to a database directly. Anything that implements
``RecordStore`` (a SQL repository, a document store, the in-memory adapter
used by the CLI and tests) can be plugged in. A write that cannot be
persisted raises ``StoreUnavailableError`` and leaves no record behind.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from pendulum import Date, DateTime

from ..config import WidgetConfig
from ..domain.models import (
    DateRange,
    InventoryItem,
    ResourceBooking,
    ResourceBookingStatus,
    TimeBooking,
    TimeBookingStatus,
    TimeRange,
)


class RecordStore(Protocol):
    """Protocol describing the persistence operations the engine needs."""

    async def get_widget(self, widget_id: str) -> Optional[WidgetConfig]:
        """Return the widget or None."""

    async def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        """Return the inventory item or None."""

    async def list_inventory_items(
        self, business_id: str, item_type: Optional[str] = None
    ) -> List[InventoryItem]:
        """Return active items of a business, optionally of one type."""

    async def sum_active_resource_quantity(
        self,
        item_id: str,
        date_range: DateRange,
        as_of: Optional[DateTime] = None,
    ) -> int:
        """Sum quantities of active bookings of an item overlapping the range."""

    async def resource_bookings_overlapping(
        self, item_id: str, date_range: DateRange
    ) -> List[ResourceBooking]:
        """Return active bookings of an item overlapping the range."""

    async def insert_resource_booking(self, booking: ResourceBooking) -> ResourceBooking:
        """Persist a new resource booking."""

    async def list_resource_bookings(
        self,
        business_id: str,
        *,
        widget_id: Optional[str] = None,
        item_id: Optional[str] = None,
        on_day: Optional[Date] = None,
    ) -> List[ResourceBooking]:
        """Return active bookings of a business covering ``on_day``, by start date."""

    async def get_resource_booking(self, booking_id: str) -> Optional[ResourceBooking]:
        """Return the resource booking or None."""

    async def set_resource_booking_status(
        self, booking_id: str, status: ResourceBookingStatus
    ) -> ResourceBooking:
        """Update a resource booking's status."""

    async def time_bookings_overlapping(
        self, business_id: str, window: TimeRange
    ) -> List[TimeBooking]:
        """Return pending/confirmed bookings of a business overlapping the window."""

    async def insert_time_booking(self, booking: TimeBooking) -> TimeBooking:
        """Persist a new time booking."""

    async def list_time_bookings(
        self,
        business_id: str,
        *,
        widget_id: Optional[str] = None,
        starting_in: Optional[TimeRange] = None,
    ) -> List[TimeBooking]:
        """Return pending, confirmed and completed bookings of a business, by start."""

    async def update_time_booking(
        self,
        booking_id: str,
        *,
        status: Optional[TimeBookingStatus] = None,
        calendar_event_id: Optional[str] = None,
    ) -> TimeBooking:
        """Update status and/or the linked calendar event of a time booking."""
