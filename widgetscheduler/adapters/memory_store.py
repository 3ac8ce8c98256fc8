"""
In-memory record store, optionally persisted to a JSON state file.

Widgets and inventory items come from configuration; bookings live in
memory. ``JsonFileRecordStore`` writes bookings back to disk after every
change so the CLI keeps state between invocations. Writes replace the file
atomically, and a change that cannot be written is taken back out of memory.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pendulum
from pendulum import Date, DateTime

from ..config import AppConfig, WidgetConfig
from ..domain.exceptions import ResourceNotFoundError, StoreUnavailableError
from ..domain.models import (
    CustomerRef,
    DateRange,
    InventoryItem,
    LISTED_TIME_STATUSES,
    ResourceBooking,
    ResourceBookingStatus,
    TimeBooking,
    TimeBookingStatus,
    TimeRange,
)

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """
    Dictionary-backed implementation of ``RecordStore``.

    Methods are coroutines to match real drivers; none of them await, so each
    call is atomic with respect to other tasks on the same event loop.
    """

    def __init__(
        self,
        widgets: Iterable[WidgetConfig] = (),
        inventory_items: Iterable[InventoryItem] = (),
    ) -> None:
        self.widgets: Dict[str, WidgetConfig] = {widget.id: widget for widget in widgets}
        self.inventory_items: Dict[str, InventoryItem] = {item.id: item for item in inventory_items}
        self.resource_bookings: Dict[str, ResourceBooking] = {}
        self.time_bookings: Dict[str, TimeBooking] = {}

    @classmethod
    def from_config(cls, config: AppConfig) -> "InMemoryRecordStore":
        return cls(
            widgets=config.widgets,
            inventory_items=[item.to_item() for item in config.inventory],
        )

    async def get_widget(self, widget_id: str) -> Optional[WidgetConfig]:
        return self.widgets.get(widget_id)

    async def get_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        return self.inventory_items.get(item_id)

    async def list_inventory_items(
        self, business_id: str, item_type: Optional[str] = None
    ) -> List[InventoryItem]:
        return [
            item for item in self.inventory_items.values()
            if item.business_id == business_id
            and item.is_active
            and (item_type is None or item.item_type == item_type)
        ]

    async def resource_bookings_overlapping(
        self, item_id: str, date_range: DateRange
    ) -> List[ResourceBooking]:
        return [
            booking for booking in self.resource_bookings.values()
            if booking.inventory_item_id == item_id
            and booking.is_active
            and booking.date_range.overlaps(date_range)
        ]

    async def sum_active_resource_quantity(
        self,
        item_id: str,
        date_range: DateRange,
        as_of: Optional[DateTime] = None,
    ) -> int:
        bookings = await self.resource_bookings_overlapping(item_id, date_range)
        return sum(
            booking.quantity for booking in bookings
            if as_of is None or booking.created_at <= as_of
        )

    async def insert_resource_booking(self, booking: ResourceBooking) -> ResourceBooking:
        self._put(self.resource_bookings, booking.id, booking)
        return booking

    async def list_resource_bookings(
        self,
        business_id: str,
        *,
        widget_id: Optional[str] = None,
        item_id: Optional[str] = None,
        on_day: Optional[Date] = None,
    ) -> List[ResourceBooking]:
        day = DateRange(start_date=on_day) if on_day is not None else None
        bookings = [
            booking for booking in self.resource_bookings.values()
            if booking.business_id == business_id
            and booking.is_active
            and (widget_id is None or booking.widget_id == widget_id)
            and (item_id is None or booking.inventory_item_id == item_id)
            and (day is None or booking.date_range.overlaps(day))
        ]
        return sorted(bookings, key=lambda booking: booking.date_range.start_date)

    async def get_resource_booking(self, booking_id: str) -> Optional[ResourceBooking]:
        return self.resource_bookings.get(booking_id)

    async def set_resource_booking_status(
        self, booking_id: str, status: ResourceBookingStatus
    ) -> ResourceBooking:
        booking = self.resource_bookings.get(booking_id)
        if booking is None:
            raise ResourceNotFoundError("Inventory booking not found", booking_id=booking_id)
        updated = replace(booking, status=status)
        self._put(self.resource_bookings, booking_id, updated)
        return updated

    async def time_bookings_overlapping(
        self, business_id: str, window: TimeRange
    ) -> List[TimeBooking]:
        return [
            booking for booking in self.time_bookings.values()
            if booking.business_id == business_id
            and booking.is_committed
            and booking.time_range.overlaps(window)
        ]

    async def insert_time_booking(self, booking: TimeBooking) -> TimeBooking:
        self._put(self.time_bookings, booking.id, booking)
        return booking

    async def list_time_bookings(
        self,
        business_id: str,
        *,
        widget_id: Optional[str] = None,
        starting_in: Optional[TimeRange] = None,
    ) -> List[TimeBooking]:
        bookings = [
            booking for booking in self.time_bookings.values()
            if booking.business_id == business_id
            and booking.status in LISTED_TIME_STATUSES
            and (widget_id is None or booking.widget_id == widget_id)
            and (starting_in is None or starting_in.start <= booking.start < starting_in.end)
        ]
        return sorted(bookings, key=lambda booking: booking.start)

    async def update_time_booking(
        self,
        booking_id: str,
        *,
        status: Optional[TimeBookingStatus] = None,
        calendar_event_id: Optional[str] = None,
    ) -> TimeBooking:
        booking = self.time_bookings.get(booking_id)
        if booking is None:
            raise ResourceNotFoundError("Booking not found", booking_id=booking_id)
        changes: Dict[str, Any] = {}
        if status is not None:
            changes["status"] = status
        if calendar_event_id is not None:
            changes["calendar_event_id"] = calendar_event_id
        updated = replace(booking, **changes)
        self._put(self.time_bookings, booking_id, updated)
        return updated

    def _put(self, records: Dict[str, Any], key: str, value: Any) -> None:
        """Store ``value`` and persist; the previous entry comes back if persisting fails."""
        previous = records.get(key)
        records[key] = value
        try:
            self._changed()
        except Exception:
            if previous is None:
                del records[key]
            else:
                records[key] = previous
            raise

    def _changed(self) -> None:
        """Hook for subclasses that persist state."""


class JsonFileRecordStore(InMemoryRecordStore):
    """In-memory store whose bookings survive restarts via a JSON file."""

    def __init__(
        self,
        state_file: Path,
        widgets: Iterable[WidgetConfig] = (),
        inventory_items: Iterable[InventoryItem] = (),
    ) -> None:
        super().__init__(widgets=widgets, inventory_items=inventory_items)
        self.state_file = state_file
        self._load()

    @classmethod
    def from_config(cls, config: AppConfig) -> "InMemoryRecordStore":
        if config.store.state_file is None:
            return InMemoryRecordStore.from_config(config)
        return cls(
            state_file=config.store.state_file,
            widgets=config.widgets,
            inventory_items=[item.to_item() for item in config.inventory],
        )

    def _load(self) -> None:
        if not self.state_file.exists():
            return

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in state file {self.state_file}: {exc}") from exc

        for raw in data.get("resource_bookings", []):
            booking = _resource_booking_from_json(raw)
            self.resource_bookings[booking.id] = booking
        for raw in data.get("time_bookings", []):
            booking = _time_booking_from_json(raw)
            self.time_bookings[booking.id] = booking

        logger.debug(
            "Loaded %d time and %d inventory bookings from %s",
            len(self.time_bookings),
            len(self.resource_bookings),
            self.state_file,
        )

    def _changed(self) -> None:
        data = {
            "resource_bookings": [_resource_booking_to_json(b) for b in self.resource_bookings.values()],
            "time_bookings": [_time_booking_to_json(b) for b in self.time_bookings.values()],
        }
        try:
            self._write_atomically(data)
        except OSError as exc:
            raise StoreUnavailableError(
                f"Could not write state file: {exc}", state_file=str(self.state_file)
            ) from exc

    def _write_atomically(self, data: Dict[str, Any]) -> None:
        folder = self.state_file.parent
        folder.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            "w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp"
        ) as tf:
            json.dump(data, tf, indent=2)
            tmp_name = tf.name

        try:
            os.replace(tmp_name, self.state_file)
        except OSError:
            os.unlink(tmp_name)
            raise


def _customer_to_json(customer: CustomerRef) -> Dict[str, Optional[str]]:
    return {
        "email": customer.email,
        "name": customer.name,
        "submission_id": customer.submission_id,
    }


def _customer_from_json(raw: Optional[Dict[str, Any]]) -> CustomerRef:
    raw = raw or {}
    return CustomerRef(
        email=raw.get("email"),
        name=raw.get("name"),
        submission_id=raw.get("submission_id"),
    )


def _resource_booking_to_json(booking: ResourceBooking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "business_id": booking.business_id,
        "inventory_item_id": booking.inventory_item_id,
        "start_date": booking.date_range.start_date.isoformat(),
        "end_date": booking.date_range.end_date.isoformat() if booking.date_range.end_date else None,
        "quantity": booking.quantity,
        "status": booking.status.value,
        "customer": _customer_to_json(booking.customer),
        "service_type": booking.service_type,
        "widget_id": booking.widget_id,
        "created_at": booking.created_at.to_iso8601_string(),
    }


def _resource_booking_from_json(raw: Dict[str, Any]) -> ResourceBooking:
    end_date = raw.get("end_date")
    return ResourceBooking(
        id=raw["id"],
        business_id=raw["business_id"],
        inventory_item_id=raw["inventory_item_id"],
        date_range=DateRange(
            start_date=pendulum.parse(raw["start_date"]).date(),
            end_date=pendulum.parse(end_date).date() if end_date else None,
        ),
        quantity=int(raw["quantity"]),
        status=ResourceBookingStatus(raw.get("status", "active")),
        customer=_customer_from_json(raw.get("customer")),
        service_type=raw.get("service_type"),
        widget_id=raw.get("widget_id"),
        created_at=pendulum.parse(raw["created_at"]),
    )


def _time_booking_to_json(booking: TimeBooking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "business_id": booking.business_id,
        "start": booking.start.to_iso8601_string(),
        "duration_minutes": booking.duration_minutes,
        "status": booking.status.value,
        "customer": _customer_to_json(booking.customer),
        "service_type": booking.service_type,
        "widget_id": booking.widget_id,
        "inventory_item_id": booking.inventory_item_id,
        "calendar_event_id": booking.calendar_event_id,
        "created_at": booking.created_at.to_iso8601_string(),
    }


def _time_booking_from_json(raw: Dict[str, Any]) -> TimeBooking:
    return TimeBooking(
        id=raw["id"],
        business_id=raw["business_id"],
        start=pendulum.parse(raw["start"]),
        duration_minutes=int(raw["duration_minutes"]),
        status=TimeBookingStatus(raw.get("status", "pending")),
        customer=_customer_from_json(raw.get("customer")),
        service_type=raw.get("service_type"),
        widget_id=raw.get("widget_id"),
        inventory_item_id=raw.get("inventory_item_id"),
        calendar_event_id=raw.get("calendar_event_id"),
        created_at=pendulum.parse(raw["created_at"]),
    )
