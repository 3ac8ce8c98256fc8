"""
Capacity accounting for finite inventory booked over date ranges.
"""

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    InsufficientCapacityError,
    InvalidInputError,
    ResourceNotFoundError,
)
from ..domain.models import (
    CustomerRef,
    DateRange,
    InventoryItem,
    ResourceBooking,
    ResourceBookingStatus,
)
from .keyed_lock import KeyedLock
from .store import RecordStore

logger = logging.getLogger(__name__)


def inventory_lock_key(business_id: str, item_id: str) -> tuple:
    return (business_id, "inventory", item_id)


class InventoryLedger:
    """
    Computes remaining capacity and records reservations.

    ``used`` is the sum of quantities of active bookings whose inclusive
    ``[start_date, end_date or start_date]`` span overlaps the requested
    range; ``remaining = max(0, total - used)``. Reservations re-read the
    store under the item's lock instead of trusting an earlier availability
    answer.
    """

    def __init__(
        self,
        store: RecordStore,
        locks: Optional[KeyedLock] = None,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLock()
        self._clock = clock or (lambda: pendulum.now("UTC"))

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    async def get_item(self, item_id: str, business_id: Optional[str] = None) -> InventoryItem:
        """
        Load an active inventory item.

        Raises:
            ResourceNotFoundError: If the item is unknown, inactive or belongs
                to another business
        """
        item = await self._store.get_inventory_item(item_id)
        if item is None or not item.is_active or (
            business_id is not None and item.business_id != business_id
        ):
            raise ResourceNotFoundError(
                "Inventory item not found",
                business_id=business_id,
                resource_id=item_id,
            )
        return item

    async def remaining_capacity(
        self,
        item_id: str,
        date_range: DateRange,
        as_of: Optional[DateTime] = None,
        *,
        business_id: Optional[str] = None,
    ) -> int:
        """
        Remaining bookable quantity of an item for a date range.

        Args:
            item_id: Inventory item id
            date_range: Requested days
            as_of: Only count bookings created at or before this instant
            business_id: Optional ownership check

        Returns:
            Remaining quantity, never negative
        """
        item = await self.get_item(item_id, business_id)
        return await self._remaining(item, date_range, as_of)

    async def remaining_for_type(
        self,
        business_id: str,
        item_type: str,
        date_range: DateRange,
    ) -> int:
        """Sum of remaining capacity over a business's active items of one type."""
        items = await self._store.list_inventory_items(business_id, item_type)
        total = 0
        for item in items:
            total += await self._remaining(item, date_range, None)
        return total

    async def reserve(
        self,
        item_id: str,
        date_range: DateRange,
        quantity: int,
        *,
        business_id: Optional[str] = None,
        customer: Optional[CustomerRef] = None,
        service_type: Optional[str] = None,
        widget_id: Optional[str] = None,
    ) -> ResourceBooking:
        """
        Reserve ``quantity`` units of an item for a date range.

        Raises:
            InvalidInputError: If quantity is below one
            ResourceNotFoundError: If the item cannot be booked
            InsufficientCapacityError: If the remaining capacity is too small
        """
        if quantity < 1:
            raise InvalidInputError(
                "Quantity must be at least 1",
                business_id=business_id,
                resource_id=item_id,
                quantity=quantity,
            )

        item = await self.get_item(item_id, business_id)

        async with self._locks.hold(inventory_lock_key(item.business_id, item.id)):
            available = await self._remaining(item, date_range, None)

            if quantity > available:
                raise InsufficientCapacityError(
                    f"Insufficient inventory. Available: {available}, Requested: {quantity}",
                    available=available,
                    requested=quantity,
                    business_id=item.business_id,
                    resource_id=item.id,
                    window=str(date_range),
                )

            booking = ResourceBooking(
                id=uuid.uuid4().hex,
                business_id=item.business_id,
                inventory_item_id=item.id,
                date_range=date_range,
                quantity=quantity,
                status=ResourceBookingStatus.ACTIVE,
                customer=customer or CustomerRef(),
                service_type=service_type,
                widget_id=widget_id,
                created_at=self._clock(),
            )
            saved = await self._store.insert_resource_booking(booking)

        logger.info(
            "Reserved %d x %s for %s (business %s, %d left)",
            quantity,
            item.id,
            date_range,
            item.business_id,
            available - quantity,
        )
        return saved

    async def cancel(self, booking_id: str) -> ResourceBooking:
        """Cancel a resource booking so it no longer consumes capacity."""
        booking = await self._store.get_resource_booking(booking_id)
        if booking is None:
            raise ResourceNotFoundError("Inventory booking not found", booking_id=booking_id)

        async with self._locks.hold(inventory_lock_key(booking.business_id, booking.inventory_item_id)):
            cancelled = await self._store.set_resource_booking_status(
                booking_id, ResourceBookingStatus.CANCELLED
            )

        logger.info("Cancelled inventory booking %s", booking_id)
        return cancelled

    async def _remaining(
        self,
        item: InventoryItem,
        date_range: DateRange,
        as_of: Optional[DateTime],
    ) -> int:
        used = await self._store.sum_active_resource_quantity(item.id, date_range, as_of)
        return max(0, item.total_quantity - used)
