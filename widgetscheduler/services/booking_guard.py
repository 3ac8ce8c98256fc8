"""
Commit-time conflict checking for bookings.

Availability answers are snapshots; by the time a customer confirms, another
booking may have taken the slot. The guard re-reads current state under a
per-key lock and only then inserts, so two concurrent requests for the same
time or the same inventory cannot both succeed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import pendulum
from pendulum import DateTime

from ..domain.exceptions import (
    BookingConflictError,
    InvalidInputError,
    SlotNoLongerAvailableError,
)
from ..domain.models import (
    CustomerRef,
    DateRange,
    ResourceBooking,
    TimeBooking,
    TimeBookingStatus,
    TimeRange,
)
from .inventory_ledger import InventoryLedger
from .keyed_lock import KeyedLock
from .store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttemptState(str, Enum):
    REQUESTED = "requested"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass
class TimeBookingRequest:
    business_id: str
    start: DateTime
    duration_minutes: int
    timezone: str = "UTC"
    customer: CustomerRef = field(default_factory=CustomerRef)
    service_type: Optional[str] = None
    widget_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    quantity: int = 1

    @property
    def window(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.start.add(minutes=self.duration_minutes))


@dataclass
class ResourceBookingRequest:
    business_id: str
    inventory_item_id: str
    date_range: DateRange
    quantity: int = 1
    customer: CustomerRef = field(default_factory=CustomerRef)
    service_type: Optional[str] = None
    widget_id: Optional[str] = None


def time_lock_key(business_id: str) -> tuple:
    return (business_id, "time")


class BookingConflictGuard:
    """
    Single serialization point for booking commits.

    State per attempt: requested -> committed | rejected. Once the lock is
    held the commit runs to completion even if the caller is cancelled.
    """

    def __init__(
        self,
        store: RecordStore,
        ledger: InventoryLedger,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._locks: KeyedLock = ledger.locks
        self._clock = clock or (lambda: pendulum.now("UTC"))

    async def commit_time_booking(self, request: TimeBookingRequest) -> TimeBooking:
        """
        Commit an appointment if its window is still free.

        Raises:
            InvalidInputError: If the duration or quantity is invalid
            SlotNoLongerAvailableError: If a pending/confirmed booking overlaps
            InsufficientCapacityError: If the attached inventory ran out
        """
        if request.duration_minutes <= 0:
            raise InvalidInputError(
                "Duration must be greater than zero",
                business_id=request.business_id,
                duration_minutes=request.duration_minutes,
            )

        window = request.window
        self._log_state(AttemptState.REQUESTED, "time", request.business_id, str(window))

        async with self._locks.hold(time_lock_key(request.business_id)):
            return await self._run_to_completion(
                self._check_and_insert_time(request, window),
                kind="time",
                business_id=request.business_id,
                window=str(window),
            )

    async def commit_resource_booking(self, request: ResourceBookingRequest) -> ResourceBooking:
        """
        Commit a date-range rental; the ledger serializes per item.

        Raises:
            InvalidInputError / ResourceNotFoundError / InsufficientCapacityError
        """
        self._log_state(
            AttemptState.REQUESTED, "inventory", request.business_id, str(request.date_range)
        )
        return await self._run_to_completion(
            self._ledger.reserve(
                request.inventory_item_id,
                request.date_range,
                request.quantity,
                business_id=request.business_id,
                customer=request.customer,
                service_type=request.service_type,
                widget_id=request.widget_id,
            ),
            kind="inventory",
            business_id=request.business_id,
            window=str(request.date_range),
        )

    async def _check_and_insert_time(
        self, request: TimeBookingRequest, window: TimeRange
    ) -> TimeBooking:
        existing = await self._store.time_bookings_overlapping(request.business_id, window)
        conflicts = [booking for booking in existing if booking.is_committed and booking.time_range.overlaps(window)]

        if conflicts:
            raise SlotNoLongerAvailableError(
                "Time slot is no longer available",
                business_id=request.business_id,
                resource_id=request.inventory_item_id,
                window=str(window),
                conflicting_booking=conflicts[0].id,
            )

        reservation: Optional[ResourceBooking] = None
        if request.inventory_item_id:
            reservation = await self._ledger.reserve(
                request.inventory_item_id,
                DateRange(start_date=request.start.in_timezone(request.timezone).date()),
                request.quantity,
                business_id=request.business_id,
                customer=request.customer,
                service_type=request.service_type,
                widget_id=request.widget_id,
            )

        booking = TimeBooking(
            id=uuid.uuid4().hex,
            business_id=request.business_id,
            start=request.start,
            duration_minutes=request.duration_minutes,
            status=TimeBookingStatus.PENDING,
            customer=request.customer,
            service_type=request.service_type,
            widget_id=request.widget_id,
            inventory_item_id=request.inventory_item_id,
            created_at=self._clock(),
        )

        try:
            return await self._store.insert_time_booking(booking)
        except Exception:
            if reservation is not None:
                await self._ledger.cancel(reservation.id)
            raise

    async def _run_to_completion(
        self,
        work: Awaitable[T],
        *,
        kind: str,
        business_id: str,
        window: str,
    ) -> T:
        task = asyncio.ensure_future(work)
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            # The caller went away; finish the commit before the lock is released.
            await asyncio.wait([task])
            self._log_detached_outcome(task, kind, business_id, window)
            raise
        except BookingConflictError as exc:
            self._log_state(AttemptState.REJECTED, kind, business_id, window, reason=exc.code)
            raise
        self._log_state(AttemptState.COMMITTED, kind, business_id, window)
        return result

    def _log_detached_outcome(self, task: asyncio.Future, kind: str, business_id: str, window: str) -> None:
        """Log how a commit ended after its caller was cancelled."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            self._log_state(AttemptState.COMMITTED, kind, business_id, window)
        elif isinstance(exc, BookingConflictError):
            self._log_state(AttemptState.REJECTED, kind, business_id, window, reason=exc.code)
        else:
            logger.warning(
                "Booking (%s) for business %s %s failed after the caller left: %s",
                kind,
                business_id,
                window,
                exc,
            )

    @staticmethod
    def _log_state(
        state: AttemptState,
        kind: str,
        business_id: str,
        window: str,
        reason: Optional[str] = None,
    ) -> None:
        if state is AttemptState.REJECTED:
            logger.info("Booking %s (%s) for business %s %s: %s", state.value, kind, business_id, window, reason)
        else:
            logger.info("Booking %s (%s) for business %s %s", state.value, kind, business_id, window)
