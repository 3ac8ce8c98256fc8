"""
Application service for widget availability queries and booking commits.

The scheduler resolves the widget, builds the domain objects from its
scheduling configuration, fetches busy data through the degrading fetcher
and delegates commits to the conflict guard. Calendar writes and
notifications happen after the commit and never undo it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import pendulum
from pendulum import Date, DateTime

from ..config import SchedulingConfig, WidgetConfig
from ..domain.availability import AvailabilityResolver, mark_inventory_shortfall, parse_query_date
from ..domain.exceptions import (
    InvalidInputError,
    PartialCommitError,
    ResourceNotFoundError,
    SchedulingError,
)
from ..domain.models import (
    AnnotatedSlot,
    CustomerRef,
    DateRange,
    DayHours,
    ResourceBooking,
    TimeBooking,
    TimeRange,
)
from ..domain.slot_generator import SlotGenerator, at_time, resolve_timezone
from .booking_guard import BookingConflictGuard, ResourceBookingRequest, TimeBookingRequest
from .calendar import BusyTimeFetcher, CalendarEvent, CalendarEventCreator
from .inventory_ledger import InventoryLedger
from .keyed_lock import KeyedLock
from .notifications import NotificationQueue, NotificationTask
from .rate_limit import RateLimiter, enforce
from .store import RecordStore

logger = logging.getLogger(__name__)

CLOSED_REASON = "Closed on this day"


@dataclass
class AvailabilityQuery:
    widget_id: str
    date: str  # YYYY-MM-DD
    service_type: Optional[str] = None
    inventory_type: Optional[str] = None
    quantity: int = 1


@dataclass
class AvailabilityResult:
    date: str
    slots: List[AnnotatedSlot] = field(default_factory=list)
    business_hours: Optional[DayHours] = None
    inventory_available: Optional[int] = None
    warnings: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    scheduling: Dict[str, Any] = field(default_factory=dict)

    @property
    def available_slots(self) -> List[AnnotatedSlot]:
        return [slot for slot in self.slots if slot.available]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "date": self.date,
            "slots": [slot.to_dict() for slot in self.slots],
            "businessHours": self.business_hours.to_dict() if self.business_hours else None,
            "schedulingConfig": self.scheduling,
        }
        if self.inventory_available is not None:
            data["inventoryAvailable"] = self.inventory_available
        if self.reason:
            data["reason"] = self.reason
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


@dataclass
class BookingResult:
    booking_id: str
    status: str
    warnings: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"bookingId": self.booking_id, "status": self.status, **self.data}
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        return payload


@dataclass
class BookingList:
    date: Optional[str] = None
    bookings: List[Union[TimeBooking, ResourceBooking]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "bookings": [booking.to_dict() for booking in self.bookings],
        }


class Scheduler:
    """
    Orchestrates availability queries and booking commits for widgets.
    """

    def __init__(
        self,
        store: RecordStore,
        busy_fetcher: BusyTimeFetcher,
        *,
        event_creator: Optional[CalendarEventCreator] = None,
        notifications: Optional[NotificationQueue] = None,
        rate_limiter: Optional[RateLimiter] = None,
        locks: Optional[KeyedLock] = None,
        clock: Optional[Callable[[], DateTime]] = None,
    ) -> None:
        self._store = store
        self._busy_fetcher = busy_fetcher
        self._event_creator = event_creator
        self._notifications = notifications
        self._rate_limiter = rate_limiter
        self._clock = clock or (lambda: pendulum.now("UTC"))
        self.ledger = InventoryLedger(store, locks=locks, clock=self._clock)
        self.guard = BookingConflictGuard(store, self.ledger, clock=self._clock)

    async def get_availability(self, query: AvailabilityQuery) -> AvailabilityResult:
        """
        Compute the annotated slot list for one widget and day.

        Raises:
            ResourceNotFoundError: If the widget does not exist
            InvalidInputError: If scheduling is disabled, the date is
                malformed or out of range, or the quantity is invalid
        """
        widget = await self._load_widget(query.widget_id)
        config = widget.scheduling
        tz = config.timezone

        query_date = parse_query_date(query.date, tz)
        self._check_booking_horizon(widget, query_date)

        if query.inventory_type and query.quantity < 1:
            raise InvalidInputError(
                "Quantity must be at least 1",
                business_id=widget.business_id,
                quantity=query.quantity,
            )

        result = AvailabilityResult(date=query_date.isoformat(), scheduling=self._summary(config))

        generator = SlotGenerator(
            business_hours=config.to_business_hours(),
            duration_minutes=config.duration,
            buffer_minutes=config.buffer,
            timezone=tz,
        )
        day_hours, candidates = generator.for_day(query_date)

        if day_hours is None:
            result.reason = CLOSED_REASON
            return result

        result.business_hours = day_hours

        busy = []
        if config.features.availability_checking and config.google_calendars:
            day_start = at_time(query_date, time(0, 0), tz)
            busy_result = await self._busy_fetcher.fetch(
                config.google_calendars,
                day_start,
                day_start.add(days=1),
                tz,
                business_id=widget.business_id,
            )
            busy = busy_result.busy
            if busy_result.warning:
                result.warnings.append(busy_result.warning)

        resolver = AvailabilityResolver(
            buffer_minutes=config.buffer,
            min_hours_notice=config.min_hours_notice,
            timezone=tz,
            conflict_duration_minutes=config.effective_conflict_duration,
        )
        slots = resolver.resolve(candidates, busy, self._clock(), query_date=query_date)

        if query.inventory_type:
            remaining = await self.ledger.remaining_for_type(
                widget.business_id, query.inventory_type, DateRange(start_date=query_date)
            )
            result.inventory_available = remaining
            if remaining < query.quantity:
                slots = mark_inventory_shortfall(slots)

        result.slots = slots
        return result

    async def book_appointment(
        self,
        widget_id: str,
        appointment_datetime: Union[str, DateTime],
        *,
        duration_minutes: Optional[int] = None,
        customer: Optional[CustomerRef] = None,
        service_type: Optional[str] = None,
        inventory_item_id: Optional[str] = None,
        quantity: int = 1,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        """
        Commit a time booking, then create the calendar event if enabled.

        Raises:
            ResourceNotFoundError, InvalidInputError, RateLimitExceededError,
            SlotNoLongerAvailableError, InsufficientCapacityError,
            StoreUnavailableError
        """
        widget = await self._load_widget(widget_id)
        config = widget.scheduling
        customer = customer or CustomerRef()
        start = self._parse_instant(appointment_datetime, config.timezone, widget.business_id)
        duration = duration_minutes if duration_minutes is not None else config.duration

        if start < self._clock():
            raise InvalidInputError(
                "Cannot book an appointment in the past",
                business_id=widget.business_id,
                window=start.to_iso8601_string(),
            )

        self._check_booking_horizon(widget, start.in_timezone(config.timezone).date())
        self._enforce_rate_limit(widget, customer)

        logger.info(
            "Creating booking: widget=%s customer=%s service=%s at=%s duration=%s",
            widget.id,
            customer.masked(),
            service_type,
            start.to_iso8601_string(),
            duration,
        )

        booking = await self.guard.commit_time_booking(
            TimeBookingRequest(
                business_id=widget.business_id,
                start=start,
                duration_minutes=duration,
                timezone=config.timezone,
                customer=customer,
                service_type=service_type,
                widget_id=widget.id,
                inventory_item_id=inventory_item_id,
                quantity=quantity,
            )
        )

        result = BookingResult(
            booking_id=booking.id,
            status=booking.status.value,
            data={"appointmentDatetime": booking.start.to_iso8601_string()},
        )

        if config.features.meeting_booking:
            await self._create_calendar_event(widget, booking, result, location=location, notes=notes)

        self._notify(
            NotificationTask(
                kind="appointment_booked",
                business_id=widget.business_id,
                booking_id=booking.id,
                payload={"widget_id": widget.id, **booking.to_dict()},
            ),
            result,
        )
        return result

    async def book_inventory(
        self,
        widget_id: str,
        inventory_item_id: str,
        start_date: str,
        end_date: Optional[str] = None,
        *,
        quantity: int = 1,
        customer: Optional[CustomerRef] = None,
        service_type: Optional[str] = None,
    ) -> BookingResult:
        """
        Commit a single- or multi-day inventory rental.

        Raises:
            ResourceNotFoundError, InvalidInputError, RateLimitExceededError,
            InsufficientCapacityError, StoreUnavailableError
        """
        widget = await self._load_widget(widget_id, require_scheduling=False)
        tz = widget.scheduling.timezone
        customer = customer or CustomerRef()

        first_day = parse_query_date(start_date, tz)
        last_day = parse_query_date(end_date, tz) if end_date else None
        if last_day is not None and last_day < first_day:
            raise InvalidInputError(
                "End date must not be before start date",
                business_id=widget.business_id,
                resource_id=inventory_item_id,
                window=f"{start_date}..{end_date}",
            )

        self._enforce_rate_limit(widget, customer)

        logger.info(
            "Creating inventory booking: widget=%s customer=%s item=%s days=%s..%s quantity=%d",
            widget.id,
            customer.masked(),
            inventory_item_id,
            start_date,
            end_date,
            quantity,
        )

        booking = await self.guard.commit_resource_booking(
            ResourceBookingRequest(
                business_id=widget.business_id,
                inventory_item_id=inventory_item_id,
                date_range=DateRange(start_date=first_day, end_date=last_day),
                quantity=quantity,
                customer=customer,
                service_type=service_type,
                widget_id=widget.id,
            )
        )

        data = booking.to_dict()
        result = BookingResult(
            booking_id=data.pop("bookingId"),
            status=data.pop("status"),
            data=data,
        )
        self._notify(
            NotificationTask(
                kind="inventory_booked",
                business_id=widget.business_id,
                booking_id=booking.id,
                payload={"widget_id": widget.id, **booking.to_dict()},
            ),
            result,
        )
        return result

    async def inventory_status(
        self,
        widget_id: str,
        date: str,
        item_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Remaining capacity of every active item of the widget's business for a day."""
        widget = await self._load_widget(widget_id, require_scheduling=False)
        day = DateRange(start_date=parse_query_date(date, widget.scheduling.timezone))
        items = await self._store.list_inventory_items(widget.business_id, item_type)

        status = []
        for item in items:
            status.append(
                {
                    "id": item.id,
                    "name": item.name,
                    "type": item.item_type,
                    "total": item.total_quantity,
                    "remaining": await self.ledger.remaining_capacity(item.id, day),
                }
            )
        return status

    async def list_bookings(
        self,
        widget_id: str,
        date: Optional[str] = None,
        *,
        business_wide: bool = False,
    ) -> BookingList:
        """
        List pending, confirmed and completed appointments, earliest first.

        Args:
            widget_id: Widget whose bookings to list
            date: Only appointments starting on this day (YYYY-MM-DD) in the
                widget's timezone
            business_wide: Include bookings made through the business's
                other widgets

        Raises:
            ResourceNotFoundError: If the widget does not exist
            InvalidInputError: If the date is malformed
        """
        widget = await self._load_widget(widget_id, require_scheduling=False)
        tz = widget.scheduling.timezone

        starting_in = None
        if date:
            day_start = at_time(parse_query_date(date, tz), time(0, 0), tz)
            starting_in = TimeRange(start=day_start, end=day_start.add(days=1))

        bookings = await self._store.list_time_bookings(
            widget.business_id,
            widget_id=None if business_wide else widget.id,
            starting_in=starting_in,
        )
        return BookingList(date=date, bookings=bookings)

    async def list_inventory_bookings(
        self,
        widget_id: str,
        date: Optional[str] = None,
        *,
        item_id: Optional[str] = None,
        business_wide: bool = False,
    ) -> BookingList:
        """Active rentals covering ``date`` (all active rentals without one), by first day."""
        widget = await self._load_widget(widget_id, require_scheduling=False)
        on_day = parse_query_date(date, widget.scheduling.timezone) if date else None

        bookings = await self._store.list_resource_bookings(
            widget.business_id,
            widget_id=None if business_wide else widget.id,
            item_id=item_id,
            on_day=on_day,
        )
        return BookingList(date=date, bookings=bookings)

    async def handle(
        self, operation: Awaitable[Union[AvailabilityResult, BookingResult, BookingList]]
    ) -> Dict[str, Any]:
        """
        Run an operation and wrap it in the widget API envelope.

        Success: ``{"success": True, "data": ...}``; failure: the error's
        ``to_dict()`` plus its HTTP-equivalent ``status``.
        """
        try:
            outcome = await operation
        except SchedulingError as exc:
            return {**exc.to_dict(), "status": exc.http_status}
        return {"success": True, "data": outcome.to_dict(), "status": 200}

    async def _load_widget(self, widget_id: str, require_scheduling: bool = True) -> WidgetConfig:
        widget = await self._store.get_widget(widget_id)
        if widget is None:
            raise ResourceNotFoundError("Widget not found", widget_id=widget_id)
        if require_scheduling and not widget.scheduling.enabled:
            raise InvalidInputError(
                "Scheduling not enabled for this widget",
                widget_id=widget_id,
                business_id=widget.business_id,
            )
        return widget

    def _check_booking_horizon(self, widget: WidgetConfig, target: Date) -> None:
        config = widget.scheduling
        if config.max_days_ahead is None:
            return
        today = self._clock().in_timezone(config.timezone).date()
        if target.toordinal() - today.toordinal() > config.max_days_ahead:
            raise InvalidInputError(
                f"Date is more than {config.max_days_ahead} days ahead",
                business_id=widget.business_id,
                date=target.isoformat(),
            )

    def _enforce_rate_limit(self, widget: WidgetConfig, customer: CustomerRef) -> None:
        if self._rate_limiter is None:
            return
        key = f"booking:{widget.id}:{customer.email or 'anonymous'}"
        enforce(self._rate_limiter, key, business_id=widget.business_id)

    @staticmethod
    def _parse_instant(value: Union[str, DateTime], timezone: str, business_id: str) -> DateTime:
        resolve_timezone(timezone)
        if isinstance(value, DateTime):
            return value
        try:
            parsed = pendulum.parse(value, tz=timezone)
        except (ValueError, TypeError) as exc:
            raise InvalidInputError(
                f"Invalid appointment datetime: {value!r}", business_id=business_id
            ) from exc
        if not isinstance(parsed, DateTime):
            raise InvalidInputError(
                f"Appointment datetime must include a time: {value!r}", business_id=business_id
            )
        return parsed

    async def _create_calendar_event(
        self,
        widget: WidgetConfig,
        booking: TimeBooking,
        result: BookingResult,
        *,
        location: Optional[str],
        notes: Optional[str],
    ) -> None:
        config = widget.scheduling
        calendar_id = config.event_calendar
        if self._event_creator is None or calendar_id is None:
            result.warnings.append("No calendar configured for meeting creation")
            return

        customer = booking.customer
        description = "\n".join(
            line for line in (
                f"Service: {booking.service_type}" if booking.service_type else None,
                f"Customer: {customer.name}" if customer.name else None,
                f"Email: {customer.email}" if customer.email else None,
                f"Location: {location}" if location else None,
                f"Notes: {notes}" if notes else None,
                f"Booked via: {widget.name or widget.id}",
            )
            if line
        )
        event = CalendarEvent(
            summary=f"{booking.service_type or 'Appointment'} - {customer.name or 'Customer'}",
            start=booking.start,
            end=booking.time_range.end,
            description=description,
            attendee_email=customer.email if config.features.send_calendar_invites else None,
            location=location,
            create_meet_link=config.features.create_meet_links,
        )

        try:
            created = await self._event_creator.create_event(calendar_id, event)
        except Exception as exc:
            self._report_partial(
                PartialCommitError(
                    f"Booking saved but calendar event failed: {exc}",
                    booking_id=booking.id,
                    business_id=widget.business_id,
                    calendar_id=calendar_id,
                    window=str(booking.time_range),
                ),
                result,
            )
            return

        result.data["calendarEventId"] = created.event_id
        if created.meet_link:
            result.data["meetLink"] = created.meet_link

        try:
            await self._store.update_time_booking(booking.id, calendar_event_id=created.event_id)
        except Exception as exc:
            self._report_partial(
                PartialCommitError(
                    f"Calendar event created but booking record was not updated: {exc}",
                    booking_id=booking.id,
                    business_id=widget.business_id,
                    calendar_id=calendar_id,
                    event_id=created.event_id,
                ),
                result,
            )

    @staticmethod
    def _report_partial(error: PartialCommitError, result: BookingResult) -> None:
        logger.error("Partial commit, manual reconciliation needed: %s", error)
        result.warnings.append(error.message)

    def _notify(self, task: NotificationTask, result: BookingResult) -> None:
        if self._notifications is None:
            return
        try:
            self._notifications.enqueue(task)
        except Exception as exc:
            logger.warning("Could not queue %s notification for %s: %s", task.kind, task.booking_id, exc)
            result.warnings.append("Confirmation notification could not be queued")

    @staticmethod
    def _summary(config: SchedulingConfig) -> Dict[str, Any]:
        return {
            "duration": config.duration,
            "buffer": config.buffer,
            "conflictDuration": config.effective_conflict_duration,
            "timezone": config.timezone,
        }
