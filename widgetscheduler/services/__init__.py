"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_guard import BookingConflictGuard, ResourceBookingRequest, TimeBookingRequest
from .calendar import BusyTimeFetcher, BusyTimeProvider, BusyTimeResult
from .inventory_ledger import InventoryLedger
from .scheduler import AvailabilityQuery, AvailabilityResult, BookingResult, Scheduler

__all__ = [
    "AvailabilityQuery",
    "AvailabilityResult",
    "BookingConflictGuard",
    "BookingResult",
    "BusyTimeFetcher",
    "BusyTimeProvider",
    "BusyTimeResult",
    "InventoryLedger",
    "ResourceBookingRequest",
    "Scheduler",
    "TimeBookingRequest",
]
