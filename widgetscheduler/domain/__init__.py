"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityResolver, parse_query_date, resolve_slots
from .intervals import expand, merge_sorted, overlaps
from .models import (
    AnnotatedSlot,
    BusinessHours,
    CandidateSlot,
    DateRange,
    DayHours,
    InventoryItem,
    ResourceBooking,
    TimeBooking,
    TimeRange,
)
from .slot_generator import SlotGenerator, generate_slots

__all__ = [
    "AnnotatedSlot",
    "AvailabilityResolver",
    "BusinessHours",
    "CandidateSlot",
    "DateRange",
    "DayHours",
    "InventoryItem",
    "ResourceBooking",
    "SlotGenerator",
    "TimeBooking",
    "TimeRange",
    "expand",
    "generate_slots",
    "merge_sorted",
    "overlaps",
    "parse_query_date",
    "resolve_slots",
]
