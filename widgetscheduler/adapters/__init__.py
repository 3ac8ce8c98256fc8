"""
Adapters layer - External integrations (Google Calendar, record stores).
"""

from .google_calendar import GoogleCalendarClient
from .memory_store import InMemoryRecordStore, JsonFileRecordStore
from .mock_calendar import MockCalendarClient

__all__ = ["GoogleCalendarClient", "InMemoryRecordStore", "JsonFileRecordStore", "MockCalendarClient"]
