"""
Mock calendar client for running without Google credentials.
"""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pendulum
from pendulum import DateTime

from ..domain.exceptions import ProviderDegradedError
from ..domain.models import TimeRange
from ..services.calendar import BusyTimeResult, CalendarError, CalendarEvent, CreatedEvent


class MockCalendarClient:
    """
    Mock client that simulates the calendar provider.

    Busy data comes from a list of ``{"calendarId", "start", "end"}`` events,
    given directly or loaded from a JSON file. Failure modes (slow provider,
    broken provider, broken individual calendars, failing event creation)
    can be switched on for tests and demos.
    """

    def __init__(
        self,
        events: Optional[Iterable[Dict[str, Any]]] = None,
        data_file: Optional[Path] = None,
        *,
        failing_calendars: Iterable[str] = (),
        error: Optional[Exception] = None,
        delay_seconds: float = 0.0,
        fail_event_creation: bool = False,
    ):
        """
        Initialize the mock client.

        Args:
            events: Calendar events to serve as busy time
            data_file: JSON file with a list of events (used when events is None)
            failing_calendars: Calendar ids reported back as per-calendar errors
            error: Exception raised by every fetch
            delay_seconds: Artificial latency per fetch
            fail_event_creation: Make create_event raise
        """
        self.calendar_events: List[Dict[str, Any]] = list(events) if events is not None else []
        if events is None and data_file is not None:
            self._load_calendar_data(data_file)
        self.failing_calendars = set(failing_calendars)
        self.error = error
        self.delay_seconds = delay_seconds
        self.fail_event_creation = fail_event_creation
        self.fetch_calls: List[Tuple[Tuple[str, ...], DateTime, DateTime, str]] = []
        self.created_events: List[Tuple[str, CalendarEvent]] = []

    def _load_calendar_data(self, data_file: Path) -> None:
        """Load mock calendar data from JSON file."""
        if data_file.exists():
            with open(data_file, "r", encoding="utf-8") as f:
                self.calendar_events = json.load(f)

    async def fetch_busy(
        self,
        calendar_ids: Sequence[str],
        window_start: DateTime,
        window_end: DateTime,
        timezone: str,
    ) -> BusyTimeResult:
        """
        Serve busy times from the mock events overlapping the window.
        """
        self.fetch_calls.append((tuple(calendar_ids), window_start, window_end, timezone))

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error

        result = BusyTimeResult()

        for calendar_id in calendar_ids:
            if calendar_id in self.failing_calendars:
                result.calendar_errors.append(
                    CalendarError(calendar_id=calendar_id, reason="global: notFound")
                )
                continue

            for event in self.calendar_events:
                if event.get("calendarId") != calendar_id:
                    continue

                try:
                    event_start = pendulum.parse(event["start"], tz=timezone)
                    event_end = pendulum.parse(event["end"], tz=timezone)
                    busy = TimeRange(start=event_start, end=event_end)
                except (KeyError, ValueError):
                    # Skip invalid events
                    continue

                if busy.start < window_end and busy.end > window_start:
                    result.busy.append(busy)

        return result

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CreatedEvent:
        if self.fail_event_creation:
            raise ProviderDegradedError("Mock event creation failed", calendars=calendar_id)

        self.created_events.append((calendar_id, event))
        event_id = f"mock-{uuid.uuid4().hex[:12]}"
        meet_link = f"https://meet.example.com/{event_id}" if event.create_meet_link else None
        return CreatedEvent(event_id=event_id, meet_link=meet_link)
