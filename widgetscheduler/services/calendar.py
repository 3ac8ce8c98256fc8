"""
Calendar provider boundary and the degrade-to-empty busy-time fetcher.

Providers are consumed as ready-to-use capabilities; authentication happens
before a client is handed to the engine. Any provider failure is treated as
"no busy information" so slot generation is never blocked by the calendar.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from pendulum import DateTime

from ..domain.exceptions import ProviderDegradedError
from ..domain.intervals import merge_sorted
from ..domain.models import TimeRange

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalendarError:
    """A single calendar that could not be read."""
    calendar_id: str
    reason: str


@dataclass
class BusyTimeResult:
    """Busy intervals across all readable calendars, plus what went wrong."""
    busy: List[TimeRange] = field(default_factory=list)
    calendar_errors: List[CalendarError] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.warning is not None or bool(self.calendar_errors)


@dataclass
class CalendarEvent:
    """An event to create on the business calendar after a booking."""
    summary: str
    start: DateTime
    end: DateTime
    description: str = ""
    attendee_email: Optional[str] = None
    location: Optional[str] = None
    create_meet_link: bool = False


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    meet_link: Optional[str] = None


class BusyTimeProvider(Protocol):
    """Protocol describing the free/busy lookup the engine needs."""

    async def fetch_busy(
        self,
        calendar_ids: Sequence[str],
        window_start: DateTime,
        window_end: DateTime,
        timezone: str,
    ) -> BusyTimeResult:
        """Return busy intervals in the window; per-calendar failures go in ``calendar_errors``."""


class CalendarEventCreator(Protocol):
    """Protocol for providers that can also write events."""

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CreatedEvent:
        """Create the event and return its provider id."""


class BusyTimeFetcher:
    """
    Wraps a provider with a deadline and the degrade-to-empty policy.

    - no calendars configured: empty result, provider not called
    - timeout or provider exception: empty result with a warning
    - per-calendar errors: logged, that calendar is omitted, others kept
    """

    def __init__(self, provider: BusyTimeProvider, timeout_seconds: float = 10.0) -> None:
        self._provider = provider
        self._timeout_seconds = timeout_seconds

    @property
    def provider(self) -> BusyTimeProvider:
        return self._provider

    async def fetch(
        self,
        calendar_ids: Sequence[str],
        window_start: DateTime,
        window_end: DateTime,
        timezone: str,
        *,
        business_id: Optional[str] = None,
    ) -> BusyTimeResult:
        calendars = [calendar_id for calendar_id in calendar_ids if calendar_id]
        if not calendars:
            return BusyTimeResult()

        try:
            result = await asyncio.wait_for(
                self._provider.fetch_busy(calendars, window_start, window_end, timezone),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            return self._degraded(
                ProviderDegradedError(
                    f"Calendar provider did not answer within {self._timeout_seconds:g}s",
                    business_id=business_id,
                    calendars=",".join(calendars),
                    window=f"{window_start.to_iso8601_string()}/{window_end.to_iso8601_string()}",
                )
            )
        except ProviderDegradedError as exc:
            exc.context.setdefault("business_id", business_id)
            return self._degraded(exc)
        except Exception as exc:
            return self._degraded(
                ProviderDegradedError(
                    f"Calendar provider failed: {type(exc).__name__}: {exc}",
                    business_id=business_id,
                    calendars=",".join(calendars),
                )
            )

        for error in result.calendar_errors:
            logger.warning(
                "Calendar %s skipped for business %s: %s",
                error.calendar_id,
                business_id,
                error.reason,
            )

        busy = merge_sorted(
            interval for interval in result.busy
            if interval.start < window_end and interval.end > window_start
        )
        logger.debug("Found %d busy periods across %d calendars", len(busy), len(calendars))

        warning = result.warning
        if result.calendar_errors and warning is None:
            skipped = ", ".join(error.calendar_id for error in result.calendar_errors)
            warning = f"Some calendars could not be checked: {skipped}"

        return BusyTimeResult(busy=busy, calendar_errors=list(result.calendar_errors), warning=warning)

    @staticmethod
    def _degraded(error: ProviderDegradedError) -> BusyTimeResult:
        logger.warning("%s; continuing without busy data", error)
        return BusyTimeResult(warning=error.message)
