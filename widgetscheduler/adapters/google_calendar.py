"""
Google Calendar API client for free/busy lookups and event creation.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import ProviderDegradedError
from ..domain.models import TimeRange
from ..services.calendar import BusyTimeResult, CalendarError, CalendarEvent, CreatedEvent

logger = logging.getLogger(__name__)


class GoogleCalendarClient:
    """
    Client for Google Calendar operations.

    Uses the ``/freeBusy`` endpoint for busy intervals and
    ``/calendars/{id}/events`` to write booked meetings. The caller hands in
    an already valid OAuth access token; this client never authenticates.
    """

    API_ENDPOINT = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        access_token: str,
        timeout_seconds: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Google Calendar client.

        Args:
            access_token: Valid Google OAuth access token with calendar scope
            timeout_seconds: Per-request HTTP timeout
            session: Optional requests session (connection pooling, tests)
        """
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def fetch_busy(
        self,
        calendar_ids: Sequence[str],
        window_start: DateTime,
        window_end: DateTime,
        timezone: str,
    ) -> BusyTimeResult:
        return await asyncio.to_thread(
            self.get_free_busy, list(calendar_ids), window_start, window_end, timezone
        )

    async def create_event(self, calendar_id: str, event: CalendarEvent) -> CreatedEvent:
        return await asyncio.to_thread(self.insert_event, calendar_id, event)

    def get_free_busy(
        self,
        calendar_ids: List[str],
        window_start: DateTime,
        window_end: DateTime,
        timezone: str,
    ) -> BusyTimeResult:
        """
        Get busy times across several calendars.

        Args:
            calendar_ids: Calendar ids (usually email addresses)
            window_start: Start of the time window
            window_end: End of the time window
            timezone: IANA timezone identifier

        Returns:
            BusyTimeResult with busy ranges and per-calendar errors

        Raises:
            ProviderDegradedError: If the API call fails as a whole
        """
        url = f"{self.API_ENDPOINT}/freeBusy"

        payload = {
            "timeMin": window_start.in_timezone("UTC").to_iso8601_string(),
            "timeMax": window_end.in_timezone("UTC").to_iso8601_string(),
            "timeZone": timezone,
            "items": [{"id": calendar_id} for calendar_id in calendar_ids],
        }

        data = self._request("POST", url, json=payload, calendars=",".join(calendar_ids))
        return self._parse_free_busy_response(data, timezone)

    def _parse_free_busy_response(self, response_data: Dict[str, Any], timezone: str) -> BusyTimeResult:
        """
        Parse the freeBusy API response into our domain model.

        Response format:
        {
            "calendars": {
                "owner@example.com": {
                    "busy": [{"start": "...", "end": "..."}],
                    "errors": [{"domain": "global", "reason": "notFound"}]
                }
            }
        }
        """
        result = BusyTimeResult()

        for calendar_id, calendar_data in response_data.get("calendars", {}).items():
            errors = calendar_data.get("errors") or []
            if errors:
                reason = ", ".join(
                    f"{error.get('domain', 'unknown')}: {error.get('reason', 'unknown')}"
                    for error in errors
                )
                result.calendar_errors.append(CalendarError(calendar_id=calendar_id, reason=reason))
                continue

            for item in calendar_data.get("busy", []):
                try:
                    start = self._parse_datetime(item["start"], timezone)
                    end = self._parse_datetime(item["end"], timezone)
                    result.busy.append(TimeRange(start=start, end=end))
                except (KeyError, ValueError) as e:
                    logger.warning("Could not parse busy period in %s: %s", calendar_id, e)
                    continue

        result.busy.sort(key=lambda r: r.start)
        logger.info(
            "Found %d busy periods across %d calendars",
            len(result.busy),
            len(response_data.get("calendars", {})),
        )
        return result

    def insert_event(self, calendar_id: str, event: CalendarEvent) -> CreatedEvent:
        """
        Create an event on a calendar.

        Raises:
            ProviderDegradedError: If the API call fails
        """
        url = f"{self.API_ENDPOINT}/calendars/{quote(calendar_id, safe='')}/events"

        body: Dict[str, Any] = {
            "summary": event.summary,
            "description": event.description,
            "start": {"dateTime": event.start.to_iso8601_string()},
            "end": {"dateTime": event.end.to_iso8601_string()},
        }
        if event.location:
            body["location"] = event.location
        if event.attendee_email:
            body["attendees"] = [{"email": event.attendee_email}]
        if event.create_meet_link:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }

        params = {
            "conferenceDataVersion": 1 if event.create_meet_link else 0,
            "sendUpdates": "all" if event.attendee_email else "none",
        }

        data = self._request("POST", url, json=body, params=params, calendars=calendar_id)
        return CreatedEvent(event_id=data["id"], meet_link=data.get("hangoutLink"))

    def _request(self, method: str, url: str, *, calendars: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                timeout=self.timeout_seconds,
                **kwargs,
            )
            response.raise_for_status()
            return response.json()

        except requests.exceptions.RequestException as e:
            raise ProviderDegradedError(
                f"Google Calendar request failed: {e}", calendars=calendars
            ) from e
        except ValueError as e:
            raise ProviderDegradedError(
                f"Google Calendar returned invalid JSON: {e}", calendars=calendars
            ) from e

    def _parse_datetime(self, datetime_str: str, timezone: str) -> DateTime:
        """
        Parse an RFC 3339 string to a pendulum DateTime in the given timezone.
        """
        dt = pendulum.parse(datetime_str)

        if isinstance(dt, DateTime):
            return dt.in_timezone(timezone)

        raise ValueError(f"Could not parse datetime: {datetime_str}")
