"""
Microsoft Graph API client for reading and writing the booking calendar.
"""

import logging
from typing import Any, Dict, List, Optional

import pendulum
import requests
from pendulum import Date, DateTime

from ..domain.exceptions import (
    AuthenticationError,
    CalendarLookupError,
    PersistConflict,
    PersistError,
)
from ..domain.models import (
    DEFAULT_TIMEZONE,
    AppointmentStatus,
    BookedAppointment,
    BookingRequest,
    ServiceKind,
    TimeRange,
)

logger = logging.getLogger(__name__)

_SERVICE_NAMES = {kind.value for kind in ServiceKind}


class GraphCalendarClient:
    """
    Calendar store backed by the signed-in user's Outlook calendar.

    Uses ``/me/calendarView`` to read a day's events and ``/me/events`` to
    create appointments.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        access_token: str,
        timezone: str = DEFAULT_TIMEZONE,
        timeout: int = 30,
    ):
        """
        Initialize the Graph API client.

        Args:
            access_token: Valid Microsoft Graph access token
            timezone: IANA timezone new events are written in
            timeout: Seconds to wait for each HTTP response
        """
        self.access_token = access_token
        self.timezone = timezone
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def get_booked_appointments(self, day: Date, timezone: str) -> List[BookedAppointment]:
        """
        Get every appointment on ``day`` in the given timezone.

        Raises:
            CalendarLookupError: If the calendar cannot be read
        """
        start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
        end = start.add(days=1)

        try:
            return self._fetch_appointments(start, end, timezone)
        except requests.exceptions.RequestException as exc:
            raise CalendarLookupError(f"Failed to read calendar from Microsoft Graph: {exc}") from exc

    def create_appointment(
        self,
        time_range: TimeRange,
        request: BookingRequest,
    ) -> BookedAppointment:
        """
        Create an event for ``request`` covering ``time_range``.

        The slot is read again right before the event is created; an overlapping
        event raises PersistConflict.

        Raises:
            PersistConflict: If the slot is no longer free
            PersistError: If the event cannot be created
        """
        timezone = self.timezone

        try:
            existing = self._fetch_appointments(time_range.start, time_range.end, timezone)
        except requests.exceptions.RequestException as exc:
            raise PersistError(f"Could not re-check slot {time_range}: {exc}") from exc

        if any(a.is_active and a.time_range.overlaps(time_range) for a in existing):
            raise PersistConflict(f"Slot {time_range} is already taken")

        payload = {
            "subject": request.summary(),
            "location": {"displayName": request.address},
            "body": {"contentType": "text", "content": request.notes},
            "start": {"dateTime": _local_iso(time_range.start), "timeZone": timezone},
            "end": {"dateTime": _local_iso(time_range.end), "timeZone": timezone},
            "categories": [request.service],
            "showAs": "busy",
        }

        try:
            response = requests.post(
                f"{self.GRAPH_API_ENDPOINT}/me/events",
                headers=self.headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise PersistError(f"Failed to create event in Microsoft Graph: {exc}") from exc

        if response.status_code == 409:
            raise PersistConflict(f"Slot {time_range} is already taken")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise PersistError(f"Failed to create event in Microsoft Graph: {exc}") from exc

        try:
            created = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise PersistError(f"Microsoft Graph returned an unreadable event: {exc}") from exc

        appointment = self._parse_event(created, timezone)
        if appointment is None:
            raise PersistError("Microsoft Graph returned an event without start or end")
        return appointment

    def _fetch_appointments(
        self,
        start: DateTime,
        end: DateTime,
        timezone: str,
    ) -> List[BookedAppointment]:
        url: Optional[str] = f"{self.GRAPH_API_ENDPOINT}/me/calendarView"
        params: Optional[Dict[str, str]] = {
            "startDateTime": start.to_iso8601_string(),
            "endDateTime": end.to_iso8601_string(),
            "$orderby": "start/dateTime",
            "$top": "100",
        }
        headers = dict(self.headers, Prefer=f'outlook.timezone="{timezone}"')
        appointments: List[BookedAppointment] = []

        # Follow @odata.nextLink pages; the link already carries the query
        while url:
            response = requests.get(url, headers=headers, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            for event in data.get("value", []):
                appointment = self._parse_event(event, timezone)
                if appointment is not None:
                    appointments.append(appointment)

            url = data.get("@odata.nextLink")
            params = None

        return appointments

    def _parse_event(self, event: Dict[str, Any], timezone: str) -> Optional[BookedAppointment]:
        """
        Parse a Graph event into our domain model.

        Events shown as "free" do not block time and are skipped, as are
        events that cannot be parsed.
        """
        if event.get("showAs", "busy").lower() == "free":
            return None

        try:
            start = _parse_datetime(event["start"]["dateTime"], event["start"].get("timeZone") or timezone)
            end = _parse_datetime(event["end"]["dateTime"], event["end"].get("timeZone") or timezone)
            time_range = TimeRange(start=start, end=end)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Could not parse calendar event %s: %s", event.get("id", "?"), exc)
            return None

        if event.get("isCancelled"):
            status = AppointmentStatus.CANCELLED
        elif event.get("showAs", "").lower() == "tentative":
            status = AppointmentStatus.TENTATIVE
        else:
            status = AppointmentStatus.CONFIRMED

        subject = event.get("subject") or ""
        return BookedAppointment(
            id=event.get("id", ""),
            time_range=time_range,
            location=(event.get("location") or {}).get("displayName", ""),
            service_kind=_service_from_event(event.get("categories") or [], subject),
            status=status,
            summary=subject,
            notes=event.get("bodyPreview", ""),
        )

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Raises:
            AuthenticationError: If the token is rejected or Graph is unreachable
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = requests.get(url, headers=self.headers, timeout=10)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"Connection test failed: {exc}") from exc


def _parse_datetime(value: str, timezone: str) -> DateTime:
    # Graph sends seven fractional digits and no offset
    parsed = pendulum.parse(value.split(".")[0], tz=timezone)
    if not isinstance(parsed, DateTime):
        raise ValueError(f"Could not parse datetime: {value}")
    return parsed


def _local_iso(instant: DateTime) -> str:
    return instant.strftime("%Y-%m-%dT%H:%M:%S")


def _service_from_event(categories: List[str], subject: str) -> str:
    for category in categories:
        if category.lower() in _SERVICE_NAMES:
            return category.lower()

    prefix = subject.split(" - ", 1)[0].strip().lower()
    return prefix if prefix in _SERVICE_NAMES else ""
