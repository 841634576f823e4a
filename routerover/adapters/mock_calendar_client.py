"""
In-memory calendar store for demos and tests without Microsoft authentication.
"""

import json
import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pendulum
from pendulum import Date

from ..domain.exceptions import CalendarLookupError, PersistConflict, PersistError
from ..domain.models import (
    DEFAULT_TIMEZONE,
    AppointmentStatus,
    BookedAppointment,
    BookingRequest,
    TimeRange,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarClient:
    """
    Calendar store that keeps appointments in memory.

    It can be seeded from ``mock_calendar_data.json`` or a list of
    appointments. Creating an appointment checks for overlaps and inserts
    under one lock, so at most one booking wins a given slot.
    """

    def __init__(
        self,
        appointments: Optional[Iterable[BookedAppointment]] = None,
        data_file: Optional[Path] = None,
        timezone: str = DEFAULT_TIMEZONE,
    ):
        """
        Initialize the mock store.

        Args:
            appointments: Initial appointments; when omitted, ``data_file`` is loaded
            data_file: JSON seed file (defaults to the bundled sample calendar)
            timezone: Timezone for seed entries without an offset
        """
        self.timezone = timezone
        self.reachable = True
        self.fail_writes = False
        self._lock = threading.Lock()

        if appointments is not None:
            self._appointments: List[BookedAppointment] = list(appointments)
        else:
            self._appointments = self._load_calendar_data(data_file or DEFAULT_DATA_FILE)

    def _load_calendar_data(self, data_file: Path) -> List[BookedAppointment]:
        """Load mock calendar data from a JSON file."""
        if not data_file.exists():
            return []

        with open(data_file, "r", encoding="utf-8") as f:
            events = json.load(f)

        appointments: List[BookedAppointment] = []
        for event in events:
            try:
                appointments.append(self._parse_event(event))
            except (KeyError, ValueError) as exc:
                logger.warning("Skipping invalid mock event %s: %s", event.get("id", "?"), exc)

        return appointments

    def _parse_event(self, event: Dict[str, Any]) -> BookedAppointment:
        return BookedAppointment(
            id=event["id"],
            time_range=TimeRange(
                start=pendulum.parse(event["start"], tz=self.timezone),
                end=pendulum.parse(event["end"], tz=self.timezone),
            ),
            location=event.get("location", ""),
            service_kind=event.get("service", ""),
            status=AppointmentStatus(event.get("status", "confirmed")),
            summary=event.get("summary", ""),
            notes=event.get("notes", ""),
        )

    def get_booked_appointments(self, day: Date, timezone: str) -> List[BookedAppointment]:
        """
        Return the appointments overlapping ``day``, ordered by start time.

        Raises:
            CalendarLookupError: If the store has been marked unreachable
        """
        if not self.reachable:
            raise CalendarLookupError("Mock calendar is unreachable")

        day_start = pendulum.datetime(day.year, day.month, day.day, tz=timezone)
        day_range = TimeRange(start=day_start, end=day_start.add(days=1))

        with self._lock:
            matches = [a for a in self._appointments if a.time_range.overlaps(day_range)]

        return sorted(matches, key=lambda a: a.time_range.start)

    def create_appointment(
        self,
        time_range: TimeRange,
        request: BookingRequest,
    ) -> BookedAppointment:
        """
        Store a new appointment for ``request``.

        Raises:
            PersistConflict: If an active appointment overlaps ``time_range``
            PersistError: If writes have been switched off
        """
        if self.fail_writes:
            raise PersistError("Mock calendar rejected the write")

        with self._lock:
            for existing in self._appointments:
                if existing.is_active and existing.time_range.overlaps(time_range):
                    raise PersistConflict(
                        f"Slot {time_range} overlaps appointment {existing.id}"
                    )

            appointment = BookedAppointment(
                id=f"appointment-{uuid.uuid4().hex[:12]}",
                time_range=time_range,
                location=request.address,
                service_kind=request.service,
                status=AppointmentStatus.CONFIRMED,
                summary=request.summary(),
                notes=request.notes,
            )
            self._appointments.append(appointment)

        return appointment

    @property
    def appointments(self) -> List[BookedAppointment]:
        """Snapshot of every stored appointment."""
        with self._lock:
            return list(self._appointments)
