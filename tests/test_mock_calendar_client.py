"""
Tests for the in-memory calendar store.
"""

import threading

import pendulum
import pytest

from routerover.adapters.mock_calendar_client import MockCalendarClient
from routerover.domain.exceptions import CalendarLookupError, PersistConflict, PersistError
from routerover.domain.models import AppointmentStatus, BookingRequest, TimeRange

TZ = "America/New_York"


def rng(start: str, end: str, day: str = "2025-06-02") -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"{day} {start}", tz=TZ),
        end=pendulum.parse(f"{day} {end}", tz=TZ),
    )


REQUEST = BookingRequest(customer_name="Jane Doe", address="42 Elm Street", service="plumbing", notes="Leaky tap")


def test_sample_calendar_is_loaded():
    client = MockCalendarClient(timezone=TZ)

    appointments = client.get_booked_appointments(pendulum.date(2025, 6, 2), TZ)

    assert [a.id for a in appointments] == ["evt-1001", "evt-1002"]
    assert appointments[0].time_range == rng("10:00", "12:00")
    assert appointments[0].service_kind == "cleaning"


def test_cancelled_entries_are_returned_with_their_status():
    client = MockCalendarClient(timezone=TZ)

    appointments = client.get_booked_appointments(pendulum.date(2025, 6, 3), TZ)

    statuses = {a.id: a.status for a in appointments}
    assert statuses["evt-1004"] is AppointmentStatus.CANCELLED


def test_invalid_seed_entries_are_skipped(tmp_path):
    data_file = tmp_path / "calendar.json"
    data_file.write_text(
        '[{"id": "ok", "start": "2025-06-02T09:00:00", "end": "2025-06-02T10:00:00"},'
        ' {"id": "backwards", "start": "2025-06-02T11:00:00", "end": "2025-06-02T10:00:00"},'
        ' {"id": "no-end", "start": "2025-06-02T11:00:00"}]',
        encoding="utf-8",
    )

    client = MockCalendarClient(data_file=data_file, timezone=TZ)

    assert [a.id for a in client.appointments] == ["ok"]


def test_create_appointment_stores_request_details():
    client = MockCalendarClient(appointments=[], timezone=TZ)

    appointment = client.create_appointment(rng("09:00", "10:00"), REQUEST)

    assert appointment.id.startswith("appointment-")
    assert appointment.summary == "Plumbing - Jane Doe"
    assert appointment.location == "42 Elm Street"
    assert appointment.notes == "Leaky tap"
    assert client.get_booked_appointments(pendulum.date(2025, 6, 2), TZ) == [appointment]


def test_overlapping_create_is_a_conflict():
    client = MockCalendarClient(timezone=TZ)

    with pytest.raises(PersistConflict):
        client.create_appointment(rng("11:00", "12:30"), REQUEST)


def test_slot_of_a_cancelled_appointment_can_be_reused():
    client = MockCalendarClient(timezone=TZ)

    appointment = client.create_appointment(rng("13:00", "14:00", day="2025-06-03"), REQUEST)

    assert appointment.status is AppointmentStatus.CONFIRMED


def test_concurrent_creates_for_one_slot_book_once():
    client = MockCalendarClient(appointments=[], timezone=TZ)
    results = []

    def book():
        try:
            results.append(client.create_appointment(rng("15:00", "16:00"), REQUEST))
        except PersistConflict as exc:
            results.append(exc)

    threads = [threading.Thread(target=book) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(client.appointments) == 1
    assert sum(isinstance(r, PersistConflict) for r in results) == 7


def test_failure_switches():
    client = MockCalendarClient(appointments=[], timezone=TZ)

    client.reachable = False
    with pytest.raises(CalendarLookupError):
        client.get_booked_appointments(pendulum.date(2025, 6, 2), TZ)

    client.fail_writes = True
    with pytest.raises(PersistError):
        client.create_appointment(rng("09:00", "10:00"), REQUEST)
