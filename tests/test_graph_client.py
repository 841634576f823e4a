"""
Tests for the Microsoft Graph calendar client, with HTTP calls stubbed out.
"""

from datetime import time
from typing import Any, Dict, List

import pendulum
import pytest
import requests

from routerover.adapters import graph_client
from routerover.adapters.graph_client import GraphCalendarClient
from routerover.domain.exceptions import (
    AuthenticationError,
    CalendarLookupError,
    PersistConflict,
    PersistError,
)
from routerover.domain.models import (
    AppointmentStatus,
    BookingRequest,
    BusinessHours,
    RouteFeasibility,
    TimePreference,
    TimeRange,
)
from routerover.domain.outcomes import BookingStage, Rejected
from routerover.services.booking_service import BookingService

TZ = "America/New_York"
DAY = pendulum.date(2025, 6, 2)


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200):
        self._payload = payload if payload is not None else {}
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


class HtmlResponse(FakeResponse):
    """A success status with a body that is not JSON."""

    def json(self):
        raise requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)


class NoRouteEstimator:
    def estimate_route_feasibility(self, address, booked, day):
        return RouteFeasibility()


def event(event_id: str, start: str, end: str, **extra) -> Dict[str, Any]:
    data = {
        "id": event_id,
        "subject": "Cleaning - Maria Lopez",
        "start": {"dateTime": f"2025-06-02T{start}:00.0000000", "timeZone": TZ},
        "end": {"dateTime": f"2025-06-02T{end}:00.0000000", "timeZone": TZ},
        "location": {"displayName": "42 Elm Street"},
        "showAs": "busy",
    }
    data.update(extra)
    return data


def rng(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"2025-06-02 {start}", tz=TZ),
        end=pendulum.parse(f"2025-06-02 {end}", tz=TZ),
    )


@pytest.fixture
def client() -> GraphCalendarClient:
    return GraphCalendarClient(access_token="token", timezone=TZ)


def test_reads_and_parses_events(monkeypatch, client):
    calls: List[Dict[str, Any]] = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append({"url": url, "headers": headers, "params": params})
        return FakeResponse({"value": [
            event("a", "10:00", "11:00", categories=["Cleaning"]),
            event("b", "12:00", "13:00", showAs="free"),
            event("c", "14:00", "15:00", isCancelled=True, subject="Plumbing - Dan"),
            event("d", "15:00", "16:00", showAs="tentative", subject="Team sync"),
        ]})

    monkeypatch.setattr(graph_client.requests, "get", fake_get)

    appointments = client.get_booked_appointments(DAY, TZ)

    assert [a.id for a in appointments] == ["a", "c", "d"]
    assert appointments[0].time_range == rng("10:00", "11:00")
    assert appointments[0].service_kind == "cleaning"
    assert appointments[0].location == "42 Elm Street"
    assert appointments[1].status is AppointmentStatus.CANCELLED
    assert appointments[1].service_kind == "plumbing"
    assert appointments[2].status is AppointmentStatus.TENTATIVE
    assert appointments[2].service_kind == ""

    assert calls[0]["url"].endswith("/me/calendarView")
    assert calls[0]["headers"]["Prefer"] == f'outlook.timezone="{TZ}"'


def test_follows_next_link(monkeypatch, client):
    pages = [
        FakeResponse({"value": [event("a", "09:00", "10:00")], "@odata.nextLink": "https://next"}),
        FakeResponse({"value": [event("b", "11:00", "12:00")]}),
    ]
    urls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        urls.append((url, params))
        return pages.pop(0)

    monkeypatch.setattr(graph_client.requests, "get", fake_get)

    appointments = client.get_booked_appointments(DAY, TZ)

    assert [a.id for a in appointments] == ["a", "b"]
    assert urls[1] == ("https://next", None)


def test_lookup_failure_raises_calendar_lookup_error(monkeypatch, client):
    def fake_get(*args, **kwargs):
        raise requests.exceptions.ConnectionError("no route to host")

    monkeypatch.setattr(graph_client.requests, "get", fake_get)

    with pytest.raises(CalendarLookupError):
        client.get_booked_appointments(DAY, TZ)


class TestCreateAppointment:

    REQUEST = BookingRequest(
        customer_name="Jane Doe",
        address="7 Harbor Road",
        service="plumbing",
        notes="Kitchen sink",
    )

    def test_posts_event(self, monkeypatch, client):
        posted = {}

        def fake_post(url, headers=None, json=None, timeout=None):
            posted.update(url=url, json=json)
            return FakeResponse(
                event("new", "09:00", "10:00", subject=json["subject"], categories=json["categories"]),
                status_code=201,
            )

        monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse({"value": []}))
        monkeypatch.setattr(graph_client.requests, "post", fake_post)

        appointment = client.create_appointment(rng("09:00", "10:00"), self.REQUEST)

        assert posted["url"].endswith("/me/events")
        assert posted["json"]["subject"] == "Plumbing - Jane Doe"
        assert posted["json"]["start"] == {"dateTime": "2025-06-02T09:00:00", "timeZone": TZ}
        assert posted["json"]["location"] == {"displayName": "7 Harbor Road"}
        assert appointment.id == "new"
        assert appointment.service_kind == "plumbing"

    def test_recheck_finds_overlap(self, monkeypatch, client):
        monkeypatch.setattr(
            graph_client.requests, "get",
            lambda *a, **k: FakeResponse({"value": [event("x", "09:30", "10:30")]}),
        )

        with pytest.raises(PersistConflict):
            client.create_appointment(rng("09:00", "10:00"), self.REQUEST)

    def test_http_409_is_a_conflict(self, monkeypatch, client):
        monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse({"value": []}))
        monkeypatch.setattr(graph_client.requests, "post", lambda *a, **k: FakeResponse(status_code=409))

        with pytest.raises(PersistConflict):
            client.create_appointment(rng("09:00", "10:00"), self.REQUEST)

    def test_server_error_is_a_persist_error(self, monkeypatch, client):
        monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse({"value": []}))
        monkeypatch.setattr(graph_client.requests, "post", lambda *a, **k: FakeResponse(status_code=500))

        with pytest.raises(PersistError):
            client.create_appointment(rng("09:00", "10:00"), self.REQUEST)

    def test_unreadable_created_event_is_a_persist_error(self, monkeypatch, client):
        monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse({"value": []}))
        monkeypatch.setattr(graph_client.requests, "post", lambda *a, **k: HtmlResponse(status_code=201))

        with pytest.raises(PersistError, match="unreadable"):
            client.create_appointment(rng("09:00", "10:00"), self.REQUEST)

    def test_unreadable_created_event_rejects_the_booking(self, monkeypatch, client):
        monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse({"value": []}))
        monkeypatch.setattr(graph_client.requests, "post", lambda *a, **k: HtmlResponse(status_code=201))
        service = BookingService(
            calendar_client=client,
            route_estimator=NoRouteEstimator(),
            business_hours=BusinessHours(start_time=time(9, 0), end_time=time(17, 0), timezone=TZ),
        )
        request = BookingRequest(
            customer_name="Jane Doe",
            address="7 Harbor Road",
            service="plumbing",
            preferences=[TimePreference.parse("2025-06-02", "09:00")],
        )

        outcome = service.attempt_booking(request)

        assert isinstance(outcome, Rejected)
        assert outcome.stage is BookingStage.PERSISTED
        assert isinstance(outcome.error, PersistError)
        assert not outcome.retryable


def test_connection_failure_is_an_authentication_error(monkeypatch, client):
    monkeypatch.setattr(graph_client.requests, "get", lambda *a, **k: FakeResponse(status_code=401))

    with pytest.raises(AuthenticationError):
        client.test_connection()
