"""
Domain models for time ranges, appointments and booking requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import ClassVar, Dict, Mapping, Tuple, Union

import pendulum
from pendulum import Date, DateTime

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_DURATION_MINUTES = 60


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable, half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if not isinstance(self.start, DateTime):
            object.__setattr__(self, "start", pendulum.instance(self.start))
        if not isinstance(self.end, DateTime):
            object.__setattr__(self, "end", pendulum.instance(self.end))
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another. Touching ranges do not overlap."""
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def contains(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies entirely inside this range."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class BusinessHours:
    """
    Configuration for the daily window in which appointments may be booked.
    """
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)
    timezone: str = DEFAULT_TIMEZONE
    closed_weekdays: Tuple[int, ...] = ()  # 0=Monday, 6=Sunday

    def is_open_on(self, day: Date) -> bool:
        """Check if the business takes appointments on a given day."""
        return day.weekday() not in self.closed_weekdays

    def window_for(self, day: Date) -> TimeRange | None:
        """
        Get the business-hours range for a specific day.
        Returns None if the business is closed that day.
        """
        if not self.is_open_on(day):
            return None

        start = pendulum.datetime(
            day.year, day.month, day.day,
            self.start_time.hour, self.start_time.minute,
            tz=self.timezone,
        )
        end = pendulum.datetime(
            day.year, day.month, day.day,
            self.end_time.hour, self.end_time.minute,
            tz=self.timezone,
        )

        return TimeRange(start=start, end=end)


class ServiceKind(str, Enum):
    """Services offered, each with a fixed appointment length."""
    CLEANING = "cleaning"
    REPAIR = "repair"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    LANDSCAPING = "landscaping"

    @property
    def duration_minutes(self) -> int:
        return SERVICE_DURATIONS[self.value]


SERVICE_DURATIONS: Dict[str, int] = {
    "cleaning": 120,
    "repair": 90,
    "plumbing": 60,
    "electrical": 60,
    "landscaping": 180,
}


def service_key(service: Union[str, ServiceKind]) -> str:
    """Normalise a service name or kind to its lower-case key."""
    if isinstance(service, Enum):
        return service.value
    return str(service).strip().lower()


def service_duration(
    service: Union[str, ServiceKind],
    overrides: Mapping[str, int] | None = None,
) -> int:
    """
    Return the appointment length in minutes for a service.

    Unknown services get ``DEFAULT_DURATION_MINUTES``.
    """
    key = service_key(service)
    if overrides and key in overrides:
        return overrides[key]
    return SERVICE_DURATIONS.get(key, DEFAULT_DURATION_MINUTES)


class AppointmentStatus(str, Enum):
    """Lifecycle status of a calendar appointment."""
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BookedAppointment:
    """
    An appointment already stored in the calendar.
    """
    id: str
    time_range: TimeRange
    location: str = ""
    service_kind: str = ""
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    summary: str = ""
    notes: str = ""

    @property
    def is_active(self) -> bool:
        """Cancelled appointments do not block time."""
        return self.status != AppointmentStatus.CANCELLED


@dataclass(frozen=True)
class TimePreference:
    """
    A customer's requested date and wall-clock time, in calendar-local terms.
    """
    date: Date
    time: time

    @classmethod
    def parse(cls, date_str: str, time_str: str) -> "TimePreference":
        """
        Build a preference from ``YYYY-MM-DD`` and ``HH:mm`` strings.

        Raises:
            ValueError: If either string is malformed
        """
        parsed = pendulum.from_format(
            f"{date_str.strip()} {time_str.strip()}", "YYYY-MM-DD HH:mm"
        )
        return cls(date=parsed.date(), time=time(parsed.hour, parsed.minute))

    @classmethod
    def from_datetime(cls, instant: DateTime) -> "TimePreference":
        """Take the local date and time of an instant."""
        return cls(date=instant.date(), time=time(instant.hour, instant.minute))

    def to_datetime(self, timezone: str) -> DateTime:
        """Resolve the preference to an instant in the given timezone."""
        return pendulum.datetime(
            self.date.year, self.date.month, self.date.day,
            self.time.hour, self.time.minute,
            tz=timezone,
        )

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.time.strftime('%H:%M')}"


def default_preference(now: DateTime) -> TimePreference:
    """The preference used when a customer gives none: tomorrow at 09:00."""
    return TimePreference(date=now.add(days=1).date(), time=time(9, 0))


@dataclass(frozen=True)
class RouteFeasibility:
    """
    Result of a route analysis for one candidate address.
    """
    available_windows: Tuple[TimeRange, ...] = ()
    travel_time_minutes: int = 0
    alternatives: Tuple[TimePreference, ...] = ()

    is_degraded: ClassVar[bool] = False


@dataclass(frozen=True)
class RouteUnavailable:
    """
    The route estimator could not produce an estimate.

    Callers treat the whole day as feasible and should log that they did.
    """
    reason: str

    is_degraded: ClassVar[bool] = True
    available_windows: ClassVar[Tuple[TimeRange, ...]] = ()
    alternatives: ClassVar[Tuple[TimePreference, ...]] = ()


RouteAssessment = Union[RouteFeasibility, RouteUnavailable]


@dataclass(frozen=True)
class BookingRequest:
    """
    A customer's request for a service visit.

    ``preferences`` is ordered, most preferred first.
    """
    customer_name: str
    address: str
    service: str
    preferences: Tuple[TimePreference, ...] = ()
    notes: str = ""

    def __post_init__(self):
        missing = [
            field_name
            for field_name, value in (
                ("customer_name", self.customer_name),
                ("address", self.address),
                ("service", self.service),
            )
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        object.__setattr__(self, "service", service_key(self.service))
        object.__setattr__(self, "preferences", tuple(self.preferences))

    def duration_minutes(self, overrides: Mapping[str, int] | None = None) -> int:
        """Appointment length for the requested service."""
        return service_duration(self.service, overrides)

    def summary(self) -> str:
        """Calendar event title, e.g. ``Cleaning - Jane Doe``."""
        return f"{self.service.capitalize()} - {self.customer_name.strip()}"
