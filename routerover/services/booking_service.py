"""
Application service for booking appointments.

The service coordinates the calendar and route-estimator adapters and
delegates every scheduling decision to the pure domain functions. Both
collaborators are described by simple protocols so the real adapters and
in-memory stand-ins are interchangeable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Protocol, Sequence

from pendulum import Date

from ..domain.availability import AvailabilityCalculator
from ..domain.exceptions import (
    CalendarLookupError,
    PersistConflict,
    PersistError,
    SchedulingError,
)
from ..domain.models import (
    BookedAppointment,
    BookingRequest,
    BusinessHours,
    RouteAssessment,
    RouteUnavailable,
    TimeRange,
)
from ..domain.outcomes import (
    Booked,
    BookingStage,
    NoSlotAvailable,
    Rejected,
    SchedulingOutcome,
)
from ..domain.preference_resolver import resolve_slot
from ..domain.route_filter import filter_by_route

logger = logging.getLogger(__name__)


class CalendarClientProtocol(Protocol):
    """Protocol describing the calendar store behaviour needed by the service."""

    def get_booked_appointments(self, day: Date, timezone: str) -> List[BookedAppointment]:
        """Return the day's appointments. Raises CalendarLookupError."""

    def create_appointment(
        self,
        time_range: TimeRange,
        request: BookingRequest,
    ) -> BookedAppointment:
        """Store one appointment. Raises PersistConflict or PersistError."""


class RouteEstimatorProtocol(Protocol):
    """Protocol describing the route analysis needed by the service."""

    def estimate_route_feasibility(
        self,
        address: str,
        booked: Sequence[BookedAppointment],
        day: Date,
    ) -> RouteAssessment:
        """Return feasibility windows for visiting ``address`` on ``day``."""


class InvalidTransitionError(Exception):
    """Raised when a booking attempt skips or repeats a stage."""


_NEXT_STAGES = {
    BookingStage.REQUESTED: (BookingStage.AVAILABILITY_COMPUTED,),
    BookingStage.AVAILABILITY_COMPUTED: (BookingStage.ROUTE_FILTERED,),
    BookingStage.ROUTE_FILTERED: (BookingStage.SLOT_RESOLVED,),
    BookingStage.SLOT_RESOLVED: (BookingStage.PERSISTED, BookingStage.NO_SLOT),
}

_FINAL_STAGES = (BookingStage.PERSISTED, BookingStage.NO_SLOT, BookingStage.REJECTED)


class BookingAttempt:
    """
    Tracks one booking attempt through its stages.

    Stages only move forward, one step at a time; any stage may jump to
    REJECTED. A resolved slot ends in PERSISTED, or in NO_SLOT when nothing
    fits. PERSISTED, NO_SLOT and REJECTED are final.
    """

    def __init__(self) -> None:
        self.stage = BookingStage.REQUESTED
        self.history: List[BookingStage] = [BookingStage.REQUESTED]

    @property
    def is_finished(self) -> bool:
        return self.stage in _FINAL_STAGES

    def advance(self, to_stage: BookingStage) -> None:
        if self.is_finished:
            raise InvalidTransitionError(
                f"Attempt already finished in stage '{self.stage.value}'"
            )
        if to_stage is not BookingStage.REJECTED and to_stage not in _NEXT_STAGES.get(self.stage, ()):
            raise InvalidTransitionError(
                f"Cannot move from '{self.stage.value}' to '{to_stage.value}'"
            )
        self.stage = to_stage
        self.history.append(to_stage)

    def reject(self, failed_stage: BookingStage, error: SchedulingError) -> Rejected:
        self.advance(BookingStage.REJECTED)
        return Rejected(stage=failed_stage, error=error)


@dataclass(frozen=True)
class BookingPlan:
    """Everything computed for a request before anything is stored."""
    free_intervals: List[TimeRange]
    constrained_intervals: List[TimeRange]
    assessment: RouteAssessment
    slot: Optional[TimeRange]


class BookingService:
    """
    Orchestrates calendar reads, route analysis, slot selection and persistence.
    """

    def __init__(
        self,
        calendar_client: CalendarClientProtocol,
        route_estimator: RouteEstimatorProtocol,
        business_hours: BusinessHours,
        service_durations: Mapping[str, int] | None = None,
    ) -> None:
        self._calendar_client = calendar_client
        self._route_estimator = route_estimator
        self._business_hours = business_hours
        self._service_durations = dict(service_durations or {})
        self._calculator = AvailabilityCalculator(business_hours)

    @property
    def timezone(self) -> str:
        return self._business_hours.timezone

    def list_booked(self, day: Date) -> List[BookedAppointment]:
        """Read the day's appointments from the calendar."""
        return self._calendar_client.get_booked_appointments(day, self.timezone)

    def list_availability(self, day: Date) -> List[TimeRange]:
        """Free intervals for ``day``, without any route constraint."""
        return self._calculator.free_intervals(day, self.list_booked(day))

    def plan_booking(self, request: BookingRequest, day: Date | None = None) -> BookingPlan:
        """
        Compute the slot that ``attempt_booking`` would store, without storing it.

        Raises:
            CalendarLookupError: If the calendar cannot be read
        """
        day = self._resolve_day(request, day)
        return self._plan(request, day, self.list_booked(day))

    def attempt_booking(
        self,
        request: BookingRequest,
        day: Date | None = None,
        attempt: BookingAttempt | None = None,
    ) -> SchedulingOutcome:
        """
        Run one booking attempt end to end.

        ``day`` defaults to the date of the first preference. Pass ``attempt``
        to follow the stages the run goes through.
        """
        day = self._resolve_day(request, day)
        attempt = attempt or BookingAttempt()

        try:
            booked = self.list_booked(day)
        except CalendarLookupError as exc:
            logger.warning("Calendar lookup failed for %s: %s", day.isoformat(), exc)
            return attempt.reject(BookingStage.AVAILABILITY_COMPUTED, exc)

        plan = self._plan(request, day, booked, attempt)

        if plan.slot is None:
            logger.info(
                "No slot for %s on %s; offering %d alternative(s)",
                request.customer_name,
                day.isoformat(),
                len(plan.assessment.alternatives),
            )
            attempt.advance(BookingStage.NO_SLOT)
            return NoSlotAvailable(
                alternatives=tuple(plan.assessment.alternatives),
                route_degraded=plan.assessment.is_degraded,
            )

        try:
            appointment = self._calendar_client.create_appointment(plan.slot, request)
        except PersistConflict as exc:
            logger.warning("Slot %s was taken before it could be booked: %s", plan.slot, exc)
            return attempt.reject(BookingStage.PERSISTED, exc)
        except PersistError as exc:
            logger.warning("Could not store appointment for %s: %s", plan.slot, exc)
            return attempt.reject(BookingStage.PERSISTED, exc)

        attempt.advance(BookingStage.PERSISTED)
        logger.info(
            "Booked %s for %s at %s (%s)",
            request.service,
            request.customer_name,
            plan.slot,
            appointment.id,
        )
        return Booked(appointment=appointment, route_degraded=plan.assessment.is_degraded)

    def assess_route(
        self,
        address: str,
        booked: Sequence[BookedAppointment],
        day: Date,
    ) -> RouteAssessment:
        """
        Ask the route estimator for feasibility windows.

        Any failure becomes ``RouteUnavailable`` so the attempt can go on
        without a route constraint.
        """
        try:
            return self._route_estimator.estimate_route_feasibility(address, booked, day)
        except Exception as exc:
            logger.warning("Route estimator failed for '%s': %s", address, exc)
            return RouteUnavailable(reason=str(exc) or exc.__class__.__name__)

    def _plan(
        self,
        request: BookingRequest,
        day: Date,
        booked: Sequence[BookedAppointment],
        attempt: BookingAttempt | None = None,
    ) -> BookingPlan:
        attempt = attempt or BookingAttempt()
        duration = request.duration_minutes(self._service_durations)

        free = self._calculator.free_intervals(day, booked)
        attempt.advance(BookingStage.AVAILABILITY_COMPUTED)

        assessment = self.assess_route(request.address, booked, day)
        if assessment.is_degraded:
            logger.warning(
                "Route feasibility unavailable (%s); using unfiltered availability",
                assessment.reason,
            )
        constrained = filter_by_route(free, assessment)
        attempt.advance(BookingStage.ROUTE_FILTERED)

        choice = resolve_slot(request.preferences, constrained, duration, self.timezone)
        attempt.advance(BookingStage.SLOT_RESOLVED)

        slot = None
        if choice is not None:
            start = choice.to_datetime(self.timezone)
            slot = TimeRange(start=start, end=start.add(minutes=duration))

        return BookingPlan(
            free_intervals=free,
            constrained_intervals=constrained,
            assessment=assessment,
            slot=slot,
        )

    @staticmethod
    def _resolve_day(request: BookingRequest, day: Date | None) -> Date:
        if day is not None:
            return day
        if request.preferences:
            return request.preferences[0].date
        raise ValueError("A day is required when the request has no time preferences")
