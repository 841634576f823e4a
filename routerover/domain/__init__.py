"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityCalculator, compute_availability
from .exceptions import (
    AuthenticationError,
    CalendarLookupError,
    IntentExtractionError,
    PersistConflict,
    PersistError,
    RouteEstimationError,
    SchedulingError,
)
from .intervals import intersect_ranges, merge_ranges, subtract, subtract_all
from .models import (
    AppointmentStatus,
    BookedAppointment,
    BookingRequest,
    BusinessHours,
    RouteAssessment,
    RouteFeasibility,
    RouteUnavailable,
    ServiceKind,
    TimePreference,
    TimeRange,
    default_preference,
    service_duration,
)
from .outcomes import Booked, BookingStage, NoSlotAvailable, Rejected, SchedulingOutcome
from .preference_resolver import resolve_slot
from .route_filter import filter_by_route

__all__ = [
    "AppointmentStatus",
    "AuthenticationError",
    "AvailabilityCalculator",
    "BookedAppointment",
    "Booked",
    "BookingRequest",
    "BookingStage",
    "BusinessHours",
    "CalendarLookupError",
    "IntentExtractionError",
    "NoSlotAvailable",
    "PersistConflict",
    "PersistError",
    "Rejected",
    "RouteAssessment",
    "RouteEstimationError",
    "RouteFeasibility",
    "RouteUnavailable",
    "SchedulingError",
    "SchedulingOutcome",
    "ServiceKind",
    "TimePreference",
    "TimeRange",
    "compute_availability",
    "default_preference",
    "filter_by_route",
    "intersect_ranges",
    "merge_ranges",
    "resolve_slot",
    "service_duration",
    "subtract",
    "subtract_all",
]
