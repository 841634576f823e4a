"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import (
    BookingAttempt,
    BookingPlan,
    BookingService,
    CalendarClientProtocol,
    InvalidTransitionError,
    RouteEstimatorProtocol,
)

__all__ = [
    "BookingAttempt",
    "BookingPlan",
    "BookingService",
    "CalendarClientProtocol",
    "InvalidTransitionError",
    "RouteEstimatorProtocol",
]
