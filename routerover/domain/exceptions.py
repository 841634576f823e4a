"""
Domain-specific exception hierarchy for the RouteRover scheduling engine.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    retryable = False


class CalendarLookupError(SchedulingError, LookupError):
    """Raised when the calendar store cannot be read."""

    retryable = True


class PersistConflict(SchedulingError):
    """Raised when the chosen slot was taken before it could be stored."""

    retryable = True


class PersistError(SchedulingError):
    """Raised when the calendar store fails to create an appointment."""


class RouteEstimationError(SchedulingError):
    """Raised when travel times or feasibility windows cannot be computed."""


class AuthenticationError(SchedulingError):
    """Raised when authentication or token handling fails."""


class IntentExtractionError(SchedulingError):
    """Raised when a hosted model cannot turn a message into an intent."""
