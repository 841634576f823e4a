"""
Results of a booking attempt.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from .exceptions import SchedulingError
from .models import BookedAppointment, TimePreference


class BookingStage(str, Enum):
    """Stages a booking attempt moves through, in order."""
    REQUESTED = "requested"
    AVAILABILITY_COMPUTED = "availability_computed"
    ROUTE_FILTERED = "route_filtered"
    SLOT_RESOLVED = "slot_resolved"
    PERSISTED = "persisted"
    NO_SLOT = "no_slot"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Booked:
    """The appointment was stored in the calendar."""
    appointment: BookedAppointment
    route_degraded: bool = False


@dataclass(frozen=True)
class NoSlotAvailable:
    """Nothing could be booked; ``alternatives`` come from the route analysis."""
    alternatives: Tuple[TimePreference, ...] = ()
    route_degraded: bool = False


@dataclass(frozen=True)
class Rejected:
    """A collaborator failed; ``stage`` is the stage that could not complete."""
    stage: BookingStage
    error: SchedulingError

    @property
    def retryable(self) -> bool:
        return self.error.retryable

    @property
    def message(self) -> str:
        return str(self.error)


SchedulingOutcome = Union[Booked, NoSlotAvailable, Rejected]
