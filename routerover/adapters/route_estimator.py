"""
Route feasibility estimate for a new appointment address.
"""

import logging
from typing import List, Sequence

from pendulum import Date

from ..domain.exceptions import RouteEstimationError
from ..domain.intervals import subtract_all
from ..domain.models import (
    BookedAppointment,
    BusinessHours,
    RouteFeasibility,
    TimePreference,
    TimeRange,
)
from .travel_time import TravelTimeSource

logger = logging.getLogger(__name__)


class BufferedRouteEstimator:
    """
    Finds the windows in which a technician can reach a new address.

    Algorithm:
    1. Start from the day's business hours
    2. If an office is configured, block the drive from the office at opening
    3. Around every active appointment, block the drive between its location
       and the new address plus a safety buffer, on both sides
    4. What remains are the feasibility windows; their starts double as
       alternatives to offer the customer
    """

    def __init__(
        self,
        business_hours: BusinessHours,
        travel_source: TravelTimeSource,
        office_location: str = "",
        buffer_minutes: int = 15,
        max_alternatives: int = 5,
    ):
        self.business_hours = business_hours
        self.travel_source = travel_source
        self.office_location = office_location
        self.buffer_minutes = buffer_minutes
        self.max_alternatives = max_alternatives

    def estimate_route_feasibility(
        self,
        address: str,
        booked: Sequence[BookedAppointment],
        day: Date,
    ) -> RouteFeasibility:
        """
        Estimate when ``address`` can be visited on ``day``.

        Raises:
            RouteEstimationError: If the address is empty or travel times fail
        """
        if not address or not address.strip():
            raise RouteEstimationError("Cannot estimate a route without an address")

        window = self.business_hours.window_for(day)
        if window is None:
            return RouteFeasibility()

        blocks: List[TimeRange] = []
        legs: List[int] = []

        if self.office_location:
            office_leg = self.travel_source.minutes_between(self.office_location, address)
            legs.append(office_leg)
            if office_leg > 0:
                blocks.append(TimeRange(start=window.start, end=window.start.add(minutes=office_leg)))

        for appointment in booked:
            if not appointment.is_active or not appointment.time_range.overlaps(window):
                continue

            leg = 0
            if appointment.location:
                leg = self.travel_source.minutes_between(appointment.location, address)
            legs.append(leg)

            padding = leg + self.buffer_minutes
            blocks.append(
                TimeRange(
                    start=appointment.time_range.start.subtract(minutes=padding),
                    end=appointment.time_range.end.add(minutes=padding),
                )
            )

        windows = subtract_all(window, blocks)
        alternatives = tuple(
            TimePreference.from_datetime(w.start.in_timezone(self.business_hours.timezone))
            for w in windows[: self.max_alternatives]
        )

        logger.debug(
            "Route for '%s' on %s: %d window(s), longest leg %d min",
            address,
            day.isoformat(),
            len(windows),
            max(legs, default=0),
        )

        return RouteFeasibility(
            available_windows=tuple(windows),
            travel_time_minutes=max(legs, default=0),
            alternatives=alternatives,
        )
