"""
Core business logic for calculating a day's free time.

Pure domain logic without any external dependencies (no API calls,
no database, no I/O).
"""

from typing import Iterable, List

from pendulum import Date

from .intervals import merge_ranges, subtract_all
from .models import BookedAppointment, BusinessHours, TimeRange


def compute_availability(
    day: Date,
    business_hours: BusinessHours,
    booked: Iterable[BookedAppointment],
) -> List[TimeRange]:
    """
    Derive the free intervals of ``day`` from its booked appointments.

    Algorithm:
    1. Build the business-hours window for the day
    2. Keep the active appointments that overlap the window
    3. Subtract them from the window, one at a time
    4. Return what remains, ordered by start time

    Returns an empty list on days the business is closed.
    """
    window = business_hours.window_for(day)
    if window is None:
        return []

    return subtract_all(window, _blocking_ranges(window, booked))


def _blocking_ranges(
    window: TimeRange,
    booked: Iterable[BookedAppointment],
) -> List[TimeRange]:
    return [
        appointment.time_range
        for appointment in booked
        if appointment.is_active and appointment.time_range.overlaps(window)
    ]


class AvailabilityCalculator:
    """
    Calculates free time for a day based on booked appointments and
    business hours.
    """

    def __init__(self, business_hours: BusinessHours):
        self.business_hours = business_hours

    def free_intervals(
        self,
        day: Date,
        booked: Iterable[BookedAppointment],
    ) -> List[TimeRange]:
        """Free intervals within business hours, ascending by start."""
        return compute_availability(day, self.business_hours, booked)

    def booked_within_hours(
        self,
        day: Date,
        booked: Iterable[BookedAppointment],
    ) -> List[TimeRange]:
        """
        Booked time clipped to business hours and merged.

        Together with ``free_intervals`` this covers the whole window exactly.
        """
        window = self.business_hours.window_for(day)
        if window is None:
            return []

        clipped = [
            r.intersect(window) for r in _blocking_ranges(window, booked)
        ]
        return merge_ranges(r for r in clipped if r is not None)
