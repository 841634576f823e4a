"""
Narrowing free time down to the windows the route analysis allows.
"""

from typing import Iterable, List

from .intervals import intersect_ranges, merge_ranges
from .models import RouteAssessment, TimeRange


def filter_by_route(
    free_intervals: Iterable[TimeRange],
    assessment: RouteAssessment,
) -> List[TimeRange]:
    """
    Intersect free intervals with the route feasibility windows.

    A candidate slot must lie inside both a free interval and a feasibility
    window. When the route estimate is unavailable or carries no windows,
    the free intervals are returned unchanged; feasibility is advisory.
    """
    free = list(free_intervals)

    if assessment.is_degraded or not assessment.available_windows:
        return free

    windows = merge_ranges(assessment.available_windows)
    return intersect_ranges(free, windows)
