"""
Interval algebra over ``TimeRange`` values.

Pure functions only: every operation returns a fresh list and never
modifies its inputs.
"""

from typing import Iterable, List

from .models import TimeRange


def subtract(base: TimeRange, cut: TimeRange) -> List[TimeRange]:
    """
    Remove the overlap of ``cut`` from ``base``.

    Returns zero, one or two ranges (the piece before ``cut`` and the piece
    after it, in that order).

    Example:
    Base: 09:00 - 17:00
    Cut: 10:00 - 11:00
    Result: [09:00-10:00, 11:00-17:00]
    """
    if not base.overlaps(cut):
        return [base]

    pieces: List[TimeRange] = []

    if base.start < cut.start:
        pieces.append(TimeRange(start=base.start, end=cut.start))

    if cut.end < base.end:
        pieces.append(TimeRange(start=cut.end, end=base.end))

    return pieces


def subtract_all(base: TimeRange, cuts: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Subtract every range in ``cuts`` from ``base``.

    This is a fold: the free set starts as ``[base]`` and each cut maps it to
    a new list. The result is sorted by start time, so the order of ``cuts``
    does not matter.
    """
    free: List[TimeRange] = [base]

    for cut in cuts:
        free = [piece for current in free for piece in subtract(current, cut)]
        if not free:
            break

    return sorted(free, key=lambda r: r.start)


def merge_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or adjacent time ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]
    """
    sorted_ranges = sorted(ranges, key=lambda r: r.start)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        # Overlapping or touching (no gap)
        if current.start <= last.end:
            merged[-1] = TimeRange(start=last.start, end=max(last.end, current.end))
        else:
            merged.append(current)

    return merged


def intersect_ranges(
    left: Iterable[TimeRange],
    right: Iterable[TimeRange],
) -> List[TimeRange]:
    """
    Calculate the intersection of two lists of time ranges.

    Returns all overlapping periods between any range in ``left`` and any
    range in ``right``, merged and sorted by start time.
    """
    right_list = list(right)
    intersections: List[TimeRange] = []

    for range1 in left:
        for range2 in right_list:
            intersection = range1.intersect(range2)
            if intersection:
                intersections.append(intersection)

    return merge_ranges(intersections)


def total_minutes(ranges: Iterable[TimeRange]) -> int:
    """Sum of the durations of ``ranges`` in minutes."""
    return sum(r.duration_minutes() for r in ranges)
