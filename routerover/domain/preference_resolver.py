"""
Choosing a single appointment start from ranked customer preferences.
"""

from typing import Iterable, List, Optional, Sequence

from pendulum import DateTime

from .models import TimePreference, TimeRange


def resolve_slot(
    preferences: Sequence[TimePreference],
    constrained: Iterable[TimeRange],
    duration_minutes: int,
    timezone: str,
) -> Optional[TimePreference]:
    """
    Pick the slot to book.

    The first preference whose ``[start, start + duration)`` fits inside a
    single constrained interval wins. If none fits, fall back to the start of
    the earliest interval long enough for the appointment. Returns None when
    there is no such interval.
    """
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

    candidates: List[TimeRange] = sorted(constrained, key=lambda r: r.start)
    if not candidates:
        return None

    for preference in preferences:
        if _fits(preference, candidates, duration_minutes, timezone):
            return preference

    for interval in candidates:
        start = _ceil_to_minute(interval.start.in_timezone(timezone))
        if start.add(minutes=duration_minutes) <= interval.end:
            return TimePreference.from_datetime(start)

    return None


def _fits(
    preference: TimePreference,
    candidates: Sequence[TimeRange],
    duration_minutes: int,
    timezone: str,
) -> bool:
    start = preference.to_datetime(timezone)
    wanted = TimeRange(start=start, end=start.add(minutes=duration_minutes))
    return any(interval.contains(wanted) for interval in candidates)


def _ceil_to_minute(instant: DateTime) -> DateTime:
    # Preferences have minute resolution
    if instant.second or instant.microsecond:
        return instant.set(second=0, microsecond=0).add(minutes=1)
    return instant
