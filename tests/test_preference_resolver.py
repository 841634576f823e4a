"""
Tests for picking a slot from ranked preferences.
"""

from datetime import time

import pendulum
import pytest

from routerover.domain.models import TimePreference, TimeRange
from routerover.domain.preference_resolver import resolve_slot

TZ = "America/New_York"
DAY = "2025-06-02"


def rng(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(f"{DAY} {start}", tz=TZ),
        end=pendulum.parse(f"{DAY} {end}", tz=TZ),
    )


def pref(clock: str, day: str = DAY) -> TimePreference:
    return TimePreference.parse(day, clock)


AVAILABLE = [rng("09:00", "10:00"), rng("11:00", "17:00")]


def test_first_fitting_preference_wins():
    """10:30-11:30 spans the booked gap, so the 09:00 preference is chosen."""
    slot = resolve_slot([pref("10:30"), pref("09:00")], AVAILABLE, 60, TZ)

    assert slot == pref("09:00")


def test_preference_order_matters():
    slot = resolve_slot([pref("13:00"), pref("09:00")], AVAILABLE, 60, TZ)

    assert slot == pref("13:00")


def test_falls_back_to_earliest_interval():
    slot = resolve_slot([pref("09:00"), pref("18:00")], [rng("14:00", "17:00")], 60, TZ)

    assert slot == pref("14:00")


def test_fallback_with_no_preferences():
    assert resolve_slot([], AVAILABLE, 60, TZ) == pref("09:00")


def test_fallback_skips_intervals_that_are_too_short():
    slot = resolve_slot([], [rng("09:00", "09:30"), rng("13:00", "15:00")], 120, TZ)

    assert slot == pref("13:00")


def test_nothing_long_enough_returns_none():
    assert resolve_slot([pref("09:00")], [rng("09:00", "09:30")], 60, TZ) is None


def test_empty_available_set_returns_none():
    assert resolve_slot([pref("09:00")], [], 60, TZ) is None


class TestBoundaries:
    """Intervals are half-open: a slot may end exactly where an interval ends."""

    def test_slot_ending_at_interval_end_fits(self):
        assert resolve_slot([pref("16:00")], [rng("11:00", "17:00")], 60, TZ) == pref("16:00")

    def test_slot_starting_at_interval_end_does_not_fit(self):
        slot = resolve_slot([pref("10:00")], [rng("09:00", "10:00"), rng("12:00", "13:00")], 60, TZ)

        assert slot == pref("09:00")

    def test_slot_one_minute_too_long_does_not_fit(self):
        slot = resolve_slot([pref("16:01")], [rng("11:00", "17:00")], 60, TZ)

        assert slot == pref("11:00")


def test_preference_on_another_day_does_not_match():
    slot = resolve_slot([pref("09:00", day="2025-06-03")], AVAILABLE, 60, TZ)

    assert slot == TimePreference(date=pendulum.date(2025, 6, 2), time=time(9, 0))


def test_unsorted_intervals_fall_back_to_earliest():
    assert resolve_slot([], [rng("15:00", "17:00"), rng("11:00", "12:00")], 60, TZ) == pref("11:00")


def test_non_positive_duration_is_rejected():
    with pytest.raises(ValueError):
        resolve_slot([pref("09:00")], AVAILABLE, 0, TZ)
