from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from config import get_settings
from periods import (
    END_OF_DAY,
    DateRange,
    month_range,
    resolve_date_range,
    to_local_naive,
)


def _end(year: int, month: int, day: int) -> datetime:
    return datetime.combine(datetime(year, month, day).date(), END_OF_DAY)


def test_month_range_handles_february() -> None:
    leap = month_range(2024, 2)
    common = month_range(2025, 2)
    assert leap.start == datetime(2024, 2, 1)
    assert leap.end == _end(2024, 2, 29)
    assert common.end == _end(2025, 2, 28)


def test_month_range_december_does_not_spill_into_next_year() -> None:
    dec = month_range(2025, 12)
    assert dec.start == datetime(2025, 12, 1)
    assert dec.end == _end(2025, 12, 31)


def test_current_and_last_month() -> None:
    now = datetime(2025, 6, 15, 9, 30)
    current = resolve_date_range("current-month", now=now)
    assert current == DateRange(datetime(2025, 6, 1), _end(2025, 6, 30))

    january = datetime(2025, 1, 10)
    last = resolve_date_range("last-month", now=january)
    assert last == DateRange(datetime(2024, 12, 1), _end(2024, 12, 31))


def test_rolling_month_windows_cross_year_boundary() -> None:
    now = datetime(2025, 3, 10)
    three = resolve_date_range("last-3-months", now=now)
    six = resolve_date_range("last-6-months", now=now)
    assert three == DateRange(datetime(2025, 1, 1), _end(2025, 3, 31))
    assert six == DateRange(datetime(2024, 10, 1), _end(2025, 3, 31))


def test_year_windows() -> None:
    now = datetime(2025, 8, 20, 14, 0)
    assert resolve_date_range("current-year", now=now) == DateRange(
        datetime(2025, 1, 1), _end(2025, 12, 31)
    )
    assert resolve_date_range("year-to-date", now=now) == DateRange(
        datetime(2025, 1, 1), now
    )


def test_last_week_and_upcoming_are_relative_to_now() -> None:
    now = datetime(2025, 6, 1)
    assert resolve_date_range("last-week", now=now) == DateRange(
        now - timedelta(days=7), now
    )
    upcoming = resolve_date_range("upcoming", now=now)
    assert upcoming == DateRange(datetime(2025, 6, 1), datetime(2025, 7, 1))


def test_explicit_bounds_win_over_tag() -> None:
    result = resolve_date_range(
        "current-year", "2025-01-01", "2025-01-31", now=datetime(2025, 6, 1)
    )
    assert result == DateRange(datetime(2025, 1, 1), _end(2025, 1, 31))


def test_explicit_bounds_must_be_ordered() -> None:
    with pytest.raises(ValueError):
        resolve_date_range(None, "2025-02-01", "2025-01-01")


def test_unparseable_bound_is_rejected() -> None:
    with pytest.raises(ValueError):
        resolve_date_range(None, "yesterday", "2025-01-01")


def test_unknown_or_missing_tag_means_no_filter() -> None:
    assert resolve_date_range("next-decade", now=datetime(2025, 1, 1)) is None
    assert resolve_date_range(None) is None
    # a lone bound is not a range
    assert resolve_date_range(None, "2025-01-01", None) is None


def test_range_contains_is_inclusive() -> None:
    window = month_range(2025, 1)
    assert window.contains(datetime(2025, 1, 1))
    assert window.contains(_end(2025, 1, 31))
    assert not window.contains(datetime(2025, 2, 1))


def test_offset_bounds_are_converted_to_local_time() -> None:
    tz = ZoneInfo(get_settings().timezone)
    start = datetime(2025, 6, 1, 6, 0, tzinfo=timezone.utc)
    resolved = resolve_date_range(None, "2025-06-01T06:00:00Z", "2025-06-30")
    assert resolved.start == start.astimezone(tz).replace(tzinfo=None)


def test_to_local_naive_leaves_naive_values_alone() -> None:
    naive = datetime(2025, 6, 1, 6, 0)
    assert to_local_naive(naive) is naive

    tz = ZoneInfo(get_settings().timezone)
    aware = datetime(2025, 1, 15, 23, 30, tzinfo=timezone.utc)
    converted = to_local_naive(aware)
    assert converted.tzinfo is None
    assert converted == aware.astimezone(tz).replace(tzinfo=None)
