from datetime import datetime

import pytest

from models import RecurringInterval
from recurrence import (
    advance_due_date,
    next_occurrence_after,
    normalize_interval,
    parse_interval,
)


@pytest.mark.parametrize(
    "interval, expected",
    [
        ("daily", datetime(2025, 3, 11, 8, 0)),
        ("weekly", datetime(2025, 3, 17, 8, 0)),
        ("fortnightly", datetime(2025, 3, 24, 8, 0)),
        ("biweekly", datetime(2025, 3, 24, 8, 0)),
        ("monthly", datetime(2025, 4, 10, 8, 0)),
        ("quarterly", datetime(2025, 6, 10, 8, 0)),
        ("yearly", datetime(2026, 3, 10, 8, 0)),
        ("annual", datetime(2026, 3, 10, 8, 0)),
    ],
)
def test_advance_each_interval(interval: str, expected: datetime) -> None:
    assert advance_due_date(datetime(2025, 3, 10, 8, 0), interval) == expected


def test_month_end_rolls_forward() -> None:
    assert advance_due_date(datetime(2025, 1, 31), "monthly") == datetime(2025, 3, 3)
    assert advance_due_date(datetime(2024, 1, 31), "monthly") == datetime(2024, 3, 2)


def test_leap_day_yearly_rolls_to_march() -> None:
    assert advance_due_date(datetime(2024, 2, 29), "yearly") == datetime(2025, 3, 1)


def test_quarterly_crosses_year() -> None:
    assert advance_due_date(datetime(2025, 11, 15), "quarterly") == datetime(
        2026, 2, 15
    )


def test_twelve_monthly_steps_make_a_year() -> None:
    due = datetime(2025, 3, 15, 10, 0)
    for _ in range(12):
        due = advance_due_date(due, RecurringInterval.monthly)
    assert due == datetime(2026, 3, 15, 10, 0)


def test_unknown_interval_falls_back_to_monthly() -> None:
    assert parse_interval("hourly") == RecurringInterval.monthly
    assert parse_interval(None) == RecurringInterval.monthly
    assert parse_interval(" Weekly ") == RecurringInterval.weekly
    assert advance_due_date(datetime(2025, 5, 5), "sometimes") == datetime(2025, 6, 5)


def test_normalize_interval() -> None:
    assert normalize_interval(False, "weekly") is None
    assert normalize_interval(True, None) == RecurringInterval.monthly
    assert normalize_interval(True, "quarterly") == RecurringInterval.quarterly


def test_next_occurrence_after() -> None:
    anchor = datetime(2025, 1, 15)
    now = datetime(2025, 3, 20)
    assert next_occurrence_after(anchor, "monthly", now) == datetime(2025, 4, 15)
    assert next_occurrence_after(datetime(2025, 4, 1), "monthly", now) == datetime(
        2025, 4, 1
    )


def test_next_occurrence_gives_up_on_ancient_anchor() -> None:
    anchor = datetime(1900, 1, 1)
    assert next_occurrence_after(anchor, "daily", datetime(2025, 1, 1)) is None
