from datetime import datetime, timedelta
from typing import Optional, Union

from models import RecurringInterval

DEFAULT_INTERVAL = RecurringInterval.monthly

_DAY_STEPS = {
    RecurringInterval.daily: 1,
    RecurringInterval.weekly: 7,
    RecurringInterval.fortnightly: 14,
    RecurringInterval.biweekly: 14,
}

_MONTH_STEPS = {
    RecurringInterval.monthly: 1,
    RecurringInterval.quarterly: 3,
    RecurringInterval.yearly: 12,
    RecurringInterval.annual: 12,
}


def parse_interval(
    value: Union[RecurringInterval, str, None],
) -> RecurringInterval:
    if isinstance(value, RecurringInterval):
        return value
    try:
        return RecurringInterval((value or "").strip().lower())
    except ValueError:
        return DEFAULT_INTERVAL


def normalize_interval(
    is_recurring: bool, interval: Union[RecurringInterval, str, None]
) -> Optional[RecurringInterval]:
    if not is_recurring:
        return None
    return parse_interval(interval)


def _add_months(base: datetime, months: int) -> datetime:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    # Days past the end of the target month roll into the next one
    # (Jan 31 + 1 month -> Mar 3 in a common year).
    first = base.replace(year=year, month=month, day=1)
    return first + timedelta(days=base.day - 1)


def advance_due_date(
    due: datetime, interval: Union[RecurringInterval, str, None]
) -> datetime:
    unit = parse_interval(interval)
    if unit in _DAY_STEPS:
        return due + timedelta(days=_DAY_STEPS[unit])
    return _add_months(due, _MONTH_STEPS[unit])


def next_occurrence_after(
    anchor: datetime,
    interval: Union[RecurringInterval, str, None],
    now: datetime,
) -> Optional[datetime]:
    occurrence = anchor
    iterations = 0
    max_iterations = 5000  # ~13 years of daily steps
    while occurrence < now and iterations < max_iterations:
        occurrence = advance_due_date(occurrence, interval)
        iterations += 1
    if occurrence < now:
        return None
    return occurrence
