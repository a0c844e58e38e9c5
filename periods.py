from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

END_OF_DAY = time(23, 59, 59, 999000)


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def local_now() -> datetime:
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(moment: datetime) -> datetime:
    # stored times are naive wall-clock times in the configured zone
    if moment.tzinfo is None:
        return moment
    tz = ZoneInfo(get_settings().timezone)
    return moment.astimezone(tz).replace(tzinfo=None)


def _month_first(year: int, month_index: int) -> date:
    # month_index is zero based and may run outside 0..11
    year += month_index // 12
    return date(year, month_index % 12 + 1, 1)


def _month_last(year: int, month_index: int) -> date:
    # day 0 of the following month
    return _month_first(year, month_index + 1) - timedelta(days=1)


def _span(first: date, last: date) -> DateRange:
    return DateRange(
        datetime.combine(first, time.min), datetime.combine(last, END_OF_DAY)
    )


def month_range(year: int, month: int) -> DateRange:
    return _span(_month_first(year, month - 1), _month_last(year, month - 1))


def _parse_bound(value: str) -> datetime:
    value = value.strip()
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None
    return to_local_naive(parsed)


def resolve_date_range(
    date_range: Optional[str],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Optional[DateRange]:
    """Turn query parameters into an inclusive interval.

    An explicit start/end pair wins over a symbolic tag. ``None`` means the
    caller should not filter by date at all.
    """
    if start_date and end_date:
        start = _parse_bound(start_date)
        end = datetime.combine(_parse_bound(end_date).date(), END_OF_DAY)
        if start > end:
            raise ValueError("Start date must be before end date")
        return DateRange(start, end)

    if not date_range:
        return None

    now = now or local_now()
    year = now.year
    month = now.month - 1

    if date_range == "current-month":
        return _span(_month_first(year, month), _month_last(year, month))
    if date_range == "last-month":
        return _span(_month_first(year, month - 1), _month_last(year, month - 1))
    if date_range == "last-3-months":
        return _span(_month_first(year, month - 2), _month_last(year, month))
    if date_range == "last-6-months":
        return _span(_month_first(year, month - 5), _month_last(year, month))
    if date_range == "current-year":
        return _span(date(year, 1, 1), date(year, 12, 31))
    if date_range == "last-week":
        return DateRange(now - timedelta(days=7), now)
    if date_range == "year-to-date":
        return DateRange(datetime(year, 1, 1), now)
    if date_range == "upcoming":
        return DateRange(now, now + timedelta(days=30))
    return None
