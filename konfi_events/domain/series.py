"""
Date arithmetic for recurring events.

All stepping happens on the wall clock of the datetime's own tzinfo, so a
weekly 10:00 service stays at 10:00 local time across DST changes.
"""

import calendar
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import List


class SeriesInterval(str, Enum):
    DAY = "day"
    WEEK = "week"
    BIWEEK = "biweek"
    MONTH = "month"


_FIXED_STEPS = {
    SeriesInterval.DAY: timedelta(days=1),
    SeriesInterval.WEEK: timedelta(weeks=1),
    SeriesInterval.BIWEEK: timedelta(weeks=2),
}


def add_months(value: datetime, months: int) -> datetime:
    """Same day of month, clamped to the last day of shorter months."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def occurrence_date(start: datetime, index: int, interval: SeriesInterval) -> datetime:
    # Always step from the start so month clamping never accumulates.
    if interval is SeriesInterval.MONTH:
        return add_months(start, index)
    return start + _FIXED_STEPS[interval] * index


def generate_series_dates(
    start: datetime,
    count: int,
    interval: SeriesInterval | str,
) -> List[datetime]:
    interval = SeriesInterval(interval)
    if count < 1:
        raise ValueError("count must be positive")
    return [occurrence_date(start, index, interval) for index in range(count)]


def day_delta(start: datetime, occurrence: datetime) -> int:
    return (occurrence.date() - start.date()).days


def shift_by_days(value: datetime | None, days: int, zone: tzinfo | None = None) -> datetime | None:
    """Move ``value`` by whole calendar days, keeping its local time of day."""
    if value is None:
        return None
    if zone is not None and value.tzinfo is not None:
        value = value.astimezone(zone)
    return value + timedelta(days=days)


def occurrence_name(name: str, number: int) -> str:
    return f"{name} #{number}"
