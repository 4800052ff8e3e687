# tests/unit/test_series_dates.py

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from konfi_events.domain.series import (
    SeriesInterval,
    add_months,
    day_delta,
    generate_series_dates,
    occurrence_name,
    shift_by_days,
)

BERLIN = ZoneInfo("Europe/Berlin")


def test_weekly_series():
    start = datetime(2025, 1, 6, 18, 0, tzinfo=BERLIN)

    dates = generate_series_dates(start, 4, SeriesInterval.WEEK)

    assert [value.date() for value in dates] == [
        date(2025, 1, 6),
        date(2025, 1, 13),
        date(2025, 1, 20),
        date(2025, 1, 27),
    ]


def test_daily_and_biweekly_steps():
    start = datetime(2025, 1, 6, 18, 0, tzinfo=BERLIN)

    assert generate_series_dates(start, 3, "day")[-1].date() == date(2025, 1, 8)
    assert generate_series_dates(start, 3, "biweek")[-1].date() == date(2025, 2, 3)


def test_monthly_series_clamps_to_month_end():
    start = datetime(2025, 1, 31, 10, 0, tzinfo=BERLIN)

    dates = generate_series_dates(start, 4, SeriesInterval.MONTH)

    assert [value.date() for value in dates] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_add_months_crosses_year_boundary():
    assert add_months(datetime(2024, 11, 15), 3) == datetime(2025, 2, 15)


def test_wall_clock_time_survives_dst_change():
    # Berlin switches to summer time on 2025-03-30.
    start = datetime(2025, 3, 23, 10, 0, tzinfo=BERLIN)

    second = generate_series_dates(start, 2, SeriesInterval.WEEK)[1]

    assert second.date() == date(2025, 3, 30)
    assert (second.hour, second.minute) == (10, 0)
    assert second.utcoffset() != start.utcoffset()


def test_count_must_be_positive():
    with pytest.raises(ValueError):
        generate_series_dates(datetime(2025, 1, 6, tzinfo=BERLIN), 0, SeriesInterval.WEEK)


def test_shift_keeps_time_of_day():
    start = datetime(2025, 1, 6, 18, 0, tzinfo=BERLIN)
    occurrence = datetime(2025, 1, 20, 18, 0, tzinfo=BERLIN)
    slot_start = datetime(2025, 1, 6, 19, 30, tzinfo=BERLIN)

    shifted = shift_by_days(slot_start, day_delta(start, occurrence), BERLIN)

    assert shifted == datetime(2025, 1, 20, 19, 30, tzinfo=BERLIN)
    assert shift_by_days(None, 7) is None


def test_occurrence_name():
    assert occurrence_name("Konfi-Treff", 3) == "Konfi-Treff #3"
