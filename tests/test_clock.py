from datetime import date, datetime, time, timedelta

import pytest
from freezegun import freeze_time

from core.clock import (
    build_trigger_instant,
    calendar_grid_days,
    days_in_range,
    is_past,
    parse_date,
    parse_time,
)
from core.errors import InvalidArgument


def test_all_day_uses_the_given_default_hour():
    day = date(2024, 6, 1)
    assert build_trigger_instant(day, None, True, 9) == datetime(2024, 6, 1, 9, 0, 0)
    assert build_trigger_instant(day, time(15, 45), True, 0) == datetime(2024, 6, 1, 0, 0, 0)


def test_timed_instant_drops_seconds():
    day = date(2024, 6, 1)
    instant = build_trigger_instant(day, time(14, 30, 59), False, 9)
    assert instant == datetime(2024, 6, 1, 14, 30, 0)


def test_missing_time_fails_fast():
    with pytest.raises(InvalidArgument):
        build_trigger_instant(date(2024, 6, 1), None, False, 9)


def test_is_past_timed_compares_to_now():
    now = datetime(2024, 6, 1, 12, 0)
    assert is_past(datetime(2024, 6, 1, 11, 59), False, now)
    assert not is_past(datetime(2024, 6, 1, 12, 0), False, now)


def test_is_past_all_day_compares_to_start_of_today():
    now = datetime(2024, 6, 1, 23, 0)
    # earlier today is not past for an all-day item
    assert not is_past(datetime(2024, 6, 1, 0, 0), True, now)
    assert is_past(datetime(2024, 5, 31, 9, 0), True, now)


@freeze_time("2025-01-01 12:00:00")
def test_is_past_defaults_to_the_wall_clock():
    assert is_past(datetime(2025, 1, 1, 11, 0), False)
    assert not is_past(datetime(2025, 1, 1, 0, 0), True)


def test_grid_for_june_2024():
    days = calendar_grid_days(date(2024, 6, 15))
    assert days[0] == date(2024, 5, 27)
    assert days[-1] == date(2024, 6, 30)
    assert len(days) == 35


@pytest.mark.parametrize("month", [date(2023, m, 1) for m in range(1, 13)] + [date(2024, 2, 10), date(2026, 2, 1)])
def test_grid_is_week_aligned_and_complete(month):
    days = calendar_grid_days(month)

    assert len(days) % 7 == 0
    assert days[0].weekday() == 0
    assert days[-1].weekday() == 6
    assert all(b - a == timedelta(days=1) for a, b in zip(days, days[1:]))

    first = month.replace(day=1)
    d = first
    while d.month == first.month:
        assert d in days
        d += timedelta(days=1)


def test_grid_is_a_pure_function_of_the_month():
    assert calendar_grid_days(date(2024, 2, 1)) == calendar_grid_days(date(2024, 2, 29))


def test_days_in_range_is_inclusive():
    assert days_in_range(date(2024, 6, 1), date(2024, 6, 3)) == [
        date(2024, 6, 1),
        date(2024, 6, 2),
        date(2024, 6, 3),
    ]
    assert days_in_range(date(2024, 6, 1), date(2024, 6, 1)) == [date(2024, 6, 1)]


def test_days_in_range_rejects_reversed_range():
    with pytest.raises(InvalidArgument):
        days_in_range(date(2024, 6, 3), date(2024, 6, 1))


def test_parse_date_and_time():
    assert parse_date("2024-06-01") == date(2024, 6, 1)
    assert parse_time("07:05") == time(7, 5)


@pytest.mark.parametrize("bad", ["", "2024-13-01", "01.06.2024", None])
def test_parse_date_rejects_malformed(bad):
    with pytest.raises(InvalidArgument):
        parse_date(bad)


@pytest.mark.parametrize("bad", ["25:00", "7", "07:05:00"])
def test_parse_time_rejects_malformed(bad):
    with pytest.raises(InvalidArgument):
        parse_time(bad)
