from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from .errors import InvalidArgument

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Hour used for all-day reminders.
REMINDER_HOUR = 9
# Hour used when an all-day item is compared as the start of its range.
RANGE_START_HOUR = 0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise InvalidArgument(f"Malformed date: {value!r} (expected YYYY-MM-DD)")


def parse_time(value: str) -> time:
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except (TypeError, ValueError):
        raise InvalidArgument(f"Malformed time: {value!r} (expected HH:MM)")


def format_date(d: date) -> str:
    return d.strftime(DATE_FORMAT)


def format_time(t: time) -> str:
    return t.strftime(TIME_FORMAT)


def build_trigger_instant(
    day: date,
    at: Optional[time],
    all_day: bool,
    default_hour: int,
) -> datetime:
    """
    Merge a calendar day with a wall-clock time into one local instant.

    - all_day: the day at default_hour:00:00 (9 for reminders, 0 for the start
      of a range; the caller has to choose);
    - otherwise the hour and minute of `at`, seconds zeroed.
    """
    if all_day:
        return datetime(day.year, day.month, day.day, default_hour, 0, 0)

    if at is None:
        raise InvalidArgument("Time is required when all-day is off")

    return datetime(day.year, day.month, day.day, at.hour, at.minute, 0)


def is_past(instant: datetime, all_day: bool, now: Optional[datetime] = None) -> bool:
    if now is None:
        now = datetime.now()
    if all_day:
        return instant < start_of_day(now)
    return instant < now


def days_in_range(start: date, end: date) -> List[date]:
    if end < start:
        raise InvalidArgument(f"End date {end} is before start date {start}")
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


def calendar_grid_days(month: date) -> List[date]:
    """
    Days for a Monday-first month grid: from the Monday on/before the 1st
    through the Sunday on/after the last day of the month.
    """
    first = month.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    last = next_first - timedelta(days=1)

    start = first - timedelta(days=first.weekday())
    end = last + timedelta(days=6 - last.weekday())
    return days_in_range(start, end)
