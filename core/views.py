from datetime import date, time
from typing import Iterable, List, Sequence

from .models import CalendarEvent, CalendarItem, Task

MIDNIGHT = time(0, 0)


def time_of_day(item: CalendarItem) -> time:
    return item.start_time if item.start_time is not None else MIDNIGHT


def merge_items(tasks: Sequence[Task], events: Sequence[CalendarEvent]) -> List[CalendarItem]:
    """
    One list for a day view: tasks first, then events, stably sorted by time
    of day. Items without a time count as 00:00, so on a tie a task stays
    ahead of an event.
    """
    combined: List[CalendarItem] = [*tasks, *events]
    return sorted(combined, key=time_of_day)


def item_covers(item: CalendarItem, day: date) -> bool:
    if item.type == "task":
        return item.start_date == day
    return item.start_date <= day <= item.effective_end_date


def busy_days(items: Iterable[CalendarItem], days: Sequence[date]) -> List[date]:
    items = list(items)
    return [d for d in days if any(item_covers(item, d) for item in items)]
