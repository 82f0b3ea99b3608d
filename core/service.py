import logging
import uuid
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from . import cleanup
from .clock import (
    RANGE_START_HOUR,
    build_trigger_instant,
    calendar_grid_days,
    is_past,
    utc_now,
)
from .errors import InvalidArgument
from .models import CalendarEvent, CalendarItem, RepeatFrequency, Task, join_notification_ids
from .parser import ParsedEntry
from .scheduler import Delivery, ReminderScheduler, decide_delivery_mode
from .storage import ItemStore
from .views import merge_items

logger = logging.getLogger(__name__)


def new_item_id(kind: str) -> str:
    return f"{kind}_{uuid.uuid4().hex}"


class ReminderService:
    """
    What the UI talks to: save, delete, list, sweep.

    Saving inserts first and schedules second. If scheduling fails the item
    stays saved without a reminder; the error is only logged.
    """

    def __init__(self, store: ItemStore, scheduler: ReminderScheduler):
        self.store = store
        self.scheduler = scheduler

    def _delivery_for(
        self,
        day: date,
        at: Optional[time],
        is_all_day: bool,
        repeat: RepeatFrequency,
        now: datetime,
        what: str,
    ) -> Delivery:
        selected = build_trigger_instant(day, at, is_all_day, RANGE_START_HOUR)
        past = is_past(selected, is_all_day, now)
        if past and repeat == "none":
            raise InvalidArgument(f"Cannot create {what} for past date/time")
        return decide_delivery_mode(is_all_day, day == now.date(), past, repeat)

    # --- Save ---

    async def save_task(
        self,
        title: str,
        description: Optional[str],
        day: date,
        at: Optional[time] = None,
        is_all_day: bool = False,
        repeat: RepeatFrequency = "none",
        now: Optional[datetime] = None,
    ) -> Task:
        if now is None:
            now = datetime.now()
        title = (title or "").strip()
        if not title:
            raise InvalidArgument("Please enter a title")

        delivery = self._delivery_for(day, at, is_all_day, repeat, now, "task")

        stamp = utc_now()
        task = Task(
            id=new_item_id("task"),
            title=title,
            description=(description or "").strip() or None,
            start_date=day,
            start_time=None if is_all_day else at,
            repeat_frequency=repeat,
            created_at=stamp,
            updated_at=stamp,
        )
        await self.store.insert_task(task)

        try:
            if delivery is Delivery.IMMEDIATE:
                await self.scheduler.notify_now(task.title, task.description or "Task reminder", task.id)
            elif delivery is Delivery.SCHEDULED:
                trigger_id = await self.scheduler.schedule_single(
                    task.title, task.description, day, at, is_all_day, repeat, task.id
                )
                task.notification_id = trigger_id
                task.updated_at = utc_now()
                await self.store.update_task(task)
        except Exception as e:
            logger.error("Notification error for task %s: %s", task.id, e)

        logger.info("saved task %s (%s, delivery=%s)", task.id, day, delivery.value)
        return task

    async def save_event(
        self,
        title: str,
        description: Optional[str],
        start_date: date,
        end_date: Optional[date] = None,
        at: Optional[time] = None,
        is_all_day: bool = False,
        repeat: RepeatFrequency = "none",
        now: Optional[datetime] = None,
    ) -> CalendarEvent:
        if now is None:
            now = datetime.now()
        title = (title or "").strip()
        if not title:
            raise InvalidArgument("Please enter a title")
        if end_date is None:
            end_date = start_date

        delivery = self._delivery_for(start_date, at, is_all_day, repeat, now, "event")

        stamp = utc_now()
        event = CalendarEvent(
            id=new_item_id("event"),
            title=title,
            description=(description or "").strip() or None,
            start_date=start_date,
            start_time=None if is_all_day else at,
            end_date=end_date,
            end_time=None if is_all_day else at,
            repeat_frequency=repeat,
            created_at=stamp,
            updated_at=stamp,
        )
        await self.store.insert_event(event)

        try:
            if delivery is Delivery.IMMEDIATE:
                await self.scheduler.notify_now(event.title, event.description or "Event reminder", event.id)
                if end_date > start_date:
                    # the remaining days still get their own reminders
                    trigger_ids = await self.scheduler.schedule_fan_out(
                        event.title, event.description, start_date + timedelta(days=1), end_date,
                        at, is_all_day, repeat, event.id,
                    )
                    event.notification_id = join_notification_ids(trigger_ids)
                    event.updated_at = utc_now()
                    await self.store.update_event(event)
            elif delivery is Delivery.SCHEDULED:
                trigger_ids = await self.scheduler.schedule_fan_out(
                    event.title, event.description, start_date, end_date, at, is_all_day, repeat, event.id
                )
                event.notification_id = join_notification_ids(trigger_ids)
                event.updated_at = utc_now()
                await self.store.update_event(event)
        except Exception as e:
            logger.error("Notification error for event %s: %s", event.id, e)

        logger.info("saved event %s (%s..%s, delivery=%s)", event.id, start_date, end_date, delivery.value)
        return event

    async def save_entry(self, entry: ParsedEntry, now: Optional[datetime] = None) -> CalendarItem:
        if entry.kind == "event":
            return await self.save_event(
                entry.title, entry.description, entry.start_date, entry.end_date,
                entry.at, entry.all_day, entry.repeat, now,
            )
        return await self.save_task(
            entry.title, entry.description, entry.start_date,
            entry.at, entry.all_day, entry.repeat, now,
        )

    # --- Delete ---

    async def delete_item(self, item: CalendarItem):
        # triggers are cancelled before the row is deleted
        if item.notification_id:
            await self.scheduler.cancel(item.notification_id)
        if item.type == "task":
            await self.store.delete_task(item.id)
        else:
            await self.store.delete_event(item.id)
        logger.info("deleted %s %s", item.type, item.id)

    async def delete_by_id(self, item_id: str) -> Optional[CalendarItem]:
        item = await self.store.get_item(item_id)
        if item is None:
            return None
        await self.delete_item(item)
        return item

    # --- Views ---

    async def get_items_by_date(self, day: date) -> List[CalendarItem]:
        return await self.store.get_items_by_date(day)

    async def get_items_in_month(self, month: date) -> Tuple[List[date], List[CalendarItem]]:
        days = calendar_grid_days(month)
        tasks = await self.store.get_tasks_by_date_range(days[0], days[-1])
        events = await self.store.get_events_by_date_range(days[0], days[-1])
        return days, merge_items(tasks, events)

    def calendar_grid_days(self, month: date) -> List[date]:
        return calendar_grid_days(month)

    # --- Cleanup ---

    async def sweep(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        return await cleanup.sweep(self.store, now)
