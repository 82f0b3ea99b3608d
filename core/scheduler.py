import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Literal, Optional, Protocol

from .clock import REMINDER_HOUR, build_trigger_instant, days_in_range
from .errors import InvalidArgument
from .models import RepeatFrequency, split_notification_ids

logger = logging.getLogger(__name__)

RepeatInterval = Literal["daily", "weekly"]

REPEAT_INTERVALS: Dict[str, Optional[RepeatInterval]] = {
    "none": None,
    "daily": "daily",
    "weekly": "weekly",
}


class Delivery(str, Enum):
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    DROPPED = "dropped"


@dataclass
class TriggerDescriptor:
    title: str
    body: str
    fire_at: datetime
    repeat_interval: Optional[RepeatInterval] = None
    # Fire at the exact instant, even under OS power-saving restrictions.
    exact: bool = True
    metadata: Dict[str, str] = field(default_factory=dict)


class Registrar(Protocol):
    """The platform that actually fires notifications."""

    async def submit_trigger(self, descriptor: TriggerDescriptor) -> str:
        ...

    async def submit_immediate(self, title: str, body: str, metadata: Dict[str, str]) -> None:
        ...

    async def cancel_trigger(self, trigger_id: str) -> None:
        ...

    async def cancel_all_triggers(self) -> None:
        ...


def decide_delivery_mode(
    is_all_day: bool,
    is_today: bool,
    is_past: bool,
    repeat: RepeatFrequency,
) -> Delivery:
    """
    - all-day reminder for today, no repeat: there is no future 09:00 worth
      waiting for, so notify right away;
    - not past yet, or repeating: schedule (a repeating trigger has later
      occurrences even if the first one is gone);
    - anything else is dropped.
    """
    if is_all_day and is_today and repeat == "none":
        return Delivery.IMMEDIATE
    if not is_past or repeat != "none":
        return Delivery.SCHEDULED
    return Delivery.DROPPED


def _metadata(item_id: Optional[str]) -> Dict[str, str]:
    return {"item_id": item_id or ""}


class ReminderScheduler:
    def __init__(self, registrar: Registrar):
        self.registrar = registrar

    def build_descriptor(
        self,
        title: str,
        description: Optional[str],
        day: date,
        at: Optional[time],
        is_all_day: bool,
        repeat: RepeatFrequency,
        item_id: Optional[str] = None,
    ) -> TriggerDescriptor:
        if repeat not in REPEAT_INTERVALS:
            raise InvalidArgument(f"Unknown repeat frequency: {repeat!r}")
        return TriggerDescriptor(
            title=title,
            body=description or "",
            fire_at=build_trigger_instant(day, at, is_all_day, REMINDER_HOUR),
            repeat_interval=REPEAT_INTERVALS[repeat],
            exact=True,
            metadata=_metadata(item_id),
        )

    async def schedule_single(
        self,
        title: str,
        description: Optional[str],
        day: date,
        at: Optional[time],
        is_all_day: bool,
        repeat: RepeatFrequency = "none",
        item_id: Optional[str] = None,
    ) -> str:
        descriptor = self.build_descriptor(title, description, day, at, is_all_day, repeat, item_id)
        trigger_id = await self.registrar.submit_trigger(descriptor)
        logger.info("scheduled %s at %s (repeat=%s)", trigger_id, descriptor.fire_at, repeat)
        return trigger_id

    async def schedule_fan_out(
        self,
        title: str,
        description: Optional[str],
        start_date: date,
        end_date: date,
        at: Optional[time],
        is_all_day: bool,
        repeat: RepeatFrequency = "none",
        item_id: Optional[str] = None,
    ) -> List[str]:
        """
        One independent trigger per day from start_date to end_date inclusive,
        all at the same time of day. Returns trigger ids in date order.
        """
        descriptors = [
            self.build_descriptor(title, description, day, at, is_all_day, repeat, item_id)
            for day in days_in_range(start_date, end_date)
        ]

        trigger_ids: List[str] = []
        for descriptor in descriptors:
            trigger_ids.append(await self.registrar.submit_trigger(descriptor))
        logger.info(
            "scheduled %d triggers for %s..%s (repeat=%s)",
            len(trigger_ids), start_date, end_date, repeat,
        )
        return trigger_ids

    async def notify_now(self, title: str, body: str, item_id: Optional[str] = None):
        await self.registrar.submit_immediate(title, body, _metadata(item_id))

    async def cancel(self, notification_id: Optional[str]):
        for trigger_id in split_notification_ids(notification_id):
            await self.registrar.cancel_trigger(trigger_id)

    async def cancel_all(self):
        await self.registrar.cancel_all_triggers()
