from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Literal, Optional, Union

from .clock import utc_now
from .errors import InvalidArgument

ItemType = Literal["task", "event"]
RepeatFrequency = Literal["none", "daily", "weekly"]

REPEAT_FREQUENCIES = ("none", "daily", "weekly")


def _check_minute(value: Optional[time], name: str):
    if value is not None and (value.second or value.microsecond):
        raise InvalidArgument(f"{name} must be minute-granular, got {value}")


def _check_common(title: str, start_time: Optional[time], repeat: str):
    if not title or not title.strip():
        raise InvalidArgument("Title must not be empty")
    if repeat not in REPEAT_FREQUENCIES:
        raise InvalidArgument(f"Unknown repeat frequency: {repeat!r}")
    _check_minute(start_time, "start_time")


@dataclass
class Task:
    id: str
    title: str
    start_date: date
    description: Optional[str] = None
    start_time: Optional[time] = None
    repeat_frequency: RepeatFrequency = "none"
    notification_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    type: ItemType = field(default="task", init=False)

    def __post_init__(self):
        _check_common(self.title, self.start_time, self.repeat_frequency)
        # empty strings are stored as NULL
        self.description = self.description or None
        self.notification_id = self.notification_id or None
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.updated_at < self.created_at:
            raise InvalidArgument("updated_at is earlier than created_at")

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None

    @property
    def notification_ids(self) -> List[str]:
        return split_notification_ids(self.notification_id)


@dataclass
class CalendarEvent:
    id: str
    title: str
    start_date: date
    description: Optional[str] = None
    start_time: Optional[time] = None
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    repeat_frequency: RepeatFrequency = "none"
    notification_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    type: ItemType = field(default="event", init=False)

    def __post_init__(self):
        _check_common(self.title, self.start_time, self.repeat_frequency)
        # empty strings are stored as NULL
        self.description = self.description or None
        self.notification_id = self.notification_id or None
        _check_minute(self.end_time, "end_time")
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidArgument(
                f"end_date {self.end_date} is before start_date {self.start_date}"
            )
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.updated_at < self.created_at:
            raise InvalidArgument("updated_at is earlier than created_at")

    @property
    def is_all_day(self) -> bool:
        return self.start_time is None

    @property
    def effective_end_date(self) -> date:
        # Same fallback as the sweeper: no end date means it ends on its start day.
        return self.end_date if self.end_date is not None else self.start_date

    @property
    def effective_end_time(self) -> Optional[time]:
        return self.end_time if self.end_time is not None else self.start_time

    @property
    def notification_ids(self) -> List[str]:
        return split_notification_ids(self.notification_id)


CalendarItem = Union[Task, CalendarEvent]


def join_notification_ids(ids: List[str]) -> Optional[str]:
    ids = [i for i in ids if i]
    return ",".join(ids) if ids else None


def split_notification_ids(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
