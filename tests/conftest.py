"""
Shared pytest fixtures.

- store: a fresh ItemStore on a temporary sqlite file
- registrar: a fake trigger registrar that records what it is given
- service: ReminderService wired to both
"""

from datetime import date, datetime, time

import pytest

from core.errors import RegistrarError
from core.models import CalendarEvent, Task
from core.scheduler import ReminderScheduler
from core.service import ReminderService
from core.storage import ItemStore


class FakeRegistrar:
    """Hands out ids n1, n2, ... and remembers every call."""

    def __init__(self):
        self.submitted = []
        self.immediate = []
        self.cancelled = []
        self.cancelled_all = 0
        self.fail = False

    async def submit_trigger(self, descriptor):
        if self.fail:
            raise RegistrarError("registrar is down")
        self.submitted.append(descriptor)
        return f"n{len(self.submitted)}"

    async def submit_immediate(self, title, body, metadata):
        if self.fail:
            raise RegistrarError("registrar is down")
        self.immediate.append((title, body, metadata))

    async def cancel_trigger(self, trigger_id):
        self.cancelled.append(trigger_id)

    async def cancel_all_triggers(self):
        self.cancelled_all += 1


@pytest.fixture
async def store(tmp_path):
    s = ItemStore(tmp_path / "daymark.db")
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def registrar():
    return FakeRegistrar()


@pytest.fixture
def scheduler(registrar):
    return ReminderScheduler(registrar)


@pytest.fixture
def service(store, scheduler):
    return ReminderService(store, scheduler)


def make_task(item_id="task_1", start_date=date(2024, 6, 1), start_time=None, **kwargs):
    kwargs.setdefault("title", f"Task {item_id}")
    return Task(id=item_id, start_date=start_date, start_time=start_time, **kwargs)


def make_event(item_id="event_1", start_date=date(2024, 6, 1), start_time=None, **kwargs):
    kwargs.setdefault("title", f"Event {item_id}")
    return CalendarEvent(id=item_id, start_date=start_date, start_time=start_time, **kwargs)


NOON = time(12, 0)
JUNE_1_MORNING = datetime(2024, 6, 1, 8, 0)
