from datetime import date, time

import pytest

from conftest import make_event, make_task
from core.errors import ConstraintError, StorageCorruption, StorageUnavailable
from core.storage import ItemStore


@pytest.mark.asyncio
async def test_task_round_trip(store):
    task = make_task("task_rt", date(2024, 6, 1), time(9, 30), description="bring snacks", repeat_frequency="weekly")
    await store.insert_task(task)

    tasks = await store.get_tasks_by_date(date(2024, 6, 1))
    assert tasks == [task]
    assert tasks[0].type == "task"


@pytest.mark.asyncio
async def test_event_round_trip(store):
    event = make_event(
        "event_rt", date(2024, 6, 1), time(10, 0),
        end_date=date(2024, 6, 3), end_time=time(10, 0), notification_id="n1,n2,n3",
    )
    await store.insert_event(event)

    assert await store.get_all_events() == [event]
    assert (await store.get_item("event_rt")).notification_ids == ["n1", "n2", "n3"]


@pytest.mark.asyncio
async def test_empty_strings_round_trip(store):
    task = make_task("task_rt", date(2024, 6, 1), description="", notification_id="")
    event = make_event("event_rt", date(2024, 6, 1), description="", notification_id="")
    await store.insert_task(task)
    await store.insert_event(event)

    assert await store.get_tasks_by_date(date(2024, 6, 1)) == [task]
    assert await store.get_all_events() == [event]
    assert task.description is None
    assert event.notification_id is None


@pytest.mark.asyncio
async def test_duplicate_id_is_a_constraint_error(store):
    await store.insert_task(make_task("task_dup"))
    with pytest.raises(ConstraintError):
        await store.insert_task(make_task("task_dup"))
    assert len(await store.get_all_tasks()) == 1


@pytest.mark.asyncio
async def test_update_overwrites_the_row(store):
    task = make_task("task_up", date(2024, 6, 1))
    await store.insert_task(task)

    task.title = "Renamed"
    task.start_time = time(18, 0)
    task.notification_id = "n7"
    assert await store.update_task(task) is True

    (stored,) = await store.get_tasks_by_date(date(2024, 6, 1))
    assert stored.title == "Renamed"
    assert stored.start_time == time(18, 0)
    assert stored.notification_id == "n7"


@pytest.mark.asyncio
async def test_update_event_writes_notification_id_once(store):
    event = make_event("event_up", date(2024, 6, 1), end_date=date(2024, 6, 2))
    await store.insert_event(event)

    event.notification_id = "n1,n2"
    assert await store.update_event(event) is True

    stored = await store.get_item("event_up")
    assert stored.notification_id == "n1,n2"
    assert stored.updated_at == event.updated_at


@pytest.mark.asyncio
async def test_update_of_unknown_id_is_silent(store):
    assert await store.update_task(make_task("task_missing")) is False
    assert await store.update_event(make_event("event_missing")) is False
    assert await store.get_all_tasks() == []


@pytest.mark.asyncio
async def test_delete_removes_and_ignores_unknown(store):
    await store.insert_task(make_task("task_del"))
    await store.insert_event(make_event("event_del"))

    await store.delete_task("task_del")
    await store.delete_event("event_del")
    await store.delete_task("task_del")
    await store.delete_event("nope")

    assert await store.get_all_tasks() == []
    assert await store.get_all_events() == []


@pytest.mark.asyncio
async def test_get_all_orders_by_date_then_time_with_all_day_first(store):
    await store.insert_task(make_task("t3", date(2024, 6, 2), time(8, 0)))
    await store.insert_task(make_task("t2", date(2024, 6, 1), time(9, 0)))
    await store.insert_task(make_task("t1", date(2024, 6, 1)))
    await store.insert_task(make_task("t0", date(2024, 5, 31), time(23, 0)))

    assert [t.id for t in await store.get_all_tasks()] == ["t0", "t1", "t2", "t3"]


@pytest.mark.asyncio
async def test_tasks_by_date_filters_and_orders(store):
    await store.insert_task(make_task("late", date(2024, 6, 1), time(20, 0)))
    await store.insert_task(make_task("other_day", date(2024, 6, 2), time(7, 0)))
    await store.insert_task(make_task("all_day", date(2024, 6, 1)))
    await store.insert_task(make_task("early", date(2024, 6, 1), time(7, 0)))

    assert [t.id for t in await store.get_tasks_by_date(date(2024, 6, 1))] == ["all_day", "early", "late"]


@pytest.mark.asyncio
async def test_tasks_by_range_is_inclusive(store):
    await store.insert_task(make_task("before", date(2024, 5, 26)))
    await store.insert_task(make_task("first", date(2024, 5, 27), time(10, 0)))
    await store.insert_task(make_task("last", date(2024, 6, 30)))
    await store.insert_task(make_task("after", date(2024, 7, 1)))
    await store.insert_task(make_task("early", date(2024, 5, 27), time(8, 0)))

    tasks = await store.get_tasks_by_date_range(date(2024, 5, 27), date(2024, 6, 30))
    assert [t.id for t in tasks] == ["early", "first", "last"]


@pytest.mark.asyncio
async def test_events_by_range_overlap(store):
    await store.insert_event(make_event("before", date(2024, 5, 1), end_date=date(2024, 5, 31)))
    await store.insert_event(make_event("spanning", date(2024, 5, 30), end_date=date(2024, 6, 2)))
    await store.insert_event(make_event("inside", date(2024, 6, 5), end_date=date(2024, 6, 5)))
    await store.insert_event(make_event("after", date(2024, 6, 11), end_date=date(2024, 6, 12)))
    await store.insert_event(make_event("open_ended", date(2024, 4, 1)))

    found = await store.get_events_by_date_range(date(2024, 6, 1), date(2024, 6, 10))
    assert [e.id for e in found] == ["open_ended", "spanning", "inside"]


@pytest.mark.asyncio
async def test_event_without_end_date_is_open_forward_in_range_queries(store):
    await store.insert_event(make_event("no_end", date(2024, 6, 1), time(9, 0)))

    assert [e.id for e in await store.get_events_by_date_range(date(2024, 7, 1), date(2024, 7, 1))] == ["no_end"]
    assert await store.get_events_by_date_range(date(2024, 5, 1), date(2024, 5, 31)) == []


@pytest.mark.asyncio
async def test_items_by_date_merges_and_sorts_by_time(store):
    day = date(2024, 6, 1)
    await store.insert_task(make_task("task_noon", day, time(12, 0)))
    await store.insert_task(make_task("task_all_day", day))
    await store.insert_event(make_event("event_all_day", day, end_date=day))
    await store.insert_event(make_event("event_morning", date(2024, 5, 31), time(8, 0), end_date=day))
    await store.insert_event(make_event("event_other_day", date(2024, 6, 2), time(1, 0), end_date=date(2024, 6, 2)))
    await store.insert_task(make_task("task_other_day", date(2024, 6, 2), time(1, 0)))

    items = await store.get_items_by_date(day)

    assert [i.id for i in items] == ["task_all_day", "event_all_day", "event_morning", "task_noon"]
    assert [i.type for i in items] == ["task", "event", "event", "task"]


@pytest.mark.asyncio
async def test_items_by_date_keeps_task_before_event_on_equal_time(store):
    day = date(2024, 6, 1)
    await store.insert_event(make_event("e", day, time(9, 0), end_date=day))
    await store.insert_task(make_task("t", day, time(9, 0)))

    assert [i.id for i in await store.get_items_by_date(day)] == ["t", "e"]


@pytest.mark.asyncio
async def test_get_item_looks_in_both_tables(store):
    await store.insert_task(make_task("task_x"))
    await store.insert_event(make_event("event_x"))

    assert (await store.get_item("task_x")).type == "task"
    assert (await store.get_item("event_x")).type == "event"
    assert await store.get_item("unknown") is None


@pytest.mark.asyncio
async def test_corrupted_row_is_rejected(store):
    conn = store._get_conn()
    conn.execute(
        "INSERT INTO tasks (id, title, startDate, repeatFrequency, createdAt, updatedAt) "
        "VALUES ('task_bad', 'Broken', 'June 1st', 'none', '2024-06-01T00:00:00+00:00', '2024-06-01T00:00:00+00:00')"
    )
    conn.commit()

    with pytest.raises(StorageCorruption):
        await store.get_all_tasks()


@pytest.mark.asyncio
async def test_row_with_empty_title_is_rejected(store):
    conn = store._get_conn()
    conn.execute(
        "INSERT INTO events (id, title, startDate, repeatFrequency, createdAt, updatedAt) "
        "VALUES ('event_bad', '', '2024-06-01', 'none', '2024-06-01T00:00:00+00:00', '2024-06-01T00:00:00+00:00')"
    )
    conn.commit()

    with pytest.raises(StorageCorruption):
        await store.get_item("event_bad")


@pytest.mark.asyncio
async def test_unopenable_database(tmp_path):
    store = ItemStore(tmp_path / "missing-dir" / "daymark.db")
    with pytest.raises(StorageUnavailable):
        await store.init()


@pytest.mark.asyncio
async def test_reading_before_init_is_storage_unavailable(tmp_path):
    store = ItemStore(tmp_path / "daymark.db")
    with pytest.raises(StorageUnavailable):
        await store.get_all_tasks()
    await store.close()


@pytest.mark.asyncio
async def test_connection_is_opened_once_and_reused(store):
    first = store._get_conn()
    await store.insert_task(make_task("task_conn"))
    assert store._get_conn() is first
