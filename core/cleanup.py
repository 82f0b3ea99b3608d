import logging
from datetime import datetime
from typing import Optional, Tuple

from .storage import ItemStore

logger = logging.getLogger(__name__)


async def sweep(store: ItemStore, now: Optional[datetime] = None) -> Tuple[int, int]:
    """
    Delete past non-repeating tasks and events.

    An event without endDate/endTime ends at its start. Registered triggers of
    the deleted rows are left alone. Never raises: on error the sweep logs and
    returns what it managed to delete, the rest waits for the next run.
    """
    if now is None:
        now = datetime.now()
    current_date = now.strftime("%Y-%m-%d")
    current_time = now.strftime("%H:%M")

    tasks_removed = events_removed = 0
    try:
        tasks_removed = await store.delete_expired_tasks(current_date, current_time)
        events_removed = await store.delete_expired_events(current_date, current_time)
    except Exception as e:
        logger.error("Error during cleanup: %s", e)
        return tasks_removed, events_removed

    if tasks_removed or events_removed:
        logger.info("cleanup removed %d tasks and %d events", tasks_removed, events_removed)
    return tasks_removed, events_removed
