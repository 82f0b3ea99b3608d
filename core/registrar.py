import asyncio
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .errors import RegistrarError
from .scheduler import TriggerDescriptor

logger = logging.getLogger(__name__)

Deliver = Callable[[str, str, Dict[str, str]], Awaitable[None]]

INTERVALS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}


class LocalRegistrar:
    """
    Trigger registrar kept in a sqlite table and fired by polling pop_due().

    Used when there is no platform alarm service: a loop (see the telegram
    adapter) asks for due triggers and delivers them itself.
    """

    def __init__(self, db_path: Union[str, Path], deliver: Optional[Deliver] = None):
        self.db_path = Path(db_path)
        self.deliver = deliver
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS triggers (
                        id TEXT PRIMARY KEY NOT NULL,
                        title TEXT NOT NULL,
                        body TEXT,
                        fire_at TEXT NOT NULL,
                        repeat_interval TEXT,
                        exact INTEGER NOT NULL DEFAULT 1,
                        item_id TEXT
                    )
                    """
                )
                conn.commit()
            except sqlite3.Error as e:
                raise RegistrarError(f"cannot open trigger table in {self.db_path}: {e}")
            self._conn = conn
        return self._conn

    async def _execute(self, sql: str, params: tuple = ()) -> List[tuple]:
        async with self._lock:
            conn = self._get_conn()
            try:
                rows = conn.execute(sql, params).fetchall()
                conn.commit()
            except sqlite3.Error as e:
                raise RegistrarError(str(e))
            return rows

    async def submit_trigger(self, descriptor: TriggerDescriptor) -> str:
        trigger_id = f"trg_{uuid.uuid4().hex}"
        await self._execute(
            """
            INSERT INTO triggers (id, title, body, fire_at, repeat_interval, exact, item_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                trigger_id,
                descriptor.title,
                descriptor.body,
                descriptor.fire_at.isoformat(),
                descriptor.repeat_interval,
                int(descriptor.exact),
                descriptor.metadata.get("item_id"),
            ),
        )
        return trigger_id

    async def submit_immediate(self, title: str, body: str, metadata: Dict[str, str]):
        if self.deliver is not None:
            try:
                await self.deliver(title, body, metadata)
            except Exception as e:
                raise RegistrarError(f"immediate delivery failed: {e}")
            return
        # Nobody to deliver to right now: queue it for the next pop_due().
        await self.submit_trigger(
            TriggerDescriptor(
                title=title,
                body=body,
                fire_at=datetime.now().replace(second=0, microsecond=0),
                metadata=dict(metadata),
            )
        )

    async def cancel_trigger(self, trigger_id: str):
        await self._execute("DELETE FROM triggers WHERE id = ?", (trigger_id,))

    async def cancel_all_triggers(self):
        await self._execute("DELETE FROM triggers")

    async def pending(self) -> List[Tuple[str, TriggerDescriptor]]:
        rows = await self._execute(
            "SELECT id, title, body, fire_at, repeat_interval, exact, item_id "
            "FROM triggers ORDER BY fire_at, id"
        )
        return [(row[0], _row_to_descriptor(row)) for row in rows]

    async def pop_due(self, now: Optional[datetime] = None) -> List[Tuple[str, TriggerDescriptor]]:
        """
        Triggers due at `now`. One-shot triggers are removed; repeating ones
        move forward by their interval until they are in the future again.
        """
        if now is None:
            now = datetime.now()

        due = [
            (trigger_id, descriptor)
            for trigger_id, descriptor in await self.pending()
            if descriptor.fire_at <= now
        ]

        for trigger_id, descriptor in due:
            step = INTERVALS.get(descriptor.repeat_interval or "")
            if step is None:
                await self.cancel_trigger(trigger_id)
                continue
            next_at = descriptor.fire_at
            while next_at <= now:
                next_at += step
            await self._execute(
                "UPDATE triggers SET fire_at = ? WHERE id = ?",
                (next_at.isoformat(), trigger_id),
            )
        return due

    async def close(self):
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def _row_to_descriptor(row: tuple) -> TriggerDescriptor:
    _id, title, body, fire_at, repeat_interval, exact, item_id = row
    return TriggerDescriptor(
        title=title,
        body=body or "",
        fire_at=datetime.fromisoformat(fire_at),
        repeat_interval=repeat_interval,
        exact=bool(exact),
        metadata={"item_id": item_id or ""},
    )
