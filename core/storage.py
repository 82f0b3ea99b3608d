import asyncio
import logging
import os
import sqlite3
from datetime import date, datetime, time
from pathlib import Path
from typing import List, Optional, Union

from .clock import format_date, format_time
from .errors import ConstraintError, InvalidArgument, StorageCorruption, StorageUnavailable
from .models import CalendarEvent, CalendarItem, Task
from .views import merge_items

logger = logging.getLogger(__name__)

# --- DB path is resolved against the project root ---
ROOT_DIR = Path(__file__).resolve().parent.parent


def default_db_path() -> Path:
    path = Path(os.getenv("DB_PATH", "data.db"))
    if not path.is_absolute():
        path = ROOT_DIR / path
    return path


TASK_COLUMNS = (
    "id, title, description, startDate, startTime, repeatFrequency, "
    "notificationId, createdAt, updatedAt"
)
EVENT_COLUMNS = (
    "id, title, description, startDate, startTime, endDate, endTime, "
    "repeatFrequency, notificationId, createdAt, updatedAt"
)


def _opt_date(value: Optional[date]) -> Optional[str]:
    return format_date(value) if value is not None else None


def _opt_time(value: Optional[time]) -> Optional[str]:
    return format_time(value) if value is not None else None


def _required(row: sqlite3.Row, key: str):
    value = row[key]
    if value is None or value == "":
        raise StorageCorruption(f"row {row['id']!r}: column {key} is empty")
    return value


def _load_date(row: sqlite3.Row, key: str, required: bool = True) -> Optional[date]:
    value = _required(row, key) if required else row[key]
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise StorageCorruption(f"row {row['id']!r}: bad {key} {value!r}")


def _load_time(row: sqlite3.Row, key: str) -> Optional[time]:
    value = row[key]
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        raise StorageCorruption(f"row {row['id']!r}: bad {key} {value!r}")


def _load_instant(row: sqlite3.Row, key: str) -> datetime:
    value = _required(row, key)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise StorageCorruption(f"row {row['id']!r}: bad {key} {value!r}")


def row_to_task(row: sqlite3.Row) -> Task:
    if row["id"] is None:
        raise StorageCorruption("task row without id")
    try:
        return Task(
            id=row["id"],
            title=_required(row, "title"),
            description=row["description"],
            start_date=_load_date(row, "startDate"),
            start_time=_load_time(row, "startTime"),
            repeat_frequency=_required(row, "repeatFrequency"),
            notification_id=row["notificationId"],
            created_at=_load_instant(row, "createdAt"),
            updated_at=_load_instant(row, "updatedAt"),
        )
    except InvalidArgument as e:
        raise StorageCorruption(f"task row {row['id']!r}: {e}")


def row_to_event(row: sqlite3.Row) -> CalendarEvent:
    if row["id"] is None:
        raise StorageCorruption("event row without id")
    try:
        return CalendarEvent(
            id=row["id"],
            title=_required(row, "title"),
            description=row["description"],
            start_date=_load_date(row, "startDate"),
            start_time=_load_time(row, "startTime"),
            end_date=_load_date(row, "endDate", required=False),
            end_time=_load_time(row, "endTime"),
            repeat_frequency=_required(row, "repeatFrequency"),
            notification_id=row["notificationId"],
            created_at=_load_instant(row, "createdAt"),
            updated_at=_load_instant(row, "updatedAt"),
        )
    except InvalidArgument as e:
        raise StorageCorruption(f"event row {row['id']!r}: {e}")


class ItemStore:
    """
    Tasks and events in one sqlite database.

    The connection is opened on first use and reused until close(). Build one
    store at startup and hand it to whoever needs it.
    """

    def __init__(self, db_path: Union[str, Path, None] = None):
        self.db_path = Path(db_path) if db_path is not None else default_db_path()
        self._conn: Optional[sqlite3.Connection] = None
        self._write_lock = asyncio.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(self.db_path, check_same_thread=False)
            except sqlite3.Error as e:
                raise StorageUnavailable(f"cannot open {self.db_path}: {e}")
            conn.row_factory = sqlite3.Row
            self._conn = conn
            logger.debug("opened item store at %s", self.db_path)
        return self._conn

    async def _write(self, sql: str, params: tuple = ()) -> int:
        async with self._write_lock:
            conn = self._get_conn()
            try:
                cur = conn.execute(sql, params)
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ConstraintError(str(e))
            return cur.rowcount

    async def _read(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as e:
            raise StorageUnavailable(f"cannot read {self.db_path}: {e}")

    async def init(self):
        async with self._write_lock:
            conn = self._get_conn()
            try:
                self._create_tables(conn)
            except sqlite3.DatabaseError as e:
                raise StorageUnavailable(f"cannot initialize {self.db_path}: {e}")
        logger.info("item store initialized: %s", self.db_path)

    @staticmethod
    def _create_tables(conn: sqlite3.Connection):
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                startDate TEXT NOT NULL,
                startTime TEXT,
                repeatFrequency TEXT NOT NULL DEFAULT 'none',
                notificationId TEXT,
                createdAt TEXT NOT NULL,
                updatedAt TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                startDate TEXT NOT NULL,
                startTime TEXT,
                endDate TEXT,
                endTime TEXT,
                repeatFrequency TEXT NOT NULL DEFAULT 'none',
                notificationId TEXT,
                createdAt TEXT NOT NULL,
                updatedAt TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_start ON tasks (startDate, startTime);
            CREATE INDEX IF NOT EXISTS idx_events_start ON events (startDate, startTime);
            """
        )
        conn.commit()

    async def close(self):
        async with self._write_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # --- Tasks ---

    async def insert_task(self, task: Task):
        await self._write(
            f"INSERT INTO tasks ({TASK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                task.id,
                task.title,
                task.description or None,
                format_date(task.start_date),
                _opt_time(task.start_time),
                task.repeat_frequency,
                task.notification_id or None,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
            ),
        )

    async def update_task(self, task: Task) -> bool:
        """Overwrite the row with task's id. Returns False if there is no such row."""
        count = await self._write(
            """
            UPDATE tasks
            SET title = ?, description = ?, startDate = ?, startTime = ?,
                repeatFrequency = ?, notificationId = ?, updatedAt = ?
            WHERE id = ?
            """,
            (
                task.title,
                task.description or None,
                format_date(task.start_date),
                _opt_time(task.start_time),
                task.repeat_frequency,
                task.notification_id or None,
                task.updated_at.isoformat(),
                task.id,
            ),
        )
        return count > 0

    async def delete_task(self, item_id: str):
        await self._write("DELETE FROM tasks WHERE id = ?", (item_id,))

    async def get_all_tasks(self) -> List[Task]:
        rows = await self._read(
            f"SELECT {TASK_COLUMNS} FROM tasks ORDER BY startDate, startTime, rowid"
        )
        return [row_to_task(r) for r in rows]

    async def get_tasks_by_date(self, day: date) -> List[Task]:
        rows = await self._read(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE startDate = ? ORDER BY startTime, rowid",
            (format_date(day),),
        )
        return [row_to_task(r) for r in rows]

    async def get_tasks_by_date_range(self, start: date, end: date) -> List[Task]:
        rows = await self._read(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE startDate BETWEEN ? AND ? "
            "ORDER BY startDate, startTime, rowid",
            (format_date(start), format_date(end)),
        )
        return [row_to_task(r) for r in rows]

    # --- Events ---

    async def insert_event(self, event: CalendarEvent):
        await self._write(
            f"INSERT INTO events ({EVENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                event.id,
                event.title,
                event.description or None,
                format_date(event.start_date),
                _opt_time(event.start_time),
                _opt_date(event.end_date),
                _opt_time(event.end_time),
                event.repeat_frequency,
                event.notification_id or None,
                event.created_at.isoformat(),
                event.updated_at.isoformat(),
            ),
        )

    async def update_event(self, event: CalendarEvent) -> bool:
        """Overwrite the row with event's id. Returns False if there is no such row."""
        count = await self._write(
            """
            UPDATE events
            SET title = ?, description = ?, startDate = ?, startTime = ?,
                endDate = ?, endTime = ?, repeatFrequency = ?,
                notificationId = ?, updatedAt = ?
            WHERE id = ?
            """,
            (
                event.title,
                event.description or None,
                format_date(event.start_date),
                _opt_time(event.start_time),
                _opt_date(event.end_date),
                _opt_time(event.end_time),
                event.repeat_frequency,
                event.notification_id or None,
                event.updated_at.isoformat(),
                event.id,
            ),
        )
        return count > 0

    async def delete_event(self, item_id: str):
        await self._write("DELETE FROM events WHERE id = ?", (item_id,))

    async def get_all_events(self) -> List[CalendarEvent]:
        rows = await self._read(
            f"SELECT {EVENT_COLUMNS} FROM events ORDER BY startDate, startTime, rowid"
        )
        return [row_to_event(r) for r in rows]

    async def get_events_by_date_range(self, range_start: date, range_end: date) -> List[CalendarEvent]:
        # An event without endDate stays open forward here (the sweeper treats it
        # as ending on startDate instead).
        rows = await self._read(
            f"""
            SELECT {EVENT_COLUMNS} FROM events
            WHERE startDate <= ?
              AND (endDate >= ? OR endDate IS NULL)
            ORDER BY startDate, startTime, rowid
            """,
            (format_date(range_end), format_date(range_start)),
        )
        return [row_to_event(r) for r in rows]

    # --- Combined ---

    async def get_items_by_date(self, day: date) -> List[CalendarItem]:
        tasks = await self.get_tasks_by_date(day)
        events = await self.get_events_by_date_range(day, day)
        return merge_items(tasks, events)

    async def get_item(self, item_id: str) -> Optional[CalendarItem]:
        rows = await self._read(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?", (item_id,))
        if rows:
            return row_to_task(rows[0])
        rows = await self._read(f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?", (item_id,))
        if rows:
            return row_to_event(rows[0])
        return None

    # --- Cleanup ---

    async def delete_expired_tasks(self, current_date: str, current_time: str) -> int:
        return await self._write(
            """
            DELETE FROM tasks
            WHERE repeatFrequency = 'none'
              AND (
                startDate < ?
                OR (startDate = ? AND (startTime IS NULL OR startTime < ?))
              )
            """,
            (current_date, current_date, current_time),
        )

    async def delete_expired_events(self, current_date: str, current_time: str) -> int:
        return await self._write(
            """
            DELETE FROM events
            WHERE repeatFrequency = 'none'
              AND (
                COALESCE(endDate, startDate) < ?
                OR (
                  COALESCE(endDate, startDate) = ?
                  AND (COALESCE(endTime, startTime) IS NULL OR COALESCE(endTime, startTime) < ?)
                )
              )
            """,
            (current_date, current_date, current_time),
        )
