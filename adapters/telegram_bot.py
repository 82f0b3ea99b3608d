import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from datetime import date, datetime
from html import escape
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv
from aiogram import Bot, Dispatcher, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from aiogram.client.default import DefaultBotProperties

# === Project root and config ===

ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.append(str(ROOT_DIR))
load_dotenv(ROOT_DIR / "config.env")

from core.cleanup import sweep  # noqa: E402
from core.clock import format_time, parse_date  # noqa: E402
from core.errors import DaymarkError, InvalidArgument  # noqa: E402
from core.models import CalendarItem  # noqa: E402
from core.parser import parse_entry  # noqa: E402
from core.registrar import LocalRegistrar  # noqa: E402
from core.scheduler import ReminderScheduler, TriggerDescriptor  # noqa: E402
from core.service import ReminderService  # noqa: E402
from core.storage import ItemStore, default_db_path  # noqa: E402
from core.views import busy_days  # noqa: E402

logger = logging.getLogger(__name__)

dp = Dispatcher()

WEEKDAY_HEADER = "Mo Tu We Th Fr Sa Su"
REPEAT_MARKS = {"none": "", "daily": " 🔁 daily", "weekly": " 🔁 weekly"}


@dataclass
class Settings:
    bot_token: str
    owner_chat_id: int
    db_path: Path
    triggers_db_path: Path
    log_level: str = "INFO"
    poll_seconds: int = 30


def load_settings() -> Settings:
    bot_token = os.getenv("BOT_TOKEN")
    if not bot_token:
        raise RuntimeError("BOT_TOKEN is not set (check config.env in the project root)")

    owner_raw = os.getenv("OWNER_CHAT_ID", "").strip()
    if not owner_raw.lstrip("-").isdigit():
        raise RuntimeError("OWNER_CHAT_ID is not set or not a number")

    db_path = default_db_path()
    triggers_raw = os.getenv("TRIGGERS_DB_PATH", "").strip()
    triggers_db_path = Path(triggers_raw) if triggers_raw else db_path
    if not triggers_db_path.is_absolute():
        triggers_db_path = ROOT_DIR / triggers_db_path

    return Settings(
        bot_token=bot_token,
        owner_chat_id=int(owner_raw),
        db_path=db_path,
        triggers_db_path=triggers_db_path,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        poll_seconds=int(os.getenv("REMINDER_POLL_SECONDS", "30")),
    )


# === Formatting ===


def format_item_line(item: CalendarItem) -> str:
    title = escape(item.title)
    icon = "📝" if item.type == "task" else "📆"
    when = f"<b>{format_time(item.start_time)}</b>" if item.start_time else "all day"

    span = ""
    if item.type == "event" and item.end_date and item.end_date != item.start_date:
        span = f" ({item.start_date:%d.%m}–{item.end_date:%d.%m})"

    return f"{icon} {when} {title}{span}{REPEAT_MARKS.get(item.repeat_frequency, '')}"


def format_day(day: date, items: Sequence[CalendarItem]) -> str:
    header = f"<b>{day:%a %d.%m.%Y}</b>"
    if not items:
        return f"{header}\nNothing planned."
    lines = [header]
    for item in items:
        lines.append(format_item_line(item))
    return "\n".join(lines)


def format_month_grid(month: date, days: Sequence[date], marked: Sequence[date]) -> str:
    """
    Monospace month grid; days with items are marked with '*', days of the
    neighbouring months are dimmed to '·'.
    """
    marked = set(marked)
    lines = [f"<b>{month:%B %Y}</b>", "<pre>", WEEKDAY_HEADER]
    for week_start in range(0, len(days), 7):
        cells = []
        for day in days[week_start:week_start + 7]:
            if day.month != month.month:
                cells.append(" · ")
            else:
                cells.append(f"{day.day:>2}" + ("*" if day in marked else " "))
        lines.append("".join(cells).rstrip())
    lines.append("</pre>")
    return "\n".join(lines)


def format_item_list(items: Sequence[CalendarItem]) -> str:
    if not items:
        return "Nothing saved."
    lines = []
    for idx, item in enumerate(items, start=1):
        lines.append(f"{idx}. {item.start_date:%d.%m.%Y} {format_item_line(item)}\n   <code>{item.id}</code>")
    return "\n".join(lines)


def format_reminder(descriptor: TriggerDescriptor) -> str:
    text = f"⏰ <b>{escape(descriptor.title)}</b>"
    if descriptor.body:
        text += f"\n{escape(descriptor.body)}"
    return text


def _is_owner(message: Message, owner_chat_id: int) -> bool:
    return message.chat.id == owner_chat_id


# === Commands ===


@dp.message(Command("start"))
async def cmd_start(message: Message, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    await message.answer(
        "Daymark.\n"
        "- Write a text: one date makes a task, two dates make an event.\n"
        "  e.g. <code>Dentist tomorrow 14:30</code>, <code>Trip 01.06 - 03.06 all day</code>,\n"
        "  <code>Standup weekly mon 10:00</code>.\n"
        "- /today: today's items.\n"
        "- /day YYYY-MM-DD: items for a day.\n"
        "- /month [YYYY-MM]: month grid.\n"
        "- /list: everything with ids.\n"
        "- /task, /event: force the kind.\n"
        "- /delete ID: delete an item and its reminders.\n"
        "- /sweep: remove past items now."
    )


@dp.message(Command("today"))
async def cmd_today(message: Message, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    today = datetime.now().date()
    items = await service.get_items_by_date(today)
    await message.answer(format_day(today, items))


@dp.message(Command("day"))
async def cmd_day(message: Message, command: CommandObject, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    try:
        day = parse_date((command.args or "").strip())
    except InvalidArgument as e:
        await message.answer(escape(str(e)))
        return
    items = await service.get_items_by_date(day)
    await message.answer(format_day(day, items))


@dp.message(Command("month"))
async def cmd_month(message: Message, command: CommandObject, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    args = (command.args or "").strip()
    try:
        month = parse_date(f"{args}-01") if args else datetime.now().date().replace(day=1)
    except InvalidArgument:
        await message.answer("Expected /month YYYY-MM")
        return
    days, items = await service.get_items_in_month(month)
    await message.answer(format_month_grid(month, days, busy_days(items, days)))


@dp.message(Command("list"))
async def cmd_list(message: Message, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    tasks = await service.store.get_all_tasks()
    events = await service.store.get_all_events()
    items: List[CalendarItem] = sorted(
        [*tasks, *events],
        key=lambda i: (i.start_date, i.start_time is not None, i.start_time or datetime.min.time()),
    )
    await message.answer(format_item_list(items))


@dp.message(Command("delete"))
async def cmd_delete(message: Message, command: CommandObject, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    item_id = (command.args or "").strip()
    if not item_id:
        await message.answer("Expected /delete ID (see /list)")
        return
    try:
        item = await service.delete_by_id(item_id)
    except DaymarkError as e:
        logger.error("Failed to delete %s: %s", item_id, e)
        await message.answer("Failed to delete.")
        return
    if item is None:
        await message.answer("No such item.")
    else:
        await message.answer(f"Deleted: {escape(item.title)}")


@dp.message(Command("sweep"))
async def cmd_sweep(message: Message, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    tasks_removed, events_removed = await service.sweep()
    await message.answer(f"Removed {tasks_removed} tasks and {events_removed} events.")


async def _save_text(message: Message, service: ReminderService, text: str, kind: Optional[str] = None):
    try:
        entry = parse_entry(text, kind=kind)
        item = await service.save_entry(entry)
    except InvalidArgument as e:
        await message.answer(escape(str(e)))
        return
    except DaymarkError as e:
        logger.error("Error saving: %s", e)
        await message.answer("Failed to save. Please try again.")
        return

    noun = "Task" if item.type == "task" else "Event"
    await message.answer(f"{noun} created: {format_item_line(item)}\n{item.start_date:%d.%m.%Y}")


@dp.message(Command("task"))
async def cmd_task(message: Message, command: CommandObject, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    await _save_text(message, service, command.args or "", kind="task")


@dp.message(Command("event"))
async def cmd_event(message: Message, command: CommandObject, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    await _save_text(message, service, command.args or "", kind="event")


# === Free text ===


@dp.message(F.text, ~F.text.startswith("/"))
async def handle_text(message: Message, service: ReminderService, owner_chat_id: int):
    if not _is_owner(message, owner_chat_id):
        return
    await _save_text(message, service, message.text)


# === Reminder loop ===


async def deliver_due(registrar: LocalRegistrar, bot: Bot, chat_id: int, now: Optional[datetime] = None) -> int:
    sent = 0
    for trigger_id, descriptor in await registrar.pop_due(now):
        try:
            await bot.send_message(chat_id, format_reminder(descriptor))
            sent += 1
        except Exception as e:
            logger.error("Error sending reminder %s: %s", trigger_id, e)
    return sent


async def reminder_loop(registrar: LocalRegistrar, bot: Bot, chat_id: int, poll_seconds: int):
    while True:
        try:
            await deliver_due(registrar, bot, chat_id)
        except Exception as e:
            logger.error("Error in reminder_loop: %s", e)
        await asyncio.sleep(poll_seconds)


# === Entry point ===


async def main():
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    # aiogram 3.7+: parse_mode via DefaultBotProperties
    bot = Bot(settings.bot_token, default=DefaultBotProperties(parse_mode="HTML"))

    async def deliver_now(title: str, body: str, metadata):
        await bot.send_message(
            settings.owner_chat_id,
            format_reminder(TriggerDescriptor(title=title, body=body, fire_at=datetime.now(), metadata=metadata)),
        )

    store = ItemStore(settings.db_path)
    await store.init()
    await sweep(store)

    registrar = LocalRegistrar(settings.triggers_db_path, deliver=deliver_now)
    service = ReminderService(store, ReminderScheduler(registrar))

    dp["service"] = service
    dp["owner_chat_id"] = settings.owner_chat_id

    asyncio.create_task(reminder_loop(registrar, bot, settings.owner_chat_id, settings.poll_seconds))
    try:
        await dp.start_polling(bot)
    finally:
        await registrar.close()
        await store.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
