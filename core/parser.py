import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from .errors import InvalidArgument
from .models import ItemType, RepeatFrequency

# --- Keywords ---

WEEKDAYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

REPEAT_PATTERNS = (
    (re.compile(r"\b(daily|every\s+day)\b", re.IGNORECASE), "daily"),
    (re.compile(r"\b(weekly|every\s+week)\b", re.IGNORECASE), "weekly"),
)

# --- Regexes ---

TIME_REGEX = re.compile(r"\b(?:at\s+)?([01]?\d|2[0-3]):([0-5]\d)\b", re.IGNORECASE)
# "from", "to", "until" or a dash in front of a date belongs to the date
CONNECTOR = r"(?:\b(?:from|to|until|till)\s+|-\s*)?"

ISO_DATE_REGEX = re.compile(CONNECTOR + r"\b(\d{4})-(\d{2})-(\d{2})\b")
DATE_REGEX = re.compile(CONNECTOR + r"\b(\d{1,2})\.(\d{1,2})(?:\.(\d{2,4}))?\b")
RELATIVE_REGEX = re.compile(CONNECTOR + r"\b(today|tomorrow)\b", re.IGNORECASE)
WEEKDAY_REGEX = re.compile(
    CONNECTOR + r"\b(?:on\s+|next\s+)?(" + "|".join(sorted(WEEKDAYS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
ALL_DAY_REGEX = re.compile(r"\ball[\s-]day\b", re.IGNORECASE)

MAX_TITLE = 120


@dataclass
class ParsedEntry:
    kind: ItemType
    title: str
    description: str
    start_date: date
    end_date: Optional[date]
    at: Optional[time]
    all_day: bool
    repeat: RepeatFrequency


# --- Helpers ---

def _strip_spaces(s: str) -> str:
    return " ".join(s.split())


def _cut(s: str, m: re.Match) -> str:
    return s[:m.start()] + " " + s[m.end():]


def _next_weekday(today: date, target_weekday: int) -> date:
    days_ahead = (target_weekday - today.weekday()) % 7
    if days_ahead == 0:
        days_ahead = 7
    return today + timedelta(days=days_ahead)


def _year_for(day: int, month: int, today: date, year_raw: Optional[str]) -> int:
    if year_raw:
        y = int(year_raw)
        return 2000 + y if y < 100 else y
    # "05.01" typed in December means next January
    return today.year + 1 if (month, day) < (today.month, today.day) else today.year


# --- Dates ---

def parse_dates(text: str, today: date) -> Tuple[List[date], str]:
    """
    All dates mentioned in text, in order of appearance, and the text with
    them removed.
    """
    found: List[Tuple[int, date]] = []
    rest = text

    for regex in (ISO_DATE_REGEX, DATE_REGEX, RELATIVE_REGEX, WEEKDAY_REGEX):
        while True:
            m = regex.search(rest)
            if not m:
                break
            d = _match_to_date(regex, m, today)
            if d is not None:
                found.append((m.start(), d))
            # keep offsets stable for the ordering by padding the cut
            rest = rest[:m.start()] + " " * (m.end() - m.start()) + rest[m.end():]

    found.sort(key=lambda pair: pair[0])
    return [d for _pos, d in found], rest


def _match_to_date(regex: re.Pattern, m: re.Match, today: date) -> Optional[date]:
    try:
        if regex is ISO_DATE_REGEX:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if regex is DATE_REGEX:
            day, month = int(m.group(1)), int(m.group(2))
            return date(_year_for(day, month, today, m.group(3)), month, day)
    except ValueError:
        return None

    word = m.group(1).lower()
    if word == "today":
        return today
    if word == "tomorrow":
        return today + timedelta(days=1)
    return _next_weekday(today, WEEKDAYS[word])


# --- Time and repeat ---

def parse_time_of_day(text: str) -> Tuple[Optional[time], str]:
    m = TIME_REGEX.search(text)
    if not m:
        return None, text
    return time(int(m.group(1)), int(m.group(2))), _cut(text, m)


def parse_repeat(text: str) -> Tuple[RepeatFrequency, str]:
    for regex, repeat in REPEAT_PATTERNS:
        m = regex.search(text)
        if m:
            return repeat, _cut(text, m)
    return "none", text


# --- split_title_desc ---

def split_title_desc(text: str) -> Tuple[str, str]:
    """
    - first line -> title,
    - the rest -> description.
    """
    text = text.strip()
    parts = text.split("\n", 1)
    title = parts[0].strip()
    desc = parts[1].strip() if len(parts) > 1 else ""
    return title, desc


def _clean_title(title: str) -> str:
    title = _strip_spaces(title).strip(" ,.-")
    if len(title) > MAX_TITLE:
        title = title[:MAX_TITLE - 3].rstrip() + "..."
    return title


# --- Entry ---

def parse_entry(
    text: str,
    now: Optional[datetime] = None,
    kind: Optional[ItemType] = None,
) -> ParsedEntry:
    """
    Turn a chat message into something that can be saved.

    Two dates make an event spanning them; one date (or none, meaning today)
    makes a task unless `kind` says otherwise. Without a time the entry is
    all-day.
    """
    if now is None:
        now = datetime.now()
    today = now.date()

    title, desc = split_title_desc(text)
    if not title:
        raise InvalidArgument("Please enter a title")

    all_day_forced = bool(ALL_DAY_REGEX.search(title))
    title = ALL_DAY_REGEX.sub(" ", title)

    repeat, title = parse_repeat(title)
    at, title = parse_time_of_day(title)
    dates, title = parse_dates(title, today)

    title = _clean_title(title)
    if not title:
        raise InvalidArgument("Please enter a title")

    start_date = dates[0] if dates else today
    end_date = dates[1] if len(dates) > 1 else None
    if end_date is not None and end_date < start_date:
        start_date, end_date = end_date, start_date

    if kind is None:
        kind = "event" if end_date is not None else "task"
    if kind == "event" and end_date is None:
        end_date = start_date

    all_day = all_day_forced or at is None
    return ParsedEntry(
        kind=kind,
        title=title,
        description=desc,
        start_date=start_date,
        end_date=end_date if kind == "event" else None,
        at=None if all_day else at,
        all_day=all_day,
        repeat=repeat,
    )
