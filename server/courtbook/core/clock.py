"""Daily slot grid and local-time helpers. Pure functions, no state."""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

COURT_COUNT = 3
FIRST_START_HOUR = 6
LAST_START_HOUR = 22


@dataclass(frozen=True)
class GridSlot:
    """One-hour slot of the daily grid, times as ``HH:MM``."""

    start: str
    end: str


def _hhmm(hour: int) -> str:
    return f"{hour:02d}:00"


def build_daily_grid() -> list[GridSlot]:
    """Return the 17 one-hour slots 06:00-07:00 through 22:00-23:00."""
    return [
        GridSlot(start=_hhmm(hour), end=_hhmm(hour + 1))
        for hour in range(FIRST_START_HOUR, LAST_START_HOUR + 1)
    ]


def court_ids() -> range:
    return range(1, COURT_COUNT + 1)


def is_valid_court(court_id: int) -> bool:
    return 1 <= court_id <= COURT_COUNT


def is_valid_start(start: str) -> bool:
    return any(slot.start == start for slot in build_daily_grid())


def end_for_start(start: str) -> str:
    """End time of the grid slot starting at ``start``."""
    hour = int(start.split(":")[0])
    return _hhmm(hour + 1)


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_date(now: datetime, tz_name: str) -> date:
    """Civil date in ``tz_name`` at ``now``; naive ``now`` is read as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def is_past(slot_date: date, start: str, now: datetime, tz_name: str) -> bool:
    """
    True iff ``slot_date`` is today in ``tz_name`` and the slot has started.

    ``now`` may be naive (interpreted as UTC) or aware. Dates other than the
    local today are never past.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(ZoneInfo(tz_name))
    if slot_date != local_now.date():
        return False

    hour, minute = (int(part) for part in start.split(":"))
    return (hour, minute) <= (local_now.hour, local_now.minute)


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
