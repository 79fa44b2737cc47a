from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def now_local() -> datetime:
    """Current local time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now()


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def day_window(value: date) -> tuple[datetime, datetime]:
    """Half-open [midnight, next midnight) window for a calendar day."""
    start = start_of_day(value)
    return start, start + timedelta(days=1)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, halves rounded up."""
    return int(math.floor((end - start).total_seconds() / 60 + 0.5))


def minute_of_day(value: datetime) -> int:
    return value.hour * 60 + value.minute


def format_minute_of_day(total: int) -> str:
    hours, minutes = divmod(int(total), 60)
    return f"{hours:02d}:{minutes:02d}:00"
