from datetime import date, datetime, time, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from cleanouts.core.config import settings


def generate_time_slots(
    open_hour: int,
    last_start_hour: int,
    interval_minutes: int = 60,
) -> List[time]:
    """
    Return the fixed daily grid of candidate start times.

    The grid runs from ``open_hour``:00 up to and including ``last_start_hour``:00
    in ``interval_minutes`` steps. Identical input always yields the same list.
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")

    slots: List[time] = []
    minute = open_hour * 60
    last = last_start_hour * 60
    while minute <= last and minute < 24 * 60:
        slots.append(time(minute // 60, minute % 60))
        minute += interval_minutes
    return slots


def business_time_slots() -> List[time]:
    """The slot grid for the configured business hours."""
    return generate_time_slots(
        settings.BUSINESS_OPEN_HOUR,
        settings.LAST_SLOT_HOUR,
        settings.SLOT_INTERVAL_MINUTES,
    )


def business_open_minute() -> int:
    return settings.BUSINESS_OPEN_HOUR * 60


def business_close_minute() -> int:
    return settings.BUSINESS_CLOSE_HOUR * 60


def business_now() -> datetime:
    """Current wall-clock time in the business timezone, returned naive like stored times."""
    return datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).replace(tzinfo=None)


def minutes_of(value: time) -> int:
    """Minutes since midnight."""
    return value.hour * 60 + value.minute


def add_hours(start: time, hours: int) -> Optional[time]:
    """
    Wall-clock time ``hours`` after ``start``.

    Returns None when the result would fall on the next day; callers treat that
    as outside business hours.
    """
    end = datetime.combine(date.min, start) + timedelta(hours=hours)
    if end.date() != date.min:
        return None
    return end.time()


def format_time(value: time) -> str:
    """HH:MM, the format slots are exchanged in."""
    return value.strftime("%H:%M")


def parse_time(value: str) -> time:
    """Parse 'H:MM' / 'HH:MM' (optionally with seconds) into a time."""
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time format: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)
