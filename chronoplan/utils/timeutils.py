from datetime import date, datetime, time, timedelta
from typing import Tuple

from chronoplan.models.entities import TimeSlot

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def parse_time(value: str) -> int:
    """Convert "HH:MM" into minutes after midnight."""
    try:
        hours_str, _, minutes_str = value.partition(":")
        hours = int(hours_str)
        minutes = int(minutes_str) if minutes_str else 0
    except (AttributeError, ValueError):
        raise ValueError(f"invalid time of day: {value!r}")
    if not (0 <= hours <= 24 and 0 <= minutes < 60) or hours * 60 + minutes > 1440:
        raise ValueError(f"invalid time of day: {value!r}")
    return hours * 60 + minutes


def format_time(moment: datetime) -> str:
    return f"{moment.hour:02d}:{moment.minute:02d}"


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_name(day: date) -> str:
    return DAY_NAMES[day.weekday()]


def at_minutes(day: date, minutes: int) -> datetime:
    """Absolute datetime for `minutes` after midnight of `day` (24:00 rolls over)."""
    return datetime.combine(day, time()) + timedelta(minutes=minutes)


def slot_interval(slot: TimeSlot, fallback_day: date) -> Tuple[datetime, datetime]:
    day = slot.slot_date or fallback_day
    start = at_minutes(day, parse_time(slot.start))
    end = at_minutes(day, parse_time(slot.end))
    if end <= start:
        end += timedelta(days=1)
    return start, end


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def end_of_day(now: datetime, hour: int) -> datetime:
    return datetime.combine(now.date(), time(hour=hour))
