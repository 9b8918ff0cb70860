"""
Candidate Slot Generation

Enumerates the time slots a task of a given duration could occupy. Slots are
produced lazily on a fixed grid so the optimizer can stop consuming early and
so nothing is materialized for days that are never searched.

Grid:
    interval = max(15, minimum_block_duration) minutes
    starts   = work_start, work_start + interval, ... while start + duration <= work_end

Complexity: O((work_end - work_start) / interval) per day.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, List, Optional

from chronoplan.models.constraints import SchedulingContext
from chronoplan.models.entities import TimeSlot
from chronoplan.utils.timeutils import at_minutes, day_name, format_minutes, parse_time

MIN_SLOT_INTERVAL = 15


def slot_interval(context: SchedulingContext) -> int:
    return max(MIN_SLOT_INTERVAL, context.user.context_switching.minimum_block_duration)


def search_days(start: date, window_days: int) -> List[date]:
    return [start + timedelta(days=offset) for offset in range(max(0, window_days))]


def generate_slots(
    day: date,
    duration: int,
    window_start: int,
    window_end: int,
    interval: int,
    not_before: Optional[datetime] = None,
) -> Iterator[TimeSlot]:
    """
    Yield grid-aligned slots of `duration` minutes inside [window_start, window_end].

    Args:
        day: Calendar date the slots belong to
        duration: Required length in minutes
        window_start: Window opening, minutes after midnight
        window_end: Window closing, minutes after midnight
        interval: Grid spacing in minutes
        not_before: Skip slots starting before this moment (e.g. "now")

    Yields:
        TimeSlot with "HH:MM" bounds, a one-element weekday list and the date set
    """
    if duration <= 0 or interval <= 0:
        return
    name = day_name(day)
    minutes = window_start
    while minutes + duration <= window_end:
        if not_before is None or at_minutes(day, minutes) >= not_before:
            yield TimeSlot(
                start=format_minutes(minutes),
                end=format_minutes(minutes + duration),
                days=[name],
                slot_date=day,
            )
        minutes += interval


def generate_time_slots_for_day(
    day: date,
    duration: int,
    context: SchedulingContext,
    not_before: Optional[datetime] = None,
) -> Iterator[TimeSlot]:
    work_start = parse_time(context.user.working_hours.start)
    work_end = parse_time(context.user.working_hours.end)
    return generate_slots(day, duration, work_start, work_end, slot_interval(context), not_before)


def window_applies(window: TimeSlot, day: date) -> bool:
    if window.slot_date is not None:
        return window.slot_date == day
    if not window.days:
        return True
    return day_name(day) in {d.lower() for d in window.days}


def expand_windows(
    windows: Iterable[TimeSlot],
    days: Iterable[date],
    duration: int,
    interval: int,
    not_before: Optional[datetime] = None,
) -> Iterator[TimeSlot]:
    """Expand recurring user windows (e.g. preferred deep-work times) into dated candidates."""
    windows = list(windows)
    for day in days:
        for window in windows:
            if window_applies(window, day):
                yield from generate_slots(
                    day, duration, parse_time(window.start), parse_time(window.end), interval, not_before
                )
