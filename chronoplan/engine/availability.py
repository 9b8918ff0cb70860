from datetime import date, datetime, timedelta
from typing import Iterable

from chronoplan.models.entities import TimeBlock, TimeSlot
from chronoplan.utils.timeutils import slot_interval


def times_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Strict interval overlap; touching intervals do not overlap."""
    return start1 < end2 and end1 > start2


def interval_is_free(
    start: datetime,
    end: datetime,
    blocks: Iterable[TimeBlock],
    clearance_minutes: int = 0,
) -> bool:
    pad = timedelta(minutes=clearance_minutes)
    for block in blocks:
        if times_overlap(start - pad, end + pad, block.start_time, block.end_time):
            return False
    return True


def is_slot_available(
    slot: TimeSlot,
    schedule: Iterable[TimeBlock],
    existing_blocks: Iterable[TimeBlock],
    fallback_day: date,
) -> bool:
    """
    Check a candidate against the schedule under construction and the
    caller's fixed blocks. This is the only guard for the no-overlap
    invariant, so it runs for every candidate before scoring.
    """
    start, end = slot_interval(slot, fallback_day)
    return interval_is_free(start, end, schedule) and interval_is_free(start, end, existing_blocks)
