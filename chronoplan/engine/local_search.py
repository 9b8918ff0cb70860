"""
Local Search over an Existing Schedule.

Relocates individual blocks of an already-committed schedule to nearby
positions that suit their energy demand better. Used by
AutoScheduler.optimize_existing when relocation is enabled.

Neighbourhood:
- Shift a block by ±30, ±60, ±90 or ±120 minutes
- The shifted block must stay inside working hours on its own day
- It must not overlap any other block of the schedule
- It must not move into the past

A move is accepted only if it strictly improves the block's energy
alignment; ties keep the original position (earliest delta wins among
equally good moves). Blocks are processed in start order and each accepted
move is visible to the blocks after it.

Complexity: O(n * k * n) for n blocks and k = 8 neighbours per block.
"""

from dataclasses import replace
from datetime import datetime
from typing import Iterable, List

from chronoplan.engine.availability import interval_is_free
from chronoplan.engine.energy_adaptation import optimal_energy_for_block
from chronoplan.engine.recovery import shift_block
from chronoplan.models.constraints import SchedulingContext
from chronoplan.models.entities import TimeBlock
from chronoplan.utils.scoring import energy_level
from chronoplan.utils.timeutils import at_minutes, parse_time

SHIFT_DELTAS = (-30, 30, -60, 60, -90, 90, -120, 120)


def block_energy_alignment(block: TimeBlock, context: SchedulingContext) -> float:
    return 1 - abs(energy_level(context.energy, block.start_time.hour) - optimal_energy_for_block(block))


def within_working_hours(block: TimeBlock, context: SchedulingContext) -> bool:
    day = block.start_time.date()
    opens = at_minutes(day, parse_time(context.user.working_hours.start))
    closes = at_minutes(day, parse_time(context.user.working_hours.end))
    return opens <= block.start_time and block.end_time <= closes


def relocate_blocks(
    schedule: List[TimeBlock],
    movable_ids: Iterable[str],
    context: SchedulingContext,
    now: datetime,
) -> List[TimeBlock]:
    """
    Move each block in `movable_ids` to its best neighbouring position.

    Args:
        schedule: Current blocks (not mutated)
        movable_ids: Ids of blocks that may be moved
        context: Working hours and energy profile
        now: Blocks are never moved to start before this

    Returns:
        New block list in the original order
    """
    movable = set(movable_ids)
    current = list(schedule)
    order = sorted(range(len(current)), key=lambda i: current[i].start_time)

    for index in order:
        block = current[index]
        if block.id not in movable or block.start_time <= now:
            continue
        others = [b for i, b in enumerate(current) if i != index] + list(context.existing_blocks)

        best, best_alignment = block, block_energy_alignment(block, context)
        for delta in SHIFT_DELTAS:
            candidate = shift_block(block, delta)
            if candidate.start_time < now or not within_working_hours(candidate, context):
                continue
            if not interval_is_free(candidate.start_time, candidate.end_time, (b for b in others if b.id != block.id)):
                continue
            alignment = block_energy_alignment(candidate, context)
            if alignment > best_alignment:
                best, best_alignment = candidate, alignment

        if best is not block:
            current[index] = replace(best, updated_at=now)

    return current

