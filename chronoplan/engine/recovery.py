"""
Block Operations and Missed-Block Recovery

Pure functions over TimeBlock lists. Nothing here mutates its inputs: every
modified block is a new instance produced with dataclasses.replace.

Bounds:
- Compression only applies to blocks longer than 30 minutes and removes at
  most floor(25%) of a block's own duration.
- Extension only applies to blocks shorter than 120 minutes and adds at most
  30 minutes.
- Simplification shrinks a block to max(60%, 30 min) of its duration and
  never lengthens it.

Recovery tactics (each returns a RePlanningResult):
- compression_recovery: shrink the remaining day to win back up to 80% of
  the missed time that still fits before end of day (confidence 0.7)
- postponement_recovery: defer every missed block to the next day (0.8)
- simplification_recovery: simplify every remaining block (0.9)
- interleaving_recovery: extend remaining blocks to absorb missed work (0.6)
"""

from dataclasses import replace
from datetime import datetime, timedelta
import math
from typing import Callable, Iterable, List, Optional, Tuple

from chronoplan.models.entities import BlockType, TimeBlock
from chronoplan.models.results import (
    ChangeType,
    EnergyImpact,
    ReplanImpact,
    RePlanningResult,
    ScheduleChange,
)

COMPRESSIBLE_MINUTES = 30
MAX_COMPRESSION_RATIO = 0.25
EXTENDABLE_MINUTES = 120
MAX_EXTENSION_MINUTES = 30
SIMPLIFY_RATIO = 0.6
SIMPLIFY_FLOOR_MINUTES = 30
RECOVERY_CAP_RATIO = 0.8
DEADLINE_RISK_WINDOW = timedelta(days=3)

NextDaySlot = Callable[[TimeBlock], Optional[TimeBlock]]


def can_compress(block: TimeBlock) -> bool:
    return block.duration_minutes > COMPRESSIBLE_MINUTES


def max_compression(block: TimeBlock) -> int:
    return math.floor(block.duration_minutes * MAX_COMPRESSION_RATIO)


def can_extend(block: TimeBlock) -> bool:
    return block.duration_minutes < EXTENDABLE_MINUTES


def total_minutes(blocks: Iterable[TimeBlock]) -> float:
    return sum(b.duration_minutes for b in blocks)


def simplify_block(block: TimeBlock) -> TimeBlock:
    duration = block.duration_minutes
    simplified = min(duration, max(duration * SIMPLIFY_RATIO, SIMPLIFY_FLOOR_MINUTES))
    return replace(
        block,
        end_time=block.start_time + timedelta(minutes=simplified),
        description=f"{block.description} (Simplified - core essentials only)",
        type=BlockType.WORK if block.type == BlockType.FOCUS else block.type,
    )


def simplification_change(
    original: TimeBlock, simplified: TimeBlock, reasoning: str
) -> Optional[ScheduleChange]:
    """A SHORTENED change, or None when simplification kept the block's length."""
    if simplified.end_time >= original.end_time:
        return None
    return ScheduleChange(type=ChangeType.SHORTENED, original_block=original, new_block=simplified, reasoning=reasoning)


def shift_block(block: TimeBlock, minutes: float) -> TimeBlock:
    delta = timedelta(minutes=minutes)
    return replace(block, start_time=block.start_time + delta, end_time=block.end_time + delta)


def compress_blocks(
    blocks: Iterable[TimeBlock],
    target_minutes: float,
    reasoning: Callable[[int], str],
    now: Optional[datetime] = None,
) -> Tuple[List[TimeBlock], List[ScheduleChange], float]:
    """
    Walk blocks in order and shorten compressible ones until `target_minutes`
    have been recovered. Blocks starting at or before `now` are left alone.

    Returns:
        (new schedule, changes, minutes recovered)
    """
    remaining = target_minutes
    schedule: List[TimeBlock] = []
    changes: List[ScheduleChange] = []

    for block in blocks:
        if now is not None and block.start_time <= now:
            schedule.append(block)
            continue
        if remaining > 0 and can_compress(block):
            amount = min(remaining, max_compression(block))
            if amount > 0:
                compressed = replace(block, end_time=block.end_time - timedelta(minutes=amount))
                schedule.append(compressed)
                changes.append(ScheduleChange(
                    type=ChangeType.SHORTENED,
                    original_block=block,
                    new_block=compressed,
                    reasoning=reasoning(round(amount)),
                ))
                remaining -= amount
                continue
        schedule.append(block)

    return schedule, changes, target_minutes - remaining


def affected_goals(changes: Iterable[ScheduleChange]) -> List[str]:
    goals: List[str] = []
    for change in changes:
        for goal_id in change.original_block.goal_ids:
            if goal_id not in goals:
                goals.append(goal_id)
    return goals


def deadline_risks(changes: Iterable[ScheduleChange], now: datetime) -> List[str]:
    horizon = now + DEADLINE_RISK_WINDOW
    return [
        f"{c.original_block.title} was scheduled within 3 days - deadline may be at risk"
        for c in changes
        if c.type in (ChangeType.POSTPONED, ChangeType.CANCELLED) and c.original_block.end_time <= horizon
    ]


def postpone(block: TimeBlock, reasoning: str, next_day_slot: Optional[NextDaySlot] = None) -> ScheduleChange:
    new_block = next_day_slot(block) if next_day_slot else None
    return ScheduleChange(type=ChangeType.POSTPONED, original_block=block, new_block=new_block, reasoning=reasoning)


def critical_time_shortage(missed_blocks: List[TimeBlock]) -> RePlanningResult:
    return RePlanningResult(
        confidence=1.0,
        new_schedule=[],
        changes=[
            ScheduleChange(
                type=ChangeType.CANCELLED,
                original_block=block,
                reasoning="Critical time shortage - insufficient time remaining today",
            )
            for block in missed_blocks
        ],
        reasoning="Critical time shortage detected. All remaining work postponed to maintain well-being.",
        impact=ReplanImpact(
            deadlines_risk=["Some deadlines may need to be renegotiated"],
            energy_impact=EnergyImpact.POSITIVE,
        ),
    )


def compression_recovery(
    missed_blocks: List[TimeBlock],
    remaining_day: List[TimeBlock],
    available_minutes: float,
) -> RePlanningResult:
    needed = min(total_minutes(missed_blocks), available_minutes * RECOVERY_CAP_RATIO)
    schedule, changes, recovered = compress_blocks(
        remaining_day, needed, lambda amount: f"Compressed by {amount} minutes to recover missed work"
    )
    return RePlanningResult(
        confidence=0.7,
        new_schedule=schedule,
        changes=changes,
        reasoning=f"Compressed remaining schedule to recover {round(recovered)} minutes of missed work",
        impact=ReplanImpact(goals_affected=affected_goals(changes), energy_impact=EnergyImpact.NEGATIVE),
    )


def postponement_recovery(
    missed_blocks: List[TimeBlock],
    remaining_day: List[TimeBlock],
    now: datetime,
    next_day_slot: Optional[NextDaySlot] = None,
) -> RePlanningResult:
    changes = [
        postpone(block, "Postponed to tomorrow due to schedule overrun", next_day_slot)
        for block in missed_blocks
    ]
    return RePlanningResult(
        confidence=0.8,
        new_schedule=list(remaining_day),
        changes=changes,
        reasoning=f"{len(missed_blocks)} blocks postponed to tomorrow to maintain schedule quality",
        impact=ReplanImpact(
            goals_affected=affected_goals(changes),
            deadlines_risk=deadline_risks(changes, now),
            energy_impact=EnergyImpact.POSITIVE,
        ),
    )


def simplification_recovery(missed_blocks: List[TimeBlock], remaining_day: List[TimeBlock]) -> RePlanningResult:
    schedule = [simplify_block(block) for block in remaining_day]
    changes = [
        change
        for change in (
            simplification_change(original, simplified, "Simplified to focus on core deliverables")
            for original, simplified in zip(remaining_day, schedule)
        )
        if change is not None
    ]
    return RePlanningResult(
        confidence=0.9,
        new_schedule=schedule,
        changes=changes,
        reasoning="Simplified remaining blocks to focus on essential outcomes only",
        impact=ReplanImpact(goals_affected=affected_goals(changes), energy_impact=EnergyImpact.POSITIVE),
    )


def interleaving_recovery(missed_blocks: List[TimeBlock], remaining_day: List[TimeBlock]) -> RePlanningResult:
    missed = total_minutes(missed_blocks)
    outstanding = missed
    schedule: List[TimeBlock] = []
    changes: List[ScheduleChange] = []

    for block in remaining_day:
        if outstanding > 0 and can_extend(block):
            extension = min(MAX_EXTENSION_MINUTES, outstanding)
            extended = replace(
                block,
                end_time=block.end_time + timedelta(minutes=extension),
                description=f"{block.description} + Recovery work ({round(extension)}min)",
            )
            schedule.append(extended)
            changes.append(ScheduleChange(
                type=ChangeType.MOVED,
                original_block=block,
                new_block=extended,
                reasoning=f"Extended by {round(extension)} minutes to include missed work",
            ))
            outstanding -= extension
        else:
            schedule.append(block)

    return RePlanningResult(
        confidence=0.6,
        new_schedule=schedule,
        changes=changes,
        reasoning=f"Interleaved {round(missed - outstanding)} minutes of missed work into remaining schedule",
        impact=ReplanImpact(goals_affected=affected_goals(changes), energy_impact=EnergyImpact.NEUTRAL),
    )
