from dataclasses import replace
from datetime import datetime
from typing import List

from chronoplan.engine.recovery import affected_goals, deadline_risks, simplify_block
from chronoplan.models.entities import BlockType, TimeBlock
from chronoplan.models.results import (
    AlternativeSchedule,
    ChangeType,
    EnergyImpact,
    ReplanImpact,
    RePlanningResult,
    ScheduleChange,
)

DRIFT_THRESHOLD = 0.3
MISMATCH_THRESHOLD = 0.4
VARIANT_MARGIN = 0.3
EXHAUSTED_ENERGY = 0.3

OPTIMAL_ENERGY = {
    BlockType.FOCUS: 0.9,
    BlockType.WORK: 0.7,
    BlockType.MEETING: 0.6,
    BlockType.ADMIN: 0.4,
    BlockType.BREAK: 0.3,
}
DEFAULT_OPTIMAL_ENERGY = 0.6

# Only these are re-typed; meetings, breaks and travel keep their type.
ADAPTABLE_TYPES = {BlockType.WORK, BlockType.FOCUS, BlockType.DEEP, BlockType.SHALLOW, BlockType.ADMIN}


def expected_energy_for_hour(hour: int) -> float:
    """Fixed diurnal curve: morning peak, early-afternoon dip, late-afternoon recovery."""
    if 9 <= hour <= 11:
        return 0.9
    if 14 <= hour <= 15:
        return 0.4
    if 16 <= hour <= 17:
        return 0.7
    return 0.6


def optimal_energy_for_block(block: TimeBlock) -> float:
    return OPTIMAL_ENERGY.get(block.type, DEFAULT_OPTIMAL_ENERGY)


def energy_drift(current_energy: float, now: datetime) -> float:
    return current_energy - expected_energy_for_hour(now.hour)


def low_energy_variant(block: TimeBlock) -> TimeBlock:
    return replace(
        block,
        type=BlockType.WORK if block.type == BlockType.FOCUS else BlockType.ADMIN,
        description=f"{block.description} (Low-energy variant)",
    )


def high_energy_variant(block: TimeBlock) -> TimeBlock:
    return replace(
        block,
        type=BlockType.WORK if block.type == BlockType.ADMIN else BlockType.FOCUS,
        description=f"{block.description} (High-energy focus session)",
    )


def adapt_block(block: TimeBlock, current_energy: float) -> TimeBlock:
    optimal = optimal_energy_for_block(block)
    if current_energy < optimal - VARIANT_MARGIN:
        if current_energy < EXHAUSTED_ENERGY:
            return simplify_block(block)
        return low_energy_variant(block)
    if current_energy > optimal + VARIANT_MARGIN:
        return high_energy_variant(block)
    return block


def no_change_result(reason: str, schedule: List[TimeBlock]) -> RePlanningResult:
    return RePlanningResult(
        confidence=0.7,
        new_schedule=list(schedule),
        changes=[],
        reasoning=reason,
        impact=ReplanImpact(energy_impact=EnergyImpact.NEUTRAL),
    )


def adapt_schedule_to_energy(current_energy: float, schedule: List[TimeBlock], now: datetime) -> RePlanningResult:
    drift = energy_drift(current_energy, now)
    if abs(drift) <= DRIFT_THRESHOLD:
        return no_change_result("Energy levels within acceptable range", schedule)

    new_schedule: List[TimeBlock] = []
    changes: List[ScheduleChange] = []
    percent = round(current_energy * 100)

    for block in schedule:
        if block.start_time <= now or block.type not in ADAPTABLE_TYPES:
            new_schedule.append(block)
            continue
        if abs(current_energy - optimal_energy_for_block(block)) <= MISMATCH_THRESHOLD:
            new_schedule.append(block)
            continue

        adapted = adapt_block(block, current_energy)
        new_schedule.append(adapted)
        if adapted == block:
            continue
        if adapted.end_time < block.end_time:
            changes.append(ScheduleChange(
                type=ChangeType.SHORTENED,
                original_block=block,
                new_block=adapted,
                reasoning=f"Energy adaptation: simplified for very low energy ({percent}%)",
            ))
        else:
            changes.append(ScheduleChange(
                type=ChangeType.MOVED,
                original_block=block,
                new_block=adapted,
                reasoning=(
                    f"Energy adaptation: {block.type.value} -> {adapted.type.value} "
                    f"to match current energy level ({percent}%)"
                ),
            ))

    return RePlanningResult(
        confidence=0.7,
        new_schedule=new_schedule,
        changes=changes,
        alternatives=[
            AlternativeSchedule(
                name="Energy-First",
                description="Prioritize energy-appropriate tasks",
                schedule=list(schedule),
                tradeoffs=["Better energy utilization", "Some timeline impact"],
                confidence=0.8,
            )
        ],
        reasoning=f"Schedule adapted for current energy level ({percent}%). {len(changes)} changes made.",
        impact=ReplanImpact(
            goals_affected=affected_goals(changes),
            deadlines_risk=deadline_risks(changes, now),
            energy_impact=EnergyImpact.POSITIVE if drift > 0 else EnergyImpact.NEGATIVE,
        ),
    )
