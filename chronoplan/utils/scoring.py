from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence

from chronoplan.engine.classifiers import TaskClassifier
from chronoplan.models.constraints import OptimizationWeights, QualityWeights, SchedulingContext
from chronoplan.models.entities import EnergyLevel, EnergyProfile, Task, TimeBlock, TimeSlot
from chronoplan.models.results import SchedulingConflict, SchedulingResult
from chronoplan.utils.timeutils import parse_time

DEFAULT_ENERGY = 0.5

REQUIRED_ENERGY = {
    EnergyLevel.HIGH: 0.8,
    EnergyLevel.MEDIUM: 0.5,
    EnergyLevel.LOW: 0.3,
}

# (days remaining upper bound, urgency)
URGENCY_STEPS = ((1, 1.0), (3, 0.8), (7, 0.6), (14, 0.4))
DISTANT_URGENCY = 0.2


@dataclass(frozen=True)
class SlotCandidate:
    task: Task
    slot: TimeSlot
    score: float
    energy_match: float
    deadline_urgency: float
    goal_alignment: float


def energy_level(profile: EnergyProfile, hour: int) -> float:
    hourly = profile.hourly_profile
    for key in (str(hour), f"{hour:02d}"):
        if key in hourly:
            return hourly[key]
    return DEFAULT_ENERGY


def energy_match(level: float, requirement: EnergyLevel) -> float:
    return 1 - abs(level - REQUIRED_ENERGY[requirement])


def deadline_urgency(task: Task, now: datetime) -> float:
    if task.due_date is None:
        return 0.0
    days_remaining = (task.due_date - now).total_seconds() / 86400
    for bound, urgency in URGENCY_STEPS:
        if days_remaining <= bound:
            return urgency
    return DISTANT_URGENCY


def goal_alignment(task: Task) -> float:
    return 0.8 if task.goal_id else 0.4


def evaluate_slot(
    task: Task,
    slot: TimeSlot,
    context: SchedulingContext,
    classifier: TaskClassifier,
    now: datetime,
    weights: OptimizationWeights = OptimizationWeights(),
) -> SlotCandidate:
    hour = parse_time(slot.start) // 60
    match = energy_match(energy_level(context.energy, hour), classifier.energy_requirement(task))
    urgency = deadline_urgency(task, now)
    alignment = goal_alignment(task)
    score = (
        match * weights.energy_alignment
        + urgency * weights.deadline_urgency
        + alignment * weights.goal_priority
    )
    return SlotCandidate(task, slot, score, match, urgency, alignment)


def rank_candidates(candidates: Sequence[SlotCandidate]) -> List[SlotCandidate]:
    """Descending by score; ties keep generation order (earlier slot first)."""
    return sorted(candidates, key=lambda c: -c.score)


def schedule_quality(result: SchedulingResult, context: SchedulingContext, weights: QualityWeights) -> float:
    quality = weights.base - len(result.conflicts) * weights.conflict_penalty

    if result.schedule:
        total_energy = sum(energy_level(context.energy, b.start_time.hour) for b in result.schedule)
        quality += (total_energy / len(result.schedule)) * weights.energy_alignment

    deadline_tasks = {d.task_id for d in context.deadlines if d.task_id}
    covered = sum(1 for b in result.schedule if covers_any(b, deadline_tasks))
    quality += (covered / max(len(context.deadlines), 1)) * weights.deadline_coverage

    return max(0.0, min(1.0, quality))


def covers_any(block: TimeBlock, task_ids: set) -> bool:
    if block.task_id and block.task_id in task_ids:
        return True
    return any(tid in task_ids for tid in block.task_ids)


def calculate_confidence(schedule: List[TimeBlock], conflicts: List[SchedulingConflict]) -> float:
    confidence = 0.8 - len(conflicts) * 0.1 - (0.5 if not schedule else 0.0)
    return max(0.1, min(1.0, confidence))
