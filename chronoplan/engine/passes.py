"""
Optimization Passes

Each pass builds a complete schedule from scratch with a different ordering
strategy. Passes are pure functions of (tasks, context, environment): they
share no mutable state, so the optimizer can run them in any order and keep
the best result.

Passes:
- deadline_pressure_pass: most urgent tasks pick first
- energy_optimization_pass: tasks matched to slots of their energy class
- goal_alignment_pass: a goal's tasks batched into focus sessions
- user_preference_pass: deep work into preferred deep-work windows first

Placement is "best of generated": every grid slot in the window is checked for
availability, scored, and the highest-scoring one wins. No backtracking.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence
from uuid import uuid4

from chronoplan.engine.availability import is_slot_available
from chronoplan.engine.classifiers import TaskClassifier
from chronoplan.engine.slots import expand_windows, generate_time_slots_for_day, search_days, slot_interval
from chronoplan.models.constraints import OptimizationWeights, SchedulingContext
from chronoplan.models.entities import BlockType, EnergyLevel, Goal, Task, TimeBlock, TimeSlot
from chronoplan.models.results import ConflictSeverity, ConflictType, SchedulingConflict, SchedulingResult
from chronoplan.utils.scoring import (
    SlotCandidate,
    calculate_confidence,
    deadline_urgency,
    energy_level,
    evaluate_slot,
    rank_candidates,
)
from chronoplan.utils.timeutils import parse_time, slot_interval as slot_to_interval

DEFAULT_TASK_MINUTES = 60
MAX_BATCH_SIZE = 3
HIGH_ENERGY_THRESHOLD = 0.7
MODERATE_ENERGY_RANGE = (0.4, 0.7)

DEADLINE_SUGGESTIONS = [
    "Consider extending deadline",
    "Break task into smaller chunks",
    "Reduce scope or delegate",
]


@dataclass(frozen=True)
class PassEnvironment:
    classifier: TaskClassifier
    now: datetime
    window_days: int
    weights: OptimizationWeights = OptimizationWeights()


SlotSource = Callable[[], Iterable[TimeSlot]]
Scorer = Callable[[TimeSlot], float]


def task_duration(task: Task) -> int:
    return task.estimated_minutes or DEFAULT_TASK_MINUTES


def new_block_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class ScheduleBuilder:
    """Accumulates blocks and conflicts for a single pass."""

    def __init__(self, context: SchedulingContext, env: PassEnvironment):
        self.context = context
        self.env = env
        self.schedule: List[TimeBlock] = []
        self.conflicts: List[SchedulingConflict] = []
        self.days = search_days(env.now.date(), env.window_days)
        self.interval = slot_interval(context)

    # Slot sources
    def all_slots(self, duration: int) -> Iterator[TimeSlot]:
        for day in self.days:
            yield from generate_time_slots_for_day(day, duration, self.context, not_before=self.env.now)

    def window_slots(self, windows: Sequence[TimeSlot], duration: int) -> Iterator[TimeSlot]:
        return expand_windows(windows, self.days, duration, self.interval, not_before=self.env.now)

    def energy_filtered_slots(self, duration: int, low: float, high: float) -> Iterator[TimeSlot]:
        for slot in self.all_slots(duration):
            level = energy_level(self.context.energy, parse_time(slot.start) // 60)
            if low <= level < high:
                yield slot

    # Placement
    def available(self, slot: TimeSlot) -> bool:
        return is_slot_available(slot, self.schedule, self.context.existing_blocks, self.env.now.date())

    def score(self, task: Task, slot: TimeSlot) -> SlotCandidate:
        return evaluate_slot(task, slot, self.context, self.env.classifier, self.env.now, self.env.weights)

    def best_slot(self, slots: Iterable[TimeSlot], scorer: Scorer) -> Optional[TimeSlot]:
        best: Optional[TimeSlot] = None
        best_score = float("-inf")
        for slot in slots:
            if not self.available(slot):
                continue
            value = scorer(slot)
            if value > best_score:
                best, best_score = slot, value
        return best

    def best_task_slot(self, task: Task, sources: Sequence[SlotSource]) -> Optional[TimeSlot]:
        """Try each source in order; the first one with an available slot decides."""
        for source in sources:
            candidates = [self.score(task, s) for s in source() if self.available(s)]
            if candidates:
                return rank_candidates(candidates)[0].slot
        return None

    def place(self, task: Task, slot: TimeSlot) -> TimeBlock:
        block = create_time_block_from_slot(task, slot, self.env.classifier.block_type(task), self.env.now)
        self.schedule.append(block)
        return block

    def place_batch(self, batch: List[Task], slot: TimeSlot, goal: Goal) -> TimeBlock:
        block = create_batch_time_block(batch, slot, goal, self.env.now)
        self.schedule.append(block)
        return block

    def record_unplaced(self, task: Task) -> None:
        if task.due_date is not None:
            self.conflicts.append(deadline_conflict(task))
        else:
            self.conflicts.append(SchedulingConflict(
                type=ConflictType.PREFERENCE_VIOLATION,
                description=f'No available slot for task "{task.title}" in the scheduling window',
                severity=ConflictSeverity.MEDIUM,
                suggestions=["Free up time in the calendar", "Extend working hours", "Shorten the estimate"],
            ))

    def result(self, reasoning: str) -> SchedulingResult:
        return SchedulingResult(
            schedule=list(self.schedule),
            conflicts=list(self.conflicts),
            alternatives=[],
            reasoning=reasoning,
            confidence=calculate_confidence(self.schedule, self.conflicts),
        )


def deadline_conflict(task: Task) -> SchedulingConflict:
    return SchedulingConflict(
        type=ConflictType.DEADLINE_RISK,
        description=f'Cannot fit task "{task.title}" before deadline',
        severity=ConflictSeverity.HIGH,
        suggestions=list(DEADLINE_SUGGESTIONS),
    )


def create_time_block_from_slot(task: Task, slot: TimeSlot, block_type: BlockType, now: datetime) -> TimeBlock:
    start, end = slot_to_interval(slot, now.date())
    return TimeBlock(
        id=new_block_id(f"auto-scheduled-{task.id}"),
        title=task.title,
        description=f"Auto-scheduled: {task.description or ''}",
        start_time=start,
        end_time=end,
        domain_id=task.domain_id,
        user_id=task.user_id,
        type=block_type,
        goal_ids=[task.goal_id] if task.goal_id else [],
        task_id=task.id,
        project_id=task.project_id,
        created_at=now,
        updated_at=now,
    )


def create_batch_time_block(batch: List[Task], slot: TimeSlot, goal: Goal, now: datetime) -> TimeBlock:
    start, end = slot_to_interval(slot, now.date())
    return TimeBlock(
        id=new_block_id(f"batch-{goal.id}"),
        title=f"{goal.title} - Focus Session",
        description="Batch work: " + ", ".join(t.title for t in batch),
        start_time=start,
        end_time=end,
        domain_id=goal.domain_id,
        user_id=goal.user_id,
        type=BlockType.FOCUS,
        goal_ids=[goal.id],
        task_ids=[t.id for t in batch],
        created_at=now,
        updated_at=now,
    )


def deadline_pressure_pass(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> SchedulingResult:
    builder = ScheduleBuilder(context, env)
    ordered = sorted(tasks, key=lambda t: -deadline_urgency(t, env.now))

    for task in ordered:
        duration = task_duration(task)
        slot = builder.best_task_slot(task, [lambda d=duration: builder.all_slots(d)])
        if slot:
            builder.place(task, slot)
        else:
            builder.conflicts.append(deadline_conflict(task))

    return builder.result("Optimized for deadline compliance with energy and preference consideration")


def energy_optimization_pass(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> SchedulingResult:
    builder = ScheduleBuilder(context, env)
    buckets: Dict[EnergyLevel, List[Task]] = {level: [] for level in EnergyLevel}
    for task in tasks:
        buckets[env.classifier.energy_requirement(task)].append(task)

    energy = context.user.energy_management
    low_moderate, high_moderate = MODERATE_ENERGY_RANGE

    def tiers(level: EnergyLevel, d: int) -> List[SlotSource]:
        if level is EnergyLevel.HIGH:
            return [
                lambda: builder.window_slots(energy.high_energy_times, d),
                lambda: builder.energy_filtered_slots(d, HIGH_ENERGY_THRESHOLD, float("inf")),
                lambda: builder.all_slots(d),
            ]
        if level is EnergyLevel.MEDIUM:
            return [
                lambda: builder.energy_filtered_slots(d, low_moderate, high_moderate),
                lambda: builder.all_slots(d),
            ]
        return [
            lambda: builder.window_slots(energy.low_energy_times, d),
            lambda: builder.all_slots(d),
        ]

    for level in (EnergyLevel.HIGH, EnergyLevel.MEDIUM, EnergyLevel.LOW):
        for task in buckets[level]:
            slot = builder.best_task_slot(task, tiers(level, task_duration(task)))
            if slot:
                builder.place(task, slot)
            else:
                builder.record_unplaced(task)

    return builder.result("Optimized for energy levels and natural productivity rhythms")


def create_task_batches(tasks: List[Task], batch_size: int = MAX_BATCH_SIZE) -> List[List[Task]]:
    size = max(1, min(batch_size, MAX_BATCH_SIZE))
    return [tasks[i:i + size] for i in range(0, len(tasks), size)]


def goal_alignment_pass(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> SchedulingResult:
    builder = ScheduleBuilder(context, env)
    known_goals = {g.id for g in context.goals}
    groups: Dict[str, List[Task]] = {}
    loose: List[Task] = []
    for task in tasks:
        if task.goal_id in known_goals:
            groups.setdefault(task.goal_id, []).append(task)
        else:
            loose.append(task)

    def place_single(task: Task) -> None:
        duration = task_duration(task)
        slot = builder.best_task_slot(task, [lambda: builder.all_slots(duration)])
        if slot:
            builder.place(task, slot)
        else:
            builder.record_unplaced(task)

    batch_size = context.user.context_switching.max_tasks_per_block
    for goal in context.goals:
        for batch in create_task_batches(groups.get(goal.id, []), batch_size):
            if len(batch) == 1:
                place_single(batch[0])
                continue
            duration = sum(task_duration(t) for t in batch)
            slot = builder.best_slot(
                builder.all_slots(duration),
                lambda s, b=batch: sum(builder.score(t, s).score for t in b) / len(b),
            )
            if slot:
                builder.place_batch(batch, slot, goal)
            else:
                for task in batch:
                    place_single(task)

    for task in loose:
        place_single(task)

    return builder.result("Optimized for goal alignment and focused work sessions")


def user_preference_pass(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> SchedulingResult:
    builder = ScheduleBuilder(context, env)
    deep = [t for t in tasks if env.classifier.is_deep_work(t)]
    shallow = [t for t in tasks if not env.classifier.is_deep_work(t)]
    preferred = context.user.deep_work_preferences.preferred_times

    for task in deep:
        d = task_duration(task)
        slot = builder.best_task_slot(task, [
            lambda: builder.window_slots(preferred, d),
            lambda: builder.all_slots(d),
        ])
        if slot:
            builder.place(task, slot)
        else:
            builder.record_unplaced(task)

    for task in shallow:
        d = task_duration(task)
        slot = builder.best_task_slot(task, [lambda: builder.all_slots(d)])
        if slot:
            builder.place(task, slot)
        else:
            builder.record_unplaced(task)

    return builder.result("Optimized for user working patterns and preferences")


OPTIMIZATION_PASSES = (
    ("deadline_pressure", deadline_pressure_pass),
    ("energy_optimization", energy_optimization_pass),
    ("goal_alignment", goal_alignment_pass),
    ("user_preferences", user_preference_pass),
)


def basic_fallback_schedule(
    tasks: List[Task],
    now: datetime,
    start_hour: int = 9,
    buffer_minutes: int = 15,
) -> SchedulingResult:
    """Back-to-back placement from the start hour, ignoring every optimization criterion."""
    current = now.replace(hour=start_hour, minute=0, second=0, microsecond=0)
    if current < now:
        current += timedelta(days=1)

    schedule: List[TimeBlock] = []
    for task in tasks:
        end = current + timedelta(minutes=task_duration(task))
        schedule.append(TimeBlock(
            id=f"fallback-{task.id}",
            title=task.title,
            description="Fallback scheduled",
            start_time=current,
            end_time=end,
            domain_id=task.domain_id,
            user_id=task.user_id,
            type=BlockType.WORK,
            goal_ids=[task.goal_id] if task.goal_id else [],
            task_id=task.id,
            project_id=task.project_id,
            created_at=now,
            updated_at=now,
        ))
        current = end + timedelta(minutes=buffer_minutes)

    return SchedulingResult(
        schedule=schedule,
        conflicts=[],
        alternatives=[],
        reasoning="Basic sequential scheduling fallback",
        confidence=0.3,
    )


def error_schedule() -> SchedulingResult:
    return SchedulingResult(
        schedule=[],
        conflicts=[SchedulingConflict(
            type=ConflictType.DEADLINE_RISK,
            description="Critical error in scheduling engine",
            severity=ConflictSeverity.CRITICAL,
            suggestions=["Try again with simpler constraints", "Contact support"],
        )],
        alternatives=[],
        reasoning="Scheduling failed - error recovery mode",
        confidence=0.0,
    )
