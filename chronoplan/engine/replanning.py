"""
Re-Planning Engine

Repairs a committed schedule after a runtime disruption.

Flow for handle_trigger():
1. Classify the disruption severity from the trigger
2. Select exactly one adaptive strategy (caller hint first, then severity
   and remaining working time)
3. Execute it, producing a new schedule and a change log
4. Record the result in the bounded adaptation history
5. Signal the optional feedback collaborator

Strategy selection:
    option minimal_change              -> micro_adjustment
    option save_day                    -> emergency_simplification if critical, else block_compression
    option save_goal                   -> goal_reprioritization
    option save_energy                 -> emergency_simplification if energy < 0.3, else schedule_shift
    trigger missed_block               -> missed_block_recovery
    critical, or < 2h left             -> emergency_simplification
    high, or < 4h left                 -> goal_reprioritization
    medium                             -> schedule_shift
    low                                -> micro_adjustment

The engine keeps per-instance state (adaptation history, emergency flag,
stress level). Instances are not thread-safe: callers serialize calls per
user, e.g. with one engine and one lock per user.
"""

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Callable, Deque, Dict, List, Optional

from chronoplan.config.settings import Settings, get_settings
from chronoplan.engine.energy_adaptation import adapt_schedule_to_energy
from chronoplan.engine.recovery import (
    NextDaySlot,
    affected_goals,
    compress_blocks,
    compression_recovery,
    critical_time_shortage,
    deadline_risks,
    interleaving_recovery,
    postpone,
    postponement_recovery,
    shift_block,
    simplification_change,
    simplification_recovery,
    simplify_block,
    total_minutes,
)
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import GOAL_PRIORITY_RANK, BlockStatus, BlockType, Goal, GoalPriority, Task, TimeBlock
from chronoplan.models.results import (
    AdaptiveStrategy,
    AlternativeSchedule,
    ChangeType,
    EnergyImpact,
    ReplanImpact,
    RePlanningOptions,
    RePlanningResult,
    RePlanningTrigger,
    ReplanStrategy,
    ScheduleChange,
    TriggerType,
)
from chronoplan.utils.timeutils import end_of_day, slot_interval

logger = logging.getLogger(__name__)

DEFAULT_ENERGY = 0.7
LOW_ENERGY = 0.3
EMERGENCY_HOURS = 2
REPRIORITIZE_HOURS = 4
MICRO_MAX_DELAY = 15
MICRO_DEFAULT_DELAY = 10
OVERRUN_DEFAULT_MINUTES = 30
INTERRUPT_DEFAULT_MINUTES = 60
COMPRESSION_DEFAULT_MINUTES = 30
MIN_READMIT_BUDGET = 30
MIN_RECOVERY_MINUTES = 30
URGENT_TASK_WINDOW = timedelta(hours=24)
KEEP_GOAL_PRIORITIES = {GoalPriority.HIGH, GoalPriority.CRITICAL}


class DisruptionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FeedbackSignal(str, Enum):
    ACHIEVEMENT = "achievement"
    TASK_COMPLETED = "task_completed"
    ACKNOWLEDGE = "acknowledge"


FeedbackCallback = Callable[[FeedbackSignal, RePlanningResult, Optional[RePlanningTrigger]], None]


@dataclass
class EmergencyMode:
    active: bool = False
    reason: str = ""
    fallback_strategy: str = "compress"


@dataclass(frozen=True)
class AdaptationContext:
    current_schedule: List[TimeBlock]
    remaining_tasks: List[Task]
    goals: List[Goal]
    user_energy_level: float
    current_time: datetime
    working_hours_remaining: float
    severity: DisruptionSeverity
    missed_blocks: List[TimeBlock] = field(default_factory=list)

    def future_blocks(self) -> List[TimeBlock]:
        return [b for b in self.current_schedule if b.start_time > self.current_time]


def classify_severity(trigger: RePlanningTrigger) -> DisruptionSeverity:
    ctx = trigger.context
    if trigger.type == TriggerType.OVERRUN:
        overrun = ctx.overrun_duration or 0
        if overrun > 60:
            return DisruptionSeverity.HIGH
        if overrun > 30:
            return DisruptionSeverity.MEDIUM
        return DisruptionSeverity.LOW
    if trigger.type == TriggerType.MISSED_BLOCK:
        return DisruptionSeverity.MEDIUM
    if trigger.type == TriggerType.EXTERNAL_INTERRUPT:
        duration = ctx.estimated_duration or 0
        if duration > 120:
            return DisruptionSeverity.CRITICAL
        if duration > 60:
            return DisruptionSeverity.HIGH
        return DisruptionSeverity.MEDIUM
    if trigger.type == TriggerType.ENERGY_CHANGE:
        drop = ctx.energy_drop or 0
        if drop > 0.5:
            return DisruptionSeverity.HIGH
        if drop > 0.3:
            return DisruptionSeverity.MEDIUM
        return DisruptionSeverity.LOW
    return DisruptionSeverity.LOW


def feedback_signal(confidence: float) -> FeedbackSignal:
    if confidence > 0.8:
        return FeedbackSignal.ACHIEVEMENT
    if confidence > 0.6:
        return FeedbackSignal.TASK_COMPLETED
    return FeedbackSignal.ACKNOWLEDGE


def block_priority(block: TimeBlock, goals: Dict[str, Goal]) -> int:
    ranks = [GOAL_PRIORITY_RANK[goals[g].priority] for g in block.goal_ids if g in goals]
    return max(ranks, default=0)


class RePlanningEngine:
    """
    Adaptive re-planner.

    Args:
        scheduler: Slot provider used to propose next-day positions for
            postponed blocks
        constraints: Scheduling constraints for those proposals; without both
            a scheduler and constraints, postponed blocks carry no new_block
        settings: Application settings (defaults to get_settings())
        clock: Returns "now"; injected for deterministic tests
        feedback: Optional UX collaborator called after each re-plan
    """

    def __init__(
        self,
        scheduler: Optional[AutoScheduler] = None,
        constraints: Optional[SchedulingConstraints] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        feedback: Optional[FeedbackCallback] = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler
        self.constraints = constraints
        self.clock = clock or datetime.now
        self.feedback = feedback
        self.adaptation_history: Deque[RePlanningResult] = deque(maxlen=self.settings.adaptation_history_size)
        self.emergency_mode = EmergencyMode()
        self.stress_level = 0.3

    # Public entry points

    def handle_trigger(
        self, trigger: RePlanningTrigger, options: Optional[RePlanningOptions] = None
    ) -> RePlanningResult:
        options = options or RePlanningOptions()
        try:
            context = self.analyze_disruption(trigger)
            strategy = self.select_strategy(trigger, context, options)
            logger.info(
                f"Trigger {trigger.type.value}: severity={context.severity.value} "
                f"hours_left={context.working_hours_remaining:.1f} strategy={strategy.value}"
            )
            result = self.execute(trigger, context, strategy, options)
            result.strategy = strategy
            self.record_adaptation(result, context)
            self.provide_feedback(result, trigger)
            logger.info(f"Re-plan complete: {len(result.changes)} changes, confidence={result.confidence:.2f}")
            return result
        except Exception:
            logger.exception(f"Re-planning failed for trigger {trigger.type}")
            return self.emergency_fallback()

    def suggest_recovery(self, missed_blocks: List[TimeBlock], remaining_day: List[TimeBlock]) -> RePlanningResult:
        logger.info(f"Recovery requested for {len(missed_blocks)} missed blocks")
        try:
            result = self.recover(missed_blocks, remaining_day, self.clock())
            self.provide_feedback(result, None)
            return result
        except Exception:
            logger.exception("Missed-block recovery failed")
            return self.emergency_fallback()

    def adapt_to_energy_change(self, current_energy: float, schedule: List[TimeBlock]) -> RePlanningResult:
        logger.info(f"Energy adaptation requested at energy={current_energy:.2f}")
        try:
            result = adapt_schedule_to_energy(current_energy, schedule, self.clock())
            self.provide_feedback(result, None)
            return result
        except Exception:
            logger.exception("Energy adaptation failed")
            return self.emergency_fallback()

    # Analysis and selection

    def working_hours_remaining(self, now: datetime) -> float:
        close = end_of_day(now, self.settings.end_of_day_hour)
        return max(0.0, (close - now).total_seconds() / 3600)

    def analyze_disruption(self, trigger: RePlanningTrigger) -> AdaptationContext:
        now = self.clock()
        ctx = trigger.context
        return AdaptationContext(
            current_schedule=list(ctx.current_schedule),
            remaining_tasks=list(ctx.remaining_tasks),
            goals=list(ctx.goals),
            user_energy_level=ctx.current_energy if ctx.current_energy is not None else DEFAULT_ENERGY,
            current_time=now,
            working_hours_remaining=self.working_hours_remaining(now),
            severity=classify_severity(trigger),
            missed_blocks=self.resolve_missed_blocks(trigger),
        )

    def resolve_missed_blocks(self, trigger: RePlanningTrigger) -> List[TimeBlock]:
        """Explicit missed blocks, else the affected block of a missed_block trigger."""
        ctx = trigger.context
        if ctx.missed_blocks or trigger.type != TriggerType.MISSED_BLOCK or trigger.affected_block_id is None:
            return list(ctx.missed_blocks)
        affected = [b for b in ctx.current_schedule if b.id == trigger.affected_block_id]
        if not affected:
            logger.warning(f"Affected block {trigger.affected_block_id} is not in the current schedule")
        return affected

    def select_strategy(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> AdaptiveStrategy:
        severity = context.severity
        if options.strategy == ReplanStrategy.MINIMAL_CHANGE:
            return AdaptiveStrategy.MICRO_ADJUSTMENT
        if options.strategy == ReplanStrategy.SAVE_DAY:
            if severity == DisruptionSeverity.CRITICAL:
                return AdaptiveStrategy.EMERGENCY_SIMPLIFICATION
            return AdaptiveStrategy.BLOCK_COMPRESSION
        if options.strategy == ReplanStrategy.SAVE_GOAL:
            return AdaptiveStrategy.GOAL_REPRIORITIZATION
        if options.strategy == ReplanStrategy.SAVE_ENERGY:
            if context.user_energy_level < LOW_ENERGY:
                return AdaptiveStrategy.EMERGENCY_SIMPLIFICATION
            return AdaptiveStrategy.SCHEDULE_SHIFT

        if trigger.type == TriggerType.MISSED_BLOCK:
            return AdaptiveStrategy.MISSED_BLOCK_RECOVERY

        hours = context.working_hours_remaining
        if severity == DisruptionSeverity.CRITICAL or hours < EMERGENCY_HOURS:
            return AdaptiveStrategy.EMERGENCY_SIMPLIFICATION
        if severity == DisruptionSeverity.HIGH or hours < REPRIORITIZE_HOURS:
            return AdaptiveStrategy.GOAL_REPRIORITIZATION
        if severity == DisruptionSeverity.MEDIUM:
            return AdaptiveStrategy.SCHEDULE_SHIFT
        if severity == DisruptionSeverity.LOW:
            return AdaptiveStrategy.MICRO_ADJUSTMENT
        return AdaptiveStrategy.BLOCK_COMPRESSION

    def execute(
        self,
        trigger: RePlanningTrigger,
        context: AdaptationContext,
        strategy: AdaptiveStrategy,
        options: RePlanningOptions,
    ) -> RePlanningResult:
        if strategy == AdaptiveStrategy.MISSED_BLOCK_RECOVERY:
            return self.missed_block_recovery(context)
        handlers = {
            AdaptiveStrategy.MICRO_ADJUSTMENT: self.micro_adjustment,
            AdaptiveStrategy.BLOCK_COMPRESSION: self.block_compression,
            AdaptiveStrategy.SCHEDULE_SHIFT: self.schedule_shift,
            AdaptiveStrategy.GOAL_REPRIORITIZATION: self.goal_reprioritization,
            AdaptiveStrategy.EMERGENCY_SIMPLIFICATION: self.emergency_simplification,
        }
        return handlers.get(strategy, self.block_compression)(trigger, context, options)

    # Strategies

    def micro_adjustment(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> RePlanningResult:
        schedule = list(context.current_schedule)
        changes: List[ScheduleChange] = []
        upcoming = [i for i, b in enumerate(schedule) if b.start_time > context.current_time]

        if upcoming and trigger.type == TriggerType.OVERRUN:
            index = min(upcoming, key=lambda i: schedule[i].start_time)
            block = schedule[index]
            delay = min(MICRO_MAX_DELAY, trigger.context.overrun_duration or MICRO_DEFAULT_DELAY)
            adjusted = shift_block(block, delay)
            schedule[index] = adjusted
            changes.append(ScheduleChange(
                type=ChangeType.MOVED,
                original_block=block,
                new_block=adjusted,
                reasoning=f"Micro-adjustment: delayed by {round(delay)} minutes due to {trigger.type.value}",
            ))

        return RePlanningResult(
            confidence=0.7,
            new_schedule=schedule,
            changes=changes,
            reasoning=f"Minor adjustment made to accommodate {trigger.type.value}. Minimal impact on schedule.",
            impact=ReplanImpact(energy_impact=EnergyImpact.NEUTRAL),
        )

    def block_compression(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> RePlanningResult:
        if trigger.type == TriggerType.OVERRUN:
            target = trigger.context.overrun_duration or OVERRUN_DEFAULT_MINUTES
        elif trigger.type == TriggerType.EXTERNAL_INTERRUPT:
            target = trigger.context.estimated_duration or INTERRUPT_DEFAULT_MINUTES
        else:
            target = COMPRESSION_DEFAULT_MINUTES

        schedule, changes, recovered = compress_blocks(
            context.current_schedule,
            target,
            lambda amount: f"Compressed by {amount} minutes to recover schedule",
            now=context.current_time,
        )
        aggressive, _, _ = compress_blocks(
            context.current_schedule,
            target + 15,
            lambda amount: f"Compressed by {amount} minutes",
            now=context.current_time,
        )

        return RePlanningResult(
            confidence=0.7,
            new_schedule=schedule,
            changes=changes,
            alternatives=[
                AlternativeSchedule(
                    name="Aggressive Compression",
                    description=f"Compress schedule by {round(target + 15)} minutes",
                    schedule=aggressive,
                    tradeoffs=["Faster recovery", "Higher stress"],
                    confidence=0.6,
                )
            ],
            reasoning=(
                f"Schedule compressed to recover {round(target)} minutes "
                f"({round(recovered)} recovered). {len(changes)} blocks affected."
            ),
            impact=ReplanImpact(
                goals_affected=affected_goals(changes),
                deadlines_risk=deadline_risks(changes, context.current_time),
                energy_impact=EnergyImpact.NEGATIVE,
            ),
        )

    def schedule_shift(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> RePlanningResult:
        if trigger.type == TriggerType.OVERRUN:
            amount = trigger.context.overrun_duration or OVERRUN_DEFAULT_MINUTES
        elif trigger.type == TriggerType.EXTERNAL_INTERRUPT:
            amount = trigger.context.estimated_duration or INTERRUPT_DEFAULT_MINUTES
        else:
            amount = 0

        schedule: List[TimeBlock] = []
        changes: List[ScheduleChange] = []
        for block in context.current_schedule:
            if block.start_time <= context.current_time or amount <= 0:
                schedule.append(block)
                continue
            shifted = shift_block(block, amount)
            schedule.append(shifted)
            changes.append(ScheduleChange(
                type=ChangeType.MOVED,
                original_block=block,
                new_block=shifted,
                reasoning=f"Shifted by {round(amount)} minutes due to {trigger.type.value}",
            ))

        return RePlanningResult(
            confidence=0.7,
            new_schedule=schedule,
            changes=changes,
            reasoning=f"Schedule shifted by {round(amount)} minutes. Impact cascade managed through remaining blocks.",
            impact=ReplanImpact(
                goals_affected=affected_goals(changes),
                deadlines_risk=deadline_risks(changes, context.current_time),
                energy_impact=EnergyImpact.NEUTRAL,
            ),
        )

    def goal_reprioritization(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> RePlanningResult:
        priority_goals = set(options.priority_goals)
        goals = {g.id: g for g in context.goals}
        now = context.current_time

        kept_ids = set()
        postponed: List[TimeBlock] = []
        for block in context.current_schedule:
            if block.start_time <= now:
                kept_ids.add(block.id)
                continue
            prioritized = any(g in priority_goals for g in block.goal_ids)
            urgent = any(g in goals and goals[g].priority in KEEP_GOAL_PRIORITIES for g in block.goal_ids)
            if prioritized or urgent:
                kept_ids.add(block.id)
            else:
                postponed.append(block)

        kept_future = [b for b in context.future_blocks() if b.id in kept_ids]
        budget = context.working_hours_remaining * 60 - total_minutes(kept_future)
        if budget > MIN_READMIT_BUDGET:
            used = 0.0
            for block in sorted(postponed, key=lambda b: -block_priority(b, goals)):
                if used + block.duration_minutes <= budget:
                    kept_ids.add(block.id)
                    used += block.duration_minutes

        schedule = [b for b in context.current_schedule if b.id in kept_ids]
        next_day_slot = self.next_day_slot_provider(now)
        changes = [
            postpone(block, "Postponed to prioritize high-priority goals", next_day_slot)
            for block in postponed
            if block.id not in kept_ids
        ]

        return RePlanningResult(
            confidence=0.7,
            new_schedule=schedule,
            changes=changes,
            reasoning=f"Schedule reprioritized to focus on high-priority goals. {len(changes)} blocks postponed.",
            impact=ReplanImpact(
                goals_affected=list(options.priority_goals) or affected_goals(changes),
                deadlines_risk=deadline_risks(changes, now),
                energy_impact=EnergyImpact.POSITIVE,
            ),
        )

    def emergency_simplification(
        self, trigger: RePlanningTrigger, context: AdaptationContext, options: RePlanningOptions
    ) -> RePlanningResult:
        logger.warning(f"Emergency simplification activated by {trigger.type.value}")
        self.emergency_mode = EmergencyMode(
            active=True,
            reason=f"Critical disruption: {trigger.type.value}",
            fallback_strategy="simplify",
        )

        schedule: List[TimeBlock] = []
        changes: List[ScheduleChange] = []
        for block in context.current_schedule:
            if block.start_time <= context.current_time:
                schedule.append(block)
                continue
            if self.is_critical_block(block, context):
                simplified = simplify_block(block)
                schedule.append(simplified)
                change = simplification_change(
                    block, simplified, "Emergency simplification: reduced scope to essentials only"
                )
                if change is not None:
                    changes.append(change)
            else:
                changes.append(ScheduleChange(
                    type=ChangeType.CANCELLED,
                    original_block=block,
                    reasoning="Emergency cancellation: non-critical block removed",
                ))

        return RePlanningResult(
            confidence=0.7,
            new_schedule=schedule,
            changes=changes,
            reasoning=(
                "Emergency simplification activated. Schedule reduced to critical items only "
                f"due to {trigger.type.value}."
            ),
            impact=ReplanImpact(
                goals_affected=affected_goals(changes),
                deadlines_risk=["Some deadlines may be at risk due to emergency simplification"],
                energy_impact=EnergyImpact.POSITIVE,
            ),
        )

    def is_critical_block(self, block: TimeBlock, context: AdaptationContext) -> bool:
        if block.type == BlockType.MEETING:
            return True
        goals = {g.id: g for g in context.goals}
        if any(g in goals and goals[g].priority == GoalPriority.CRITICAL for g in block.goal_ids):
            return True
        linked = {block.task_id, *block.task_ids} - {None}
        horizon = context.current_time + URGENT_TASK_WINDOW
        return any(
            t.id in linked and t.due_date is not None and t.due_date <= horizon
            for t in context.remaining_tasks
        )

    # Missed-block recovery

    def missed_block_recovery(self, context: AdaptationContext) -> RePlanningResult:
        """
        Run recover() on the rest of the day, keeping blocks that already
        started. Missed blocks the winning tactic does not postpone or cancel
        are logged as merged into the recovery; remaining blocks it drops
        are logged as cancelled.
        """
        now = context.current_time
        missed_ids = {b.id for b in context.missed_blocks}
        started = [b for b in context.current_schedule if b.start_time <= now and b.id not in missed_ids]
        remaining = [b for b in context.future_blocks() if b.id not in missed_ids]

        result = self.recover(context.missed_blocks, remaining, now)
        result.new_schedule = started + result.new_schedule

        documented = {c.original_block.id for c in result.changes}
        for block in context.missed_blocks:
            if block.id not in documented:
                result.changes.append(ScheduleChange(
                    type=ChangeType.MERGED,
                    original_block=block,
                    reasoning="Missed work folded into the recovered schedule",
                ))
        kept = {b.id for b in result.new_schedule}
        for block in remaining:
            if block.id not in kept and block.id not in documented:
                result.changes.append(ScheduleChange(
                    type=ChangeType.CANCELLED,
                    original_block=block,
                    reasoning="Removed from today during missed-block recovery",
                ))
        return result

    def recover(self, missed_blocks: List[TimeBlock], remaining_day: List[TimeBlock], now: datetime) -> RePlanningResult:
        available = self.working_hours_remaining(now) * 60
        if available < MIN_RECOVERY_MINUTES:
            logger.warning(f"Only {available:.0f} minutes left today, cancelling missed blocks")
            result = critical_time_shortage(missed_blocks)
        else:
            candidates = [
                compression_recovery(missed_blocks, remaining_day, available),
                postponement_recovery(missed_blocks, remaining_day, now, self.next_day_slot_provider(now)),
                simplification_recovery(missed_blocks, remaining_day),
                interleaving_recovery(missed_blocks, remaining_day),
            ]
            result = candidates[0]
            for candidate in candidates[1:]:
                if candidate.confidence > result.confidence:
                    result = candidate
        result.strategy = AdaptiveStrategy.MISSED_BLOCK_RECOVERY
        return result

    def next_day_slot_provider(self, now: datetime) -> Optional[NextDaySlot]:
        """Proposes tomorrow's first free slot; successive proposals within one call never collide."""
        if self.scheduler is None or self.constraints is None:
            return None
        tomorrow = now.date() + timedelta(days=1)
        proposed: List[TimeBlock] = []

        def propose(block: TimeBlock) -> Optional[TimeBlock]:
            constraints = replace(
                self.constraints,
                existing_blocks=list(self.constraints.existing_blocks) + proposed,
            )
            slots = self.scheduler.find_slots_for_day(tomorrow, round(block.duration_minutes), constraints)
            if not slots:
                return None
            start, end = slot_interval(slots[0], tomorrow)
            moved = replace(block, start_time=start, end_time=end, status=BlockStatus.PLANNED, updated_at=now)
            proposed.append(moved)
            return moved

        return propose

    # Bookkeeping

    def record_adaptation(self, result: RePlanningResult, context: AdaptationContext) -> None:
        self.adaptation_history.append(result)
        self.stress_level = 0.8 if context.severity == DisruptionSeverity.CRITICAL else 0.4
        if result.strategy != AdaptiveStrategy.EMERGENCY_SIMPLIFICATION:
            self.emergency_mode = EmergencyMode()

    def provide_feedback(self, result: RePlanningResult, trigger: Optional[RePlanningTrigger]) -> None:
        signal = feedback_signal(result.confidence)
        logger.debug(f"Re-planning feedback: {signal.value} ({round(result.confidence * 100)}%): {result.reasoning}")
        if self.feedback is None:
            return
        try:
            self.feedback(signal, result, trigger)
        except Exception:
            logger.exception("Feedback collaborator failed")

    def emergency_fallback(self) -> RePlanningResult:
        return RePlanningResult(
            confidence=0.0,
            new_schedule=[],
            changes=[],
            reasoning="Emergency fallback: Critical error in re-planning system",
            impact=ReplanImpact(
                deadlines_risk=["All planned activities may be affected"],
                energy_impact=EnergyImpact.NEGATIVE,
            ),
        )
