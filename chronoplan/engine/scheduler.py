"""
Auto Scheduler

Entry point for initial scheduling and schedule queries.

Pipeline for schedule():
1. Normalize constraints into a SchedulingContext
2. Run every optimization pass independently (a failing pass is skipped)
3. Keep the pass result with the highest quality (first pass wins ties)
4. Attach the Conservative / Aggressive / Energy-Optimized alternatives

Failure tiers:
- Conflicts: expected tensions reported inside a successful result
- Fallback: no pass produced a result, so tasks are placed back-to-back
  from the configured start hour (confidence 0.3); alternatives are still attached
- Error schedule: the fallback itself failed (empty schedule, one critical
  conflict, confidence 0)

No public method lets an exception escape.
"""

from datetime import date, datetime
import logging
from typing import Callable, List, Optional

from chronoplan.config.settings import Settings, get_settings
from chronoplan.engine.alternatives import generate_alternative_schedules
from chronoplan.engine.availability import is_slot_available
from chronoplan.engine.classifiers import KeywordTaskClassifier, TaskClassifier
from chronoplan.engine.context import build_scheduling_context
from chronoplan.engine.energy_adaptation import optimal_energy_for_block
from chronoplan.engine.local_search import relocate_blocks
from chronoplan.engine.passes import (
    OPTIMIZATION_PASSES,
    PassEnvironment,
    basic_fallback_schedule,
    error_schedule,
)
from chronoplan.engine.slots import generate_time_slots_for_day, search_days, window_applies
from chronoplan.graph.conflict_graph import overlapping_pairs
from chronoplan.models.constraints import (
    OptimizationWeights,
    QualityWeights,
    SchedulingConstraints,
    SchedulingContext,
)
from chronoplan.models.entities import Task, TimeBlock, TimeSlot
from chronoplan.models.results import (
    AlternativeSchedule,
    ConflictSeverity,
    ConflictType,
    SchedulingConflict,
    SchedulingResult,
)
from chronoplan.utils.scoring import calculate_confidence, energy_level, schedule_quality
from chronoplan.utils.timeutils import format_time, parse_time

logger = logging.getLogger(__name__)

ENERGY_ISSUE_THRESHOLD = 0.4
PREFERRED_WINDOW_BONUS = 0.1


class AutoScheduler:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        classifier: Optional[TaskClassifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        weights: Optional[OptimizationWeights] = None,
    ):
        self.settings = settings or get_settings()
        self.classifier = classifier or KeywordTaskClassifier()
        self.clock = clock or datetime.now
        self.weights = weights or OptimizationWeights()
        self.quality_weights = QualityWeights(
            base=self.settings.quality_base,
            conflict_penalty=self.settings.quality_conflict_penalty,
            energy_alignment=self.settings.quality_energy_weight,
            deadline_coverage=self.settings.quality_deadline_weight,
        )

    def environment(self, now: datetime) -> PassEnvironment:
        return PassEnvironment(
            classifier=self.classifier,
            now=now,
            window_days=self.settings.scheduling_window_days,
            weights=self.weights,
        )

    # Initial scheduling

    def schedule(self, tasks: List[Task], constraints: SchedulingConstraints) -> SchedulingResult:
        now = self.clock()
        logger.info(f"Scheduling {len(tasks)} tasks")

        try:
            result = self.optimize(tasks, constraints, now)
        except Exception:
            logger.exception("Optimization failed")
            result = None

        if result is None:
            return self.fallback(tasks, constraints, now)
        return result

    def optimize(self, tasks: List[Task], constraints: SchedulingConstraints, now: datetime) -> Optional[SchedulingResult]:
        context = build_scheduling_context(constraints)
        env = self.environment(now)

        best: Optional[SchedulingResult] = None
        best_quality = float("-inf")
        for name, run in OPTIMIZATION_PASSES:
            try:
                result = run(tasks, context, env)
            except Exception as e:
                logger.warning(f"Pass {name} failed: {e}")
                continue
            quality = schedule_quality(result, context, self.quality_weights)
            logger.info(
                f"Pass {name}: quality={quality:.3f} blocks={len(result.schedule)} conflicts={len(result.conflicts)}"
            )
            if quality > best_quality:
                best, best_quality = result, quality

        if best is None:
            return None

        best.alternatives = self.alternatives(tasks, context, env)
        return best

    def alternatives(
        self, tasks: List[Task], context: SchedulingContext, env: PassEnvironment
    ) -> List[AlternativeSchedule]:
        return generate_alternative_schedules(tasks, context, env, self.settings.ortools_time_limit_seconds)

    def fallback(self, tasks: List[Task], constraints: SchedulingConstraints, now: datetime) -> SchedulingResult:
        logger.warning("All optimization passes failed, using basic sequential fallback")
        try:
            result = basic_fallback_schedule(
                tasks,
                now,
                start_hour=self.settings.fallback_start_hour,
                buffer_minutes=self.settings.fallback_buffer_minutes,
            )
        except Exception:
            logger.exception("Fallback scheduling failed, returning error schedule")
            return error_schedule()

        try:
            context = build_scheduling_context(constraints)
        except Exception:
            logger.exception("Could not build context for fallback alternatives")
            return result
        result.alternatives = self.alternatives(tasks, context, self.environment(now))
        return result

    def run_pass(self, name: str, tasks: List[Task], constraints: SchedulingConstraints) -> SchedulingResult:
        """Run a single named pass. Unlike schedule(), errors propagate."""
        passes = dict(OPTIMIZATION_PASSES)
        if name not in passes:
            raise KeyError(f"Unknown optimization pass: {name}")
        context = build_scheduling_context(constraints)
        return passes[name](tasks, context, self.environment(self.clock()))

    def quality(self, result: SchedulingResult, constraints: SchedulingConstraints) -> float:
        return schedule_quality(result, build_scheduling_context(constraints), self.quality_weights)

    # Existing schedules

    def optimize_existing(self, blocks: List[TimeBlock], constraints: SchedulingConstraints) -> SchedulingResult:
        """
        Analyse an existing schedule for overlaps and energy mismatches.

        Blocks are only relocated when `relocate_existing_blocks` is enabled;
        otherwise the schedule comes back as given, with the analysis attached
        as conflicts.
        """
        now = self.clock()
        try:
            context = build_scheduling_context(constraints)
            mismatched = [b for b in blocks if self.has_energy_issue(b, context)]

            optimized = list(blocks)
            if self.settings.relocate_existing_blocks and mismatched:
                optimized = relocate_blocks(blocks, [b.id for b in mismatched], context, now)
                moved = sum(1 for old, new in zip(blocks, optimized) if old is not new)
                logger.info(f"Relocated {moved} of {len(mismatched)} energy-mismatched blocks")

            conflicts = self.analyze_schedule_issues(optimized, context)
            return SchedulingResult(
                schedule=optimized,
                conflicts=conflicts,
                alternatives=[],
                reasoning="Optimized existing schedule for better energy and goal alignment",
                confidence=calculate_confidence(optimized, conflicts),
            )
        except Exception:
            logger.exception("Optimizing existing schedule failed")
            return error_schedule()

    def has_energy_issue(self, block: TimeBlock, context: SchedulingContext) -> bool:
        level = energy_level(context.energy, block.start_time.hour)
        return abs(level - optimal_energy_for_block(block)) > ENERGY_ISSUE_THRESHOLD

    def analyze_schedule_issues(self, blocks: List[TimeBlock], context: SchedulingContext) -> List[SchedulingConflict]:
        conflicts = [
            SchedulingConflict(
                type=ConflictType.OVERLAP,
                description=f'"{a.title}" overlaps "{b.title}"',
                severity=ConflictSeverity.MEDIUM,
                suggestions=["Move one of the blocks", "Shorten the earlier block"],
            )
            for a, b in overlapping_pairs(blocks)
        ]
        for block in blocks:
            if self.has_energy_issue(block, context):
                conflicts.append(SchedulingConflict(
                    type=ConflictType.ENERGY_MISMATCH,
                    description=(
                        f'"{block.title}" ({block.type.value}) at {format_time(block.start_time)} '
                        f"does not match expected energy"
                    ),
                    severity=ConflictSeverity.LOW,
                    suggestions=["Move to a time with better energy fit", "Change the block type"],
                ))
        return conflicts

    # Queries

    def find_available_slots(self, duration_minutes: int, constraints: SchedulingConstraints) -> List[TimeSlot]:
        """Free slots over the search window, most desirable first. Inputs are not mutated."""
        now = self.clock()
        try:
            context = build_scheduling_context(constraints)
            slots: List[TimeSlot] = []
            for day in search_days(now.date(), self.settings.slot_search_days):
                slots.extend(self.free_slots_for_day(day, duration_minutes, context, now))
            return sorted(slots, key=lambda s: -self.slot_desirability(s, context))
        except Exception:
            logger.exception("Finding available slots failed")
            return []

    def find_slots_for_day(
        self, target_date: date, duration_minutes: int, constraints: SchedulingConstraints
    ) -> List[TimeSlot]:
        """Free slots on one day in time order."""
        try:
            context = build_scheduling_context(constraints)
            return self.free_slots_for_day(target_date, duration_minutes, context, self.clock())
        except Exception:
            logger.exception(f"Finding slots for {target_date} failed")
            return []

    def free_slots_for_day(
        self, day: date, duration_minutes: int, context: SchedulingContext, now: datetime
    ) -> List[TimeSlot]:
        return [
            slot
            for slot in generate_time_slots_for_day(day, duration_minutes, context, not_before=now)
            if is_slot_available(slot, [], context.existing_blocks, day)
        ]

    def slot_desirability(self, slot: TimeSlot, context: SchedulingContext) -> float:
        score = energy_level(context.energy, parse_time(slot.start) // 60)
        windows = list(context.user.deep_work_preferences.preferred_times) + list(
            context.user.energy_management.high_energy_times
        )
        if any(self.slot_within(slot, w) for w in windows):
            score += PREFERRED_WINDOW_BONUS
        return score

    @staticmethod
    def slot_within(slot: TimeSlot, window: TimeSlot) -> bool:
        if slot.slot_date is not None and not window_applies(window, slot.slot_date):
            return False
        return parse_time(window.start) <= parse_time(slot.start) and parse_time(slot.end) <= parse_time(window.end)
