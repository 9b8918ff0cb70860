import logging
from typing import Callable, List

from chronoplan.engine.availability import interval_is_free
from chronoplan.engine.packer import pack_with_ortools
from chronoplan.engine.passes import (
    PassEnvironment,
    ScheduleBuilder,
    create_time_block_from_slot,
    energy_optimization_pass,
    task_duration,
)
from chronoplan.engine.slots import generate_slots
from chronoplan.models.constraints import SchedulingContext
from chronoplan.models.entities import Task, TimeBlock, TimeSlot
from chronoplan.models.results import AlternativeSchedule
from chronoplan.utils.scoring import deadline_urgency
from chronoplan.utils.timeutils import day_name, format_time, parse_time, slot_interval

logger = logging.getLogger(__name__)

MIN_CONSERVATIVE_CLEARANCE = 30


def by_urgency(tasks: List[Task], env: PassEnvironment) -> List[Task]:
    return sorted(tasks, key=lambda t: -deadline_urgency(t, env.now))


def create_conservative_schedule(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> List[TimeBlock]:
    """Earliest fit inside buffered working hours, with generous clearance around every block."""
    builder = ScheduleBuilder(context, env)
    buffers = context.buffers
    window_start = parse_time(context.user.working_hours.start) + buffers.day_start_buffer
    window_end = parse_time(context.user.working_hours.end) - buffers.day_end_buffer
    clearance = max(2 * buffers.between_tasks, MIN_CONSERVATIVE_CLEARANCE)

    for task in by_urgency(tasks, env):
        duration = task_duration(task)
        for day in builder.days:
            placed = False
            for slot in generate_slots(day, duration, window_start, window_end, builder.interval, env.now):
                start, end = slot_interval(slot, day)
                if interval_is_free(start, end, builder.schedule, clearance) and interval_is_free(
                    start, end, context.existing_blocks, clearance
                ):
                    builder.place(task, slot)
                    placed = True
                    break
            if placed:
                break
    return builder.schedule


def create_greedy_packed_schedule(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> List[TimeBlock]:
    builder = ScheduleBuilder(context, env)
    for task in by_urgency(tasks, env):
        slot = next((s for s in builder.all_slots(task_duration(task)) if builder.available(s)), None)
        if slot:
            builder.place(task, slot)
    return builder.schedule


def create_aggressive_schedule(
    tasks: List[Task],
    context: SchedulingContext,
    env: PassEnvironment,
    time_limit_seconds: float,
) -> List[TimeBlock]:
    """Dense packing via CP-SAT; greedy earliest-fit when the solver comes back empty."""
    ordered = by_urgency(tasks, env)
    placements = pack_with_ortools(
        ordered, [int(task_duration(t)) for t in ordered], context, env.now, env.window_days, time_limit_seconds
    )
    if placements is None:
        return create_greedy_packed_schedule(tasks, context, env)

    schedule = []
    for task, start, end in placements:
        slot = TimeSlot(start=format_time(start), end=format_time(end), days=[day_name(start.date())], slot_date=start.date())
        schedule.append(create_time_block_from_slot(task, slot, env.classifier.block_type(task), env.now))
    return schedule


def create_energy_optimized_schedule(tasks: List[Task], context: SchedulingContext, env: PassEnvironment) -> List[TimeBlock]:
    return energy_optimization_pass(tasks, context, env).schedule


def safe_schedule(name: str, build: Callable[[], List[TimeBlock]]) -> List[TimeBlock]:
    try:
        return build()
    except Exception:
        logger.exception(f"Alternative '{name}' failed; returning it empty")
        return []


def generate_alternative_schedules(
    tasks: List[Task],
    context: SchedulingContext,
    env: PassEnvironment,
    time_limit_seconds: float = 5.0,
) -> List[AlternativeSchedule]:
    return [
        AlternativeSchedule(
            name="Conservative",
            description="More buffer time, gentler schedule",
            schedule=safe_schedule("Conservative", lambda: create_conservative_schedule(tasks, context, env)),
            tradeoffs=["Less packed schedule", "May take longer to complete"],
            confidence=0.8,
        ),
        AlternativeSchedule(
            name="Aggressive",
            description="Packed schedule for maximum productivity",
            schedule=safe_schedule(
                "Aggressive", lambda: create_aggressive_schedule(tasks, context, env, time_limit_seconds)
            ),
            tradeoffs=["Faster completion", "Higher risk of burnout"],
            confidence=0.6,
        ),
        AlternativeSchedule(
            name="Energy-Optimized",
            description="Perfectly aligned with your energy patterns",
            schedule=safe_schedule("Energy-Optimized", lambda: create_energy_optimized_schedule(tasks, context, env)),
            tradeoffs=["Better energy utilization", "May conflict with deadlines"],
            confidence=0.9,
        ),
    ]
