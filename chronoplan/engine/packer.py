from datetime import datetime, time, timedelta
import logging
from typing import List, Optional, Tuple

from ortools.sat.python import cp_model

from chronoplan.models.constraints import SchedulingContext
from chronoplan.models.entities import Task
from chronoplan.utils.timeutils import parse_time

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440

Placement = Tuple[Task, datetime, datetime]


def merge_intervals(intervals: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
    merged: List[Tuple[int, int]] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def blocked_intervals(context: SchedulingContext, origin: datetime, now: datetime, days: int) -> List[Tuple[int, int]]:
    """Minute offsets from `origin` that no task may touch: the past, off-hours and existing blocks."""
    horizon = days * MINUTES_PER_DAY
    work_start = parse_time(context.user.working_hours.start)
    work_end = parse_time(context.user.working_hours.end)
    blocked: List[Tuple[int, int]] = []

    elapsed = int((now - origin).total_seconds() // 60)
    if elapsed > 0:
        blocked.append((0, min(elapsed, horizon)))

    for day in range(days):
        base = day * MINUTES_PER_DAY
        if work_start > 0:
            blocked.append((base, base + min(work_start, MINUTES_PER_DAY)))
        if work_end < MINUTES_PER_DAY:
            blocked.append((base + max(work_end, 0), base + MINUTES_PER_DAY))

    for block in context.existing_blocks:
        start = int((block.start_time - origin).total_seconds() // 60)
        end = int(-(-(block.end_time - origin).total_seconds() // 60))
        start, end = max(start, 0), min(end, horizon)
        if start < end:
            blocked.append((start, end))

    return merge_intervals(blocked)


def pack_with_ortools(
    tasks: List[Task],
    durations: List[int],
    context: SchedulingContext,
    now: datetime,
    days: int,
    time_limit_seconds: float = 5.0,
) -> Optional[List[Placement]]:
    """
    Pack tasks as early as possible using the OR-Tools CP-SAT solver.

    Each task is an optional fixed-size interval; everything the user cannot
    use is a fixed interval; one NoOverlap ties them together. The objective
    first maximizes the number of placed tasks, then minimizes the sum of
    start offsets (dense, front-loaded packing).

    Returns:
        (task, start, end) for every placed task, or None if the solver found nothing
    """
    horizon = days * MINUTES_PER_DAY
    if horizon <= 0 or not tasks:
        return None

    origin = datetime.combine(now.date(), time())
    model = cp_model.CpModel()
    intervals = []

    for i, (start, end) in enumerate(blocked_intervals(context, origin, now, days)):
        intervals.append(model.NewFixedSizeIntervalVar(start, end - start, f"blocked_{i}"))

    task_vars = []
    for task, duration in zip(tasks, durations):
        if duration <= 0 or duration > horizon:
            continue
        start_var = model.NewIntVar(0, horizon - duration, f"{task.id}_start")
        present = model.NewBoolVar(f"{task.id}_present")
        interval = model.NewOptionalFixedSizeIntervalVar(start_var, duration, present, f"{task.id}_interval")
        model.Add(start_var == 0).OnlyEnforceIf(present.Not())
        intervals.append(interval)
        task_vars.append((task, duration, start_var, present))

    if not task_vars:
        return None

    model.AddNoOverlap(intervals)

    # Dropping one task must always cost more than any packing of the rest.
    drop_penalty = horizon * (len(task_vars) + 1)
    model.Minimize(
        sum(v[2] for v in task_vars)
        + drop_penalty * (len(task_vars) - sum(v[3] for v in task_vars))
    )

    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = time_limit_seconds
    solver.parameters.log_search_progress = False

    status = solver.Solve(model)
    if status not in [cp_model.OPTIMAL, cp_model.FEASIBLE]:
        logger.info(f"CP-SAT packing found no solution (status={solver.StatusName(status)})")
        return None

    placements: List[Placement] = []
    for task, duration, start_var, present in task_vars:
        if not solver.Value(present):
            continue
        start = origin + timedelta(minutes=int(solver.Value(start_var)))
        placements.append((task, start, start + timedelta(minutes=duration)))

    placements.sort(key=lambda p: p[1])
    return placements
