"""
Example: Scheduling a day and re-planning after an overrun

This example schedules a handful of tasks, then reports that the first
block ran 45 minutes long and lets the re-planner repair the rest of the
day. Run from the repository root:

    python examples/replan_example.py
"""

from datetime import datetime, timedelta

from chronoplan.engine.replanning import RePlanningEngine
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import (
    Deadline,
    DeepWorkPreferences,
    EnergyProfile,
    Goal,
    GoalPriority,
    Task,
    TimeSlot,
    UserPreferences,
    WorkingHours,
)
from chronoplan.models.results import RePlanningTrigger, TriggerContext, TriggerType
from chronoplan.utils.logging_config import setup_logging

setup_logging()

# Pin "now" to 08:00 so the output is reproducible.
now = datetime.now().replace(hour=8, minute=0, second=0, microsecond=0)
clock = lambda: now

goal = Goal(id="launch", title="Product launch", domain_id="work", user_id="me", priority=GoalPriority.HIGH)
tasks = [
    Task(id="pricing", title="Design pricing page", estimated_minutes=90, domain_id="work", user_id="me",
         goal_id="launch", due_date=now + timedelta(days=1)),
    Task(id="copy", title="Write launch copy", estimated_minutes=60, domain_id="work", user_id="me",
         goal_id="launch"),
    Task(id="inbox", title="Reply to email", estimated_minutes=30, domain_id="work", user_id="me"),
]

constraints = SchedulingConstraints(
    user_preferences=UserPreferences(
        working_hours=WorkingHours("09:00", "17:00"),
        deep_work_preferences=DeepWorkPreferences(preferred_times=[TimeSlot("09:00", "12:00")]),
    ),
    energy_profile=EnergyProfile(hourly_profile={"9": 0.9, "10": 0.9, "14": 0.4, "16": 0.6}),
    deadlines=[Deadline(due_date=now + timedelta(days=1), task_id="pricing")],
    goals=[goal],
)

# 1. Initial schedule
scheduler = AutoScheduler(clock=clock)
result = scheduler.schedule(tasks, constraints)
print(f"Schedule (confidence {result.confidence:.2f}): {result.reasoning}")
for block in sorted(result.schedule, key=lambda b: b.start_time):
    print(f"  {block.start_time:%H:%M}-{block.end_time:%H:%M}  {block.title} [{block.type.value}]")
for alternative in result.alternatives:
    print(f"  alternative {alternative.name}: {len(alternative.schedule)} blocks")

# 2. The first block overran by 45 minutes; it is now 10:30
first = min(result.schedule, key=lambda b: b.start_time)
later = first.end_time + timedelta(minutes=45)
engine = RePlanningEngine(scheduler=scheduler, constraints=constraints, clock=lambda: later)
trigger = RePlanningTrigger(
    type=TriggerType.OVERRUN,
    context=TriggerContext(overrun_duration=45, current_schedule=result.schedule, goals=[goal]),
    affected_block_id=first.id,
)
replan = engine.handle_trigger(trigger)

print(f"\nRe-plan via {replan.strategy.value} (confidence {replan.confidence:.2f}): {replan.reasoning}")
for change in replan.changes:
    print(f"  {change.type.value}: {change.original_block.title} - {change.reasoning}")
