from typing import Dict, List

from chronoplan.models.constraints import SchedulingConstraints, SchedulingContext
from chronoplan.models.entities import GOAL_PRIORITY_RANK, Goal


def resolve_goals(goals: List[Goal]) -> List[Goal]:
    """Deduplicate goals by id (last wins) and order them by priority, highest first."""
    by_id: Dict[str, Goal] = {}
    for goal in goals:
        by_id[goal.id] = goal
    return sorted(by_id.values(), key=lambda g: -GOAL_PRIORITY_RANK[g.priority])


def build_scheduling_context(constraints: SchedulingConstraints) -> SchedulingContext:
    return SchedulingContext(
        user=constraints.user_preferences,
        energy=constraints.energy_profile,
        deadlines=list(constraints.deadlines),
        existing_blocks=list(constraints.existing_blocks),
        buffers=constraints.buffer_preferences,
        goals=resolve_goals(constraints.goals),
    )
