from dataclasses import dataclass, field
from typing import List

from chronoplan.models.entities import (
    BufferPreferences,
    Deadline,
    EnergyProfile,
    Goal,
    TimeBlock,
    UserPreferences,
)


@dataclass(frozen=True)
class SchedulingConstraints:
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    energy_profile: EnergyProfile = field(default_factory=EnergyProfile)
    existing_blocks: List[TimeBlock] = field(default_factory=list)
    deadlines: List[Deadline] = field(default_factory=list)
    buffer_preferences: BufferPreferences = field(default_factory=BufferPreferences)
    goals: List[Goal] = field(default_factory=list)


@dataclass(frozen=True)
class SchedulingContext:
    user: UserPreferences
    energy: EnergyProfile
    deadlines: List[Deadline]
    existing_blocks: List[TimeBlock]
    buffers: BufferPreferences
    goals: List[Goal]


@dataclass(frozen=True)
class OptimizationWeights:
    # Only the first three enter the slot score today.
    energy_alignment: float = 0.25
    deadline_urgency: float = 0.30
    goal_priority: float = 0.20
    context_switching: float = 0.10
    user_preferences: float = 0.10
    buffer_respect: float = 0.05


@dataclass(frozen=True)
class QualityWeights:
    base: float = 0.5
    conflict_penalty: float = 0.1
    energy_alignment: float = 0.3
    deadline_coverage: float = 0.2
