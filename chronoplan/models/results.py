from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from chronoplan.models.entities import Goal, Task, TimeBlock


class ConflictType(str, Enum):
    OVERLAP = "overlap"
    ENERGY_MISMATCH = "energy_mismatch"
    DEADLINE_RISK = "deadline_risk"
    PREFERENCE_VIOLATION = "preference_violation"


class ConflictSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EnergyImpact(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class TriggerType(str, Enum):
    SESSION_END = "session_end"
    OVERRUN = "overrun"
    MISSED_BLOCK = "missed_block"
    EXTERNAL_INTERRUPT = "external_interrupt"
    ENERGY_CHANGE = "energy_change"


class ReplanStrategy(str, Enum):
    """Caller-facing strategy hint."""

    MINIMAL_CHANGE = "minimal_change"
    SAVE_DAY = "save_day"
    SAVE_GOAL = "save_goal"
    SAVE_ENERGY = "save_energy"


class AdaptiveStrategy(str, Enum):
    """Strategy actually executed by the re-planner."""

    MICRO_ADJUSTMENT = "micro_adjustment"
    BLOCK_COMPRESSION = "block_compression"
    SCHEDULE_SHIFT = "schedule_shift"
    GOAL_REPRIORITIZATION = "goal_reprioritization"
    EMERGENCY_SIMPLIFICATION = "emergency_simplification"
    MISSED_BLOCK_RECOVERY = "missed_block_recovery"


class ChangeType(str, Enum):
    MOVED = "moved"
    SHORTENED = "shortened"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"
    MERGED = "merged"


def clamp_confidence(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass
class SchedulingConflict:
    type: ConflictType
    description: str
    severity: ConflictSeverity
    suggestions: List[str] = field(default_factory=list)


@dataclass
class AlternativeSchedule:
    name: str
    description: str
    schedule: List[TimeBlock]
    tradeoffs: List[str]
    confidence: float

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class SchedulingResult:
    schedule: List[TimeBlock]
    conflicts: List[SchedulingConflict]
    alternatives: List[AlternativeSchedule]
    reasoning: str
    confidence: float

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)


@dataclass(frozen=True)
class TriggerContext:
    overrun_duration: Optional[float] = None  # minutes
    estimated_duration: Optional[float] = None  # minutes
    energy_drop: Optional[float] = None
    current_energy: Optional[float] = None
    current_schedule: List[TimeBlock] = field(default_factory=list)
    remaining_tasks: List[Task] = field(default_factory=list)
    goals: List[Goal] = field(default_factory=list)
    missed_blocks: List[TimeBlock] = field(default_factory=list)


@dataclass(frozen=True)
class RePlanningTrigger:
    type: TriggerType
    context: TriggerContext = field(default_factory=TriggerContext)
    affected_block_id: Optional[str] = None


@dataclass(frozen=True)
class RePlanningOptions:
    strategy: Optional[ReplanStrategy] = None
    priority_goals: List[str] = field(default_factory=list)


@dataclass
class ScheduleChange:
    type: ChangeType
    original_block: TimeBlock
    reasoning: str
    new_block: Optional[TimeBlock] = None

    def __post_init__(self):
        if not self.reasoning:
            raise ValueError("schedule changes must carry a reasoning")


@dataclass
class ReplanImpact:
    goals_affected: List[str] = field(default_factory=list)
    deadlines_risk: List[str] = field(default_factory=list)
    energy_impact: EnergyImpact = EnergyImpact.NEUTRAL


@dataclass
class RePlanningResult:
    confidence: float
    new_schedule: List[TimeBlock]
    changes: List[ScheduleChange]
    reasoning: str
    impact: ReplanImpact = field(default_factory=ReplanImpact)
    alternatives: List[AlternativeSchedule] = field(default_factory=list)
    strategy: Optional[AdaptiveStrategy] = None

    def __post_init__(self):
        self.confidence = clamp_confidence(self.confidence)
