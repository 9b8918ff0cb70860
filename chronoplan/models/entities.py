from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


GOAL_PRIORITY_RANK = {
    GoalPriority.CRITICAL: 4,
    GoalPriority.HIGH: 3,
    GoalPriority.MEDIUM: 2,
    GoalPriority.LOW: 1,
}


class BlockStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BlockType(str, Enum):
    WORK = "work"
    BREAK = "break"
    FOCUS = "focus"
    DEEP = "deep"
    SHALLOW = "shallow"
    MEETING = "meeting"
    ADMIN = "admin"
    BUFFER = "buffer"
    TRAVEL = "travel"


class EnergyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DeadlineType(str, Enum):
    SOFT = "soft"
    HARD = "hard"


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    estimated_minutes: int
    domain_id: str
    user_id: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    goal_id: Optional[str] = None
    project_id: Optional[str] = None
    status: str = "pending"


@dataclass(frozen=True)
class TimeBlock:
    id: str
    title: str
    start_time: datetime
    end_time: datetime
    domain_id: str
    user_id: str
    description: str = ""
    status: BlockStatus = BlockStatus.PLANNED
    type: BlockType = BlockType.WORK
    goal_ids: List[str] = field(default_factory=list)
    task_id: Optional[str] = None
    task_ids: List[str] = field(default_factory=list)
    project_id: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60


@dataclass(frozen=True)
class Goal:
    id: str
    title: str
    domain_id: str
    user_id: str
    priority: GoalPriority = GoalPriority.MEDIUM
    time_allocation_target: float = 2.0  # hours per week


@dataclass(frozen=True)
class TimeSlot:
    start: str  # "HH:MM"
    end: str  # "HH:MM"
    days: List[str] = field(default_factory=list)
    slot_date: Optional[date] = None  # set on engine-generated candidates


@dataclass(frozen=True)
class Deadline:
    due_date: datetime
    task_id: Optional[str] = None
    goal_id: Optional[str] = None
    type: DeadlineType = DeadlineType.SOFT
    importance: str = "medium"


@dataclass(frozen=True)
class WorkingHours:
    start: str = "09:00"
    end: str = "17:00"


@dataclass(frozen=True)
class ContextSwitching:
    minimum_block_duration: int = 15
    max_tasks_per_block: int = 3


@dataclass(frozen=True)
class DeepWorkPreferences:
    preferred_times: List[TimeSlot] = field(default_factory=list)
    max_block_duration: int = 120
    breaks_between: int = 15


@dataclass(frozen=True)
class EnergyManagement:
    high_energy_times: List[TimeSlot] = field(default_factory=list)
    low_energy_times: List[TimeSlot] = field(default_factory=list)


@dataclass(frozen=True)
class BreakPreferences:
    short_break_duration: int = 15
    long_break_duration: int = 30
    break_frequency: int = 90


@dataclass(frozen=True)
class UserPreferences:
    working_hours: WorkingHours = field(default_factory=WorkingHours)
    context_switching: ContextSwitching = field(default_factory=ContextSwitching)
    deep_work_preferences: DeepWorkPreferences = field(default_factory=DeepWorkPreferences)
    energy_management: EnergyManagement = field(default_factory=EnergyManagement)
    break_preferences: BreakPreferences = field(default_factory=BreakPreferences)


@dataclass(frozen=True)
class EnergyProfile:
    hourly_profile: Dict[str, float] = field(default_factory=dict)  # "9" or "09" -> [0, 1]
    weekly_pattern: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class BufferPreferences:
    between_tasks: int = 10  # minutes
    before_deadlines: int = 24  # hours
    day_start_buffer: int = 0  # minutes
    day_end_buffer: int = 0  # minutes
