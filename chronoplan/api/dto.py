from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import (
    BlockStatus,
    BlockType,
    BufferPreferences,
    ContextSwitching,
    Deadline,
    DeadlineType,
    DeepWorkPreferences,
    EnergyManagement,
    EnergyProfile,
    Goal,
    GoalPriority,
    Task,
    TaskPriority,
    TimeBlock,
    TimeSlot,
    UserPreferences,
    WorkingHours,
)
from chronoplan.models.results import (
    RePlanningOptions,
    RePlanningTrigger,
    ReplanStrategy,
    TriggerContext,
    TriggerType,
)
from chronoplan.utils.timeutils import parse_time

TIME_PATTERN = r"^\d{2}:\d{2}$"
DEFAULT_DOMAIN = "default"


def to_naive(value: Optional[datetime]) -> Optional[datetime]:
    """The engine works in naive server-local time."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def check_time_of_day(v: str) -> str:
    parse_time(v)
    return v


class TimeSlotDTO(BaseModel):
    start: str = Field(..., pattern=TIME_PATTERN)
    end: str = Field(..., pattern=TIME_PATTERN)
    days: List[str] = []

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str):
        """Ensure "HH:MM" is a real time of day (24:00 allowed as an end)."""
        return check_time_of_day(v)

    @model_validator(mode="after")
    def validate_window(self):
        if parse_time(self.start) >= parse_time(self.end):
            raise ValueError("time windows must have start < end")
        return self

    def to_domain(self) -> TimeSlot:
        return TimeSlot(start=self.start, end=self.end, days=[d.lower() for d in self.days])


class SlotResponse(BaseModel):
    start: str
    end: str
    days: List[str]
    slot_date: Optional[date] = None

    @classmethod
    def from_domain(cls, slot: TimeSlot) -> "SlotResponse":
        return cls(start=slot.start, end=slot.end, days=list(slot.days), slot_date=slot.slot_date)


class TaskDTO(BaseModel):
    id: str
    title: str = Field(..., min_length=1)
    description: str = ""
    estimated_minutes: int = 60
    due_date: Optional[datetime] = None
    goal_id: Optional[str] = None
    project_id: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    domain_id: str = DEFAULT_DOMAIN
    user_id: Optional[str] = None
    status: str = "pending"

    @field_validator("estimated_minutes")
    @classmethod
    def validate_estimate(cls, v: int):
        """Ensure task estimate is reasonable (1 min to 24 hours)."""
        if v < 1 or v > 1440:
            raise ValueError("estimated_minutes must be between 1 and 1440")
        return v

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]):
        return to_naive(v)

    def to_domain(self, user_id: str = "") -> Task:
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            estimated_minutes=self.estimated_minutes,
            due_date=self.due_date,
            goal_id=self.goal_id,
            project_id=self.project_id,
            priority=self.priority,
            domain_id=self.domain_id,
            user_id=self.user_id or user_id,
            status=self.status,
        )


class TimeBlockDTO(BaseModel):
    id: str
    title: str
    description: str = ""
    start_time: datetime
    end_time: datetime
    domain_id: str = DEFAULT_DOMAIN
    user_id: Optional[str] = None
    status: BlockStatus = BlockStatus.PLANNED
    type: BlockType = BlockType.WORK
    goal_ids: List[str] = []
    task_id: Optional[str] = None
    task_ids: List[str] = []
    project_id: Optional[str] = None
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time", "actual_start_time", "actual_end_time")
    @classmethod
    def normalize_times(cls, v: Optional[datetime]):
        return to_naive(v)

    def to_domain(self, user_id: str = "") -> TimeBlock:
        return TimeBlock(
            id=self.id,
            title=self.title,
            description=self.description,
            start_time=self.start_time,
            end_time=self.end_time,
            domain_id=self.domain_id,
            user_id=self.user_id or user_id,
            status=self.status,
            type=self.type,
            goal_ids=list(self.goal_ids),
            task_id=self.task_id,
            task_ids=list(self.task_ids),
            project_id=self.project_id,
            actual_start_time=self.actual_start_time,
            actual_end_time=self.actual_end_time,
        )


class GoalDTO(BaseModel):
    id: str
    title: str = ""
    priority: GoalPriority = GoalPriority.MEDIUM
    time_allocation_target: float = Field(2.0, ge=0)
    domain_id: str = DEFAULT_DOMAIN
    user_id: Optional[str] = None

    def to_domain(self, user_id: str = "") -> Goal:
        return Goal(
            id=self.id,
            title=self.title or self.id,
            domain_id=self.domain_id,
            user_id=self.user_id or user_id,
            priority=self.priority,
            time_allocation_target=self.time_allocation_target,
        )


class DeadlineDTO(BaseModel):
    due_date: datetime
    task_id: Optional[str] = None
    goal_id: Optional[str] = None
    type: DeadlineType = DeadlineType.SOFT
    importance: str = "medium"

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: datetime):
        return to_naive(v)

    def to_domain(self) -> Deadline:
        return Deadline(
            due_date=self.due_date,
            task_id=self.task_id,
            goal_id=self.goal_id,
            type=self.type,
            importance=self.importance,
        )


class WorkingHoursDTO(BaseModel):
    start: str = Field("09:00", pattern=TIME_PATTERN)
    end: str = Field("17:00", pattern=TIME_PATTERN)

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, v: str):
        return check_time_of_day(v)


class ContextSwitchingDTO(BaseModel):
    minimum_block_duration: int = Field(15, ge=1, le=1440)
    max_tasks_per_block: int = Field(3, ge=1)


class DeepWorkPreferencesDTO(BaseModel):
    preferred_times: List[TimeSlotDTO] = []
    max_block_duration: int = Field(120, ge=1)
    breaks_between: int = Field(15, ge=0)


class EnergyManagementDTO(BaseModel):
    high_energy_times: List[TimeSlotDTO] = []
    low_energy_times: List[TimeSlotDTO] = []


class UserPreferencesDTO(BaseModel):
    working_hours: WorkingHoursDTO = WorkingHoursDTO()
    context_switching: ContextSwitchingDTO = ContextSwitchingDTO()
    deep_work_preferences: DeepWorkPreferencesDTO = DeepWorkPreferencesDTO()
    energy_management: EnergyManagementDTO = EnergyManagementDTO()

    def to_domain(self) -> UserPreferences:
        deep = self.deep_work_preferences
        energy = self.energy_management
        return UserPreferences(
            working_hours=WorkingHours(start=self.working_hours.start, end=self.working_hours.end),
            context_switching=ContextSwitching(
                minimum_block_duration=self.context_switching.minimum_block_duration,
                max_tasks_per_block=self.context_switching.max_tasks_per_block,
            ),
            deep_work_preferences=DeepWorkPreferences(
                preferred_times=[w.to_domain() for w in deep.preferred_times],
                max_block_duration=deep.max_block_duration,
                breaks_between=deep.breaks_between,
            ),
            energy_management=EnergyManagement(
                high_energy_times=[w.to_domain() for w in energy.high_energy_times],
                low_energy_times=[w.to_domain() for w in energy.low_energy_times],
            ),
        )


class EnergyProfileDTO(BaseModel):
    hourly_profile: Dict[str, float] = {}
    weekly_pattern: Dict[str, float] = {}

    @field_validator("hourly_profile")
    @classmethod
    def validate_hourly(cls, v: Dict[str, float]):
        """Keys are hours 0-23, values energy levels in [0, 1]."""
        for hour, level in v.items():
            if not hour.isdigit() or not 0 <= int(hour) <= 23:
                raise ValueError(f"hourly_profile keys must be hours 0-23, got {hour!r}")
            if not 0 <= level <= 1:
                raise ValueError("energy levels must be in [0, 1]")
        return v

    def to_domain(self) -> EnergyProfile:
        return EnergyProfile(hourly_profile=dict(self.hourly_profile), weekly_pattern=dict(self.weekly_pattern))


class BufferPreferencesDTO(BaseModel):
    between_tasks: int = Field(10, ge=0)
    before_deadlines: int = Field(24, ge=0)
    day_start_buffer: int = Field(0, ge=0)
    day_end_buffer: int = Field(0, ge=0)

    def to_domain(self) -> BufferPreferences:
        return BufferPreferences(**self.model_dump())


class ConstraintsDTO(BaseModel):
    user_preferences: UserPreferencesDTO = UserPreferencesDTO()
    energy_profile: EnergyProfileDTO = EnergyProfileDTO()
    existing_blocks: List[TimeBlockDTO] = []
    deadlines: List[DeadlineDTO] = []
    buffer_preferences: BufferPreferencesDTO = BufferPreferencesDTO()
    goals: List[GoalDTO] = []

    def to_domain(self, user_id: str = "") -> SchedulingConstraints:
        return SchedulingConstraints(
            user_preferences=self.user_preferences.to_domain(),
            energy_profile=self.energy_profile.to_domain(),
            existing_blocks=[b.to_domain(user_id) for b in self.existing_blocks],
            deadlines=[d.to_domain() for d in self.deadlines],
            buffer_preferences=self.buffer_preferences.to_domain(),
            goals=[g.to_domain(user_id) for g in self.goals],
        )


class GenerateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    tasks: List[TaskDTO]
    constraints: ConstraintsDTO = ConstraintsDTO()


class OptimizeRequest(BaseModel):
    user_id: str = ""
    blocks: List[TimeBlockDTO]
    constraints: ConstraintsDTO = ConstraintsDTO()


class SlotsRequest(BaseModel):
    duration_minutes: int
    constraints: ConstraintsDTO = ConstraintsDTO()

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, v: int):
        if v < 1 or v > 1440:
            raise ValueError("duration_minutes must be between 1 and 1440")
        return v


class BenchmarkRequest(BaseModel):
    tasks: List[TaskDTO]
    constraints: ConstraintsDTO = ConstraintsDTO()


class BenchmarkEntry(BaseModel):
    pass_name: str
    time_seconds: float
    quality: float
    success: bool
    num_blocks: int
    num_conflicts: int


class BenchmarkResponse(BaseModel):
    results: List[BenchmarkEntry]
    num_tasks: int
    best_pass: Optional[str] = None


class TriggerContextDTO(BaseModel):
    overrun_duration: Optional[float] = Field(None, ge=0)
    estimated_duration: Optional[float] = Field(None, ge=0)
    energy_drop: Optional[float] = Field(None, ge=0, le=1)
    current_energy: Optional[float] = Field(None, ge=0, le=1)
    current_schedule: List[TimeBlockDTO] = []
    remaining_tasks: List[TaskDTO] = []
    goals: List[GoalDTO] = []
    missed_blocks: List[TimeBlockDTO] = []

    def to_domain(self, user_id: str = "") -> TriggerContext:
        return TriggerContext(
            overrun_duration=self.overrun_duration,
            estimated_duration=self.estimated_duration,
            energy_drop=self.energy_drop,
            current_energy=self.current_energy,
            current_schedule=[b.to_domain(user_id) for b in self.current_schedule],
            remaining_tasks=[t.to_domain(user_id) for t in self.remaining_tasks],
            goals=[g.to_domain(user_id) for g in self.goals],
            missed_blocks=[b.to_domain(user_id) for b in self.missed_blocks],
        )


class TriggerDTO(BaseModel):
    type: TriggerType
    context: TriggerContextDTO = TriggerContextDTO()
    affected_block_id: Optional[str] = None

    def to_domain(self, user_id: str = "") -> RePlanningTrigger:
        return RePlanningTrigger(
            type=self.type,
            context=self.context.to_domain(user_id),
            affected_block_id=self.affected_block_id,
        )


class OptionsDTO(BaseModel):
    strategy: Optional[ReplanStrategy] = None
    priority_goals: List[str] = []

    def to_domain(self) -> RePlanningOptions:
        return RePlanningOptions(strategy=self.strategy, priority_goals=list(self.priority_goals))


class ReplanRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    trigger: TriggerDTO
    options: OptionsDTO = OptionsDTO()
    constraints: Optional[ConstraintsDTO] = None


class RecoveryRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    missed_blocks: List[TimeBlockDTO]
    remaining_day: List[TimeBlockDTO] = []
    constraints: Optional[ConstraintsDTO] = None


class EnergyRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    current_energy: float = Field(..., ge=0, le=1)
    schedule: List[TimeBlockDTO]
