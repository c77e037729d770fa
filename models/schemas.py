from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class ApiModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SnapshotModel(ApiModel):
    """Immutable input handed to the solver."""
    model_config = ConfigDict(frozen=True)


# ===========================
# Enumerations
# ===========================

class Day(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"

    @property
    def order(self) -> int:
        return WEEK_ORDER.index(self)


WEEK_ORDER: List[Day] = list(Day)
WORKING_WEEK: List[Day] = WEEK_ORDER[:5]


def sort_days(days) -> List[Day]:
    """Deduplicate and return days in natural week order."""
    return sorted({Day(d) for d in days}, key=lambda d: d.order)


class AvailabilityState(str, Enum):
    AVAILABLE = "AVAILABLE"
    CONDITIONAL = "CONDITIONAL"
    UNAVAILABLE = "UNAVAILABLE"


class OwnerType(str, Enum):
    CLASS = "CLASS"
    TEACHER = "TEACHER"
    SUBJECT = "SUBJECT"


class RoomType(str, Enum):
    REGULAR = "REGULAR"
    LAB = "LAB"
    COMPUTER_LAB = "COMPUTER_LAB"
    PE = "PE"
    LIBRARY = "LIBRARY"
    SPECIALTY = "SPECIALTY"


class LessonKind(str, Enum):
    SUBJECT = "SUBJECT"
    MEETING = "MEETING"


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


class SolverStrategy(str, Enum):
    GREEDY = "greedy"
    CPSAT = "cpsat"


# ===========================
# Topology & Inventory
# ===========================

class Period(SnapshotModel):
    """A numbered teaching period; breaks are never schedulable."""
    id: int
    number: int
    start_time: str = Field(pattern=HHMM_PATTERN)  # HH:MM
    end_time: str = Field(pattern=HHMM_PATTERN)
    is_break: bool = False
    label: Optional[str] = None

    @model_validator(mode="after")
    def _check_time_order(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Period {self.number}: start time ({self.start_time}) must be before end time ({self.end_time})"
            )
        return self


class Room(SnapshotModel):
    id: int
    name: str
    type: RoomType = RoomType.REGULAR
    capacity: int = Field(40, ge=0)


class Teacher(SnapshotModel):
    id: int
    name: str


class Subject(SnapshotModel):
    id: int
    name: str


class SchoolClass(SnapshotModel):
    """A class (student group); size is optional collaborator data."""
    id: int
    name: str
    grade: Optional[int] = None
    section: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)


# ===========================
# Lesson Requirements
# ===========================

class LessonBase(SnapshotModel):
    """Fields shared by subject lessons and meetings."""
    id: int
    teacher_ids: List[int] = Field(min_length=1)
    count: int = Field(1, ge=1)      # occurrences per week
    length: Literal[1, 2, 3] = 1     # contiguous periods per occurrence
    room_type: Optional[RoomType] = None  # None: chosen automatically

    @field_validator("teacher_ids", "class_ids", check_fields=False)
    @classmethod
    def _dedupe(cls, value: List[int]) -> List[int]:
        return list(dict.fromkeys(value))

    @property
    def is_meeting(self) -> bool:
        return self.kind == LessonKind.MEETING.value


class SubjectLesson(LessonBase):
    kind: Literal["SUBJECT"] = "SUBJECT"
    subject_id: int
    class_ids: List[int] = Field(min_length=1)


class Meeting(LessonBase):
    kind: Literal["MEETING"] = "MEETING"
    title: str = Field(min_length=1)
    class_ids: List[int] = []


LessonRequirement = Annotated[Union[SubjectLesson, Meeting], Field(discriminator="kind")]


# ===========================
# Availability & Slots
# ===========================

class AvailabilityEntry(SnapshotModel):
    owner_type: OwnerType
    owner_id: int
    day_of_week: Day
    period_id: int
    state: AvailabilityState


class Slot(ApiModel):
    """One placed occurrence of a requirement."""
    id: Optional[int] = None
    day_of_week: Day
    period_ids: List[int]
    lesson_requirement_id: Optional[int] = None
    room_id: Optional[int] = None
    teacher_ids: List[int] = []
    class_ids: List[int] = []
    auto_generated: bool = True


class SchedulingSnapshot(SnapshotModel):
    """Everything a generation run reads, captured once at run start."""
    periods: List[Period] = []
    rooms: List[Room] = []
    teachers: List[Teacher] = []
    subjects: List[Subject] = []
    classes: List[SchoolClass] = []
    lessons: List[LessonRequirement] = []
    availability: List[AvailabilityEntry] = []
    grade_calendar: Dict[int, List[Day]] = {}
    default_days: List[Day] = Field(default_factory=lambda: list(WORKING_WEEK))
    existing_slots: List[Slot] = []


# ===========================
# Generation Request / Response
# ===========================

class GenerateRequest(ApiModel):
    """Options of a generation run."""
    clear_existing: bool = False
    active_days: Optional[List[Day]] = None  # None: school default days
    strategy: SolverStrategy = SolverStrategy.GREEDY
    distribute_across_days: bool = False

    @field_validator("active_days")
    @classmethod
    def _order_days(cls, value: Optional[List[Day]]) -> Optional[List[Day]]:
        if value is None:
            return None
        if not value:
            raise ValueError("At least one active day is required")
        return sort_days(value)


class SolveRequest(GenerateRequest):
    """Stateless solve: the caller supplies the whole snapshot."""
    snapshot: SchedulingSnapshot


class Step(ApiModel):
    step: int
    message: str


class ConflictLesson(ApiModel):
    subject: str
    class_name: str = Field(alias="class")
    teachers: str


class ConflictOut(ApiModel):
    lesson_requirement_id: int
    type: str = "insufficient_slots"
    lesson: ConflictLesson
    placed: int
    needed: int


class Summary(ApiModel):
    lessons: int
    periods_per_day: int
    days_per_week: int
    rooms_available: int
    total_slots_created: int


class ErrorMessage(ApiModel):
    """Error or warning message"""
    title: str
    message: str


class Messages(ApiModel):
    """Collection of error/warning messages"""
    error_message: List[ErrorMessage] = []


class GenerateResponse(ApiModel):
    """Result of a generation run: scheduled, scheduled with conflicts, or failed."""
    success: bool
    status: RunStatus
    run_id: Optional[int] = None
    total_placed: int = 0
    total_conflicts: int = 0
    summary: Optional[Summary] = None
    steps: List[Step] = []
    conflicts: List[ConflictOut] = []
    slots: Optional[List[Slot]] = None
    error: Optional[str] = None
    messages: Messages = Messages()
