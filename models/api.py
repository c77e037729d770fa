"""
Request/response payloads of the administration endpoints.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field, model_validator

from .schemas import (
    ApiModel, AvailabilityState, Day, LessonKind, Meeting, Period, RoomType,
    RunStatus, SolverStrategy, SubjectLesson, HHMM_PATTERN,
)


# ===========================
# Periods & Rooms
# ===========================

class PeriodIn(ApiModel):
    number: int
    start_time: str = Field(pattern=HHMM_PATTERN)
    end_time: str = Field(pattern=HHMM_PATTERN)
    is_break: bool = False
    label: Optional[str] = None

    @model_validator(mode="after")
    def _check_time_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("Start time must be before end time")
        return self


class PeriodUpdate(ApiModel):
    number: Optional[int] = None
    start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    end_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    is_break: Optional[bool] = None
    label: Optional[str] = None


class PeriodBulkIn(ApiModel):
    periods: List[PeriodIn] = Field(min_length=1)


class RoomIn(ApiModel):
    name: str = Field(min_length=1)
    type: RoomType = RoomType.REGULAR
    capacity: int = Field(40, ge=0)
    description: Optional[str] = None


class RoomUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None


class RoomOut(ApiModel):
    id: int
    name: str
    type: RoomType
    capacity: int
    description: Optional[str] = None


# ===========================
# Directory (collaborator data)
# ===========================

class TeacherIn(ApiModel):
    name: str = Field(min_length=1)
    email: Optional[str] = None


class TeacherOut(TeacherIn):
    id: int


class SubjectIn(ApiModel):
    name: str = Field(min_length=1)
    code: Optional[str] = None


class SubjectOut(SubjectIn):
    id: int


class ClassIn(ApiModel):
    name: str = Field(min_length=1)
    grade: Optional[int] = None
    section: Optional[str] = None
    size: Optional[int] = Field(None, ge=0)


class ClassOut(ClassIn):
    id: int


class AssignmentIn(ApiModel):
    teacher_id: int
    class_id: int
    subject_id: int


class AssignmentOut(AssignmentIn):
    id: int


class GradeCalendarIn(ApiModel):
    grades: Dict[int, List[Day]]


class GradeCalendarOut(ApiModel):
    default_days: List[Day]
    grades: Dict[int, List[Day]]


# ===========================
# Time Off
# ===========================

class TimeOffCell(ApiModel):
    day_of_week: Day
    period_id: int
    state: AvailabilityState


class TimeOffMatrix(ApiModel):
    matrix: List[TimeOffCell] = []


# ===========================
# Lesson Configuration
# ===========================

class LessonConfigIn(ApiModel):
    """A subject lesson (subjectId + classIds) or a meeting (title)."""
    subject_id: Optional[int] = None
    title: Optional[str] = None
    class_ids: List[int] = []
    teacher_ids: List[int] = []
    count: int = Field(1, ge=1)
    length: Literal[1, 2, 3] = 1
    room_type: Optional[RoomType] = None
    is_meeting: bool = False

    @model_validator(mode="after")
    def _check_kind(self):
        if not self.is_meeting and (self.subject_id is None or not self.class_ids):
            raise ValueError("Subject and at least one class are required.")
        if self.is_meeting and not self.title:
            raise ValueError("Title is required for meetings.")
        if not self.teacher_ids:
            raise ValueError("At least one teacher is required.")
        return self

    def to_requirement(self, lesson_id: int):
        common = dict(
            id=lesson_id,
            teacher_ids=self.teacher_ids,
            count=self.count,
            length=self.length,
            room_type=self.room_type,
        )
        if self.is_meeting:
            return Meeting(title=self.title, class_ids=self.class_ids, **common)
        return SubjectLesson(subject_id=self.subject_id, class_ids=self.class_ids, **common)


class NamedRef(ApiModel):
    id: int
    name: str


class LessonConfigOut(ApiModel):
    id: int
    kind: LessonKind
    is_meeting: bool
    subject_id: Optional[int] = None
    subject: Optional[NamedRef] = None
    title: Optional[str] = None
    class_ids: List[int] = []
    classes: List[NamedRef] = []
    teacher_ids: List[int] = []
    teachers: List[NamedRef] = []
    count: int
    length: int
    room_type: Optional[RoomType] = None


class ClassLoad(ApiModel):
    class_id: int
    class_name: str
    total_lessons: int = 0
    total_periods: int = 0


class SubjectLoad(ApiModel):
    subject_id: int
    subject_name: str
    total_lessons: int = 0


class TeacherLoad(ApiModel):
    teacher_id: int
    teacher_name: str
    total_periods: int = 0


class LessonSummary(ApiModel):
    total_lessons: int
    by_class: List[ClassLoad]
    by_subject: List[SubjectLoad]
    by_teacher: List[TeacherLoad]


class FromAssignmentsResult(ApiModel):
    created: int
    total: int
    lessons: List[LessonConfigOut]


# ===========================
# Timetable Read-back
# ===========================

class ManualSlotIn(ApiModel):
    day_of_week: Day
    period_ids: List[int] = Field(min_length=1)
    lesson_requirement_id: Optional[int] = None
    teacher_ids: List[int] = Field(min_length=1)
    class_ids: List[int] = []
    room_id: Optional[int] = None


class RoomRef(ApiModel):
    id: int
    name: str
    type: RoomType


class ClassRef(ApiModel):
    id: int
    name: str
    grade: Optional[int] = None
    section: Optional[str] = None


class SlotOut(ApiModel):
    id: int
    day_of_week: Day
    period_ids: List[int]
    periods: List[Period]
    lesson_requirement_id: Optional[int] = None
    title: Optional[str] = None
    subject: Optional[NamedRef] = None
    teachers: List[NamedRef] = []
    classes: List[ClassRef] = []
    room: Optional[RoomRef] = None
    auto_generated: bool


class TimetableView(ApiModel):
    slots: List[SlotOut]
    periods: List[Period]
    days: List[Day]
    classes: Optional[List[ClassRef]] = None
    teachers: Optional[List[NamedRef]] = None
    rooms: Optional[List[RoomRef]] = None


class SlotOverlap(ApiModel):
    type: str  # teacher_overlap, class_overlap or room_overlap
    day_of_week: Day
    period_id: int
    slot_a: int
    slot_b: int


class OverlapReport(ApiModel):
    conflicts: List[SlotOverlap]
    count: int


class RunOut(ApiModel):
    id: int
    status: RunStatus
    strategy: SolverStrategy
    clear_existing: bool
    total_placed: int
    total_conflicts: int
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
