"""
Data models and Pydantic schemas for the timetable API.
"""
from .schemas import (
    Day,
    AvailabilityState,
    OwnerType,
    RoomType,
    RunStatus,
    SolverStrategy,
    Period,
    Room,
    Teacher,
    Subject,
    SchoolClass,
    SubjectLesson,
    Meeting,
    LessonRequirement,
    AvailabilityEntry,
    Slot,
    SchedulingSnapshot,
    GenerateRequest,
    SolveRequest,
    GenerateResponse,
    Messages,
    ErrorMessage,
)

__all__ = [
    "Day",
    "AvailabilityState",
    "OwnerType",
    "RoomType",
    "RunStatus",
    "SolverStrategy",
    "Period",
    "Room",
    "Teacher",
    "Subject",
    "SchoolClass",
    "SubjectLesson",
    "Meeting",
    "LessonRequirement",
    "AvailabilityEntry",
    "Slot",
    "SchedulingSnapshot",
    "GenerateRequest",
    "SolveRequest",
    "GenerateResponse",
    "Messages",
    "ErrorMessage",
]
