"""
ORM tables.

Every generated or manual slot writes one row per occupied (day, period) into
``slot_periods``, ``slot_teachers`` and ``slot_classes``. Their unique
constraints are what physically prevents double booking of a room, teacher
or class, independently of the solver's own bookkeeping.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from db.session import Base


def _utcnow():
    return datetime.now(timezone.utc)


# ===========================
# Topology & Inventory
# ===========================

class PeriodRow(Base):
    __tablename__ = "periods"

    id = Column(Integer, primary_key=True)
    number = Column(Integer, nullable=False, unique=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_break = Column(Boolean, nullable=False, default=False)
    label = Column(String(64))


class RoomRow(Base):
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False, unique=True)
    type = Column(String(32), nullable=False, default="REGULAR")
    capacity = Column(Integer, nullable=False, default=40)
    description = Column(Text)


class GradeCalendarRow(Base):
    __tablename__ = "grade_calendars"

    grade = Column(Integer, primary_key=True)
    days = Column(String(120), nullable=False)  # comma separated, e.g. "MONDAY,TUESDAY"


# ===========================
# Directory (collaborator data)
# ===========================

class TeacherRow(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255))


class SubjectRow(Base):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    code = Column(String(32))


class ClassRow(Base):
    __tablename__ = "school_classes"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    grade = Column(Integer)
    section = Column(String(16))
    size = Column(Integer)


class TeacherAssignmentRow(Base):
    __tablename__ = "teacher_assignments"
    __table_args__ = (UniqueConstraint("teacher_id", "class_id", "subject_id"),)

    id = Column(Integer, primary_key=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Integer, ForeignKey("school_classes.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)


# ===========================
# Availability
# ===========================

class AvailabilityRow(Base):
    __tablename__ = "availability"
    __table_args__ = (UniqueConstraint("owner_type", "owner_id", "day_of_week", "period_id"),)

    id = Column(Integer, primary_key=True)
    owner_type = Column(String(16), nullable=False, index=True)
    owner_id = Column(Integer, nullable=False, index=True)
    day_of_week = Column(String(16), nullable=False)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), nullable=False)
    state = Column(String(16), nullable=False)


# ===========================
# Lesson Requirements
# ===========================

class LessonRow(Base):
    __tablename__ = "lesson_requirements"

    id = Column(Integer, primary_key=True)
    kind = Column(String(16), nullable=False, default="SUBJECT")
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"))
    title = Column(String(200))
    count = Column(Integer, nullable=False, default=1)
    length = Column(Integer, nullable=False, default=1)
    room_type = Column(String(32))

    subject = relationship("SubjectRow")
    classes = relationship("LessonClassRow", cascade="all, delete-orphan", order_by="LessonClassRow.class_id")
    teachers = relationship("LessonTeacherRow", cascade="all, delete-orphan", order_by="LessonTeacherRow.teacher_id")


class LessonClassRow(Base):
    __tablename__ = "lesson_classes"

    lesson_id = Column(Integer, ForeignKey("lesson_requirements.id", ondelete="CASCADE"), primary_key=True)
    class_id = Column(Integer, ForeignKey("school_classes.id", ondelete="CASCADE"), primary_key=True)

    school_class = relationship("ClassRow")


class LessonTeacherRow(Base):
    __tablename__ = "lesson_teachers"

    lesson_id = Column(Integer, ForeignKey("lesson_requirements.id", ondelete="CASCADE"), primary_key=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True)

    teacher = relationship("TeacherRow")


# ===========================
# Timetable Slots
# ===========================

class SlotRow(Base):
    __tablename__ = "timetable_slots"

    id = Column(Integer, primary_key=True)
    day_of_week = Column(String(16), nullable=False)
    lesson_requirement_id = Column(Integer, ForeignKey("lesson_requirements.id", ondelete="CASCADE"))
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"))
    auto_generated = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    lesson = relationship("LessonRow")
    room = relationship("RoomRow")
    periods = relationship("SlotPeriodRow", cascade="all, delete-orphan", order_by="SlotPeriodRow.position")
    teachers = relationship("SlotTeacherRow", cascade="all, delete-orphan")
    classes = relationship("SlotClassRow", cascade="all, delete-orphan")


class SlotPeriodRow(Base):
    __tablename__ = "slot_periods"
    __table_args__ = (UniqueConstraint("day_of_week", "period_id", "room_id", name="uq_room_period"),)

    slot_id = Column(Integer, ForeignKey("timetable_slots.id", ondelete="CASCADE"), primary_key=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)
    day_of_week = Column(String(16), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="SET NULL"))


class SlotTeacherRow(Base):
    __tablename__ = "slot_teachers"
    __table_args__ = (UniqueConstraint("day_of_week", "period_id", "teacher_id", name="uq_teacher_period"),)

    slot_id = Column(Integer, ForeignKey("timetable_slots.id", ondelete="CASCADE"), primary_key=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True)
    day_of_week = Column(String(16), nullable=False)


class SlotClassRow(Base):
    __tablename__ = "slot_classes"
    __table_args__ = (UniqueConstraint("day_of_week", "period_id", "class_id", name="uq_class_period"),)

    slot_id = Column(Integer, ForeignKey("timetable_slots.id", ondelete="CASCADE"), primary_key=True)
    period_id = Column(Integer, ForeignKey("periods.id", ondelete="CASCADE"), primary_key=True)
    class_id = Column(Integer, ForeignKey("school_classes.id", ondelete="CASCADE"), primary_key=True)
    day_of_week = Column(String(16), nullable=False)


# ===========================
# Generation Runs
# ===========================

class GenerationRunRow(Base):
    __tablename__ = "generation_runs"

    id = Column(Integer, primary_key=True)
    school_id = Column(String(64), nullable=False, default="default")
    status = Column(String(16), nullable=False, default="PENDING")
    strategy = Column(String(16), nullable=False, default="greedy")
    clear_existing = Column(Boolean, nullable=False, default=False)
    total_placed = Column(Integer, nullable=False, default=0)
    total_conflicts = Column(Integer, nullable=False, default=0)
    error = Column(Text)
    started_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    finished_at = Column(DateTime(timezone=True))
