"""
Mapping between database rows and the solver's domain models.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session, selectinload

from db.tables import (
    AvailabilityRow, ClassRow, GradeCalendarRow, LessonRow, PeriodRow, RoomRow,
    SlotClassRow, SlotPeriodRow, SlotRow, SlotTeacherRow, SubjectRow, TeacherRow,
)
from models.api import ClassRef, LessonConfigOut, NamedRef, RoomRef, SlotOut
from models.schemas import (
    AvailabilityEntry, Day, LessonRequirement, Period, Room, SchedulingSnapshot,
    SchoolClass, Slot, Subject, Teacher,
)
from service.errors import InputValidationError

logger = logging.getLogger(__name__)

_lesson_adapter = TypeAdapter(LessonRequirement)


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{field}: {item.get('msg')}" if field else item.get("msg"))
    return "; ".join(parts)


# ===========================
# Rows -> domain
# ===========================

def period_from_row(row: PeriodRow) -> Period:
    return Period(
        id=row.id,
        number=row.number,
        start_time=row.start_time,
        end_time=row.end_time,
        is_break=bool(row.is_break),
        label=row.label,
    )


def lesson_payload(row: LessonRow) -> dict:
    return {
        "id": row.id,
        "kind": row.kind,
        "subject_id": row.subject_id,
        "title": row.title,
        "teacher_ids": [t.teacher_id for t in row.teachers],
        "class_ids": [c.class_id for c in row.classes],
        "count": row.count,
        "length": row.length,
        "room_type": row.room_type,
    }


def slot_from_row(row: SlotRow) -> Slot:
    teacher_ids = sorted({t.teacher_id for t in row.teachers})
    class_ids = sorted({c.class_id for c in row.classes})
    return Slot(
        id=row.id,
        day_of_week=Day(row.day_of_week),
        period_ids=[p.period_id for p in row.periods],
        lesson_requirement_id=row.lesson_requirement_id,
        room_id=row.room_id,
        teacher_ids=teacher_ids,
        class_ids=class_ids,
        auto_generated=bool(row.auto_generated),
    )


def parse_days(raw: str) -> List[Day]:
    return [Day(part.strip()) for part in raw.split(",") if part.strip()]


def load_grade_calendar(session: Session) -> Dict[int, List[Day]]:
    return {row.grade: parse_days(row.days) for row in session.query(GradeCalendarRow).order_by(GradeCalendarRow.grade)}


def load_snapshot(session: Session, default_days: Sequence[Day]) -> SchedulingSnapshot:
    """
    Read everything a run needs in one pass.

    Malformed rows (unknown enum values, unsupported lengths, lessons without
    teachers...) raise InputValidationError listing every problem found.
    """
    errors = []

    periods = [period_from_row(r) for r in session.query(PeriodRow).order_by(PeriodRow.number)]
    rooms = []
    for r in session.query(RoomRow).order_by(RoomRow.id):
        try:
            rooms.append(Room(id=r.id, name=r.name, type=r.type, capacity=r.capacity))
        except ValidationError as exc:
            errors.append(f"Room {r.id}: {_describe(exc)}")
    teachers = [Teacher(id=r.id, name=r.name) for r in session.query(TeacherRow).order_by(TeacherRow.id)]
    subjects = [Subject(id=r.id, name=r.name) for r in session.query(SubjectRow).order_by(SubjectRow.id)]
    classes = [
        SchoolClass(id=r.id, name=r.name, grade=r.grade, section=r.section, size=r.size)
        for r in session.query(ClassRow).order_by(ClassRow.id)
    ]

    lessons = []
    lesson_rows = (
        session.query(LessonRow)
        .options(selectinload(LessonRow.classes), selectinload(LessonRow.teachers))
        .order_by(LessonRow.id)
    )
    for row in lesson_rows:
        try:
            lessons.append(_lesson_adapter.validate_python(lesson_payload(row)))
        except ValidationError as exc:
            errors.append(f"Lesson {row.id}: {_describe(exc)}")

    availability = []
    for row in session.query(AvailabilityRow).order_by(AvailabilityRow.id):
        try:
            availability.append(AvailabilityEntry(
                owner_type=row.owner_type,
                owner_id=row.owner_id,
                day_of_week=row.day_of_week,
                period_id=row.period_id,
                state=row.state,
            ))
        except ValidationError as exc:
            errors.append(f"Availability {row.id}: {_describe(exc)}")

    try:
        grade_calendar = load_grade_calendar(session)
    except ValueError as exc:
        errors.append(f"Grade calendar: {exc}")
        grade_calendar = {}

    slot_rows = (
        session.query(SlotRow)
        .options(selectinload(SlotRow.periods), selectinload(SlotRow.teachers), selectinload(SlotRow.classes))
        .order_by(SlotRow.id)
    )
    existing = [slot_from_row(row) for row in slot_rows]

    if errors:
        raise InputValidationError(errors)

    return SchedulingSnapshot(
        periods=periods,
        rooms=rooms,
        teachers=teachers,
        subjects=subjects,
        classes=classes,
        lessons=lessons,
        availability=availability,
        grade_calendar=grade_calendar,
        default_days=list(default_days),
        existing_slots=existing,
    )


# ===========================
# Domain -> rows
# ===========================

def slot_row(slot: Slot) -> SlotRow:
    """Build a slot row with one occupancy cell per (period, teacher/class/room)."""
    day = slot.day_of_week.value
    row = SlotRow(
        day_of_week=day,
        lesson_requirement_id=slot.lesson_requirement_id,
        room_id=slot.room_id,
        auto_generated=slot.auto_generated,
    )
    for position, period_id in enumerate(slot.period_ids):
        row.periods.append(SlotPeriodRow(period_id=period_id, position=position, day_of_week=day, room_id=slot.room_id))
        for teacher_id in slot.teacher_ids:
            row.teachers.append(SlotTeacherRow(period_id=period_id, teacher_id=teacher_id, day_of_week=day))
        for class_id in slot.class_ids:
            row.classes.append(SlotClassRow(period_id=period_id, class_id=class_id, day_of_week=day))
    return row


def delete_generated_slots(session: Session) -> int:
    """Delete auto-generated slots; manual ones are kept."""
    rows = session.query(SlotRow).filter(SlotRow.auto_generated.is_(True)).all()
    for row in rows:
        session.delete(row)
    return len(rows)


# ===========================
# Hydration for read-back
# ===========================

def lesson_to_out(row: LessonRow) -> LessonConfigOut:
    is_meeting = row.kind == "MEETING"
    return LessonConfigOut(
        id=row.id,
        kind=row.kind,
        is_meeting=is_meeting,
        subject_id=row.subject_id,
        subject=NamedRef(id=row.subject.id, name=row.subject.name) if row.subject is not None else None,
        title=row.title,
        class_ids=[c.class_id for c in row.classes],
        classes=[NamedRef(id=c.school_class.id, name=c.school_class.name) for c in row.classes],
        teacher_ids=[t.teacher_id for t in row.teachers],
        teachers=[NamedRef(id=t.teacher.id, name=t.teacher.name) for t in row.teachers],
        count=row.count,
        length=row.length,
        room_type=row.room_type,
    )


class SlotHydrator:
    """Joins slots with periods, lesson, teachers, classes and room for display."""

    def __init__(self, session: Session):
        self.periods = {r.id: period_from_row(r) for r in session.query(PeriodRow)}
        self.teachers = {r.id: r for r in session.query(TeacherRow)}
        self.classes = {r.id: r for r in session.query(ClassRow)}

    def hydrate(self, row: SlotRow) -> SlotOut:
        slot = slot_from_row(row)
        lesson = row.lesson
        subject = None
        title = None
        if lesson is not None:
            if lesson.subject is not None:
                subject = NamedRef(id=lesson.subject.id, name=lesson.subject.name)
                title = lesson.subject.name
            else:
                title = lesson.title
        room = None
        if row.room is not None:
            room = RoomRef(id=row.room.id, name=row.room.name, type=row.room.type)
        return SlotOut(
            id=row.id,
            day_of_week=slot.day_of_week,
            period_ids=slot.period_ids,
            periods=[self.periods[pid] for pid in slot.period_ids if pid in self.periods],
            lesson_requirement_id=slot.lesson_requirement_id,
            title=title,
            subject=subject,
            teachers=[NamedRef(id=tid, name=self.teachers[tid].name) for tid in slot.teacher_ids if tid in self.teachers],
            classes=[class_ref(self.classes[cid]) for cid in slot.class_ids if cid in self.classes],
            room=room,
            auto_generated=slot.auto_generated,
        )

    def hydrate_all(self, rows: Iterable[SlotRow]) -> List[SlotOut]:
        slots = [self.hydrate(row) for row in rows]
        slots.sort(key=lambda s: (s.day_of_week.order, self._first_number(s), s.id))
        return slots

    def _first_number(self, slot: SlotOut) -> int:
        return slot.periods[0].number if slot.periods else 0


def class_ref(row: ClassRow) -> ClassRef:
    return ClassRef(id=row.id, name=row.name, grade=row.grade, section=row.section)


def room_ref(row: RoomRow) -> RoomRef:
    return RoomRef(id=row.id, name=row.name, type=row.type)


def find_slot_rows(session: Session, teacher_id: Optional[int] = None, class_ids: Optional[Sequence[int]] = None,
                   room_id: Optional[int] = None) -> List[SlotRow]:
    query = session.query(SlotRow).options(
        selectinload(SlotRow.periods),
        selectinload(SlotRow.teachers),
        selectinload(SlotRow.classes),
        selectinload(SlotRow.lesson).selectinload(LessonRow.subject),
        selectinload(SlotRow.room),
    )
    if teacher_id is not None:
        query = query.filter(SlotRow.teachers.any(SlotTeacherRow.teacher_id == teacher_id))
    if class_ids is not None:
        query = query.filter(SlotRow.classes.any(SlotClassRow.class_id.in_(list(class_ids))))
    if room_id is not None:
        query = query.filter(SlotRow.room_id == room_id)
    return query.order_by(SlotRow.id).all()
