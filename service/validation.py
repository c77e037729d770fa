"""
Input validation performed before a generation run starts.
"""
from collections import Counter
from typing import List, Sequence

from models.schemas import Day, OwnerType, SchedulingSnapshot
from service.audit import find_overlaps
from service.errors import InputValidationError


def validate_snapshot(snapshot: SchedulingSnapshot, active_days: Sequence[Day]) -> List[str]:
    """Return every configuration error found in the snapshot; empty when it is usable."""
    errors = []

    if not active_days:
        errors.append("At least one active day is required")

    # Periods
    if not snapshot.periods:
        errors.append("No periods configured. Set up school periods first.")
    elif all(p.is_break for p in snapshot.periods):
        errors.append("Every configured period is a break; nothing can be scheduled.")
    for period_id, seen in Counter(p.id for p in snapshot.periods).items():
        if seen > 1:
            errors.append(f"Period id {period_id} is defined more than once")
    for number, seen in Counter(p.number for p in snapshot.periods).items():
        if seen > 1:
            errors.append(f"Period number {number} is defined more than once")

    period_ids = {p.id for p in snapshot.periods}
    teacher_ids = {t.id for t in snapshot.teachers}
    class_ids = {c.id for c in snapshot.classes}
    subject_ids = {s.id for s in snapshot.subjects}
    room_ids = {r.id for r in snapshot.rooms}

    # Lessons
    if not snapshot.lessons:
        errors.append("No timetable lessons configured. Create lessons first.")
    for lesson_id, seen in Counter(lesson.id for lesson in snapshot.lessons).items():
        if seen > 1:
            errors.append(f"Lesson id {lesson_id} is defined more than once")
    for lesson in snapshot.lessons:
        for teacher_id in lesson.teacher_ids:
            if teacher_id not in teacher_ids:
                errors.append(f"Lesson {lesson.id} references unknown teacher {teacher_id}")
        for class_id in lesson.class_ids:
            if class_id not in class_ids:
                errors.append(f"Lesson {lesson.id} references unknown class {class_id}")
        if not lesson.is_meeting and lesson.subject_id not in subject_ids:
            errors.append(f"Lesson {lesson.id} references unknown subject {lesson.subject_id}")

    # Availability
    owners = {
        OwnerType.TEACHER: teacher_ids,
        OwnerType.CLASS: class_ids,
        OwnerType.SUBJECT: subject_ids,
    }
    for entry in snapshot.availability:
        if entry.period_id not in period_ids:
            errors.append(
                f"Availability for {entry.owner_type.value.lower()} {entry.owner_id} references unknown period {entry.period_id}"
            )
        if entry.owner_id not in owners[entry.owner_type]:
            errors.append(f"Availability references unknown {entry.owner_type.value.lower()} {entry.owner_id}")

    # Pre-existing slots
    for slot in snapshot.existing_slots:
        unknown = [pid for pid in slot.period_ids if pid not in period_ids]
        if unknown:
            errors.append(f"Existing slot {slot.id} references unknown periods {unknown}")
        if slot.room_id is not None and slot.room_id not in room_ids:
            errors.append(f"Existing slot {slot.id} references unknown room {slot.room_id}")
    for overlap in find_overlaps(snapshot.existing_slots):
        owner = overlap.type.replace("_overlap", "")
        errors.append(
            f"Existing slots {overlap.slot_a} and {overlap.slot_b} double-book a {owner} "
            f"on {overlap.day_of_week.value} period {overlap.period_id}"
        )

    return errors


def ensure_valid(snapshot: SchedulingSnapshot, active_days: Sequence[Day]):
    errors = validate_snapshot(snapshot, active_days)
    if errors:
        raise InputValidationError(errors)
