import logging
from collections import defaultdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, selectinload

from config import settings
from db import get_db
from db.tables import (
    ClassRow, LessonClassRow, LessonRow, LessonTeacherRow, SubjectRow, TeacherAssignmentRow, TeacherRow,
)
from models.api import (
    ClassLoad, FromAssignmentsResult, LessonConfigIn, LessonConfigOut, LessonSummary, SubjectLoad, TeacherLoad,
)
from models.schemas import LessonKind
from service.errors import LockTimeoutError
from service.locks import timetable_locks
from service.repository import lesson_to_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lesson-config")


def _lesson_query(db: Session):
    return db.query(LessonRow).options(
        selectinload(LessonRow.subject),
        selectinload(LessonRow.classes).selectinload(LessonClassRow.school_class),
        selectinload(LessonRow.teachers).selectinload(LessonTeacherRow.teacher),
    )


def _check_references(db: Session, payload: LessonConfigIn):
    if payload.subject_id is not None and not payload.is_meeting and db.get(SubjectRow, payload.subject_id) is None:
        raise HTTPException(status_code=404, detail="Subject not found.")
    for class_id in payload.class_ids:
        if db.get(ClassRow, class_id) is None:
            raise HTTPException(status_code=404, detail=f"Class {class_id} not found.")
    for teacher_id in payload.teacher_ids:
        if db.get(TeacherRow, teacher_id) is None:
            raise HTTPException(status_code=404, detail=f"Teacher {teacher_id} not found.")


def _apply(db: Session, row: LessonRow, payload: LessonConfigIn):
    if row.id is not None:
        # old link rows share primary keys with the new ones
        row.classes.clear()
        row.teachers.clear()
        db.flush()
    row.kind = LessonKind.MEETING.value if payload.is_meeting else LessonKind.SUBJECT.value
    row.subject_id = None if payload.is_meeting else payload.subject_id
    row.title = payload.title if payload.is_meeting else None
    row.count = payload.count
    row.length = payload.length
    row.room_type = payload.room_type.value if payload.room_type is not None else None
    row.classes = [LessonClassRow(class_id=cid) for cid in dict.fromkeys(payload.class_ids)]
    row.teachers = [LessonTeacherRow(teacher_id=tid) for tid in dict.fromkeys(payload.teacher_ids)]


def _load(db: Session, lesson_id: int) -> LessonRow:
    row = _lesson_query(db).filter(LessonRow.id == lesson_id).first()
    if row is None:
        raise HTTPException(status_code=404, detail="Lesson configuration not found.")
    return row


@router.get("/", response_model=List[LessonConfigOut])
def list_lessons(
    class_id: Optional[int] = Query(None, alias="classId"),
    subject_id: Optional[int] = Query(None, alias="subjectId"),
    db: Session = Depends(get_db),
):
    query = _lesson_query(db)
    if class_id is not None:
        query = query.filter(LessonRow.classes.any(LessonClassRow.class_id == class_id))
    if subject_id is not None:
        query = query.filter(LessonRow.subject_id == subject_id)
    return [lesson_to_out(row) for row in query.order_by(LessonRow.id)]


@router.get("/class/{class_id}", response_model=List[LessonConfigOut])
def list_class_lessons(class_id: int, db: Session = Depends(get_db)):
    query = _lesson_query(db).filter(LessonRow.classes.any(LessonClassRow.class_id == class_id))
    return [lesson_to_out(row) for row in query.order_by(LessonRow.id)]


@router.get("/summary", response_model=LessonSummary)
def lesson_summary(db: Session = Depends(get_db)):
    """Weekly load per class, subject and teacher as configured (not as scheduled)."""
    rows = _lesson_query(db).order_by(LessonRow.id).all()
    by_class = {}
    by_subject = {}
    by_teacher = {}
    for row in rows:
        periods = row.count * row.length
        for link in row.classes:
            load = by_class.setdefault(link.class_id, ClassLoad(class_id=link.class_id, class_name=link.school_class.name))
            load.total_lessons += row.count
            load.total_periods += periods
        if row.subject is not None:
            load = by_subject.setdefault(row.subject_id, SubjectLoad(subject_id=row.subject_id, subject_name=row.subject.name))
            load.total_lessons += row.count
        for link in row.teachers:
            load = by_teacher.setdefault(link.teacher_id, TeacherLoad(teacher_id=link.teacher_id, teacher_name=link.teacher.name))
            load.total_periods += periods
    return LessonSummary(
        total_lessons=sum(row.count for row in rows),
        by_class=sorted(by_class.values(), key=lambda load: load.class_name),
        by_subject=sorted(by_subject.values(), key=lambda load: load.subject_name),
        by_teacher=sorted(by_teacher.values(), key=lambda load: load.teacher_name),
    )


@router.post("/", response_model=LessonConfigOut, status_code=status.HTTP_201_CREATED)
def create_lesson(payload: LessonConfigIn, db: Session = Depends(get_db)):
    _check_references(db, payload)
    row = LessonRow()
    _apply(db, row, payload)
    db.add(row)
    db.commit()
    logger.info(f"Created lesson configuration {row.id}")
    lesson_id = row.id
    db.expire_all()
    return lesson_to_out(_load(db, lesson_id))


@router.put("/{lesson_id}", response_model=LessonConfigOut)
def update_lesson(lesson_id: int, payload: LessonConfigIn, db: Session = Depends(get_db)):
    row = _load(db, lesson_id)
    _check_references(db, payload)
    _apply(db, row, payload)
    db.commit()
    db.expire_all()
    return lesson_to_out(_load(db, lesson_id))


@router.delete("/{lesson_id}")
def delete_lesson(lesson_id: int, db: Session = Depends(get_db)):
    row = _load(db, lesson_id)
    try:
        # removes the lesson's slots too
        with timetable_locks.hold(settings.school_id, settings.generation_lock_timeout_seconds):
            db.delete(row)
            db.commit()
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation is in progress.") from exc
    return {"message": "Lesson configuration deleted."}


@router.post("/from-assignments", response_model=FromAssignmentsResult)
def create_from_assignments(
    count: int = Query(1, ge=1),
    length: int = Query(1, ge=1, le=3),
    db: Session = Depends(get_db),
):
    """
    Derive one lesson per (subject, class) from the teacher assignments.

    Existing configurations for the same pair are kept; teachers assigned to
    the pair but missing from the configuration are appended to it.
    """
    teachers_by_pair = defaultdict(list)
    for a in db.query(TeacherAssignmentRow).order_by(TeacherAssignmentRow.id):
        teachers_by_pair[(a.subject_id, a.class_id)].append(a.teacher_id)

    existing = {}
    for row in _lesson_query(db).filter(LessonRow.kind == LessonKind.SUBJECT.value):
        if len(row.classes) == 1:
            existing.setdefault((row.subject_id, row.classes[0].class_id), row)

    created = 0
    touched = []
    for (subject_id, class_id), teacher_ids in teachers_by_pair.items():
        row = existing.get((subject_id, class_id))
        if row is None:
            row = LessonRow(kind=LessonKind.SUBJECT.value, subject_id=subject_id, count=count, length=length)
            row.classes = [LessonClassRow(class_id=class_id)]
            row.teachers = [LessonTeacherRow(teacher_id=tid) for tid in dict.fromkeys(teacher_ids)]
            db.add(row)
            created += 1
        else:
            present = {t.teacher_id for t in row.teachers}
            for teacher_id in dict.fromkeys(teacher_ids):
                if teacher_id not in present:
                    row.teachers.append(LessonTeacherRow(teacher_id=teacher_id))
        touched.append(row)
    db.commit()
    db.expire_all()
    logger.info(f"Derived lesson configurations from assignments: {created} created, {len(touched)} total")

    lessons = [lesson_to_out(_load(db, row.id)) for row in touched]
    return FromAssignmentsResult(created=created, total=len(lessons), lessons=lessons)
