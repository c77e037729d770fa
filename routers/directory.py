"""
Teachers, subjects, classes and their assignments.

The scheduler only reads these; they are maintained here so the service can
run on its own.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import get_db
from db.tables import ClassRow, SubjectRow, TeacherAssignmentRow, TeacherRow
from models.api import (
    AssignmentIn, AssignmentOut, ClassIn, ClassOut, SubjectIn, SubjectOut, TeacherIn, TeacherOut,
)

router = APIRouter(prefix="/directory")


@router.get("/teachers", response_model=List[TeacherOut])
def list_teachers(db: Session = Depends(get_db)):
    return [TeacherOut(id=r.id, name=r.name, email=r.email) for r in db.query(TeacherRow).order_by(TeacherRow.name)]


@router.post("/teachers", response_model=TeacherOut, status_code=status.HTTP_201_CREATED)
def create_teacher(payload: TeacherIn, db: Session = Depends(get_db)):
    row = TeacherRow(name=payload.name, email=payload.email)
    db.add(row)
    db.commit()
    return TeacherOut(id=row.id, name=row.name, email=row.email)


@router.get("/subjects", response_model=List[SubjectOut])
def list_subjects(db: Session = Depends(get_db)):
    return [SubjectOut(id=r.id, name=r.name, code=r.code) for r in db.query(SubjectRow).order_by(SubjectRow.name)]


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(payload: SubjectIn, db: Session = Depends(get_db)):
    row = SubjectRow(name=payload.name, code=payload.code)
    db.add(row)
    db.commit()
    return SubjectOut(id=row.id, name=row.name, code=row.code)


def _class_out(row: ClassRow) -> ClassOut:
    return ClassOut(id=row.id, name=row.name, grade=row.grade, section=row.section, size=row.size)


@router.get("/classes", response_model=List[ClassOut])
def list_classes(db: Session = Depends(get_db)):
    rows = db.query(ClassRow).order_by(ClassRow.grade, ClassRow.section, ClassRow.id)
    return [_class_out(r) for r in rows]


@router.post("/classes", response_model=ClassOut, status_code=status.HTTP_201_CREATED)
def create_class(payload: ClassIn, db: Session = Depends(get_db)):
    row = ClassRow(**payload.model_dump())
    db.add(row)
    db.commit()
    return _class_out(row)


@router.get("/assignments", response_model=List[AssignmentOut])
def list_assignments(db: Session = Depends(get_db)):
    rows = db.query(TeacherAssignmentRow).order_by(TeacherAssignmentRow.id)
    return [
        AssignmentOut(id=r.id, teacher_id=r.teacher_id, class_id=r.class_id, subject_id=r.subject_id)
        for r in rows
    ]


@router.post("/assignments", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def create_assignment(payload: AssignmentIn, db: Session = Depends(get_db)):
    if db.get(TeacherRow, payload.teacher_id) is None:
        raise HTTPException(status_code=404, detail="Teacher not found.")
    if db.get(ClassRow, payload.class_id) is None:
        raise HTTPException(status_code=404, detail="Class not found.")
    if db.get(SubjectRow, payload.subject_id) is None:
        raise HTTPException(status_code=404, detail="Subject not found.")
    row = TeacherAssignmentRow(**payload.model_dump())
    db.add(row)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This assignment already exists.") from exc
    return AssignmentOut(id=row.id, teacher_id=row.teacher_id, class_id=row.class_id, subject_id=row.subject_id)
