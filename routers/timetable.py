import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from db import SessionLocal, get_db
from db.tables import (
    ClassRow, GenerationRunRow, LessonRow, PeriodRow, RoomRow, SlotRow, TeacherRow,
)
from models.api import (
    ManualSlotIn, NamedRef, OverlapReport, RunOut, SlotOut, TimetableView,
)
from models.schemas import GenerateRequest, GenerateResponse, SolveRequest, Slot, WEEK_ORDER
from service.audit import find_overlaps
from service.errors import LockTimeoutError
from service.generation import GenerationRun, solve_snapshot
from service.locks import timetable_locks
from service.reporter import failure_response
from service.repository import (
    SlotHydrator, class_ref, find_slot_rows, period_from_row, room_ref, slot_from_row, slot_row,
)
from service.topology import Topology

logger = logging.getLogger(__name__)

# Create a router instance
router = APIRouter(prefix="/timetable")


def _view(db: Session, rows, directory: bool = False, with_rooms: bool = False) -> TimetableView:
    view = TimetableView(
        slots=SlotHydrator(db).hydrate_all(rows),
        periods=[period_from_row(p) for p in db.query(PeriodRow).order_by(PeriodRow.number)],
        days=WEEK_ORDER,
    )
    if directory:
        view.classes = [class_ref(c) for c in db.query(ClassRow).order_by(ClassRow.grade, ClassRow.section, ClassRow.id)]
        view.teachers = [NamedRef(id=t.id, name=t.name) for t in db.query(TeacherRow).order_by(TeacherRow.name)]
    if with_rooms:
        view.rooms = [room_ref(r) for r in db.query(RoomRow).order_by(RoomRow.name)]
    return view


# ===========================
# Generation
# ===========================

@router.post("/auto-generate", response_model=GenerateResponse, response_model_exclude_none=True)
def auto_generate(request: GenerateRequest):
    """
    Generate the timetable from the configured lesson requirements.

    Conflicts (requirements that could not be fully placed) are reported in
    the response; they do not fail the run. Fatal input or persistence
    errors return ``success: false`` and leave the previous timetable intact.
    """
    run = GenerationRun(SessionLocal, request)
    try:
        return run.execute()
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation or edit is already in progress.") from exc
    except SQLAlchemyError as exc:
        logger.error(f"Auto-generation failed: {exc}", exc_info=True)
        return failure_response("Persistence Error", [f"Auto-generation failed: {exc.__class__.__name__}"], run.steps, run.run_id)


@router.post("/solve", response_model=GenerateResponse, response_model_exclude_none=True)
def solve(request: SolveRequest):
    """Schedule a caller-supplied snapshot and return the slots without saving them."""
    return solve_snapshot(request.snapshot, request)


@router.get("/runs", response_model=List[RunOut])
def list_runs(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    rows = db.query(GenerationRunRow).order_by(GenerationRunRow.id.desc()).limit(limit).all()
    return [
        RunOut(
            id=r.id,
            status=r.status,
            strategy=r.strategy,
            clear_existing=r.clear_existing,
            total_placed=r.total_placed,
            total_conflicts=r.total_conflicts,
            error=r.error,
            started_at=r.started_at,
            finished_at=r.finished_at,
        )
        for r in rows
    ]


# ===========================
# Read-back
# ===========================

@router.get("/all", response_model=TimetableView, response_model_exclude_none=True)
def get_all(db: Session = Depends(get_db)):
    """Full grid view: every slot plus classes, teachers and rooms."""
    return _view(db, find_slot_rows(db), directory=True, with_rooms=True)


@router.get("/public", response_model=TimetableView, response_model_exclude_none=True)
def get_public(db: Session = Depends(get_db)):
    return _view(db, find_slot_rows(db), directory=True)


@router.get("/my", response_model=TimetableView, response_model_exclude_none=True)
def get_my(
    teacher_id: Optional[int] = Query(None, alias="teacherId"),
    class_id: Optional[List[int]] = Query(None, alias="classId"),
    db: Session = Depends(get_db),
):
    """Timetable of a teacher, or of the classes a student belongs to."""
    if teacher_id is None and not class_id:
        raise HTTPException(status_code=400, detail="teacherId or classId is required.")
    if teacher_id is not None:
        return _view(db, find_slot_rows(db, teacher_id=teacher_id))
    return _view(db, find_slot_rows(db, class_ids=class_id))


@router.get("/class/{class_id}", response_model=TimetableView, response_model_exclude_none=True)
def get_class_timetable(class_id: int, db: Session = Depends(get_db)):
    return _view(db, find_slot_rows(db, class_ids=[class_id]))


@router.get("/teacher/{teacher_id}", response_model=TimetableView, response_model_exclude_none=True)
def get_teacher_timetable(teacher_id: int, db: Session = Depends(get_db)):
    return _view(db, find_slot_rows(db, teacher_id=teacher_id))


@router.get("/room/{room_id}", response_model=TimetableView, response_model_exclude_none=True)
def get_room_timetable(room_id: int, db: Session = Depends(get_db)):
    return _view(db, find_slot_rows(db, room_id=room_id))


@router.get("/conflicts", response_model=OverlapReport)
def check_conflicts(db: Session = Depends(get_db)):
    """Audit the committed slots for double bookings."""
    slots = [slot_from_row(row) for row in find_slot_rows(db)]
    overlaps = find_overlaps(slots)
    return OverlapReport(conflicts=overlaps, count=len(overlaps))


# ===========================
# Manual edits
# ===========================

def _overlap_message(exc: IntegrityError) -> str:
    text = str(exc.orig)
    if "class" in text:
        return "This class already has a lesson at this time."
    if "teacher" in text:
        return "This teacher is already assigned at this time."
    if "room" in text:
        return "This room is already booked at this time."
    return "Scheduling conflict detected."


@router.post("/slots", response_model=SlotOut, status_code=status.HTTP_201_CREATED)
def create_slot(payload: ManualSlotIn, db: Session = Depends(get_db)):
    """Place a slot by hand; the database rejects double bookings with 409."""
    topology = Topology(period_from_row(p) for p in db.query(PeriodRow))
    if not topology.is_contiguous_run(payload.period_ids):
        raise HTTPException(status_code=400, detail="Periods must be consecutive and cannot include a break period.")
    if payload.room_id is not None and db.get(RoomRow, payload.room_id) is None:
        raise HTTPException(status_code=404, detail="Room not found.")
    if payload.lesson_requirement_id is not None and db.get(LessonRow, payload.lesson_requirement_id) is None:
        raise HTTPException(status_code=404, detail="Lesson not found.")
    for teacher_id in payload.teacher_ids:
        if db.get(TeacherRow, teacher_id) is None:
            raise HTTPException(status_code=404, detail=f"Teacher {teacher_id} not found.")
    for class_id in payload.class_ids:
        if db.get(ClassRow, class_id) is None:
            raise HTTPException(status_code=404, detail=f"Class {class_id} not found.")

    slot = Slot(
        day_of_week=payload.day_of_week,
        period_ids=payload.period_ids,
        lesson_requirement_id=payload.lesson_requirement_id,
        room_id=payload.room_id,
        teacher_ids=payload.teacher_ids,
        class_ids=payload.class_ids,
        auto_generated=False,
    )
    try:
        with timetable_locks.hold(settings.school_id, settings.generation_lock_timeout_seconds):
            row = slot_row(slot)
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=_overlap_message(exc)) from exc
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation is in progress.") from exc
    db.refresh(row)
    return SlotHydrator(db).hydrate(row)


@router.delete("/slots/{slot_id}")
def delete_slot(slot_id: int, db: Session = Depends(get_db)):
    row = db.get(SlotRow, slot_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Slot not found.")
    try:
        with timetable_locks.hold(settings.school_id, settings.generation_lock_timeout_seconds):
            db.delete(row)
            db.commit()
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation is in progress.") from exc
    return {"message": "Slot deleted."}
