import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from db import get_db
from db.tables import PeriodRow, SlotPeriodRow, SlotRow
from models.api import PeriodBulkIn, PeriodIn, PeriodUpdate
from models.schemas import Period
from service.errors import LockTimeoutError
from service.locks import timetable_locks
from service.repository import period_from_row

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/periods")


def _get(db: Session, period_id: int) -> PeriodRow:
    row = db.get(PeriodRow, period_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Period not found.")
    return row


def _commit(db: Session):
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A period with this number already exists.") from exc


@router.get("/", response_model=List[Period])
def list_periods(db: Session = Depends(get_db)):
    return [period_from_row(row) for row in db.query(PeriodRow).order_by(PeriodRow.number)]


@router.post("/", response_model=Period, status_code=status.HTTP_201_CREATED)
def create_period(payload: PeriodIn, db: Session = Depends(get_db)):
    row = PeriodRow(**payload.model_dump())
    db.add(row)
    _commit(db)
    return period_from_row(row)


@router.post("/bulk", response_model=List[Period])
def replace_periods(payload: PeriodBulkIn, db: Session = Depends(get_db)):
    """
    Replace the whole day structure.

    Slots and time-off cells refer to periods, so the timetable is emptied
    along with the old periods.
    """
    numbers = [p.number for p in payload.periods]
    if len(numbers) != len(set(numbers)):
        raise HTTPException(status_code=400, detail="Period numbers must be unique.")
    try:
        with timetable_locks.hold(settings.school_id, settings.generation_lock_timeout_seconds):
            removed = db.query(SlotRow).count()
            for slot in db.query(SlotRow):
                db.delete(slot)
            db.flush()
            for period in db.query(PeriodRow):
                db.delete(period)
            # old numbers must be gone before the new rows reuse them
            db.flush()
            for period in payload.periods:
                db.add(PeriodRow(**period.model_dump()))
            _commit(db)
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation is in progress.") from exc
    logger.info(f"Replaced periods with {len(payload.periods)} entries, removed {removed} slots")
    return list_periods(db)


@router.put("/{period_id}", response_model=Period)
def update_period(period_id: int, payload: PeriodUpdate, db: Session = Depends(get_db)):
    row = _get(db, period_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(row, field, value)
    if row.start_time >= row.end_time:
        db.rollback()
        raise HTTPException(status_code=400, detail="Start time must be before end time.")
    _commit(db)
    return period_from_row(row)


@router.delete("/{period_id}")
def delete_period(period_id: int, db: Session = Depends(get_db)):
    row = _get(db, period_id)
    if db.query(SlotPeriodRow).filter(SlotPeriodRow.period_id == period_id).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Period is used by the timetable.")
    db.delete(row)
    db.commit()
    return {"message": "Period deleted."}
