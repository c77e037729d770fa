from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from db import get_db
from db.tables import RoomRow
from models.api import RoomIn, RoomOut, RoomUpdate
from service.errors import LockTimeoutError
from service.locks import timetable_locks

router = APIRouter(prefix="/rooms")


def _out(row: RoomRow) -> RoomOut:
    return RoomOut(id=row.id, name=row.name, type=row.type, capacity=row.capacity, description=row.description)


def _get(db: Session, room_id: int) -> RoomRow:
    row = db.get(RoomRow, room_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Room not found.")
    return row


def _commit(db: Session):
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A room with this name already exists.") from exc


@router.get("/", response_model=List[RoomOut])
def list_rooms(db: Session = Depends(get_db)):
    return [_out(row) for row in db.query(RoomRow).order_by(RoomRow.name)]


@router.get("/{room_id}", response_model=RoomOut)
def get_room(room_id: int, db: Session = Depends(get_db)):
    return _out(_get(db, room_id))


@router.post("/", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(payload: RoomIn, db: Session = Depends(get_db)):
    row = RoomRow(
        name=payload.name,
        type=payload.type.value,
        capacity=payload.capacity,
        description=payload.description,
    )
    db.add(row)
    _commit(db)
    return _out(row)


@router.put("/{room_id}", response_model=RoomOut)
def update_room(room_id: int, payload: RoomUpdate, db: Session = Depends(get_db)):
    row = _get(db, room_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "type" and value is not None:
            value = value.value
        setattr(row, field, value)
    _commit(db)
    return _out(row)


@router.delete("/{room_id}")
def delete_room(room_id: int, db: Session = Depends(get_db)):
    """Slots booked in the room keep their time but lose the room."""
    row = _get(db, room_id)
    try:
        with timetable_locks.hold(settings.school_id, settings.generation_lock_timeout_seconds):
            db.delete(row)
            db.commit()
    except LockTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A timetable generation is in progress.") from exc
    return {"message": "Room deleted."}
