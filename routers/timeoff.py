import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from db import get_db
from db.tables import AvailabilityRow, ClassRow, PeriodRow, SubjectRow, TeacherRow
from models.api import TimeOffCell, TimeOffMatrix
from models.schemas import AvailabilityState, OwnerType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/timeoff")

OWNER_TABLES = {
    OwnerType.TEACHER: TeacherRow,
    OwnerType.CLASS: ClassRow,
    OwnerType.SUBJECT: SubjectRow,
}


def _owner_type(raw: str) -> OwnerType:
    try:
        return OwnerType(raw.upper())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown owner type '{raw}'. Use teacher, class or subject.")


def _require_owner(db: Session, owner_type: OwnerType, owner_id: int):
    if db.get(OWNER_TABLES[owner_type], owner_id) is None:
        raise HTTPException(status_code=404, detail=f"{owner_type.value.title()} not found.")


@router.get("/{owner_type}/{owner_id}", response_model=List[TimeOffCell])
def get_time_off(owner_type: str, owner_id: int, db: Session = Depends(get_db)):
    """Stored availability cells of an owner; cells not listed are AVAILABLE."""
    kind = _owner_type(owner_type)
    _require_owner(db, kind, owner_id)
    rows = (
        db.query(AvailabilityRow)
        .filter(AvailabilityRow.owner_type == kind.value, AvailabilityRow.owner_id == owner_id)
        .order_by(AvailabilityRow.day_of_week, AvailabilityRow.period_id)
        .all()
    )
    return [TimeOffCell(day_of_week=r.day_of_week, period_id=r.period_id, state=r.state) for r in rows]


@router.post("/{owner_type}/{owner_id}")
def replace_time_off(owner_type: str, owner_id: int, payload: TimeOffMatrix, db: Session = Depends(get_db)):
    """Replace every availability cell of an owner with the given matrix."""
    kind = _owner_type(owner_type)
    _require_owner(db, kind, owner_id)

    period_ids = {pid for (pid,) in db.query(PeriodRow.id)}
    unknown = sorted({cell.period_id for cell in payload.matrix} - period_ids)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown periods: {unknown}")

    # last entry wins when a cell is listed twice
    cells = {(cell.day_of_week, cell.period_id): cell.state for cell in payload.matrix}

    db.query(AvailabilityRow).filter(
        AvailabilityRow.owner_type == kind.value, AvailabilityRow.owner_id == owner_id
    ).delete(synchronize_session=False)
    for (day, period_id), state in cells.items():
        if state == AvailabilityState.AVAILABLE:
            continue
        db.add(AvailabilityRow(
            owner_type=kind.value,
            owner_id=owner_id,
            day_of_week=day.value,
            period_id=period_id,
            state=state.value,
        ))
    db.commit()
    logger.info(f"Replaced time off for {kind.value.lower()} {owner_id}: {len(cells)} cells")
    return {"success": True}
