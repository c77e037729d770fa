from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from config import settings
from db import get_db
from db.tables import GradeCalendarRow
from models.api import GradeCalendarIn, GradeCalendarOut
from models.schemas import Day, sort_days
from service.repository import load_grade_calendar

router = APIRouter(prefix="/calendar")


def _current(db: Session) -> GradeCalendarOut:
    return GradeCalendarOut(
        default_days=[Day(d) for d in settings.default_active_days],
        grades=load_grade_calendar(db),
    )


@router.get("", response_model=GradeCalendarOut)
def get_calendar(db: Session = Depends(get_db)):
    """School days per grade; grades not listed use the default days."""
    return _current(db)


@router.put("", response_model=GradeCalendarOut)
def replace_calendar(payload: GradeCalendarIn, db: Session = Depends(get_db)):
    for grade, days in payload.grades.items():
        if not days:
            raise HTTPException(status_code=400, detail=f"Grade {grade} needs at least one school day.")
    db.query(GradeCalendarRow).delete(synchronize_session=False)
    for grade, days in payload.grades.items():
        db.add(GradeCalendarRow(grade=grade, days=",".join(d.value for d in sort_days(days))))
    db.commit()
    return _current(db)
