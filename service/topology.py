"""
Period grid and per-grade calendars of a school.
"""
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from models.schemas import Day, Period, SchedulingSnapshot, SchoolClass, sort_days


class Topology:
    """
    Read-only view over the ordered periods and the grade calendar.

    Periods are ordered by ``number``; a run of periods is contiguous when its
    members are adjacent in that order, so a break period splits the day.
    """

    def __init__(
        self,
        periods: Iterable[Period],
        classes: Iterable[SchoolClass] = (),
        grade_calendar: Optional[Dict[int, List[Day]]] = None,
        default_days: Optional[Sequence[Day]] = None,
    ):
        self.periods: List[Period] = sorted(periods, key=lambda p: p.number)
        self.period_by_id: Dict[int, Period] = {p.id: p for p in self.periods}
        self._position: Dict[int, int] = {p.id: i for i, p in enumerate(self.periods)}
        self.teaching_periods: List[Period] = [p for p in self.periods if not p.is_break]
        self.class_by_id: Dict[int, SchoolClass] = {c.id: c for c in classes}
        self.grade_calendar: Dict[int, List[Day]] = {
            grade: sort_days(days) for grade, days in (grade_calendar or {}).items()
        }
        self.default_days: List[Day] = sort_days(default_days or [])
        self.runs = lru_cache(maxsize=None)(self._runs)

    @classmethod
    def from_snapshot(cls, snapshot: SchedulingSnapshot) -> "Topology":
        return cls(
            periods=snapshot.periods,
            classes=snapshot.classes,
            grade_calendar=snapshot.grade_calendar,
            default_days=snapshot.default_days,
        )

    def _runs(self, length: int) -> Tuple[Tuple[Period, ...], ...]:
        """All windows of ``length`` adjacent non-break periods, earliest first."""
        windows = []
        for start in range(len(self.periods) - length + 1):
            window = tuple(self.periods[start:start + length])
            if any(p.is_break for p in window):
                continue
            windows.append(window)
        return tuple(windows)

    def is_contiguous_run(self, period_ids: Sequence[int]) -> bool:
        """True when the ids name adjacent, non-break periods in ascending order."""
        if not period_ids or any(pid not in self._position for pid in period_ids):
            return False
        positions = [self._position[pid] for pid in period_ids]
        if positions != list(range(positions[0], positions[0] + len(positions))):
            return False
        return not any(self.period_by_id[pid].is_break for pid in period_ids)

    def class_days(self, class_id: int) -> List[Day]:
        school_class = self.class_by_id.get(class_id)
        if school_class is not None and school_class.grade in self.grade_calendar:
            return self.grade_calendar[school_class.grade]
        return self.default_days

    def days_for(self, class_ids: Sequence[int], active_days: Sequence[Day]) -> List[Day]:
        """
        Days on which every listed class is in school, limited to ``active_days``.

        With no classes (a meeting of teachers only) every active day qualifies.
        """
        days = set(active_days)
        for class_id in class_ids:
            days &= set(self.class_days(class_id))
        return sort_days(days)

    def class_size(self, class_ids: Sequence[int]) -> Optional[int]:
        """Total head count of the classes, or None when any size is unknown."""
        total = 0
        for class_id in class_ids:
            school_class = self.class_by_id.get(class_id)
            if school_class is None or school_class.size is None:
                return None
            total += school_class.size
        return total
