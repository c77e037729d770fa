"""
Tri-state availability lookup for classes, teachers and subjects.
"""
from typing import Dict, Iterable, Sequence, Tuple

from models.schemas import AvailabilityEntry, AvailabilityState, Day, OwnerType

CellKey = Tuple[OwnerType, int, Day, int]


class AvailabilityStore:
    """Immutable snapshot of availability cells; unlisted cells are AVAILABLE."""

    def __init__(self, entries: Iterable[AvailabilityEntry] = ()):
        self._cells: Dict[CellKey, AvailabilityState] = {}
        for entry in entries:
            if entry.state == AvailabilityState.AVAILABLE:
                continue
            key = (entry.owner_type, entry.owner_id, entry.day_of_week, entry.period_id)
            self._cells[key] = entry.state

    def __len__(self) -> int:
        return len(self._cells)

    def state(self, owner_type: OwnerType, owner_id: int, day: Day, period_id: int) -> AvailabilityState:
        return self._cells.get((owner_type, owner_id, day, period_id), AvailabilityState.AVAILABLE)

    def window_state(
        self,
        owners: Sequence[Tuple[OwnerType, int]],
        day: Day,
        period_ids: Sequence[int],
    ) -> Tuple[bool, int]:
        """
        Check a run of periods for a group of owners.

        Returns ``(blocked, conditional_cells)``: blocked is True as soon as one
        cell is UNAVAILABLE; otherwise the number of CONDITIONAL cells touched.
        """
        conditional = 0
        for owner_type, owner_id in owners:
            for period_id in period_ids:
                state = self.state(owner_type, owner_id, day, period_id)
                if state == AvailabilityState.UNAVAILABLE:
                    return True, 0
                if state == AvailabilityState.CONDITIONAL:
                    conditional += 1
        return False, conditional
