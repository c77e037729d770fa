"""
Candidate placements shared by the scheduling strategies.

A candidate is one (day, run of periods, room) option for one occurrence of a
lesson requirement. It is legal when no involved teacher, class or room is
already booked on those periods and no involved teacher, class or subject
marks any of them UNAVAILABLE.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from models.schemas import (
    Day, OwnerType, Period, Room, RoomType, SchedulingSnapshot, Slot,
)
from service.availability import AvailabilityStore
from service.rooms import RoomInventory, infer_room_type
from service.topology import Topology

TEACHER = "teacher"
CLASS = "class"
ROOM = "room"


@dataclass(frozen=True)
class Candidate:
    day: Day
    periods: Tuple[Period, ...]
    room: Optional[Room]
    room_rank: int
    conditional_cells: int

    @property
    def period_ids(self) -> List[int]:
        return [p.id for p in self.periods]

    def sort_key(self, over_day_cap: int = 0) -> tuple:
        """Fewest CONDITIONAL cells, then earliest day, period and room."""
        room_id = self.room.id if self.room is not None else -1
        return (
            self.conditional_cells,
            over_day_cap,
            self.day.order,
            self.periods[0].number,
            self.room_rank,
            room_id,
        )


class Occupancy:
    """Booked (resource, id, day, period) cells of the run so far."""

    def __init__(self):
        self._cells: Set[Tuple[str, int, Day, int]] = set()

    def __len__(self) -> int:
        return len(self._cells)

    def is_free(self, kind: str, owner_id: int, day: Day, period_ids: Iterable[int]) -> bool:
        return not any((kind, owner_id, day, pid) in self._cells for pid in period_ids)

    def occupy(self, kind: str, owner_id: int, day: Day, period_ids: Iterable[int]):
        for pid in period_ids:
            self._cells.add((kind, owner_id, day, pid))

    def book(self, slot: Slot):
        for teacher_id in slot.teacher_ids:
            self.occupy(TEACHER, teacher_id, slot.day_of_week, slot.period_ids)
        for class_id in slot.class_ids:
            self.occupy(CLASS, class_id, slot.day_of_week, slot.period_ids)
        if slot.room_id is not None:
            self.occupy(ROOM, slot.room_id, slot.day_of_week, slot.period_ids)


class RoomPolicy:
    """Which rooms a lesson may use and whether it needs one at all."""

    def __init__(self, options: List[Tuple[int, Room]], required: bool):
        self.options = options
        self.required = required


class CandidateBuilder:
    """Enumerates legal candidates for lessons against a run's occupancy."""

    def __init__(self, snapshot: SchedulingSnapshot):
        self.snapshot = snapshot
        self.topology = Topology.from_snapshot(snapshot)
        self.availability = AvailabilityStore(snapshot.availability)
        self.rooms = RoomInventory(snapshot.rooms)
        self.subject_names: Dict[int, str] = {s.id: s.name for s in snapshot.subjects}
        self._policies: Dict[int, RoomPolicy] = {}

    def room_policy(self, lesson) -> RoomPolicy:
        if lesson.id in self._policies:
            return self._policies[lesson.id]
        min_capacity = self.topology.class_size(lesson.class_ids)
        if lesson.room_type is not None:
            policy = RoomPolicy(self.rooms.ranked_options(lesson.room_type, min_capacity=min_capacity), True)
        elif lesson.is_meeting:
            policy = RoomPolicy([], False)
        else:
            preferred: RoomType = infer_room_type(self.subject_names.get(lesson.subject_id))
            options = self.rooms.ranked_options(None, preferred, min_capacity=min_capacity)
            policy = RoomPolicy(options, bool(self.rooms))
        self._policies[lesson.id] = policy
        return policy

    def owners(self, lesson) -> List[Tuple[OwnerType, int]]:
        owners = [(OwnerType.TEACHER, tid) for tid in lesson.teacher_ids]
        owners += [(OwnerType.CLASS, cid) for cid in lesson.class_ids]
        if not lesson.is_meeting:
            owners.append((OwnerType.SUBJECT, lesson.subject_id))
        return owners

    def lesson_days(self, lesson, active_days: Sequence[Day]) -> List[Day]:
        return self.topology.days_for(lesson.class_ids, active_days)

    def candidates(
        self,
        lesson,
        active_days: Sequence[Day],
        occupancy: Occupancy,
        all_rooms: bool = True,
    ) -> List[Candidate]:
        """
        Legal candidates for one more occurrence of ``lesson``.

        With ``all_rooms`` False only the best free room of each (day, run) is
        returned, which is all the greedy choice needs.
        """
        policy = self.room_policy(lesson)
        owners = self.owners(lesson)
        found = []
        for day in self.lesson_days(lesson, active_days):
            for window in self.topology.runs(lesson.length):
                period_ids = [p.id for p in window]
                if not all(occupancy.is_free(TEACHER, tid, day, period_ids) for tid in lesson.teacher_ids):
                    continue
                if not all(occupancy.is_free(CLASS, cid, day, period_ids) for cid in lesson.class_ids):
                    continue
                blocked, conditional = self.availability.window_state(owners, day, period_ids)
                if blocked:
                    continue
                if not policy.required:
                    found.append(Candidate(day, window, None, 0, conditional))
                    continue
                for rank, room in policy.options:
                    if not occupancy.is_free(ROOM, room.id, day, period_ids):
                        continue
                    found.append(Candidate(day, window, room, rank, conditional))
                    if not all_rooms:
                        break
        return found

    def to_slot(self, lesson, candidate: Candidate) -> Slot:
        return Slot(
            day_of_week=candidate.day,
            period_ids=candidate.period_ids,
            lesson_requirement_id=lesson.id,
            room_id=candidate.room.id if candidate.room is not None else None,
            teacher_ids=list(lesson.teacher_ids),
            class_ids=list(lesson.class_ids),
            auto_generated=True,
        )

    # ===========================
    # Display helpers
    # ===========================

    def lesson_label(self, lesson) -> str:
        if lesson.is_meeting:
            return lesson.title
        return self.subject_names.get(lesson.subject_id, f"Subject {lesson.subject_id}")

    def class_label(self, lesson) -> str:
        names = []
        for class_id in lesson.class_ids:
            school_class = self.topology.class_by_id.get(class_id)
            names.append(school_class.name if school_class is not None else f"Class {class_id}")
        return ", ".join(names) if names else "All staff"

    def describe(self, lesson, candidate: Candidate) -> str:
        first, last = candidate.periods[0], candidate.periods[-1]
        span = f"period {first.number}" if first is last else f"periods {first.number}-{last.number}"
        where = f" in {candidate.room.name}" if candidate.room is not None else ""
        return f"Placed {self.lesson_label(lesson)} for {self.class_label(lesson)} on {candidate.day.value} {span}{where}"
