"""
Invariant checks over a set of slots.
"""
from collections import Counter
from typing import Dict, List, Sequence, Tuple

from models.api import SlotOverlap
from models.schemas import AvailabilityState, Day, OwnerType, SchedulingSnapshot, Slot
from service.availability import AvailabilityStore
from service.topology import Topology


def find_overlaps(slots: Sequence[Slot]) -> List[SlotOverlap]:
    """Pairs of slots sharing a teacher, class or room on the same (day, period)."""
    seen: Dict[Tuple[str, int, Day, int], int] = {}
    overlaps = []
    for slot in sorted(slots, key=lambda s: (s.id is None, s.id or 0)):
        slot_id = slot.id if slot.id is not None else -1
        for period_id in slot.period_ids:
            keys = [("teacher_overlap", tid) for tid in slot.teacher_ids]
            keys += [("class_overlap", cid) for cid in slot.class_ids]
            if slot.room_id is not None:
                keys.append(("room_overlap", slot.room_id))
            for kind, owner_id in keys:
                key = (kind, owner_id, slot.day_of_week, period_id)
                if key in seen:
                    overlaps.append(SlotOverlap(
                        type=kind,
                        day_of_week=slot.day_of_week,
                        period_id=period_id,
                        slot_a=seen[key],
                        slot_b=slot_id,
                    ))
                else:
                    seen[key] = slot_id
    return overlaps


def check_placements(
    snapshot: SchedulingSnapshot,
    slots: Sequence[Slot],
    active_days: Sequence[Day],
    kept: Sequence[Slot] = (),
) -> List[str]:
    """
    Every invariant the new ``slots`` must satisfy; returns violations.

    ``kept`` are slots that stay committed alongside them: they take part in
    the double-booking and count checks only, and overlaps among kept slots
    alone are not reported.
    """
    topology = Topology.from_snapshot(snapshot)
    availability = AvailabilityStore(snapshot.availability)
    lessons = {lesson.id: lesson for lesson in snapshot.lessons}
    numbered = _numbered([*kept, *slots])
    new_ids = {slot.id for slot in numbered[len(kept):]}
    violations = [
        f"{o.type} on {o.day_of_week.value} period {o.period_id} (slots {o.slot_a}, {o.slot_b})"
        for o in find_overlaps(numbered)
        if o.slot_a in new_ids or o.slot_b in new_ids
    ]

    for idx, slot in enumerate(slots):
        name = f"slot {slot.id if slot.id is not None else f'#{idx}'}"
        if not topology.is_contiguous_run(slot.period_ids):
            violations.append(f"{name}: periods {slot.period_ids} are not a contiguous non-break run")
        lesson = lessons.get(slot.lesson_requirement_id)
        if lesson is not None and len(slot.period_ids) != lesson.length:
            violations.append(f"{name}: expected {lesson.length} periods, got {len(slot.period_ids)}")
        if slot.day_of_week not in active_days:
            violations.append(f"{name}: {slot.day_of_week.value} is not an active day")
        for class_id in slot.class_ids:
            if slot.day_of_week not in topology.class_days(class_id):
                violations.append(f"{name}: class {class_id} has no lessons on {slot.day_of_week.value}")
        owners = [(OwnerType.TEACHER, tid) for tid in slot.teacher_ids]
        owners += [(OwnerType.CLASS, cid) for cid in slot.class_ids]
        if lesson is not None and not lesson.is_meeting:
            owners.append((OwnerType.SUBJECT, lesson.subject_id))
        for owner_type, owner_id in owners:
            for period_id in slot.period_ids:
                if availability.state(owner_type, owner_id, slot.day_of_week, period_id) == AvailabilityState.UNAVAILABLE:
                    violations.append(
                        f"{name}: {owner_type.value.lower()} {owner_id} is unavailable on "
                        f"{slot.day_of_week.value} period {period_id}"
                    )

    counts = Counter(s.lesson_requirement_id for s in [*kept, *slots] if s.lesson_requirement_id is not None)
    for lesson_id in {s.lesson_requirement_id for s in slots}:
        placed = counts[lesson_id]
        lesson = lessons.get(lesson_id)
        if lesson is not None and placed > lesson.count:
            violations.append(f"lesson {lesson_id}: {placed} slots exceed its count of {lesson.count}")
    return violations


def _numbered(slots: Sequence[Slot]) -> List[Slot]:
    """Give unsaved slots temporary negative ids so overlaps can name them."""
    return [
        slot if slot.id is not None else slot.model_copy(update={"id": -(idx + 1)})
        for idx, slot in enumerate(slots)
    ]
