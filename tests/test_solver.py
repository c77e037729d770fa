"""
Test the greedy scheduler directly against in-memory snapshots.
"""
from collections import Counter

import pytest

from models.schemas import Day, RoomType, SchedulingSnapshot, Slot, WORKING_WEEK
from service.audit import check_placements, find_overlaps
from service.errors import InputValidationError
from service.greedy_solver import GreedyScheduler
from service.rooms import infer_room_type
from service.topology import Topology
from service.validation import ensure_valid, validate_snapshot


# Test data builders
def make_periods(count=6, breaks=()):
    """Periods 1..count, one hour each from 08:00; ids equal numbers."""
    return [
        {
            "id": n,
            "number": n,
            "startTime": f"{7 + n:02d}:00",
            "endTime": f"{7 + n:02d}:50",
            "isBreak": n in breaks,
        }
        for n in range(1, count + 1)
    ]


def make_snapshot(periods=6, breaks=(), teachers=1, classes=1, rooms=()):
    return {
        "periods": make_periods(periods, breaks),
        "rooms": list(rooms),
        "teachers": [{"id": t, "name": f"Teacher {t}"} for t in range(1, teachers + 1)],
        "subjects": [
            {"id": 1, "name": "Mathematics"},
            {"id": 2, "name": "Physics"},
            {"id": 3, "name": "History"},
        ],
        "classes": [{"id": c, "name": f"Grade 7{chr(64 + c)}", "grade": 7} for c in range(1, classes + 1)],
        "lessons": [],
        "availability": [],
    }


def subject_lesson(lesson_id, subject_id=1, class_ids=(1,), teacher_ids=(1,), count=1, length=1, room_type=None):
    lesson = {
        "id": lesson_id,
        "kind": "SUBJECT",
        "subjectId": subject_id,
        "classIds": list(class_ids),
        "teacherIds": list(teacher_ids),
        "count": count,
        "length": length,
    }
    if room_type is not None:
        lesson["roomType"] = room_type
    return lesson


def meeting(lesson_id, title="Staff meeting", teacher_ids=(1,), count=1, length=1):
    return {
        "id": lesson_id,
        "kind": "MEETING",
        "title": title,
        "teacherIds": list(teacher_ids),
        "count": count,
        "length": length,
    }


def block(owner_type, owner_id, days, period_ids, state="UNAVAILABLE"):
    return [
        {"ownerType": owner_type, "ownerId": owner_id, "dayOfWeek": day, "periodId": pid, "state": state}
        for day in days
        for pid in period_ids
    ]


def solve(data, days=WORKING_WEEK, clear_existing=False, **options):
    snapshot = SchedulingSnapshot.model_validate(data)
    solution = GreedyScheduler(**options).solve(snapshot, days, clear_existing)
    return snapshot, solution


def assert_invariants(snapshot, solution, days=WORKING_WEEK):
    assert check_placements(snapshot, solution.placements, days) == []
    for lesson in snapshot.lessons:
        placed = sum(1 for s in solution.placements if s.lesson_requirement_id == lesson.id)
        short = [f for f in solution.shortfalls if f.lesson_requirement_id == lesson.id]
        missing = short[0].needed - short[0].placed if short else 0
        assert placed + missing == lesson.count


# ===========================
# Scenarios
# ===========================

def test_single_lesson_fully_placed():
    """One class, one teacher, five occurrences over a free week."""
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1, count=5)]

    snapshot, solution = solve(data)

    assert solution.total_placed == 5
    assert solution.shortfalls == []
    # earliest day, then earliest period
    assert [(s.day_of_week, s.period_ids) for s in solution.placements] == [
        (Day.MONDAY, [1]), (Day.MONDAY, [2]), (Day.MONDAY, [3]), (Day.MONDAY, [4]), (Day.MONDAY, [5]),
    ]
    assert_invariants(snapshot, solution)


def test_distribute_across_days_spreads_occurrences():
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1, count=5)]

    snapshot, solution = solve(data, distribute_across_days=True)

    assert [s.day_of_week for s in solution.placements] == WORKING_WEEK
    assert all(s.period_ids == [1] for s in solution.placements)
    assert_invariants(snapshot, solution)


def test_teacher_unavailable_days_are_skipped():
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1, count=5)]
    data["availability"] = block("TEACHER", 1, ["WEDNESDAY", "THURSDAY", "FRIDAY"], range(1, 7))

    snapshot, solution = solve(data, distribute_across_days=True)

    assert solution.total_placed == 5
    assert {s.day_of_week for s in solution.placements} == {Day.MONDAY, Day.TUESDAY}
    assert_invariants(snapshot, solution)


def test_too_few_legal_slots_records_conflict():
    """Two periods a day on two open days leave four legal cells for five occurrences."""
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1, count=5)]
    data["availability"] = block("TEACHER", 1, ["WEDNESDAY", "THURSDAY", "FRIDAY"], [1, 2])

    snapshot, solution = solve(data)

    assert solution.total_placed == 4
    assert len(solution.shortfalls) == 1
    shortfall = solution.shortfalls[0]
    assert (shortfall.lesson_requirement_id, shortfall.needed, shortfall.placed) == (1, 5, 4)
    assert any(line.startswith("Conflict:") for line in solution.trace)
    assert_invariants(snapshot, solution)


def test_most_constrained_requirement_wins_shared_period():
    """Lesson 2 can only use period 1, so it is placed before lesson 1 despite its higher id."""
    data = make_snapshot(periods=2, classes=2)
    data["lessons"] = [
        subject_lesson(1, class_ids=[2], count=2),
        subject_lesson(2, class_ids=[1], count=1),
    ]
    data["availability"] = block("CLASS", 1, ["MONDAY"], [2])

    snapshot, solution = solve(data, days=[Day.MONDAY])

    by_lesson = {}
    for slot in solution.placements:
        by_lesson.setdefault(slot.lesson_requirement_id, []).append(slot.period_ids)
    assert by_lesson[2] == [[1]]
    assert by_lesson[1] == [[2]]
    assert len(solution.shortfalls) == 1
    assert solution.shortfalls[0].lesson_requirement_id == 1
    assert solution.shortfalls[0].needed - solution.shortfalls[0].placed == 1
    assert_invariants(snapshot, solution, [Day.MONDAY])


def test_equally_constrained_requirements_fall_back_to_id_order():
    data = make_snapshot(periods=1, classes=2)
    data["lessons"] = [
        subject_lesson(7, class_ids=[2]),
        subject_lesson(3, class_ids=[1]),
    ]

    _, solution = solve(data, days=[Day.MONDAY])

    assert [s.lesson_requirement_id for s in solution.placements] == [3]
    assert solution.shortfalls[0].lesson_requirement_id == 7


def test_meeting_goes_before_subject_lesson_on_ties():
    data = make_snapshot(periods=1)
    data["lessons"] = [
        subject_lesson(1),
        meeting(2),
    ]

    _, solution = solve(data, days=[Day.MONDAY])

    assert [s.lesson_requirement_id for s in solution.placements] == [2]
    assert solution.shortfalls[0].lesson_requirement_id == 1


def test_meeting_without_classes_uses_teacher_availability():
    data = make_snapshot(teachers=3, rooms=[{"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40}])
    data["lessons"] = [meeting(1, teacher_ids=[1, 2, 3])]
    data["availability"] = block("TEACHER", 2, ["MONDAY"], [1])

    snapshot, solution = solve(data)

    assert solution.total_placed == 1
    slot = solution.placements[0]
    assert slot.class_ids == []
    assert slot.teacher_ids == [1, 2, 3]
    assert slot.room_id is None
    assert (slot.day_of_week, slot.period_ids) == (Day.MONDAY, [2])
    assert_invariants(snapshot, solution)


# ===========================
# Invariants
# ===========================

def test_no_double_booking_across_requirements():
    rooms = [
        {"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40},
        {"id": 2, "name": "Lab A", "type": "LAB", "capacity": 30},
    ]
    data = make_snapshot(periods=4, teachers=3, classes=3, rooms=rooms)
    data["lessons"] = [
        subject_lesson(1, subject_id=1, class_ids=[1], teacher_ids=[1], count=4),
        subject_lesson(2, subject_id=1, class_ids=[2], teacher_ids=[1], count=4),
        subject_lesson(3, subject_id=2, class_ids=[1, 2], teacher_ids=[2], count=3, length=2),
        subject_lesson(4, subject_id=3, class_ids=[3], teacher_ids=[3], count=5, room_type="LAB"),
        meeting(5, teacher_ids=[1, 2, 3], count=2),
    ]

    snapshot, solution = solve(data, days=[Day.MONDAY, Day.TUESDAY])

    assert find_overlaps(solution.placements) == []
    assert_invariants(snapshot, solution, [Day.MONDAY, Day.TUESDAY])


def test_multi_period_lessons_never_span_a_break():
    data = make_snapshot(periods=6, breaks=(3,))
    data["lessons"] = [subject_lesson(1, count=3, length=2)]

    snapshot, solution = solve(data, days=[Day.MONDAY])

    assert [s.period_ids for s in solution.placements] == [[1, 2], [4, 5]]
    assert solution.shortfalls[0].placed == 2
    topology = Topology.from_snapshot(snapshot)
    assert all(topology.is_contiguous_run(s.period_ids) for s in solution.placements)


def test_three_period_lesson_needs_three_adjacent_periods():
    data = make_snapshot(periods=6, breaks=(3,))
    data["lessons"] = [subject_lesson(1, count=1, length=3)]

    _, solution = solve(data, days=[Day.MONDAY])

    assert solution.placements[0].period_ids == [4, 5, 6]


def test_grade_calendar_and_active_days_limit_days():
    data = make_snapshot()
    data["gradeCalendar"] = {"7": ["TUESDAY", "THURSDAY"]}
    data["lessons"] = [subject_lesson(1, count=3)]

    days = [Day.MONDAY, Day.TUESDAY, Day.WEDNESDAY]
    snapshot, solution = solve(data, days=days)

    assert solution.total_placed == 3
    assert {s.day_of_week for s in solution.placements} == {Day.TUESDAY}
    assert_invariants(snapshot, solution, days)


def test_subject_unavailability_is_respected():
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1, count=2)]
    data["availability"] = block("SUBJECT", 1, ["MONDAY"], [1, 2])

    snapshot, solution = solve(data)

    assert all(s.day_of_week != Day.MONDAY for s in solution.placements)
    assert_invariants(snapshot, solution)


def test_conditional_cells_are_avoided_when_possible():
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1)]
    data["availability"] = block("TEACHER", 1, ["MONDAY"], [1], state="CONDITIONAL")

    _, solution = solve(data)

    assert (solution.placements[0].day_of_week, solution.placements[0].period_ids) == (Day.MONDAY, [2])


def test_conditional_cells_are_used_as_last_resort():
    data = make_snapshot(periods=1)
    data["lessons"] = [subject_lesson(1)]
    data["availability"] = block("CLASS", 1, ["MONDAY"], [1], state="CONDITIONAL")

    _, solution = solve(data, days=[Day.MONDAY])

    assert solution.total_placed == 1


def test_results_are_deterministic():
    data = make_snapshot(periods=5, teachers=2, classes=2)
    data["lessons"] = [
        subject_lesson(1, class_ids=[1], teacher_ids=[1], count=4),
        subject_lesson(2, class_ids=[2], teacher_ids=[1], count=4),
        subject_lesson(3, class_ids=[1, 2], teacher_ids=[2], count=2, length=2),
    ]

    _, first = solve(data)
    _, second = solve(data)

    assert [s.model_dump() for s in first.placements] == [s.model_dump() for s in second.placements]
    assert first.trace == second.trace


# ===========================
# Rooms
# ===========================

def test_required_room_type_is_honoured():
    rooms = [
        {"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40},
        {"id": 2, "name": "Lab A", "type": "LAB", "capacity": 40},
    ]
    data = make_snapshot(rooms=rooms)
    data["lessons"] = [subject_lesson(1, subject_id=3, room_type="LAB")]

    _, solution = solve(data)

    assert solution.placements[0].room_id == 2


def test_missing_room_type_leaves_requirement_unplaced():
    data = make_snapshot(rooms=[{"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40}])
    data["lessons"] = [subject_lesson(1, room_type="COMPUTER_LAB", count=2)]

    _, solution = solve(data)

    assert solution.total_placed == 0
    assert (solution.shortfalls[0].needed, solution.shortfalls[0].placed) == (2, 0)


def test_room_type_inferred_from_subject_name():
    rooms = [
        {"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40},
        {"id": 2, "name": "Lab A", "type": "LAB", "capacity": 40},
    ]
    data = make_snapshot(rooms=rooms)
    data["lessons"] = [subject_lesson(1, subject_id=2)]

    _, solution = solve(data)

    assert solution.placements[0].room_id == 2


def test_rooms_large_enough_for_the_class_are_preferred():
    rooms = [
        {"id": 1, "name": "Small room", "type": "REGULAR", "capacity": 20},
        {"id": 2, "name": "Large room", "type": "REGULAR", "capacity": 40},
    ]
    data = make_snapshot(rooms=rooms)
    data["classes"][0]["size"] = 32
    data["lessons"] = [subject_lesson(1)]

    _, solution = solve(data)

    assert solution.placements[0].room_id == 2


def test_auto_room_lesson_still_placed_when_every_room_is_too_small():
    data = make_snapshot(rooms=[{"id": 1, "name": "Room 101", "type": "REGULAR", "capacity": 40}])
    data["classes"][0]["size"] = 50
    data["lessons"] = [subject_lesson(1, count=5)]

    snapshot, solution = solve(data)

    assert solution.total_placed == 5
    assert solution.shortfalls == []
    assert {s.room_id for s in solution.placements} == {1}
    assert_invariants(snapshot, solution)


def test_required_room_type_still_needs_capacity():
    data = make_snapshot(rooms=[{"id": 1, "name": "Lab A", "type": "LAB", "capacity": 20}])
    data["classes"][0]["size"] = 30
    data["lessons"] = [subject_lesson(1, room_type="LAB", count=2)]

    _, solution = solve(data)

    assert solution.total_placed == 0
    assert (solution.shortfalls[0].needed, solution.shortfalls[0].placed) == (2, 0)


def test_lessons_run_without_rooms_when_none_exist():
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1)]

    _, solution = solve(data)

    assert solution.placements[0].room_id is None


@pytest.mark.parametrize("name,expected", [
    ("Physical Education", RoomType.PE),
    ("Computer Science", RoomType.COMPUTER_LAB),
    ("Chemistry", RoomType.LAB),
    ("ICT", RoomType.COMPUTER_LAB),
    ("Library Skills", RoomType.LIBRARY),
    ("Speech", RoomType.REGULAR),
    ("Mathematics", RoomType.REGULAR),
])
def test_infer_room_type(name, expected):
    assert infer_room_type(name) == expected


# ===========================
# Existing slots
# ===========================

def test_kept_slots_block_their_cells():
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1)]
    data["existingSlots"] = [{
        "id": 10, "dayOfWeek": "MONDAY", "periodIds": [1],
        "teacherIds": [1], "classIds": [], "autoGenerated": False,
    }]

    snapshot, solution = solve(data, clear_existing=True)

    assert (solution.placements[0].day_of_week, solution.placements[0].period_ids) == (Day.MONDAY, [2])
    kept = [s for s in snapshot.existing_slots]
    assert check_placements(snapshot, solution.placements, WORKING_WEEK, kept) == []


def test_existing_generated_slots_count_unless_cleared():
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1, count=2)]
    data["existingSlots"] = [{
        "id": 10, "dayOfWeek": "MONDAY", "periodIds": [1], "lessonRequirementId": 1,
        "teacherIds": [1], "classIds": [1], "autoGenerated": True,
    }]

    _, kept_run = solve(data)
    _, cleared_run = solve(data, clear_existing=True)

    assert kept_run.total_placed == 1
    assert kept_run.placements[0].period_ids == [2]
    assert kept_run.shortfalls == []
    assert cleared_run.total_placed == 2
    assert [s.period_ids for s in cleared_run.placements] == [[1], [2]]


# ===========================
# Validation & audit
# ===========================

def test_validation_reports_every_problem():
    data = make_snapshot()
    data["lessons"] = [subject_lesson(1, teacher_ids=[9], class_ids=[8], subject_id=7)]
    data["availability"] = block("TEACHER", 1, ["MONDAY"], [42])
    snapshot = SchedulingSnapshot.model_validate(data)

    errors = validate_snapshot(snapshot, WORKING_WEEK)

    assert "Lesson 1 references unknown teacher 9" in errors
    assert "Lesson 1 references unknown class 8" in errors
    assert "Lesson 1 references unknown subject 7" in errors
    assert any("unknown period 42" in e for e in errors)


def test_empty_configuration_is_fatal():
    snapshot = SchedulingSnapshot.model_validate({"periods": [], "lessons": []})

    with pytest.raises(InputValidationError) as exc_info:
        ensure_valid(snapshot, WORKING_WEEK)

    assert "No periods configured. Set up school periods first." in exc_info.value.errors
    assert "No timetable lessons configured. Create lessons first." in exc_info.value.errors


def test_all_break_periods_are_fatal():
    data = make_snapshot(periods=2, breaks=(1, 2))
    data["lessons"] = [subject_lesson(1)]
    snapshot = SchedulingSnapshot.model_validate(data)

    assert validate_snapshot(snapshot, WORKING_WEEK) == ["Every configured period is a break; nothing can be scheduled."]


def test_audit_detects_double_booking():
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1, count=2)]
    snapshot = SchedulingSnapshot.model_validate(data)
    clash = [
        {"dayOfWeek": "MONDAY", "periodIds": [1], "lessonRequirementId": 1, "teacherIds": [1], "classIds": [1]},
        {"dayOfWeek": "MONDAY", "periodIds": [1], "lessonRequirementId": 1, "teacherIds": [1], "classIds": [1]},
    ]
    slots = [Slot.model_validate(s) for s in clash]

    violations = check_placements(snapshot, slots, WORKING_WEEK)

    assert any(v.startswith("teacher_overlap") for v in violations)
    assert any(v.startswith("class_overlap") for v in violations)
    assert Counter(o.type for o in find_overlaps(slots)) == {"teacher_overlap": 1, "class_overlap": 1}


def test_audit_ignores_clashes_between_kept_slots_only():
    data = make_snapshot(periods=2, teachers=2, classes=2)
    data["lessons"] = [subject_lesson(1, class_ids=[2], teacher_ids=[2])]
    snapshot = SchedulingSnapshot.model_validate(data)
    kept = [
        Slot(id=10, day_of_week=Day.MONDAY, period_ids=[1], teacher_ids=[1]),
        Slot(id=11, day_of_week=Day.MONDAY, period_ids=[1], teacher_ids=[1], class_ids=[1]),
    ]
    placed = [Slot(day_of_week=Day.MONDAY, period_ids=[1], lesson_requirement_id=1, teacher_ids=[2], class_ids=[2])]
    clashing = [Slot(day_of_week=Day.MONDAY, period_ids=[1], lesson_requirement_id=1, teacher_ids=[1], class_ids=[2])]

    assert check_placements(snapshot, placed, WORKING_WEEK, kept) == []
    assert any(v.startswith("teacher_overlap") for v in check_placements(snapshot, clashing, WORKING_WEEK, kept))


def test_validation_rejects_clashing_existing_slots():
    data = make_snapshot(periods=2)
    data["lessons"] = [subject_lesson(1)]
    data["existingSlots"] = [
        {"id": 10, "dayOfWeek": "MONDAY", "periodIds": [1], "teacherIds": [1], "classIds": []},
        {"id": 11, "dayOfWeek": "MONDAY", "periodIds": [1], "teacherIds": [1], "classIds": [1]},
    ]
    snapshot = SchedulingSnapshot.model_validate(data)

    errors = validate_snapshot(snapshot, WORKING_WEEK)

    assert errors == ["Existing slots 10 and 11 double-book a teacher on MONDAY period 1"]
