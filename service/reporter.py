"""
Formats a solver outcome into the generation response contract.
"""
from typing import List, Optional, Sequence

from models.schemas import (
    ConflictLesson, ConflictOut, Day, ErrorMessage, GenerateResponse, Messages,
    RunStatus, SchedulingSnapshot, Step, Summary,
)
from service.candidates import CandidateBuilder
from service.solution import Solution


class ResultReporter:
    """Pure aggregation; never changes what the solver decided."""

    def __init__(self, snapshot: SchedulingSnapshot, active_days: Sequence[Day]):
        self.snapshot = snapshot
        self.active_days = list(active_days)
        self.builder = CandidateBuilder(snapshot)
        self.teacher_names = {t.id: t.name for t in snapshot.teachers}
        self.lessons = {lesson.id: lesson for lesson in snapshot.lessons}

    def report(
        self,
        solution: Solution,
        steps: Sequence[str] = (),
        run_id: Optional[int] = None,
        status: RunStatus = RunStatus.COMMITTED,
        include_slots: bool = False,
    ) -> GenerateResponse:
        conflicts = [self._conflict(shortfall) for shortfall in solution.shortfalls]
        return GenerateResponse(
            success=True,
            status=status,
            run_id=run_id,
            total_placed=solution.total_placed,
            total_conflicts=len(conflicts),
            summary=Summary(
                lessons=len(self.snapshot.lessons),
                periods_per_day=sum(1 for p in self.snapshot.periods if not p.is_break),
                days_per_week=len(self.active_days),
                rooms_available=len(self.snapshot.rooms),
                total_slots_created=solution.total_placed,
            ),
            steps=number_steps(steps),
            conflicts=conflicts,
            slots=list(solution.placements) if include_slots else None,
        )

    def _conflict(self, shortfall) -> ConflictOut:
        lesson = self.lessons[shortfall.lesson_requirement_id]
        teachers = ", ".join(self.teacher_names.get(tid, f"Teacher {tid}") for tid in lesson.teacher_ids)
        return ConflictOut(
            lesson_requirement_id=lesson.id,
            lesson=ConflictLesson(
                subject=self.builder.lesson_label(lesson),
                class_name=self.builder.class_label(lesson),
                teachers=teachers,
            ),
            placed=shortfall.placed,
            needed=shortfall.needed,
        )


def number_steps(messages: Sequence[str]) -> List[Step]:
    return [Step(step=idx, message=message) for idx, message in enumerate(messages, start=1)]


def failure_response(
    title: str,
    errors: Sequence[str],
    steps: Sequence[str] = (),
    run_id: Optional[int] = None,
) -> GenerateResponse:
    """Response for a run that never committed."""
    return GenerateResponse(
        success=False,
        status=RunStatus.ABORTED,
        run_id=run_id,
        steps=number_steps(steps),
        error="; ".join(errors),
        messages=Messages(error_message=[ErrorMessage(title=title, message=err) for err in errors]),
    )
