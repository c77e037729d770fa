"""
One generation run: snapshot, solve, commit.

    PENDING -> RUNNING -> COMMITTED | ABORTED

Validation failures abort before RUNNING. The old generated slots are
removed and the new ones inserted in a single transaction, so an aborted
run leaves the previously committed timetable exactly as it was.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from config import settings
from db.tables import GenerationRunRow
from models.schemas import (
    Day, GenerateRequest, GenerateResponse, RunStatus, SchedulingSnapshot, SolverStrategy,
)
from service.audit import check_placements
from service.cpsat_solver import CpSatScheduler
from service.errors import InputValidationError, PersistenceError, SchedulingError
from service.greedy_solver import GreedyScheduler, kept_slots
from service.locks import timetable_locks
from service.reporter import ResultReporter, failure_response
from service.repository import delete_generated_slots, load_snapshot, slot_row
from service.solution import Solution
from service.validation import ensure_valid

logger = logging.getLogger(__name__)


def build_scheduler(request: GenerateRequest):
    if request.strategy == SolverStrategy.CPSAT:
        return CpSatScheduler(
            time_limit_seconds=settings.solver_timeout_seconds,
            random_seed=settings.solver_random_seed,
            num_workers=settings.solver_num_workers,
            distribute_across_days=request.distribute_across_days,
        )
    return GreedyScheduler(distribute_across_days=request.distribute_across_days)


def resolve_active_days(request: GenerateRequest) -> List[Day]:
    if request.active_days is not None:
        return list(request.active_days)
    return [Day(d) for d in settings.default_active_days]


def run_solver(snapshot: SchedulingSnapshot, request: GenerateRequest, active_days: List[Day]) -> Solution:
    """Solve and re-check every invariant before anything is reported or saved."""
    solution = build_scheduler(request).solve(snapshot, active_days, request.clear_existing)
    kept = kept_slots(snapshot.existing_slots, request.clear_existing)
    violations = check_placements(snapshot, solution.placements, active_days, kept)
    if violations:
        raise SchedulingError(f"Generated placements break timetable invariants: {violations[0]}")
    return solution


def solve_snapshot(snapshot: SchedulingSnapshot, request: GenerateRequest) -> GenerateResponse:
    """Stateless solve: validate, schedule and report without touching the database."""
    active_days = resolve_active_days(request)
    try:
        ensure_valid(snapshot, active_days)
        solution = run_solver(snapshot, request, active_days)
    except InputValidationError as exc:
        logger.warning(f"Rejected solve request: {exc}")
        return failure_response("Invalid Input", exc.errors)
    except SchedulingError as exc:
        logger.error(f"Solve failed: {exc}")
        return failure_response("Solver Error", [str(exc)])
    steps = ["Validated input", *solution.trace, "Timetable generation complete!"]
    return ResultReporter(snapshot, active_days).report(solution, steps, status=RunStatus.COMMITTED, include_slots=True)


class GenerationRun:
    """A single auto-generate invocation against the database."""

    def __init__(self, session_factory: sessionmaker, request: GenerateRequest, school_id: Optional[str] = None):
        self.session_factory = session_factory
        self.request = request
        self.school_id = school_id or settings.school_id
        self.status = RunStatus.PENDING
        self.steps: List[str] = []
        self.run_id: Optional[int] = None

    def execute(self) -> GenerateResponse:
        """Run under the school's timetable lock; LockTimeoutError propagates to the caller."""
        with timetable_locks.hold(self.school_id, settings.generation_lock_timeout_seconds):
            return self._execute()

    def _execute(self) -> GenerateResponse:
        active_days = resolve_active_days(self.request)
        self.run_id = self._record_start()
        logger.info(
            f"Generation run {self.run_id} started (strategy={self.request.strategy.value}, "
            f"clear_existing={self.request.clear_existing}, days={[d.value for d in active_days]})"
        )

        # PENDING: snapshot and validation
        self.steps.append("Loading periods, rooms and lesson configurations...")
        with self.session_factory() as session:
            try:
                snapshot = load_snapshot(session, [Day(d) for d in settings.default_active_days])
                ensure_valid(snapshot, active_days)
            except InputValidationError as exc:
                return self._abort("Invalid Input", exc.errors)

        # RUNNING
        self.status = RunStatus.RUNNING
        self.steps.append("Checking time off constraints...")
        if self.request.clear_existing:
            self.steps.append("Clearing existing timetable...")
        self.steps.append("Scheduling lessons...")
        try:
            solution = run_solver(snapshot, self.request, active_days)
        except SchedulingError as exc:
            return self._abort("Solver Error", [str(exc)])
        self.steps.extend(solution.trace)

        self.steps.append("Saving timetable to database...")
        try:
            self._commit(solution)
        except PersistenceError as exc:
            return self._abort("Persistence Error", [str(exc)])

        self.status = RunStatus.COMMITTED
        self.steps.append("Timetable generation complete!")
        self._record_finish(solution.total_placed, len(solution.shortfalls))
        logger.info(
            f"Generation run {self.run_id} committed: {solution.total_placed} placed, "
            f"{len(solution.shortfalls)} conflicts"
        )
        return ResultReporter(snapshot, active_days).report(solution, self.steps, run_id=self.run_id)

    def _commit(self, solution: Solution):
        with self.session_factory() as session:
            try:
                with session.begin():
                    if self.request.clear_existing:
                        removed = delete_generated_slots(session)
                        # deletes must reach the database before inserts reuse their cells
                        session.flush()
                        logger.debug(f"Removed {removed} generated slots")
                    for slot in solution.placements:
                        session.add(slot_row(slot))
            except SQLAlchemyError as exc:
                logger.error(f"Generation run {self.run_id} failed to persist: {exc}", exc_info=True)
                raise PersistenceError(f"Failed to save timetable: {exc.__class__.__name__}") from exc

    def _abort(self, title: str, errors: List[str]) -> GenerateResponse:
        self.status = RunStatus.ABORTED
        logger.warning(f"Generation run {self.run_id} aborted: {'; '.join(errors)}")
        self._record_finish(0, 0, error="; ".join(errors))
        return failure_response(title, errors, self.steps, run_id=self.run_id)

    # ===========================
    # Run history
    # ===========================

    def _record_start(self) -> Optional[int]:
        with self.session_factory() as session:
            row = GenerationRunRow(
                school_id=self.school_id,
                status=RunStatus.PENDING.value,
                strategy=self.request.strategy.value,
                clear_existing=self.request.clear_existing,
            )
            session.add(row)
            session.commit()
            return row.id

    def _record_finish(self, total_placed: int, total_conflicts: int, error: Optional[str] = None):
        with self.session_factory() as session:
            row = session.get(GenerationRunRow, self.run_id)
            if row is None:
                return
            row.status = self.status.value
            row.total_placed = total_placed
            row.total_conflicts = total_conflicts
            row.error = error
            row.finished_at = datetime.now(timezone.utc)
            session.commit()
