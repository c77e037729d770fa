"""
OR-Tools CP-SAT scheduling strategy.

Works on the same legal candidates as the greedy scheduler but chooses them
jointly: it maximises the number of placed occurrences, then minimises
CONDITIONAL cells and finally prefers earlier days, periods and rooms. The
greedy result is passed in as a solution hint, so the answer is never worse
than the greedy one when the solver reaches optimality.
"""
import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from ortools.sat.python import cp_model

from models.schemas import Day, SchedulingSnapshot, SolverStrategy
from service.candidates import CLASS, ROOM, TEACHER, Candidate, CandidateBuilder, Occupancy
from service.errors import SchedulingError
from service.greedy_solver import GreedyScheduler, kept_slots
from service.solution import Shortfall, Solution

logger = logging.getLogger(__name__)


class CpSatScheduler:
    """
    Constraint-based scheduler using OR-Tools CP-SAT solver.

    One boolean variable per (lesson, candidate); resource cells get an
    at-most-one constraint and each lesson at most its remaining count.
    """

    def __init__(
        self,
        time_limit_seconds: int = 30,
        random_seed: int = 42,
        num_workers: int = 1,
        distribute_across_days: bool = False,
    ):
        """
        Initialize the scheduler.

        Args:
            time_limit_seconds: Maximum time allowed for solver
            random_seed: Solver seed; with a single worker runs are reproducible
            num_workers: Number of parallel search workers
            distribute_across_days: Cap each lesson at ceil(count / eligible days) per day
        """
        self.time_limit_seconds = time_limit_seconds
        self.distribute_across_days = distribute_across_days
        self.model = cp_model.CpModel()
        self.solver = cp_model.CpSolver()

        # Solver parameters for deterministic behavior
        self.solver.parameters.random_seed = random_seed
        self.solver.parameters.num_workers = num_workers
        self.solver.parameters.max_time_in_seconds = time_limit_seconds

        # Data structures
        self.variables: Dict[int, List[Tuple[Candidate, cp_model.IntVar]]] = {}

    def solve(
        self,
        snapshot: SchedulingSnapshot,
        active_days: Sequence[Day],
        clear_existing: bool = False,
    ) -> Solution:
        builder = CandidateBuilder(snapshot)
        occupancy = Occupancy()
        kept = kept_slots(snapshot.existing_slots, clear_existing)
        for slot in kept:
            occupancy.book(slot)
        existing_counts = defaultdict(int)
        for slot in kept:
            if slot.lesson_requirement_id is not None:
                existing_counts[slot.lesson_requirement_id] += 1

        greedy = GreedyScheduler(self.distribute_across_days)
        ordered = greedy.order_lessons(builder, snapshot.lessons, active_days, occupancy)

        # Step 1: Create decision variables
        self._create_variables(builder, ordered, active_days, occupancy)

        # Step 2: Add hard constraints
        self._add_hard_constraints(builder, ordered, active_days, existing_counts)

        # Step 3: Objective
        self._add_objective(ordered, existing_counts)

        # Step 4: Hint with the greedy placement
        self._add_greedy_hint(greedy.solve(snapshot, active_days, clear_existing))

        # Step 5: Solve the model
        start_time = datetime.now()
        status = self.solver.Solve(self.model)
        solve_time = (datetime.now() - start_time).total_seconds()
        logger.info(f"CP-SAT finished with status {self.solver.StatusName(status)} in {solve_time:.2f}s")

        # Step 6: Extract the placements
        return self._extract_solution(status, builder, ordered, existing_counts)

    def _create_variables(self, builder: CandidateBuilder, lessons, active_days, occupancy: Occupancy):
        for lesson in lessons:
            candidates = sorted(
                builder.candidates(lesson, active_days, occupancy),
                key=lambda c: c.sort_key(),
            )
            self.variables[lesson.id] = []
            for idx, candidate in enumerate(candidates):
                room = candidate.room.id if candidate.room is not None else "none"
                var = self.model.NewBoolVar(
                    f"lesson_{lesson.id}_{candidate.day.value}_p{candidate.periods[0].id}_room_{room}_{idx}"
                )
                self.variables[lesson.id].append((candidate, var))

    def _add_hard_constraints(self, builder: CandidateBuilder, lessons, active_days, existing_counts):
        # 1. Each lesson placed at most its remaining count
        for lesson in lessons:
            remaining = max(0, lesson.count - existing_counts[lesson.id])
            all_vars = [var for _, var in self.variables[lesson.id]]
            if all_vars:
                self.model.Add(sum(all_vars) <= remaining)

        # 2. No teacher, class or room double-booking on any (day, period)
        cells = defaultdict(list)
        for lesson in lessons:
            for candidate, var in self.variables[lesson.id]:
                for period_id in candidate.period_ids:
                    for teacher_id in lesson.teacher_ids:
                        cells[(TEACHER, teacher_id, candidate.day, period_id)].append(var)
                    for class_id in lesson.class_ids:
                        cells[(CLASS, class_id, candidate.day, period_id)].append(var)
                    if candidate.room is not None:
                        cells[(ROOM, candidate.room.id, candidate.day, period_id)].append(var)
        for cell_vars in cells.values():
            if len(cell_vars) > 1:
                self.model.Add(sum(cell_vars) <= 1)

        # 3. Optional spread: at most ceil(count / eligible days) per day
        if self.distribute_across_days:
            for lesson in lessons:
                eligible = builder.lesson_days(lesson, active_days)
                if not eligible:
                    continue
                cap = math.ceil(lesson.count / len(eligible))
                by_day = defaultdict(list)
                for candidate, var in self.variables[lesson.id]:
                    by_day[candidate.day].append(var)
                for day_vars in by_day.values():
                    self.model.Add(sum(day_vars) <= cap)

    def _add_objective(self, lessons, existing_counts):
        """
        Lexicographic objective folded into one integer sum.

        Each placement earns ``reward`` minus a penalty of
        ``conditional * (max_position + 1) + position``; the reward exceeds the
        penalties of every possible placement combined, so placing one more
        occurrence always wins.
        """
        entries = [
            (idx, candidate, var)
            for lesson in lessons
            for idx, (candidate, var) in enumerate(self.variables[lesson.id])
        ]
        if not entries:
            return
        max_position = max(idx for idx, _, _ in entries)
        max_conditional = max(candidate.conditional_cells for _, candidate, _ in entries)
        max_penalty = max_conditional * (max_position + 1) + max_position
        occurrences = sum(max(0, lesson.count - existing_counts[lesson.id]) for lesson in lessons)
        reward = (occurrences + 1) * (max_penalty + 1)

        terms = []
        for idx, candidate, var in entries:
            penalty = candidate.conditional_cells * (max_position + 1) + idx
            terms.append(var * (reward - penalty))
        self.model.Maximize(sum(terms))

    def _add_greedy_hint(self, greedy_solution: Solution):
        chosen = set()
        for slot in greedy_solution.placements:
            chosen.add((slot.lesson_requirement_id, slot.day_of_week, tuple(slot.period_ids), slot.room_id))
        for lesson_id, entries in self.variables.items():
            for candidate, var in entries:
                room_id = candidate.room.id if candidate.room is not None else None
                key = (lesson_id, candidate.day, tuple(candidate.period_ids), room_id)
                self.model.AddHint(var, 1 if key in chosen else 0)

    def _extract_solution(self, status, builder: CandidateBuilder, lessons, existing_counts) -> Solution:
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            raise SchedulingError(
                f"CP-SAT solver returned {self.solver.StatusName(status)} within {self.time_limit_seconds}s"
            )

        solution = Solution(strategy=SolverStrategy.CPSAT)
        for lesson in lessons:
            placed = existing_counts[lesson.id]
            for candidate, var in self.variables[lesson.id]:
                if self.solver.Value(var) == 1:
                    solution.placements.append(builder.to_slot(lesson, candidate))
                    solution.trace.append(builder.describe(lesson, candidate))
                    placed += 1
            solution.placed_counts[lesson.id] = placed
            label = f"{builder.lesson_label(lesson)} for {builder.class_label(lesson)}"
            if placed < lesson.count:
                solution.shortfalls.append(Shortfall(lesson.id, lesson.count, placed))
                solution.trace.append(f"Conflict: {label} placed {placed}/{lesson.count}")
            else:
                solution.trace.append(f"Placed {label} ({placed}/{lesson.count})")
        return solution
