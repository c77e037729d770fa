"""
Deterministic most-constrained-first greedy scheduler.

Requirements are ordered by how few legal placements they have, meetings
before subject lessons on ties, then by id. Each requirement is then placed
occurrence by occurrence on its best legal candidate; nothing placed earlier
is ever moved. A requirement that runs out of candidates is reported as a
shortfall and the run carries on with the next one.
"""
import logging
import math
from collections import Counter
from typing import Dict, List, Optional, Sequence

from models.schemas import Day, SchedulingSnapshot, Slot, SolverStrategy
from service.candidates import Candidate, CandidateBuilder, Occupancy
from service.solution import Shortfall, Solution

logger = logging.getLogger(__name__)


class GreedyScheduler:
    """Places lesson requirements one at a time without backtracking."""

    def __init__(self, distribute_across_days: bool = False):
        """
        Args:
            distribute_across_days: prefer days on which a requirement has fewer
                than ceil(count / eligible days) occurrences so far
        """
        self.distribute_across_days = distribute_across_days

    def solve(
        self,
        snapshot: SchedulingSnapshot,
        active_days: Sequence[Day],
        clear_existing: bool = False,
    ) -> Solution:
        builder = CandidateBuilder(snapshot)
        occupancy = Occupancy()
        solution = Solution(strategy=SolverStrategy.GREEDY)

        kept = kept_slots(snapshot.existing_slots, clear_existing)
        for slot in kept:
            occupancy.book(slot)
        existing_counts = Counter(s.lesson_requirement_id for s in kept if s.lesson_requirement_id is not None)
        existing_days: Dict[int, Counter] = {}
        for slot in kept:
            if slot.lesson_requirement_id is not None:
                existing_days.setdefault(slot.lesson_requirement_id, Counter())[slot.day_of_week] += 1

        ordered = self.order_lessons(builder, snapshot.lessons, active_days, occupancy)

        for lesson in ordered:
            already = existing_counts.get(lesson.id, 0)
            placed = already
            day_load = existing_days.get(lesson.id, Counter())
            eligible_days = builder.lesson_days(lesson, active_days)
            day_cap = math.ceil(lesson.count / len(eligible_days)) if eligible_days else lesson.count

            while placed < lesson.count:
                best = self._best_candidate(builder, lesson, active_days, occupancy, day_load, day_cap)
                if best is None:
                    break
                slot = builder.to_slot(lesson, best)
                occupancy.book(slot)
                solution.placements.append(slot)
                day_load[best.day] += 1
                placed += 1
                solution.trace.append(builder.describe(lesson, best))

            solution.placed_counts[lesson.id] = placed
            label = f"{builder.lesson_label(lesson)} for {builder.class_label(lesson)}"
            if placed < lesson.count:
                logger.info(f"Could not fully place {label}: {placed}/{lesson.count}")
                solution.shortfalls.append(Shortfall(lesson.id, lesson.count, placed))
                solution.trace.append(f"Conflict: {label} placed {placed}/{lesson.count}")
            else:
                solution.trace.append(f"Placed {label} ({placed}/{lesson.count})")

        return solution

    def order_lessons(
        self,
        builder: CandidateBuilder,
        lessons,
        active_days: Sequence[Day],
        occupancy: Occupancy,
    ) -> List:
        """Most-constrained first: fewest legal candidates, meetings first, then id."""
        options = {
            lesson.id: len(builder.candidates(lesson, active_days, occupancy))
            for lesson in lessons
        }
        return sorted(
            lessons,
            key=lambda lesson: (options[lesson.id], 0 if lesson.is_meeting else 1, lesson.id),
        )

    def _best_candidate(
        self,
        builder: CandidateBuilder,
        lesson,
        active_days: Sequence[Day],
        occupancy: Occupancy,
        day_load: Counter,
        day_cap: int,
    ) -> Optional[Candidate]:
        candidates = builder.candidates(lesson, active_days, occupancy, all_rooms=False)
        if not candidates:
            return None
        if self.distribute_across_days:
            return min(candidates, key=lambda c: c.sort_key(1 if day_load[c.day] >= day_cap else 0))
        return min(candidates, key=lambda c: c.sort_key())


def kept_slots(existing: List[Slot], clear_existing: bool) -> List[Slot]:
    """Slots that survive a run: manual ones always, generated ones unless cleared."""
    if not clear_existing:
        return list(existing)
    return [s for s in existing if not s.auto_generated]
