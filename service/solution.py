from dataclasses import dataclass, field
from typing import List

from models.schemas import Slot, SolverStrategy


@dataclass(frozen=True)
class Shortfall:
    """A requirement that could not be placed ``needed`` times."""
    lesson_requirement_id: int
    needed: int
    placed: int


@dataclass
class Solution:
    strategy: SolverStrategy
    placements: List[Slot] = field(default_factory=list)
    shortfalls: List[Shortfall] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)
    # placements per requirement, including slots that existed before the run
    placed_counts: dict = field(default_factory=dict)

    @property
    def total_placed(self) -> int:
        return len(self.placements)
