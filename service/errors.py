"""
Exceptions raised by the timetable generation service.

Conflicts (requirements that could not be fully placed) are not exceptions:
they are ordinary entries of the run's conflict report.
"""
from typing import List, Optional


class SchedulingError(Exception):
    """Base class for fatal generation errors."""


class InputValidationError(SchedulingError):
    """The snapshot or the run options are inconsistent; the run never starts."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class PersistenceError(SchedulingError):
    """Writing the generated slots failed; the transaction was rolled back."""


class LockTimeoutError(SchedulingError):
    """Another run or slot edit holds the timetable lock."""

    def __init__(self, key: str, timeout: Optional[float]):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timetable '{key}' is locked by another operation")
