"""
Per-school mutual exclusion for generation runs and manual slot edits.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional

from service.errors import LockTimeoutError

logger = logging.getLogger(__name__)


class TimetableLocks:
    """Registry of one lock per school instance."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None):
        """Block until the lock for ``key`` is free; raise LockTimeoutError after ``timeout`` seconds."""
        lock = self._lock_for(key)
        acquired = lock.acquire(timeout=timeout if timeout is not None else -1)
        if not acquired:
            logger.warning(f"Timed out waiting for timetable lock '{key}'")
            raise LockTimeoutError(key, timeout)
        try:
            yield
        finally:
            lock.release()

    def is_locked(self, key: str) -> bool:
        return self._lock_for(key).locked()


timetable_locks = TimetableLocks()
