import threading
from typing import Dict
from contextlib import contextmanager
import logging

from workorder_import.core.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)

class ScheduleLockManager:
    """
    One lock per schedule id. Acquisition never blocks: a second run of a
    schedule that is already running fails with ConcurrencyError, while
    different schedules proceed independently.
    """

    def __init__(self):
        self._locks: Dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def get_lock(self, schedule_id: int) -> threading.Lock:
        """Get or create the lock for a schedule."""
        with self._guard:
            if schedule_id not in self._locks:
                self._locks[schedule_id] = threading.Lock()
            return self._locks[schedule_id]

    def is_running(self, schedule_id: int) -> bool:
        return self.get_lock(schedule_id).locked()

    @contextmanager
    def acquire(self, schedule_id: int):
        """Hold the schedule's lock for the body, or raise ConcurrencyError."""
        lock = self.get_lock(schedule_id)
        if not lock.acquire(blocking=False):
            logger.warning(f"Rejected run for schedule {schedule_id}: already running")
            raise ConcurrencyError(schedule_id)
        logger.debug(f"Acquired lock for schedule {schedule_id}")
        try:
            yield
        finally:
            lock.release()
            logger.debug(f"Released lock for schedule {schedule_id}")

    def forget(self, schedule_id: int) -> None:
        """Drops the lock of a deleted schedule unless it is held."""
        with self._guard:
            lock = self._locks.get(schedule_id)
            if lock is not None and not lock.locked():
                del self._locks[schedule_id]

# Process-wide registry shared by the scheduler and the API
schedule_locks = ScheduleLockManager()
