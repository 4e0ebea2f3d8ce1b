"""
Polling scheduler.

A single background thread wakes every SCHEDULER_TICK_SECONDS, asks the
trigger evaluator which enabled schedules are due and hands them to a small
worker pool. Schedules are re-read from the database on every tick, so edits
take effect without a restart. The clock is injectable and tick() can be
called directly, which is how the tests drive it.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional

from workorder_import.core.config import settings
from workorder_import.core.exceptions import ConcurrencyError
from workorder_import.models.schedule import ImportRunOut, Trigger
from workorder_import.services import schedule_store
from workorder_import.services.import_executor import ImportExecutor
from workorder_import.services.trigger import TriggerEvaluator, trigger_evaluator, utcnow

logger = logging.getLogger(__name__)

MAX_TICK_SECONDS = 15 * 60

class Scheduler:

    def __init__(
        self,
        executor: ImportExecutor,
        evaluator: TriggerEvaluator = trigger_evaluator,
        clock: Callable[[], datetime] = utcnow,
        tick_seconds: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        tick = tick_seconds if tick_seconds is not None else settings.SCHEDULER_TICK_SECONDS
        if tick <= 0 or tick > MAX_TICK_SECONDS:
            raise ValueError(f"Tick must be between 1 and {MAX_TICK_SECONDS} seconds, got {tick}")

        self.executor = executor
        self.evaluator = evaluator
        self.clock = clock
        self.tick_seconds = tick
        self.max_workers = max_workers or settings.SCHEDULER_MAX_WORKERS

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._pool: Optional[ThreadPoolExecutor] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="import-worker")
        self._thread = threading.Thread(target=self._loop, name="import-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started (tick every {self.tick_seconds}s)")

    def stop(self, wait: bool = True) -> None:
        """Stops polling. Runs already in flight are allowed to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.tick_seconds + 5)
            self._thread = None
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None
        logger.info("Scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            self._stop.wait(self.tick_seconds)

    def due_schedule_ids(self, now: Optional[datetime] = None) -> List[int]:
        now = now or self.clock()
        due: List[int] = []
        for schedule in schedule_store.list_enabled_schedules():
            if self.executor.locks.is_running(schedule.id):
                continue
            if self.evaluator.is_due(schedule, now):
                due.append(schedule.id)
        return due

    def tick(self, now: Optional[datetime] = None) -> List[Future]:
        """
        Dispatches every due schedule. Returns the futures so callers can
        wait on them.
        """
        futures: List[Future] = []
        for schedule_id in self.due_schedule_ids(now):
            logger.info(f"Schedule {schedule_id} is due")
            futures.append(self._submit(schedule_id))
        return futures

    def _submit(self, schedule_id: int) -> Future:
        if self._pool is None:
            # Not started: run inline on the caller's thread
            future: Future = Future()
            try:
                future.set_result(self._run(schedule_id))
            except Exception as e:
                future.set_exception(e)
            return future
        return self._pool.submit(self._run, schedule_id)

    def _run(self, schedule_id: int) -> Optional[ImportRunOut]:
        try:
            return self.executor.run(schedule_id, Trigger.SCHEDULED)
        except ConcurrencyError:
            # Picked up by a run-now request between the check and the run
            logger.info(f"Schedule {schedule_id} already running, skipped this tick")
            return None
        except Exception:
            logger.exception(f"Scheduled run of schedule {schedule_id} failed")
            return None
