"""
Decides when a schedule is due.

Fixed frequencies are measured from the last run (a schedule that never ran
is due immediately). Custom schedules fire on their cron expression, measured
from the last run, or from the creation time when they never ran. All
timestamps are naive UTC.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Union
from croniter import croniter
from dateutil.relativedelta import relativedelta

from workorder_import.core.exceptions import ScheduleConfigError
from workorder_import.models.schedule import ScheduleFrequency

Interval = Union[timedelta, relativedelta]

FIXED_INTERVALS: Dict[ScheduleFrequency, Interval] = {
    ScheduleFrequency.EVERY_15_MINUTES: timedelta(minutes=15),
    ScheduleFrequency.EVERY_30_MINUTES: timedelta(minutes=30),
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.EVERY_2_HOURS: timedelta(hours=2),
    ScheduleFrequency.EVERY_6_HOURS: timedelta(hours=6),
    ScheduleFrequency.EVERY_12_HOURS: timedelta(hours=12),
    ScheduleFrequency.DAILY: timedelta(days=1),
    ScheduleFrequency.WEEKLY: timedelta(weeks=1),
    ScheduleFrequency.MONTHLY: relativedelta(months=1),
}

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def validate_cron(expression: Optional[str]) -> str:
    """Returns the trimmed expression or raises ScheduleConfigError."""
    expr = (expression or "").strip()
    if not expr:
        raise ScheduleConfigError("A custom schedule requires a cron expression")
    if not croniter.is_valid(expr):
        raise ScheduleConfigError(f"Invalid cron expression '{expr}'")
    return expr

def frequency_of(schedule) -> ScheduleFrequency:
    try:
        return ScheduleFrequency(schedule.schedule_frequency or ScheduleFrequency.MANUAL)
    except ValueError as e:
        raise ScheduleConfigError(f"Unknown schedule frequency '{schedule.schedule_frequency}'") from e

class TriggerEvaluator:
    """
    State per schedule: Idle -> Due -> Running -> (Success | Partial | Failed) -> Idle.
    This class only answers the Idle -> Due question.
    """

    def is_due(self, schedule, now: datetime) -> bool:
        if not schedule.is_enabled:
            return False

        frequency = frequency_of(schedule)
        if frequency == ScheduleFrequency.MANUAL:
            return False

        if schedule.last_run_at is None and frequency != ScheduleFrequency.CUSTOM:
            return True

        next_at = self.next_run_at(schedule, schedule.last_run_at, now=now)
        return next_at is not None and now >= next_at

    def next_run_at(
        self,
        schedule,
        last_run_at: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        """
        Next time the schedule becomes due, or None for manual/disabled
        schedules. With no previous run a fixed frequency answers `now` (due at
        once) and a custom schedule answers its first cron fire after creation.
        """
        if not schedule.is_enabled:
            return None

        frequency = frequency_of(schedule)
        if frequency == ScheduleFrequency.MANUAL:
            return None

        if frequency == ScheduleFrequency.CUSTOM:
            expr = validate_cron(schedule.custom_cron_expression)
            base = last_run_at or getattr(schedule, "created_at", None) or now or utcnow()
            return croniter(expr, base).get_next(datetime)

        if last_run_at is None:
            return now or utcnow()

        return last_run_at + FIXED_INTERVALS[frequency]

trigger_evaluator = TriggerEvaluator()
