from __future__ import annotations
"""
Trigger Registry
Named recurring invocations (hourly retries, weekly steady state).

The harvest_triggers table is the source of truth, so an armed trigger
survives a worker restart. When an APScheduler scheduler is attached every
change is mirrored as a job whose id is the trigger name.
"""

from typing import Any, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from gbp_harvest.config.harvest_constants import TRIGGER_NAMES
from gbp_harvest.harvest_log import log_step
from gbp_harvest.settings import settings

HOURLY = "hourly"
WEEKLY = "weekly"


def build_schedule(trigger: Dict[str, Any]):
    """APScheduler trigger for a harvest_triggers row"""
    if trigger['cadence'] == HOURLY:
        return IntervalTrigger(hours=1, timezone=settings.tz)
    # week_day follows date.weekday(): 0 = Monday, same as APScheduler
    return CronTrigger(
        day_of_week=trigger['week_day'],
        hour=trigger['hour'],
        timezone=settings.tz
    )


class TriggerRegistry:
    """Arms and disarms named triggers"""

    def __init__(self, db, scheduler=None, dispatch: Optional[Callable[[str], Any]] = None):
        self.db = db
        self.scheduler = scheduler
        self.dispatch = dispatch

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in TRIGGER_NAMES:
            raise ValueError(f"Unknown trigger: {name}")

    def arm_hourly(self, name: str) -> None:
        self._check_name(name)
        self.db.upsert_trigger(name, HOURLY)
        self._schedule({'name': name, 'cadence': HOURLY, 'week_day': None, 'hour': None})
        log_step(f"Trigger armed: {name} (every hour)", "INFO", component="TRIGGERS")

    def arm_weekly(self, name: str, week_day: int, hour: int) -> None:
        self._check_name(name)
        if not 0 <= week_day <= 6 or not 0 <= hour <= 23:
            raise ValueError(f"Invalid weekly schedule: week_day={week_day}, hour={hour}")
        self.db.upsert_trigger(name, WEEKLY, week_day, hour)
        self._schedule({'name': name, 'cadence': WEEKLY, 'week_day': week_day, 'hour': hour})
        log_step(f"Trigger armed: {name} (week day {week_day} at {hour}:00)", "INFO", component="TRIGGERS")

    def disarm(self, name: str) -> None:
        self.db.delete_trigger(name)
        self._unschedule(name)
        log_step(f"Trigger disarmed: {name}", "INFO", component="TRIGGERS")

    def disarm_all(self) -> None:
        for trigger in self.db.fetch_triggers():
            self._unschedule(trigger['name'])
        self.db.delete_all_triggers()
        log_step("All triggers disarmed", "INFO", component="TRIGGERS")

    def is_armed(self, name: str) -> bool:
        return any(trigger['name'] == name for trigger in self.db.fetch_triggers())

    def armed(self) -> List[Dict[str, Any]]:
        return self.db.fetch_triggers()

    # ========================================
    # SCHEDULER MIRRORING
    # ========================================

    def attach(self, scheduler, dispatch: Callable[[str], Any]) -> int:
        """Register a job for every persisted trigger; returns how many."""
        self.scheduler = scheduler
        self.dispatch = dispatch
        return self.sync()

    def sync(self) -> int:
        """
        Reconcile scheduler jobs with the table, picking up triggers armed or
        disarmed by another process (e.g. the CLI).
        """
        triggers = self.db.fetch_triggers()
        if self.scheduler is None:
            return len(triggers)

        wanted = {trigger['name'] for trigger in triggers}
        for job in self.scheduler.get_jobs():
            if job.id in TRIGGER_NAMES and job.id not in wanted:
                self._unschedule(job.id)
        for trigger in triggers:
            job = self.scheduler.get_job(trigger['name'])
            if job is None or str(job.trigger) != str(build_schedule(trigger)):
                self._schedule(trigger)
        return len(triggers)

    def _schedule(self, trigger: Dict[str, Any]) -> None:
        if self.scheduler is None:
            return
        self.scheduler.add_job(
            self.dispatch,
            trigger=build_schedule(trigger),
            args=[trigger['name']],
            id=trigger['name'],
            name=trigger['name'],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _unschedule(self, name: str) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(name)
        except JobLookupError:
            pass
