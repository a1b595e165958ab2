from __future__ import annotations
"""
GBP Insights Harvest - Trigger Worker

Long-running process firing the armed triggers (hourly retries, weekly steady
state). One slice at a time: a single-thread executor plus max_instances=1 per
job, so two passes never interleave on the same progress markers.

Can also fire a single trigger and exit, for use from an external crontab:

    python -m gbp_harvest.harvest_cron                       # worker
    python -m gbp_harvest.harvest_cron weekly-insights-retry  # one slice
"""

import sys
import time
from datetime import datetime
from typing import Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.blocking import BlockingScheduler

from gbp_harvest.db_persistence import close_db_pool, init_db_pool
from gbp_harvest.gbp_client import ApiError, AuthError, GBPClient
from gbp_harvest.harvest_driver import db_scope
from gbp_harvest.harvest_log import log_step
from gbp_harvest.settings import settings
from gbp_harvest.trigger_chain import HarvestContext, handle_trigger
from gbp_harvest.trigger_registry import TriggerRegistry

SYNC_JOB_ID = "registry-sync"


def log_cron(message: str, level: str = "INFO"):
    """Structured logging for the worker."""
    log_step(message, level, component="HARVEST-CRON")


def run_trigger(name: str, registry: Optional[TriggerRegistry] = None) -> bool:
    """
    Fire one trigger inside a bounded slice.

    Auth and transport failures end the slice; the trigger stays armed so the
    next firing resumes from the stored markers.

    Returns:
        True when the pass reached DONE in this slice
    """
    started = datetime.now()
    deadline = time.monotonic() + settings.SLICE_BUDGET_SECONDS

    with db_scope() as db:
        if registry is None:
            registry = TriggerRegistry(db)
        else:
            registry.db = db
        try:
            client = GBPClient(db)
            ctx = HarvestContext(db=db, client=client, registry=registry, deadline=deadline)
            done = handle_trigger(name, ctx)
        except AuthError as e:
            log_cron(f"{name}: authentication failed - {e}", "ERROR")
            return False
        except ApiError as e:
            log_cron(f"{name}: slice ended by API failure - {e}", "ERROR")
            return False

    elapsed = (datetime.now() - started).total_seconds()
    log_cron(f"{name}: {'DONE' if done else 'SUSPENDED'} after {elapsed:.0f}s", "SUCCESS" if done else "INFO")
    return done


def build_scheduler() -> BlockingScheduler:
    return BlockingScheduler(
        executors={'default': ThreadPoolExecutor(1)},
        job_defaults={'coalesce': True, 'max_instances': 1},
        timezone=settings.tz,
    )


def run_worker() -> None:
    """Serve the armed triggers until interrupted."""
    scheduler = build_scheduler()

    # The registry borrows a pool connection only for the duration of a call
    with db_scope() as db:
        registry = TriggerRegistry(db)
        count = registry.attach(scheduler, lambda name: run_trigger(name, registry))
    log_cron(f"Worker started with {count} armed trigger(s)")

    def sync_registry():
        with db_scope() as sync_db:
            registry.db = sync_db
            registry.sync()

    # Picks up triggers armed or disarmed from the CLI
    scheduler.add_job(sync_registry, 'interval', minutes=1, id=SYNC_JOB_ID,
                      replace_existing=True, max_instances=1, coalesce=True)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log_cron("Worker stopped", "WARNING")


def main():
    log_cron("Starting GBP insights harvest worker...")
    init_db_pool(settings.DATABASE_URL, settings.DB_POOL_MIN, settings.DB_POOL_MAX)

    try:
        if len(sys.argv) > 1:
            done = run_trigger(sys.argv[1])
            sys.exit(0 if done else 2)
        run_worker()
    except ValueError as e:
        log_cron(f"Fatal error: {e}", "ERROR")
        sys.exit(1)
    finally:
        close_db_pool()


if __name__ == "__main__":
    main()
