from __future__ import annotations
"""
GBP Insights Harvest - Resume Driver

Runs the covering loop of one pass (yearly backfill or weekly steady state)
inside one bounded execution slice.

CHECKPOINT DESIGN:
  Each unit of work (one batch x one window) appends its insight rows and
  moves the batch's markers in one transaction right after the remote call.
  Nothing else is kept between slices: a slice killed at any point resumes
  from the markers without storing a window twice.
"""

import time
from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional

from gbp_harvest.batch_planner import BatchPlanner
from gbp_harvest.config.harvest_constants import (
    DEFAULT_RETENTION_PERIOD_IN_WEEKS,
    RETENTION_WEEKS_SETTING,
)
from gbp_harvest.db_persistence import DatabasePersistence
from gbp_harvest.harvest_log import audit, log_step
from gbp_harvest.insights_fetcher import InsightsFetcher, target_marker
from gbp_harvest.models import Location
from gbp_harvest.progress_store import ProgressStore, is_terminal, terminal_marker
from gbp_harvest.utils.windows import (
    Window,
    iter_windows,
    next_window,
    parse_retention_weeks,
)


@contextmanager
def db_scope():
    """
    Context manager: borrow a pool connection, yield DatabasePersistence,
    return the connection when the with-block exits (even on exception).

    Usage:
        with db_scope() as db:
            db.some_method(...)
        # connection is now back in the pool
    """
    db = DatabasePersistence()
    db.connect()
    try:
        yield db
    finally:
        db.disconnect()


def read_retention_weeks(db) -> int:
    """
    Retention length configured by the operator.

    Raises:
        ConfigurationError: when the stored value is not a positive integer
    """
    raw = db.fetch_setting(RETENTION_WEEKS_SETTING)
    if raw is None:
        return DEFAULT_RETENTION_PERIOD_IN_WEEKS
    return parse_retention_weeks(raw)


class InsightsHarvester:
    """Drives Batch Planner + Insights Fetcher over the weekly windows of a pass"""

    def __init__(self, db, client, fetcher: Optional[InsightsFetcher] = None,
                 planner: Optional[BatchPlanner] = None):
        self.db = db
        self.client = client
        self.progress = ProgressStore(db)
        self.fetcher = fetcher or InsightsFetcher(client, db)
        self.planner = planner or BatchPlanner()

    def collect_insights(self, yearly: bool, deadline: Optional[float] = None) -> bool:
        """
        Cover every pending location up to the boundary.

        Args:
            yearly: True for the backfill pass (retention weeks), False for the
                    weekly pass (one week)
            deadline: time.monotonic() value after which the slice stops taking
                      new units of work

        Returns:
            True when every location carries a terminal marker (DONE), False
            when the slice ended first (SUSPENDED)

        Raises:
            ConfigurationError: invalid retention; raised before any write
        """
        num_weeks = read_retention_weeks(self.db) if yearly else 1
        pass_name = "yearly" if yearly else "weekly"

        boundary = ProgressStore.harvest_boundary(self.db.fetch_configuration_rows())
        if boundary is None:
            audit(self.db, "No listing date found in the configuration - nothing to harvest yet", "WARNING")
            return False

        locations = self.db.fetch_locations()
        if ProgressStore.all_terminal(locations):
            audit(self.db, "All insights had already been processed - job completed!", "SUCCESS")
            return True
        if not locations:
            audit(self.db, "No locations to process - nothing to harvest", "WARNING")
            return False

        pass_start = next_window(boundary, num_weeks)
        coverage = self._resync(locations, pass_start, boundary, yearly)
        window = self.planner.resume_window(coverage)

        log_step(
            f"Starting {pass_name} pass: {len(locations)} locations, boundary {boundary}, "
            f"{num_weeks} week(s) of retention",
            "INFO"
        )

        windows = iter_windows(boundary, num_weeks, start=window) if window is not None else ()
        for window in windows:
            audit(self.db, f"collect insights for startDate: {window.first_day.isoformat()}", "PROGRESS")

            if not self._cover_window(locations, window, boundary, coverage, deadline):
                audit(self.db, "Slice budget spent - insights update will resume on next trigger", "WARNING")
                return False

            audit(self.db, f"All insights have been collected for all locations for start date {window.first_day.isoformat()}")

        if ProgressStore.all_terminal(self.db.fetch_locations()):
            audit(self.db, "Insights update completed successfully - job completed!", "SUCCESS")
            return True

        audit(self.db, "Insights update NOT completed - job will resume in 1 hour", "WARNING")
        return False

    def _resync(self, locations: List[Location], pass_start: Window, boundary: date,
                yearly: bool) -> Dict[int, Optional[date]]:
        """
        Recompute every location's coverage from its stored marker, so a
        previously interrupted slice resumes with the least-progressed
        locations and nothing is fetched twice.
        """
        coverage = self.planner.resync(locations, pass_start.first_day, boundary)

        # Plain markers that already reach the boundary only need promoting
        caught_up = [
            loc for loc in locations
            if coverage[loc.id] is None and not is_terminal(self.progress.get(loc))
        ]
        if caught_up:
            self.progress.set(caught_up, terminal_marker(boundary))

        if not yearly:
            diverging = [
                loc for loc in locations
                if coverage[loc.id] is not None and coverage[loc.id] != pass_start.first_day
            ]
            if diverging:
                audit(
                    self.db,
                    f"{len(diverging)} locations out of sync with the weekly window - using catch-up path",
                    "WARNING"
                )
        return coverage

    def _cover_window(self, locations: List[Location], window: Window, boundary: date,
                      coverage: Dict[int, Optional[date]], deadline: Optional[float]) -> bool:
        """Run every batch of one window; False when the deadline cut the slice short."""
        index = 0
        while index < len(locations):
            if deadline is not None and time.monotonic() >= deadline:
                return False

            batch = self.planner.next_batch(locations, index, window, coverage)
            index = batch.next_index
            if not batch:
                break

            log_step(f"Batch of {len(batch)} locations for {batch.account} ({window})", "PROGRESS")
            result = self.fetcher.fetch(window, batch)

            if result.covered:
                marker = target_marker(window, boundary)
                self.progress.commit_covered(result.covered, marker, result.records)
                next_start = None if self.progress.all_terminal(result.covered) else window.last_day
                for loc in result.covered:
                    coverage[loc.id] = next_start
        return True
