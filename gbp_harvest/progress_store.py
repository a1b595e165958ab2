from __future__ import annotations
"""
Progress markers for locations (insights coverage) and configuration rows
(location listing refresh).

Marker format:
    ''            never processed
    yyyy-MM-dd    covered through this date, more weeks pending
    d-yyyy-MM-dd  covered through this date and caught up to the boundary
"""

from datetime import date, datetime
from typing import Iterable, List, Optional

from gbp_harvest.config.harvest_constants import (
    MARKER_DATE_FORMAT,
    PLAIN_MARKER_REGEX,
    TERMINAL_MARKER_PREFIX,
    TERMINAL_MARKER_REGEX,
)
from gbp_harvest.models import ConfigurationRow, InsightRecord, Location
from gbp_harvest.utils.windows import normalize_day, snap_to_grid


def is_terminal(marker: Optional[str]) -> bool:
    return bool(marker) and TERMINAL_MARKER_REGEX.match(str(marker).strip()) is not None


def plain_marker(day: date) -> str:
    return normalize_day(day).strftime(MARKER_DATE_FORMAT)


def terminal_marker(day: date) -> str:
    return f"{TERMINAL_MARKER_PREFIX}{plain_marker(day)}"


def marker_date(marker: Optional[str]) -> Optional[date]:
    """Date carried by a marker, or None for empty/unreadable markers."""
    if not marker:
        return None
    text = str(marker).strip()
    if is_terminal(text):
        text = text[len(TERMINAL_MARKER_PREFIX):]
    if not PLAIN_MARKER_REGEX.match(text):
        return None
    try:
        return datetime.strptime(text, MARKER_DATE_FORMAT).date()
    except ValueError:
        return None


class ProgressStore:
    """Reads and writes progress markers through the tabular store"""

    def __init__(self, db):
        self.db = db

    # ========================================
    # LOCATION MARKERS (insights coverage)
    # ========================================

    @staticmethod
    def get(location: Location) -> str:
        return location.last_insights_update or ""

    def set(self, locations: Iterable[Location], marker: str) -> None:
        """
        Persist a marker for every given location, committed immediately.
        The in-memory snapshots are updated too so the running pass sees it.
        """
        locations = list(locations)
        if not locations:
            return
        self.db.update_location_markers([loc.id for loc in locations], marker)
        for loc in locations:
            loc.last_insights_update = marker

    def commit_covered(self, locations: Iterable[Location], marker: str,
                       records: List[InsightRecord]) -> None:
        """Store a batch's rows and move its markers in one transaction."""
        locations = list(locations)
        if not locations:
            return
        self.db.commit_unit(records, [loc.id for loc in locations], marker)
        for loc in locations:
            loc.last_insights_update = marker

    @staticmethod
    def all_terminal(locations: List[Location]) -> bool:
        """An empty list is never complete (the table may not be populated yet)."""
        return len(locations) > 0 and all(is_terminal(ProgressStore.get(loc)) for loc in locations)

    @staticmethod
    def coverage_start(location: Location, pass_start: date, boundary: date) -> Optional[date]:
        """
        First day this location still needs within the current pass, aligned to
        the window grid; None when it is already caught up.
        """
        marker = ProgressStore.get(location)
        if is_terminal(marker):
            return None
        covered_through = marker_date(marker)
        if covered_through is None or covered_through < pass_start:
            return pass_start
        if covered_through >= boundary:
            return None
        return snap_to_grid(covered_through, boundary)

    # ========================================
    # LISTING MARKERS (configuration rows)
    # ========================================

    @staticmethod
    def listing_pending(rows: List[ConfigurationRow]) -> List[ConfigurationRow]:
        return [row for row in rows if not is_terminal(row.last_location_update)]

    @staticmethod
    def all_listed(rows: List[ConfigurationRow]) -> bool:
        return all(is_terminal(row.last_location_update) for row in rows)

    def mark_listed(self, row: ConfigurationRow, listed_through: date) -> str:
        marker = terminal_marker(listed_through)
        self.db.update_listing_marker(row.id, marker)
        row.last_location_update = marker
        return marker

    @staticmethod
    def harvest_boundary(rows: List[ConfigurationRow]) -> Optional[date]:
        """
        The boundary ('today') of the whole pass: the listing date of the first
        configuration row. Frozen for the pass so a multi-day job never drifts.
        """
        if not rows:
            return None
        return marker_date(rows[0].last_location_update)
