from __future__ import annotations
"""
Batch Planner
Groups pending locations into same-account batches of up to MAX_LOCS_IN_BATCH
for one reportInsights call, scanning in row order.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from gbp_harvest.config.harvest_constants import MAX_LOCS_IN_BATCH
from gbp_harvest.models import Location
from gbp_harvest.progress_store import ProgressStore
from gbp_harvest.utils.windows import Window, window_starting


@dataclass
class Batch:
    """Working batch: location name -> row snapshot, in row order."""
    account: Optional[str]
    locations: "OrderedDict[str, Location]" = field(default_factory=OrderedDict)
    next_index: int = 0

    def __len__(self) -> int:
        return len(self.locations)

    def __bool__(self) -> bool:
        return len(self.locations) > 0


class BatchPlanner:
    """
    Plans the work of one covering pass.

    coverage maps location id -> first day still needed (None when caught up);
    it is computed once per slice by resync() and advanced by the driver as
    batches complete.
    """

    def __init__(self, max_batch_size: int = MAX_LOCS_IN_BATCH):
        self.max_batch_size = max_batch_size

    @staticmethod
    def needs_window(location: Location, window: Window, coverage: Dict[int, Optional[date]]) -> bool:
        return coverage.get(location.id) == window.first_day

    def next_batch(
        self,
        locations: List[Location],
        start_index: int,
        window: Window,
        coverage: Dict[int, Optional[date]]
    ) -> Batch:
        """
        Scan forward from start_index and collect the next batch.

        Locations that are caught up, or whose coverage starts at a later
        window, are skipped. The first eligible location fixes the account;
        the scan stops at the first location of another account or once the
        batch is full.

        Returns:
            Batch with next_index pointing at the first location after the scan
            (len(locations) when the scan reached the end). An empty batch means
            nothing is left for this window.
        """
        index = start_index
        while index < len(locations) and not self.needs_window(locations[index], window, coverage):
            index += 1

        if index >= len(locations):
            return Batch(account=None, next_index=len(locations))

        account = locations[index].account
        batch = Batch(account=account)

        while index < len(locations) and len(batch) < self.max_batch_size:
            location = locations[index]
            if location.account != account:
                break
            if self.needs_window(location, window, coverage):
                batch.locations[location.name] = location
            index += 1

        batch.next_index = index
        return batch

    @staticmethod
    def resync(
        locations: List[Location],
        pass_start: date,
        boundary: date
    ) -> Dict[int, Optional[date]]:
        """Coverage start of every location, computed from its own stored marker."""
        return {
            loc.id: ProgressStore.coverage_start(loc, pass_start, boundary)
            for loc in locations
        }

    @staticmethod
    def resume_window(coverage: Dict[int, Optional[date]]) -> Optional[Window]:
        """
        Window the covering loop has to start from: the one of the
        least-progressed location. None when every location is caught up.
        """
        pending = [day for day in coverage.values() if day is not None]
        if not pending:
            return None
        return window_starting(min(pending))
