"""
Insights Fetcher

Fetches one week of insights for one batch of locations with a
shrink-and-retry policy:

  - a page carrying 'error' fails the whole call
  - while attempts remain, the first location of the batch is dropped and the
    call is repeated after a linear backoff (attempt * base delay)
  - a batch emptied by shrinking is abandoned without another call
  - once MAX_BATCH_RETRY attempts are spent the remaining locations are given
    up for this window (covered with no data)

Dropped locations keep their marker and are picked up again by a later slice.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from gbp_harvest.batch_planner import Batch
from gbp_harvest.config.harvest_constants import INSIGHT_METRICS, MAX_BATCH_RETRY
from gbp_harvest.harvest_log import audit
from gbp_harvest.models import InsightRecord, Location
from gbp_harvest.progress_store import plain_marker, terminal_marker
from gbp_harvest.settings import settings
from gbp_harvest.utils.windows import Window, reaches_boundary


@dataclass
class FetchResult:
    records: List[InsightRecord] = field(default_factory=list)
    covered: List[Location] = field(default_factory=list)
    dropped: List[Location] = field(default_factory=list)
    exhausted: bool = False
    attempts: int = 0


def target_marker(window: Window, boundary: date) -> str:
    """
    Marker for locations covered through this window: the window end while
    full weeks remain before the boundary, otherwise the terminal boundary.
    """
    if reaches_boundary(window, boundary):
        return terminal_marker(boundary)
    return plain_marker(window.last_day)


def location_key(full_location_name: str) -> str:
    """accounts/1/locations/2 -> locations/2"""
    _, _, location_id = full_location_name.partition("/locations/")
    return f"locations/{location_id}" if location_id else full_location_name


def _metric_value(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def parse_metric_values(metric_values: Optional[List[Dict[str, Any]]]) -> Dict[str, Optional[int]]:
    metrics = {column: None for column in INSIGHT_METRICS.values()}
    for metric_value in metric_values or []:
        column = INSIGHT_METRICS.get(metric_value.get('metric'))
        if column:
            metrics[column] = _metric_value(metric_value.get('totalValue', {}).get('value'))
    return metrics


class InsightsFetcher:
    """Fetch-retry engine for reportInsights"""

    def __init__(self, client, db, max_attempts: int = MAX_BATCH_RETRY,
                 base_delay_seconds: Optional[float] = None):
        self.client = client
        self.db = db
        self.max_attempts = max_attempts
        self.base_delay_seconds = (
            settings.RETRY_BASE_DELAY_SECONDS if base_delay_seconds is None else base_delay_seconds
        )

    def fetch(self, window: Window, batch: Batch) -> FetchResult:
        """
        Retrieve insights for every location in the batch for one window.

        The batch mapping is shrunk in place while retrying, so afterwards it
        holds exactly the locations the final call covered.
        """
        result = FetchResult()
        attempt = 1

        while True:
            if not batch.locations:
                audit(self.db, f"Ignored retry #{attempt} due to no locations left", "WARNING")
                return result

            result.attempts = attempt
            pages = self.client.report_insights(batch.account, list(batch.locations.keys()), window)
            error = next((page['error'] for page in pages if page.get('error')), None)

            if error is None:
                result.records = self._map_records(pages, window, batch)
                result.covered = list(batch.locations.values())
                return result

            audit(self.db, str(error.get('message', error)), "ERROR")

            if attempt >= self.max_attempts:
                audit(
                    self.db,
                    f"Giving up on {len(batch)} locations for {window} after {attempt} attempts",
                    "WARNING"
                )
                result.covered = list(batch.locations.values())
                result.exhausted = True
                return result

            _, dropped = batch.locations.popitem(last=False)
            result.dropped.append(dropped)
            if not batch.locations:
                audit(self.db, f"Retry abandoned for {window}: every location dropped", "WARNING")
                return result

            attempt += 1
            audit(
                self.db,
                f"Retry #{attempt} with {len(batch)} locations, starting with {next(iter(batch.locations))}",
                "PROGRESS"
            )
            time.sleep(attempt * self.base_delay_seconds)

    def _map_records(self, pages: List[Dict[str, Any]], window: Window, batch: Batch) -> List[InsightRecord]:
        """Map every locationMetrics entry to an InsightRecord; unknown keys are skipped."""
        records = []
        for page in pages:
            for entry in page.get('locationMetrics', []) or []:
                location = batch.locations.get(location_key(entry.get('locationName', '')))
                if location is None:
                    continue
                records.append(InsightRecord(
                    account=batch.account,
                    location_id=location.name,
                    location_name=location.location_name,
                    store_code=location.store_code,
                    region=location.region,
                    status=location.status,
                    category_name=location.category_name,
                    time_zone=entry.get('timeZone'),
                    start_week_date=window.first_day,
                    end_week_date=window.last_day,
                    metrics=parse_metric_values(entry.get('metricValues')),
                ))
        return records
