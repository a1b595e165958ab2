from __future__ import annotations
"""
GBP Insights Harvest - Pass Chain

A pass (yearly backfill or weekly steady state) moves through:

    INIT -> LISTING_REFRESH -> COVERING -> DONE
                   |               |
                   +--> SUSPENDED <+   (hourly retry trigger stays armed)

Every handler runs inside one execution slice. A SUSPENDED pass is resumed by
the hourly trigger of the phase it stopped in; all progress lives in the
database markers, never in memory.

Trigger -> handler:
    steady-state-weekly      initialize_weekly_download
    yearly-locations-retry   locations_with_retry(yearly=True)
    yearly-insights-retry    insights_with_retry(yearly=True)
    weekly-locations-retry   locations_with_retry(yearly=False)
    weekly-insights-retry    insights_with_retry(yearly=False)
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import partial
from typing import Any, Callable, Dict, Optional

from gbp_harvest.config.harvest_constants import (
    STEADY_STATE_WEEKLY_TRIGGER,
    WEEKLY_INSIGHTS_RETRY_TRIGGER,
    WEEKLY_LOCATIONS_RETRY_TRIGGER,
    YEARLY_INSIGHTS_RETRY_TRIGGER,
    YEARLY_LOCATIONS_RETRY_TRIGGER,
)
from gbp_harvest.harvest_driver import InsightsHarvester, read_retention_weeks
from gbp_harvest.harvest_log import audit, log_step, shorten_log
from gbp_harvest.insights_retention import trim_oldest_weeks
from gbp_harvest.locations_ingestor import LocationsIngestor
from gbp_harvest.progress_store import ProgressStore
from gbp_harvest.settings import settings
from gbp_harvest.trigger_registry import TriggerRegistry
from gbp_harvest.utils.windows import ConfigurationError


@dataclass
class HarvestContext:
    """Everything a handler needs for one slice"""
    db: Any
    client: Any
    registry: TriggerRegistry
    deadline: Optional[float] = None  # time.monotonic() cut-off of the slice
    today: Optional[date] = None
    now: Optional[datetime] = None

    def current_time(self) -> datetime:
        return self.now or datetime.now(settings.tz)


def _locations_trigger(yearly: bool) -> str:
    return YEARLY_LOCATIONS_RETRY_TRIGGER if yearly else WEEKLY_LOCATIONS_RETRY_TRIGGER


def _insights_trigger(yearly: bool) -> str:
    return YEARLY_INSIGHTS_RETRY_TRIGGER if yearly else WEEKLY_INSIGHTS_RETRY_TRIGGER


# ========================================
# INIT
# ========================================

def _retention_is_valid(ctx: HarvestContext) -> bool:
    try:
        read_retention_weeks(ctx.db)
    except ConfigurationError as e:
        audit(ctx.db, f"ERROR! {e} - aborting the job", "ERROR", component="CHAIN")
        return False
    return True


def initialize_yearly_download(ctx: HarvestContext) -> bool:
    """
    Start a full backfill from scratch over the configured retention.
    An invalid retention setting aborts before anything is cleared.
    """
    if not _retention_is_valid(ctx):
        return False

    ctx.registry.disarm_all()
    ctx.db.clear_insights()
    ctx.db.clear_listing_markers()
    ctx.db.clear_location_markers()
    audit(ctx.db, "Yearly download initialized - previous insights removed", component="CHAIN")
    return start_locations_retry(ctx, yearly=True)


def initialize_weekly_download(ctx: HarvestContext) -> bool:
    """Steady-state entry point, fired once a week."""
    shorten_log(ctx.db)
    audit(ctx.db, "Weekly download initialized", component="CHAIN")
    return start_locations_retry(ctx, yearly=False)


def reset_and_restart(ctx: HarvestContext, confirmed: bool) -> bool:
    """Drop every harvested row and restart the yearly backfill."""
    if not confirmed:
        log_step("Reset not confirmed - nothing changed", "WARNING", component="CHAIN")
        return False
    if not _retention_is_valid(ctx):
        return False
    ctx.db.clear_insights()
    ctx.db.clear_locations()
    audit(ctx.db, "Insights and locations removed - restarting the yearly download", "WARNING", component="CHAIN")
    return initialize_yearly_download(ctx)


# ========================================
# LISTING_REFRESH
# ========================================

def start_locations_retry(ctx: HarvestContext, yearly: bool) -> bool:
    ctx.db.clear_locations()
    ctx.db.clear_listing_markers()
    audit(ctx.db, "Locations cleaned up, ready to be repopulated.", component="CHAIN")

    ctx.registry.arm_hourly(_locations_trigger(yearly))
    return locations_with_retry(ctx, yearly)


def locations_with_retry(ctx: HarvestContext, yearly: bool) -> bool:
    """
    Refresh the location listing; on completion hand over to the insights
    phase. Returns True only when the whole pass reached DONE.
    """
    done = LocationsIngestor(ctx.db, ctx.client).refresh_locations(ctx.today)
    if not done:
        audit(ctx.db, "Locations update NOT completed - will retry in 1 hour", "WARNING", component="CHAIN")
        return False

    ctx.registry.disarm(_locations_trigger(yearly))
    return start_insights_retry(ctx, yearly)


# ========================================
# COVERING
# ========================================

def start_insights_retry(ctx: HarvestContext, yearly: bool) -> bool:
    ctx.registry.arm_hourly(_insights_trigger(yearly))
    return insights_with_retry(ctx, yearly)


def insights_with_retry(ctx: HarvestContext, yearly: bool) -> bool:
    """
    Run the covering loop for one slice. A configuration error aborts the pass
    and is left for the operator; the retry trigger stays armed.
    """
    try:
        done = InsightsHarvester(ctx.db, ctx.client).collect_insights(yearly, ctx.deadline)
        if done and not yearly:
            trim_oldest_weeks(ctx.db, read_retention_weeks(ctx.db))
    except ConfigurationError as e:
        audit(ctx.db, f"ERROR! {e} - aborting the job", "ERROR", component="CHAIN")
        return False

    if not done:
        return False

    if yearly:
        ctx.registry.disarm_all()
        arm_steady_state(ctx)
    else:
        ctx.registry.disarm(WEEKLY_INSIGHTS_RETRY_TRIGGER)

    audit(ctx.db, f"{'Yearly' if yearly else 'Weekly'} pass completed", "SUCCESS", component="CHAIN")
    return True


def arm_steady_state(ctx: HarvestContext) -> None:
    """
    Arm the weekly trigger on the weekday before the boundary, one hour
    earlier than now, so the next pass starts right as a new full week of
    data becomes available.
    """
    boundary = ProgressStore.harvest_boundary(ctx.db.fetch_configuration_rows())
    if boundary is None:
        boundary = ctx.current_time().date()
    week_day = (boundary - timedelta(days=1)).weekday()

    hour = ctx.current_time().hour
    if hour > 1:
        hour -= 1

    audit(ctx.db, "Initializing weekly trigger", component="CHAIN")
    ctx.registry.arm_weekly(STEADY_STATE_WEEKLY_TRIGGER, week_day, hour)


TRIGGER_HANDLERS: Dict[str, Callable[[HarvestContext], bool]] = {
    STEADY_STATE_WEEKLY_TRIGGER: initialize_weekly_download,
    YEARLY_LOCATIONS_RETRY_TRIGGER: partial(locations_with_retry, yearly=True),
    YEARLY_INSIGHTS_RETRY_TRIGGER: partial(insights_with_retry, yearly=True),
    WEEKLY_LOCATIONS_RETRY_TRIGGER: partial(locations_with_retry, yearly=False),
    WEEKLY_INSIGHTS_RETRY_TRIGGER: partial(insights_with_retry, yearly=False),
}


def handle_trigger(name: str, ctx: HarvestContext) -> bool:
    """Run the handler bound to a trigger name."""
    handler = TRIGGER_HANDLERS.get(name)
    if handler is None:
        raise ValueError(f"Unknown trigger: {name}")
    log_step(f"Trigger fired: {name}", "PROGRESS", component="CHAIN")
    return handler(ctx)
