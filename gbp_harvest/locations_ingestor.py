"""
Locations Ingestor

Account collection, account configuration and the location listing refresh
that precedes every insights pass.

API Cost: one paged listing call per configured account (per refresh)
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from gbp_harvest.config.harvest_constants import (
    GBP_LAG_DAYS,
    NO_STATUS_FILTER,
    RETENTION_WEEKS_SETTING,
    STATUS_FILTER_VALUES,
)
from gbp_harvest.harvest_log import audit, shorten_log
from gbp_harvest.models import ConfigurationRow
from gbp_harvest.progress_store import ProgressStore, terminal_marker
from gbp_harvest.settings import settings
from gbp_harvest.utils.windows import ConfigurationError, parse_retention_weeks


def listing_date(today: Optional[date] = None) -> date:
    """
    Date stamped on a completed listing. GBP data can lag a few days, so the
    harvest boundary is set one week back to avoid partial weeks.
    """
    today = today or datetime.now(settings.tz).date()
    return today - timedelta(days=GBP_LAG_DAYS)


def location_row(account_number: str, loc: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one Business Information location into a gbp_locations row"""
    address = loc.get('storefrontAddress') or {}
    open_info = loc.get('openInfo') or {}
    primary_category = (loc.get('categories') or {}).get('primaryCategory') or {}
    return {
        'account': account_number,
        'name': loc['name'],
        'location_name': loc.get('title'),
        'store_code': loc.get('storeCode'),
        'status': open_info.get('status', 'N/A'),
        'region': address.get('regionCode', 'N/A'),
        'category_name': primary_category.get('displayName', 'N/A'),
    }


class LocationsIngestor:
    """Handles the listing refresh of every configured account"""

    def __init__(self, db, client):
        self.db = db
        self.client = client
        self.progress = ProgressStore(db)

    def refresh_locations(self, today: Optional[date] = None) -> bool:
        """
        List the locations of every configuration row that has not been listed
        yet in this pass.

        Returns:
            True when every configuration row carries a listing marker
        """
        listed_through = listing_date(today)
        marker = terminal_marker(listed_through)
        audit(self.db, "Locations and insights update started.", component="LOCATIONS")

        rows = self.db.fetch_configuration_rows()
        if not rows:
            audit(self.db, "No account configured - nothing to list", "WARNING", component="LOCATIONS")

        for row in self.progress.listing_pending(rows):
            if not row.account_number:
                audit(
                    self.db,
                    f"Configuration row {row.id} has no account - skipped",
                    "WARNING", component="LOCATIONS"
                )
                self.progress.mark_listed(row, listed_through)
                continue

            pages = self.client.fetch_locations(row.account_number, row.filter_status, row.filter_region)
            loc_rows = []
            for page in pages:
                if page.get('error'):
                    audit(
                        self.db,
                        f"Locations listing error for \"{row.account_name}\": {page['error'].get('message')}",
                        "ERROR", component="LOCATIONS"
                    )
                    break
                for loc in page.get('locations', []) or []:
                    if loc:
                        loc_rows.append(location_row(row.account_number, loc))
            else:
                self.db.replace_config_locations(row.id, loc_rows, marker)
                row.last_location_update = marker
                audit(
                    self.db,
                    f"Total locations for account \"{row.account_name}\": {len(loc_rows)}",
                    component="LOCATIONS"
                )

        audit(
            self.db,
            "Locations list update completed - now looping through locations for insights",
            component="LOCATIONS"
        )
        return self.progress.all_listed(self.db.fetch_configuration_rows())


def collect_accounts(db, client) -> int:
    """
    Refresh the accounts table. Clears the configuration, since account numbers
    the operator picked may no longer exist.
    """
    db.clear_configuration()
    shorten_log(db)
    audit(db, "Accounts list update started.", component="ACCOUNTS")

    accounts = client.fetch_accounts()
    count = db.replace_accounts(accounts)

    audit(db, f"Accounts update completed ({count} total accounts).", "SUCCESS", component="ACCOUNTS")
    return count


def add_configuration(
    db,
    account_name: str,
    filter_status: Optional[str] = None,
    filter_region: Optional[str] = None
) -> ConfigurationRow:
    """
    Configure one account for harvesting, resolving its account number from
    the accounts table. One row per region when several regions are wanted.

    Raises:
        ConfigurationError: unknown account or unsupported status filter
    """
    filter_status = filter_status or NO_STATUS_FILTER
    if filter_status not in STATUS_FILTER_VALUES:
        raise ConfigurationError(
            f"Unsupported status filter '{filter_status}'. Allowed: {', '.join(STATUS_FILTER_VALUES)}"
        )

    account = db.find_account_by_display_name(account_name)
    if not account:
        raise ConfigurationError(
            f"Account '{account_name}' not found. Run collect-accounts first."
        )

    region = filter_region.strip().upper() if filter_region else None
    config_id = db.insert_configuration(account_name, account['name'], filter_status, region)
    return ConfigurationRow(
        id=config_id,
        account_name=account_name,
        account_number=account['name'],
        filter_status=filter_status,
        filter_region=region,
    )


def set_retention_weeks(db, value: Any) -> int:
    """Validate and store the retention length (weeks)."""
    weeks = parse_retention_weeks(value)
    db.upsert_setting(RETENTION_WEEKS_SETTING, str(weeks))
    return weeks
