"""
Canonical constants for the GBP insights harvest.
Centralizing these values keeps the windowing, batching and retry logic
consistent across the driver, the planner and the fetcher.
"""

import re

# Windowing
WINDOW_DAYS = 7  # Every insights window covers exactly one week
DEFAULT_RETENTION_PERIOD_IN_WEEKS = 52

# GBP data can lag a few days, so listings anchor the boundary one week back
GBP_LAG_DAYS = 7

# Batching & Retry
MAX_LOCS_IN_BATCH = 5  # Locations per reportInsights call (same account only)
MAX_BATCH_RETRY = 10

# Progress markers
TERMINAL_MARKER_PREFIX = "d-"
MARKER_DATE_FORMAT = "%Y-%m-%d"
TERMINAL_MARKER_REGEX = re.compile(r"^d-[0-9]{4}-[0-9]{2}-[0-9]{2}$")
PLAIN_MARKER_REGEX = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")

# Audit log
LOG_MAX_ROWS = 1500

# Listing filters
NO_STATUS_FILTER = "-none-"
STATUS_FILTER_VALUES = [
    NO_STATUS_FILTER,
    "OPEN_FOR_BUSINESS_UNSPECIFIED",
    "OPEN",
    "CLOSED_PERMANENTLY",
    "CLOSED_TEMPORARILY",
]

# Settings keys (harvest_settings table)
RETENTION_WEEKS_SETTING = "retention_weeks"

# Metric columns, in the order they are stored. Keys are the reportInsights
# metric enum names, values the location_insights column names.
INSIGHT_METRICS = {
    "QUERIES_DIRECT": "queries_direct",
    "QUERIES_INDIRECT": "queries_indirect",
    "QUERIES_CHAIN": "queries_chain",
    "VIEWS_MAPS": "views_maps",
    "VIEWS_SEARCH": "views_search",
    "ACTIONS_WEBSITE": "actions_website",
    "ACTIONS_PHONE": "actions_phone",
    "ACTIONS_DRIVING_DIRECTIONS": "actions_driving_directions",
    "PHOTOS_VIEWS_MERCHANT": "photos_views_merchant",
    "PHOTOS_VIEWS_CUSTOMERS": "photos_views_customers",
    "PHOTOS_COUNT_MERCHANT": "photos_count_merchant",
    "PHOTOS_COUNT_CUSTOMERS": "photos_count_customers",
    "LOCAL_POST_VIEWS_SEARCH": "local_post_views_search",
    "LOCAL_POST_ACTIONS_CALL_TO_ACTION": "local_post_actions_call_to_action",
}

# Static schema of location_insights (column name -> position)
INSIGHT_COLUMNS = (
    ["account", "location_id", "location_name", "store_code", "region",
     "status", "category_name", "time_zone"]
    + list(INSIGHT_METRICS.values())
    + ["start_week_date", "end_week_date"]
)
INSIGHT_FIELDS = {name: index for index, name in enumerate(INSIGHT_COLUMNS)}

# Trigger names (job ids of the scheduler)
STEADY_STATE_WEEKLY_TRIGGER = "steady-state-weekly"
YEARLY_LOCATIONS_RETRY_TRIGGER = "yearly-locations-retry"
YEARLY_INSIGHTS_RETRY_TRIGGER = "yearly-insights-retry"
WEEKLY_LOCATIONS_RETRY_TRIGGER = "weekly-locations-retry"
WEEKLY_INSIGHTS_RETRY_TRIGGER = "weekly-insights-retry"

TRIGGER_NAMES = (
    YEARLY_LOCATIONS_RETRY_TRIGGER,
    YEARLY_INSIGHTS_RETRY_TRIGGER,
    WEEKLY_LOCATIONS_RETRY_TRIGGER,
    WEEKLY_INSIGHTS_RETRY_TRIGGER,
    STEADY_STATE_WEEKLY_TRIGGER,
)

# Remote endpoints
ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
LOCATIONS_URL = "https://mybusinessbusinessinformation.googleapis.com/v1/{account}/locations"
LOCATIONS_READ_MASK = "name,storeCode,title,categories,storefrontAddress,openInfo"
REPORT_INSIGHTS_URL = "https://mybusiness.googleapis.com/v4/{account}/locations:reportInsights"
GBP_SCOPES = ["https://www.googleapis.com/auth/business.manage"]
