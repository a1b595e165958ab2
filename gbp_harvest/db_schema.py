"""
DDL for the harvest tables.
Row positions are serial ids: ORDER BY id reproduces the listing order the
batch planner relies on.
"""

from gbp_harvest.config.harvest_constants import INSIGHT_METRICS

_METRIC_COLUMNS = ",\n    ".join(f"{column} BIGINT" for column in INSIGHT_METRICS.values())

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS harvest_settings (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS gbp_tokens (
    id INTEGER PRIMARY KEY DEFAULT 1,
    access_token TEXT NOT NULL,
    refresh_token TEXT,
    token_uri TEXT NOT NULL,
    client_id TEXT NOT NULL,
    client_secret TEXT,
    scopes TEXT[],
    expiry TIMESTAMPTZ,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (id = 1)
);

CREATE TABLE IF NOT EXISTS gbp_accounts (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    account_name TEXT,
    type TEXT,
    role TEXT,
    permission_level TEXT
);

CREATE TABLE IF NOT EXISTS harvest_configuration (
    id SERIAL PRIMARY KEY,
    account_name TEXT,
    account_number TEXT,
    filter_status TEXT,
    filter_region TEXT,
    last_location_update TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS gbp_locations (
    id SERIAL PRIMARY KEY,
    config_id INTEGER,
    account TEXT NOT NULL,
    name TEXT NOT NULL,
    location_name TEXT,
    store_code TEXT,
    status TEXT,
    region TEXT,
    category_name TEXT,
    last_insights_update TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS location_insights (
    id BIGSERIAL PRIMARY KEY,
    account TEXT NOT NULL,
    location_id TEXT NOT NULL,
    location_name TEXT,
    store_code TEXT,
    region TEXT,
    status TEXT,
    category_name TEXT,
    time_zone TEXT,
    {_METRIC_COLUMNS},
    start_week_date DATE NOT NULL,
    end_week_date DATE NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_location_insights_start_week
    ON location_insights (start_week_date);

CREATE TABLE IF NOT EXISTS harvest_log (
    id BIGSERIAL PRIMARY KEY,
    logged_at TIMESTAMPTZ NOT NULL,
    message TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS harvest_triggers (
    name TEXT PRIMARY KEY,
    cadence TEXT NOT NULL CHECK (cadence IN ('hourly', 'weekly')),
    week_day SMALLINT,
    hour SMALLINT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""
