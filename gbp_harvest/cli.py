"""
GBP Insights Harvest - Operator CLI

Usage:
    python -m gbp_harvest.cli init-db
    python -m gbp_harvest.cli import-token authorized_user.json
    python -m gbp_harvest.cli collect-accounts
    python -m gbp_harvest.cli configure "My Brand" --status OPEN --region IT
    python -m gbp_harvest.cli set-retention 52
    python -m gbp_harvest.cli start
    python -m gbp_harvest.cli reset --yes
    python -m gbp_harvest.cli run-trigger yearly-insights-retry
    python -m gbp_harvest.cli worker
    python -m gbp_harvest.cli status
"""
from __future__ import annotations

import argparse
import sys
import time

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from gbp_harvest import harvest_cron
from gbp_harvest.auth.token_model import GBPAuthToken
from gbp_harvest.config.harvest_constants import GBP_SCOPES, STATUS_FILTER_VALUES, TRIGGER_NAMES
from gbp_harvest.db_persistence import DatabasePersistence, close_db_pool, init_db_pool
from gbp_harvest.gbp_client import ApiError, AuthError, GBPClient
from gbp_harvest.harvest_driver import read_retention_weeks
from gbp_harvest.locations_ingestor import add_configuration, collect_accounts, set_retention_weeks
from gbp_harvest.progress_store import ProgressStore, is_terminal
from gbp_harvest.settings import settings
from gbp_harvest.trigger_chain import HarvestContext, initialize_yearly_download, reset_and_restart
from gbp_harvest.trigger_registry import TriggerRegistry
from gbp_harvest.utils.windows import ConfigurationError


def log(msg: str) -> None:
    print(f"[HARVEST-CLI] {msg}")


def _context(db: DatabasePersistence) -> HarvestContext:
    return HarvestContext(
        db=db,
        client=GBPClient(db),
        registry=TriggerRegistry(db),
        deadline=time.monotonic() + settings.SLICE_BUDGET_SECONDS,
    )


# ========================================
# COMMANDS
# ========================================

def cmd_init_db(db: DatabasePersistence, args) -> int:
    db.ensure_schema()
    log("✅ Schema ready")
    return 0


def cmd_import_token(db: DatabasePersistence, args) -> int:
    """Store an authorized-user credentials file as the harvesting identity."""
    credentials = Credentials.from_authorized_user_file(args.path, GBP_SCOPES)
    if not credentials.token:
        credentials.refresh(Request())

    db.upsert_gbp_token(GBPAuthToken.from_credentials(credentials, GBP_SCOPES))
    log("✅ Token stored")
    return 0


def cmd_collect_accounts(db: DatabasePersistence, args) -> int:
    count = collect_accounts(db, GBPClient(db))
    log(f"✅ {count} account(s) collected - configuration cleared, run 'configure' next")
    return 0


def cmd_configure(db: DatabasePersistence, args) -> int:
    row = add_configuration(db, args.account_name, args.status, args.region)
    log(f"✅ Configured {row.account_name} ({row.account_number}) status={row.filter_status} region={row.filter_region or '-'}")
    return 0


def cmd_set_retention(db: DatabasePersistence, args) -> int:
    weeks = set_retention_weeks(db, args.weeks)
    log(f"✅ Retention set to {weeks} week(s)")
    return 0


def cmd_start(db: DatabasePersistence, args) -> int:
    done = initialize_yearly_download(_context(db))
    log("✅ Yearly download completed" if done else "⏳ Yearly download in progress - the worker resumes it hourly")
    return 0


def cmd_reset(db: DatabasePersistence, args) -> int:
    if not args.yes:
        log("Refusing to reset without --yes: every harvested insight would be deleted")
        return 1
    done = reset_and_restart(_context(db), confirmed=True)
    log("✅ Yearly download completed" if done else "⏳ Yearly download restarted - the worker resumes it hourly")
    return 0


def cmd_status(db: DatabasePersistence, args) -> int:
    rows = db.fetch_configuration_rows()
    locations = db.fetch_locations()
    done = sum(1 for loc in locations if is_terminal(loc.last_insights_update))

    log("=" * 60)
    log(f"Retention:      {read_retention_weeks(db)} week(s)")
    log(f"Boundary:       {ProgressStore.harvest_boundary(rows) or '-'}")
    log(f"Configuration:  {len(rows)} row(s), {len(ProgressStore.listing_pending(rows))} pending listing")
    for row in rows:
        log(f"  {row.account_name} ({row.account_number or '-'}) status={row.filter_status} "
            f"region={row.filter_region or '-'} listed={row.last_location_update or '-'}")
    log(f"Locations:      {done}/{len(locations)} caught up")
    log(f"Insight weeks:  {len(db.fetch_insight_week_starts())}")

    triggers = db.fetch_triggers()
    log(f"Triggers:       {len(triggers)} armed")
    for trigger in triggers:
        when = "every hour" if trigger['cadence'] == 'hourly' else f"week day {trigger['week_day']} at {trigger['hour']}:00"
        log(f"  {trigger['name']} ({when})")

    log("Recent log:")
    for entry in reversed(db.fetch_recent_log(args.log_lines)):
        log(f"  {entry['logged_at']}  {entry['message']}")
    log("=" * 60)
    return 0


COMMANDS = {
    'init-db': cmd_init_db,
    'import-token': cmd_import_token,
    'collect-accounts': cmd_collect_accounts,
    'configure': cmd_configure,
    'set-retention': cmd_set_retention,
    'start': cmd_start,
    'reset': cmd_reset,
    'status': cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Google Business Profile insights harvester.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the harvest tables.")
    token = sub.add_parser("import-token", help="Store an authorized-user credentials JSON file.")
    token.add_argument("path")
    sub.add_parser("collect-accounts", help="Refresh the accounts list (clears the configuration).")

    configure = sub.add_parser("configure", help="Add an account to the harvest.")
    configure.add_argument("account_name", help="Account display name, as collected.")
    configure.add_argument("--status", choices=STATUS_FILTER_VALUES, default=None)
    configure.add_argument("--region", default=None, help="Region code, e.g. IT")

    retention = sub.add_parser("set-retention", help="Weeks of insights to keep.")
    retention.add_argument("weeks")

    sub.add_parser("start", help="Start the yearly download from scratch.")
    reset = sub.add_parser("reset", help="Delete insights and locations, then restart.")
    reset.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    run = sub.add_parser("run-trigger", help="Run one slice of a trigger now.")
    run.add_argument("name", choices=TRIGGER_NAMES)
    sub.add_parser("worker", help="Serve armed triggers until interrupted.")

    status = sub.add_parser("status", help="Show progress, triggers and recent log.")
    status.add_argument("--log-lines", type=int, default=20)
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)

    init_db_pool(settings.DATABASE_URL, settings.DB_POOL_MIN, settings.DB_POOL_MAX)
    db = None
    exit_code = 0
    try:
        if args.command == 'run-trigger':
            exit_code = 0 if harvest_cron.run_trigger(args.name) else 2
        elif args.command == 'worker':
            harvest_cron.run_worker()
        else:
            db = DatabasePersistence()
            db.connect()
            exit_code = COMMANDS[args.command](db, args)
    except ConfigurationError as e:
        log(f"❌ Configuration error: {e}")
        exit_code = 1
    except (AuthError, ApiError, RuntimeError) as e:
        log(f"❌ Fatal error: {e}")
        exit_code = 1
    finally:
        if db:
            db.disconnect()
        close_db_pool()

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
