"""
Database Persistence Layer
Tabular store for the harvest: accounts, configuration, locations, insights,
audit log, triggers and the OAuth token.

Every write commits immediately. The harvest relies on this: a slice can be
killed at any time and the next one resumes from whatever was committed.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import RealDictCursor, execute_batch

from gbp_harvest.auth.token_model import GBPAuthToken
from gbp_harvest.config.harvest_constants import INSIGHT_COLUMNS
from gbp_harvest.db_schema import SCHEMA_SQL
from gbp_harvest.models import ConfigurationRow, InsightRecord, Location

_db_pool: Optional[pg_pool.SimpleConnectionPool] = None


def init_db_pool(database_url: str, minconn: int = 1, maxconn: int = 3) -> None:
    """Create the process-wide connection pool (idempotent)."""
    global _db_pool
    if _db_pool is not None:
        return
    try:
        _db_pool = pg_pool.SimpleConnectionPool(minconn, maxconn, database_url)
        print(f"[DB] Connection pool ready (min={minconn}, max={maxconn})")
    except psycopg2.Error as e:
        print(f"[DB] ✗ Pool initialization failed: {e}")
        raise RuntimeError(f"Database pool initialization failed: {e}") from e


def close_db_pool() -> None:
    global _db_pool
    if _db_pool is not None:
        _db_pool.closeall()
        _db_pool = None
        print("[DB] Connection pool closed")


class DatabasePersistence:
    """Handles database operations for the harvest tables"""

    def __init__(self):
        self.connection = None
        self.cursor = None

    def connect(self) -> None:
        """
        Borrow a connection from the pool
        Raises explicit error if the pool is missing or exhausted
        """
        if _db_pool is None:
            raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
        try:
            self.connection = _db_pool.getconn()
            self.cursor = self.connection.cursor(cursor_factory=RealDictCursor)
        except psycopg2.Error as e:
            print(f"[DB] ✗ Connection failed: {e}")
            raise RuntimeError(f"Database connection failed: {e}") from e

    def disconnect(self) -> None:
        """Return the connection to the pool"""
        if self.cursor:
            self.cursor.close()
            self.cursor = None
        if self.connection and _db_pool is not None:
            _db_pool.putconn(self.connection)
        self.connection = None

    def begin_transaction(self) -> None:
        """Begin a database transaction"""
        if not self.connection:
            raise RuntimeError("Must connect to database before starting transaction")

    def commit_transaction(self) -> None:
        """Commit the current transaction"""
        if self.connection:
            self.connection.commit()

    def rollback_transaction(self) -> None:
        """Rollback the current transaction"""
        if self.connection:
            self.connection.rollback()
            print("[DB] ✗ Transaction rolled back")

    def _write(self, description: str, query: str, params: Optional[tuple] = None) -> int:
        """Execute one statement and commit; returns the affected row count."""
        if not self.connection or not self.cursor:
            raise RuntimeError("Database connection not established")
        try:
            self.cursor.execute(query, params)
            affected = self.cursor.rowcount
            self.connection.commit()
            return affected
        except psycopg2.Error as e:
            self.connection.rollback()
            print(f"[ERROR] Failed to {description}: {e}")
            raise RuntimeError(f"Database error ({description}): {e}") from e

    def _read(self, description: str, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        if not self.connection or not self.cursor:
            raise RuntimeError("Database connection not established")
        try:
            self.cursor.execute(query, params)
            return [dict(row) for row in self.cursor.fetchall()]
        except psycopg2.Error as e:
            self.connection.rollback()
            print(f"[ERROR] Failed to {description}: {e}")
            raise RuntimeError(f"Database error ({description}): {e}") from e

    def ensure_schema(self) -> None:
        """Create missing tables"""
        self._write("create schema", SCHEMA_SQL)
        print("[DB] ✓ Schema verified")

    # ========================================
    # SETTINGS & TOKEN
    # ========================================

    def fetch_setting(self, key: str) -> Optional[str]:
        rows = self._read("fetch setting", "SELECT value FROM harvest_settings WHERE key = %s", (key,))
        return rows[0]['value'] if rows else None

    def upsert_setting(self, key: str, value: str) -> None:
        self._write("upsert setting", """
            INSERT INTO harvest_settings (key, value, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
        """, (key, value))

    def upsert_gbp_token(self, token: GBPAuthToken) -> None:
        """
        Store or update the harvesting user's token.
        Uses the canonical GBPAuthToken model to prevent NULL access_token errors.
        """
        if not token.access_token:
            print("[ERROR] Refusal to persist empty access_token")
            raise RuntimeError("Refusing to persist empty access_token")

        self._write("update token", """
            INSERT INTO gbp_tokens (
                id, access_token, refresh_token, token_uri,
                client_id, client_secret, scopes, expiry, updated_at
            )
            VALUES (1, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (id) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = EXCLUDED.refresh_token,
                token_uri = EXCLUDED.token_uri,
                client_id = EXCLUDED.client_id,
                client_secret = EXCLUDED.client_secret,
                scopes = EXCLUDED.scopes,
                expiry = EXCLUDED.expiry,
                updated_at = NOW()
        """, (
            token.access_token,
            token.refresh_token,
            token.token_uri,
            token.client_id,
            token.client_secret,
            token.scopes,
            token.expiry
        ))
        print("[DB] Token updated")

    def fetch_gbp_token(self) -> Optional[GBPAuthToken]:
        rows = self._read("fetch token", """
            SELECT access_token, refresh_token, token_uri,
                   client_id, client_secret, scopes, expiry
            FROM gbp_tokens
            WHERE id = 1
        """)
        if not rows:
            return None
        return GBPAuthToken.from_row(rows[0])

    # ========================================
    # ACCOUNTS & CONFIGURATION
    # ========================================

    def replace_accounts(self, accounts: List[Dict[str, Any]]) -> int:
        """Replace the accounts table with a fresh listing"""
        try:
            self.begin_transaction()
            self.cursor.execute("DELETE FROM gbp_accounts")
            execute_batch(self.cursor, """
                INSERT INTO gbp_accounts (name, account_name, type, role, permission_level)
                VALUES (%s, %s, %s, %s, %s)
            """, [
                (acc.get('name'), acc.get('accountName'), acc.get('type'),
                 acc.get('role'), acc.get('permissionLevel'))
                for acc in accounts
            ])
            self.commit_transaction()
            return len(accounts)
        except psycopg2.Error as e:
            self.rollback_transaction()
            print(f"[ERROR] Failed to replace accounts: {e}")
            raise RuntimeError(f"Database error replacing accounts: {e}") from e

    def fetch_accounts(self) -> List[Dict[str, Any]]:
        return self._read("fetch accounts", """
            SELECT id, name, account_name, type, role, permission_level
            FROM gbp_accounts ORDER BY id
        """)

    def find_account_by_display_name(self, account_name: str) -> Optional[Dict[str, Any]]:
        rows = self._read("find account", """
            SELECT id, name, account_name FROM gbp_accounts
            WHERE account_name = %s ORDER BY id LIMIT 1
        """, (account_name,))
        return rows[0] if rows else None

    def fetch_configuration_rows(self) -> List[ConfigurationRow]:
        rows = self._read("fetch configuration", """
            SELECT id, account_name, account_number, filter_status,
                   filter_region, last_location_update
            FROM harvest_configuration ORDER BY id
        """)
        return [ConfigurationRow.from_row(row) for row in rows]

    def insert_configuration(
        self,
        account_name: str,
        account_number: str,
        filter_status: Optional[str] = None,
        filter_region: Optional[str] = None
    ) -> int:
        if not self.connection or not self.cursor:
            raise RuntimeError("Database connection not established")
        try:
            self.cursor.execute("""
                INSERT INTO harvest_configuration
                    (account_name, account_number, filter_status, filter_region)
                VALUES (%s, %s, %s, %s)
                RETURNING id
            """, (account_name, account_number, filter_status, filter_region))
            config_id = self.cursor.fetchone()['id']
            self.connection.commit()
            return config_id
        except psycopg2.Error as e:
            self.connection.rollback()
            print(f"[ERROR] Failed to insert configuration for {account_name}: {e}")
            raise RuntimeError(f"Database error inserting configuration: {e}") from e

    def clear_configuration(self) -> None:
        self._write("clear configuration", "DELETE FROM harvest_configuration")

    def update_listing_marker(self, config_id: int, marker: str) -> None:
        self._write("update listing marker", """
            UPDATE harvest_configuration SET last_location_update = %s WHERE id = %s
        """, (marker, config_id))

    def clear_listing_markers(self) -> None:
        self._write("clear listing markers", "UPDATE harvest_configuration SET last_location_update = ''")

    # ========================================
    # LOCATIONS
    # ========================================

    def fetch_locations(self) -> List[Location]:
        """All locations in row order (the order batches are built in)"""
        rows = self._read("fetch locations", """
            SELECT id, config_id, account, name, location_name, store_code,
                   status, region, category_name, last_insights_update
            FROM gbp_locations ORDER BY id
        """)
        return [Location.from_row(row) for row in rows]

    def replace_config_locations(
        self,
        config_id: int,
        locations: List[Dict[str, Any]],
        listing_marker: str
    ) -> int:
        """
        Atomically replace the locations listed for one configuration row and
        stamp its listing marker. Re-running after a crash never duplicates rows.
        """
        try:
            self.begin_transaction()
            self.cursor.execute("DELETE FROM gbp_locations WHERE config_id = %s", (config_id,))
            execute_batch(self.cursor, """
                INSERT INTO gbp_locations
                    (config_id, account, name, location_name, store_code,
                     status, region, category_name, last_insights_update)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, '')
            """, [
                (config_id, loc['account'], loc['name'], loc.get('location_name'),
                 loc.get('store_code'), loc.get('status'), loc.get('region'),
                 loc.get('category_name'))
                for loc in locations
            ])
            self.cursor.execute("""
                UPDATE harvest_configuration SET last_location_update = %s WHERE id = %s
            """, (listing_marker, config_id))
            self.commit_transaction()
            return len(locations)
        except psycopg2.Error as e:
            self.rollback_transaction()
            print(f"[ERROR] Failed to persist locations for configuration {config_id}: {e}")
            raise RuntimeError(f"Database error persisting locations: {e}") from e

    def update_location_markers(self, location_ids: List[int], marker: str) -> int:
        if not location_ids:
            return 0
        return self._write("update location markers", """
            UPDATE gbp_locations SET last_insights_update = %s WHERE id = ANY(%s)
        """, (marker, list(location_ids)))

    def clear_locations(self) -> None:
        self._write("clear locations", "DELETE FROM gbp_locations")

    def clear_location_markers(self) -> None:
        self._write("clear location markers", "UPDATE gbp_locations SET last_insights_update = ''")

    # ========================================
    # INSIGHTS
    # ========================================

    def commit_unit(self, records: List[InsightRecord], location_ids: List[int], marker: str) -> int:
        """
        Append the insight rows of one unit of work and move the markers of
        the covered locations in a single transaction: either both land or
        neither does, so a killed slice never stores the same window twice.
        """
        if not location_ids:
            return 0
        placeholders = ", ".join(["%s"] * len(INSIGHT_COLUMNS))
        try:
            self.begin_transaction()
            if records:
                execute_batch(
                    self.cursor,
                    f"INSERT INTO location_insights ({', '.join(INSIGHT_COLUMNS)}) VALUES ({placeholders})",
                    [record.as_row() for record in records]
                )
            self.cursor.execute("""
                UPDATE gbp_locations SET last_insights_update = %s WHERE id = ANY(%s)
            """, (marker, list(location_ids)))
            self.commit_transaction()
            return len(records)
        except psycopg2.Error as e:
            self.rollback_transaction()
            print(f"[ERROR] Failed to commit unit of {len(location_ids)} locations: {e}")
            raise RuntimeError(f"Database error committing insights unit: {e}") from e

    def clear_insights(self) -> None:
        self._write("clear insights", "DELETE FROM location_insights")

    def fetch_insight_week_starts(self) -> List[date]:
        rows = self._read("fetch insight weeks", """
            SELECT DISTINCT start_week_date FROM location_insights ORDER BY start_week_date
        """)
        return [row['start_week_date'] for row in rows]

    def delete_insights_for_week(self, start_week_date: date) -> int:
        return self._write("delete insights week", """
            DELETE FROM location_insights WHERE start_week_date = %s
        """, (start_week_date,))

    # ========================================
    # AUDIT LOG
    # ========================================

    def append_log(self, logged_at: datetime, message: str) -> None:
        self._write("append log", """
            INSERT INTO harvest_log (logged_at, message) VALUES (%s, %s)
        """, (logged_at, message))

    def trim_log(self, max_rows: int) -> int:
        """Delete the oldest entries beyond max_rows"""
        return self._write("trim log", """
            DELETE FROM harvest_log
            WHERE id IN (
                SELECT id FROM harvest_log ORDER BY id DESC OFFSET %s
            )
        """, (max_rows,))

    def fetch_recent_log(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self._read("fetch log", """
            SELECT logged_at, message FROM harvest_log ORDER BY id DESC LIMIT %s
        """, (limit,))

    # ========================================
    # TRIGGERS
    # ========================================

    def fetch_triggers(self) -> List[Dict[str, Any]]:
        return self._read("fetch triggers", """
            SELECT name, cadence, week_day, hour FROM harvest_triggers ORDER BY created_at, name
        """)

    def upsert_trigger(self, name: str, cadence: str,
                       week_day: Optional[int] = None, hour: Optional[int] = None) -> None:
        self._write("upsert trigger", """
            INSERT INTO harvest_triggers (name, cadence, week_day, hour, created_at)
            VALUES (%s, %s, %s, %s, NOW())
            ON CONFLICT (name) DO UPDATE SET
                cadence = EXCLUDED.cadence,
                week_day = EXCLUDED.week_day,
                hour = EXCLUDED.hour
        """, (name, cadence, week_day, hour))

    def delete_trigger(self, name: str) -> int:
        return self._write("delete trigger", "DELETE FROM harvest_triggers WHERE name = %s", (name,))

    def delete_all_triggers(self) -> int:
        return self._write("delete triggers", "DELETE FROM harvest_triggers")
