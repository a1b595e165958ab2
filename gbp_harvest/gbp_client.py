from __future__ import annotations
"""
Google Business Profile API Client
Handles token refresh and paginated calls to the account management,
business information and (v4) insights endpoints.
"""

from typing import Any, Dict, List, Optional

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import AuthorizedSession, Request
from requests.exceptions import RequestException

from gbp_harvest.auth.token_model import GBPAuthToken
from gbp_harvest.config.harvest_constants import (
    ACCOUNTS_URL,
    LOCATIONS_READ_MASK,
    LOCATIONS_URL,
    NO_STATUS_FILTER,
    REPORT_INSIGHTS_URL,
)
from gbp_harvest.harvest_log import log_step
from gbp_harvest.settings import settings
from gbp_harvest.utils.windows import Window, to_api_timestamp


class AuthError(Exception):
    """Raised when authentication is invalid or expired and cannot be refreshed"""
    pass


class ApiError(RuntimeError):
    """Raised on transport failures or unparseable responses; ends the current slice"""
    pass


def build_location_filter(filter_status: Optional[str], filter_region: Optional[str]) -> Optional[str]:
    """
    Server-side filter for the locations listing.
    Example: openInfo.status="OPEN" AND storefrontAddress.regionCode="IT"
    """
    clauses = []
    if filter_status and filter_status != NO_STATUS_FILTER:
        clauses.append(f'openInfo.status="{filter_status}"')
    if filter_region:
        clauses.append(f'storefrontAddress.regionCode="{filter_region}"')
    return " AND ".join(clauses) if clauses else None


def build_insights_request(location_names: List[str], window: Window) -> Dict[str, Any]:
    return {
        'locationNames': location_names,
        'basicRequest': {
            'metricRequests': [{'metric': 'ALL', 'options': 'AGGREGATED_TOTAL'}],
            'timeRange': {
                'startTime': to_api_timestamp(window.first_day),
                'endTime': to_api_timestamp(window.last_day),
            }
        }
    }


class GBPClient:
    """Client for the Google Business Profile APIs, acting as the stored user"""

    def __init__(self, db, session: Optional[AuthorizedSession] = None):
        self.db = db
        if session is not None:
            self.credentials = None
            self.session = session
        else:
            self.credentials = self._load_credentials()
            self._refresh_if_expired()
            self.session = AuthorizedSession(self.credentials)

    def _load_credentials(self) -> Credentials:
        """
        Load credentials from the database.
        Normalizes expiry to naive UTC to satisfy google-auth library internals.
        """
        token_obj = self.db.fetch_gbp_token()

        if not token_obj:
            raise AuthError("No authentication tokens found for the harvesting user")

        return Credentials(
            token=token_obj.access_token,
            refresh_token=token_obj.refresh_token,
            token_uri=token_obj.token_uri,
            client_id=token_obj.client_id,
            client_secret=settings.GOOGLE_CLIENT_SECRET or token_obj.client_secret,
            scopes=token_obj.scopes,
            expiry=token_obj.naive_utc_expiry(),
        )

    # ============================================================
    # 🔁 TOKEN REFRESH
    # ============================================================

    def _refresh_if_expired(self) -> None:
        if not self.credentials or not self.credentials.expired:
            return

        log_step("Token expired, refreshing...", "PROGRESS", component="AUTH")
        try:
            self.credentials.refresh(Request())

            self.db.upsert_gbp_token(GBPAuthToken.from_credentials(self.credentials))
            log_step("Token refreshed and persisted", "SUCCESS", component="AUTH")

        except Exception as e:
            log_step(f"Refresh failed ({type(e).__name__}): {e}", "ERROR", component="AUTH")
            raise AuthError(f"Failed to refresh Google OAuth token: {e}") from e

    # ============================================================
    # 📡 TRANSPORT
    # ============================================================

    def call_api(
        self,
        url: str,
        method: str = "GET",
        paginate: bool = False,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Call a Google API following nextPageToken.

        HTTP error statuses are not raised: Google returns them as JSON carrying
        an 'error' object, which callers inspect per page.

        Returns:
            The single response dict, or the list of every page when paginate=True

        Raises:
            ApiError: network failure or a response that is not JSON
        """
        self._refresh_if_expired()

        pages = []
        page_token = None
        try:
            while True:
                call_params = dict(params or {})
                if page_token:
                    call_params['pageToken'] = page_token

                response = self.session.request(
                    method,
                    url,
                    params=call_params or None,
                    json=body,
                    headers={'Accept': 'application/json'},
                )
                result = response.json()
                if not paginate:
                    return result

                pages.append(result)
                page_token = result.get('nextPageToken') if isinstance(result, dict) else None
                if not page_token:
                    return pages

        except (RequestException, ValueError) as e:
            log_step(f"API call error on {url}: {e}", "ERROR", component="GBP")
            raise ApiError(f"API call failed for {url}: {e}") from e

    # ============================================================
    # 📊 GBP API METHODS
    # ============================================================

    def fetch_accounts(self) -> List[Dict[str, Any]]:
        pages = self.call_api(ACCOUNTS_URL, "GET", paginate=True)
        accounts = []
        for page in pages:
            if page.get('error'):
                raise ApiError(f"Accounts listing failed: {page['error'].get('message')}")
            accounts.extend(page.get('accounts', []))

        log_step(f"Fetched {len(accounts)} accounts", "INFO", component="GBP")
        return accounts

    def fetch_locations(
        self,
        account_number: str,
        filter_status: Optional[str] = None,
        filter_region: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Every page of the locations listing for one account"""
        params = {'readMask': LOCATIONS_READ_MASK, 'pageSize': 100}
        location_filter = build_location_filter(filter_status, filter_region)
        if location_filter:
            params['filter'] = location_filter

        return self.call_api(
            LOCATIONS_URL.format(account=account_number), "GET",
            paginate=True, params=params
        )

    def report_insights(
        self,
        account_number: str,
        location_names: List[str],
        window: Window
    ) -> List[Dict[str, Any]]:
        """Every page of reportInsights for up to 5 locations and one week"""
        full_names = [f"{account_number}/{name}" for name in location_names]
        return self.call_api(
            REPORT_INSIGHTS_URL.format(account=account_number), "POST",
            paginate=True, body=build_insights_request(full_names, window)
        )
