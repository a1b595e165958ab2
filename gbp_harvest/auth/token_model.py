from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional


@dataclass
class GBPAuthToken:
    """
    OAuth token of the single harvesting identity, as stored in gbp_tokens.

    The harvest acts as one authorized user for every account it reads, so
    there is exactly one row; see DatabasePersistence.upsert_gbp_token.
    """
    access_token: str
    refresh_token: Optional[str]
    token_uri: str
    client_id: str
    client_secret: Optional[str]
    scopes: List[str]
    expiry: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "GBPAuthToken":
        return cls(
            access_token=row['access_token'],
            refresh_token=row['refresh_token'],
            token_uri=row['token_uri'],
            client_id=row['client_id'],
            client_secret=row['client_secret'],
            scopes=list(row['scopes'] or []),
            expiry=row['expiry'],
        )

    @classmethod
    def from_credentials(cls, credentials, default_scopes: Iterable[str] = ()) -> "GBPAuthToken":
        """Snapshot of google-auth Credentials after an import or a refresh."""
        return cls(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            token_uri=credentials.token_uri,
            client_id=credentials.client_id,
            client_secret=credentials.client_secret,
            scopes=list(credentials.scopes or default_scopes),
            expiry=credentials.expiry,
        )

    def naive_utc_expiry(self) -> Optional[datetime]:
        # google-auth compares expiry against a naive utcnow()
        if self.expiry is None or self.expiry.tzinfo is None:
            return self.expiry
        return self.expiry.astimezone(timezone.utc).replace(tzinfo=None)
