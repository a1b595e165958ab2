from __future__ import annotations
"""
Row snapshots for the harvest tables.
These are the runtime shapes the core passes around; the static column layout
lives in config/harvest_constants.py.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional

from gbp_harvest.config.harvest_constants import INSIGHT_FIELDS, INSIGHT_METRICS


@dataclass
class Location:
    """A location row; `id` is its row position in gbp_locations."""
    id: int
    account: str
    name: str  # locations/{id}
    location_name: str = ""
    store_code: str = ""
    status: str = "N/A"
    region: str = "N/A"
    category_name: str = "N/A"
    config_id: Optional[int] = None
    last_insights_update: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Location":
        return cls(
            id=row['id'],
            account=row['account'],
            name=row['name'],
            location_name=row.get('location_name') or "",
            store_code=row.get('store_code') or "",
            status=row.get('status') or "N/A",
            region=row.get('region') or "N/A",
            category_name=row.get('category_name') or "N/A",
            config_id=row.get('config_id'),
            last_insights_update=row.get('last_insights_update') or "",
        )


@dataclass
class ConfigurationRow:
    """One configured account (plus optional listing filters)."""
    id: int
    account_name: str
    account_number: str
    filter_status: Optional[str] = None
    filter_region: Optional[str] = None
    last_location_update: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ConfigurationRow":
        return cls(
            id=row['id'],
            account_name=row.get('account_name') or "",
            account_number=row.get('account_number') or "",
            filter_status=row.get('filter_status'),
            filter_region=row.get('filter_region'),
            last_location_update=row.get('last_location_update') or "",
        )


@dataclass
class InsightRecord:
    """One location × one week of metrics, denormalized for reporting."""
    account: str
    location_id: str
    location_name: str
    store_code: str
    region: str
    status: str
    category_name: str
    time_zone: Optional[str]
    start_week_date: date
    end_week_date: date
    metrics: Dict[str, Optional[int]] = field(default_factory=dict)

    def as_row(self) -> tuple:
        """Values ordered as INSIGHT_COLUMNS."""
        values = {
            'account': self.account,
            'location_id': self.location_id,
            'location_name': self.location_name,
            'store_code': self.store_code,
            'region': self.region,
            'status': self.status,
            'category_name': self.category_name,
            'time_zone': self.time_zone,
            'start_week_date': self.start_week_date,
            'end_week_date': self.end_week_date,
        }
        for column in INSIGHT_METRICS.values():
            values[column] = self.metrics.get(column)

        row = [None] * len(INSIGHT_FIELDS)
        for column, value in values.items():
            row[INSIGHT_FIELDS[column]] = value
        return tuple(row)
