"""
Sliding-window retention for location_insights.
Rows are pruned a whole week at a time, oldest start week first.
"""

from typing import List

from gbp_harvest.harvest_log import audit


def trim_oldest_weeks(db, retention_weeks: int) -> List:
    """
    Delete the oldest start weeks while more than retention_weeks are stored.

    Returns:
        The start week dates that were removed
    """
    week_starts = db.fetch_insight_week_starts()
    removed = []
    while len(week_starts) > retention_weeks:
        oldest = week_starts.pop(0)
        deleted = db.delete_insights_for_week(oldest)
        removed.append(oldest)
        audit(db, f"Removed {deleted} insight rows for week starting {oldest}", component="RETENTION")
    return removed
