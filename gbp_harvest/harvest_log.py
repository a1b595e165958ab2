"""
Harvest logging.

Two channels, as in the rest of the pipeline:
  - console: timestamped step lines (what cron captures)
  - audit log: the harvest_log table, an operator-facing side channel that is
    pruned to the newest LOG_MAX_ROWS entries by shorten_log()

Neither channel takes part in control flow.
"""

from datetime import datetime
from typing import Optional

from gbp_harvest.settings import settings


def log_step(message: str, level: str = "INFO", component: str = "HARVEST") -> None:
    """Log with timestamp and component context"""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    prefix = {
        "INFO": "ℹ️ ",
        "SUCCESS": "✅",
        "ERROR": "❌",
        "WARNING": "⚠️ ",
        "PROGRESS": "⏳"
    }.get(level, "")
    print(f"[{timestamp}] [{component}] {prefix} {message}")


def audit(db, message: str, level: str = "INFO", component: str = "HARVEST") -> None:
    """
    Log to console and append the message to the audit log.

    Args:
        db: DatabasePersistence (or any object exposing append_log)
        message: Operator-facing message
        level: Console level prefix
        component: Console component tag
    """
    log_step(message, level, component)
    db.append_log(datetime.now(settings.tz), message)


def shorten_log(db, max_rows: Optional[int] = None) -> int:
    """Prune the audit log down to its newest max_rows entries."""
    max_rows = max_rows or settings.LOG_MAX_ROWS
    removed = db.trim_log(max_rows)
    if removed:
        log_step(f"Audit log shortened: {removed} old entries removed", "INFO")
    return removed
