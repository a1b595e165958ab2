from __future__ import annotations
"""
Centralized window logic for GBP insights.
Handles weekly window anchoring, advancing and retention validation so the
driver, planner and fetcher agree on the exact same [first_day, last_day) ranges.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterator, Optional
from gbp_harvest.config.harvest_constants import WINDOW_DAYS


class ConfigurationError(ValueError):
    """Raised when operator configuration is invalid; aborts the pass before any write"""
    pass


@dataclass(frozen=True)
class Window:
    """One insights week: first_day inclusive, last_day exclusive."""
    first_day: date
    last_day: date

    def __str__(self) -> str:
        return f"{self.first_day.isoformat()} → {self.last_day.isoformat()}"


def normalize_day(value: Any) -> date:
    """Drop hours/minutes/seconds so window comparisons are exact."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def next_window(boundary: date, num_weeks_back: int) -> Window:
    """First window of a pass: starts num_weeks_back weeks before the boundary."""
    first_day = normalize_day(boundary) - timedelta(days=WINDOW_DAYS * num_weeks_back)
    return Window(first_day, first_day + timedelta(days=WINDOW_DAYS))


def advance(window: Window) -> Window:
    return Window(
        window.first_day + timedelta(days=WINDOW_DAYS),
        window.last_day + timedelta(days=WINDOW_DAYS),
    )


def window_starting(first_day: date) -> Window:
    return Window(first_day, first_day + timedelta(days=WINDOW_DAYS))


def iter_windows(boundary: date, num_weeks_back: int, start: Optional[Window] = None) -> Iterator[Window]:
    """
    Yield consecutive windows until the boundary is reached.

    Args:
        boundary: Exclusive end of the covered range
        num_weeks_back: Retention length (yearly pass) or 1 (weekly pass)
        start: Optional window to resume from instead of the pass start
    """
    boundary = normalize_day(boundary)
    window = start or next_window(boundary, num_weeks_back)
    while window.last_day <= boundary:
        yield window
        window = advance(window)


def snap_to_grid(day: date, boundary: date) -> date:
    """
    Return the first window start (boundary - 7k) on or after the given day.
    Used to realign markers written under a different anchoring.
    """
    offset = (normalize_day(boundary) - normalize_day(day)).days
    if offset <= 0:
        return normalize_day(boundary)
    return normalize_day(boundary) - timedelta(days=(offset // WINDOW_DAYS) * WINDOW_DAYS)


def days_between(first: date, second: date) -> int:
    """Absolute number of days separating two dates."""
    return abs((normalize_day(second) - normalize_day(first)).days)


def reaches_boundary(window: Window, boundary: date) -> bool:
    """
    True when the window is the last full week before the boundary, i.e.
    covering it catches the location up to 'now'.
    """
    return days_between(window.last_day, boundary) < WINDOW_DAYS


def to_api_timestamp(day: date) -> str:
    """Format a window bound the way reportInsights expects it."""
    return f"{normalize_day(day).isoformat()}T00:00:00.000Z"


def parse_retention_weeks(value: Any) -> int:
    """
    Validate the configured retention length.

    Raises:
        ConfigurationError: when the value is not a positive integer
    """
    if isinstance(value, bool) or value is None:
        raise ConfigurationError(
            "Provided number of weeks must be numeric and greater than 0."
        )
    if isinstance(value, int):
        weeks = value
    else:
        text = str(value).strip()
        try:
            number = float(text)
        except ValueError:
            raise ConfigurationError(
                f"Provided number of weeks must be numeric and greater than 0 (got '{text}')."
            ) from None
        if not number.is_integer():
            raise ConfigurationError(
                f"Provided number of weeks must be a whole number (got '{text}')."
            )
        weeks = int(number)

    if weeks < 1:
        raise ConfigurationError(
            f"Provided number of weeks must be numeric and greater than 0 (got {weeks})."
        )
    return weeks
