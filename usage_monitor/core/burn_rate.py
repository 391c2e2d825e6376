"""
Burn rate estimation.

Tokens per minute over the trailing hour, apportioned across every session
window by the fraction of its active span that overlaps that hour.
"""

from datetime import datetime, timedelta
from typing import Iterable

from .segmenter import SessionWindow


BURN_RATE_WINDOW = timedelta(hours=1)

# (upper bound in tokens/minute, label); the last label has no bound
_BURN_RATE_CATEGORIES = [
    (100, "Very slow"),
    (300, "Slow"),
    (600, "Moderate"),
    (1000, "Fast"),
    (2000, "Very fast"),
]


def calculate_burn_rate(windows: Iterable[SessionWindow], now: datetime) -> float:
    """Compute the trailing one-hour burn rate.

    A window's display tokens are spread evenly over [first entry, actual end],
    where the actual end is `now` for the active window. The share falling in
    [now - 1h, now] counts toward the hour. Windows with no positive span
    contribute nothing.

    Args:
        windows: All windows from one segmentation pass
        now: Reference time

    Returns:
        Tokens per minute, 0.0 when nothing overlaps the last hour
    """
    hour_start = now - BURN_RATE_WINDOW
    tokens_in_hour = 0.0

    for window in windows:
        if window.is_gap:
            continue

        actual_end = now if window.is_active(now) else window.actual_end_time
        effective_start = window.first_entry_timestamp or window.start_time

        overlap = min(actual_end, now) - max(effective_start, hour_start)
        total = actual_end - effective_start
        if overlap <= timedelta(0) or total <= timedelta(0):
            continue

        tokens_in_hour += window.display_tokens * (overlap / total)

    return tokens_in_hour / 60.0


def burn_rate_category(rate: float) -> str:
    """Human description of a burn rate in tokens per minute."""
    for upper, label in _BURN_RATE_CATEGORIES:
        if rate < upper:
            return label
    return "Extreme"
