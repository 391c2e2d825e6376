"""
Formatting helpers for the published usage state.

Pure functions plus an explicitly constructed time formatter, so no
formatting state is shared between monitors.
"""

from datetime import datetime, tzinfo
from typing import Optional

from .segmenter import SESSION_DURATION


class TimeFormatter:
    """Formats reset times as HH:MM in a fixed timezone.

    Args:
        tz: Target timezone; None means the machine's local timezone
    """

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def format(self, moment: datetime) -> str:
        return moment.astimezone(self.tz).strftime("%H:%M")


def usage_level(percentage: float) -> str:
    """Traffic-light level for a usage percentage."""
    if percentage < 50:
        return "green"
    if percentage < 80:
        return "yellow"
    return "red"


def session_progress(session_start: datetime, now: datetime) -> float:
    """Elapsed share of a 5-hour window in percent, capped at 100."""
    elapsed = (now - session_start) / SESSION_DURATION
    return max(0.0, min(100.0, elapsed * 100))


def session_elapsed(session_start: datetime, now: datetime) -> str:
    """Time since the window started, e.g. '2h 15m'."""
    seconds = max(0, int((now - session_start).total_seconds()))
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
