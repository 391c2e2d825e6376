"""
Session window segmentation.

Partitions an ascending event stream into fixed 5-hour session windows,
with explicit gap windows marking long periods of inactivity.

Windows are half-open intervals [start_time, end_time): an event stamped
exactly at a window's end time opens the next window.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from .token_counter import ModelStats, display_tokens, raw_tokens
from usage_monitor.storage.models import UsageEvent


# Window length, same-window inactivity trigger and gap threshold are one value
SESSION_DURATION = timedelta(hours=5)


@dataclass(frozen=True)
class SessionWindow:
    """Frozen session or gap window produced by one segmentation pass."""
    id: str
    start_time: datetime
    end_time: datetime
    is_gap: bool = False
    first_entry_timestamp: Optional[datetime] = None
    last_entry_timestamp: Optional[datetime] = None
    per_model_stats: Mapping[str, ModelStats] = field(
        default_factory=lambda: MappingProxyType({})
    )
    entries_count: int = 0

    @property
    def actual_end_time(self) -> datetime:
        """Timestamp of the last assigned event, or the start time if none."""
        return self.last_entry_timestamp or self.start_time

    def is_active(self, now: datetime) -> bool:
        """A window is active until its end time; gap windows never are."""
        return now < self.end_time and not self.is_gap

    @property
    def display_tokens(self) -> int:
        return display_tokens(self)

    @property
    def raw_tokens(self) -> int:
        return raw_tokens(self)


class _WindowBuilder:
    """Mutable accumulator used only while segmentation is running."""

    def __init__(self, start_time: datetime):
        self.start_time = start_time
        self.end_time = start_time + SESSION_DURATION
        self.first_entry_timestamp: Optional[datetime] = None
        self.last_entry_timestamp: Optional[datetime] = None
        self.per_model_stats: Dict[str, ModelStats] = {}
        self.entries_count = 0

    @property
    def actual_end_time(self) -> datetime:
        return self.last_entry_timestamp or self.start_time

    def add(self, event: UsageEvent) -> None:
        if self.first_entry_timestamp is None:
            self.first_entry_timestamp = event.timestamp
        self.last_entry_timestamp = event.timestamp
        stats = self.per_model_stats.get(event.model, ModelStats())
        self.per_model_stats[event.model] = stats.add(event)
        self.entries_count += 1

    def needs_new_window(self, event: UsageEvent) -> bool:
        if event.timestamp >= self.end_time:
            return True
        if (self.last_entry_timestamp is not None
                and event.timestamp - self.last_entry_timestamp >= SESSION_DURATION):
            return True
        return False

    def freeze(self) -> SessionWindow:
        return SessionWindow(
            id=f"session-{_epoch(self.start_time)}",
            start_time=self.start_time,
            end_time=self.end_time,
            first_entry_timestamp=self.first_entry_timestamp,
            last_entry_timestamp=self.last_entry_timestamp,
            per_model_stats=MappingProxyType(dict(self.per_model_stats)),
            entries_count=self.entries_count,
        )


def floor_to_hour(timestamp: datetime) -> datetime:
    """Truncate a timestamp to the start of its hour in UTC.

    Naive timestamps are taken to already be in UTC and stay naive.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.replace(minute=0, second=0, microsecond=0)


def _epoch(timestamp: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return int(timestamp.timestamp())


def _gap_between(closed: _WindowBuilder, next_event: UsageEvent) -> Optional[SessionWindow]:
    gap_start = closed.actual_end_time
    if next_event.timestamp - gap_start < SESSION_DURATION:
        return None
    return SessionWindow(
        id=f"gap-{_epoch(gap_start)}",
        start_time=gap_start,
        end_time=next_event.timestamp,
        is_gap=True,
    )


def segment_events(events: Iterable[UsageEvent]) -> List[SessionWindow]:
    """Split an ascending event stream into session and gap windows.

    Every event lands in exactly one session window, in input order. Sorting
    is the caller's responsibility; unsorted input gives undefined windows.

    Args:
        events: Usage events ordered by ascending timestamp

    Returns:
        Session and gap windows in chronological order (empty for no events)
    """
    windows: List[SessionWindow] = []
    current: Optional[_WindowBuilder] = None

    for event in events:
        if current is None:
            current = _WindowBuilder(floor_to_hour(event.timestamp))
        elif current.needs_new_window(event):
            windows.append(current.freeze())
            gap = _gap_between(current, event)
            if gap is not None:
                windows.append(gap)
            current = _WindowBuilder(floor_to_hour(event.timestamp))
        current.add(event)

    if current is not None:
        windows.append(current.freeze())

    return windows


def find_active_window(windows: List[SessionWindow], now: datetime) -> Optional[SessionWindow]:
    """Return the active window, if any.

    Segmentation never produces more than one active window. Should that
    ever change, the most recently started active window wins.
    """
    active = [w for w in windows if w.is_active(now)]
    if not active:
        return None
    return max(active, key=lambda w: w.start_time)
