"""
Claude Code session log reader.

Loads every `<projects>/<project>/*.jsonl` file, extracts assistant usage
records and returns them deduplicated and sorted by timestamp.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from usage_monitor.storage.models import UNKNOWN_MODEL, UsageEvent

logger = logging.getLogger(__name__)


class DataLoadError(Exception):
    """Raised when the session logs cannot be read at all."""
    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


def default_data_paths() -> List[Path]:
    """Directories where Claude Code writes its session logs."""
    home = Path.home()
    return [
        home / ".claude" / "projects",
        home / ".config" / "claude" / "projects",
    ]


def _parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _token_count(usage: Dict[str, Any], key: str) -> int:
    count = int(usage.get(key) or 0)
    if count < 0:
        raise ValueError(f"negative {key}: {count}")
    return count


def _model_name(message: Dict[str, Any]) -> str:
    model = message.get("model")
    if not isinstance(model, str) or not model:
        return UNKNOWN_MODEL
    return model


def parse_usage_line(entry: Dict[str, Any]) -> Optional[UsageEvent]:
    """Build a UsageEvent from one decoded JSONL entry.

    Args:
        entry: Decoded JSON object from a session log line

    Returns:
        UsageEvent, or None if the entry carries no usable usage record
    """
    message = entry.get("message")
    if not isinstance(message, dict):
        return None
    usage = message.get("usage")
    timestamp = entry.get("timestamp")
    if not isinstance(usage, dict) or not isinstance(timestamp, str):
        return None

    try:
        return UsageEvent(
            timestamp=_parse_timestamp(timestamp),
            input_tokens=_token_count(usage, "input_tokens"),
            output_tokens=_token_count(usage, "output_tokens"),
            cache_creation_tokens=_token_count(usage, "cache_creation_input_tokens"),
            cache_read_tokens=_token_count(usage, "cache_read_input_tokens"),
            model=_model_name(message),
            message_id=message.get("id"),
            request_id=entry.get("requestId"),
        )
    except (TypeError, ValueError) as e:
        logger.debug("Skipping malformed usage entry: %s", e)
        return None


def _read_jsonl(file_path: Path) -> List[UsageEvent]:
    """Parse a JSONL file, skipping malformed lines and unreadable files."""
    events: List[UsageEvent] = []
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(entry, dict):
                    continue
                event = parse_usage_line(entry)
                if event is not None:
                    events.append(event)
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", file_path, e)
    return events


def deduplicate(events: Iterable[UsageEvent]) -> List[UsageEvent]:
    """Drop repeated (message_id, request_id) pairs, keeping the first.

    Events missing either id are always kept.
    """
    seen = set()
    unique = []
    for event in events:
        key = event.unique_hash
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        unique.append(event)
    return unique


class JsonlUsageLoader:
    """Data loader backed by Claude Code's local session logs."""

    def __init__(self, paths: Optional[Iterable[Path]] = None):
        """Initialize the loader.

        Args:
            paths: Projects directories to scan (defaults to Claude's locations)
        """
        self.paths = [Path(p).expanduser() for p in paths] if paths is not None else default_data_paths()

    def _session_files(self) -> List[Path]:
        files: List[Path] = []
        for root in self.paths:
            if not root.is_dir():
                continue
            try:
                projects = sorted(p for p in root.iterdir() if p.is_dir())
            except OSError as e:
                raise DataLoadError(f"Cannot list session logs in {root}: {e}", root) from e
            for project in projects:
                files.extend(sorted(project.glob("*.jsonl")))
        return files

    def load_usage_data(self) -> List[UsageEvent]:
        """Load all usage events, deduplicated and in ascending time order.

        Returns:
            Ordered usage events (empty when no log directory exists)

        Raises:
            DataLoadError: If an existing log directory cannot be listed
        """
        events: List[UsageEvent] = []
        for file_path in self._session_files():
            events.extend(_read_jsonl(file_path))

        events = deduplicate(events)
        events.sort(key=lambda e: e.timestamp)
        logger.debug("Loaded %d usage events from %s", len(events), self.paths)
        return events
