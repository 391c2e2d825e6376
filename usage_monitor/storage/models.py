"""
Data models for storage layer.

Defines the usage event record consumed by the accounting engine.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


UNKNOWN_MODEL = "unknown"


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of a single assistant response's token usage.

    Events are read from the session logs and consumed read-only.
    Sequences handed to the core must be sorted by ascending timestamp.
    """
    timestamp: datetime
    input_tokens: int
    output_tokens: int
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    model: str = UNKNOWN_MODEL
    message_id: Optional[str] = None
    request_id: Optional[str] = None

    @property
    def unique_hash(self) -> Optional[str]:
        """Deduplication key, only defined when both ids are present."""
        if self.message_id is None or self.request_id is None:
            return None
        return f"{self.message_id}:{self.request_id}"


@dataclass(frozen=True)
class ManualOverride:
    """User-chosen plan tier that supersedes auto-detection while enabled."""
    enabled: bool = False
    tier: Optional[str] = None
