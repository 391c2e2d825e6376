"""
Usage data loading for Usage Monitor.

Reads Claude Code session logs into ordered, deduplicated usage events.
"""

from .jsonl_loader import DataLoadError, JsonlUsageLoader, default_data_paths

__all__ = ["DataLoadError", "JsonlUsageLoader", "default_data_paths"]
