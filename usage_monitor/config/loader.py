"""
Configuration management and loading.

Handles refresh timing, log locations, settings storage and display options.
"""

from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from usage_monitor.core.scheduler import DEFAULT_INITIAL_DELAY, DEFAULT_INTERVAL
from usage_monitor.loader import default_data_paths
from usage_monitor.storage.db import DEFAULT_DB_PATH


LOCAL_TIMEZONE = "local"
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class RefreshConfig:
    """Refresh timing."""
    interval_seconds: float = DEFAULT_INTERVAL
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY

    def __post_init__(self):
        """Validate timing values."""
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if self.initial_delay_seconds < 0:
            raise ValueError("initial_delay_seconds must be >= 0")


@dataclass(frozen=True)
class MonitorConfig:
    """Complete monitor configuration."""
    refresh: RefreshConfig = field(default_factory=RefreshConfig)
    data_paths: List[Path] = field(default_factory=default_data_paths)
    db_path: str = DEFAULT_DB_PATH
    timezone: str = LOCAL_TIMEZONE
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate log level and timezone."""
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(_LOG_LEVELS)}")
        self.display_tz()

    def display_tz(self) -> Optional[tzinfo]:
        """Timezone for reset times; None means the local timezone."""
        if self.timezone == LOCAL_TIMEZONE:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone}")


def default_config() -> MonitorConfig:
    """Configuration used when no file is given."""
    return MonitorConfig()


def load_monitor_config(path: str) -> MonitorConfig:
    """Load and validate monitor configuration from a YAML file.

    Unknown keys are rejected so a typo never silently falls back to a
    default.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated MonitorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Monitor config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'refresh', 'data', 'settings', 'display', 'log_level'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    defaults = default_config()

    refresh_data = _section(raw_config, 'refresh', {'interval_seconds', 'initial_delay_seconds'})
    refresh = RefreshConfig(
        interval_seconds=_number(refresh_data, 'interval_seconds', defaults.refresh.interval_seconds),
        initial_delay_seconds=_number(refresh_data, 'initial_delay_seconds', defaults.refresh.initial_delay_seconds)
    )

    data_section = _section(raw_config, 'data', {'paths'})
    data_paths = defaults.data_paths
    if 'paths' in data_section:
        paths = data_section['paths']
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ValueError("'data.paths' must be a list of strings")
        data_paths = [Path(p).expanduser() for p in paths]

    settings_section = _section(raw_config, 'settings', {'db_path'})
    db_path = settings_section.get('db_path', defaults.db_path)
    if not isinstance(db_path, str) or not db_path:
        raise ValueError("'settings.db_path' must be a non-empty string")

    display_section = _section(raw_config, 'display', {'timezone'})
    timezone = display_section.get('timezone', defaults.timezone)
    if not isinstance(timezone, str):
        raise ValueError("'display.timezone' must be a string")

    log_level = raw_config.get('log_level', defaults.log_level)
    if not isinstance(log_level, str):
        raise ValueError("'log_level' must be a string")

    return MonitorConfig(
        refresh=refresh,
        data_paths=data_paths,
        db_path=db_path,
        timezone=timezone,
        log_level=log_level.upper()
    )


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict:
    """Return a validated optional sub-section (empty if absent)."""
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data


def _number(data: Dict, key: str, default: float) -> float:
    value = data.get(key, default)
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number")
    return float(value)
