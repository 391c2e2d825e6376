"""
Repository pattern for data access.

Persists the manual plan override between runs. Session windows are never
stored; every refresh recomputes them from the full event log.
"""

import logging
from typing import Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import ManualOverride

logger = logging.getLogger(__name__)

_MANUAL_MODE_KEY = "is_manual_plan_mode"
_MANUAL_PLAN_KEY = "manual_plan_type"


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the monitor_setting table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS monitor_setting (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


class SettingsRepository:
    """Repository for the user's persisted plan preference.

    The controller reads the override once per refresh and writes it only
    when the user explicitly picks a plan.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        initialize_schema(db_path)

    def get_manual_override(self) -> ManualOverride:
        """Read the stored override.

        Returns:
            ManualOverride, disabled when nothing has been stored
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT key, value FROM monitor_setting WHERE key IN (?, ?)",
                (_MANUAL_MODE_KEY, _MANUAL_PLAN_KEY)
            )
            values = dict(cursor.fetchall())
        finally:
            conn.close()

        return ManualOverride(
            enabled=values.get(_MANUAL_MODE_KEY) == "1",
            tier=values.get(_MANUAL_PLAN_KEY)
        )

    def set_manual_override(self, enabled: bool, tier: Optional[str] = None) -> None:
        """Store or clear the override atomically.

        Clearing (enabled=False) also removes the stored tier.

        Args:
            enabled: Whether manual plan mode is on
            tier: Tier identifier, required when enabled
        """
        if enabled and not tier:
            raise ValueError("tier is required when enabling manual plan mode")

        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO monitor_setting (key, value) VALUES (?, ?)",
                (_MANUAL_MODE_KEY, "1" if enabled else "0")
            )
            if enabled:
                conn.execute(
                    "INSERT OR REPLACE INTO monitor_setting (key, value) VALUES (?, ?)",
                    (_MANUAL_PLAN_KEY, tier)
                )
            else:
                conn.execute(
                    "DELETE FROM monitor_setting WHERE key = ?",
                    (_MANUAL_PLAN_KEY,)
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        logger.info("Manual plan override %s", f"set to {tier}" if enabled else "cleared")


# Global repository instance
_default_repository: Optional[SettingsRepository] = None


def get_repository(db_path: str = DEFAULT_DB_PATH) -> SettingsRepository:
    """Get a shared repository instance.

    Args:
        db_path: Path to SQLite database file

    Returns:
        An instance of SettingsRepository
    """
    global _default_repository
    if _default_repository is None or _default_repository.db_path != db_path:
        _default_repository = SettingsRepository(db_path)
    return _default_repository
