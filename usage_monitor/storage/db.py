"""
Database connection management.

Provides SQLite connection for the persisted monitor settings.
"""

import sqlite3
from pathlib import Path


DEFAULT_DB_PATH = "~/.config/usage-monitor/settings.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Parent directories are created so a path under a fresh config
    directory works on first use.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
