"""
Unit tests for storage layer.

Tests schema creation and the persisted manual plan override.
"""

import os
import tempfile

import pytest

from usage_monitor.storage.db import get_connection
from usage_monitor.storage.models import ManualOverride
from usage_monitor.storage.repository import (
    SettingsRepository,
    get_repository,
    initialize_schema
)


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='monitor_setting'
                """)
                tables = cursor.fetchall()
                assert len(tables) == 1

                cursor = conn.execute("PRAGMA table_info(monitor_setting)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == ['key', 'value']
            finally:
                conn.close()

    def test_schema_creation_is_repeatable(self):
        """Verify initializing twice is harmless."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)

    def test_parent_directories_created(self):
        """Verify a nested database path works on first use."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "nested", "dir", "test.db")
            SettingsRepository(db_path)
            assert os.path.exists(db_path)


class TestManualOverride:
    """Test reading and writing the manual plan override."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "settings.db")
        self.repo = SettingsRepository(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_default_is_disabled(self):
        """Test that a fresh database has no override."""
        assert self.repo.get_manual_override() == ManualOverride(enabled=False, tier=None)

    def test_set_override(self):
        """Test that an enabled override is stored with its tier."""
        self.repo.set_manual_override(True, "Max5")
        assert self.repo.get_manual_override() == ManualOverride(enabled=True, tier="Max5")

    def test_replace_override(self):
        """Test that a second choice replaces the first."""
        self.repo.set_manual_override(True, "Max5")
        self.repo.set_manual_override(True, "Max20")
        assert self.repo.get_manual_override().tier == "Max20"

    def test_clear_override_removes_tier(self):
        """Test that disabling also forgets the stored tier."""
        self.repo.set_manual_override(True, "Pro")
        self.repo.set_manual_override(False)
        assert self.repo.get_manual_override() == ManualOverride(enabled=False, tier=None)

    def test_override_persists_across_instances(self):
        """Test that the choice survives a restart."""
        self.repo.set_manual_override(True, "Max20")
        reopened = SettingsRepository(self.db_path)
        assert reopened.get_manual_override() == ManualOverride(enabled=True, tier="Max20")

    def test_enable_without_tier_rejected(self):
        """Test that manual mode needs a tier."""
        with pytest.raises(ValueError, match="tier is required"):
            self.repo.set_manual_override(True)
        assert not self.repo.get_manual_override().enabled


class TestGetRepository:
    """Test the shared repository accessor."""

    def test_same_path_reuses_instance(self):
        """Test that repeated calls share one repository."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "a.db")
            assert get_repository(db_path) is get_repository(db_path)

    def test_new_path_gives_new_instance(self):
        """Test that a different path opens a different database."""
        with tempfile.TemporaryDirectory() as temp_dir:
            first = get_repository(os.path.join(temp_dir, "a.db"))
            second = get_repository(os.path.join(temp_dir, "b.db"))
            assert first is not second
            assert second.db_path.endswith("b.db")


class TestDefaultLocation:
    """Test where settings live when no path is configured."""

    def test_default_path_is_under_home(self):
        """Test that the default database does not depend on the working directory."""
        from pathlib import Path

        from usage_monitor.config.loader import default_config
        from usage_monitor.storage.db import DEFAULT_DB_PATH

        resolved = Path(DEFAULT_DB_PATH).expanduser()
        assert resolved.is_absolute()
        assert resolved.is_relative_to(Path.home())
        assert default_config().db_path == DEFAULT_DB_PATH
