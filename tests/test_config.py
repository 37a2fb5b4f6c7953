"""
Tests for configuration management.
"""

from pathlib import Path

import pytest

from tokensyphon.config import Settings, get_xdg_data_dir, get_xdg_state_dir


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Ensure ambient overrides don't affect config unit tests."""
    for name in ("DATABASE_URL", "WATCH_ENABLED", "SCAN_INTERVAL_MS", "LOG_DIR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


class TestSettings:
    """Tests for Settings configuration."""

    def test_ingestion_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.watch_enabled is False
        assert settings.scan_on_startup is True
        assert settings.scan_interval_ms == 60_000
        assert settings.watch_debounce_seconds == 0.5
        assert settings.watch_queue_size == 1000

    def test_default_database_is_sqlite_in_data_dir(self, tmp_path):
        settings = Settings(_env_file=None)

        assert settings.sqlalchemy_url == (
            f"sqlite:///{tmp_path / 'xdg-data' / 'tokensyphon' / 'usage.db'}"
        )

    def test_database_url_override(self):
        settings = Settings(_env_file=None, database_url="postgresql://u:p@host/db")

        assert settings.sqlalchemy_url == "postgresql://u:p@host/db"

    def test_env_vars_are_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("claude_config_dir", "/a,/b")
        monkeypatch.setenv("SCAN_INTERVAL_MS", "0")
        monkeypatch.setenv("WATCH_ENABLED", "true")

        settings = Settings(_env_file=None)

        assert settings.claude_config_dir == "/a,/b"
        assert settings.scan_interval_ms == 0
        assert settings.watch_enabled is True

    def test_log_directory_default(self, tmp_path):
        settings = Settings(_env_file=None)

        assert settings.log_directory == tmp_path / "xdg-state" / "tokensyphon" / "logs"

    def test_log_directory_override_expands_user(self, isolated_home):
        settings = Settings(_env_file=None, log_dir="~/mylogs")

        assert settings.log_directory == isolated_home / "mylogs"


class TestXdgDirs:
    """Tests for XDG directory helpers."""

    def test_data_dir_falls_back_to_home(self, monkeypatch, isolated_home):
        monkeypatch.delenv("XDG_DATA_HOME")

        assert get_xdg_data_dir() == str(isolated_home / ".local" / "share" / "tokensyphon")

    def test_state_dir_falls_back_to_home(self, monkeypatch, isolated_home):
        monkeypatch.delenv("XDG_STATE_HOME")

        assert get_xdg_state_dir() == str(
            isolated_home / ".local" / "state" / "tokensyphon" / "logs"
        )

    def test_without_home(self, monkeypatch):
        monkeypatch.delenv("XDG_DATA_HOME")
        monkeypatch.delenv("HOME")

        assert Path(get_xdg_data_dir()) == Path(".tokensyphon")
