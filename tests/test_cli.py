"""
Tests for CLI commands.
"""

import json
from unittest.mock import Mock

import pytest
from rich.console import Console
from typer.testing import CliRunner

from tokensyphon.cli import app

# Disable Rich formatting in tests using NO_COLOR environment variable
runner = CliRunner(env={"NO_COLOR": "1", "TERM": "dumb", "COLUMNS": "200"})


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, session_factory):
    """Route CLI database access to the test database and keep logging untouched."""
    monkeypatch.setattr("tokensyphon.cli.db_session", session_factory)
    monkeypatch.setattr("tokensyphon.cli.setup_logging", Mock())
    monkeypatch.setattr("tokensyphon.cli.console", Console(color_system=None, width=200))


@pytest.fixture
def sample_logs(write_log, log_line):
    return write_log(
        "app1",
        "session-1.jsonl",
        [
            log_line(uuid="u1", cost_usd=0.01),
            log_line(uuid="u2", cost_usd=0.02),
            "{not json",
        ],
    )


class TestScanCommand:
    """Tests for the scan command."""

    def test_scan_imports_logs(self, config_dir, sample_logs):
        result = runner.invoke(app, ["scan", "--config-dir", str(config_dir)])

        assert result.exit_code == 0
        assert "Files processed: 1" in result.stdout
        assert "Entries found: 2" in result.stdout
        assert "Errors: 1" in result.stdout

    def test_incremental_scan_after_full_scan(self, config_dir, sample_logs):
        runner.invoke(app, ["scan", "--config-dir", str(config_dir)])

        result = runner.invoke(app, ["scan", "--config-dir", str(config_dir), "--incremental"])

        assert result.exit_code == 0
        assert "Entries found: 0" in result.stdout
        assert "Files skipped: 1" in result.stdout

    def test_missing_config_dir_fails(self, tmp_path):
        result = runner.invoke(app, ["scan", "--config-dir", str(tmp_path / "nope")])

        assert result.exit_code == 1
        assert "not found" in result.stdout.lower()

    def test_no_config_dirs(self):
        result = runner.invoke(app, ["scan"])

        assert result.exit_code == 0
        assert "No Claude config directories found" in result.stdout


class TestReportCommands:
    """Tests for the report sub-commands."""

    @pytest.fixture(autouse=True)
    def imported(self, config_dir, sample_logs):
        result = runner.invoke(app, ["scan", "--config-dir", str(config_dir)])
        assert result.exit_code == 0

    def test_projects(self):
        result = runner.invoke(app, ["report", "projects"])

        assert result.exit_code == 0
        assert "app1" in result.stdout
        assert "$0.03" in result.stdout

    def test_projects_json(self):
        result = runner.invoke(app, ["report", "projects", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["project_path"] == "app1"
        assert data[0]["cost_usd"] == pytest.approx(0.03)

    def test_daily_json(self):
        result = runner.invoke(app, ["report", "daily", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data) == 1
        assert data[0]["request_count"] == 2

    def test_monthly(self):
        result = runner.invoke(app, ["report", "monthly"])

        assert result.exit_code == 0
        assert "Monthly Usage" in result.stdout

    def test_sessions_json(self):
        result = runner.invoke(app, ["report", "sessions", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["session_id"] == "session-1"
        assert data[0]["request_count"] == 2

    def test_blocks_with_range(self):
        result = runner.invoke(
            app, ["report", "blocks", "--since", "2025-01-15T00:00:00Z", "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data[0]["block_start"] == "2025-01-15T08:00:00.000Z"

    def test_blocks_invalid_time(self):
        result = runner.invoke(app, ["report", "blocks", "--since", "whenever"])

        assert result.exit_code != 0
