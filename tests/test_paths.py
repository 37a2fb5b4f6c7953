"""
Tests for Claude config directory discovery and project path extraction.
"""

import os

from tokensyphon.config import settings
from tokensyphon.paths import (
    UNKNOWN_PROJECT,
    default_config_dirs,
    extract_project_path,
    get_config_dirs,
    get_projects_dir,
)


class TestGetConfigDirs:
    """Tests for get_config_dirs."""

    def test_no_directories_exist(self, tmp_path):
        """Nothing is returned when neither override nor fallbacks exist."""
        assert get_config_dirs("", fallbacks=[str(tmp_path / "missing")]) == []

    def test_default_fallbacks_under_home(self, isolated_home):
        """~/.claude and ~/.config/claude are found when they exist."""
        (isolated_home / ".claude").mkdir()
        (isolated_home / ".config" / "claude").mkdir(parents=True)

        assert get_config_dirs() == [
            str(isolated_home / ".claude"),
            str(isolated_home / ".config" / "claude"),
        ]

    def test_default_config_dirs_order(self, isolated_home):
        """Legacy location comes before the XDG one."""
        assert default_config_dirs() == [
            str(isolated_home / ".claude"),
            str(isolated_home / ".config" / "claude"),
        ]

    def test_override_comes_first(self, tmp_path, isolated_home):
        """Override directories are listed before fallbacks."""
        custom = tmp_path / "custom"
        custom.mkdir()
        (isolated_home / ".claude").mkdir()

        assert get_config_dirs(str(custom)) == [
            str(custom),
            str(isolated_home / ".claude"),
        ]

    def test_comma_separated_override_with_whitespace(self, tmp_path):
        """Override is split on commas and each part trimmed."""
        a = tmp_path / "a"
        b = tmp_path / "b"
        a.mkdir()
        b.mkdir()

        dirs = get_config_dirs(f" {a} , {b} ,", fallbacks=[])

        assert dirs == [str(a), str(b)]

    def test_missing_override_entries_are_dropped(self, tmp_path):
        """Entries that do not exist are silently omitted."""
        a = tmp_path / "a"
        a.mkdir()

        dirs = get_config_dirs(f"{tmp_path / 'nope'},{a}", fallbacks=[])

        assert dirs == [str(a)]

    def test_duplicates_removed_preserving_order(self, tmp_path):
        """A directory named twice appears once, at its first position."""
        a = tmp_path / "a"
        a.mkdir()

        dirs = get_config_dirs(f"{a},{a}", fallbacks=[str(a)])

        assert dirs == [str(a)]

    def test_tilde_is_expanded(self, isolated_home):
        """~ in the override resolves against HOME."""
        (isolated_home / "claude-alt").mkdir()

        assert get_config_dirs("~/claude-alt", fallbacks=[]) == [
            str(isolated_home / "claude-alt")
        ]

    def test_relative_override_is_made_absolute(self, tmp_path, monkeypatch):
        """./claude resolves against the working directory and matches its absolute form."""
        (tmp_path / "claude").mkdir()
        monkeypatch.chdir(tmp_path)

        dirs = get_config_dirs("./claude", fallbacks=[str(tmp_path / "claude")])

        assert dirs == [str(tmp_path / "claude")]

    def test_relative_override_project_extraction(self, tmp_path, monkeypatch):
        (tmp_path / "claude").mkdir()
        monkeypatch.chdir(tmp_path)
        file_path = str(tmp_path / "claude" / "projects" / "app1" / "s.jsonl")

        dirs = get_config_dirs("./claude", fallbacks=[])

        assert extract_project_path(file_path, dirs) == "app1"

    def test_override_defaults_to_settings(self, tmp_path, monkeypatch):
        """Without an explicit override, settings.claude_config_dir is used."""
        custom = tmp_path / "from-settings"
        custom.mkdir()
        monkeypatch.setattr(settings, "claude_config_dir", str(custom))

        assert get_config_dirs(fallbacks=[]) == [str(custom)]


class TestProjectPaths:
    """Tests for projects directory and project path extraction."""

    def test_get_projects_dir(self):
        assert get_projects_dir("/home/u/.claude") == os.path.join(
            "/home/u/.claude", "projects"
        )

    def test_extract_simple_project(self):
        """The directory directly under projects/ is the project."""
        path = "/home/u/.claude/projects/my-project/session-123.jsonl"

        assert extract_project_path(path, ["/home/u/.claude"]) == "my-project"

    def test_extract_nested_project(self):
        """Nested directories are joined with '/'."""
        path = "/home/u/.claude/projects/team/app/session.jsonl"

        assert extract_project_path(path, ["/home/u/.claude"]) == "team/app"

    def test_extract_uses_matching_config_dir(self):
        """The config dir that actually contains the file is used."""
        path = "/mnt/b/projects/app2/s.jsonl"

        assert extract_project_path(path, ["/mnt/a", "/mnt/b"]) == "app2"

    def test_file_directly_in_projects_is_unknown(self):
        path = "/home/u/.claude/projects/session.jsonl"

        assert extract_project_path(path, ["/home/u/.claude"]) == UNKNOWN_PROJECT

    def test_file_outside_config_dirs_is_unknown(self):
        assert extract_project_path("/tmp/x/s.jsonl", ["/home/u/.claude"]) == "unknown"
