"""
Claude config directory discovery.

Resolution order:
1. Explicit override (CLAUDE_CONFIG_DIR, comma-separated for multiple mounts)
2. ~/.claude (legacy location)
3. ~/.config/claude (XDG location)

Only directories that exist are returned.
"""

import os
from pathlib import Path
from typing import Iterable, Optional

from tokensyphon.config import settings

UNKNOWN_PROJECT = "unknown"


def default_config_dirs() -> list[str]:
    """Conventional Claude config locations, in priority order."""
    home = Path.home()
    return [str(home / ".claude"), str(home / ".config" / "claude")]


def get_config_dirs(
    override: Optional[str] = None,
    fallbacks: Optional[Iterable[str]] = None,
) -> list[str]:
    """
    Get Claude config directories to scan for log files.

    Args:
        override: Comma-separated directory list. Defaults to
            ``settings.claude_config_dir``.
        fallbacks: Locations checked after the override. Defaults to
            ``default_config_dirs()``.

    Returns:
        De-duplicated, ordered list of existing directories as absolute paths
    """
    if override is None:
        override = settings.claude_config_dir
    if fallbacks is None:
        fallbacks = default_config_dirs()

    dirs: list[str] = []
    candidates = [p.strip() for p in override.split(",")] if override else []
    candidates.extend(fallbacks)

    for candidate in candidates:
        if not candidate:
            continue
        path = os.path.abspath(os.path.expanduser(candidate))
        if path in dirs:
            continue
        if os.path.isdir(path):
            dirs.append(path)

    return dirs


def get_projects_dir(config_dir: str) -> str:
    """Get the projects subdirectory for a config dir."""
    return os.path.join(config_dir, "projects")


def extract_project_path(file_path: str, config_dirs: Iterable[str]) -> str:
    """
    Extract the project path from a JSONL file path.

    Given ``/home/u/.claude/projects/my-project/session-123.jsonl`` returns
    ``my-project``. Nested directories are kept (``team/app``).

    Returns:
        The project path, or ``"unknown"`` if it cannot be determined
    """
    for config_dir in config_dirs:
        projects_dir = get_projects_dir(config_dir)
        prefix = projects_dir.rstrip(os.sep) + os.sep
        if file_path.startswith(prefix):
            parts = file_path[len(prefix):].split(os.sep)
            if len(parts) > 1:
                return "/".join(parts[:-1])
    return UNKNOWN_PROJECT
