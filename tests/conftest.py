"""
Pytest configuration and fixtures for tokensyphon tests.

Provides an isolated HOME, a throwaway Claude config directory, per-test
SQLite databases and builders for JSONL log lines and parsed entries.
"""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator, Optional

import pytest
from sqlalchemy.orm import Session, sessionmaker

from tokensyphon.config import settings
from tokensyphon.db.connection import create_db_engine
from tokensyphon.models.db import Base
from tokensyphon.models.parsed import ParsedLogEntry


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch) -> Path:
    """Point HOME and XDG dirs at the test directory so real logs are never read."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
    monkeypatch.delenv("CLAUDE_CONFIG_DIR", raising=False)
    monkeypatch.setattr(settings, "claude_config_dir", "")
    return home


@pytest.fixture
def config_dir(tmp_path) -> Path:
    """A Claude config directory with an empty projects/ tree."""
    path = tmp_path / "claude"
    (path / "projects").mkdir(parents=True)
    return path


@pytest.fixture
def test_engine(tmp_path):
    """SQLite file database, shared across threads within one test."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'db' / 'usage.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> Callable[[], Any]:
    """Context-manager session factory with commit/rollback, like db_session()."""
    factory = sessionmaker(bind=test_engine, autoflush=False)

    @contextmanager
    def _session() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _session


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """A plain session for repository tests."""
    session = sessionmaker(bind=test_engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def log_line() -> Callable[..., str]:
    """Build one Claude Code JSONL log line."""

    def _build(
        uuid: str = "msg-1",
        session_id: str = "session-1",
        timestamp: str = "2025-01-15T12:00:00.000Z",
        input_tokens: int = 100,
        output_tokens: int = 50,
        cache_creation_input_tokens: int = 0,
        cache_read_input_tokens: int = 0,
        cost_usd: Optional[float] = 0.01,
        model: Optional[str] = "claude-sonnet-4-20250514",
        role: str = "assistant",
        git_branch: Optional[str] = None,
        cwd: Optional[str] = None,
    ) -> str:
        record: dict[str, Any] = {
            "uuid": uuid,
            "sessionId": session_id,
            "timestamp": timestamp,
            "type": role,
            "message": {
                "role": role,
                "model": model,
                "usage": {
                    "input_tokens": input_tokens,
                    "output_tokens": output_tokens,
                    "cache_creation_input_tokens": cache_creation_input_tokens,
                    "cache_read_input_tokens": cache_read_input_tokens,
                },
            },
        }
        if cost_usd is not None:
            record["costUSD"] = cost_usd
        if git_branch is not None:
            record["gitBranch"] = git_branch
        if cwd is not None:
            record["cwd"] = cwd
        return json.dumps(record)

    return _build


@pytest.fixture
def write_log(config_dir) -> Callable[..., Path]:
    """Write newline-terminated lines to projects/<project>/<name>."""

    def _write(project: str, name: str, lines: list[str], append: bool = False) -> Path:
        path = config_dir / "projects" / project / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a" if append else "w", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")
        return path

    return _write


@pytest.fixture
def make_entry() -> Callable[..., ParsedLogEntry]:
    """Build a ParsedLogEntry with sensible defaults."""

    def _build(**overrides: Any) -> ParsedLogEntry:
        values: dict[str, Any] = {
            "uuid": "msg-1",
            "session_id": "session-1",
            "project_path": "app1",
            "timestamp": 1736942400000,  # 2025-01-15T12:00:00Z
            "role": "assistant",
            "model": "claude-sonnet-4-20250514",
            "input_tokens": 100,
            "output_tokens": 50,
            "cache_creation_input_tokens": 0,
            "cache_read_input_tokens": 0,
            "cost_usd": 0.01,
            "git_branch": None,
            "cwd": None,
            "file_path": "/logs/projects/app1/session-1.jsonl",
            "file_modified_at": 1736942400000,
        }
        values.update(overrides)
        return ParsedLogEntry(**values)

    return _build
