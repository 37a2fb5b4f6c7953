"""
Tests for database connection management.
"""

import pytest
from sqlalchemy import text

from tokensyphon.config import settings
from tokensyphon.db import connection
from tokensyphon.db.repositories import ClaudeLogRepository


@pytest.fixture
def fresh_engine(tmp_path, monkeypatch):
    """Point the process-wide engine at a new SQLite file."""
    db_path = tmp_path / "nested" / "usage.db"
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{db_path}")
    monkeypatch.setattr(connection, "_engine", None)
    monkeypatch.setattr(connection, "_session_factory", None)
    yield db_path
    if connection._engine is not None:
        connection._engine.dispose()


class TestConnection:
    """Tests for engine and session helpers."""

    def test_check_connection_creates_database(self, fresh_engine):
        assert connection.check_connection() is True
        assert fresh_engine.exists()

    def test_engine_is_created_once(self, fresh_engine):
        assert connection.get_engine() is connection.get_engine()

    def test_init_db_is_idempotent(self, fresh_engine):
        connection.init_db()
        connection.init_db()

        with connection.db_session() as db:
            assert ClaudeLogRepository(db).get_total_entry_count() == 0

    def test_db_session_commits(self, fresh_engine, make_entry):
        with connection.db_session() as db:
            ClaudeLogRepository(db).save_entries([make_entry(uuid="a")])

        with connection.db_session() as db:
            assert ClaudeLogRepository(db).get_entry("a") is not None

    def test_db_session_rolls_back_on_error(self, fresh_engine, make_entry):
        with pytest.raises(RuntimeError):
            with connection.db_session() as db:
                ClaudeLogRepository(db).save_entries([make_entry(uuid="a")])
                raise RuntimeError("boom")

        with connection.db_session() as db:
            assert ClaudeLogRepository(db).get_entry("a") is None

    def test_create_sqlite_engine(self, tmp_path):
        engine = connection.create_db_engine(f"sqlite:///{tmp_path / 'x.db'}")
        try:
            with engine.connect() as conn:
                assert conn.execute(text("SELECT 1")).scalar() == 1
        finally:
            engine.dispose()
