"""
Database connection management for tokensyphon.

Provides database session management, connection handling, and transaction support.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tokensyphon.config import settings
from tokensyphon.models.db import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_engine_lock = threading.Lock()


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite engines allow cross-thread use because the watcher, the periodic
    scan and the caller all open sessions from different threads.
    """
    if url.startswith("sqlite"):
        database = url.split("///", 1)[-1]
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )

    return create_engine(url, echo=echo, pool_pre_ping=True)


def get_engine() -> Engine:
    """Get the process-wide engine, creating it and its tables on first use."""
    global _engine, _session_factory
    with _engine_lock:
        if _engine is None:
            _engine = create_db_engine(settings.sqlalchemy_url, echo=settings.db_echo)
            Base.metadata.create_all(bind=_engine)
            _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
        return _engine


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        Session: A new SQLAlchemy session (caller commits and closes)
    """
    get_engine()
    assert _session_factory is not None
    return _session_factory()


@contextmanager
def db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Yields:
        Session: A SQLAlchemy session

    Example:
        >>> with db_session() as db:
        >>>     repo = ClaudeLogRepository(db)
        >>>     repo.get_total_cost()
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create all tables on the configured database."""
    Base.metadata.create_all(bind=get_engine())


def check_connection() -> bool:
    """
    Check if database connection is working.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with db_session() as db:
            db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        return False
