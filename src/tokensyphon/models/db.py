"""
SQLAlchemy database models for tokensyphon.

Two tables: the immutable usage facts parsed from log lines, and the
per-file watermarks used for incremental scanning.
"""

from typing import Optional

from sqlalchemy import BigInteger, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class LogEntry(Base):
    """One usage record from a Claude Code JSONL log line."""

    __tablename__ = "claude_log_entries"

    uuid: Mapped[str] = mapped_column(String(255), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    project_path: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    timestamp: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )  # epoch ms
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cache_creation_input_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    cache_read_input_tokens: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_tokens: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
    )  # sum of the four counters, computed at write time
    cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    git_branch: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    cwd: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Provenance
    file_path: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    file_modified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_claude_log_entries_session_ts", "session_id", "timestamp"),)

    def __repr__(self) -> str:
        return (
            f"<LogEntry(uuid={self.uuid!r}, session_id={self.session_id!r}, "
            f"total_tokens={self.total_tokens})>"
        )


class ProcessedFileRecord(Base):
    """Incremental scan watermark for a log file."""

    __tablename__ = "claude_processed_files"

    file_path: Mapped[str] = mapped_column(Text, primary_key=True)
    last_modified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_line_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )  # complete newline-terminated lines already accounted for
    processed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ProcessedFileRecord(file_path={self.file_path!r}, "
            f"last_line_count={self.last_line_count})>"
        )
