"""
Claude log repository.

Persists parsed log entries and per-file watermarks, and computes the usage
aggregations. Every aggregation is derived from the ``claude_log_entries``
rows at call time.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tokensyphon.db.repositories.base import BaseRepository
from tokensyphon.exceptions import PersistenceError
from tokensyphon.models.db import LogEntry, ProcessedFileRecord
from tokensyphon.models.parsed import ParsedLogEntry, ProcessedFile
from tokensyphon.models.usage import (
    BILLING_BLOCK_MS,
    BillingBlockUsage,
    DailyUsage,
    MonthlyUsage,
    ProjectSummary,
    SessionUsage,
    TokenTotals,
)
from tokensyphon.parsers.utils import ms_to_iso

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=TokenTotals)

_TOKEN_COLUMNS = (
    LogEntry.input_tokens,
    LogEntry.output_tokens,
    LogEntry.cache_creation_input_tokens,
    LogEntry.cache_read_input_tokens,
    LogEntry.total_tokens,
    LogEntry.cost_usd,
)


def _local_date(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d")


def _local_month(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m")


def _add_usage(totals: TokenTotals, row: Any) -> None:
    totals.input_tokens += row.input_tokens
    totals.output_tokens += row.output_tokens
    totals.cache_creation_input_tokens += row.cache_creation_input_tokens
    totals.cache_read_input_tokens += row.cache_read_input_tokens
    totals.total_tokens += row.total_tokens
    totals.cost_usd += row.cost_usd
    totals.request_count += 1


class ClaudeLogRepository(BaseRepository[LogEntry]):
    """Repository for LogEntry and ProcessedFileRecord models."""

    def __init__(self, session: Session):
        super().__init__(LogEntry, session)

    def _insert(self, model: Any) -> Any:
        """Dialect-specific INSERT that supports ON CONFLICT."""
        bind = self.session.get_bind()
        if bind.dialect.name == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_entries(self, entries: Iterable[ParsedLogEntry]) -> int:
        """
        Upsert log entries keyed by uuid in a single statement.

        Re-saving an entry with a known uuid overwrites the stored row. Nothing
        is written if any row fails.

        Args:
            entries: Parsed entries to store

        Returns:
            Number of distinct entries written

        Raises:
            PersistenceError: If the batch could not be written
        """
        # Last occurrence wins; PostgreSQL refuses to touch a row twice per statement
        rows = {entry.uuid: entry.to_row() for entry in entries}
        if not rows:
            return 0

        stmt = self._insert(LogEntry)
        stmt = stmt.on_conflict_do_update(
            index_elements=["uuid"],
            set_={
                column.name: stmt.excluded[column.name]
                for column in LogEntry.__table__.columns
                if column.name != "uuid"
            },
        )

        try:
            self.session.execute(stmt, list(rows.values()))
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            logger.error(f"Failed to save {len(rows)} log entries: {e}")
            raise PersistenceError("save log entries", len(rows)) from e

        return len(rows)

    def mark_files_processed(self, files: Iterable[ProcessedFile]) -> None:
        """
        Upsert watermarks keyed by file path.

        Raises:
            PersistenceError: If the watermarks could not be written
        """
        rows = {
            f.file_path: {
                "file_path": f.file_path,
                "last_modified_at": f.last_modified_at,
                "last_size": f.last_size,
                "last_line_count": f.last_line_count,
                "processed_at": f.processed_at,
            }
            for f in files
        }
        if not rows:
            return

        stmt = self._insert(ProcessedFileRecord)
        stmt = stmt.on_conflict_do_update(
            index_elements=["file_path"],
            set_={
                name: stmt.excluded[name]
                for name in (
                    "last_modified_at",
                    "last_size",
                    "last_line_count",
                    "processed_at",
                )
            },
        )

        try:
            self.session.execute(stmt, list(rows.values()))
        except (SQLAlchemyError, OverflowError, ValueError) as e:
            logger.error(f"Failed to mark {len(rows)} files processed: {e}")
            raise PersistenceError("mark files processed", len(rows)) from e

    def mark_file_processed(self, file: ProcessedFile) -> None:
        """Upsert one file watermark."""
        self.mark_files_processed([file])

    def delete_entries_from_file(self, file_path: str) -> int:
        """
        Delete all entries parsed from a file, and the file's watermark.

        Returns:
            Number of log entries removed

        Raises:
            PersistenceError: If the rows could not be deleted
        """
        try:
            result = self.session.execute(
                delete(LogEntry).where(LogEntry.file_path == file_path)
            )
            self.session.execute(
                delete(ProcessedFileRecord).where(ProcessedFileRecord.file_path == file_path)
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete entries from {file_path}: {e}")
            raise PersistenceError("delete entries from file") from e
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Bookkeeping reads
    # ------------------------------------------------------------------

    def get_processed_files(self) -> dict[str, ProcessedFile]:
        """Get all file watermarks keyed by path."""
        records = self.session.execute(select(ProcessedFileRecord)).scalars().all()
        return {
            r.file_path: ProcessedFile(
                file_path=r.file_path,
                last_modified_at=r.last_modified_at,
                last_size=r.last_size,
                last_line_count=r.last_line_count,
                processed_at=r.processed_at,
            )
            for r in records
        }

    def get_entry(self, uuid: str) -> Optional[LogEntry]:
        """Get a stored entry by uuid."""
        return self.get(uuid)

    def get_total_entry_count(self) -> int:
        return self.count()

    def get_total_cost(self) -> float:
        total = self.session.execute(select(func.sum(LogEntry.cost_usd))).scalar()
        return float(total or 0.0)

    # ------------------------------------------------------------------
    # Aggregations
    # ------------------------------------------------------------------

    def _group_by_bucket(
        self,
        key_fn: Callable[[int], Any],
        factory: Callable[[Any], T],
        project: Optional[str] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        key_filter: Optional[Callable[[Any], bool]] = None,
    ) -> tuple[dict[Any, T], dict[Any, set[str]], dict[Any, set[str]]]:
        """Stream entry rows once and sum them into buckets keyed by key_fn(timestamp)."""
        stmt = select(LogEntry.timestamp, LogEntry.session_id, *_TOKEN_COLUMNS)
        if project:
            stmt = stmt.where(LogEntry.project_path == project)
        if start_time is not None:
            stmt = stmt.where(LogEntry.timestamp >= start_time)
        if end_time is not None:
            stmt = stmt.where(LogEntry.timestamp <= end_time)

        buckets: dict[Any, T] = {}
        sessions: dict[Any, set[str]] = {}
        days: dict[Any, set[str]] = {}

        for row in self.session.execute(stmt.execution_options(yield_per=1000)):
            key = key_fn(row.timestamp)
            if key_filter is not None and not key_filter(key):
                continue
            totals = buckets.get(key)
            if totals is None:
                totals = buckets[key] = factory(key)
                sessions[key] = set()
                days[key] = set()
            _add_usage(totals, row)
            sessions[key].add(row.session_id)
            days[key].add(_local_date(row.timestamp))

        return buckets, sessions, days

    def get_daily_usage(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[DailyUsage]:
        """
        Usage grouped by local calendar date, newest first.

        Args:
            start_date: Inclusive lower bound (YYYY-MM-DD)
            end_date: Inclusive upper bound (YYYY-MM-DD)
            project: Only include entries from this project path
        """

        def in_range(day: str) -> bool:
            return (not start_date or day >= start_date) and (
                not end_date or day <= end_date
            )

        buckets, sessions, _ = self._group_by_bucket(
            _local_date,
            lambda day: DailyUsage(date=day),
            project=project,
            key_filter=in_range,
        )
        for day, usage in buckets.items():
            usage.session_count = len(sessions[day])

        return sorted(buckets.values(), key=lambda u: u.date, reverse=True)

    def get_monthly_usage(
        self,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        project: Optional[str] = None,
    ) -> list[MonthlyUsage]:
        """
        Usage grouped by local calendar month, newest first.

        Args:
            start_month: Inclusive lower bound (YYYY-MM)
            end_month: Inclusive upper bound (YYYY-MM)
            project: Only include entries from this project path
        """

        def in_range(month: str) -> bool:
            return (not start_month or month >= start_month) and (
                not end_month or month <= end_month
            )

        buckets, sessions, days = self._group_by_bucket(
            _local_month,
            lambda month: MonthlyUsage(month=month),
            project=project,
            key_filter=in_range,
        )
        for month, usage in buckets.items():
            usage.session_count = len(sessions[month])
            usage.day_count = len(days[month])

        return sorted(buckets.values(), key=lambda u: u.month, reverse=True)

    def get_billing_block_usage(
        self,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> list[BillingBlockUsage]:
        """
        Usage grouped into fixed 5-hour blocks anchored at the Unix epoch.

        A block index is ``timestamp // BILLING_BLOCK_MS``; block boundaries
        are exact multiples of the block size. Newest block first.

        Args:
            start_time: Inclusive lower bound (epoch ms)
            end_time: Inclusive upper bound (epoch ms)
        """
        buckets, _, _ = self._group_by_bucket(
            lambda ts: ts // BILLING_BLOCK_MS,
            lambda index: BillingBlockUsage(
                block_start=ms_to_iso(index * BILLING_BLOCK_MS),
                block_end=ms_to_iso((index + 1) * BILLING_BLOCK_MS),
            ),
            start_time=start_time,
            end_time=end_time,
        )
        return [buckets[index] for index in sorted(buckets, reverse=True)]

    def get_session_usage(
        self,
        limit: int = 50,
        offset: int = 0,
        project: Optional[str] = None,
    ) -> tuple[list[SessionUsage], int]:
        """
        Usage grouped by session, most recently active first.

        Args:
            limit: Page size
            offset: Number of sessions to skip
            project: Only include sessions from this project path

        Returns:
            Tuple of (sessions on this page, total session count)
        """
        last_seen = func.max(LogEntry.timestamp).label("end_time")
        stmt = select(
            LogEntry.session_id,
            func.max(LogEntry.project_path).label("project_path"),
            func.min(LogEntry.timestamp).label("start_time"),
            last_seen,
            *(func.coalesce(func.sum(c), 0).label(c.key) for c in _TOKEN_COLUMNS),
            func.count().label("request_count"),
        ).group_by(LogEntry.session_id)

        count_stmt = select(func.count(distinct(LogEntry.session_id)))

        if project:
            stmt = stmt.where(LogEntry.project_path == project)
            count_stmt = count_stmt.where(LogEntry.project_path == project)

        stmt = (
            stmt.order_by(last_seen.desc(), LogEntry.session_id)
            .limit(limit)
            .offset(offset)
        )

        rows = self.session.execute(stmt).all()
        total_count = self.session.execute(count_stmt).scalar() or 0

        latest = self._latest_session_labels([row.session_id for row in rows])

        sessions = []
        for row in rows:
            model, git_branch = latest.get(row.session_id, (None, None))
            sessions.append(
                SessionUsage(
                    session_id=row.session_id,
                    project_path=row.project_path,
                    start_time=ms_to_iso(row.start_time),
                    end_time=ms_to_iso(row.end_time),
                    input_tokens=row.input_tokens,
                    output_tokens=row.output_tokens,
                    cache_creation_input_tokens=row.cache_creation_input_tokens,
                    cache_read_input_tokens=row.cache_read_input_tokens,
                    total_tokens=row.total_tokens,
                    cost_usd=float(row.cost_usd),
                    request_count=row.request_count,
                    model=model,
                    git_branch=git_branch,
                )
            )

        return sessions, total_count

    def _latest_session_labels(
        self, session_ids: list[str]
    ) -> dict[str, tuple[Optional[str], Optional[str]]]:
        """Last non-null model and git branch seen in each session."""
        if not session_ids:
            return {}

        stmt = (
            select(LogEntry.session_id, LogEntry.model, LogEntry.git_branch)
            .where(LogEntry.session_id.in_(session_ids))
            .order_by(LogEntry.timestamp, LogEntry.uuid)
        )

        latest: dict[str, tuple[Optional[str], Optional[str]]] = {}
        for session_id, model, git_branch in self.session.execute(stmt):
            prev_model, prev_branch = latest.get(session_id, (None, None))
            latest[session_id] = (model or prev_model, git_branch or prev_branch)
        return latest

    def get_projects(self) -> list[ProjectSummary]:
        """Per-project summary, most recently active first."""
        last_activity = func.max(LogEntry.timestamp).label("last_activity")
        stmt = (
            select(
                LogEntry.project_path,
                func.count(distinct(LogEntry.session_id)).label("session_count"),
                func.coalesce(func.sum(LogEntry.total_tokens), 0).label("total_tokens"),
                func.coalesce(func.sum(LogEntry.cost_usd), 0.0).label("cost_usd"),
                last_activity,
            )
            .group_by(LogEntry.project_path)
            .order_by(last_activity.desc(), LogEntry.project_path)
        )

        return [
            ProjectSummary(
                project_path=row.project_path,
                session_count=row.session_count,
                total_tokens=row.total_tokens,
                cost_usd=float(row.cost_usd),
                last_activity=ms_to_iso(row.last_activity),
            )
            for row in self.session.execute(stmt)
        ]
