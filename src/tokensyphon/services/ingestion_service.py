"""
Ingestion service for Claude usage logs.

Owns the in-memory watermark map and coordinates every way a scan can be
triggered: the startup full scan, the periodic incremental scan, watcher
events and manual calls. All scan-and-persist sequences are serialized by a
single lock so two scans never interleave their writes.
"""

import logging
import os
import queue
import threading
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from tokensyphon.config import Settings, settings as default_settings
from tokensyphon.db.connection import db_session
from tokensyphon.db.repositories import ClaudeLogRepository
from tokensyphon.models.parsed import FileChangeEvent, ProcessedFile, ScanResult
from tokensyphon.paths import get_config_dirs
from tokensyphon.scanner import scan_all_files, scan_modified_files
from tokensyphon.watch import ClaudeLogWatcher

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]

# How long the consumer waits on the queue before re-checking for shutdown
_QUEUE_POLL_SECONDS = 0.5


@dataclass
class IngestionStats:
    """Counters for the ingestion service."""

    scans_run: int = 0
    entries_saved: int = 0
    files_deleted: int = 0
    last_scan_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scans_run": self.scans_run,
            "entries_saved": self.entries_saved,
            "files_deleted": self.files_deleted,
            "last_scan_at": self.last_scan_at.isoformat() if self.last_scan_at else None,
        }


class IngestionService:
    """
    Keeps the usage database in sync with the Claude log directories.

    Typical lifecycle::

        service = IngestionService(settings)
        service.initialize(watch_enabled=True)
        ...
        service.dispose()
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        session_factory: SessionFactory = db_session,
        observer_factory: Optional[Callable[[], Any]] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.observer_factory = observer_factory

        self._scan_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._processed_files: dict[str, ProcessedFile] = {}
        self._config_dirs: list[str] = []
        self._initialized = False
        self._stats = IngestionStats()

        self._shutdown_event = threading.Event()
        self._event_queue: "queue.Queue[FileChangeEvent]" = queue.Queue(
            maxsize=max(settings.watch_queue_size, 1)
        )
        self._watcher: Optional[ClaudeLogWatcher] = None
        self._periodic_thread: Optional[threading.Thread] = None
        self._consumer_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.watching

    @property
    def processed_files(self) -> dict[str, ProcessedFile]:
        """Snapshot of the watermark map."""
        with self._state_lock:
            return dict(self._processed_files)

    @property
    def config_dirs(self) -> list[str]:
        if not self._config_dirs:
            return self._resolve_config_dirs()
        return list(self._config_dirs)

    @property
    def stats(self) -> IngestionStats:
        """Copy of the service counters."""
        with self._state_lock:
            return IngestionStats(**vars(self._stats))

    @property
    def event_queue(self) -> "queue.Queue[FileChangeEvent]":
        return self._event_queue

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        watch_enabled: Optional[bool] = None,
        scan_on_startup: Optional[bool] = None,
        scan_interval_ms: Optional[int] = None,
    ) -> None:
        """
        Load watermarks, run the startup scan and start background work.

        Arguments default to the corresponding settings. Errors from the
        startup scan propagate to the caller.

        Args:
            watch_enabled: Start the file watcher
            scan_on_startup: Run and persist a full scan before returning
            scan_interval_ms: Periodic incremental scan interval; <= 0 disables it
        """
        if self._initialized:
            logger.warning("Ingestion service already initialized")
            return

        if watch_enabled is None:
            watch_enabled = self.settings.watch_enabled
        if scan_on_startup is None:
            scan_on_startup = self.settings.scan_on_startup
        if scan_interval_ms is None:
            scan_interval_ms = self.settings.scan_interval_ms

        self._config_dirs = self._resolve_config_dirs()
        logger.info(
            f"Initializing ingestion service "
            f"(config dirs: {', '.join(self._config_dirs) or 'none'})"
        )

        with self.session_factory() as session:
            loaded = ClaudeLogRepository(session).get_processed_files()
        with self._state_lock:
            self._processed_files = loaded
        logger.info(f"Loaded {len(loaded)} processed file records")

        if scan_on_startup:
            result = self.scan_and_import()
            logger.info(
                f"Startup scan: {result.entries_found} entries from "
                f"{result.files_processed} files"
            )

        self._shutdown_event.clear()

        if watch_enabled:
            self._start_watching()

        if scan_interval_ms > 0:
            self._periodic_thread = threading.Thread(
                target=self._periodic_loop,
                args=(scan_interval_ms / 1000,),
                name="tokensyphon-periodic-scan",
                daemon=True,
            )
            self._periodic_thread.start()
            logger.info(f"✓ Periodic scan every {scan_interval_ms} ms")

        self._initialized = True
        logger.info("✓ Ingestion service initialized")

    def dispose(self) -> None:
        """Stop the watcher and background threads. Safe to call repeatedly."""
        if not self._initialized:
            return

        self._shutdown_event.set()

        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

        # In-flight scans are allowed to finish
        for thread in (self._periodic_thread, self._consumer_thread):
            if thread is not None and thread.is_alive():
                thread.join(timeout=5)
                if thread.is_alive():
                    logger.warning(f"{thread.name} did not stop cleanly")
        self._periodic_thread = None
        self._consumer_thread = None

        self._initialized = False
        logger.info("✓ Ingestion service disposed")

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def scan_and_import(self) -> ScanResult:
        """
        Full scan of every config directory, persisted.

        Raises:
            PersistenceError: If entries or watermarks could not be written
        """
        with self._scan_lock:
            result = scan_all_files(self._resolve_config_dirs())
            self._persist(result)
            return result

    def incremental_scan(self) -> ScanResult:
        """
        Scan only files whose (mtime, size) changed since their watermark.

        Raises:
            PersistenceError: If entries or watermarks could not be written
        """
        with self._scan_lock:
            return self._incremental_scan_locked()

    def process_changed_file(self, file_path: str) -> Optional[ScanResult]:
        """
        Bring the database in line with one changed file.

        A file that no longer exists has its entries and watermark removed.
        Otherwise its watermark is ignored so it is re-read in full, and every
        other changed file is picked up in the same pass.

        Returns:
            The scan result, or None if the file was deleted
        """
        with self._scan_lock:
            if not os.path.exists(file_path):
                self._remove_file(file_path)
                return None

            with self._state_lock:
                processed = dict(self._processed_files)
            processed.pop(file_path, None)
            return self._incremental_scan_locked(processed)

    def _incremental_scan_locked(
        self, processed: Optional[dict[str, ProcessedFile]] = None
    ) -> ScanResult:
        if processed is None:
            with self._state_lock:
                processed = dict(self._processed_files)
        result = scan_modified_files(processed, self._resolve_config_dirs())
        self._persist(result)
        return result

    def _persist(self, result: ScanResult) -> None:
        """
        Write a scan's entries, then its watermarks.

        Entries commit first. If the watermark write is lost the next scan
        re-reads the same lines and the uuid upsert absorbs them.
        """
        saved = 0
        if result.entries:
            with self.session_factory() as session:
                saved = ClaudeLogRepository(session).save_entries(result.entries)
            logger.info(f"Saved {saved} log entries")

        if result.file_states:
            with self.session_factory() as session:
                ClaudeLogRepository(session).mark_files_processed(
                    result.file_states.values()
                )

        with self._state_lock:
            self._processed_files.update(result.file_states)
            self._stats.scans_run += 1
            self._stats.entries_saved += saved
            self._stats.last_scan_at = datetime.now()

        for error in result.errors[:10]:
            location = f":{error.line}" if error.line is not None else ""
            logger.warning(f"{error.file_path}{location}: {error.error}")
        if len(result.errors) > 10:
            logger.warning(f"... and {len(result.errors) - 10} more scan errors")

    def _remove_file(self, file_path: str) -> None:
        with self.session_factory() as session:
            removed = ClaudeLogRepository(session).delete_entries_from_file(file_path)
        with self._state_lock:
            self._processed_files.pop(file_path, None)
            self._stats.files_deleted += 1
        logger.info(f"Removed {removed} entries from deleted file {file_path}")

    def _resolve_config_dirs(self) -> list[str]:
        return get_config_dirs(self.settings.claude_config_dir)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _start_watching(self) -> None:
        kwargs: dict[str, Any] = {}
        if self.observer_factory is not None:
            kwargs["observer_factory"] = self.observer_factory

        self._watcher = ClaudeLogWatcher(
            self._event_queue,
            config_dirs_provider=self._resolve_config_dirs,
            debounce_seconds=self.settings.watch_debounce_seconds,
            **kwargs,
        )
        self._consumer_thread = threading.Thread(
            target=self._consume_events,
            name="tokensyphon-watch-consumer",
            daemon=True,
        )
        self._consumer_thread.start()
        self._watcher.start()

        if self._watcher.watching:
            logger.info("✓ File watcher started")

    def _consume_events(self) -> None:
        """Drain watcher events until shutdown."""
        while not self._shutdown_event.is_set():
            try:
                event = self._event_queue.get(timeout=_QUEUE_POLL_SECONDS)
            except queue.Empty:
                continue

            try:
                self.process_changed_file(event.file_path)
            except Exception as e:
                logger.error(f"Error processing {event.file_path}: {e}", exc_info=True)
            finally:
                self._event_queue.task_done()

    def _periodic_loop(self, interval_seconds: float) -> None:
        """Run incremental scans until shutdown, skipping ticks while a scan is busy."""
        while not self._shutdown_event.wait(timeout=interval_seconds):
            if not self._scan_lock.acquire(blocking=False):
                logger.debug("Scan in progress, skipping periodic scan")
                continue
            try:
                result = self._incremental_scan_locked()
                if result.entries_found:
                    logger.info(f"Periodic scan imported {result.entries_found} entries")
            except Exception as e:
                logger.error(f"Error in periodic scan: {e}", exc_info=True)
            finally:
                self._scan_lock.release()
