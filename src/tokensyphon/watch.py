"""
Directory watching for Claude Code usage logs.

Monitors the ``projects/`` tree of every Claude config directory for .jsonl
changes and pushes one debounced FileChangeEvent per burst onto a bounded
queue. The consumer of that queue decides what the change means (append,
rewrite or deletion); the watcher only reports "this file changed".
"""

import logging
import os
import platform
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler

# Use PollingObserver on macOS to avoid fsevents C extension crashes
# during rapid observer start/stop cycles
if platform.system() == "Darwin":  # macOS
    from watchdog.observers.polling import PollingObserver as Observer
else:
    from watchdog.observers import Observer

from tokensyphon.models.parsed import FileChangeEvent
from tokensyphon.paths import get_config_dirs, get_projects_dir

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5
LOG_SUFFIX = ".jsonl"


class WatcherState(str, Enum):
    """Lifecycle of a ClaudeLogWatcher."""

    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


class LogFileEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler that forwards .jsonl paths.

    Create, modify, delete and both sides of a move are all reported the
    same way; existence is checked downstream.
    """

    def __init__(self, on_change: Callable[[str], None]):
        super().__init__()
        self.on_change = on_change

    def _forward(self, path: str) -> None:
        if path.endswith(LOG_SUFFIX):
            self.on_change(path)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file creation events."""
        if not event.is_directory:
            self._forward(str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification events."""
        if not event.is_directory:
            self._forward(str(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle file deletion events."""
        if not event.is_directory:
            self._forward(str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle file move/rename events (old path disappears, new path appears)."""
        if event.is_directory:
            return
        self._forward(str(event.src_path))
        self._forward(str(event.dest_path))


class ClaudeLogWatcher:
    """
    File watcher for Claude log directories.

    Every raw event restarts a per-path debounce timer; only when a path has
    been quiet for ``debounce_seconds`` is a single event emitted for it.
    """

    def __init__(
        self,
        event_queue: "queue.Queue[FileChangeEvent]",
        config_dirs_provider: Callable[[], list[str]] = get_config_dirs,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self.event_queue = event_queue
        self.config_dirs_provider = config_dirs_provider
        self.debounce_seconds = debounce_seconds
        self.observer_factory = observer_factory

        self._lock = threading.Lock()
        self._timers: dict[str, tuple[threading.Timer, object]] = {}
        self._state = WatcherState.IDLE
        self._observer: Optional[Any] = None
        self.watched_dirs: list[str] = []
        self.events_dropped = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def watching(self) -> bool:
        """Check if currently watching."""
        return self._state == WatcherState.WATCHING

    @property
    def pending_count(self) -> int:
        """Number of paths waiting for their debounce window to elapse."""
        with self._lock:
            return len(self._timers)

    def start(self) -> None:
        """Start watching every existing ``projects/`` directory."""
        with self._lock:
            if self._state == WatcherState.WATCHING:
                return

        config_dirs = self.config_dirs_provider()
        if not config_dirs:
            logger.warning("No Claude config directories found to watch")
            return

        observer = self.observer_factory()
        handler = LogFileEventHandler(self.handle_raw_event)

        # Start first so a failing subtree surfaces from its own schedule() call
        observer.start()

        watched: list[str] = []
        for config_dir in config_dirs:
            projects_dir = get_projects_dir(config_dir)
            if not os.path.isdir(projects_dir):
                logger.warning(f"Could not watch {projects_dir}: directory does not exist")
                continue
            try:
                observer.schedule(handler, projects_dir, recursive=True)
            except OSError as e:
                logger.error(f"Watcher error for {projects_dir}: {e}")
                continue
            watched.append(projects_dir)
            logger.info(f"Watching for changes in {projects_dir}")

        if not watched:
            logger.warning("No Claude log directories could be watched")
            observer.stop()
            return

        with self._lock:
            self._observer = observer
            self.watched_dirs = watched
            self._state = WatcherState.WATCHING

    def stop(self) -> None:
        """
        Stop watching all directories.

        Pending debounce timers are cancelled; once this returns no further
        event is put on the queue.
        """
        with self._lock:
            if self._state != WatcherState.WATCHING:
                return
            self._state = WatcherState.STOPPED
            for timer, _ in self._timers.values():
                timer.cancel()
            self._timers.clear()
            observer = self._observer
            self._observer = None
            self.watched_dirs = []

        # Joined outside the lock: the observer thread may be blocked on it
        if observer is not None:
            try:
                observer.stop()
                observer.join(timeout=3)
            except RuntimeError as e:
                logger.error(f"Error stopping observer: {e}", exc_info=True)

        logger.info("Stopped watching Claude log directories")

    def handle_raw_event(self, file_path: str) -> None:
        """Restart the debounce window for a path."""
        token = object()
        with self._lock:
            if self._state != WatcherState.WATCHING:
                return
            existing = self._timers.get(file_path)
            if existing is not None:
                existing[0].cancel()
                logger.debug(f"Debouncing event for {file_path}")

            timer = threading.Timer(self.debounce_seconds, self._fire, args=(file_path, token))
            timer.daemon = True
            self._timers[file_path] = (timer, token)
            timer.start()

    def _fire(self, file_path: str, token: object) -> None:
        with self._lock:
            current = self._timers.get(file_path)
            # A superseded timer can still run if cancel() came too late
            if self._state != WatcherState.WATCHING or current is None or current[1] is not token:
                return
            del self._timers[file_path]

            event = FileChangeEvent(file_path=file_path, timestamp=int(time.time() * 1000))
            try:
                self.event_queue.put_nowait(event)
            except queue.Full:
                self.events_dropped += 1
                logger.warning(
                    f"Event queue full, dropping change for {file_path} "
                    "(next periodic scan will pick it up)"
                )
                return

        logger.debug(f"File modified: {file_path}")
