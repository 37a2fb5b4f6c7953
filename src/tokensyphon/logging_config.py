"""
Logging configuration for tokensyphon.

Console output is split by level (INFO/DEBUG to stdout, WARNING and above to
stderr) and each process context gets its own rotating log file.
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from typing import Optional

from tokensyphon.config import Settings, settings as default_settings

STANDARD_FORMAT = "[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s"


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class _MaxLevelFilter(logging.Filter):
    """Pass records strictly below a level."""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    return logging.Formatter(STANDARD_FORMAT)


def setup_logging(context: str = "app", config: Optional[Settings] = None) -> None:
    """
    Configure root logging for a process context.

    Args:
        context: Name of the running context ("cli", "watch", ...). Used as the
            log file name.
        config: Settings to read logging options from (defaults to global settings)

    Raises:
        PermissionError: If the log directory cannot be created or written
    """
    config = config or default_settings
    root = logging.getLogger()
    root.setLevel(config.log_level.upper())

    # Re-running setup replaces our handlers instead of stacking them
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = _build_formatter(config.log_format)

    if config.log_console_enabled:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))
        stdout_handler.setFormatter(formatter)
        root.addHandler(stdout_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    if config.log_file_enabled:
        log_dir = config.log_directory
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / f"{context}.log",
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.WARNING)
