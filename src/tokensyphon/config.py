"""
tokensyphon Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_data_dir() -> str:
    """
    Get XDG-compliant data directory for tokensyphon.

    Follows XDG Base Directory Specification:
    - Uses $XDG_DATA_HOME/tokensyphon if XDG_DATA_HOME is set
    - Falls back to $HOME/.local/share/tokensyphon if not set
    - Returns relative path .tokensyphon if HOME not available (dev/testing)

    Returns:
        str: Path to data directory
    """
    xdg_data_home = os.getenv("XDG_DATA_HOME")
    if xdg_data_home:
        return str(Path(xdg_data_home) / "tokensyphon")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "share" / "tokensyphon")

    # Fallback for development/testing environments without HOME
    return ".tokensyphon"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for tokensyphon logs.

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "tokensyphon" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "tokensyphon" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = ""  # Empty = SQLite file in the XDG data directory
    db_echo: bool = False

    # Log sources
    claude_config_dir: str = ""  # Comma-separated override (CLAUDE_CONFIG_DIR)

    # Ingestion service
    watch_enabled: bool = False
    scan_on_startup: bool = True
    scan_interval_ms: int = 60_000  # <= 0 disables periodic scanning
    watch_debounce_seconds: float = 0.5  # Quiet period before a file event fires
    watch_queue_size: int = 1000  # Bounded channel between watcher and service

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # XDG-compliant log directory (defaults to XDG state dir if empty)
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    @property
    def sqlalchemy_url(self) -> str:
        """Database URL, defaulting to a SQLite file under the data directory."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{Path(get_xdg_data_dir()) / 'usage.db'}"

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
