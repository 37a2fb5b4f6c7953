"""
Parsed log data models.

These are intermediate Python dataclasses representing log records and scan
bookkeeping before (and after) they are stored in the database. Used by the
parser, scanner and ingestion service.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ParsedLogEntry:
    """Normalized usage record parsed from one JSONL line."""

    uuid: str
    session_id: str
    project_path: str
    timestamp: int  # epoch ms
    role: str
    model: Optional[str]
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: int
    cache_read_input_tokens: int
    cost_usd: float
    git_branch: Optional[str]
    cwd: Optional[str]
    file_path: str
    file_modified_at: int  # epoch ms

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_input_tokens
            + self.cache_read_input_tokens
        )

    def to_row(self) -> dict[str, Any]:
        """Column mapping for the claude_log_entries table."""
        row = asdict(self)
        row["total_tokens"] = self.total_tokens
        return row


@dataclass
class ProcessedFile:
    """Watermark for a log file that has already been scanned."""

    file_path: str
    last_modified_at: int  # epoch ms
    last_size: int  # bytes
    last_line_count: int  # complete lines accounted for
    processed_at: int  # epoch ms


@dataclass(frozen=True)
class FileMetadata:
    """Snapshot of a file's stat information."""

    modified_at: int  # epoch ms
    size: int


@dataclass
class ScanError:
    """A per-file or per-line problem found during a scan."""

    file_path: str
    error: str
    line: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"file_path": self.file_path, "error": self.error}
        if self.line is not None:
            result["line"] = self.line
        return result


@dataclass
class ScanResult:
    """Outcome of one scan operation. Never persisted."""

    entries: list[ParsedLogEntry] = field(default_factory=list)
    files_processed: int = 0
    files_skipped: int = 0
    errors: list[ScanError] = field(default_factory=list)
    config_dirs_used: list[str] = field(default_factory=list)
    file_states: dict[str, ProcessedFile] = field(default_factory=dict)
    """Watermarks observed by the scan for every processed file."""

    @property
    def entries_found(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        """Summary without the entries themselves."""
        return {
            "files_processed": self.files_processed,
            "files_skipped": self.files_skipped,
            "entries_found": self.entries_found,
            "errors": [e.to_dict() for e in self.errors],
            "config_dirs_used": list(self.config_dirs_used),
        }


@dataclass(frozen=True)
class FileChangeEvent:
    """Debounced file change emitted by the watcher."""

    file_path: str
    timestamp: int  # epoch ms
    type: str = "modified"
