"""
Claude Code JSONL usage log parser.

Each log file contains one JSON object per line. Lines are parsed
independently: a malformed line is reported as a ScanError and never stops
the parse of its neighbours.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from tokensyphon.models.parsed import ParsedLogEntry, ScanError
from tokensyphon.parsers.utils import (
    coerce_float,
    coerce_int,
    parse_iso_timestamp,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)

UNKNOWN_ROLE = "unknown"


@dataclass(frozen=True)
class ParsedOk:
    """A line that produced a complete log entry."""

    entry: ParsedLogEntry


@dataclass(frozen=True)
class ParseFailure:
    """A line that could not be turned into a log entry."""

    error: ScanError


LineResult = Union[ParsedOk, ParseFailure]


@dataclass
class ParsedContent:
    """Entries and errors parsed from a block of JSONL text."""

    entries: list[ParsedLogEntry] = field(default_factory=list)
    errors: list[ScanError] = field(default_factory=list)
    line_count: int = 0
    """Number of complete (newline-terminated) lines in the content."""


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {name}")


def parse_line(
    line: str,
    file_path: str,
    project_path: str,
    file_modified_at: int,
    line_number: Optional[int] = None,
) -> Optional[LineResult]:
    """
    Parse a single JSONL line into a log entry.

    Args:
        line: A single line from a JSONL file
        file_path: Path to the source file
        project_path: Project path derived from the file location
        file_modified_at: File modification time (epoch ms)
        line_number: 1-based line number for error reporting

    Returns:
        None for blank lines, ParsedOk with the entry, or ParseFailure
        describing why the line was rejected
    """
    trimmed = line.strip()
    if not trimmed:
        return None

    def failure(message: str) -> ParseFailure:
        return ParseFailure(ScanError(file_path=file_path, line=line_number, error=message))

    try:
        raw = json.loads(trimmed, parse_constant=_reject_constant)
    except ValueError as e:
        return failure(f"JSON parse error: {e}")

    if not isinstance(raw, dict):
        return failure(f"Expected a JSON object, got {type(raw).__name__}")

    uuid = raw.get("uuid")
    session_id = raw.get("sessionId")
    timestamp_raw = raw.get("timestamp")
    if not (
        isinstance(uuid, str) and uuid
        and isinstance(session_id, str) and session_id
        and timestamp_raw
    ):
        return failure("Missing required fields (uuid, sessionId, or timestamp)")

    if not isinstance(timestamp_raw, str):
        return failure(f"Invalid timestamp: {timestamp_raw!r}")
    try:
        timestamp = to_epoch_ms(parse_iso_timestamp(timestamp_raw))
    except ValueError:
        return failure(f"Invalid timestamp: {timestamp_raw}")

    message = _as_dict(raw.get("message"))
    usage = _as_dict(message.get("usage"))

    try:
        entry = ParsedLogEntry(
            uuid=uuid,
            session_id=session_id,
            project_path=project_path,
            timestamp=timestamp,
            role=_optional_str(message.get("role")) or UNKNOWN_ROLE,
            model=_optional_str(message.get("model")),
            input_tokens=coerce_int(usage.get("input_tokens")),
            output_tokens=coerce_int(usage.get("output_tokens")),
            cache_creation_input_tokens=coerce_int(usage.get("cache_creation_input_tokens")),
            cache_read_input_tokens=coerce_int(usage.get("cache_read_input_tokens")),
            cost_usd=coerce_float(raw.get("costUSD")),
            git_branch=_optional_str(raw.get("gitBranch")),
            cwd=_optional_str(raw.get("cwd")),
            file_path=file_path,
            file_modified_at=file_modified_at,
        )
    except ValueError as e:
        return failure(f"Invalid usage values: {e}")
    return ParsedOk(entry)


def parse_content(
    content: str,
    file_path: str,
    project_path: str,
    file_modified_at: int,
) -> ParsedContent:
    """Parse an entire JSONL file content."""
    return parse_content_from_line(content, file_path, project_path, file_modified_at, 0)


def parse_content_from_line(
    content: str,
    file_path: str,
    project_path: str,
    file_modified_at: int,
    start_line: int,
) -> ParsedContent:
    """
    Parse JSONL content starting from a 0-indexed line offset.

    Used for incremental updates: lines before ``start_line`` were ingested
    by an earlier scan and are not looked at again.

    The final line of ``content`` is unterminated when the producer is
    mid-write. It is parsed if it is already complete JSON, but it never
    counts towards ``line_count``, so the next scan looks at it again (the
    uuid upsert makes that idempotent). If it does not parse yet, it is left
    for a later scan without reporting an error.

    Args:
        content: Full file content
        file_path: Path to the source file
        project_path: Project path derived from the file location
        file_modified_at: File modification timestamp (epoch ms)
        start_line: First line to parse (0-indexed)

    Returns:
        ParsedContent with entries, errors and the complete-line count
    """
    result = ParsedContent()
    lines = content.split("\n")
    last_index = len(lines) - 1
    result.line_count = last_index

    for index in range(max(start_line, 0), len(lines)):
        parsed = parse_line(
            lines[index], file_path, project_path, file_modified_at, index + 1
        )
        if parsed is None:
            continue

        if isinstance(parsed, ParsedOk):
            result.entries.append(parsed.entry)
        elif index == last_index:
            logger.debug(
                f"Unterminated line {index + 1} in {file_path} not parseable yet"
            )
        else:
            result.errors.append(parsed.error)

    return result
