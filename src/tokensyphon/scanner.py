"""
Log file scanner.

Walks the ``projects/`` tree of every Claude config directory, reads JSONL
files and turns them into parsed entries. Two entry points share the same
primitives:

- ``scan_all_files``: parse every file from the first line.
- ``scan_modified_files``: consult stored watermarks and parse only files
  whose (mtime, size) changed, starting at the stored line offset.

Scans only ever read source files.
"""

import logging
import os
import time
from pathlib import Path
from typing import Mapping, Optional

from tokensyphon.models.parsed import (
    FileMetadata,
    ProcessedFile,
    ScanError,
    ScanResult,
)
from tokensyphon.parsers.incremental import ChangeType, detect_file_change
from tokensyphon.parsers.jsonl import parse_content, parse_content_from_line
from tokensyphon.paths import extract_project_path, get_config_dirs, get_projects_dir

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"


def _now_ms() -> int:
    return int(time.time() * 1000)


def find_jsonl_files(directory: str) -> list[str]:
    """
    Recursively find all .jsonl files in a directory.

    Missing or unreadable directories yield no files.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.debug(f"Could not read directory {directory}: not a directory")
        return []

    files: list[str] = []
    try:
        for path in root.rglob(f"*{LOG_SUFFIX}"):
            if path.is_file():
                files.append(str(path))
    except OSError as e:
        logger.debug(f"Could not read directory {directory}: {e}")

    return sorted(files)


def get_file_metadata(file_path: str) -> Optional[FileMetadata]:
    """
    Get file metadata for tracking.

    Returns:
        FileMetadata, or None if the file does not exist or cannot be stat'ed
    """
    try:
        stat = os.stat(file_path)
    except OSError:
        return None
    return FileMetadata(modified_at=stat.st_mtime_ns // 1_000_000, size=stat.st_size)


def _read_file(file_path: str) -> tuple[FileMetadata, str]:
    """Stat then read a file. The stat is taken first so it never overstates what was read."""
    stat = os.stat(file_path)
    metadata = FileMetadata(modified_at=stat.st_mtime_ns // 1_000_000, size=stat.st_size)
    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read()
    return metadata, content


def _scan(
    processed_files: Optional[Mapping[str, ProcessedFile]],
    config_dirs: Optional[list[str]],
) -> ScanResult:
    if config_dirs is None:
        config_dirs = get_config_dirs()

    result = ScanResult(config_dirs_used=list(config_dirs))
    if not config_dirs:
        logger.warning("No Claude config directories found")
        return result

    incremental = processed_files is not None

    for config_dir in config_dirs:
        projects_dir = get_projects_dir(config_dir)
        jsonl_files = find_jsonl_files(projects_dir)
        if not incremental:
            logger.info(f"Found {len(jsonl_files)} JSONL files in {projects_dir}")

        for file_path in jsonl_files:
            processed = processed_files.get(file_path) if incremental else None

            try:
                if incremental:
                    current = get_file_metadata(file_path)
                    if current is None:
                        raise FileNotFoundError(f"No such file: {file_path}")
                    change_type = detect_file_change(current, processed)
                    if change_type == ChangeType.UNCHANGED:
                        result.files_skipped += 1
                        continue
                else:
                    change_type = ChangeType.NEW

                metadata, content = _read_file(file_path)
            except OSError as e:
                result.errors.append(
                    ScanError(file_path=file_path, error=f"Failed to read file: {e}")
                )
                result.files_skipped += 1
                continue

            project_path = extract_project_path(file_path, config_dirs)

            if change_type == ChangeType.APPEND and processed is not None:
                parsed = parse_content_from_line(
                    content,
                    file_path,
                    project_path,
                    metadata.modified_at,
                    processed.last_line_count,
                )
                if parsed.line_count < processed.last_line_count:
                    # Grew in bytes but has fewer lines: rewritten in place
                    logger.info(
                        f"{file_path} has {parsed.line_count} lines, watermark was "
                        f"{processed.last_line_count}; reparsing from the start"
                    )
                    parsed = parse_content(
                        content, file_path, project_path, metadata.modified_at
                    )
            else:
                if change_type == ChangeType.TRUNCATE:
                    logger.info(f"{file_path} was truncated; reparsing from the start")
                parsed = parse_content(
                    content, file_path, project_path, metadata.modified_at
                )

            result.entries.extend(parsed.entries)
            result.errors.extend(parsed.errors)
            result.files_processed += 1
            result.file_states[file_path] = ProcessedFile(
                file_path=file_path,
                last_modified_at=metadata.modified_at,
                last_size=metadata.size,
                last_line_count=parsed.line_count,
                processed_at=_now_ms(),
            )

            if parsed.entries:
                logger.debug(f"Parsed {len(parsed.entries)} entries from {file_path}")

    return result


def scan_all_files(config_dirs: Optional[list[str]] = None) -> ScanResult:
    """
    Scan all Claude config directories and parse every JSONL file fully.

    Args:
        config_dirs: Directories to scan (defaults to ``get_config_dirs()``)

    Returns:
        ScanResult with all parsed entries
    """
    if config_dirs is None:
        config_dirs = get_config_dirs()
    if config_dirs:
        logger.info(
            f"Scanning {len(config_dirs)} config directories: {', '.join(config_dirs)}"
        )

    result = _scan(None, config_dirs)

    logger.info(
        f"Scan complete: {result.files_processed} files processed, "
        f"{result.entries_found} entries found, {len(result.errors)} errors"
    )
    return result


def scan_modified_files(
    processed_files: Mapping[str, ProcessedFile],
    config_dirs: Optional[list[str]] = None,
) -> ScanResult:
    """
    Scan only files that changed since their stored watermark.

    Args:
        processed_files: Map of file path to stored watermark
        config_dirs: Directories to scan (defaults to ``get_config_dirs()``)

    Returns:
        ScanResult with only new/modified entries
    """
    result = _scan(processed_files, config_dirs)
    logger.debug(
        f"Incremental scan: {result.files_processed} processed, "
        f"{result.files_skipped} skipped, {result.entries_found} entries"
    )
    return result
