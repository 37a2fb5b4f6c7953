"""
Incremental parsing infrastructure.

Decides, from a file's current stat information and its stored watermark,
whether a log file has to be parsed again and from which line.
"""

from enum import Enum
from typing import Optional

from tokensyphon.models.parsed import FileMetadata, ProcessedFile


class ChangeType(str, Enum):
    """Type of file change detected."""

    NEW = "new"  # Never scanned (full parse)
    APPEND = "append"  # New content added to end (parse from watermark)
    TRUNCATE = "truncate"  # File size decreased (full reparse required)
    UNCHANGED = "unchanged"  # No changes detected


def detect_file_change(
    metadata: FileMetadata,
    processed: Optional[ProcessedFile],
) -> ChangeType:
    """
    Detect what type of change occurred to a file since its last scan.

    Args:
        metadata: Current stat information for the file
        processed: Stored watermark, or None if the file was never scanned

    Returns:
        ChangeType indicating how the file has to be scanned

    Examples:
        >>> wm = ProcessedFile("a.jsonl", 1000, 500, 4, 1000)
        >>> detect_file_change(FileMetadata(modified_at=1000, size=500), wm)
        <ChangeType.UNCHANGED: 'unchanged'>
        >>> detect_file_change(FileMetadata(modified_at=2000, size=800), wm)
        <ChangeType.APPEND: 'append'>
        >>> detect_file_change(FileMetadata(modified_at=2000, size=100), wm)
        <ChangeType.TRUNCATE: 'truncate'>
    """
    if processed is None:
        return ChangeType.NEW

    if (
        processed.last_modified_at >= metadata.modified_at
        and processed.last_size == metadata.size
    ):
        return ChangeType.UNCHANGED

    # Shrunk below what we already consumed: the file was rewritten
    if metadata.size < processed.last_size:
        return ChangeType.TRUNCATE

    if processed.last_line_count <= 0:
        return ChangeType.NEW

    return ChangeType.APPEND
