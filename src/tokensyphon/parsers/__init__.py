"""
Parsers for Claude Code usage logs.
"""

from tokensyphon.parsers.incremental import ChangeType, detect_file_change
from tokensyphon.parsers.jsonl import (
    LineResult,
    ParsedContent,
    ParseFailure,
    ParsedOk,
    parse_content,
    parse_content_from_line,
    parse_line,
)

__all__ = [
    "ChangeType",
    "LineResult",
    "ParseFailure",
    "ParsedContent",
    "ParsedOk",
    "detect_file_change",
    "parse_content",
    "parse_content_from_line",
    "parse_line",
]
