"""
Repository layer for database operations.
"""

from tokensyphon.db.repositories.base import BaseRepository
from tokensyphon.db.repositories.claude_logs import ClaudeLogRepository

__all__ = [
    "BaseRepository",
    "ClaudeLogRepository",
]
