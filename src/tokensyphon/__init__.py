"""tokensyphon - incremental ingestion of Claude Code usage logs."""

__version__ = "0.1.0"
