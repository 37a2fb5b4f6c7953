"""
Service layer for tokensyphon.
"""

from tokensyphon.services.ingestion_service import IngestionService, IngestionStats

__all__ = ["IngestionService", "IngestionStats"]
