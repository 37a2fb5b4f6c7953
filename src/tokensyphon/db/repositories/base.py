"""
Base repository with common CRUD operations.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tokensyphon.models.db import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic repository bound to one model and one session."""

    def __init__(self, model: Type[ModelType], session: Session):
        self.model = model
        self.session = session

    def get(self, key: Any) -> Optional[ModelType]:
        """Get an instance by primary key."""
        return self.session.get(self.model, key)

    def get_all(self, limit: Optional[int] = None, offset: int = 0) -> list[ModelType]:
        """Get all instances, optionally paginated."""
        stmt = select(self.model).offset(offset)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Count all rows of the model."""
        return self.session.execute(select(func.count()).select_from(self.model)).scalar_one()
