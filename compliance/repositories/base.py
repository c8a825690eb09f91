"""
Base repository class with common persistence operations.
"""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliance.core.exceptions import RepositoryError
from compliance.models.base import BaseModel as DBBaseModel

ModelType = TypeVar("ModelType", bound=DBBaseModel)


class BaseRepository(Generic[ModelType]):
    """Base repository class with common operations."""

    def __init__(self, model: Type[ModelType], db: Session):
        """
        Initialize repository with model and database session.

        Args:
            model: SQLAlchemy model class
            db: Database session
        """
        self.model = model
        self.db = db

    def get_one_by(self, **filters) -> Optional[ModelType]:
        """
        Get the first record matching all filters.

        Args:
            **filters: Column equality filters

        Returns:
            Model instance if found, None otherwise
        """
        query = self.db.query(self.model)
        for key, value in filters.items():
            query = query.filter(getattr(self.model, key) == value)
        return query.first()

    def add(self, db_obj: ModelType) -> ModelType:
        """
        Persist a new or modified instance.

        Args:
            db_obj: Model instance

        Returns:
            Refreshed model instance

        Raises:
            RepositoryError: If the commit fails
        """
        try:
            self.db.add(db_obj)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise RepositoryError(
                f"Failed to save {self.model.__name__}", error=type(e).__name__
            ) from e
        self.db.refresh(db_obj)
        return db_obj
