from typing import Generic, TypeVar, Type, Optional, Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from cospec_claims.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing the common write path.

    Subclasses build their own queries and rely on these helpers for
    commit and error logging.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def _fetch_one(self, query: Any) -> Optional[ModelType]:
        try:
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def _fetch_all(self, query: Any) -> list[ModelType]:
        try:
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error retrieving {self.model.__name__} rows: {str(e)}",
                exc_info=True
            )
            raise

    async def add(self, instance: ModelType) -> ModelType:
        """Persist a new instance and commit.

        Args:
            instance: Unsaved model instance

        Returns:
            The persisted instance
        """
        try:
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def save(self, instance: ModelType) -> ModelType:
        """Flush pending changes on an already-loaded instance and commit."""
        try:
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error updating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def remove(self, instance: ModelType) -> None:
        """Delete an instance and commit."""
        try:
            await self.session.delete(instance)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error deleting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise
