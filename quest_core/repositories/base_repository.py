from typing import Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Common data access for one mapped model.

    Repositories only ``flush``; the calling service owns the transaction
    and decides when to commit, so several repository writes can form one
    atomic unit.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    def insert(self, model=None):
        """Dialect-specific INSERT supporting ``ON CONFLICT`` clauses."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(model or self.model)
        return pg_insert(model or self.model)

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            self.logger.error(f"Error retrieving {self.model.__name__} by ID {id}: {str(e)}", exc_info=True)
            raise

    async def create(self, **kwargs) -> ModelType:
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}", exc_info=True)
            raise

    async def update(self, instance: ModelType, **kwargs) -> ModelType:
        try:
            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)
            await self.session.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__}: {str(e)}", exc_info=True)
            raise

    async def delete(self, instance: ModelType) -> None:
        try:
            await self.session.delete(instance)
            await self.session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error deleting {self.model.__name__}: {str(e)}", exc_info=True)
            raise
