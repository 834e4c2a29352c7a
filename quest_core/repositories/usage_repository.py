from typing import Dict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import UsageCounter, utcnow
from quest_core.repositories.base_repository import BaseRepository


class UsageRepository(BaseRepository[UsageCounter]):
    """Persisted per-user counters, incremented in SQL."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, UsageCounter)

    async def increment(self, user_id: UUID, metric: str, amount: int = 1) -> None:
        stmt = self.insert().values(user_id=user_id, metric=metric, value=amount)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "metric"],
            set_={"value": UsageCounter.value + stmt.excluded.value, "updated_at": utcnow()},
        )
        try:
            await self.session.execute(stmt)
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing usage '{metric}' for user {user_id}: {str(e)}", exc_info=True)
            raise

    async def totals_for_user(self, user_id: UUID) -> Dict[str, int]:
        result = await self.session.execute(
            select(UsageCounter.metric, UsageCounter.value).where(UsageCounter.user_id == user_id)
        )
        return {metric: value for metric, value in result.all()}
