from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import TemporalEvent
from quest_core.repositories.base_repository import BaseRepository
from quest_core.utils.canonical_key import ensure_utc


class TemporalEventRepository(BaseRepository[TemporalEvent]):
    """Append-mostly access to the bi-temporal event log."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TemporalEvent)

    async def get_open(self, user_id: UUID, entity_id: str, relation_type: str) -> Optional[TemporalEvent]:
        result = await self.session.execute(
            select(TemporalEvent)
            .where(
                TemporalEvent.user_id == user_id,
                TemporalEvent.entity_id == entity_id,
                TemporalEvent.relation_type == relation_type,
                TemporalEvent.t_invalid.is_(None),
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def close_open(
        self, user_id: UUID, entity_id: str, relation_type: str, closed_at: datetime
    ) -> Optional[TemporalEvent]:
        """Close the open event for the relation, if any.

        The closing instant never precedes the prior event's own ``t_valid``.
        """
        prior = await self.get_open(user_id, entity_id, relation_type)
        if prior is None:
            return None

        prior_valid = ensure_utc(prior.t_valid)
        prior.t_invalid = max(prior_valid, ensure_utc(closed_at))
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            self.logger.error(f"Error closing temporal event {prior.id}: {str(e)}", exc_info=True)
            raise
        return prior

    async def list_for_user(
        self,
        user_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TemporalEvent]:
        """Events intersecting ``[start, end]``, oldest ``t_valid`` first."""
        query = select(TemporalEvent).where(TemporalEvent.user_id == user_id)
        if end is not None:
            query = query.where(TemporalEvent.t_valid <= end)
        if start is not None:
            query = query.where(
                or_(TemporalEvent.t_invalid.is_(None), TemporalEvent.t_invalid >= start)
            )
        query = query.order_by(TemporalEvent.t_valid.asc(), TemporalEvent.t_created.asc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_open(self, user_id: UUID, entity_id: str, relation_type: str) -> int:
        result = await self.session.execute(
            select(TemporalEvent.id).where(
                TemporalEvent.user_id == user_id,
                TemporalEvent.entity_id == entity_id,
                TemporalEvent.relation_type == relation_type,
                TemporalEvent.t_invalid.is_(None),
            )
        )
        return len(result.all())
