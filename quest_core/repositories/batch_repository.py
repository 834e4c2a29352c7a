"""Repository for commit batches and their aggregated status counters."""

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import CommitBatch, utcnow
from quest_core.repositories.base_repository import BaseRepository

STATUS_COUNTERS = {
    "pending": "pending_commits",
    "approved": "approved_commits",
    "rejected": "rejected_commits",
    "committed": "committed_commits",
}


class BatchRepository(BaseRepository[CommitBatch]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, CommitBatch)

    async def list_for_user(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        batch_type: Optional[str] = None,
        limit: int = 20,
    ) -> List[CommitBatch]:
        query = select(CommitBatch).where(CommitBatch.user_id == user_id)
        if status:
            query = query.where(CommitBatch.batch_status == status)
        if batch_type:
            query = query.where(CommitBatch.batch_type == batch_type)
        query = (
            query.order_by(CommitBatch.created_at.desc(), CommitBatch.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_for_user(self, batch_id: UUID, user_id: UUID, for_update: bool = False) -> Optional[CommitBatch]:
        """Fetch a batch only if it belongs to ``user_id``.

        ``for_update`` takes a row lock where the dialect supports one.
        """
        query = select(CommitBatch).where(CommitBatch.id == batch_id, CommitBatch.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def apply_counter_delta(self, batch_id: UUID, deltas: Dict[str, int]) -> None:
        """Adjust counters with ``column = column + delta`` in SQL.

        The increment is evaluated by the database inside the caller's
        transaction, so concurrent reviewers never overwrite each other's
        counts. ``deltas`` is keyed by ``total`` or a commit status.
        """
        values = {}
        for key, delta in deltas.items():
            if not delta:
                continue
            column_name = "total_commits" if key == "total" else STATUS_COUNTERS[key]
            column = getattr(CommitBatch, column_name)
            values[column_name] = column + delta
        if not values:
            return
        values["updated_at"] = utcnow()

        try:
            await self.session.execute(
                update(CommitBatch)
                .where(CommitBatch.id == batch_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating counters for batch {batch_id}: {str(e)}", exc_info=True)
            raise
