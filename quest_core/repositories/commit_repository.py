from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import ConversationCommit
from quest_core.repositories.base_repository import BaseRepository


class CommitRepository(BaseRepository[ConversationCommit]):
    """Repository for conversation commits, always scoped to the owning user."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ConversationCommit)

    async def list_for_user(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        batch_id: Optional[UUID] = None,
        extraction_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[ConversationCommit]:
        query = select(ConversationCommit).where(ConversationCommit.user_id == user_id)
        if status:
            query = query.where(ConversationCommit.status == status)
        if batch_id:
            query = query.where(ConversationCommit.batch_id == batch_id)
        if extraction_type:
            query = query.where(ConversationCommit.extraction_type == extraction_type)
        query = query.order_by(ConversationCommit.created_at.desc(), ConversationCommit.id).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_for_user(
        self, commit_id: UUID, user_id: UUID, for_update: bool = False
    ) -> Optional[ConversationCommit]:
        query = select(ConversationCommit).where(
            ConversationCommit.id == commit_id, ConversationCommit.user_id == user_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_approved(
        self,
        user_id: UUID,
        commit_ids: Optional[Sequence[UUID]] = None,
        batch_id: Optional[UUID] = None,
    ) -> List[ConversationCommit]:
        """Approved commits in scope, oldest first so they commit in review order."""
        query = select(ConversationCommit).where(
            ConversationCommit.user_id == user_id, ConversationCommit.status == "approved"
        )
        if commit_ids:
            query = query.where(ConversationCommit.id.in_(list(commit_ids)))
        if batch_id:
            query = query.where(ConversationCommit.batch_id == batch_id)
        query = query.order_by(ConversationCommit.created_at.asc(), ConversationCommit.id)

        result = await self.session.execute(query)
        return list(result.scalars().all())
