from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import User
from quest_core.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository[User]):
    """Maps identity provider subjects to internal user rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, User)

    async def get_by_external_id(self, external_user_id: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.external_user_id == external_user_id))
        return result.scalar_one_or_none()

    async def get_or_create(self, external_user_id: str, email: Optional[str] = None) -> User:
        """Return the user row for ``external_user_id``, inserting it on first sight.

        Concurrent first requests for the same subject collapse onto one row
        through the unique constraint.
        """
        stmt = (
            self.insert()
            .values(external_user_id=external_user_id, email=email)
            .on_conflict_do_nothing(index_elements=["external_user_id"])
        )
        await self.session.execute(stmt)
        user = await self.get_by_external_id(external_user_id)
        if email and user.email != email:
            user.email = email
            await self.session.flush()
        return user
