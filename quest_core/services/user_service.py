"""User service mapping authenticated callers onto internal user rows."""

from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import User
from quest_core.repositories.user_repository import UserRepository
from quest_core.schemas.auth import CurrentUser
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UserService:
    """Service for user business logic operations."""

    def __init__(self, db_session: AsyncSession):
        self.session = db_session
        self.repository = UserRepository(db_session)

    async def get_or_create_user(self, current_user: CurrentUser) -> User:
        """Get or create the internal user for the caller's token subject.

        This is the primary method for handling users from authentication.
        Every authenticated caller gets a local row the first time they
        reach the service; the row is committed immediately so ownership
        checks in later transactions can rely on it.

        Args:
            current_user: Current user from JWT claims

        Returns:
            User database instance (existing or newly created)
        """
        user = await self.repository.get_by_external_id(current_user.id)
        if user is not None:
            return user

        user = await self.repository.get_or_create(current_user.id, email=current_user.email)
        await self.session.commit()
        LOGGER.info("Created local user", extra={"external_user_id": current_user.id, "user_id": str(user.id)})
        return user
