"""Shared FastAPI dependencies for the v1 endpoints."""

from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.auth import get_current_user
from quest_core.core.database import get_async_session as get_session
from quest_core.schemas.auth import CurrentUser
from quest_core.services.commit_ledger import CommitLedger
from quest_core.services.extraction_service import ExtractionService
from quest_core.services.graph_sync import GraphSyncManager
from quest_core.services.projection_service import ProjectionService, get_projection_service
from quest_core.services.temporal_graph import TemporalGraphManager
from quest_core.services.user_service import UserService


@dataclass(frozen=True)
class UserContext:
    """Caller identity resolved to plain values.

    ``user_id`` is the internal row id; ``external_user_id`` is the token
    subject, which also names the caller's realtime room.
    """

    user_id: UUID
    external_user_id: str


async def get_user_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> UserService:
    return UserService(db_session)


async def get_user_context(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    user_service: Annotated[UserService, Depends(get_user_service)],
) -> UserContext:
    user = await user_service.get_or_create_user(current_user)
    return UserContext(user_id=user.id, external_user_id=user.external_user_id)


async def get_ledger(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> CommitLedger:
    return CommitLedger(db_session)


async def get_extraction_service(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> ExtractionService:
    return ExtractionService(db_session)


async def get_temporal_manager(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> TemporalGraphManager:
    return TemporalGraphManager(db_session)


def get_graph_sync() -> GraphSyncManager:
    return GraphSyncManager()


def get_projection() -> ProjectionService:
    return get_projection_service()
