"""Post-commit side effects: graph resync and realtime deltas.

Runs after the relational transaction has committed, in its own database
session. Every failure here is logged and swallowed so the originating
request is never failed or rolled back by a secondary system.
"""

from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.database import async_session_maker
from quest_core.core.exceptions import NotFoundError
from quest_core.repositories.profile_repository import ProfileRepository
from quest_core.repositories.user_repository import UserRepository
from quest_core.schemas.graph import (
    EducationSnapshot,
    UserGraphSnapshot,
    UserSkillSnapshot,
    WorkExperienceSnapshot,
)
from quest_core.services.commit_ledger import MaterializedRecord
from quest_core.services.event_broadcaster import EventBroadcaster, get_broadcaster
from quest_core.services.graph_sync import GraphSyncManager
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

NODE_TYPES = {
    "Company": "company",
    "Skill": "skill",
    "Institution": "institution",
    "Objective": "objective",
    "KeyResult": "key_result",
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


async def build_user_snapshot(session: AsyncSession, user_id: UUID) -> UserGraphSnapshot:
    """Read the user's canonical record from the relational store."""
    user = await UserRepository(session).get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    records = await ProfileRepository(session).load_records(user_id)

    return UserGraphSnapshot(
        user_id=str(user.id),
        external_user_id=user.external_user_id,
        email=user.email,
        name=user.full_name,
        work_experiences=[
            WorkExperienceSnapshot(
                id=str(work.id),
                company_id=str(work.company_id),
                company_name=work.company.name,
                industry=work.company.industry,
                title=work.title,
                start_date=_iso(work.start_date),
                end_date=_iso(work.end_date),
                is_current=bool(work.is_current),
            )
            for work in records.work_experiences
        ],
        skills=[
            UserSkillSnapshot(
                id=str(item.id),
                skill_id=str(item.skill_id),
                skill_name=item.skill.name,
                category=item.skill.category,
                proficiency_level=item.proficiency_level,
                years_of_experience=item.years_of_experience,
                is_showcase=bool(item.is_showcase),
            )
            for item in records.skills
        ],
        education=[
            EducationSnapshot(
                id=str(item.id),
                institution_id=str(item.institution_id),
                institution_name=item.institution.name,
                institution_type=item.institution.type,
                country=item.institution.country,
                degree=item.degree,
                field_of_study=item.field_of_study,
                start_date=_iso(item.start_date),
                end_date=_iso(item.end_date),
            )
            for item in records.education
        ],
    )


class ProjectionService:
    """Resyncs a user's graph projection and announces committed entities."""

    def __init__(
        self,
        graph: Optional[GraphSyncManager] = None,
        events: Optional[EventBroadcaster] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.graph = graph or GraphSyncManager()
        self.events = events or get_broadcaster()
        self.session_factory = session_factory or async_session_maker

    async def sync_user(self, user_id: UUID) -> bool:
        try:
            async with self.session_factory() as session:
                snapshot = await build_user_snapshot(session, user_id)
            await self.graph.sync_user_data(snapshot)
            return True
        except Exception as e:
            LOGGER.error(
                f"Graph projection failed: {e}",
                exc_info=True,
                extra={"user_id": str(user_id), "operation": "sync_user_data"},
            )
            return False

    async def announce(self, user_id: UUID, room: str, records: List[MaterializedRecord]) -> int:
        delivered = 0
        for record in records:
            node_type = NODE_TYPES.get(record.entity_kind, record.entity_kind.lower())
            try:
                delivered += await self.events.node_added(
                    room, record.entity_id, record.entity_name, node_type, metadata=record.properties
                )
                delivered += await self.events.relationship_added(
                    room, str(user_id), record.entity_id, record.relationship, metadata=record.properties
                )
            except Exception as e:
                LOGGER.error(
                    f"Broadcast failed: {e}",
                    exc_info=True,
                    extra={"user_id": str(user_id), "operation": "publish", "commit_id": str(record.commit_id)},
                )
        return delivered

    async def project_commits(self, user_id: UUID, room: str, records: List[MaterializedRecord]) -> None:
        """Background task run after a commit transaction succeeds.

        Args:
            user_id: Internal user id (graph node id)
            room: Identity provider subject the user's sockets are grouped under
            records: Profile records written by the committed commits
        """
        if not records:
            return
        synced = await self.sync_user(user_id)
        delivered = await self.announce(user_id, room, records)
        LOGGER.info(
            "Post-commit projection finished",
            extra={"user_id": str(user_id), "synced": synced, "deltas_delivered": delivered},
        )


def get_projection_service() -> ProjectionService:
    return ProjectionService()
