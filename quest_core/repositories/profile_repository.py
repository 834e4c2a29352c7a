"""Repository for the user's professional record (experience, skills, education, OKRs)."""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from quest_core.database.models import (
    KeyResult,
    Objective,
    UserEducation,
    UserSkill,
    WorkExperience,
)
from quest_core.repositories.base_repository import BaseRepository


@dataclass
class ProfileRecords:
    """Relational rows making up one user's canonical record."""

    work_experiences: List[WorkExperience] = field(default_factory=list)
    skills: List[UserSkill] = field(default_factory=list)
    education: List[UserEducation] = field(default_factory=list)


class ProfileRepository(BaseRepository[WorkExperience]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkExperience)

    async def add_work_experience(
        self,
        user_id: UUID,
        company_id: UUID,
        title: Optional[str],
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        is_current: bool = False,
        description: Optional[str] = None,
        source_commit_id: Optional[UUID] = None,
    ) -> WorkExperience:
        return await self.create(
            user_id=user_id,
            company_id=company_id,
            title=title,
            start_date=start_date,
            end_date=end_date,
            is_current=is_current,
            description=description,
            source_commit_id=source_commit_id,
        )

    async def upsert_user_skill(
        self,
        user_id: UUID,
        skill_id: UUID,
        proficiency_level: Optional[str] = None,
        years_of_experience: Optional[int] = None,
        is_showcase: bool = False,
    ) -> UserSkill:
        """One row per (user, skill); a later mention refreshes level and years."""
        stmt = self.insert(UserSkill).values(
            user_id=user_id,
            skill_id=skill_id,
            proficiency_level=proficiency_level,
            years_of_experience=years_of_experience,
            is_showcase=is_showcase,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "skill_id"],
            set_={
                "proficiency_level": stmt.excluded.proficiency_level,
                "years_of_experience": stmt.excluded.years_of_experience,
            },
        )
        try:
            await self.session.execute(stmt)
            result = await self.session.execute(
                select(UserSkill)
                .where(UserSkill.user_id == user_id, UserSkill.skill_id == skill_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting skill {skill_id} for user {user_id}: {str(e)}", exc_info=True)
            raise

    async def add_education(
        self,
        user_id: UUID,
        institution_id: UUID,
        degree: Optional[str] = None,
        field_of_study: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> UserEducation:
        education = UserEducation(
            user_id=user_id,
            institution_id=institution_id,
            degree=degree,
            field_of_study=field_of_study,
            start_date=start_date,
            end_date=end_date,
        )
        self.session.add(education)
        await self.session.flush()
        return education

    async def add_objective(self, user_id: UUID, **values) -> Objective:
        objective = Objective(user_id=user_id, **values)
        self.session.add(objective)
        await self.session.flush()
        return objective

    async def get_objective_for_user(self, objective_id: UUID, user_id: UUID) -> Optional[Objective]:
        result = await self.session.execute(
            select(Objective).where(Objective.id == objective_id, Objective.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def latest_active_objective(self, user_id: UUID) -> Optional[Objective]:
        result = await self.session.execute(
            select(Objective)
            .where(Objective.user_id == user_id, Objective.status == "active")
            .order_by(Objective.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_key_result(self, objective_id: UUID, **values) -> KeyResult:
        key_result = KeyResult(objective_id=objective_id, **values)
        self.session.add(key_result)
        await self.session.flush()
        return key_result

    async def load_records(self, user_id: UUID) -> ProfileRecords:
        """Load the user's experience, skills and education with their canonical entities."""
        try:
            experiences = await self.session.execute(
                select(WorkExperience)
                .options(selectinload(WorkExperience.company))
                .where(WorkExperience.user_id == user_id)
                .order_by(WorkExperience.start_date.asc().nulls_last(), WorkExperience.created_at.asc())
            )
            skills = await self.session.execute(
                select(UserSkill)
                .options(selectinload(UserSkill.skill))
                .where(UserSkill.user_id == user_id)
                .order_by(UserSkill.created_at.asc())
            )
            education = await self.session.execute(
                select(UserEducation)
                .options(selectinload(UserEducation.institution))
                .where(UserEducation.user_id == user_id)
                .order_by(UserEducation.created_at.asc())
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading profile records for user {user_id}: {str(e)}", exc_info=True)
            raise

        return ProfileRecords(
            work_experiences=list(experiences.scalars().all()),
            skills=list(skills.scalars().all()),
            education=list(education.scalars().all()),
        )
