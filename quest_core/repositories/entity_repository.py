"""Repository for canonical reference entities (companies, skills, institutions)."""

from typing import Any, Dict, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.database.models import Company, Institution, Skill
from quest_core.repositories.base_repository import BaseRepository
from quest_core.utils.canonical_key import normalize_name

CanonicalEntity = Union[Company, Skill, Institution]

ENTITY_MODELS: Dict[str, Type[CanonicalEntity]] = {
    "company": Company,
    "skill": Skill,
    "institution": Institution,
}


class CanonicalEntityRepository(BaseRepository[CanonicalEntity]):
    """Find-or-create on the unique ``normalized_name`` key.

    The insert uses ``ON CONFLICT DO NOTHING`` on the unique key, so two
    concurrent resolvers for the same name both end up reading the single
    row that won.
    """

    def __init__(self, session: AsyncSession, kind: str):
        if kind not in ENTITY_MODELS:
            raise ValueError(f"Unknown canonical entity kind: {kind}")
        super().__init__(session, ENTITY_MODELS[kind])
        self.kind = kind

    async def get_by_normalized_name(self, normalized_name: str) -> Optional[CanonicalEntity]:
        result = await self.session.execute(
            select(self.model).where(self.model.normalized_name == normalized_name)
        )
        return result.scalar_one_or_none()

    async def upsert(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> CanonicalEntity:
        """Insert the entity unless its normalized name exists, then return the stored row.

        Args:
            name: Display name as mentioned by the user
            attributes: Kind-specific columns (``industry``, ``category``,
                ``type`` ...) applied only when the row is first created

        Returns:
            The canonical entity for the normalized name
        """
        normalized = normalize_name(name)
        values: Dict[str, Any] = {
            "name": " ".join(name.split()),
            "normalized_name": normalized,
            "attributes": {},
        }
        for key, value in (attributes or {}).items():
            if value is not None and hasattr(self.model, key):
                values[key] = value

        try:
            stmt = self.insert().values(**values).on_conflict_do_nothing(index_elements=["normalized_name"])
            await self.session.execute(stmt)
            entity = await self.get_by_normalized_name(normalized)
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error upserting {self.model.__name__} '{normalized}': {str(e)}", exc_info=True
            )
            raise

        self.logger.debug(
            f"Resolved {self.kind} '{name}'",
            extra={"entity_id": str(entity.id), "normalized_name": normalized},
        )
        return entity
