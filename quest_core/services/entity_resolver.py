"""Deduplicated find-or-create for canonical reference entities."""

from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.exceptions import EntityResolutionError, ValidationError
from quest_core.repositories.entity_repository import ENTITY_MODELS, CanonicalEntity, CanonicalEntityRepository
from quest_core.utils.canonical_key import normalize_name
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)


class EntityResolver:
    """Resolves company, skill and institution names to canonical rows.

    Names are matched on their normalized key (trimmed, whitespace
    collapsed, case-folded), so ``"Acme Corp"`` and ``"  acme corp "``
    resolve to the same row. Resolution runs in the caller's transaction
    and relies on the unique ``normalized_name`` constraint plus
    ``ON CONFLICT DO NOTHING`` to stay correct under concurrent resolvers.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._repositories: Dict[str, CanonicalEntityRepository] = {}

    def _repository(self, kind: str) -> CanonicalEntityRepository:
        if kind not in self._repositories:
            self._repositories[kind] = CanonicalEntityRepository(self.session, kind)
        return self._repositories[kind]

    async def resolve(self, kind: str, name: str, attributes: Optional[Dict[str, Any]] = None) -> CanonicalEntity:
        """Return the canonical entity for ``name``, creating it on first sight.

        Raises:
            ValidationError: Unknown kind or blank name
            EntityResolutionError: The store failed; details are logged
        """
        if kind not in ENTITY_MODELS:
            raise ValidationError(f"Unknown entity kind '{kind}'")
        if not normalize_name(name):
            raise ValidationError(f"A {kind} name is required")

        try:
            return await self._repository(kind).upsert(name, attributes)
        except SQLAlchemyError as e:
            LOGGER.error(
                f"Failed to resolve {kind}",
                exc_info=True,
                extra={"kind": kind, "entity_name": name},
            )
            raise EntityResolutionError("Could not resolve entity", original_error=e)

    async def resolve_company(self, name: str, industry: Optional[str] = None) -> CanonicalEntity:
        return await self.resolve("company", name, {"industry": industry})

    async def resolve_skill(self, name: str, category: Optional[str] = None) -> CanonicalEntity:
        return await self.resolve("skill", name, {"category": category})

    async def resolve_institution(self, name: str, institution_type: Optional[str] = None) -> CanonicalEntity:
        return await self.resolve("institution", name, {"type": institution_type})
