"""Tests for canonical entity resolution."""

import pytest
from sqlalchemy import func, select

from quest_core.core.exceptions import ValidationError
from quest_core.database.models import Company
from quest_core.services.entity_resolver import EntityResolver


@pytest.mark.asyncio
async def test_spelling_variants_resolve_to_one_row(db_session):
    resolver = EntityResolver(db_session)

    first = await resolver.resolve_company("Acme Corp", industry="Manufacturing")
    first_id = first.id
    second = await resolver.resolve_company("  acme   CORP ")
    await db_session.commit()

    assert second.id == first_id
    assert second.name == "Acme Corp"
    assert (await db_session.execute(select(func.count()).select_from(Company))).scalar_one() == 1


@pytest.mark.asyncio
async def test_kinds_are_resolved_separately(db_session):
    resolver = EntityResolver(db_session)

    company = await resolver.resolve("company", "Python")
    skill = await resolver.resolve("skill", "Python")

    assert company.id != skill.id


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   "])
async def test_blank_name_is_rejected(db_session, name):
    with pytest.raises(ValidationError):
        await EntityResolver(db_session).resolve_skill(name)


@pytest.mark.asyncio
async def test_unknown_kind_is_rejected(db_session):
    with pytest.raises(ValidationError):
        await EntityResolver(db_session).resolve("planet", "Mars")
