"""Repository tests against an in-memory SQLite database."""

import pytest
from sqlalchemy import func, select

from quest_core.database.models import User
from quest_core.repositories.batch_repository import BatchRepository
from quest_core.repositories.usage_repository import UsageRepository
from quest_core.repositories.user_repository import UserRepository
from quest_core.schemas.auth import CurrentUser
from quest_core.services.user_service import UserService


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, db_session):
        repository = UserRepository(db_session)

        first = await repository.get_or_create("auth|carol", email="carol@example.com")
        second = await repository.get_or_create("auth|carol")
        await db_session.commit()

        assert first.id == second.id
        count = (await db_session.execute(select(func.count()).select_from(User))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_service_maps_token_subject_to_existing_row(self, db_session, user):
        user_id = user.id

        resolved = await UserService(db_session).get_or_create_user(CurrentUser(id="auth|alice"))

        assert resolved.id == user_id


class TestBatchRepository:

    @pytest.mark.asyncio
    async def test_counter_deltas_are_applied_in_sql(self, db_session, user):
        repository = BatchRepository(db_session)
        batch = await repository.create(user_id=user.id, batch_title="Session")
        batch_id = batch.id

        await repository.apply_counter_delta(batch_id, {"total": 2, "pending": 2})
        await repository.apply_counter_delta(batch_id, {"pending": -1, "approved": 1})
        await db_session.commit()

        batch = await repository.get_for_user(batch_id, user.id)
        assert (batch.total_commits, batch.pending_commits, batch.approved_commits) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_batches_are_scoped_to_their_owner(self, db_session, user, other_user):
        repository = BatchRepository(db_session)
        batch = await repository.create(user_id=user.id, batch_title="Session")
        await db_session.commit()

        assert await repository.get_for_user(batch.id, other_user.id) is None
        assert await repository.list_for_user(other_user.id) == []
        assert [b.id for b in await repository.list_for_user(user.id, status="active")] == [batch.id]


class TestUsageRepository:

    @pytest.mark.asyncio
    async def test_increments_accumulate_per_metric(self, db_session, user):
        user_id = user.id
        repository = UsageRepository(db_session)

        await repository.increment(user_id, "extractions")
        await repository.increment(user_id, "extractions", 2)
        await repository.increment(user_id, "commits_created", 5)
        await db_session.commit()

        assert await repository.totals_for_user(user_id) == {"extractions": 3, "commits_created": 5}
