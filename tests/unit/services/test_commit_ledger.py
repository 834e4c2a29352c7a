"""Tests for the commit ledger against an in-memory SQLite database."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from quest_core.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from quest_core.database.models import (
    Company,
    ConversationCommit,
    Institution,
    KeyResult,
    Objective,
    Skill,
    TemporalEvent,
    UserEducation,
    UserSkill,
    WorkExperience,
)
from quest_core.services.commit_ledger import CommitLedger, can_transition
from quest_core.services.extraction.engine import ExtractionEngine
from quest_core.services.extraction.structuring import structure_extracted_data
from quest_core.services.temporal_graph import TemporalGraphManager
from quest_core.utils.canonical_key import ensure_utc

SKILL_DATA = {"skillName": "Python", "proficiencyLevel": "advanced", "yearsOfExperience": 5, "isShowcase": False}


def assert_balanced(batch):
    assert batch.total_commits == (
        batch.pending_commits + batch.approved_commits + batch.rejected_commits + batch.committed_commits
    )


async def _new_commit(ledger, user_id, batch_id=None, extraction_type="skill", data=None):
    commit, _ = await ledger.create_commit(
        user_id,
        extraction_type=extraction_type,
        confidence=0.8,
        original_text_snippet="I have 5 years of experience with Python",
        extracted_data=data if data is not None else dict(SKILL_DATA),
        batch_id=batch_id,
    )
    return commit.id


class TestTransitionTable:

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("pending", "approved", True),
            ("pending", "rejected", True),
            ("pending", "committed", True),
            ("approved", "committed", True),
            ("approved", "rejected", True),
            ("approved", "pending", False),
            ("rejected", "approved", False),
            ("committed", "pending", False),
            ("committed", "rejected", False),
        ],
    )
    def test_allowed_edges(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestBatchCounters:

    @pytest.mark.asyncio
    async def test_approving_moves_one_unit_and_stamps_reviewed_at(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch = await ledger.create_batch(user_id, batch_title="Morning chat")
        batch_id = batch.id
        commit_id = await _new_commit(ledger, user_id, batch_id)

        before = await ledger.get_batch(user_id, batch_id)
        assert (before.total_commits, before.pending_commits, before.approved_commits) == (1, 1, 0)

        commit, materialized = await ledger.update_commit(user_id, commit_id, status="approved")

        after = await ledger.get_batch(user_id, batch_id)
        assert after.pending_commits == 0
        assert after.approved_commits == 1
        assert after.total_commits == 1
        assert commit.status == "approved"
        assert commit.reviewed_at is not None
        assert commit.committed_at is None
        assert materialized is None

    @pytest.mark.asyncio
    async def test_counters_stay_balanced_across_mutations(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Session")).id

        ids = [await _new_commit(ledger, user_id, batch_id) for _ in range(4)]
        assert_balanced(await ledger.get_batch(user_id, batch_id))

        await ledger.update_commit(user_id, ids[0], status="approved")
        assert_balanced(await ledger.get_batch(user_id, batch_id))

        await ledger.update_commit(user_id, ids[1], status="rejected")
        assert_balanced(await ledger.get_batch(user_id, batch_id))

        await ledger.update_commit(user_id, ids[0], status="committed")
        assert_balanced(await ledger.get_batch(user_id, batch_id))

        await ledger.delete_commit(user_id, ids[2])
        batch = await ledger.get_batch(user_id, batch_id)
        assert_balanced(batch)
        assert (
            batch.total_commits,
            batch.pending_commits,
            batch.approved_commits,
            batch.rejected_commits,
            batch.committed_commits,
        ) == (3, 1, 0, 1, 1)

    @pytest.mark.asyncio
    async def test_illegal_transition_is_rejected_without_side_effects(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Session")).id
        commit_id = await _new_commit(ledger, user_id, batch_id)
        await ledger.update_commit(user_id, commit_id, status="rejected")

        with pytest.raises(InvalidTransitionError):
            await ledger.update_commit(user_id, commit_id, status="approved")

        commit = await ledger.get_commit(user_id, commit_id)
        batch = await ledger.get_batch(user_id, batch_id)
        assert commit.status == "rejected"
        assert batch.rejected_commits == 1
        assert batch.approved_commits == 0

    @pytest.mark.asyncio
    async def test_create_commit_rejects_confidence_outside_unit_interval(self, db_session, user):
        ledger = CommitLedger(db_session)

        with pytest.raises(ValidationError):
            await ledger.create_commit(
                user.id,
                extraction_type="skill",
                confidence=1.5,
                original_text_snippet="",
                extracted_data=dict(SKILL_DATA),
            )


class TestOwnership:

    @pytest.mark.asyncio
    async def test_foreign_commit_and_batch_look_missing(self, db_session, user, other_user):
        user_id, other_id = user.id, other_user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Private")).id
        commit_id = await _new_commit(ledger, user_id, batch_id)

        with pytest.raises(NotFoundError):
            await ledger.get_commit(other_id, commit_id)
        with pytest.raises(NotFoundError):
            await ledger.update_commit(other_id, commit_id, status="approved")
        with pytest.raises(NotFoundError):
            await ledger.get_batch(other_id, batch_id)
        with pytest.raises(NotFoundError):
            await _new_commit(ledger, other_id, batch_id)

        commit = await ledger.get_commit(user_id, commit_id)
        assert commit.status == "pending"


class TestMaterialization:

    @pytest.mark.asyncio
    async def test_committing_a_skill_writes_profile_and_temporal_rows(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(ledger, user_id)

        commit, record = await ledger.update_commit(user_id, commit_id, status="committed")

        assert commit.committed_at is not None
        assert commit.reviewed_at is not None
        assert record.relationship == "HAS_SKILL"
        assert record.entity_name == "Python"

        user_skill = (await db_session.execute(select(UserSkill))).scalar_one()
        assert user_skill.id == record.record_id
        assert user_skill.proficiency_level == "advanced"
        assert user_skill.years_of_experience == 5

        event = (await db_session.execute(select(TemporalEvent))).scalar_one()
        assert event.relation_type == "skill"
        assert event.entity_id == record.entity_id
        assert event.t_invalid is None

    @pytest.mark.asyncio
    async def test_suggested_edits_override_extracted_data(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="experience",
            data={"companyName": "Acme", "position": "Engineer", "startDate": "2019-03-01", "isCurrent": True},
        )

        await ledger.update_commit(
            user_id, commit_id, status="committed", suggested_edits={"position": "Staff Engineer"}
        )

        work = (await db_session.execute(select(WorkExperience))).scalar_one()
        assert work.title == "Staff Engineer"
        assert work.is_current is True
        assert work.source_commit_id == commit_id

    @pytest.mark.asyncio
    async def test_same_skill_twice_reuses_the_canonical_row(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        first = await _new_commit(ledger, user_id, data={**SKILL_DATA, "skillName": "Python"})
        second = await _new_commit(ledger, user_id, data={**SKILL_DATA, "skillName": "  python ", "yearsOfExperience": 6})

        await ledger.update_commit(user_id, first, status="committed")
        await ledger.update_commit(user_id, second, status="committed")

        assert (await db_session.execute(select(func.count()).select_from(Skill))).scalar_one() == 1
        user_skill = (await db_session.execute(select(UserSkill))).scalar_one()
        assert user_skill.years_of_experience == 6

    @pytest.mark.asyncio
    async def test_key_result_attaches_to_latest_active_objective(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        objective_commit = await _new_commit(
            ledger, user_id, extraction_type="objective", data={"title": "Become a CTO", "priority": "high"}
        )
        _, objective_record = await ledger.update_commit(user_id, objective_commit, status="committed")
        key_result_commit = await _new_commit(
            ledger,
            user_id,
            extraction_type="key_result",
            data={"title": "Hire 5 engineers", "targetValue": 5, "measurementType": "number"},
        )

        _, record = await ledger.update_commit(user_id, key_result_commit, status="committed")

        key_result = (await db_session.execute(select(KeyResult))).scalar_one()
        assert key_result.objective_id == objective_record.record_id
        assert key_result.target_value == 5.0
        assert record.relationship == "HAS_KEY_RESULT"

    @pytest.mark.asyncio
    async def test_failed_materialization_rolls_back_the_status_change(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="OKRs")).id
        commit_id = await _new_commit(
            ledger, user_id, batch_id, extraction_type="key_result", data={"title": "Ship 3 features"}
        )
        await ledger.update_commit(user_id, commit_id, status="approved")

        with pytest.raises(ValidationError):
            await ledger.update_commit(user_id, commit_id, status="committed")

        commit = await ledger.get_commit(user_id, commit_id)
        batch = await ledger.get_batch(user_id, batch_id)
        assert commit.status == "approved"
        assert commit.committed_at is None
        assert (batch.approved_commits, batch.committed_commits) == (1, 0)
        assert (await db_session.execute(select(func.count()).select_from(Objective))).scalar_one() == 0


def _utc(year, month=1, day=1):
    return datetime(year, month, day, tzinfo=timezone.utc)


async def _single_event(db_session, relation_type):
    event = (await db_session.execute(select(TemporalEvent))).scalar_one()
    assert event.relation_type == relation_type
    return event


class TestDatedMaterialization:

    @pytest.mark.asyncio
    async def test_experience_with_both_dates_is_a_closed_job(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="experience",
            data={"companyName": "Initech", "position": "Analyst", "startDate": "2015-02-01",
                  "endDate": "2018-06-01", "isCurrent": False},
        )

        _, record = await ledger.update_commit(user_id, commit_id, status="committed")

        company = (await db_session.execute(select(Company))).scalar_one()
        assert company.normalized_name == "initech"
        work = (await db_session.execute(select(WorkExperience))).scalar_one()
        assert (work.start_date, work.end_date, work.is_current) == (date(2015, 2, 1), date(2018, 6, 1), False)
        assert record.relationship == "WORKED_AT"
        assert record.entity_id == str(company.id)

        event = await _single_event(db_session, "job")
        assert ensure_utc(event.t_valid) == _utc(2015, 2)
        assert ensure_utc(event.t_invalid) == _utc(2018, 6)

    @pytest.mark.asyncio
    async def test_experience_known_only_by_end_date_is_closed_at_that_date(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="experience",
            data={"companyName": "Initech", "endDate": "2018-06-01", "isCurrent": False},
        )

        commit, _ = await ledger.update_commit(user_id, commit_id, status="committed")

        assert commit.status == "committed"
        work = (await db_session.execute(select(WorkExperience))).scalar_one()
        assert (work.start_date, work.end_date, work.is_current) == (None, date(2018, 6, 1), False)
        event = await _single_event(db_session, "job")
        assert ensure_utc(event.t_valid) == _utc(2018, 6)
        assert ensure_utc(event.t_invalid) == _utc(2018, 6)

    @pytest.mark.asyncio
    async def test_past_role_without_end_date_is_not_current(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="experience",
            data={"companyName": "Acme", "startDate": "2015-01-01", "isCurrent": False},
        )

        await ledger.update_commit(user_id, commit_id, status="committed")

        work = (await db_session.execute(select(WorkExperience))).scalar_one()
        assert (work.end_date, work.is_current) == (None, False)
        event = await _single_event(db_session, "job")
        assert event.t_invalid is None
        assert event.event_metadata["isCurrent"] is False

        timeline = await TemporalGraphManager(db_session).get_timeline(user_id)
        (node,) = timeline["nodes"]
        assert node["isActive"] is False
        assert node["t_invalid"] is None

    @pytest.mark.asyncio
    async def test_experience_without_current_flag_or_end_date_is_current(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger, user_id, extraction_type="experience", data={"companyName": "Globex", "startDate": "2021-04-01"}
        )

        await ledger.update_commit(user_id, commit_id, status="committed")

        work = (await db_session.execute(select(WorkExperience))).scalar_one()
        assert work.is_current is True
        event = await _single_event(db_session, "job")
        assert event.t_invalid is None
        timeline = await TemporalGraphManager(db_session).get_timeline(user_id)
        assert timeline["nodes"][0]["isActive"] is True

    @pytest.mark.asyncio
    async def test_extracted_graduation_commits_as_a_closed_education_event(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        (action,) = [a for a in ExtractionEngine().parse("I graduated from MIT in 2015.") if a.type == "education"]
        commit_id = await _new_commit(
            ledger, user_id, extraction_type="education", data=structure_extracted_data(action)
        )

        commit, record = await ledger.update_commit(user_id, commit_id, status="committed")

        assert commit.status == "committed"
        assert record.relationship == "STUDIED_AT"
        institution = (await db_session.execute(select(Institution))).scalar_one()
        assert institution.normalized_name == "mit"
        education = (await db_session.execute(select(UserEducation))).scalar_one()
        assert (education.start_date, education.end_date) == (None, date(2015, 1, 1))
        assert education.institution_id == institution.id

        event = await _single_event(db_session, "education")
        assert event.entity_id == str(institution.id)
        assert ensure_utc(event.t_valid) == _utc(2015)
        assert ensure_utc(event.t_invalid) == _utc(2015)

    @pytest.mark.asyncio
    async def test_education_with_only_a_start_date_stays_open(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="education",
            data={"institutionName": "Stanford University", "degree": "MS", "startDate": "2023-09-01"},
        )

        await ledger.update_commit(user_id, commit_id, status="committed")

        event = await _single_event(db_session, "education")
        assert ensure_utc(event.t_valid) == _utc(2023, 9)
        assert event.t_invalid is None

    @pytest.mark.asyncio
    async def test_education_with_both_dates_is_closed(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        commit_id = await _new_commit(
            ledger,
            user_id,
            extraction_type="education",
            data={"institutionName": "Stanford University", "degree": "BS", "fieldOfStudy": "Computer Science",
                  "startDate": "2010-09-01", "endDate": "2014-06-01"},
        )

        await ledger.update_commit(user_id, commit_id, status="committed")

        education = (await db_session.execute(select(UserEducation))).scalar_one()
        assert (education.degree, education.field_of_study) == ("BS", "Computer Science")
        event = await _single_event(db_session, "education")
        assert ensure_utc(event.t_valid) == _utc(2010, 9)
        assert ensure_utc(event.t_invalid) == _utc(2014, 6)
        assert event.event_metadata["degree"] == "BS"


class TestProcessApproved:

    @pytest.mark.asyncio
    async def test_reports_successes_and_failures_individually(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Review")).id
        good = await _new_commit(ledger, user_id, batch_id)
        bad = await _new_commit(ledger, user_id, batch_id, extraction_type="key_result", data={"title": "Ship it"})
        untouched = await _new_commit(ledger, user_id, batch_id)
        for commit_id in (good, bad):
            await ledger.update_commit(user_id, commit_id, status="approved")

        result = await ledger.process_approved(user_id, batch_id=batch_id)

        assert [item["commitId"] for item in result.successful] == [str(good)]
        assert [item["commitId"] for item in result.failed] == [str(bad)]
        assert len(result.materialized) == 1
        assert (await ledger.get_commit(user_id, untouched)).status == "pending"

        batch = await ledger.get_batch(user_id, batch_id)
        assert_balanced(batch)
        assert (batch.pending_commits, batch.approved_commits, batch.committed_commits) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_nothing_approved_is_a_validation_error(self, db_session, user):
        ledger = CommitLedger(db_session)

        with pytest.raises(ValidationError):
            await ledger.process_approved(user.id)


class TestBatchLifecycle:

    @pytest.mark.asyncio
    async def test_completing_a_batch_stamps_completed_at(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Session", batch_type="voice_session")).id

        batch = await ledger.update_batch(user_id, batch_id, batch_status="completed")

        assert batch.batch_status == "completed"
        assert batch.completed_at is not None

    @pytest.mark.asyncio
    async def test_deleting_a_batch_deletes_its_commits(self, db_session, user):
        user_id = user.id
        ledger = CommitLedger(db_session)
        batch_id = (await ledger.create_batch(user_id, batch_title="Session")).id
        await _new_commit(ledger, user_id, batch_id)
        await _new_commit(ledger, user_id, batch_id)

        await ledger.delete_batch(user_id, batch_id)

        remaining = (await db_session.execute(select(func.count()).select_from(ConversationCommit))).scalar_one()
        assert remaining == 0
        with pytest.raises(NotFoundError):
            await ledger.get_batch(user_id, batch_id)

    @pytest.mark.asyncio
    async def test_unknown_batch_type_is_rejected(self, db_session, user):
        with pytest.raises(ValidationError):
            await CommitLedger(db_session).create_batch(user.id, batch_title="x", batch_type="telepathy")
