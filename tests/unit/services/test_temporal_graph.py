"""Tests for the temporal event log and its timeline views."""

from datetime import date, datetime, timezone

import pytest

from quest_core.core.exceptions import ValidationError
from quest_core.services.temporal_graph import (
    TemporalGraphManager,
    link_strength,
    months_between,
    overlap_months,
)
from quest_core.utils.canonical_key import ensure_utc


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


class TestIntervalMath:

    def test_months_round_thirty_day_blocks(self):
        assert months_between(utc(2020, 1, 1), utc(2020, 6, 30)) == 6
        assert months_between(utc(2020, 6, 30), utc(2020, 1, 1)) == 6

    def test_disjoint_intervals_do_not_overlap(self):
        now = utc(2024, 1, 1)
        assert overlap_months(utc(2018, 1, 1), utc(2019, 1, 1), utc(2020, 1, 1), None, now) == 0

    def test_open_intervals_run_to_now(self):
        now = utc(2021, 1, 1)
        assert overlap_months(utc(2020, 1, 1), None, utc(2020, 7, 1), None, now) == 6

    @pytest.mark.parametrize("months,expected", [(0, 0.0), (6, 0.5), (12, 1.0), (120, 5.0)])
    def test_link_strength_is_capped(self, months, expected):
        assert link_strength(months) == expected


class TestAddEvent:

    @pytest.mark.asyncio
    async def test_at_most_one_open_event_per_relation(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)

        for year in (2019, 2020, 2021):
            await manager.append_event(user_id, entity_id="skill-python", relation_type="skill", t_valid=utc(year, 1, 1))

        assert await manager.repository.count_open(user_id, "skill-python", "skill") == 1
        events = await manager.repository.list_for_user(user_id)
        assert len(events) == 3
        assert [ensure_utc(e.t_invalid) for e in events] == [utc(2020, 1, 1), utc(2021, 1, 1), None]

    @pytest.mark.asyncio
    async def test_backdated_event_closes_prior_at_its_own_start(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)
        await manager.append_event(user_id, entity_id="company-1", relation_type="job", t_valid=utc(2021, 1, 1))

        await manager.append_event(user_id, entity_id="company-1", relation_type="job", t_valid=utc(2020, 1, 1))

        events = await manager.repository.list_for_user(user_id)
        closed = [e for e in events if e.t_invalid is not None]
        assert len(closed) == 1
        assert ensure_utc(closed[0].t_valid) == utc(2021, 1, 1)
        assert ensure_utc(closed[0].t_invalid) == utc(2021, 1, 1)

    @pytest.mark.asyncio
    async def test_distinct_relations_stay_independent(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)
        await manager.append_event(user_id, entity_id="e-1", relation_type="skill", t_valid=utc(2020, 1, 1))
        await manager.append_event(user_id, entity_id="e-2", relation_type="skill", t_valid=utc(2020, 1, 1))

        assert await manager.repository.count_open(user_id, "e-1", "skill") == 1
        assert await manager.repository.count_open(user_id, "e-2", "skill") == 1

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected(self, db_session, user):
        manager = TemporalGraphManager(db_session)

        with pytest.raises(ValidationError):
            await manager.append_event(
                user.id, entity_id="e-1", relation_type="job", t_valid=utc(2022, 1, 1), t_invalid=utc(2021, 1, 1)
            )

    @pytest.mark.asyncio
    async def test_unknown_relation_type_is_rejected(self, db_session, user):
        with pytest.raises(ValidationError):
            await TemporalGraphManager(db_session).append_event(user.id, entity_id="e-1", relation_type="hobby")


class TestTimeline:

    @pytest.mark.asyncio
    async def test_overlapping_job_and_skill_are_linked(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)
        await manager.append_event(
            user_id,
            entity_id="company-1",
            relation_type="job",
            entity_name="Acme",
            t_valid=utc(2020, 1, 1),
            t_invalid=utc(2022, 1, 1),
        )
        await manager.append_event(
            user_id,
            entity_id="skill-1",
            relation_type="skill",
            entity_name="Python",
            t_valid=utc(2020, 1, 1),
            t_invalid=utc(2020, 6, 30),
        )

        timeline = await manager.get_timeline(user_id)

        assert {node["id"] for node in timeline["nodes"]} == {"company-1", "skill-1"}
        company = next(node for node in timeline["nodes"] if node["id"] == "company-1")
        assert company["type"] == "company"
        assert company["isActive"] is False
        assert company["durationMonths"] == 24

        assert len(timeline["links"]) == 1
        link = timeline["links"][0]
        assert {link["source"], link["target"]} == {"company-1", "skill-1"}
        assert link["overlapMonths"] == 6
        assert link["strength"] == 0.5
        assert timeline["timeRange"]["start"].startswith("2020-01-01")
        assert timeline["timeRange"]["end"].startswith("2022-01-01")

    @pytest.mark.asyncio
    async def test_window_excludes_events_outside_it(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)
        await manager.append_event(
            user_id, entity_id="old", relation_type="job", t_valid=utc(2010, 1, 1), t_invalid=utc(2012, 1, 1)
        )
        await manager.append_event(user_id, entity_id="new", relation_type="skill", t_valid=utc(2021, 1, 1))

        timeline = await manager.get_timeline(user_id, start=date(2020, 1, 1), end=date(2023, 1, 1))

        assert [node["id"] for node in timeline["nodes"]] == ["new"]

    @pytest.mark.asyncio
    async def test_inverted_window_is_rejected(self, db_session, user):
        with pytest.raises(ValidationError):
            await TemporalGraphManager(db_session).get_timeline(
                user.id, start=date(2023, 1, 1), end=date(2020, 1, 1)
            )


class TestCareerProgression:

    @pytest.mark.asyncio
    async def test_education_feeds_following_jobs(self, db_session, user):
        user_id = user.id
        manager = TemporalGraphManager(db_session)
        await manager.append_event(
            user_id,
            entity_id="mit",
            relation_type="education",
            entity_name="MIT",
            t_valid=utc(2014, 9, 1),
            t_invalid=utc(2018, 6, 1),
            metadata={"degree": "BSc", "fieldOfStudy": "Computer Science"},
        )
        await manager.append_event(
            user_id,
            entity_id="acme",
            relation_type="job",
            entity_name="Acme",
            t_valid=utc(2018, 7, 1),
            metadata={"role": "Engineer"},
        )
        await manager.append_event(
            user_id, entity_id="okr-1", relation_type="okr", entity_name="Ship v2", t_valid=utc(2019, 1, 1)
        )

        progression = await manager.get_career_progression(user_id)

        assert [step["type"] for step in progression["steps"]] == ["education", "job"]
        assert progression["careerPath"][0]["role"] == "Engineer"
        assert progression["educationImpact"] == [
            {"education": "BSc in Computer Science", "institution": "MIT", "followingOpportunities": ["Acme"]}
        ]
