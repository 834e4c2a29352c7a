"""Unit tests for the rule-based extraction engine."""

import pytest

from quest_core.services.extraction.actions import EDUCATION, EXPERIENCE, KEY_RESULT, NONE, OBJECTIVE, SKILL
from quest_core.services.extraction.engine import ExtractionEngine


@pytest.fixture
def engine() -> ExtractionEngine:
    return ExtractionEngine()


def _actionable(actions):
    return [action for action in actions if action.is_actionable]


class TestSkillExtraction:
    """Tests for skill phrasing patterns."""

    def test_years_and_proficiency_in_one_sentence(self, engine):
        """Years of experience and an expertise claim yield two ordered skill actions."""
        text = "I have 5 years of experience with Python and I'm an expert in machine learning"

        actions = _actionable(engine.parse(text))

        assert [(a.type, a.entity) for a in actions] == [
            (SKILL, "Python"),
            (SKILL, "machine learning"),
        ]
        assert actions[0].details == {"experience": 5}
        assert actions[1].details == {"proficiency": "expert"}

    def test_parse_is_idempotent(self, engine):
        text = (
            "I have 5 years of experience with Python and I'm an expert in machine learning. "
            "I work at Google as a software engineer. My goal is to become a CTO by 2026."
        )

        assert engine.parse(text) == engine.parse(text)

    def test_spans_point_into_the_input(self, engine):
        text = "I have 5 years of experience with Python and I'm an expert in machine learning"

        for action in engine.parse(text):
            start, end = action.span
            assert 0 <= start < end <= len(text)


class TestExperienceExtraction:

    def test_company_with_role(self, engine):
        actions = _actionable(engine.parse("I work at Google as a software engineer."))

        assert len(actions) == 1
        action = actions[0]
        assert action.type == EXPERIENCE
        assert action.entity == "Google"
        assert action.details["role"] == "software engineer"
        assert action.details["isCurrent"] is True


class TestEducationExtraction:

    def test_graduation_year_becomes_end_date(self, engine):
        actions = _actionable(engine.parse("I graduated from Stanford University in 2018."))

        education = [a for a in actions if a.type == EDUCATION]
        assert len(education) == 1
        assert education[0].entity == "Stanford University"
        assert education[0].details["endDate"] == "2018-01-01"


class TestGoalExtraction:

    def test_objective_with_deadline(self, engine):
        actions = _actionable(engine.parse("My goal is to become a CTO by 2026."))

        objectives = [a for a in actions if a.type == OBJECTIVE]
        assert len(objectives) == 1
        assert objectives[0].entity == "Become a CTO"
        assert objectives[0].details["timeframe"] == "yearly"
        assert objectives[0].details["deadline"] == "by 2026"

    def test_key_result_with_currency_target(self, engine):
        actions = _actionable(engine.parse("I want to increase revenue to $50k."))

        key_results = [a for a in actions if a.type == KEY_RESULT]
        assert len(key_results) == 1
        details = key_results[0].details
        assert details["targetValue"] == 50000.0
        assert details["measurementType"] == "currency"
        assert details["unit"] == "USD"
        assert details["direction"] == "increase"


class TestUnmatchedText:

    def test_empty_input_returns_no_actions(self, engine):
        assert engine.parse("") == []
        assert engine.parse("   ") == []

    def test_unmatched_sentence_is_a_none_action(self, engine):
        actions = engine.parse("The weather was lovely today.")

        assert len(actions) == 1
        assert actions[0].type == NONE
        assert not actions[0].is_actionable
