"""
Tests for periodization model selection and week roles.
"""

import pytest

from services.program_engine.periodization import (
    Linear,
    Undulating4Week,
    block_start_week,
    is_block_start,
    periodization_from_dict,
    select_periodization,
)
from services.program_engine.profile import UserProfile


class TestSelection:

    @pytest.mark.parametrize("months", [0, 3, 5])
    def test_under_six_months_is_linear(self, months):
        model = select_periodization(UserProfile(training_months=months))
        assert isinstance(model, Linear)
        assert model.block_weeks == 4

    @pytest.mark.parametrize("months", [6, 24, 120])
    def test_six_months_or_more_is_undulating(self, months):
        model = select_periodization(UserProfile(training_months=months))
        assert isinstance(model, Undulating4Week)

    def test_experience_level_used_when_months_missing(self):
        assert isinstance(select_periodization(UserProfile(experience_level="beginner")), Linear)
        assert isinstance(select_periodization(UserProfile(experience_level="advanced")), Undulating4Week)


class TestWeekRoles:

    def test_undulating_block(self):
        model = Undulating4Week()
        roles = [model.week_role(week) for week in range(1, 9)]
        assert roles == [
            "accumulation", "accumulation", "intensification", "deload",
            "accumulation", "accumulation", "intensification", "deload",
        ]

    def test_linear_is_always_accumulation(self):
        model = Linear()
        assert {model.week_role(week) for week in range(1, 9)} == {"accumulation"}

    def test_block_boundaries(self):
        model = Undulating4Week()
        assert [w for w in range(1, 13) if is_block_start(model, w)] == [1, 5, 9]
        assert block_start_week(model, 7) == 5
        assert block_start_week(model, 4) == 1


class TestStoredModel:

    def test_rebuilt_from_program_record(self):
        assert periodization_from_dict({"kind": "linear", "weeks": 6}) == Linear(weeks=6)
        assert periodization_from_dict(Undulating4Week().as_dict()) == Undulating4Week()
