"""
Tests for candidate validation and normalization into tagged exercise
variants.
"""

import pytest

from fixtures.program_fixtures import make_program_output
from services.program_engine.candidate import ProgramCandidate, normalize_root
from services.program_engine.constants import ExerciseTier
from services.program_engine.errors import ValidationError
from services.program_engine.normalizer import DEFAULT_PROGRAM_NAME, normalize_candidate
from services.program_engine.program_types import (
    FinisherExercise,
    MainExercise,
    RepRange,
    WarmupExercise,
    parse_rep_range,
)


class TestNormalizeCandidate:

    def test_tiers_become_variants(self, program_output):
        draft = normalize_candidate(program_output)

        upper = draft.workouts[0]
        assert draft.name == "Upper / Lower Hypertrophy"
        assert all(isinstance(w, WarmupExercise) for w in upper.warmup)
        assert all(isinstance(m, MainExercise) for m in upper.main_exercises)
        assert all(isinstance(f, FinisherExercise) for f in upper.finisher)
        assert upper.main_exercises[0].tier == ExerciseTier.MAIN

    def test_main_exercise_rep_range(self, program_output):
        bench = normalize_candidate(program_output).workouts[0].main_exercises[0]

        assert bench.rep_range == RepRange(8, 12)
        assert bench.reps == 8
        assert bench.load == "70 kg"
        assert bench.rpe == 8.0

    def test_timed_and_set_based_warmups_both_valid(self, program_output):
        warmup = normalize_candidate(program_output).workouts[0].warmup

        assert warmup[0].is_timed
        assert warmup[0].sets is None
        assert not warmup[1].is_timed
        assert (warmup[1].sets, warmup[1].reps, warmup[1].rest) == (2, "15", "30s")

    def test_bodyweight_finisher_without_load(self, program_output):
        finisher = normalize_candidate(program_output).workouts[0].finisher[0]
        assert finisher.load is None
        assert finisher.reps == "AMRAP"

    def test_day_order_and_week(self, program_output):
        draft = normalize_candidate(program_output, week_number=3)
        assert [(w.day_index, w.week_number) for w in draft.workouts] == [(1, 3), (2, 3)]

    def test_missing_focus_stays_none(self, program_output):
        assert normalize_candidate(program_output).workouts[1].focus is None

    def test_default_program_name(self, program_output):
        program_output["program_name"] = None
        assert normalize_candidate(program_output).name == DEFAULT_PROGRAM_NAME

    def test_accepts_validated_candidate(self, program_output):
        candidate = ProgramCandidate.model_validate(program_output)
        assert len(normalize_candidate(candidate).workouts) == 2


class TestRejections:

    def test_main_exercise_missing_load(self, program_output):
        del program_output["workouts"][0]["main_exercises"][1]["load"]

        with pytest.raises(ValidationError):
            normalize_candidate(program_output)

    def test_warmup_with_neither_shape(self, program_output):
        program_output["workouts"][0]["warmup"].append({"exercise": "Arm Circles", "sets": 1})

        with pytest.raises(ValidationError):
            normalize_candidate(program_output)

    def test_empty_workouts(self):
        with pytest.raises(ValidationError):
            normalize_candidate({"program_name": "Empty", "workouts": []})

    def test_workout_without_main_exercises(self, program_output):
        program_output["workouts"][1]["main_exercises"] = []

        with pytest.raises(ValidationError, match="no main exercises"):
            normalize_candidate(program_output)

    def test_unreadable_reps(self, program_output):
        program_output["workouts"][0]["main_exercises"][0]["reps"] = "AMRAP"

        with pytest.raises(ValidationError, match="unreadable reps"):
            normalize_candidate(program_output)


class TestCandidateParsing:

    def test_nested_program_root(self, program_output):
        nested = {"program": {"program_name": "Nested", "weekly_workouts": program_output["workouts"]}}
        root = normalize_root(nested)
        assert root["program_name"] == "Nested"
        assert len(root["workouts"]) == 2

    def test_unknown_key_holding_workouts(self, program_output):
        root = normalize_root({"my_plan": program_output["workouts"]})
        assert "workouts" in root

    def test_numbers_and_rpe_ranges_coerced(self, program_output):
        main = program_output["workouts"][0]["main_exercises"][0]
        main.update({"reps": 10, "rest": 90, "RPE": "7-8"})

        bench = normalize_candidate(program_output).workouts[0].main_exercises[0]

        assert bench.rep_range == RepRange(10, 10)
        assert bench.rest == "90"
        assert bench.rpe == 7.0

    def test_unreadable_rpe_dropped(self, program_output):
        program_output["workouts"][0]["main_exercises"][0]["RPE"] = "hard"
        assert normalize_candidate(program_output).workouts[0].main_exercises[0].rpe is None


@pytest.mark.parametrize("value,expected", [
    ("8-12", RepRange(8, 12)),
    ("8–12", RepRange(8, 12)),
    ("6 to 8", RepRange(6, 8)),
    ("10 reps", RepRange(10, 10)),
    ("12/side", RepRange(12, 12)),
    (5, RepRange(5, 5)),
    ("AMRAP", None),
    ("12-8", None),
    (True, None),
])
def test_parse_rep_range(value, expected):
    assert parse_rep_range(value) == expected
