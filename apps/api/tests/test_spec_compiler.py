"""
Tests for compiling a profile into a GenerationRequest.
"""

import json

import pytest

from services.program_engine.constants import PipelineStrategy
from services.program_engine.errors import ConfigurationError
from services.program_engine.periodization import Undulating4Week
from services.program_engine.profile import UserProfile
from services.program_engine.spec_compiler import (
    build_target_schema,
    compile_for_profile,
    equipment_hints,
)


def _walk_objects(schema):
    """Yield every object node in a JSON schema."""
    if isinstance(schema, dict):
        if schema.get("type") == "object":
            yield schema
        for value in schema.values():
            yield from _walk_objects(value)
    elif isinstance(schema, list):
        for item in schema:
            yield from _walk_objects(item)


class TestTargetSchema:

    def test_strict_mode_shape(self):
        schema = build_target_schema()
        objects = list(_walk_objects(schema))

        assert len(objects) == 5  # root, workout, warmup, main, finisher
        for node in objects:
            assert node["additionalProperties"] is False
            assert sorted(node["required"]) == sorted(node["properties"])

    def test_main_exercise_fields_are_not_nullable(self):
        main = build_target_schema()["properties"]["workouts"]["items"]["properties"]["main_exercises"]["items"]
        for name in ("exercise", "sets", "reps", "load", "rest"):
            assert main["properties"][name]["type"] in ("string", "integer"), name
        assert main["properties"]["RPE"]["type"] == ["number", "null"]


class TestEquipmentHints:

    def test_empty_equipment_means_full_gym(self):
        hints = equipment_hints([])
        assert hints["primary"] == ["free weight", "machine"]
        assert hints["isolation"] == ["cable", "machine", "dumbbell"]

    def test_unavailable_categories_dropped(self):
        hints = equipment_hints(["Barbell", "Dumbbells"])
        assert hints["primary"] == ["free weight"]
        assert hints["secondary"] == ["free weight"]
        assert hints["isolation"] == ["dumbbell"]

    def test_nothing_recognized_keeps_full_priority(self):
        hints = equipment_hints(["resistance bands"])
        assert hints["secondary"] == ["machine", "cable", "free weight"]


class TestCompile:

    def test_request_carries_preprocessor_output(self, intermediate_profile):
        request = compile_for_profile(intermediate_profile, job_id="job-1")

        assert request.strategy == PipelineStrategy.STRUCTURED
        assert isinstance(request.periodization, Undulating4Week)
        assert request.days_per_week == 2
        assert request.metadata["weak_points"][0]["category"] == "Posterior Chain Weakness"
        assert request.metadata["volume_landmarks"]["chest"] == {"mev": 14, "mav": 32, "mrv": 47}

    def test_prompt_sections(self, intermediate_profile):
        prompt = compile_for_profile(intermediate_profile).user_prompt

        assert "ATHLETE PROFILE:" in prompt
        assert "- chest: MEV 14, MAV 32, MRV 47" in prompt
        assert "1. Posterior Chain Weakness (priority 2)" in prompt
        assert "Undulating 4-week blocks" in prompt
        assert "RPE 8: ~80% 1RM" in prompt
        assert "Return exactly 2 workouts" in prompt

    def test_schema_only_embedded_in_json_mode(self, intermediate_profile):
        structured = compile_for_profile(intermediate_profile, strategy=PipelineStrategy.STRUCTURED)
        legacy = compile_for_profile(intermediate_profile, strategy=PipelineStrategy.JSON_MODE)

        embedded = json.dumps(build_target_schema(), indent=2)
        assert embedded not in structured.user_prompt
        assert embedded in legacy.user_prompt
        assert legacy.target_schema == structured.target_schema

    @pytest.mark.parametrize("missing", ["goal", "experience_level"])
    def test_incomplete_profile_is_configuration_error(self, intermediate_profile, missing):
        profile = intermediate_profile.model_copy(update={missing: None})

        with pytest.raises(ConfigurationError) as exc_info:
            compile_for_profile(profile)

        assert missing in str(exc_info.value)
        assert exc_info.value.category == "configuration"

    def test_strength_estimates_listed_in_profile_unit(self):
        profile = UserProfile.model_validate({
            "experience_level": "beginner",
            "goal": "strength",
            "unit": "lbs",
            "strength_estimates": {"squat": {"value": 225, "confidence": "estimated_1rm"}},
        })
        prompt = compile_for_profile(profile).user_prompt
        assert "- Squat: 225 lb (estimated 1rm)" in prompt
