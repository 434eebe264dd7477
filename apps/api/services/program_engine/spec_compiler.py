"""
Spec Compiler

Combines the profile with the pre-processor output into one
GenerationRequest: the prompt text, the exact target schema the
generation client enforces, and tier equipment hints.

The only failure is a profile without a goal or experience level
(ConfigurationError, never retried).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.logging import log_event

from .constants import (
    RPE_INTENSITY_MAP,
    TIER_EQUIPMENT_PRIORITY,
    TIER_EQUIPMENT_RATIONALE,
    PipelineStrategy,
)
from .errors import ConfigurationError
from .periodization import PeriodizationModel, select_periodization
from .profile import UserProfile
from .volume_landmarks import VolumeLandmarks, calculate_volume_landmarks
from .weak_points import WeakPointAnalysis, analyze_weak_points

logger = logging.getLogger(__name__)

SCHEMA_NAME = "training_program"

# Equipment category -> words that indicate access to it
_EQUIPMENT_KEYWORDS: Dict[str, List[str]] = {
    "free weight": ["barbell", "dumbbell", "kettlebell", "free weight", "plates"],
    "machine": ["machine", "smith", "leg press"],
    "cable": ["cable", "pulley"],
    "dumbbell": ["dumbbell"],
}


@dataclass(frozen=True)
class GenerationRequest:
    """Everything the generation client needs for one call."""
    system_prompt: str
    user_prompt: str
    target_schema: Dict[str, Any]
    equipment_hints: Dict[str, List[str]]
    periodization: PeriodizationModel
    strategy: PipelineStrategy = PipelineStrategy.STRUCTURED
    schema_name: str = SCHEMA_NAME
    days_per_week: int = 4
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Target schema
# ---------------------------------------------------------------------------

def _nullable(type_name: str) -> Dict[str, Any]:
    return {"type": [type_name, "null"]}


def _object(properties: Dict[str, Any]) -> Dict[str, Any]:
    # Strict mode: every property listed as required, optional ones nullable
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties.keys()),
        "additionalProperties": False,
    }


def build_target_schema() -> Dict[str, Any]:
    """JSON schema for a one-week program, in strict structured-output form."""
    warmup = _object({
        "exercise": {"type": "string"},
        "duration": _nullable("string"),
        "intensity": _nullable("string"),
        "sets": _nullable("integer"),
        "reps": _nullable("string"),
        "rest": _nullable("string"),
        "description": _nullable("string"),
    })
    main = _object({
        "exercise": {"type": "string"},
        "sets": {"type": "integer"},
        "reps": {"type": "string", "description": "Rep range, e.g. '8-12'"},
        "load": {"type": "string", "description": "e.g. '60 kg', '75% 1RM', 'bodyweight'"},
        "rest": {"type": "string"},
        "RPE": _nullable("number"),
        "description": _nullable("string"),
    })
    finisher = _object({
        "exercise": {"type": "string"},
        "sets": _nullable("integer"),
        "reps": _nullable("string"),
        "rest": _nullable("string"),
        "load": _nullable("string"),
        "duration": _nullable("string"),
        "RPE": _nullable("number"),
        "description": _nullable("string"),
    })
    workout = _object({
        "day": {"type": "string"},
        "focus": _nullable("string"),
        "warmup": {"type": "array", "items": warmup},
        "main_exercises": {"type": "array", "items": main},
        "finisher": {"type": "array", "items": finisher},
    })
    return _object({
        "program_name": {"type": "string"},
        "workouts": {"type": "array", "items": workout},
    })


# ---------------------------------------------------------------------------
# Equipment hints
# ---------------------------------------------------------------------------

def _has_access(category: str, equipment: List[str]) -> bool:
    owned = " ".join(item.lower() for item in equipment)
    return any(word in owned for word in _EQUIPMENT_KEYWORDS.get(category, [category]))


def equipment_hints(equipment: List[str]) -> Dict[str, List[str]]:
    """
    Preferred equipment per tier, most preferred first.

    Categories the athlete has no access to are dropped. An empty
    equipment list means a full gym.
    """
    hints = {}
    for tier, priority in TIER_EQUIPMENT_PRIORITY.items():
        if not equipment:
            hints[tier] = list(priority)
            continue
        available = [category for category in priority if _has_access(category, equipment)]
        hints[tier] = available or list(priority)
    return hints


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You are a strength and conditioning coach who writes evidence-based resistance "
    "training programs. You follow the supplied volume landmarks, weak-point priorities "
    "and periodization model exactly. Return ONLY valid JSON. No markdown, no commentary."
)


def _missing_fields(profile: UserProfile) -> List[str]:
    missing = []
    if profile.goal is None:
        missing.append("goal")
    if profile.experience_level is None:
        missing.append("experience_level")
    return missing


def _profile_section(profile: UserProfile) -> str:
    lines = [
        "ATHLETE PROFILE:",
        f"- Experience: {profile.experience_level.value} ({profile.experience_months()} months of training)",
        f"- Goal: {profile.goal.value.replace('_', ' ')}",
        f"- Training days per week: {profile.days_per_week}",
        f"- Session length: {profile.session_duration_minutes} minutes",
        f"- Equipment: {', '.join(profile.equipment) if profile.equipment else 'full gym'}",
        f"- Injuries / limitations: {profile.injuries.strip() if profile.injuries else 'none reported'}",
    ]
    for lift, estimate in profile.strength_estimates.items():
        if estimate.value is None:
            continue
        lines.append(
            f"- {lift.value.replace('_', ' ').title()}: {estimate.value:g} {profile.unit} "
            f"({estimate.confidence.value.replace('_', ' ')})"
        )
    return "\n".join(lines)


def _landmarks_section(landmarks: Dict[str, VolumeLandmarks]) -> str:
    lines = ["WEEKLY VOLUME LANDMARKS (hard sets per muscle group):"]
    for group, lm in landmarks.items():
        lines.append(f"- {group}: MEV {lm.mev}, MAV {lm.mav}, MRV {lm.mrv}")
    lines.append("Start week 1 between MEV and MAV. Never exceed MRV.")
    return "\n".join(lines)


def _weak_points_section(analysis: WeakPointAnalysis) -> str:
    lines = ["WEAK POINTS (address in this order):"]
    for index, wp in enumerate(analysis.weak_points, start=1):
        lines.append(f"{index}. {wp.category} (priority {wp.priority}): {wp.rationale}")
        lines.append(f"   Recommended: {', '.join(wp.recommended_exercises)}")
    lines.append(f"Reassess weak points after {analysis.reassessment_weeks} weeks.")
    return "\n".join(lines)


def _equipment_section(hints: Dict[str, List[str]]) -> str:
    lines = ["EQUIPMENT PRIORITY BY TIER:"]
    for tier, categories in hints.items():
        lines.append(f"- {tier}: {' > '.join(categories)}. {TIER_EQUIPMENT_RATIONALE[tier]}")
    return "\n".join(lines)


def _output_rules(strategy: PipelineStrategy, schema: Dict[str, Any], days_per_week: int) -> str:
    rules = [
        "OUTPUT RULES:",
        f"- Return exactly {days_per_week} workouts for week 1 under the key \"workouts\".",
        "- Each workout has a warmup, main_exercises and finisher array.",
        "- Warmup items give either duration and intensity, or sets, reps and rest.",
        "- Every main exercise gives sets, a rep range like \"8-12\", load and rest.",
        "- Finishers may omit load for bodyweight work.",
    ]
    if strategy == PipelineStrategy.JSON_MODE:
        rules.append("- The JSON object must match this schema:")
        rules.append(json.dumps(schema, indent=2))
    return "\n".join(rules)


def compile_generation_request(
    profile: UserProfile,
    landmarks: Dict[str, VolumeLandmarks],
    weak_points: WeakPointAnalysis,
    periodization: PeriodizationModel,
    strategy: PipelineStrategy = PipelineStrategy.STRUCTURED,
    job_id: Optional[str] = None,
) -> GenerationRequest:
    """Assemble the request. Raises ConfigurationError on an incomplete profile."""
    missing = _missing_fields(profile)
    if missing:
        log_event(
            logger, logging.WARNING, "Profile incomplete for generation",
            operation="compile_generation_request", component="spec_compiler",
            job_id=job_id, missing=missing,
        )
        raise ConfigurationError(
            f"Profile is missing required fields: {', '.join(missing)}",
            user_message=(
                f"Please complete your profile ({', '.join(f.replace('_', ' ') for f in missing)}) "
                f"before generating a program."
            ),
        )

    schema = build_target_schema()
    hints = equipment_hints(profile.equipment)
    user_prompt = "\n\n".join([
        _profile_section(profile),
        _landmarks_section(landmarks),
        _weak_points_section(weak_points),
        f"PERIODIZATION:\n{periodization.describe()}",
        _equipment_section(hints),
        RPE_INTENSITY_MAP,
        _output_rules(strategy, schema, profile.days_per_week),
    ])

    log_event(
        logger, logging.INFO, "Generation request compiled",
        operation="compile_generation_request", component="spec_compiler",
        job_id=job_id, strategy=strategy.value, periodization=periodization.kind,
        weak_points=len(weak_points.weak_points),
    )
    return GenerationRequest(
        system_prompt=SYSTEM_PROMPT,
        user_prompt=user_prompt,
        target_schema=schema,
        equipment_hints=hints,
        periodization=periodization,
        strategy=strategy,
        days_per_week=profile.days_per_week,
        metadata={
            "weak_points": [wp.as_dict() for wp in weak_points.weak_points],
            "reassessment_weeks": weak_points.reassessment_weeks,
            "volume_landmarks": {group: lm.as_dict() for group, lm in landmarks.items()},
        },
    )


def compile_for_profile(
    profile: UserProfile,
    strategy: PipelineStrategy = PipelineStrategy.STRUCTURED,
    job_id: Optional[str] = None,
) -> GenerationRequest:
    """Run the pre-processor and compile in one step."""
    return compile_generation_request(
        profile,
        calculate_volume_landmarks(profile),
        analyze_weak_points(profile),
        select_periodization(profile),
        strategy=strategy,
        job_id=job_id,
    )
