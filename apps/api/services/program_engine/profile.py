"""
Inputs to the pipeline: the athlete's profile snapshot and weekly feedback.

The profile is owned by the profile store; the pipeline only reads a
snapshot of it. Goal and experience level are optional at this layer so
a partial snapshot can be accepted and rejected later with a
ConfigurationError rather than a request validation failure.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    CONFIDENCE_RANK,
    DEFAULT_TRAINING_MONTHS,
    ExperienceLevel,
    Goal,
    Lift,
    StrengthConfidence,
)


class StrengthEstimate(BaseModel):
    """A single lift estimate. `value` is in the profile's unit."""
    value: Optional[float] = Field(None, gt=0)
    confidence: StrengthConfidence = StrengthConfidence.UNSURE

    def is_reliable(self) -> bool:
        """Usable for ratio analysis: present and at least an estimated 1RM."""
        return (
            self.value is not None
            and CONFIDENCE_RANK[self.confidence] >= CONFIDENCE_RANK[StrengthConfidence.ESTIMATED_1RM]
        )


class UserProfile(BaseModel):
    """Static inputs from the profile store."""
    model_config = ConfigDict(use_enum_values=False)

    experience_level: Optional[ExperienceLevel] = None
    goal: Optional[Goal] = None
    training_months: Optional[int] = Field(None, ge=0)
    equipment: List[str] = Field(default_factory=list)
    injuries: Optional[str] = None
    strength_estimates: Dict[Lift, StrengthEstimate] = Field(default_factory=dict)
    unit: str = "kg"
    days_per_week: int = Field(4, ge=1, le=7)
    session_duration_minutes: int = Field(60, ge=15, le=180)
    recovery_capacity: Optional[int] = Field(None, ge=1, le=10)
    stress_level: Optional[int] = Field(None, ge=1, le=10)
    volume_tolerance: Optional[float] = Field(None, gt=0, le=2.0)

    @field_validator("unit")
    @classmethod
    def _normalize_unit(cls, v: str) -> str:
        v = (v or "kg").strip().lower()
        if v in ("lb", "lbs", "pound", "pounds"):
            return "lb"
        return "kg"

    @field_validator("equipment", mode="before")
    @classmethod
    def _equipment_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    def experience_months(self) -> int:
        """Training age in months, defaulted from the experience level."""
        if self.training_months is not None:
            return self.training_months
        if self.experience_level is not None:
            return DEFAULT_TRAINING_MONTHS[self.experience_level]
        return DEFAULT_TRAINING_MONTHS[ExperienceLevel.BEGINNER]

    def estimate(self, lift: Lift) -> Optional[StrengthEstimate]:
        return self.strength_estimates.get(lift)


class ExercisePerformance(BaseModel):
    """What was actually done for one exercise in the week."""
    reps_per_set: List[int] = Field(default_factory=list)
    rpe: Optional[float] = Field(None, ge=1, le=10)


class PerformanceFeedback(BaseModel):
    """Weekly check-in used by the progression engine."""
    completion_rate: float = Field(1.0, ge=0.0, le=1.0)
    average_fatigue: int = Field(5, ge=1, le=10)
    average_rpe: Optional[float] = Field(None, ge=1, le=10)
    # Keyed by exercise name (case-insensitive match)
    exercises: Dict[str, ExercisePerformance] = Field(default_factory=dict)

    def for_exercise(self, name: str) -> Optional[ExercisePerformance]:
        wanted = name.strip().lower()
        for key, perf in self.exercises.items():
            if key.strip().lower() == wanted:
                return perf
        return None
