"""
Schema for what the model returns.

The model is instructed to follow a strict schema but does not always do
so, so validation is tier-specific rather than one universal exercise
shape:

- warmup: `exercise` plus either (duration, intensity) or (sets, reps, rest)
- main: exercise, sets, reps, load and rest all required; RPE optional
- finisher: only `exercise` required
- workout `focus` is optional

Root objects that name the workouts array differently are renamed to
`workouts` before any of the above runs.
"""
from __future__ import annotations

import re
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .constants import CANONICAL_WORKOUTS_FIELD, WORKOUTS_FIELD_ALIASES

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _looks_like_workouts(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(isinstance(item, dict) and "main_exercises" in item for item in value)
    )


def normalize_root(raw: Any) -> Any:
    """Return a copy of `raw` whose workouts array is under `workouts`."""
    if not isinstance(raw, dict):
        return raw
    if isinstance(raw.get(CANONICAL_WORKOUTS_FIELD), list):
        return raw

    data = dict(raw)

    # {"program": {"program_name": ..., "weekly_workouts": [...]}}
    nested = data.get("program")
    if isinstance(nested, dict):
        inner = normalize_root(nested)
        if isinstance(inner, dict) and isinstance(inner.get(CANONICAL_WORKOUTS_FIELD), list):
            merged = {k: v for k, v in data.items() if k != "program"}
            merged.update(inner)
            return merged

    for alias in WORKOUTS_FIELD_ALIASES:
        if isinstance(data.get(alias), list):
            data[CANONICAL_WORKOUTS_FIELD] = data.pop(alias)
            return data

    candidates = [key for key, value in data.items() if _looks_like_workouts(value)]
    if len(candidates) == 1:
        data[CANONICAL_WORKOUTS_FIELD] = data.pop(candidates[0])
    return data


def _to_text(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _lenient_rpe(value: Any) -> Optional[float]:
    """RPE is optional: "7-8" becomes 7.0, anything unreadable becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group())
    return None


class _CandidateModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WarmupCandidate(_CandidateModel):
    exercise: str = Field(min_length=1)
    duration: Optional[str] = None
    intensity: Optional[str] = None
    sets: Optional[int] = Field(None, ge=1)
    reps: Optional[str] = None
    rest: Optional[str] = None
    description: Optional[str] = None

    _text_fields = field_validator("duration", "intensity", "reps", "rest", mode="before")(_to_text)

    @model_validator(mode="after")
    def _timed_or_set_based(self) -> "WarmupCandidate":
        timed = bool(self.duration) and bool(self.intensity)
        set_based = self.sets is not None and bool(self.reps) and bool(self.rest)
        if not (timed or set_based):
            raise ValueError(
                f"warmup exercise {self.exercise!r} needs (duration, intensity) or (sets, reps, rest)"
            )
        return self


class MainCandidate(_CandidateModel):
    exercise: str = Field(min_length=1)
    sets: int = Field(ge=1, le=20)
    reps: Union[int, str]
    load: str = Field(min_length=1)
    rest: str = Field(min_length=1)
    rpe: Optional[float] = Field(None, alias="RPE")
    description: Optional[str] = None

    _text_fields = field_validator("load", "rest", mode="before")(_to_text)
    _rpe = field_validator("rpe", mode="before")(_lenient_rpe)


class FinisherCandidate(_CandidateModel):
    exercise: str = Field(min_length=1)
    sets: Optional[int] = Field(None, ge=1)
    reps: Optional[str] = None
    rest: Optional[str] = None
    load: Optional[str] = None
    duration: Optional[str] = None
    rpe: Optional[float] = Field(None, alias="RPE")
    description: Optional[str] = None

    _text_fields = field_validator("reps", "rest", "load", "duration", mode="before")(_to_text)
    _rpe = field_validator("rpe", mode="before")(_lenient_rpe)


class WorkoutCandidate(_CandidateModel):
    day: str = Field(min_length=1)
    focus: Optional[str] = None
    warmup: List[WarmupCandidate] = Field(default_factory=list)
    main_exercises: List[MainCandidate]
    finisher: List[FinisherCandidate] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _merge_tiers(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("warmup", "finisher"):
            if data.get(key) is None:
                data[key] = []
        extra = data.pop("optional_finisher", None)
        if isinstance(extra, list):
            data["finisher"] = list(data["finisher"]) + extra
        return data


class ProgramCandidate(_CandidateModel):
    """A structurally valid model response, before normalization."""
    program_name: Optional[str] = None
    workouts: List[WorkoutCandidate]

    @model_validator(mode="before")
    @classmethod
    def _canonical_root(cls, data: Any) -> Any:
        return normalize_root(data)
