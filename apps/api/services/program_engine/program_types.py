"""
Canonical program representation.

Exercises are a tagged union: WarmupExercise | MainExercise |
FinisherExercise. Each variant keeps exactly the fields its tier
guarantees; optional numbers stay None instead of being invented.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional, Union

from .constants import ExerciseTier


@dataclass(frozen=True)
class RepRange:
    low: int
    high: int

    def __str__(self) -> str:
        if self.low == self.high:
            return str(self.low)
        return f"{self.low}-{self.high}"


@dataclass(frozen=True)
class WarmupExercise:
    """Either timed (duration + intensity) or set-based (sets + reps + rest)."""
    exercise: str
    duration: Optional[str] = None
    intensity: Optional[str] = None
    sets: Optional[int] = None
    reps: Optional[str] = None
    rest: Optional[str] = None
    description: Optional[str] = None
    tier: ExerciseTier = field(default=ExerciseTier.WARMUP, init=False)

    @property
    def is_timed(self) -> bool:
        return self.duration is not None and self.intensity is not None

    def to_dict(self) -> dict:
        return _compact({
            "exercise": self.exercise,
            "duration": self.duration,
            "intensity": self.intensity,
            "sets": self.sets,
            "reps": self.reps,
            "rest": self.rest,
            "description": self.description,
        })


@dataclass(frozen=True)
class MainExercise:
    """
    A working exercise. `reps` is the current per-set target;
    `rep_range` is the prescribed range it progresses inside.
    """
    exercise: str
    sets: int
    reps: int
    rep_range: RepRange
    load: str
    rest: str
    rpe: Optional[float] = None
    description: Optional[str] = None
    tier: ExerciseTier = field(default=ExerciseTier.MAIN, init=False)

    def with_changes(self, **changes) -> "MainExercise":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return _compact({
            "exercise": self.exercise,
            "sets": self.sets,
            "reps": self.reps,
            "rep_range": str(self.rep_range),
            "load": self.load,
            "rest": self.rest,
            "RPE": self.rpe,
            "description": self.description,
        })


@dataclass(frozen=True)
class FinisherExercise:
    """Bodyweight finishers legitimately omit load."""
    exercise: str
    sets: Optional[int] = None
    reps: Optional[str] = None
    rest: Optional[str] = None
    load: Optional[str] = None
    duration: Optional[str] = None
    rpe: Optional[float] = None
    description: Optional[str] = None
    tier: ExerciseTier = field(default=ExerciseTier.FINISHER, init=False)

    def to_dict(self) -> dict:
        return _compact({
            "exercise": self.exercise,
            "sets": self.sets,
            "reps": self.reps,
            "rest": self.rest,
            "load": self.load,
            "duration": self.duration,
            "RPE": self.rpe,
            "description": self.description,
        })


Exercise = Union[WarmupExercise, MainExercise, FinisherExercise]


@dataclass(frozen=True)
class Workout:
    day: str
    week_number: int
    day_index: int
    focus: Optional[str] = None
    warmup: List[WarmupExercise] = field(default_factory=list)
    main_exercises: List[MainExercise] = field(default_factory=list)
    finisher: List[FinisherExercise] = field(default_factory=list)


@dataclass(frozen=True)
class ProgramDraft:
    """A normalized program that has not been persisted yet."""
    name: str
    workouts: List[Workout]


def _compact(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


def parse_rep_range(value) -> Optional[RepRange]:
    """
    Parse "8-12", "8–12", "8 to 12", "10" or 10 into a RepRange.

    Returns None for things like "AMRAP" or "30s".
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        reps = int(value)
        return RepRange(reps, reps) if reps > 0 else None
    if not isinstance(value, str):
        return None

    text = value.strip().lower().replace("–", "-").replace("—", "-").replace(" to ", "-")
    text = text.replace("reps", "").replace("rep", "").strip()
    # Per-side notation: "10/side", "10 each"
    for suffix in ("/side", "per side", "each side", "each", "/leg", "/arm"):
        if text.endswith(suffix):
            text = text[: -len(suffix)].strip()
    parts = [p.strip() for p in text.split("-")]
    try:
        numbers = [int(p) for p in parts if p]
    except ValueError:
        return None
    if len(numbers) == 1 and numbers[0] > 0:
        return RepRange(numbers[0], numbers[0])
    if len(numbers) == 2 and 0 < numbers[0] <= numbers[1]:
        return RepRange(numbers[0], numbers[1])
    return None


# Serialization of stored workouts (JSON columns) back into variants

def warmup_from_dict(data: dict) -> WarmupExercise:
    return WarmupExercise(
        exercise=data["exercise"],
        duration=data.get("duration"),
        intensity=data.get("intensity"),
        sets=data.get("sets"),
        reps=data.get("reps"),
        rest=data.get("rest"),
        description=data.get("description"),
    )


def main_from_dict(data: dict) -> MainExercise:
    rep_range = parse_rep_range(data.get("rep_range", data.get("reps")))
    if rep_range is None:
        raise ValueError(f"Stored main exercise {data.get('exercise')!r} has no rep range")
    reps = data.get("reps")
    return MainExercise(
        exercise=data["exercise"],
        sets=int(data["sets"]),
        reps=reps if isinstance(reps, int) and not isinstance(reps, bool) else rep_range.low,
        rep_range=rep_range,
        load=str(data["load"]),
        rest=str(data["rest"]),
        rpe=data.get("RPE"),
        description=data.get("description"),
    )


def finisher_from_dict(data: dict) -> FinisherExercise:
    return FinisherExercise(
        exercise=data["exercise"],
        sets=data.get("sets"),
        reps=data.get("reps"),
        rest=data.get("rest"),
        load=data.get("load"),
        duration=data.get("duration"),
        rpe=data.get("RPE"),
        description=data.get("description"),
    )
