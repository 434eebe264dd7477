"""
Progression Engine

Computes next week's prescription from this week's workouts and the
athlete's feedback. Volume comes before intensity, per exercise and in
this order only:

1. reps below the top of the range -> add reps (sets and load unchanged)
2. every set at the top of the range -> add one set, reps back to the
   bottom of the range (load unchanged)
3. top of the range at the set ceiling -> hold; load only moves at a
   mesocycle boundary

Week transitions on top of that:
- deload week: week-one set count, RPE target two points lower
- intensification week: RPE target one point higher (max 10)
- mesocycle boundary: restart at the block's week-one sets/reps with
  increased load

Low completion (< 70%) or very high fatigue (>= 9) holds every exercise
at its current prescription.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .constants import (
    DELOAD_RPE_REDUCTION,
    HIGH_FATIGUE,
    INTENSIFICATION_RPE_INCREASE,
    LINEAR_SET_HEADROOM,
    LOAD_INCREASE_FRACTION,
    LOW_COMPLETION_RATE,
    MAX_RPE,
    MIN_RPE,
    PERCENT_1RM_INCREASE_POINTS,
    PLATE_INCREMENTS,
    REP_INCREMENT,
)
from .periodization import Linear, PeriodizationModel, is_block_start
from .profile import ExercisePerformance, PerformanceFeedback
from .program_types import MainExercise, Workout

logger = logging.getLogger(__name__)

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_WEIGHT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(kgs?|lbs?|pounds?)?", re.IGNORECASE)
_NON_LOAD_WORDS = ("rpe", "rir", "bodyweight", "body weight", "bw")


@dataclass
class ProgressionDecision:
    """What happened to one main exercise."""
    day_index: int
    exercise: str
    action: str  # add_reps | add_set | hold | autoregulated_hold | deload | block_reset
    before: Dict
    after: Dict

    def as_dict(self) -> dict:
        return {
            "day_index": self.day_index,
            "exercise": self.exercise,
            "action": self.action,
            "before": self.before,
            "after": self.after,
        }


@dataclass
class ProgressionResult:
    week_number: int
    week_role: str
    workouts: List[Workout]
    decisions: List[ProgressionDecision] = field(default_factory=list)


def _format_number(value: float) -> str:
    return f"{value:g}"


def _round_to_plate(value: float, plate: float) -> float:
    return round(value / plate) * plate


def increase_load(load: str, unit: str = "kg") -> str:
    """
    Raise a load prescription for a new mesocycle.

    "60 kg" -> "62.5 kg"; "75% 1RM" -> "77.5% 1RM"; "bodyweight" and
    RPE-only loads are returned unchanged.
    """
    text = load.strip()
    lowered = text.lower()

    percent = _PERCENT_RE.search(text)
    if percent:
        value = min(float(percent.group(1)) + PERCENT_1RM_INCREASE_POINTS, 100.0)
        return text[: percent.start(1)] + _format_number(value) + text[percent.end(1):]

    if any(word in lowered for word in _NON_LOAD_WORDS):
        return text

    weight = _WEIGHT_RE.search(text)
    if not weight:
        return text

    stated_unit = (weight.group(2) or "").lower()
    if stated_unit.startswith(("lb", "pound")):
        unit = "lb"
    elif stated_unit.startswith("kg"):
        unit = "kg"
    plate = PLATE_INCREMENTS.get(unit, PLATE_INCREMENTS["kg"])

    value = float(weight.group(1))
    if value <= 0:
        return text
    step = max(_round_to_plate(value * LOAD_INCREASE_FRACTION, plate), plate)
    new_value = _round_to_plate(value + step, plate)
    return text[: weight.start(1)] + _format_number(new_value) + text[weight.end(1):]


def _exercise_state(exercise: MainExercise) -> dict:
    return {
        "sets": exercise.sets,
        "reps": exercise.reps,
        "rep_range": str(exercise.rep_range),
        "load": exercise.load,
        "RPE": exercise.rpe,
    }


def _lower_rpe(rpe: Optional[float]) -> Optional[float]:
    """
    Deload target: two points below the week being progressed, which is the
    intensification week in an undulating block (week one 7 -> 8 -> 6), not
    two below week one. Never below MIN_RPE.
    """
    if rpe is None:
        return None
    return max(rpe - DELOAD_RPE_REDUCTION, MIN_RPE)


def _raise_rpe(rpe: Optional[float]) -> Optional[float]:
    if rpe is None:
        return None
    return min(rpe + INTENSIFICATION_RPE_INCREASE, MAX_RPE)


class ProgressionEngine:
    """
    Usage:
        engine = ProgressionEngine(unit="kg")
        result = engine.progress_week(this_week, block_week_one, model, feedback, week_number=2)
    """

    def __init__(self, unit: str = "kg"):
        self.unit = unit

    # ------------------------------------------------------------------
    # Per-exercise hierarchy
    # ------------------------------------------------------------------

    @staticmethod
    def set_ceiling(week_one_sets: int, periodization: PeriodizationModel) -> int:
        if isinstance(periodization, Linear):
            return week_one_sets + LINEAR_SET_HEADROOM
        return week_one_sets + periodization.accumulation_weeks

    def apply_hierarchy(
        self,
        exercise: MainExercise,
        performance: Optional[ExercisePerformance],
        set_ceiling: int,
    ) -> Tuple[MainExercise, str]:
        """Apply reps -> sets -> hold to one exercise."""
        top = exercise.rep_range.high

        if performance and performance.reps_per_set:
            done = performance.reps_per_set[: exercise.sets]
            achieved = min(done)
            all_at_top = len(done) >= exercise.sets and all(r >= top for r in done)
        else:
            achieved = exercise.reps
            all_at_top = exercise.reps >= top

        if not all_at_top:
            target = min(max(achieved + REP_INCREMENT, exercise.reps), top)
            if target == exercise.reps:
                return exercise, "hold"
            return exercise.with_changes(reps=target), "add_reps"

        if exercise.sets < set_ceiling:
            return exercise.with_changes(sets=exercise.sets + 1, reps=exercise.rep_range.low), "add_set"

        return exercise, "hold"

    # ------------------------------------------------------------------
    # Week transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _index_week_one(week_one: List[Workout]) -> Dict[Tuple[int, str], MainExercise]:
        index = {}
        for workout in week_one:
            for exercise in workout.main_exercises:
                index[(workout.day_index, exercise.exercise.lower())] = exercise
        return index

    @staticmethod
    def autoregulation_hold(feedback: PerformanceFeedback) -> bool:
        return (
            feedback.completion_rate < LOW_COMPLETION_RATE
            or feedback.average_fatigue >= HIGH_FATIGUE
        )

    def _next_exercise(
        self,
        exercise: MainExercise,
        baseline: MainExercise,
        role: str,
        boundary: bool,
        hold: bool,
        feedback: PerformanceFeedback,
        periodization: PeriodizationModel,
    ) -> Tuple[MainExercise, str]:
        if boundary:
            load = exercise.load if hold else increase_load(exercise.load, self.unit)
            return exercise.with_changes(
                sets=baseline.sets,
                reps=baseline.reps,
                rep_range=baseline.rep_range,
                rpe=baseline.rpe,
                load=load,
            ), "block_reset"

        if role == "deload":
            return exercise.with_changes(
                sets=baseline.sets,
                rpe=_lower_rpe(exercise.rpe),
            ), "deload"

        if hold:
            return exercise, "autoregulated_hold"

        ceiling = self.set_ceiling(baseline.sets, periodization)
        updated, action = self.apply_hierarchy(
            exercise, feedback.for_exercise(exercise.exercise), ceiling
        )
        if role == "intensification":
            updated = updated.with_changes(rpe=_raise_rpe(updated.rpe))
        return updated, action

    def progress_week(
        self,
        current_week: List[Workout],
        block_week_one: List[Workout],
        periodization: PeriodizationModel,
        feedback: PerformanceFeedback,
        week_number: int,
    ) -> ProgressionResult:
        """
        Build week `week_number + 1` from week `week_number`.

        `block_week_one` is the first week of the block containing
        `week_number`; it supplies the baseline set counts and the scheme a
        new block restarts from.
        """
        next_week = week_number + 1
        boundary = is_block_start(periodization, next_week)
        role = periodization.week_role(next_week)
        hold = self.autoregulation_hold(feedback)
        baselines = self._index_week_one(block_week_one)

        workouts: List[Workout] = []
        decisions: List[ProgressionDecision] = []
        for workout in current_week:
            main: List[MainExercise] = []
            for exercise in workout.main_exercises:
                baseline = baselines.get((workout.day_index, exercise.exercise.lower()), exercise)
                updated, action = self._next_exercise(
                    exercise, baseline, role, boundary, hold, feedback, periodization
                )
                main.append(updated)
                decisions.append(ProgressionDecision(
                    day_index=workout.day_index,
                    exercise=exercise.exercise,
                    action=action,
                    before=_exercise_state(exercise),
                    after=_exercise_state(updated),
                ))
            workouts.append(Workout(
                day=workout.day,
                week_number=next_week,
                day_index=workout.day_index,
                focus=workout.focus,
                warmup=list(workout.warmup),
                main_exercises=main,
                finisher=list(workout.finisher),
            ))

        logger.info(
            f"Progressed week {week_number} -> {next_week} ({'boundary' if boundary else role}), "
            f"{len(decisions)} exercises, autoregulated={hold}"
        )
        return ProgressionResult(
            week_number=next_week,
            week_role="boundary" if boundary else role,
            workouts=workouts,
            decisions=decisions,
        )
