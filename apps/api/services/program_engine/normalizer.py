"""
Schema Normalizer

Turns a validated ProgramCandidate into a ProgramDraft of tagged exercise
variants. Nothing required is invented: a main exercise whose reps cannot
be read as a rep range is an error, not a guess.

Failures raise ValidationError. They are never retried because the same
candidate would fail the same way.
"""
import logging
from typing import Any, Dict, Union

from pydantic import ValidationError as PydanticValidationError

from core.logging import log_event

from .candidate import (
    FinisherCandidate,
    MainCandidate,
    ProgramCandidate,
    WarmupCandidate,
    WorkoutCandidate,
)
from .errors import ValidationError
from .program_types import (
    FinisherExercise,
    MainExercise,
    ProgramDraft,
    WarmupExercise,
    Workout,
    parse_rep_range,
)

logger = logging.getLogger(__name__)

DEFAULT_PROGRAM_NAME = "Training Program"


def _warmup(item: WarmupCandidate) -> WarmupExercise:
    return WarmupExercise(
        exercise=item.exercise.strip(),
        duration=item.duration,
        intensity=item.intensity,
        sets=item.sets,
        reps=item.reps,
        rest=item.rest,
        description=item.description,
    )


def _main(item: MainCandidate, day: str) -> MainExercise:
    rep_range = parse_rep_range(item.reps)
    if rep_range is None:
        raise ValidationError(
            f"Main exercise {item.exercise!r} on {day!r} has unreadable reps {item.reps!r}"
        )
    return MainExercise(
        exercise=item.exercise.strip(),
        sets=item.sets,
        reps=rep_range.low,
        rep_range=rep_range,
        load=item.load.strip(),
        rest=item.rest.strip(),
        rpe=item.rpe,
        description=item.description,
    )


def _finisher(item: FinisherCandidate) -> FinisherExercise:
    return FinisherExercise(
        exercise=item.exercise.strip(),
        sets=item.sets,
        reps=item.reps,
        rest=item.rest,
        load=item.load,
        duration=item.duration,
        rpe=item.rpe,
        description=item.description,
    )


def _workout(item: WorkoutCandidate, week_number: int, day_index: int) -> Workout:
    if not item.main_exercises:
        raise ValidationError(f"Workout {item.day!r} has no main exercises")
    return Workout(
        day=item.day.strip(),
        week_number=week_number,
        day_index=day_index,
        focus=item.focus.strip() if item.focus and item.focus.strip() else None,
        warmup=[_warmup(w) for w in item.warmup],
        main_exercises=[_main(m, item.day) for m in item.main_exercises],
        finisher=[_finisher(f) for f in item.finisher],
    )


def normalize_candidate(
    candidate: Union[ProgramCandidate, Dict[str, Any]],
    week_number: int = 1,
) -> ProgramDraft:
    """
    Normalize a candidate (or a raw dict) into a ProgramDraft.

    Raises:
        ValidationError: the candidate cannot be reconciled
    """
    if not isinstance(candidate, ProgramCandidate):
        try:
            candidate = ProgramCandidate.model_validate(candidate)
        except PydanticValidationError as e:
            raise ValidationError(f"Candidate does not match the program schema: {e.error_count()} errors") from e

    if not candidate.workouts:
        raise ValidationError("Candidate has an empty workouts array")

    workouts = [
        _workout(item, week_number, day_index)
        for day_index, item in enumerate(candidate.workouts, start=1)
    ]
    name = (candidate.program_name or "").strip() or DEFAULT_PROGRAM_NAME

    log_event(
        logger, logging.DEBUG, "Candidate normalized",
        operation="normalize_candidate", component="normalizer",
        workouts=len(workouts),
        main_exercises=sum(len(w.main_exercises) for w in workouts),
    )
    return ProgramDraft(name=name, workouts=workouts)
