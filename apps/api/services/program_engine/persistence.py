"""
Transactional Persistence Manager

Owns the GenerationJob state machine:

    pending -> processing -> completed | failed

A job reaches `completed` only after, in order:
1. required fields of the draft are checked non-null
2. the program (or the new week) is written on the primary
3. the written row is read back and its owner compared with the job's
4. the job is marked completed in the same transaction, committed, and
   only then registered with the read-after-write router

A failure in any step rolls back, marks the job failed and raises
PersistenceError. Nothing is retried here; the caller submits a new job.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.logging import log_event
from models import GenerationJob, ProgramWorkout, TrainingProgram

from .consistency import ReadAfterWriteRouter, read_after_write_router
from .constants import JobStatus
from .errors import PersistenceError, ProgramEngineError
from .periodization import PeriodizationModel
from .profile import UserProfile
from .program_types import (
    ProgramDraft,
    Workout,
    finisher_from_dict,
    main_from_dict,
    warmup_from_dict,
)

logger = logging.getLogger(__name__)

# (session, model, row id) -> owner id as stored, or None if the row is missing
IdentityReader = Callable[[Session, Any, uuid.UUID], Optional[uuid.UUID]]


def read_owner_id(db: Session, model, row_id: uuid.UUID) -> Optional[uuid.UUID]:
    """Re-read the owner of a just-written row from the database."""
    return db.execute(select(model.owner_id).where(model.id == row_id)).scalar_one_or_none()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def workout_row(program_id: uuid.UUID, workout: Workout, job_id: Optional[uuid.UUID] = None) -> ProgramWorkout:
    return ProgramWorkout(
        program_id=program_id,
        week_number=workout.week_number,
        day_index=workout.day_index,
        day_label=workout.day,
        focus=workout.focus,
        warmup=[w.to_dict() for w in workout.warmup],
        main_exercises=[m.to_dict() for m in workout.main_exercises],
        finisher=[f.to_dict() for f in workout.finisher],
        generation_job_id=job_id,
    )


def workout_from_row(row: ProgramWorkout) -> Workout:
    """Rebuild a stored workout. Raises ValueError on unreadable main exercises."""
    return Workout(
        day=row.day_label,
        week_number=row.week_number,
        day_index=row.day_index,
        focus=row.focus,
        warmup=[warmup_from_dict(w) for w in row.warmup or []],
        main_exercises=[main_from_dict(m) for m in row.main_exercises or []],
        finisher=[finisher_from_dict(f) for f in row.finisher or []],
    )


def load_week(db: Session, program_id: uuid.UUID, week_number: int) -> List[Workout]:
    rows = db.execute(
        select(ProgramWorkout)
        .where(ProgramWorkout.program_id == program_id, ProgramWorkout.week_number == week_number)
        .order_by(ProgramWorkout.day_index)
    ).scalars().all()
    return [workout_from_row(row) for row in rows]


class TransactionalPersistenceManager:
    """
    Single gate between a generated program and a `completed` job.

    `identity_reader` performs the post-write read-back; tests replace it
    to force a mismatch.
    """

    def __init__(
        self,
        router: Optional[ReadAfterWriteRouter] = None,
        identity_reader: IdentityReader = read_owner_id,
    ):
        self.router = router or read_after_write_router
        self.identity_reader = identity_reader

    # ------------------------------------------------------------------
    # Job state transitions
    # ------------------------------------------------------------------

    def mark_processing(self, db: Session, job: GenerationJob) -> GenerationJob:
        if job.status != JobStatus.PENDING.value:
            raise PersistenceError(f"Job {job.id} cannot start from status {job.status!r}")
        job.status = JobStatus.PROCESSING.value
        job.started_at = _utcnow()
        db.commit()
        log_event(
            logger, logging.INFO, "Job processing",
            operation="mark_processing", component="persistence",
            job_id=str(job.id), owner_id=str(job.owner_id), job_type=job.job_type,
        )
        return job

    def mark_failed(self, db: Session, job: GenerationJob, error: BaseException) -> GenerationJob:
        """
        Record a failure on the job. Safe to call twice; a terminal job is
        left untouched.
        """
        attempts = getattr(error, "attempts", None) or job.attempts
        db.rollback()
        db.refresh(job)
        if job.is_terminal:
            return job

        if isinstance(error, ProgramEngineError):
            category, message = error.category, error.user_message
        else:
            category, message = ProgramEngineError.category, ProgramEngineError.default_message

        job.status = JobStatus.FAILED.value
        job.error_category = category
        job.error_detail = message
        job.finished_at = _utcnow()
        if attempts:
            job.attempts = attempts
        db.commit()

        log_event(
            logger, logging.ERROR, "Job failed",
            operation="mark_failed", component="persistence",
            job_id=str(job.id), owner_id=str(job.owner_id),
            category=category, error=str(error),
        )
        return job

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _prevalidate(self, job: GenerationJob, owner_id: Any, workouts: List[Workout]) -> None:
        if job.status != JobStatus.PROCESSING.value:
            raise PersistenceError(f"Job {job.id} is {job.status!r}, expected 'processing'")
        if owner_id is None:
            raise PersistenceError("owner_id is required")
        if _as_uuid(owner_id) != job.owner_id:
            raise PersistenceError(f"owner_id {owner_id} does not own job {job.id}")
        if not workouts:
            raise PersistenceError("No workouts to persist")
        for workout in workouts:
            if not workout.day:
                raise PersistenceError("Workout without a day label")
            for exercise in workout.main_exercises:
                missing = [
                    name for name in ("exercise", "sets", "reps", "load", "rest")
                    if getattr(exercise, name) in (None, "")
                ]
                if missing:
                    raise PersistenceError(
                        f"Main exercise {exercise.exercise!r} missing {', '.join(missing)}"
                    )

    def _verify_owner(self, db: Session, model, row_id: uuid.UUID, owner_id: uuid.UUID) -> None:
        stored = self.identity_reader(db, model, row_id)
        if stored is None:
            raise PersistenceError(f"{model.__tablename__} {row_id} not found after write")
        if _as_uuid(stored) != owner_id:
            raise PersistenceError(
                f"{model.__tablename__} {row_id} owner mismatch after write: "
                f"expected {owner_id}, read {stored}"
            )

    def _complete(self, db: Session, job: GenerationJob, program_id: uuid.UUID) -> None:
        job.status = JobStatus.COMPLETED.value
        job.program_id = program_id
        job.error_category = None
        job.error_detail = None
        job.finished_at = _utcnow()
        db.commit()

    def _fail(self, db: Session, job: GenerationJob, error: SQLAlchemyError, operation: str) -> PersistenceError:
        failure = PersistenceError(f"{operation} failed: {error}")
        self.mark_failed(db, job, failure)
        return failure

    def persist_program(
        self,
        db: Session,
        job: GenerationJob,
        owner_id: Any,
        draft: ProgramDraft,
        periodization: PeriodizationModel,
        profile: UserProfile,
    ) -> TrainingProgram:
        """Write a new program with its first week and complete the job."""
        try:
            self._prevalidate(job, owner_id, draft.workouts)
            if not draft.name:
                raise PersistenceError("Program name is required")
            owner = _as_uuid(owner_id)

            program = TrainingProgram(
                id=uuid.uuid4(),
                owner_id=owner,
                generation_job_id=job.id,
                name=draft.name,
                periodization=periodization.as_dict(),
                experience_level=profile.experience_level.value,
                goal=profile.goal.value,
                unit=profile.unit,
                current_week=1,
            )
            db.add(program)
            db.flush()
            for workout in draft.workouts:
                db.add(workout_row(program.id, workout))
            db.flush()

            self._verify_owner(db, TrainingProgram, program.id, owner)
            self._complete(db, job, program.id)
        except PersistenceError as e:
            self.mark_failed(db, job, e)
            raise
        except SQLAlchemyError as e:
            raise self._fail(db, job, e, "persist_program") from e

        self.router.record_write(program.id)
        log_event(
            logger, logging.INFO, "Program persisted",
            operation="persist_program", component="persistence",
            job_id=str(job.id), owner_id=str(owner), program_id=str(program.id),
            workouts=len(draft.workouts),
        )
        return program

    def persist_week(
        self,
        db: Session,
        job: GenerationJob,
        owner_id: Any,
        program_id: Any,
        workouts: List[Workout],
    ) -> List[ProgramWorkout]:
        """Append a progressed week to an existing program and complete the job."""
        try:
            self._prevalidate(job, owner_id, workouts)
            owner = _as_uuid(owner_id)
            program_uuid = _as_uuid(program_id)
            week_numbers = {w.week_number for w in workouts}
            if len(week_numbers) != 1:
                raise PersistenceError("A progression writes exactly one week")
            week_number = week_numbers.pop()

            program = db.get(TrainingProgram, program_uuid)
            if program is None:
                raise PersistenceError(f"Program {program_uuid} not found")

            rows = [workout_row(program_uuid, w, job.id) for w in workouts]
            db.add_all(rows)
            program.current_week = max(program.current_week or 1, week_number)
            db.flush()

            self._verify_owner(db, TrainingProgram, program_uuid, owner)
            written = db.execute(
                select(func.count(ProgramWorkout.id)).where(
                    ProgramWorkout.program_id == program_uuid,
                    ProgramWorkout.week_number == week_number,
                )
            ).scalar_one()
            if written != len(rows):
                raise PersistenceError(
                    f"Week {week_number} of program {program_uuid} has {written} workouts after write, "
                    f"expected {len(rows)}"
                )
            self._complete(db, job, program_uuid)
        except PersistenceError as e:
            self.mark_failed(db, job, e)
            raise
        except SQLAlchemyError as e:
            raise self._fail(db, job, e, "persist_week") from e

        self.router.record_write(program_uuid)
        log_event(
            logger, logging.INFO, "Program week persisted",
            operation="persist_week", component="persistence",
            job_id=str(job.id), owner_id=str(owner), program_id=str(program_uuid),
            week_number=week_number, workouts=len(rows),
        )
        return rows
