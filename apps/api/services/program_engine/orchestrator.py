"""
Generation Job Orchestrator

Single entry point for initial generation and weekly progression.

Submission (request thread, fast):
- expire an abandoned job for the owner, if any
- reject when a pending/processing job already exists (JobConflictError)
- resolve the pipeline strategy once and store it on the job
- create the job row, commit, hand the id to `dispatch`

Execution (worker):
- pending -> processing
- generation: pre-processor -> compiler -> generation client ->
  normalizer -> persistence
- progression: stored week -> progression engine -> persistence
- every error ends with the job failed; nothing is swallowed
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.logging import log_event
from models import NON_TERMINAL_JOB_STATUSES, GenerationJob, TrainingProgram

from .constants import JobStatus, JobType, PipelineStrategy
from .errors import (
    ConfigurationError,
    JobConflictError,
    ProgramEngineError,
    ProgramNotFoundError,
    ValidationError,
)
from .feature_flags import resolve_pipeline_strategy
from .generation_client import StructuredGenerationClient
from .normalizer import normalize_candidate
from .periodization import block_start_week, periodization_from_dict
from .persistence import TransactionalPersistenceManager, load_week
from .profile import PerformanceFeedback, UserProfile
from .progression import ProgressionEngine
from .spec_compiler import compile_for_profile

logger = logging.getLogger(__name__)

Dispatch = Callable[[str], Any]
StrategyResolver = Callable[[Any, Session], PipelineStrategy]


class StaleJobError(ProgramEngineError):
    """A job that never finished (worker crash, lost message)."""

    category = "generation"
    default_message = "Your previous request timed out. Please try again."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite returns naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


@dataclass
class JobStatusView:
    job: GenerationJob
    program: Optional[TrainingProgram] = None

    @property
    def error(self) -> Optional[dict]:
        if self.job.status != JobStatus.FAILED.value:
            return None
        return {"category": self.job.error_category, "message": self.job.error_detail}


class GenerationJobOrchestrator:
    """
    Usage:
        orchestrator = GenerationJobOrchestrator(dispatch=run_generation_job.delay)
        job = orchestrator.submit_generation(db, owner_id, profile)
        # worker:
        orchestrator.run_job(db, job_id)
    """

    def __init__(
        self,
        dispatch: Optional[Dispatch] = None,
        generation_client: Optional[StructuredGenerationClient] = None,
        persistence: Optional[TransactionalPersistenceManager] = None,
        strategy_resolver: StrategyResolver = resolve_pipeline_strategy,
        stale_after_s: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.dispatch = dispatch
        self._generation_client = generation_client
        self.persistence = persistence or TransactionalPersistenceManager()
        self.strategy_resolver = strategy_resolver
        self.stale_after = timedelta(
            seconds=settings.GENERATION_JOB_STALE_AFTER_S if stale_after_s is None else stale_after_s
        )
        self._now = now

    @property
    def generation_client(self) -> StructuredGenerationClient:
        # Built lazily so submission never needs model credentials
        if self._generation_client is None:
            self._generation_client = StructuredGenerationClient()
        return self._generation_client

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _active_job(self, db: Session, owner_id: uuid.UUID) -> Optional[GenerationJob]:
        return db.execute(
            select(GenerationJob).where(
                GenerationJob.owner_id == owner_id,
                GenerationJob.status.in_(NON_TERMINAL_JOB_STATUSES),
            )
        ).scalars().first()

    def _ensure_no_active_job(self, db: Session, owner_id: uuid.UUID) -> None:
        active = self._active_job(db, owner_id)
        if active is None:
            return
        if self._now() - as_aware(active.created_at) > self.stale_after:
            log_event(
                logger, logging.WARNING, "Expiring abandoned job",
                operation="submit", component="orchestrator",
                job_id=str(active.id), owner_id=str(owner_id), status=active.status,
            )
            self.persistence.mark_failed(db, active, StaleJobError(f"Job {active.id} abandoned"))
            return
        raise JobConflictError(active.id)

    def _create_job(
        self,
        db: Session,
        owner_id: uuid.UUID,
        job_type: JobType,
        payload: dict,
        strategy: PipelineStrategy,
        program_id: Optional[uuid.UUID] = None,
    ) -> GenerationJob:
        job = GenerationJob(
            id=uuid.uuid4(),
            owner_id=owner_id,
            job_type=job_type.value,
            status=JobStatus.PENDING.value,
            pipeline_strategy=strategy.value,
            payload=payload,
            program_id=program_id,
        )
        db.add(job)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent submission for the same owner
            db.rollback()
            active = self._active_job(db, owner_id)
            raise JobConflictError(active.id if active else None) from e

        log_event(
            logger, logging.INFO, "Job submitted",
            operation="submit", component="orchestrator",
            job_id=str(job.id), owner_id=str(owner_id),
            job_type=job_type.value, strategy=strategy.value,
        )
        self._dispatch(db, job)
        return job

    def _dispatch(self, db: Session, job: GenerationJob) -> None:
        if self.dispatch is None:
            return
        try:
            self.dispatch(str(job.id))
        except Exception as e:
            logger.error(f"Failed to dispatch job {job.id}: {e}")
            self.persistence.mark_failed(db, job, e)
            raise

    def submit_generation(self, db: Session, owner_id: Any, profile: UserProfile) -> GenerationJob:
        """Create a generation job and dispatch it. Raises JobConflictError."""
        owner = _as_uuid(owner_id)
        self._ensure_no_active_job(db, owner)
        strategy = self.strategy_resolver(owner, db)
        return self._create_job(
            db,
            owner,
            JobType.GENERATION,
            {"profile": profile.model_dump(mode="json")},
            strategy,
        )

    def submit_progression(
        self,
        db: Session,
        owner_id: Any,
        program_id: Any,
        week_index: int,
        feedback: PerformanceFeedback,
    ) -> GenerationJob:
        """
        Create a progression job for the program's latest week.

        Raises:
            ProgramNotFoundError: unknown program or another owner's
            ValidationError: `week_index` is not the program's current week
            JobConflictError: a job is already in flight
        """
        owner = _as_uuid(owner_id)
        program = db.get(TrainingProgram, _as_uuid(program_id))
        if program is None or program.owner_id != owner:
            raise ProgramNotFoundError(f"Program {program_id} not found for owner {owner}")
        if week_index != program.current_week:
            raise ValidationError(
                f"Week {week_index} is not the current week ({program.current_week}) of program {program.id}",
                user_message=f"Only the current week ({program.current_week}) can be progressed.",
            )

        self._ensure_no_active_job(db, owner)
        strategy = self.strategy_resolver(owner, db)
        return self._create_job(
            db,
            owner,
            JobType.PROGRESSION,
            {
                "program_id": str(program.id),
                "week_index": week_index,
                "feedback": feedback.model_dump(mode="json"),
            },
            strategy,
            program_id=program.id,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_job(self, db: Session, job_id: Any) -> Optional[GenerationJob]:
        """Execute a pending job to completion or failure."""
        job = db.get(GenerationJob, _as_uuid(job_id))
        if job is None:
            logger.error(f"Job {job_id} not found")
            return None
        if job.status != JobStatus.PENDING.value:
            # Redelivered message; the first delivery owns the job
            logger.info(f"Job {job_id} already {job.status}, skipping")
            return job

        self.persistence.mark_processing(db, job)
        try:
            if job.job_type == JobType.PROGRESSION.value:
                self._run_progression(db, job)
            else:
                self._run_generation(db, job)
        except ProgramEngineError as e:
            self.persistence.mark_failed(db, job, e)
        except Exception as e:
            logger.exception(f"Unexpected error running job {job.id}")
            self.persistence.mark_failed(db, job, e)
        return job

    def _run_generation(self, db: Session, job: GenerationJob) -> None:
        try:
            profile = UserProfile.model_validate((job.payload or {}).get("profile") or {})
        except PydanticValidationError as e:
            raise ConfigurationError(f"Stored profile is invalid: {e.error_count()} errors") from e

        request = compile_for_profile(
            profile,
            strategy=PipelineStrategy(job.pipeline_strategy),
            job_id=str(job.id),
        )
        result = self.generation_client.generate(request, job_id=str(job.id))
        job.attempts = result.attempts
        draft = normalize_candidate(result.candidate)
        self.persistence.persist_program(db, job, job.owner_id, draft, request.periodization, profile)

    def _run_progression(self, db: Session, job: GenerationJob) -> None:
        payload = job.payload or {}
        program = db.get(TrainingProgram, _as_uuid(payload.get("program_id")))
        if program is None:
            raise ProgramNotFoundError(f"Program {payload.get('program_id')} not found")

        try:
            feedback = PerformanceFeedback.model_validate(payload.get("feedback") or {})
        except PydanticValidationError as e:
            raise ValidationError(f"Stored feedback is invalid: {e.error_count()} errors") from e

        week_index = int(payload.get("week_index", program.current_week))
        periodization = periodization_from_dict(program.periodization)
        try:
            current = load_week(db, program.id, week_index)
            week_one = load_week(db, program.id, block_start_week(periodization, week_index))
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Stored week {week_index} of program {program.id} is unreadable: {e}") from e
        if not current:
            raise ValidationError(f"Program {program.id} has no workouts for week {week_index}")

        result = ProgressionEngine(unit=program.unit).progress_week(
            current, week_one or current, periodization, feedback, week_index
        )
        log_event(
            logger, logging.INFO, "Progression computed",
            operation="progress_week", component="orchestrator",
            job_id=str(job.id), program_id=str(program.id),
            week_number=result.week_number, week_role=result.week_role,
            decisions=len(result.decisions),
        )
        self.persistence.persist_week(db, job, job.owner_id, program.id, result.workouts)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_job_status(self, db: Session, job_id: Any, owner_id: Any = None) -> Optional[JobStatusView]:
        """
        Job plus, once completed, its program. Read on the primary, which
        is where the job row lives.
        """
        job = db.get(GenerationJob, _as_uuid(job_id))
        if job is None:
            return None
        if owner_id is not None and job.owner_id != _as_uuid(owner_id):
            return None

        view = JobStatusView(job=job)
        if job.status == JobStatus.COMPLETED.value and job.program_id is not None:
            view.program = db.get(TrainingProgram, job.program_id)
            finished = as_aware(job.finished_at)
            if finished is not None:
                age = (self._now() - finished).total_seconds()
                self.persistence.router.record_remote_write(job.program_id, age)
        return view
