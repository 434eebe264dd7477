"""
Program Generation API Router

Asynchronous contract: submissions return 202 with a job id, and the
caller polls the job until it is completed or failed.

Endpoints for:
- Initial program generation
- Weekly progression
- Job status
- Program reads (routed by the read-after-write router)
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, selectinload

from core.database import get_db
from core.exceptions import APIException, ConflictError, NotFoundError, ValidationError
from models import TrainingProgram
from schemas import (
    GenerateProgramRequest,
    JobAcceptedResponse,
    JobErrorResponse,
    JobStatusResponse,
    ProgramResponse,
    ProgressionRequest,
    ReadAfterWriteStatsResponse,
)
from services.program_engine import errors as engine_errors
from services.program_engine.consistency import ReadAfterWriteRouter, get_router, read_session
from services.program_engine.orchestrator import GenerationJobOrchestrator, JobStatusView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Program Generation"])


def get_orchestrator() -> GenerationJobOrchestrator:
    """Orchestrator that hands jobs to the Celery worker."""
    from tasks.program_tasks import dispatch_generation_job

    return GenerationJobOrchestrator(dispatch=dispatch_generation_job)


def _raise_for(error: engine_errors.ProgramEngineError):
    """Translate a domain error raised during submission into an HTTP error."""
    if isinstance(error, engine_errors.JobConflictError):
        raise ConflictError({
            "message": error.user_message,
            "existing_job_id": str(error.existing_job_id) if error.existing_job_id else None,
        })
    if isinstance(error, engine_errors.ProgramNotFoundError):
        raise NotFoundError("Program", str(error))
    if isinstance(error, (engine_errors.ValidationError, engine_errors.ConfigurationError)):
        raise ValidationError(error.user_message)
    raise APIException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error.user_message,
        error_code=error.category.upper(),
    )


def _job_response(view: JobStatusView) -> JobStatusResponse:
    job = view.job
    error = view.error
    return JobStatusResponse(
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        pipeline_strategy=job.pipeline_strategy,
        attempts=job.attempts or 0,
        created_at=job.created_at,
        finished_at=job.finished_at,
        program=ProgramResponse.model_validate(view.program) if view.program is not None else None,
        error=JobErrorResponse(**error) if error else None,
    )


# ============ Endpoints ============

@router.post(
    "/programs/generate",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def generate_program(
    request: GenerateProgramRequest,
    db: Session = Depends(get_db),
    orchestrator: GenerationJobOrchestrator = Depends(get_orchestrator),
):
    """Accept a generation request. 409 if a job is already in flight."""
    try:
        job = orchestrator.submit_generation(db, request.owner_id, request.profile)
    except engine_errors.ProgramEngineError as e:
        _raise_for(e)
    return JobAcceptedResponse(job_id=job.id, status=job.status)


@router.post(
    "/programs/{program_id}/progressions",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def progress_program(
    program_id: UUID,
    request: ProgressionRequest,
    db: Session = Depends(get_db),
    orchestrator: GenerationJobOrchestrator = Depends(get_orchestrator),
):
    """Accept weekly feedback and schedule next week's progression."""
    try:
        job = orchestrator.submit_progression(
            db, request.owner_id, program_id, request.week_index, request.feedback
        )
    except engine_errors.ProgramEngineError as e:
        _raise_for(e)
    return JobAcceptedResponse(job_id=job.id, status=job.status)


@router.get("/generation-jobs/{job_id}", response_model=JobStatusResponse)
def get_generation_job(
    job_id: UUID,
    owner_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    orchestrator: GenerationJobOrchestrator = Depends(get_orchestrator),
):
    """Poll a job. Completed jobs include the program; failed jobs an error."""
    view = orchestrator.get_job_status(db, job_id, owner_id)
    if view is None:
        raise NotFoundError("Generation job", str(job_id))
    return _job_response(view)


@router.get("/programs/{program_id}", response_model=ProgramResponse)
def get_program(
    program_id: UUID,
    owner_id: Optional[UUID] = None,
    consistency_router: ReadAfterWriteRouter = Depends(get_router),
):
    """
    Read a program on the primary inside the read-after-write window,
    otherwise on the replica. A 404 right after creation means the replica
    has not caught up; clients retry with backoff.
    """
    with read_session(program_id, consistency_router) as db:
        program = (
            db.query(TrainingProgram)
            .options(selectinload(TrainingProgram.workouts))
            .filter(TrainingProgram.id == program_id)
            .first()
        )
        if program is None or (owner_id is not None and program.owner_id != owner_id):
            raise NotFoundError("Program", str(program_id))
        return ProgramResponse.model_validate(program)


@router.get("/admin/read-after-write/stats", response_model=ReadAfterWriteStatsResponse)
def read_after_write_stats(consistency_router: ReadAfterWriteRouter = Depends(get_router)):
    return ReadAfterWriteStatsResponse(**consistency_router.stats())
