"""
Celery tasks for program generation and progression.

The API creates the job row and enqueues its id; the worker runs the
whole pipeline in its own session. Job state lives in the database, so
the task result is informational only.
"""
import logging

from core.database import get_db_sync
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.run_generation_job", bind=True, acks_late=True)
def run_generation_job(self, job_id: str) -> dict:
    """Run one generation or progression job to completion or failure."""
    from services.program_engine.orchestrator import GenerationJobOrchestrator

    db = get_db_sync()
    try:
        job = GenerationJobOrchestrator().run_job(db, job_id)
        if job is None:
            return {"job_id": job_id, "status": "missing"}
        return {"job_id": job_id, "status": job.status}
    finally:
        db.close()


def dispatch_generation_job(job_id: str) -> None:
    """Enqueue a job for the worker."""
    run_generation_job.delay(job_id)
    logger.info(f"Enqueued generation job {job_id}")
