"""
Tests for the transactional persistence manager: the only path from a
generated program to a completed job.
"""

from dataclasses import replace
from uuid import uuid4

import pytest

from models import GenerationJob, ProgramWorkout, TrainingProgram
from services.program_engine.consistency import ReadAfterWriteRouter
from services.program_engine.constants import ReadTarget
from services.program_engine.errors import GenerationError, PersistenceError
from services.program_engine.normalizer import normalize_candidate
from services.program_engine.periodization import select_periodization
from services.program_engine.persistence import TransactionalPersistenceManager, load_week


def _job(db, owner_id, status="processing", job_type="generation"):
    job = GenerationJob(
        owner_id=owner_id,
        job_type=job_type,
        status=status,
        pipeline_strategy="structured",
        payload={},
    )
    db.add(job)
    db.commit()
    return job


@pytest.fixture
def router(clock):
    return ReadAfterWriteRouter(window_s=60, max_entries=100, clock=clock)


@pytest.fixture
def manager(router):
    return TransactionalPersistenceManager(router=router)


@pytest.fixture
def draft(program_output):
    return normalize_candidate(program_output)


class TestPersistProgram:

    def test_success_completes_job_and_records_write(
        self, db_session, manager, router, owner_id, draft, intermediate_profile
    ):
        job = _job(db_session, owner_id)

        program = manager.persist_program(
            db_session, job, owner_id, draft,
            select_periodization(intermediate_profile), intermediate_profile,
        )

        db_session.refresh(job)
        assert job.status == "completed"
        assert job.program_id == program.id
        assert job.finished_at is not None
        assert program.owner_id == owner_id
        assert program.unit == "kg"
        assert program.periodization["kind"] == "undulating_4_week"
        assert db_session.query(ProgramWorkout).filter_by(program_id=program.id).count() == 2
        assert router.route_read(program.id) == ReadTarget.PRIMARY

    def test_stored_week_reads_back(self, db_session, manager, owner_id, draft, intermediate_profile):
        job = _job(db_session, owner_id)
        program = manager.persist_program(
            db_session, job, owner_id, draft,
            select_periodization(intermediate_profile), intermediate_profile,
        )

        week = load_week(db_session, program.id, 1)

        assert [w.day for w in week] == ["Day 1 - Upper", "Day 2 - Lower"]
        assert week[0].main_exercises[0] == draft.workouts[0].main_exercises[0]
        assert week[0].warmup == draft.workouts[0].warmup

    def test_identity_mismatch_fails_job(self, db_session, router, owner_id, draft, intermediate_profile):
        manager = TransactionalPersistenceManager(
            router=router,
            identity_reader=lambda db, model, row_id: uuid4(),
        )
        job = _job(db_session, owner_id)

        with pytest.raises(PersistenceError, match="owner mismatch"):
            manager.persist_program(
                db_session, job, owner_id, draft,
                select_periodization(intermediate_profile), intermediate_profile,
            )

        db_session.refresh(job)
        assert job.status == "failed"
        assert job.error_category == "persistence"
        assert job.program_id is None
        assert db_session.query(TrainingProgram).count() == 0
        assert len(router) == 0

    def test_row_missing_after_write_fails_job(self, db_session, router, owner_id, draft, intermediate_profile):
        manager = TransactionalPersistenceManager(
            router=router,
            identity_reader=lambda db, model, row_id: None,
        )
        job = _job(db_session, owner_id)

        with pytest.raises(PersistenceError, match="not found after write"):
            manager.persist_program(
                db_session, job, owner_id, draft,
                select_periodization(intermediate_profile), intermediate_profile,
            )

        assert len(router) == 0

    def test_wrong_owner_rejected_before_write(self, db_session, manager, owner_id, draft, intermediate_profile):
        job = _job(db_session, owner_id)

        with pytest.raises(PersistenceError, match="does not own"):
            manager.persist_program(
                db_session, job, uuid4(), draft,
                select_periodization(intermediate_profile), intermediate_profile,
            )

        assert db_session.query(TrainingProgram).count() == 0

    def test_job_must_be_processing(self, db_session, manager, owner_id, draft, intermediate_profile):
        job = _job(db_session, owner_id, status="pending")

        with pytest.raises(PersistenceError, match="expected 'processing'"):
            manager.persist_program(
                db_session, job, owner_id, draft,
                select_periodization(intermediate_profile), intermediate_profile,
            )

    def test_empty_draft_rejected(self, db_session, manager, owner_id, draft, intermediate_profile):
        job = _job(db_session, owner_id)

        with pytest.raises(PersistenceError, match="No workouts"):
            manager.persist_program(
                db_session, job, owner_id, replace(draft, workouts=[]),
                select_periodization(intermediate_profile), intermediate_profile,
            )


class TestPersistWeek:

    @pytest.fixture
    def program(self, db_session, manager, owner_id, draft, intermediate_profile):
        job = _job(db_session, owner_id)
        return manager.persist_program(
            db_session, job, owner_id, draft,
            select_periodization(intermediate_profile), intermediate_profile,
        )

    def test_appends_week_and_advances_program(self, db_session, manager, router, owner_id, draft, program):
        router.clear()
        job = _job(db_session, owner_id, job_type="progression")
        week_two = [replace(w, week_number=2) for w in draft.workouts]

        rows = manager.persist_week(db_session, job, owner_id, program.id, week_two)

        db_session.refresh(program)
        db_session.refresh(job)
        assert len(rows) == 2
        assert all(row.generation_job_id == job.id for row in rows)
        assert program.current_week == 2
        assert job.status == "completed"
        assert job.program_id == program.id
        assert router.route_read(program.id) == ReadTarget.PRIMARY

    def test_one_week_per_write(self, db_session, manager, owner_id, draft, program):
        job = _job(db_session, owner_id, job_type="progression")
        mixed = [replace(draft.workouts[0], week_number=2), replace(draft.workouts[1], week_number=3)]

        with pytest.raises(PersistenceError, match="exactly one week"):
            manager.persist_week(db_session, job, owner_id, program.id, mixed)

        db_session.refresh(job)
        assert job.status == "failed"

    def test_duplicate_week_is_a_persistence_error(self, db_session, manager, owner_id, draft, program):
        job = _job(db_session, owner_id, job_type="progression")

        # Week 1 already exists; the slot constraint rejects it
        with pytest.raises(PersistenceError):
            manager.persist_week(db_session, job, owner_id, program.id, list(draft.workouts))

        db_session.refresh(job)
        assert job.status == "failed"
        assert db_session.query(ProgramWorkout).filter_by(program_id=program.id).count() == 2


class TestJobTransitions:

    def test_mark_processing_requires_pending(self, db_session, manager, owner_id):
        job = _job(db_session, owner_id, status="pending")
        manager.mark_processing(db_session, job)
        assert job.status == "processing"
        assert job.started_at is not None

        with pytest.raises(PersistenceError):
            manager.mark_processing(db_session, job)

    def test_mark_failed_records_category_and_attempts(self, db_session, manager, owner_id):
        job = _job(db_session, owner_id)

        manager.mark_failed(db_session, job, GenerationError("timeout", attempts=3))

        assert job.status == "failed"
        assert job.error_category == "generation"
        assert job.error_detail == GenerationError.default_message
        assert job.attempts == 3

    def test_unexpected_errors_are_internal(self, db_session, manager, owner_id):
        job = _job(db_session, owner_id)

        manager.mark_failed(db_session, job, RuntimeError("boom"))

        assert job.error_category == "internal"
        assert "boom" not in job.error_detail

    def test_terminal_job_left_untouched(self, db_session, manager, owner_id):
        job = _job(db_session, owner_id, status="completed")

        manager.mark_failed(db_session, job, RuntimeError("late"))

        assert job.status == "completed"
        assert job.error_category is None
