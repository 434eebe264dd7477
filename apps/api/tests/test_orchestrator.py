"""
Tests for the generation job orchestrator: submission, execution and
status, end to end against SQLite with the model client mocked.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from fixtures.program_fixtures import make_completion, make_openai_client, make_program_output
from models import GenerationJob, ProgramWorkout, TrainingProgram
from services.program_engine.consistency import ReadAfterWriteRouter
from services.program_engine.constants import JobType, PipelineStrategy, ReadTarget
from services.program_engine.errors import JobConflictError, ProgramNotFoundError, ValidationError
from services.program_engine.generation_client import StructuredGenerationClient
from services.program_engine.orchestrator import GenerationJobOrchestrator
from services.program_engine.persistence import TransactionalPersistenceManager, load_week
from services.program_engine.profile import PerformanceFeedback, UserProfile


@pytest.fixture
def router(clock):
    return ReadAfterWriteRouter(window_s=60, clock=clock)


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def build_orchestrator(router, dispatched, sleeps):
    def build(*responses, strategy=PipelineStrategy.STRUCTURED, **kwargs):
        fake = make_openai_client(*responses)
        client = StructuredGenerationClient(
            fake, max_attempts=3, base_delay=1.0, factor=2.0, sleep=sleeps.sleep
        )
        kwargs.setdefault("dispatch", dispatched.append)
        kwargs.setdefault("persistence", TransactionalPersistenceManager(router=router))
        kwargs.setdefault("strategy_resolver", lambda owner, db: strategy)
        orchestrator = GenerationJobOrchestrator(generation_client=client, **kwargs)
        return orchestrator, fake
    return build


def _generate(db, orchestrator, owner_id, profile):
    job = orchestrator.submit_generation(db, owner_id, profile)
    return orchestrator.run_job(db, job.id)


class TestSubmission:

    def test_creates_pending_job_and_dispatches(
        self, db_session, build_orchestrator, dispatched, owner_id, intermediate_profile
    ):
        orchestrator, fake = build_orchestrator()

        job = orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        assert job.status == "pending"
        assert job.job_type == JobType.GENERATION.value
        assert job.pipeline_strategy == "structured"
        assert job.payload["profile"]["goal"] == "hypertrophy"
        assert dispatched == [str(job.id)]
        fake.chat.completions.create.assert_not_called()

    def test_second_submission_conflicts(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator()
        first = orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        with pytest.raises(JobConflictError) as exc_info:
            orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        assert exc_info.value.existing_job_id == first.id
        assert db_session.query(GenerationJob).count() == 1

    def test_other_owners_not_blocked(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator()
        orchestrator.submit_generation(db_session, owner_id, intermediate_profile)
        orchestrator.submit_generation(db_session, uuid4(), intermediate_profile)
        assert db_session.query(GenerationJob).count() == 2

    def test_abandoned_job_expired_on_submission(
        self, db_session, build_orchestrator, owner_id, intermediate_profile
    ):
        orchestrator, _ = build_orchestrator()
        old = orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        later, _ = build_orchestrator(
            stale_after_s=60,
            now=lambda: datetime.now(timezone.utc) + timedelta(hours=1),
        )
        new = later.submit_generation(db_session, owner_id, intermediate_profile)

        db_session.refresh(old)
        assert old.status == "failed"
        assert old.error_category == "generation"
        assert new.status == "pending"

    def test_unique_index_race_is_a_conflict(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator()
        first = orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        # Skip the pre-check, as a concurrent request would
        with pytest.raises(JobConflictError) as exc_info:
            orchestrator._create_job(
                db_session, owner_id, JobType.GENERATION, {}, PipelineStrategy.STRUCTURED
            )

        assert exc_info.value.existing_job_id == first.id

    def test_dispatch_failure_fails_job(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        broker_down = MagicMock(side_effect=ConnectionError("broker unavailable"))
        orchestrator, _ = build_orchestrator(dispatch=broker_down)

        with pytest.raises(ConnectionError):
            orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        job = db_session.query(GenerationJob).one()
        assert job.status == "failed"
        assert job.error_category == "internal"

    def test_strategy_resolved_once_and_stored(
        self, db_session, build_orchestrator, owner_id, intermediate_profile
    ):
        resolver = MagicMock(return_value=PipelineStrategy.JSON_MODE)
        orchestrator, fake = build_orchestrator(
            make_completion(make_program_output()), strategy_resolver=resolver
        )

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert resolver.call_count == 1
        assert job.pipeline_strategy == "json_mode"
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}


class TestExecution:

    def test_generation_end_to_end(self, db_session, build_orchestrator, router, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator(make_completion(make_program_output()))

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert job.status == "completed"
        assert job.attempts == 1
        program = db_session.get(TrainingProgram, job.program_id)
        assert program.owner_id == owner_id
        assert program.name == "Upper / Lower Hypertrophy"
        assert program.current_week == 1
        assert len(load_week(db_session, program.id, 1)) == 2
        assert router.route_read(program.id) == ReadTarget.PRIMARY

    def test_retries_are_counted_on_the_job(
        self, db_session, build_orchestrator, sleeps, owner_id, intermediate_profile
    ):
        orchestrator, _ = build_orchestrator(
            make_completion("not json"),
            make_completion(make_program_output()),
        )

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert job.status == "completed"
        assert job.attempts == 2
        assert sleeps.calls == [1.0]

    def test_exhausted_generation_fails_job(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator(*[make_completion("") for _ in range(3)])

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert job.status == "failed"
        assert job.error_category == "generation"
        assert job.attempts == 3
        assert job.program_id is None
        assert db_session.query(TrainingProgram).count() == 0

    def test_incomplete_profile_fails_without_model_call(self, db_session, build_orchestrator, owner_id):
        orchestrator, fake = build_orchestrator()

        job = _generate(db_session, orchestrator, owner_id, UserProfile(experience_level="beginner"))

        assert job.status == "failed"
        assert job.error_category == "configuration"
        assert "goal" in job.error_detail
        fake.chat.completions.create.assert_not_called()

    def test_invalid_candidate_fails_with_validation(
        self, db_session, build_orchestrator, owner_id, intermediate_profile
    ):
        output = make_program_output()
        output["workouts"][0]["main_exercises"][0]["reps"] = "AMRAP"
        orchestrator, _ = build_orchestrator(make_completion(output))

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert job.status == "failed"
        assert job.error_category == "validation"

    def test_unexpected_error_is_recorded_as_internal(self, db_session, owner_id, intermediate_profile, router):
        client = MagicMock()
        client.generate.side_effect = RuntimeError("segfault in tokenizer")
        orchestrator = GenerationJobOrchestrator(
            generation_client=client,
            persistence=TransactionalPersistenceManager(router=router),
            strategy_resolver=lambda owner, db: PipelineStrategy.STRUCTURED,
        )

        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        assert job.status == "failed"
        assert job.error_category == "internal"
        assert "segfault" not in job.error_detail

    def test_redelivered_job_skipped(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, fake = build_orchestrator(make_completion(make_program_output()))
        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        again = orchestrator.run_job(db_session, job.id)

        assert again.status == "completed"
        assert fake.chat.completions.create.call_count == 1

    def test_unknown_job(self, db_session, build_orchestrator):
        orchestrator, _ = build_orchestrator()
        assert orchestrator.run_job(db_session, uuid4()) is None


class TestProgression:

    @pytest.fixture
    def program(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator(make_completion(make_program_output()))
        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)
        return db_session.get(TrainingProgram, job.program_id)

    def test_progression_writes_next_week(self, db_session, build_orchestrator, owner_id, program):
        orchestrator, fake = build_orchestrator()
        feedback = PerformanceFeedback(
            completion_rate=1.0,
            average_fatigue=5,
            exercises={"Bench Press": {"reps_per_set": [12, 12, 12]}},
        )

        job = orchestrator.submit_progression(db_session, owner_id, program.id, 1, feedback)
        orchestrator.run_job(db_session, job.id)

        db_session.refresh(program)
        assert job.status == "completed"
        assert job.job_type == "progression"
        assert program.current_week == 2
        week_two = load_week(db_session, program.id, 2)
        bench = week_two[0].main_exercises[0]
        assert (bench.sets, bench.reps, bench.load) == (4, 8, "70 kg")
        assert db_session.query(ProgramWorkout).filter_by(program_id=program.id).count() == 4
        fake.chat.completions.create.assert_not_called()

    def test_only_current_week_can_progress(self, db_session, build_orchestrator, owner_id, program):
        orchestrator, _ = build_orchestrator()

        with pytest.raises(ValidationError):
            orchestrator.submit_progression(db_session, owner_id, program.id, 2, PerformanceFeedback())

    def test_other_owner_cannot_progress(self, db_session, build_orchestrator, program):
        orchestrator, _ = build_orchestrator()

        with pytest.raises(ProgramNotFoundError):
            orchestrator.submit_progression(db_session, uuid4(), program.id, 1, PerformanceFeedback())

    def test_progression_conflicts_with_active_job(self, db_session, build_orchestrator, owner_id, program):
        orchestrator, _ = build_orchestrator()
        orchestrator.submit_progression(db_session, owner_id, program.id, 1, PerformanceFeedback())

        with pytest.raises(JobConflictError):
            orchestrator.submit_progression(db_session, owner_id, program.id, 1, PerformanceFeedback())


class TestJobStatus:

    def test_completed_job_includes_program(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator(make_completion(make_program_output()))
        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        view = orchestrator.get_job_status(db_session, job.id, owner_id)

        assert view.program.id == job.program_id
        assert view.error is None

    def test_status_read_registers_worker_write(
        self, db_session, build_orchestrator, owner_id, intermediate_profile
    ):
        orchestrator, _ = build_orchestrator(make_completion(make_program_output()))
        job = _generate(db_session, orchestrator, owner_id, intermediate_profile)

        # The API process has its own router and never saw the worker's write
        api_router = ReadAfterWriteRouter(window_s=60)
        api_side = GenerationJobOrchestrator(persistence=TransactionalPersistenceManager(router=api_router))
        api_side.get_job_status(db_session, job.id)

        assert api_router.route_read(job.program_id) == ReadTarget.PRIMARY

    def test_failed_job_includes_error(self, db_session, build_orchestrator, owner_id):
        orchestrator, _ = build_orchestrator()
        job = _generate(db_session, orchestrator, owner_id, UserProfile())

        view = orchestrator.get_job_status(db_session, job.id)

        assert view.program is None
        assert view.error["category"] == "configuration"

    def test_other_owner_sees_nothing(self, db_session, build_orchestrator, owner_id, intermediate_profile):
        orchestrator, _ = build_orchestrator()
        job = orchestrator.submit_generation(db_session, owner_id, intermediate_profile)

        assert orchestrator.get_job_status(db_session, job.id, uuid4()) is None
        assert orchestrator.get_job_status(db_session, uuid4()) is None
