from sqlalchemy import Column, Integer, Boolean, CheckConstraint, DateTime, ForeignKey, Text, String, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func, text
from core.database import Base
import uuid

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

JOB_STATUSES = ("pending", "processing", "completed", "failed")
NON_TERMINAL_JOB_STATUSES = ("pending", "processing")
_ACTIVE_JOB_PREDICATE = "status IN ('pending', 'processing')"


class GenerationJob(Base):
    """
    Unit of asynchronous work for both initial generation and weekly progression.

    Created before any external call. Status only moves forward:
    pending -> processing -> completed | failed. Reaching `completed` is gated
    by confirmed persistence of the program it produced.
    """
    __tablename__ = "generation_job"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    job_type = Column(Text, nullable=False, default="generation")  # 'generation' | 'progression'
    status = Column(Text, nullable=False, default="pending")

    # Resolved once at submission and passed down; never re-read from flags mid-job.
    pipeline_strategy = Column(Text, nullable=False, default="structured")

    # Input snapshot: profile for generation, {program_id, week_index, feedback} for progression
    payload = Column(JSONType, nullable=False, default=dict)

    # Set when the job completes (generation) or for the program being progressed
    program_id = Column(Uuid(as_uuid=True), nullable=True)

    error_category = Column(Text, nullable=True)
    error_detail = Column(Text, nullable=True)

    attempts = Column(Integer, nullable=False, default=0)  # model calls made

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_generation_job_status",
        ),
        CheckConstraint(
            "job_type IN ('generation', 'progression')",
            name="ck_generation_job_type",
        ),
        # At most one in-flight job per owner.
        Index(
            "uq_generation_job_owner_active",
            "owner_id",
            unique=True,
            postgresql_where=text(_ACTIVE_JOB_PREDICATE),
            sqlite_where=text(_ACTIVE_JOB_PREDICATE),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status not in NON_TERMINAL_JOB_STATUSES


class TrainingProgram(Base):
    """A generated, periodized multi-week program."""
    __tablename__ = "training_program"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    generation_job_id = Column(Uuid(as_uuid=True), ForeignKey("generation_job.id"), nullable=False)
    name = Column(Text, nullable=False)

    # {"kind": "linear", "weeks": 4} | {"kind": "undulating_4_week", ...}
    periodization = Column(JSONType, nullable=False)
    experience_level = Column(Text, nullable=False)
    goal = Column(Text, nullable=False)
    unit = Column(Text, nullable=False, default="kg")  # kg | lb, used for load increments

    current_week = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    workouts = relationship(
        "ProgramWorkout",
        back_populates="program",
        cascade="all, delete-orphan",
        order_by=lambda: [ProgramWorkout.week_number, ProgramWorkout.day_index],
    )


class ProgramWorkout(Base):
    """One training day of one week. Exercises are stored per tier as JSON."""
    __tablename__ = "program_workout"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    program_id = Column(Uuid(as_uuid=True), ForeignKey("training_program.id", ondelete="CASCADE"), nullable=False)
    week_number = Column(Integer, nullable=False)
    day_index = Column(Integer, nullable=False)  # order within the week
    day_label = Column(Text, nullable=False)
    focus = Column(Text, nullable=True)

    warmup = Column(JSONType, nullable=False, default=list)
    main_exercises = Column(JSONType, nullable=False, default=list)
    finisher = Column(JSONType, nullable=False, default=list)

    # Set on workouts produced by the progression engine
    generation_job_id = Column(Uuid(as_uuid=True), ForeignKey("generation_job.id"), nullable=True)

    program = relationship("TrainingProgram", back_populates="workouts")

    __table_args__ = (
        UniqueConstraint("program_id", "week_number", "day_index", name="uq_program_workout_slot"),
        Index("ix_program_workout_program_week", "program_id", "week_number"),
    )


class FeatureFlag(Base):
    """Rollout switch resolved per owner (override > percentage > default)."""
    __tablename__ = "feature_flag"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    key = Column(String(128), unique=True, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, nullable=False, default=False)
    rollout_percentage = Column(Integer, nullable=False, default=100)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("rollout_percentage >= 0 AND rollout_percentage <= 100", name="ck_feature_flag_rollout"),
    )


class FeatureFlagOverride(Base):
    """Per-owner forced value for a flag."""
    __tablename__ = "feature_flag_override"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    flag_key = Column(String(128), ForeignKey("feature_flag.key", ondelete="CASCADE"), nullable=False)
    owner_id = Column(Uuid(as_uuid=True), nullable=False)
    enabled = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("flag_key", "owner_id", name="uq_feature_flag_override_owner"),
    )
