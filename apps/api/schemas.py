from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from uuid import UUID
from typing import Optional, List, Dict, Any

from services.program_engine.profile import PerformanceFeedback, UserProfile


class GenerateProgramRequest(BaseModel):
    owner_id: UUID
    profile: UserProfile


class ProgressionRequest(BaseModel):
    owner_id: UUID
    week_index: int = Field(..., ge=1, description="Week the feedback is for (the program's current week)")
    feedback: PerformanceFeedback


class JobAcceptedResponse(BaseModel):
    job_id: UUID
    status: str


class JobErrorResponse(BaseModel):
    category: Optional[str] = None
    message: Optional[str] = None


class WorkoutResponse(BaseModel):
    id: UUID
    week_number: int
    day_index: int
    day: str = Field(validation_alias="day_label")
    focus: Optional[str] = None
    warmup: List[Dict[str, Any]] = []
    main_exercises: List[Dict[str, Any]] = []
    finisher: List[Dict[str, Any]] = []

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ProgramResponse(BaseModel):
    id: UUID
    owner_id: UUID
    generation_job_id: UUID
    name: str
    periodization: Dict[str, Any]
    experience_level: str
    goal: str
    unit: str
    current_week: int
    created_at: Optional[datetime] = None
    workouts: List[WorkoutResponse] = []

    model_config = ConfigDict(from_attributes=True)


class JobStatusResponse(BaseModel):
    job_id: UUID
    job_type: str
    status: str
    pipeline_strategy: str
    attempts: int = 0
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    program: Optional[ProgramResponse] = None
    error: Optional[JobErrorResponse] = None


class ReadAfterWriteStatsResponse(BaseModel):
    tracked: int
    max_entries: int
    window_s: float
    primary_reads: int
    replica_reads: int
    evicted: int
    expired: int
