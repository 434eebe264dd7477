# Adaptive Program Generation Engine
#
# Turns a lifter's profile into a periodized, validated training program
# through a generative model, then progresses it week by week.
#
# Architecture:
# - Scientific pre-processor: volume landmarks, weak points, periodization
# - Spec compiler: prompt context + strict target schema
# - Structured generation client: model call with retry/backoff
# - Schema normalizer: tagged warmup/main/finisher exercise variants
# - Transactional persistence: write, verify, then complete the job
# - Read-after-write router: fresh records read from the primary
# - Progression engine: reps -> sets -> load, with deloads
# - Orchestrator: async jobs, one in flight per owner

from .constants import (
    ExperienceLevel,
    Goal,
    JobStatus,
    JobType,
    Lift,
    PipelineStrategy,
    ReadTarget,
    StrengthConfidence,
)
from .errors import (
    ConfigurationError,
    GenerationError,
    JobConflictError,
    PersistenceError,
    ProgramEngineError,
    ProgramNotFoundError,
    ValidationError,
)
from .profile import ExercisePerformance, PerformanceFeedback, StrengthEstimate, UserProfile
from .volume_landmarks import VolumeLandmarks, calculate_volume_landmarks
from .weak_points import WeakPoint, WeakPointAnalysis, analyze_weak_points
from .periodization import Linear, Undulating4Week, select_periodization
from .spec_compiler import GenerationRequest, compile_generation_request, compile_for_profile
from .generation_client import GenerationResult, StructuredGenerationClient
from .normalizer import normalize_candidate
from .consistency import ReadAfterWriteRouter, read_after_write_router
from .persistence import TransactionalPersistenceManager
from .progression import ProgressionEngine, ProgressionResult
from .orchestrator import GenerationJobOrchestrator, JobStatusView

__all__ = [
    # Inputs
    'UserProfile',
    'StrengthEstimate',
    'PerformanceFeedback',
    'ExercisePerformance',

    # Pre-processor
    'VolumeLandmarks',
    'calculate_volume_landmarks',
    'WeakPoint',
    'WeakPointAnalysis',
    'analyze_weak_points',
    'Linear',
    'Undulating4Week',
    'select_periodization',

    # Pipeline
    'GenerationRequest',
    'compile_generation_request',
    'compile_for_profile',
    'StructuredGenerationClient',
    'GenerationResult',
    'normalize_candidate',
    'ReadAfterWriteRouter',
    'read_after_write_router',
    'TransactionalPersistenceManager',
    'ProgressionEngine',
    'ProgressionResult',
    'GenerationJobOrchestrator',
    'JobStatusView',

    # Errors
    'ProgramEngineError',
    'ConfigurationError',
    'GenerationError',
    'ValidationError',
    'PersistenceError',
    'JobConflictError',
    'ProgramNotFoundError',

    # Constants
    'ExperienceLevel',
    'Goal',
    'Lift',
    'StrengthConfidence',
    'JobStatus',
    'JobType',
    'PipelineStrategy',
    'ReadTarget',
]
