"""
Error taxonomy for the program generation pipeline.

Every error carries a category and a message that is safe to show to the
person who requested the job. Internal detail (exception chains, raw model
output) stays in logs.
"""
from typing import Any, Optional


class ProgramEngineError(Exception):
    """Base class for pipeline errors."""

    category = "internal"
    default_message = "Program generation failed unexpectedly."

    def __init__(self, message: Optional[str] = None, *, user_message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.user_message = user_message or self.default_message

    def as_detail(self) -> dict:
        return {"category": self.category, "message": self.user_message}


class ConfigurationError(ProgramEngineError):
    """Missing or unusable inputs, credentials or configuration. Never retried."""

    category = "configuration"
    default_message = "Your profile is missing information needed to build a program."


class GenerationError(ProgramEngineError):
    """The model call failed: timeout, transport, refusal or schema violation."""

    category = "generation"
    default_message = "We couldn't generate your program right now. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        cause: Optional[BaseException] = None,
        retryable: bool = True,
        attempts: int = 0,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message=user_message)
        self.cause = cause
        self.retryable = retryable
        self.attempts = attempts


class ValidationError(ProgramEngineError):
    """A candidate that cannot be reconciled into a program. Not retried."""

    category = "validation"
    default_message = "The generated program was incomplete. Please request a new one."


class PersistenceError(ProgramEngineError):
    """The write, or its post-write verification, failed."""

    category = "persistence"
    default_message = "We couldn't save your program. Please try again."


class JobConflictError(ProgramEngineError):
    """A non-terminal job already exists for this owner."""

    category = "conflict"
    default_message = "A program is already being generated for you."

    def __init__(self, existing_job_id: Any, message: Optional[str] = None):
        super().__init__(message or f"Job {existing_job_id} is still in progress")
        self.existing_job_id = existing_job_id


class ProgramNotFoundError(ProgramEngineError):
    """The program does not exist or belongs to someone else."""

    category = "not_found"
    default_message = "Program not found."
