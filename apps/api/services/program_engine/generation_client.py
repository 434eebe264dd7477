"""
Structured Generation Client

Calls the generative model and returns a schema-valid ProgramCandidate,
or raises GenerationError.

Retry policy:
- at most `max_attempts` calls (3 by default)
- delays between attempts grow exponentially: 1s, 2s, ...
- authentication, permission and bad-request errors are not retried
- timeouts, transport failures, rate limits, server errors, refusals,
  empty or non-JSON output and schema violations are retried

The OpenAI client is built with max_retries=0 so this loop is the only
retry layer.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import openai
from openai import OpenAI
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.logging import log_event

from .candidate import ProgramCandidate
from .constants import PipelineStrategy
from .errors import ConfigurationError, GenerationError
from .spec_compiler import GenerationRequest

logger = logging.getLogger(__name__)

_NON_RETRYABLE = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.BadRequestError,
    openai.NotFoundError,
)

_RETRYABLE = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


@dataclass
class GenerationResult:
    """A validated candidate plus call metrics."""
    candidate: ProgramCandidate
    raw: Dict[str, Any]
    attempts: int
    latency_ms: int
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None

    def metrics(self) -> dict:
        return {
            "attempts": self.attempts,
            "latency_ms": self.latency_ms,
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
        }


def classify_error(exc: Exception) -> GenerationError:
    """Map an SDK exception to a GenerationError with the right retry flag."""
    if isinstance(exc, _NON_RETRYABLE):
        return GenerationError(
            f"Model request rejected: {type(exc).__name__}: {exc}",
            cause=exc,
            retryable=False,
        )
    if isinstance(exc, openai.APITimeoutError):
        return GenerationError("Model request timed out", cause=exc, retryable=True)
    if isinstance(exc, _RETRYABLE):
        return GenerationError(f"Model request failed: {type(exc).__name__}", cause=exc, retryable=True)
    if isinstance(exc, openai.APIStatusError):
        return GenerationError(
            f"Model request failed with status {exc.status_code}",
            cause=exc,
            retryable=exc.status_code >= 500,
        )
    return GenerationError(f"Model request failed: {exc}", cause=exc, retryable=True)


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Extract the first JSON object from model output.

    JSON-object mode can still wrap output in prose or code fences.
    """
    if not text or not text.strip():
        raise ValueError("Empty model response")

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in model response")

    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise ValueError("Model response JSON is not an object")
    return parsed


def _summarize_validation(exc: PydanticValidationError, limit: int = 3) -> str:
    parts = []
    for error in exc.errors()[:limit]:
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}")
    more = exc.error_count() - limit
    if more > 0:
        parts.append(f"... {more} more")
    return "; ".join(parts)


class StructuredGenerationClient:
    """
    Usage:
        client = StructuredGenerationClient()
        result = client.generate(request, job_id=str(job.id))
        result.candidate.workouts
    """

    def __init__(
        self,
        openai_client: Optional[Any] = None,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        factor: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._openai = openai_client
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.GENERATION_MODEL
        self.temperature = settings.GENERATION_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.GENERATION_MAX_TOKENS
        self.timeout = timeout or settings.GENERATION_TIMEOUT_S
        self.max_attempts = max_attempts or settings.GENERATION_MAX_ATTEMPTS
        self.base_delay = settings.GENERATION_RETRY_BASE_DELAY_S if base_delay is None else base_delay
        self.factor = settings.GENERATION_RETRY_FACTOR if factor is None else factor
        self._sleep = sleep
        self._clock = clock

    def retry_delays(self) -> List[float]:
        """Delay before attempt 2, 3, ... (one fewer than max_attempts)."""
        return [self.base_delay * (self.factor ** i) for i in range(self.max_attempts - 1)]

    def _client(self):
        if self._openai is None:
            if not self.api_key:
                raise ConfigurationError(
                    "OPENAI_API_KEY not configured",
                    user_message="Program generation is temporarily unavailable.",
                )
            self._openai = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        return self._openai

    def _response_format(self, request: GenerationRequest) -> Dict[str, Any]:
        if request.strategy == PipelineStrategy.STRUCTURED:
            return {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema_name,
                    "strict": True,
                    "schema": request.target_schema,
                },
            }
        return {"type": "json_object"}

    def _call(self, client, request: GenerationRequest):
        try:
            return client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format=self._response_format(request),
            )
        except openai.OpenAIError as e:
            raise classify_error(e) from e

    def _parse(self, response) -> tuple:
        if not getattr(response, "choices", None):
            raise GenerationError("Model returned no choices")
        choice = response.choices[0]
        message = choice.message

        refusal = getattr(message, "refusal", None)
        if refusal:
            raise GenerationError(f"Model refused: {refusal}")

        content = message.content or ""
        if not content.strip():
            raise GenerationError("Model returned empty content")
        if getattr(choice, "finish_reason", None) == "length":
            raise GenerationError("Model output truncated at max_tokens")

        try:
            raw = extract_json_object(content)
        except (ValueError, json.JSONDecodeError) as e:
            raise GenerationError(f"Model returned invalid JSON: {e}", cause=e) from e

        try:
            candidate = ProgramCandidate.model_validate(raw)
        except PydanticValidationError as e:
            raise GenerationError(
                f"Model output violates schema: {_summarize_validation(e)}", cause=e
            ) from e
        return candidate, raw

    def generate(self, request: GenerationRequest, job_id: Optional[str] = None) -> GenerationResult:
        """
        Generate one candidate program.

        Raises:
            ConfigurationError: no API key (never retried)
            GenerationError: non-retryable failure, or all attempts exhausted
        """
        client = self._client()
        delays = self.retry_delays()
        started = self._clock()
        last_error: Optional[GenerationError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._call(client, request)
                candidate, raw = self._parse(response)
            except GenerationError as e:
                last_error = e
                e.attempts = attempt
                log_event(
                    logger, logging.WARNING, "Generation attempt failed",
                    operation="generate", component="generation_client", job_id=job_id,
                    attempt=attempt, max_attempts=self.max_attempts,
                    retryable=e.retryable, error=str(e),
                )
                if not e.retryable:
                    raise
                if attempt < self.max_attempts:
                    delay = delays[attempt - 1]
                    log_event(
                        logger, logging.INFO, "Retrying generation after backoff",
                        operation="generate", component="generation_client", job_id=job_id,
                        attempt=attempt, delay_s=delay,
                    )
                    self._sleep(delay)
                continue

            usage = getattr(response, "usage", None)
            result = GenerationResult(
                candidate=candidate,
                raw=raw,
                attempts=attempt,
                latency_ms=int((self._clock() - started) * 1000),
                prompt_tokens=getattr(usage, "prompt_tokens", None),
                completion_tokens=getattr(usage, "completion_tokens", None),
            )
            log_event(
                logger, logging.INFO, "Generation succeeded",
                operation="generate", component="generation_client", job_id=job_id,
                strategy=request.strategy.value, model=self.model, **result.metrics(),
            )
            return result

        log_event(
            logger, logging.ERROR, "Generation attempts exhausted",
            operation="generate", component="generation_client", job_id=job_id,
            attempts=self.max_attempts, error=str(last_error),
        )
        raise GenerationError(
            f"Generation failed after {self.max_attempts} attempts: {last_error}",
            cause=last_error.cause if last_error and last_error.cause else last_error,
            retryable=False,
            attempts=self.max_attempts,
        )
