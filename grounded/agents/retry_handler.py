"""Bounded retry policy for model calls that produce malformed tool calls."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

import httpx
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from grounded.core.config import constants
from grounded.core.errors import ModelRateLimitError, ModelUnavailableError, ToolCallGenerationError


logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNAVAILABLE_STATUS_CODES = {500, 502, 503, 504}


class ErrorRetryability(Enum):
    """Classification of whether an error should be retried."""

    RETRYABLE = "retryable"
    NON_RETRYABLE = "non_retryable"


class MalformedToolCallError(Exception):
    """The model requested a tool call whose arguments could not be parsed."""

    def __init__(self, tool_name: str, raw_args: object, reason: str) -> None:
        self.tool_name = tool_name
        self.raw_args = raw_args
        super().__init__(f"Malformed arguments for tool '{tool_name}': {reason}")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = constants.MAX_MODEL_ATTEMPTS
    initial_temperature: float = constants.INITIAL_TEMPERATURE
    temperature_step: float = constants.TEMPERATURE_STEP
    max_temperature: float = constants.MAX_TEMPERATURE


def translate_model_error(exception: Exception) -> Exception:
    """Map provider failures onto the application error taxonomy.

    Rate limits and outages become distinct errors so callers can show
    "try again shortly" instead of a generic failure. Anything unrecognised is
    returned unchanged.
    """
    if isinstance(exception, ModelHTTPError):
        if exception.status_code == 429:
            return ModelRateLimitError(f"Model provider rate limit exceeded ({exception.model_name})")
        if exception.status_code in _UNAVAILABLE_STATUS_CODES:
            return ModelUnavailableError(
                f"Model provider unavailable: HTTP {exception.status_code} ({exception.model_name})"
            )
    if isinstance(exception, httpx.TimeoutException):
        return TimeoutError("Model request timed out")
    if isinstance(exception, httpx.TransportError):
        return ModelUnavailableError(f"Model provider unreachable: {exception}")
    return exception


class ModelRetryHandler:
    """Retries a model call with rising sampling temperature.

    Only malformed tool-call generation is retried; each attempt gets a higher
    temperature to encourage a different generation. Every other failure is
    surfaced immediately.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        self.config = config or RetryConfig()

    def classify_error(self, exception: Exception) -> ErrorRetryability:
        """Classify an error to determine if it should be retried.

        Args:
            exception: The exception to classify

        Returns:
            ErrorRetryability indicating if the error is retryable
        """
        if isinstance(exception, MalformedToolCallError | UnexpectedModelBehavior):
            return ErrorRetryability.RETRYABLE

        # Providers reject unparseable tool calls they generated themselves with a 400
        if isinstance(exception, ModelHTTPError) and exception.status_code == 400:
            if "tool_use_failed" in str(exception.body).lower() or "tool_use_failed" in str(exception).lower():
                return ErrorRetryability.RETRYABLE

        return ErrorRetryability.NON_RETRYABLE

    def temperature_for_attempt(self, attempt: int) -> float:
        """Sampling temperature for the given attempt (0-indexed)."""
        temperature = self.config.initial_temperature + self.config.temperature_step * attempt
        return round(min(temperature, self.config.max_temperature), 4)

    async def execute_with_retry(self, func: Callable[[float], Awaitable[T]]) -> T:
        """Run ``func(temperature)`` until it succeeds or retries are exhausted.

        Args:
            func: Async callable taking the sampling temperature for this attempt

        Returns:
            The result of the first successful attempt

        Raises:
            ToolCallGenerationError: If every attempt produced a malformed tool call
            ModelRateLimitError: If the provider rate-limited the request
            ModelUnavailableError: If the provider is down or unreachable
        """
        for attempt in range(self.config.max_attempts):
            temperature = self.temperature_for_attempt(attempt)
            try:
                result = await func(temperature)
            except Exception as e:
                retryability = self.classify_error(e)
                error_type = type(e).__name__

                logger.warning(
                    "model_call_error",
                    extra={
                        "attempt": attempt + 1,
                        "max_attempts": self.config.max_attempts,
                        "temperature": temperature,
                        "error_type": error_type,
                        "error_message": str(e),
                        "retryable": retryability.value,
                    },
                )

                if retryability == ErrorRetryability.NON_RETRYABLE:
                    translated = translate_model_error(e)
                    if translated is e:
                        raise
                    raise translated from e

                if attempt >= self.config.max_attempts - 1:
                    logger.error(
                        "model_retry_exhausted",
                        extra={"attempts": self.config.max_attempts, "error_type": error_type},
                    )
                    raise ToolCallGenerationError(
                        f"Failed to generate valid tool calls after {self.config.max_attempts} attempts"
                    ) from e

                logger.info(
                    "model_retry",
                    extra={
                        "attempt": attempt + 1,
                        "next_temperature": self.temperature_for_attempt(attempt + 1),
                    },
                )
                continue

            if attempt > 0:
                logger.info("model_retry_success", extra={"attempt": attempt + 1})
            return result

        # Unreachable with max_attempts >= 1
        raise ToolCallGenerationError("Model retry handler configured with zero attempts")
