"""Application error hierarchy and agent error classification."""

from enum import Enum
from typing import Literal


class AppError(Exception):
    """Operational error that maps onto an HTTP status and error code."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication failed"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource is in a conflicting state"


class DatabaseError(AppError):
    status_code = 503
    code = "DATABASE_ERROR"
    default_message = "Database operation failed"


class RecordNotFoundError(NotFoundError):
    """Raised by the storage layer when a record id does not exist."""


class ModelRateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "The AI service is receiving too many requests"


class ModelUnavailableError(AppError):
    status_code = 503
    code = "AI_UNAVAILABLE"
    default_message = "The AI service is temporarily unavailable"


class ToolCallGenerationError(AppError):
    """The model kept producing tool calls that could not be parsed."""

    status_code = 500
    code = "AI_PROCESSING_FAILED"
    default_message = "AI processing failed"


class ErrorCategory(Enum):
    """Categories of errors that can occur during agent execution."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"
    TIMEOUT = "timeout"
    TASK_NOT_FOUND = "task_not_found"
    UNKNOWN = "unknown"


_ERROR_PATTERNS: dict[
    Literal["rate_limit", "unavailable", "timeout", "not_found"],
    dict[str, list[str] | set[str]],
] = {
    "rate_limit": {
        "phrases": [
            "rate limit",
            "too many requests",
            "rate_limit_exceeded",
            "throttled",
        ],
        "exception_types": {"ModelRateLimitError"},
    },
    "unavailable": {
        "phrases": [
            "unavailable",
            "503",
            "502",
        ],
        "exception_types": {"ModelUnavailableError", "ConnectionError"},
    },
    "timeout": {
        "phrases": ["timeout", "timed out"],
        "exception_types": {"TimeoutError"},
    },
    "not_found": {
        "phrases": ["not found"],
        "exception_types": {"NotFoundError", "RecordNotFoundError"},
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["rate_limit", "unavailable", "timeout", "not_found"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_agent_error(exception: BaseException) -> tuple[ErrorCategory, str]:
    """Classify a chat-flow failure and return a conversational message.

    Args:
        exception: The exception raised while producing an assistant reply

    Returns:
        Tuple of (ErrorCategory, user_friendly_message)
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="rate_limit"):
        return (
            ErrorCategory.RATE_LIMIT_EXCEEDED,
            "I'm receiving too many requests right now. Please wait a moment and try again.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="unavailable"):
        return (
            ErrorCategory.SERVICE_UNAVAILABLE,
            "The AI service is temporarily unavailable. Please try again in a few minutes.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="timeout"):
        return (
            ErrorCategory.TIMEOUT,
            "The request took too long to process. Please try again with a simpler request.",
        )

    return (
        ErrorCategory.UNKNOWN,
        "Sorry, I encountered an error processing your request. Please try again.",
    )


def classify_confirmation_error(exception: BaseException) -> tuple[ErrorCategory, str]:
    """Classify a failure while executing a confirmed proposal."""
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="rate_limit"):
        return (
            ErrorCategory.RATE_LIMIT_EXCEEDED,
            "Too many requests. Please wait a moment before confirming again.",
        )

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="not_found"):
        return (
            ErrorCategory.TASK_NOT_FOUND,
            "The task could not be found. It may have been deleted.",
        )

    return (ErrorCategory.UNKNOWN, "Failed to execute the action. Please try again.")
