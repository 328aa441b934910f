"""Unit tests for error classification utilities."""

import pytest

from grounded.core.errors import (
    ErrorCategory,
    ModelRateLimitError,
    ModelUnavailableError,
    NotFoundError,
    classify_agent_error,
    classify_confirmation_error,
)


@pytest.mark.unit
class TestClassifyAgentError:
    """Tests for classify_agent_error function."""

    def test_rate_limit_exception_type(self):
        category, message = classify_agent_error(ModelRateLimitError())

        assert category == ErrorCategory.RATE_LIMIT_EXCEEDED
        assert "too many requests" in message.lower()

    def test_rate_limit_phrase(self):
        category, _ = classify_agent_error(Exception("HTTP 429: Too many requests"))

        assert category == ErrorCategory.RATE_LIMIT_EXCEEDED

    def test_service_unavailable(self):
        category, message = classify_agent_error(ModelUnavailableError())

        assert category == ErrorCategory.SERVICE_UNAVAILABLE
        assert "temporarily unavailable" in message.lower()

    def test_bad_gateway_phrase(self):
        category, _ = classify_agent_error(Exception("upstream returned 502"))

        assert category == ErrorCategory.SERVICE_UNAVAILABLE

    def test_timeout(self):
        category, message = classify_agent_error(TimeoutError("request timed out"))

        assert category == ErrorCategory.TIMEOUT
        assert "took too long" in message.lower()

    def test_unknown(self):
        category, message = classify_agent_error(KeyError("boom"))

        assert category == ErrorCategory.UNKNOWN
        assert message == "Sorry, I encountered an error processing your request. Please try again."


@pytest.mark.unit
class TestClassifyConfirmationError:
    def test_missing_task(self):
        category, message = classify_confirmation_error(NotFoundError("Task not found"))

        assert category == ErrorCategory.TASK_NOT_FOUND
        assert message == "The task could not be found. It may have been deleted."

    def test_rate_limit(self):
        category, _ = classify_confirmation_error(Exception("rate limit exceeded"))

        assert category == ErrorCategory.RATE_LIMIT_EXCEEDED

    def test_unknown(self):
        category, message = classify_confirmation_error(RuntimeError("disk on fire"))

        assert category == ErrorCategory.UNKNOWN
        assert message == "Failed to execute the action. Please try again."


@pytest.mark.unit
class TestAppErrors:
    def test_default_message_and_status(self):
        error = ModelRateLimitError()

        assert error.status_code == 429
        assert error.code == "RATE_LIMITED"
        assert error.message == "The AI service is receiving too many requests"

    def test_custom_message(self):
        assert NotFoundError("Task not found").message == "Task not found"
