"""
Unit tests for adcopy_orchestrator/core/exceptions.py - tagged error types.

Reference:
- ANTI_PATTERN_ANALYSIS.md: Exception handling patterns
"""

import pytest

from adcopy_orchestrator.core.exceptions import (
    AdCopyOrchestratorException,
    ErrorCode,
    GenerationValidationError,
    IdempotencyInFlightError,
    IdempotentReplayError,
    JobLimitExceededError,
    JobNotFoundError,
    JobStateError,
    PoolSaturatedError,
    ProviderError,
    ProviderErrorKind,
    StoreError,
    is_retryable_message,
)


class TestBaseException:
    """Tests for AdCopyOrchestratorException."""

    def test_message_and_default_code(self):
        """The base exception carries a message and ORCHESTRATOR_ERROR."""
        error = AdCopyOrchestratorException("boom")

        assert str(error) == "boom"
        assert error.message == "boom"
        assert error.error_code == ErrorCode.ORCHESTRATOR_ERROR

    def test_extra_kwargs_become_attributes(self):
        """Keyword arguments are set as attributes."""
        error = AdCopyOrchestratorException("boom", request_id="r-1")

        assert error.request_id == "r-1"

    @pytest.mark.parametrize(
        "error",
        [
            ProviderError("x", "openai"),
            GenerationValidationError("x"),
            IdempotentReplayError("x"),
            IdempotencyInFlightError("k"),
            JobNotFoundError("j"),
            PoolSaturatedError("ai", 62),
            StoreError("x"),
        ],
    )
    def test_all_errors_share_base(self, error):
        """Every orchestrator error derives from the base exception."""
        assert isinstance(error, AdCopyOrchestratorException)


class TestProviderError:
    """Tests for the tagged provider failure."""

    @pytest.mark.parametrize(
        "factory, kind, retryable",
        [
            (ProviderError.quota_exceeded, ProviderErrorKind.QUOTA_EXCEEDED, False),
            (ProviderError.rate_limited, ProviderErrorKind.RATE_LIMITED, True),
            (ProviderError.invalid_credentials, ProviderErrorKind.INVALID_CREDENTIALS, False),
            (ProviderError.network_error, ProviderErrorKind.NETWORK, True),
            (ProviderError.invalid_response, ProviderErrorKind.INVALID_RESPONSE, False),
        ],
    )
    def test_factories_tag_kind_and_retryable(self, factory, kind, retryable):
        """Each factory sets its kind and retryable flag."""
        error = factory("gemini")

        assert error.provider == "gemini"
        assert error.kind == kind
        assert error.retryable is retryable
        assert error.error_code == ErrorCode.PROVIDER_ERROR

    def test_timeout_factory_mentions_budget(self):
        """Timeout errors are retryable and state the budget."""
        error = ProviderError.timeout("openai", 30)

        assert error.kind == ProviderErrorKind.TIMEOUT
        assert error.retryable is True
        assert "30s" in error.message

    def test_from_exception_passes_provider_error_through(self):
        """An already tagged error is returned unchanged."""
        original = ProviderError.quota_exceeded("openai")

        assert ProviderError.from_exception("openai", original) is original

    def test_from_exception_classifies_transient_message(self):
        """Untagged errors mentioning a connection problem are retryable."""
        error = ProviderError.from_exception("openai", RuntimeError("Connection reset by peer"))

        assert error.kind == ProviderErrorKind.GENERIC
        assert error.retryable is True

    def test_from_exception_defaults_to_permanent(self):
        """Untagged errors without transient wording are not retryable."""
        error = ProviderError.from_exception("openai", ValueError("bad prompt"))

        assert error.retryable is False
        assert error.message == "bad prompt"

    def test_from_exception_uses_type_name_for_empty_message(self):
        """An exception without a message is described by its type."""
        error = ProviderError.from_exception("openai", KeyError())

        assert error.message == "KeyError"


class TestRetryableMessage:
    """Tests for is_retryable_message."""

    @pytest.mark.parametrize(
        "message",
        ["Request timed out", "NETWORK unreachable", "Rate limit hit", "Service Unavailable"],
    )
    def test_transient_messages(self, message):
        """Transient wording is recognized case-insensitively."""
        assert is_retryable_message(message) is True

    def test_permanent_message(self):
        """Other wording is not retryable."""
        assert is_retryable_message("invalid request payload") is False


class TestJobErrors:
    """Tests for async job errors."""

    def test_job_state_error_keeps_states(self):
        """JobStateError records the current and requested states."""
        error = JobStateError("job-1", "COMPLETED", "IN_PROGRESS")

        assert error.job_id == "job-1"
        assert error.current == "COMPLETED"
        assert error.requested == "IN_PROGRESS"
        assert error.error_code == ErrorCode.JOB_STATE_ERROR

    def test_job_limit_error(self):
        """JobLimitExceededError carries owner and limit."""
        error = JobLimitExceededError("user-1", 5)

        assert error.owner_id == "user-1"
        assert error.limit == 5
        assert error.error_code == ErrorCode.JOB_LIMIT_EXCEEDED

    def test_job_not_found_code(self):
        """JobNotFoundError uses JOB_NOT_FOUND."""
        assert JobNotFoundError("x").error_code == ErrorCode.JOB_NOT_FOUND
