"""
Core module for the Ad Copy Orchestrator.

This module contains configuration, exceptions, and shared utilities.
"""

from adcopy_orchestrator.core.config import BreakerProfile, Settings, get_settings
from adcopy_orchestrator.core.exceptions import (
    AdCopyOrchestratorException,
    ErrorCode,
    GenerationValidationError,
    IdempotencyInFlightError,
    IdempotentReplayError,
    JobError,
    JobLimitExceededError,
    JobNotFoundError,
    JobStateError,
    PoolSaturatedError,
    ProviderError,
    ProviderErrorKind,
    StoreError,
)

__all__ = [
    # Config
    "BreakerProfile",
    "Settings",
    "get_settings",
    # Exceptions
    "AdCopyOrchestratorException",
    "ErrorCode",
    "GenerationValidationError",
    "IdempotencyInFlightError",
    "IdempotentReplayError",
    "JobError",
    "JobLimitExceededError",
    "JobNotFoundError",
    "JobStateError",
    "PoolSaturatedError",
    "ProviderError",
    "ProviderErrorKind",
    "StoreError",
]
