"""
Core configuration module for the Ad Copy Orchestrator.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the ADCOPY_ prefix.
Nested values (breaker profiles, provider priority) are read as JSON, e.g.
ADCOPY_PROVIDER_PRIORITY='["anthropic", "openai"]'.

Reference:
- GUIDELINES: Sinha pp. 193-195 - Pydantic BaseSettings pattern
- Building Microservices (Newman): per-dependency timeouts and circuit breakers
"""

from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Valid environment values."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


# =============================================================================
# Provider Breaker Profiles
# =============================================================================


class BreakerProfile(BaseModel):
    """
    Reliability profile for a single provider.

    Attributes:
        failure_threshold: Failures before the breaker opens.
        cooldown_seconds: How long the breaker stays open once tripped.
        timeout_seconds: Upper bound for a single provider call.
    """

    failure_threshold: int = Field(default=3, ge=1, le=100)
    cooldown_seconds: float = Field(default=300.0, ge=1.0)
    timeout_seconds: float = Field(default=30.0, gt=0.0, le=600.0)


DEFAULT_PROVIDER_PRIORITY = ["openai", "anthropic", "gemini", "huggingface"]

DEFAULT_BREAKER_PROFILE = BreakerProfile()


def _default_breaker_profiles() -> dict[str, BreakerProfile]:
    return {
        "openai": BreakerProfile(failure_threshold=5, cooldown_seconds=60.0, timeout_seconds=30.0),
        "anthropic": BreakerProfile(failure_threshold=3, cooldown_seconds=300.0, timeout_seconds=30.0),
        "gemini": BreakerProfile(failure_threshold=4, cooldown_seconds=180.0, timeout_seconds=45.0),
        "huggingface": BreakerProfile(failure_threshold=2, cooldown_seconds=600.0, timeout_seconds=120.0),
    }


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields use the ADCOPY_ prefix for environment variables.
    Example: ADCOPY_REDIS_URL=redis://cache:6379/0
    """

    model_config = SettingsConfigDict(env_prefix="ADCOPY_", extra="ignore")

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="adcopy-orchestrator",
        description="Name of the service for logging and identification",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # =========================================================================
    # Redis Configuration
    # =========================================================================
    redis_url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL for shared resilience state",
    )

    # =========================================================================
    # Provider API Keys
    # Pattern: SecretStr for sensitive values, use .get_secret_value() to access
    # =========================================================================
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))
    gemini_api_key: SecretStr = Field(default=SecretStr(""))

    openai_model: str = Field(default="gpt-4o-mini")
    anthropic_model: str = Field(default="claude-3-5-haiku-latest")
    gemini_model: str = Field(default="gemini-1.5-flash")

    # =========================================================================
    # Fallback Orchestration
    # =========================================================================
    provider_priority: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_PRIORITY),
        description="Providers tried in order; earlier entries are more trusted",
    )
    circuit_breaker_profiles: dict[str, BreakerProfile] = Field(
        default_factory=_default_breaker_profiles,
        description="Per-provider failure threshold, cooldown and call timeout",
    )
    circuit_breaker_state_ttl_seconds: int = Field(
        default=3600,
        ge=60,
        description="Minimum retention of a persisted breaker state",
    )
    max_variation_count: int = Field(default=10, ge=1, le=50)
    fallback_cache_ttl_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="Retention of last-known-good results (stale-but-available)",
    )

    # =========================================================================
    # Dead Letter Queue
    # =========================================================================
    dlq_record_ttl_seconds: int = Field(default=7 * 24 * 3600, ge=60)
    dlq_stats_ttl_seconds: int = Field(default=30 * 24 * 3600, ge=60)
    dlq_max_retry_attempts: int = Field(default=3, ge=0, le=20)
    dlq_retry_base_delay_seconds: float = Field(default=3600.0, ge=0.0)
    dlq_retry_max_delay_seconds: float = Field(default=6 * 3600.0, ge=0.0)
    dlq_claim_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Lifetime of the marker that guards one retry attempt",
    )

    # =========================================================================
    # Idempotency
    # =========================================================================
    idempotency_ttl_seconds: int = Field(default=24 * 3600, ge=1)
    idempotency_in_flight_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Lifetime of the in-flight marker if the owner never finishes",
    )
    idempotency_in_flight_wait_seconds: float = Field(default=5.0, ge=0.0)
    idempotency_poll_interval_seconds: float = Field(default=0.1, gt=0.0)

    # =========================================================================
    # Async Jobs
    # =========================================================================
    job_expiry_seconds: int = Field(default=24 * 3600, ge=60)
    job_timeout_seconds: int = Field(default=60 * 60, ge=1)
    job_retention_seconds: int = Field(
        default=7 * 24 * 3600,
        ge=60,
        description="How long a job record is kept after it expires",
    )
    max_active_jobs_per_owner: int = Field(default=5, ge=1)

    # =========================================================================
    # Worker Pools (max workers / queue capacity per workload class)
    # =========================================================================
    ai_pool_workers: int = Field(default=12, ge=1)
    ai_pool_queue_capacity: int = Field(default=50, ge=0)
    media_pool_workers: int = Field(default=6, ge=1)
    media_pool_queue_capacity: int = Field(default=25, ge=0)
    general_pool_workers: int = Field(default=4, ge=1)
    general_pool_queue_capacity: int = Field(default=20, ge=0)

    # =========================================================================
    # Sweepers
    # =========================================================================
    scheduler_tick_seconds: float = Field(default=5.0, gt=0.0)
    dlq_retry_sweep_interval_seconds: float = Field(default=300.0, gt=0.0)
    dlq_cleanup_interval_seconds: float = Field(default=3600.0, gt=0.0)
    job_reconcile_interval_seconds: float = Field(default=300.0, gt=0.0)

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("redis_url must start with redis:// or rediss://")
        return v

    @field_validator("provider_priority")
    @classmethod
    def validate_provider_priority(cls, v: list[str]) -> list[str]:
        """Provider names are unique and normalized to lower case."""
        names = [name.strip().lower() for name in v if name.strip()]
        if len(set(names)) != len(names):
            raise ValueError("provider_priority must not contain duplicates")
        return names

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {v}")
        return level

    def breaker_profile(self, provider: str) -> BreakerProfile:
        """Return the profile for ``provider``, or the default profile."""
        return self.circuit_breaker_profiles.get(provider, DEFAULT_BREAKER_PROFILE)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns a singleton Settings instance. Call get_settings.cache_clear()
    in tests that need a fresh read of the environment.
    """
    return Settings()
