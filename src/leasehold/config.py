from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from leasehold.lease.record import ClaimParams


STORE_BACKENDS = ("redis", "memory")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEASEHOLD_", env_file=".env", extra="ignore")

    # Identity of this process; must be unique among claimants
    claimant: str | None = Field(
        default=None,
        validation_alias=AliasChoices("LEASEHOLD_CLAIMANT", "CLAIMANT"),
    )

    # Lease record
    lease_name: str = "lease-test"
    namespace: str = "default"

    # Claim timing
    lease_duration_seconds: float = 30.0
    renew_grace_period_seconds: float = 1.0
    min_poll_interval_seconds: float = 1.0

    # Transient error backoff
    backoff_initial_seconds: float = 0.5
    backoff_max_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    backoff_jitter: float = 0.1

    # Store
    store_backend: str = "redis"
    store_timeout_seconds: float = 5.0
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        validation_alias=AliasChoices("LEASEHOLD_REDIS_URL", "REDIS_URL"),
    )
    redis_socket_timeout_seconds: float = 5.0
    redis_connect_timeout_seconds: float = 5.0

    # Startup retry budget for reaching the store
    init_retries: int = 0
    init_retry_delay_seconds: float = 1.0

    # Observability
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LEASEHOLD_LOG_LEVEL", "LOG_LEVEL"),
    )
    log_json: bool = True
    enable_metrics: bool = True
    metrics_port: int | None = None

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        if v not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be 'redis' or 'memory', got {v!r}")
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"redis_url must start with redis://, rediss:// or unix://, got {v}")
        return v

    @field_validator(
        "store_timeout_seconds",
        "redis_socket_timeout_seconds",
        "redis_connect_timeout_seconds",
    )
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("init_retries")
    @classmethod
    def validate_init_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("init_retries must not be negative")
        return v

    def claim_params(self) -> ClaimParams:
        """Claim timing built from these settings.

        Raises:
            LeaseConfigError: The durations are inconsistent
        """
        from leasehold.lease.backoff import BackoffPolicy
        from leasehold.lease.record import ClaimParams

        return ClaimParams(
            lease_duration=timedelta(seconds=self.lease_duration_seconds),
            renew_grace_period=timedelta(seconds=self.renew_grace_period_seconds),
            min_poll_interval=timedelta(seconds=self.min_poll_interval_seconds),
            backoff=BackoffPolicy(
                initial=self.backoff_initial_seconds,
                maximum=self.backoff_max_seconds,
                multiplier=self.backoff_multiplier,
                jitter=self.backoff_jitter,
            ),
            store_timeout=timedelta(seconds=self.store_timeout_seconds),
        )


settings = Settings()
