"""Leastload configuration management."""

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leastload.models.enums import ExpiryPolicy

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """Leastload configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEASTLOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # General
    log_level: str = "INFO"

    # Lease durations handed out at construction time, in milliseconds
    lease_min_ms: int = Field(default=1_000, description="Shortest random lease")
    lease_max_ms: int = Field(default=10_999, description="Longest random lease (inclusive)")
    lease_seed: Optional[int] = Field(
        default=None,
        description="Seed for the lease duration RNG (unseeded when unset)",
    )

    # Expiry behavior
    expiry_policy: ExpiryPolicy = Field(
        default=ExpiryPolicy.ANY_EXPIRED,
        description="Which lease a fired expiry check removes",
    )
    shutdown_when_empty: bool = Field(
        default=True,
        description="Stop accepting leases once the last one has expired",
    )

    # Reaper thread
    reaper_poll_interval_ms: int = Field(
        default=250, description="Upper bound on a single reaper wait"
    )
    reaper_join_timeout_seconds: float = Field(
        default=5.0, description="How long close() waits for the reaper thread"
    )

    # Validators
    @field_validator("lease_min_ms", "lease_max_ms", "reaper_poll_interval_ms")
    @classmethod
    def validate_positive_ms(cls, v: int) -> int:
        """Durations must be strictly positive."""
        if v <= 0:
            raise ValueError(f"Duration must be a positive number of milliseconds, got {v}")
        return v

    @field_validator("reaper_join_timeout_seconds")
    @classmethod
    def validate_join_timeout(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Join timeout cannot be negative, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept only the standard logging level names."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_lease_range(self) -> "Settings":
        """lease_min_ms must not exceed lease_max_ms."""
        if self.lease_min_ms > self.lease_max_ms:
            raise ValueError(
                f"lease_min_ms ({self.lease_min_ms}) must be <= lease_max_ms ({self.lease_max_ms})"
            )
        return self


settings = Settings()
