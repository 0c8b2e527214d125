"""Lease model - bounded availability window for a worker."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from leastload.utils.time import utc_now


class Lease(BaseModel):
    """
    A worker's one-shot grant of availability.

    granted_at is read from the registry's monotonic clock (seconds);
    admitted_at is wall-clock UTC and only used for reporting.
    Leases are never renewed: once expired the worker is gone.
    """

    model_config = ConfigDict(frozen=True)

    worker_id: str
    granted_at: float
    duration_ms: int = Field(gt=0)
    admitted_at: datetime = Field(default_factory=utc_now)

    @property
    def expires_at(self) -> float:
        """Clock reading at which the lease runs out."""
        return self.granted_at + self.duration_ms / 1000.0

    def elapsed_ms(self, now: float) -> int:
        """Milliseconds since the lease was granted."""
        return int((now - self.granted_at) * 1000)

    def remaining_ms(self, now: float) -> int:
        """Milliseconds left before expiry (negative once overdue)."""
        return self.duration_ms - self.elapsed_ms(now)

    def is_expired(self, now: float) -> bool:
        """Check if lease has run its full duration."""
        return now >= self.expires_at
