"""Balancer status snapshot."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class BalancerStatus(BaseModel):
    """Point-in-time copy of a balancer's ranking and lease registry."""

    taken_at: datetime
    tracked: dict[str, int] = Field(default_factory=dict)  # worker_id -> in-flight count
    leases: dict[str, int] = Field(default_factory=dict)  # worker_id -> ms remaining
    metrics: dict[str, Any] = Field(default_factory=dict)

    @property
    def remaining_workers(self) -> int:
        """Number of workers still in the ranking."""
        return len(self.tracked)

    def render(self) -> str:
        """Human-readable report, one line per worker."""
        lines = [f"Remaining acquired servers: {self.remaining_workers}", "Load ranking ["]
        for worker_id, count in sorted(self.tracked.items()):
            lines.append(f"  server={worker_id}, active connections={count};")
        lines.append("]")
        lines.append("Lease registry [")
        for worker_id, remaining in sorted(self.leases.items()):
            lines.append(f"  server={worker_id}, milliseconds remaining={remaining};")
        lines.append("]")
        return "\n".join(lines)
