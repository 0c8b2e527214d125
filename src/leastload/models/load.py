"""Worker load entry - one row of the load ranking."""

from pydantic import BaseModel, ConfigDict


class WorkerLoad(BaseModel):
    """In-flight request count for a single worker."""

    model_config = ConfigDict(frozen=True)

    worker_id: str
    count: int = 0

    @property
    def sort_key(self) -> tuple[int, str]:
        """Ranking order: fewest requests first, ties broken by worker id."""
        return (self.count, self.worker_id)
