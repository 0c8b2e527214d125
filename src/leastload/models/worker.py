"""Worker capability and a simple in-process implementation."""

import threading
from typing import Any, Protocol, runtime_checkable

from leastload.models.request import Request


@runtime_checkable
class Worker(Protocol):
    """Anything a balancer can dispatch requests to."""

    worker_id: str

    def handle(self, request: Request) -> Any:
        """Execute a request. The balancer never inspects the result."""
        ...


class LocalWorker:
    """In-process worker that remembers every request it was given."""

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        self._lock = threading.Lock()
        self._handled: list[Request] = []

    def handle(self, request: Request) -> int:
        with self._lock:
            self._handled.append(request)
            return len(self._handled)

    @property
    def handled(self) -> list[Request]:
        """Copy of the requests handled so far, oldest first."""
        with self._lock:
            return list(self._handled)

    def __repr__(self) -> str:
        return f"LocalWorker({self.worker_id!r})"
