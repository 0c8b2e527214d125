"""Leastload errors."""


class LeastLoadError(Exception):
    """Base error for leastload operations."""

    def __init__(self, message: str, code: str = "LEASTLOAD_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class DuplicateAdmission(LeastLoadError):
    """Worker already holds a live lease."""

    def __init__(self, worker_id: str):
        super().__init__(
            f"Worker {worker_id} is already leased; leases are never renewed",
            "DUPLICATE_ADMISSION",
        )
        self.worker_id = worker_id


class InvalidLeaseDuration(LeastLoadError):
    """Lease duration is not a positive number of milliseconds."""

    def __init__(self, worker_id: str, duration_ms: object):
        super().__init__(
            f"Invalid lease duration for worker {worker_id}: {duration_ms!r}",
            "INVALID_LEASE_DURATION",
        )
        self.worker_id = worker_id
        self.duration_ms = duration_ms


class LeaseRegistryClosed(LeastLoadError):
    """Lease registry no longer accepts admissions."""

    def __init__(self):
        super().__init__("Lease registry is shut down", "LEASE_REGISTRY_CLOSED")


class UnknownWorker(LeastLoadError):
    """Worker id does not match any registered worker."""

    def __init__(self, worker_id: str, reason: str = "no worker registered under this id"):
        super().__init__(f"Unknown worker {worker_id}: {reason}", "UNKNOWN_WORKER")
        self.worker_id = worker_id
