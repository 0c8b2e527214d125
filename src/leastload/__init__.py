"""
Leastload - least-loaded request routing over time-leased workers.

Requests go to the worker with the fewest in-flight requests. Each worker
is only available for a bounded lease; a background reaper retires
expired leases, and the balancer discards retired workers lazily the next
time they come up as a candidate.
"""

from leastload.config import Settings, settings
from leastload.engine import LeastLoadedBalancer
from leastload.errors import (
    DuplicateAdmission,
    InvalidLeaseDuration,
    LeaseRegistryClosed,
    LeastLoadError,
    UnknownWorker,
)
from leastload.leases import LeaseRegistry
from leastload.models import (
    BalancerStatus,
    ExpiryPolicy,
    Lease,
    LocalWorker,
    Request,
    Worker,
    WorkerLoad,
)
from leastload.ranking import LoadRanking

__version__ = "0.1.0"

__all__ = [
    "BalancerStatus",
    "DuplicateAdmission",
    "ExpiryPolicy",
    "InvalidLeaseDuration",
    "Lease",
    "LeaseRegistry",
    "LeaseRegistryClosed",
    "LeastLoadError",
    "LeastLoadedBalancer",
    "LoadRanking",
    "LocalWorker",
    "Request",
    "Settings",
    "UnknownWorker",
    "Worker",
    "WorkerLoad",
    "settings",
]
