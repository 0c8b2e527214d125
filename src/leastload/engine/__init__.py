"""Leastload engine - least-loaded request routing."""

from leastload.engine.balancer import LeastLoadedBalancer
from leastload.errors import (
    DuplicateAdmission,
    InvalidLeaseDuration,
    LeaseRegistryClosed,
    LeastLoadError,
    UnknownWorker,
)

__all__ = [
    "DuplicateAdmission",
    "InvalidLeaseDuration",
    "LeaseRegistryClosed",
    "LeastLoadError",
    "LeastLoadedBalancer",
    "UnknownWorker",
]
