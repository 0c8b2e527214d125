"""Time-bounded worker leases."""

from leastload.leases.reaper import LeaseReaper
from leastload.leases.registry import LeaseRegistry

__all__ = ["LeaseReaper", "LeaseRegistry"]
