"""Leastload data models."""

from leastload.models.enums import ExpiryPolicy
from leastload.models.lease import Lease
from leastload.models.load import WorkerLoad
from leastload.models.request import Request
from leastload.models.status import BalancerStatus
from leastload.models.worker import LocalWorker, Worker

__all__ = [
    "BalancerStatus",
    "ExpiryPolicy",
    "Lease",
    "LocalWorker",
    "Request",
    "Worker",
    "WorkerLoad",
]
