"""
Pytest fixtures for leastload tests.
"""

import os

import pytest

# Ensure test config is set before importing leastload modules.
os.environ.setdefault("LEASTLOAD_LOG_LEVEL", "DEBUG")
os.environ.setdefault("LEASTLOAD_REAPER_POLL_INTERVAL_MS", "20")
os.environ.setdefault("LEASTLOAD_REAPER_JOIN_TIMEOUT_SECONDS", "2")

from leastload.engine import LeastLoadedBalancer
from leastload.leases import LeaseRegistry
from leastload.models import LocalWorker

LONG_LEASE_MS = 60_000


class ManualClock:
    """Monotonic clock that only moves when a test advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: int) -> float:
        self.now += ms / 1000.0
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def registry(clock):
    """Lease registry on the manual clock; checks fire only when a test says so."""
    reg = LeaseRegistry(clock=clock, start_reaper=False)
    yield reg
    reg.close()


@pytest.fixture
def make_balancer(clock):
    """
    Build balancers over LocalWorkers named by id.

    Defaults to the manual clock, no reaper thread, and long leases for
    any worker without an explicit duration.
    """
    created = []

    def _build(worker_ids, durations=None, **kwargs):
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("start_reaper", False)
        lease_durations = {worker_id: LONG_LEASE_MS for worker_id in worker_ids}
        lease_durations.update(durations or {})
        balancer = LeastLoadedBalancer(
            [LocalWorker(worker_id) for worker_id in worker_ids],
            lease_durations,
            **kwargs,
        )
        created.append(balancer)
        return balancer

    yield _build

    for balancer in created:
        balancer.close()
