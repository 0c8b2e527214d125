"""Least-loaded balancer - routes each request to the least busy live worker."""

import logging
import random
import threading
import time
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Union

from leastload.config import Settings, settings as default_settings
from leastload.errors import DuplicateAdmission, UnknownWorker
from leastload.leases.registry import LeaseRegistry
from leastload.models.enums import ExpiryPolicy
from leastload.models.request import Request
from leastload.models.status import BalancerStatus
from leastload.models.worker import Worker
from leastload.observability.metrics import MetricsRegistry
from leastload.ranking.load_ranking import LoadRanking
from leastload.utils.time import utc_now

logger = logging.getLogger(__name__)


class LeastLoadedBalancer:
    """
    Dispatches requests to the worker with the fewest in-flight requests.

    Workers are leased for a bounded time when the balancer is built. The
    lease registry retires them on its own schedule without touching the
    load ranking; the ranking only learns a worker is gone when that
    worker surfaces as the least-loaded candidate and fails the liveness
    check, at which point it is dropped for good.

    Locking:
    - _lock covers the claim of the least-loaded live worker and every
      other count change, so two requests can never claim the same
      candidate or lose an increment
    - the claim itself is one LoadRanking call, so direct users of the
      ranking never see a candidate missing mid-claim
    - lock order is balancer, then ranking, then leases; the lease
      registry never calls back into the ranking
    - the reaper only starts once every worker has been admitted
    - worker.handle() runs outside _lock
    """

    def __init__(
        self,
        workers: Union[Iterable[Worker], Mapping[str, Worker]],
        lease_durations: Optional[Mapping[str, int]] = None,
        config: Optional[Settings] = None,
        *,
        policy: Optional[ExpiryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        start_reaper: bool = True,
    ):
        """
        Lease every worker and start tracking its load.

        Args:
            workers: Workers to balance over, as an iterable or an
                id -> worker mapping
            lease_durations: Per-worker lease in ms; workers missing here
                get a random duration in [lease_min_ms, lease_max_ms]
            config: Settings; defaults to the module-level settings
            policy: Expiry policy override
            clock: Monotonic clock in seconds
            rng: Source of random lease durations
            start_reaper: Run the background expiry thread

        Raises:
            UnknownWorker: a lease duration names no worker, or a mapping
                key disagrees with its worker's id
            DuplicateAdmission: two workers share an id
        """
        self.settings = config or default_settings
        self.metrics = MetricsRegistry()
        self._workers: Mapping[str, Worker] = MappingProxyType(_index_workers(workers))
        self._rng = rng or random.Random(self.settings.lease_seed)

        durations = dict(lease_durations or {})
        for worker_id in durations:
            if worker_id not in self._workers:
                raise UnknownWorker(worker_id, "lease duration given for an unregistered worker")

        self._lock = threading.Lock()
        self._ranking = LoadRanking()
        self._leases = LeaseRegistry(
            self.settings,
            policy=policy,
            clock=clock,
            metrics=self.metrics,
            start_reaper=start_reaper,
            autostart=False,
        )

        try:
            with self._lock:
                for worker_id in self._workers:
                    duration_ms = (
                        durations[worker_id] if worker_id in durations else self.random_lease_duration()
                    )
                    self._leases.admit(worker_id, duration_ms)
                    self._ranking.add_worker(worker_id)
                self._update_gauges()
        except Exception:
            self._leases.close()
            raise
        # every lease is in before any can be reaped
        self._leases.start()
        logger.info(f"Balancer started with {len(self._workers)} worker(s)")

    @property
    def workers(self) -> Mapping[str, Worker]:
        """Read-only id -> worker registry."""
        return self._workers

    @property
    def ranking(self) -> LoadRanking:
        return self._ranking

    @property
    def leases(self) -> LeaseRegistry:
        return self._leases

    def random_lease_duration(self) -> int:
        """Pick a lease length in the configured inclusive range."""
        return self._rng.randint(self.settings.lease_min_ms, self.settings.lease_max_ms)

    # Request traffic

    def serve_request(self, request: Request) -> Optional[str]:
        """
        Send a request to the least-loaded live worker.

        Candidates are taken from the ranking in (count, worker_id) order.
        A candidate whose lease is gone is discarded permanently; the first
        live one has its count incremented in place and handles the
        request.

        Returns:
            The chosen worker id, or None when no live worker remains

        Raises:
            Exception: whatever the worker's handle() raised; the increment
                made for the failed request is rolled back first
        """
        with self._lock:
            worker_id = self._claim_least_loaded()
            self._update_gauges()

        if worker_id is None:
            self.metrics.inc_counter("requests.exhausted")
            logger.warning(f"Unable to service request {request.request_id}: no live workers")
            return None

        started = time.perf_counter()
        try:
            self._workers[worker_id].handle(request)
        except Exception as e:
            self.metrics.inc_counter("requests.failed")
            logger.warning(f"Worker {worker_id} failed request {request.request_id}: {e}")
            with self._lock:
                if worker_id in self._ranking:
                    self._ranking.update_count(worker_id, -1)
            raise
        finally:
            self.metrics.observe("dispatch.seconds", time.perf_counter() - started)

        self.metrics.inc_counter("requests.dispatched")
        logger.debug(f"Request {request.request_id} dispatched to worker {worker_id}")
        return worker_id

    def increment(self, worker_id: str) -> bool:
        """
        Count one more in-flight request for a live, tracked worker.

        Returns:
            True if the count changed, False for unknown or expired workers
        """
        with self._lock:
            if worker_id not in self._ranking or not self._leases.is_live(worker_id):
                return False
            self._ranking.update_count(worker_id, 1)
            return True

    def release(self, worker_id: str) -> bool:
        """
        Count one in-flight request as finished.

        Workers that are no longer tracked are ignored; they may have
        expired between dispatch and completion. Counts are not clamped at
        zero.

        Returns:
            True if the count changed
        """
        with self._lock:
            if worker_id not in self._ranking:
                return False
            self._ranking.update_count(worker_id, -1)
        self.metrics.inc_counter("requests.released")
        return True

    def _claim_least_loaded(self) -> Optional[str]:
        # caller holds _lock
        claimed, discarded = self._ranking.claim_minimum(self._leases.is_live)
        for stale in discarded:
            self.metrics.inc_counter("workers.stale_discarded")
            logger.debug(
                f"Discarding worker {stale.worker_id}: lease expired "
                f"with {stale.count} request(s) in flight"
            )
        return None if claimed is None else claimed.worker_id

    # Status

    def status_snapshot(self) -> BalancerStatus:
        """Copy both registries under the balancer lock, build the report after."""
        with self._lock:
            tracked = self._ranking.snapshot()
            leases = self._leases.snapshot()
        return BalancerStatus(
            taken_at=utc_now(),
            tracked=tracked,
            leases=leases,
            metrics=self.metrics.snapshot(),
        )

    def get_status(self) -> str:
        """Text form of status_snapshot()."""
        return self.status_snapshot().render()

    def _update_gauges(self) -> None:
        # caller holds _lock
        self.metrics.set_gauge("workers.tracked", len(self._ranking))

    # Lifecycle

    def close(self, timeout: Optional[float] = None) -> None:
        """Stop the lease reaper. Tracked counts are left as they are."""
        self._leases.close(timeout)
        logger.info("Balancer closed")

    def __enter__(self) -> "LeastLoadedBalancer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _index_workers(workers: Union[Iterable[Worker], Mapping[str, Worker]]) -> dict[str, Worker]:
    """Build the id -> worker registry, rejecting mismatched or repeated ids."""
    indexed: dict[str, Worker] = {}
    if isinstance(workers, Mapping):
        for key, worker in workers.items():
            if worker.worker_id != key:
                raise UnknownWorker(key, f"registered under a different id ({worker.worker_id})")
            indexed[key] = worker
        return indexed

    for worker in workers:
        if worker.worker_id in indexed:
            raise DuplicateAdmission(worker.worker_id)
        indexed[worker.worker_id] = worker
    return indexed
