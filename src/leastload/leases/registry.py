"""Lease registry - which workers are alive and for how long."""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Optional

from leastload.config import Settings, settings as default_settings
from leastload.errors import DuplicateAdmission, InvalidLeaseDuration, LeaseRegistryClosed
from leastload.leases.reaper import LeaseReaper
from leastload.models.enums import ExpiryPolicy
from leastload.models.lease import Lease
from leastload.observability.metrics import MetricsRegistry

logger = logging.getLogger(__name__)


class LeaseRegistry:
    """
    Tracks leased workers and retires them when their lease runs out.

    Every admission schedules exactly one expiry check, due when the new
    lease runs out. Checks live in a single time-ordered heap that a
    LeaseReaper thread drains; nothing is ever renewed or cancelled.

    What a fired check removes depends on the expiry policy:
    - ANY_EXPIRED: the first expired lease in admission order, which is not
      necessarily the lease that scheduled the check
    - OWN_LEASE: only the lease that scheduled the check

    Expiry is applied only when a check fires, so a lease that has run out
    but not yet been reaped still reads as live.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        *,
        policy: Optional[ExpiryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsRegistry] = None,
        start_reaper: bool = True,
        autostart: bool = True,
    ):
        """
        Initialize the registry.

        Args:
            config: Settings to read policy and reaper tuning from
            policy: Overrides config.expiry_policy
            clock: Monotonic clock in seconds; injectable for tests
            metrics: Registry to record lease counters in
            start_reaper: When False no thread runs and checks are only
                fired through fire_due_checks()
            autostart: Start the reaper on the first admission; when False
                the owner calls start() once its initial leases are in
        """
        cfg = config or default_settings
        self.policy = ExpiryPolicy(policy or cfg.expiry_policy)
        self.shutdown_when_empty = cfg.shutdown_when_empty
        self.clock = clock
        self.metrics = metrics or MetricsRegistry()

        self._lock = threading.Lock()
        # dicts keep insertion order, which is admission order
        self._leases: dict[str, Lease] = {}
        self._checks: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._shut_down = False
        self._autostart = autostart

        self._reaper: Optional[LeaseReaper] = None
        if start_reaper:
            self._reaper = LeaseReaper(
                self,
                poll_interval_ms=cfg.reaper_poll_interval_ms,
                join_timeout_seconds=cfg.reaper_join_timeout_seconds,
            )

    # Admission and lookup

    def admit(self, worker_id: str, duration_ms: int) -> Lease:
        """
        Lease a worker for duration_ms starting now.

        Raises:
            InvalidLeaseDuration: duration_ms is not a positive integer
            DuplicateAdmission: worker_id already holds a lease
            LeaseRegistryClosed: registry has been shut down
        """
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, int) or duration_ms <= 0:
            raise InvalidLeaseDuration(worker_id, duration_ms)

        with self._lock:
            if self._shut_down:
                raise LeaseRegistryClosed()
            if worker_id in self._leases:
                raise DuplicateAdmission(worker_id)
            lease = Lease(worker_id=worker_id, granted_at=self.clock(), duration_ms=duration_ms)
            self._leases[worker_id] = lease
            heapq.heappush(self._checks, (lease.expires_at, next(self._seq), worker_id))
            self.metrics.set_gauge("leases.live", len(self._leases))

        self.metrics.inc_counter("leases.admitted")
        logger.debug(f"Admitted worker {worker_id} for {duration_ms} ms")

        if self._autostart:
            self.start()
        elif self._reaper is not None:
            self._reaper.wake()
        return lease

    def is_live(self, worker_id: str) -> bool:
        """True while worker_id holds a lease that has not been reaped."""
        with self._lock:
            return worker_id in self._leases

    def get(self, worker_id: str) -> Optional[Lease]:
        with self._lock:
            return self._leases.get(worker_id)

    def snapshot(self) -> dict[str, int]:
        """Copy of worker_id -> milliseconds remaining, in admission order."""
        now = self.clock()
        with self._lock:
            leases = list(self._leases.values())
        return {lease.worker_id: lease.remaining_ms(now) for lease in leases}

    def is_empty(self) -> bool:
        with self._lock:
            return not self._leases

    def __len__(self) -> int:
        with self._lock:
            return len(self._leases)

    def __contains__(self, worker_id: object) -> bool:
        with self._lock:
            return worker_id in self._leases

    def __repr__(self) -> str:
        body = "; ".join(
            f"server={worker_id}, milliseconds remaining={remaining}"
            for worker_id, remaining in self.snapshot().items()
        )
        return f"LeaseRegistry [{body}]"

    # Expiry

    def next_check_at(self) -> Optional[float]:
        """Clock reading at which the earliest pending check is due."""
        with self._lock:
            return self._checks[0][0] if self._checks else None

    @property
    def pending_checks(self) -> int:
        with self._lock:
            return len(self._checks)

    def fire_due_checks(self, now: Optional[float] = None) -> list[str]:
        """
        Fire every scheduled check that is due.

        Each fired check removes at most one lease, chosen by the expiry
        policy. After each check, an empty registry shuts itself down when
        shutdown_when_empty is set.

        Args:
            now: Clock reading to evaluate against; defaults to the clock

        Returns:
            Worker ids released, in the order they were removed
        """
        if now is None:
            now = self.clock()

        released: list[Lease] = []
        with self._lock:
            while self._checks and self._checks[0][0] <= now:
                _, _, scheduled_for = heapq.heappop(self._checks)
                lease = self._select_expired(scheduled_for, now)
                if lease is not None:
                    del self._leases[lease.worker_id]
                    released.append(lease)
                if not self._leases and self.shutdown_when_empty and not self._shut_down:
                    self._shut_down = True
                    logger.info("Lease registry empty, shutting down")
            if released:
                self.metrics.set_gauge("leases.live", len(self._leases))

        for lease in released:
            logger.info(
                f"Released worker {lease.worker_id}: lease {lease.duration_ms} ms, "
                f"held {lease.elapsed_ms(now)} ms until release"
            )
        if released:
            self.metrics.inc_counter("leases.expired", len(released))
        return [lease.worker_id for lease in released]

    def _select_expired(self, scheduled_for: str, now: float) -> Optional[Lease]:
        # caller holds _lock
        if self.policy == ExpiryPolicy.OWN_LEASE:
            lease = self._leases.get(scheduled_for)
            if lease is not None and lease.is_expired(now):
                return lease
            return None
        for lease in self._leases.values():
            if lease.is_expired(now):
                return lease
        return None

    # Lifecycle

    @property
    def is_shut_down(self) -> bool:
        with self._lock:
            return self._shut_down

    def reaper_should_exit(self) -> bool:
        """Reaper may stop once no new checks can arrive and none are pending."""
        with self._lock:
            return self._shut_down and not self._checks

    def start(self) -> None:
        """Start the reaper thread, if this registry has one."""
        if self._reaper is not None:
            self._reaper.start()
            self._reaper.wake()

    def shutdown(self) -> None:
        """
        Stop accepting admissions.

        Checks that are already scheduled still fire; the reaper thread
        exits after the last one.
        """
        with self._lock:
            already = self._shut_down
            self._shut_down = True
        if not already:
            logger.info("Lease registry shut down")
        if self._reaper is not None:
            self._reaper.wake()

    def close(self, timeout: Optional[float] = None) -> None:
        """Shut down, discard pending checks and stop the reaper thread."""
        with self._lock:
            self._shut_down = True
            self._checks.clear()
        if self._reaper is not None:
            self._reaper.stop(timeout)

    def wait_for_reaper(self, timeout: Optional[float] = None) -> bool:
        """Block until the reaper thread has exited on its own."""
        if self._reaper is None:
            return True
        return self._reaper.join(timeout)

    def __enter__(self) -> "LeaseRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
