"""Lease expiry reaper background thread."""

import logging
import threading
from typing import Optional

logger = logging.getLogger("leastload.reaper")


class LeaseReaper:
    """
    Background thread that fires a lease registry's scheduled expiry checks.

    There is one thread per registry no matter how many leases are
    admitted. Each pass:
    - Fires every check whose due time has passed
    - Exits once the registry is shut down and no checks remain
    - Sleeps until the earliest pending check, capped at the poll interval,
      or until woken by a new admission
    """

    def __init__(
        self,
        registry,
        poll_interval_ms: int,
        join_timeout_seconds: float,
        name: str = "leastload-reaper",
    ):
        self._registry = registry
        self._poll_interval = poll_interval_ms / 1000.0
        self._join_timeout = join_timeout_seconds
        self._name = name
        self._wake_event = threading.Event()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        """Start the thread if it is not already running."""
        with self._start_lock:
            if self.is_running or self._stop_event.is_set():
                return
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def wake(self) -> None:
        """Interrupt the current wait so new checks are picked up."""
        self._wake_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the thread and wait for it to exit."""
        self._stop_event.set()
        self._wake_event.set()

        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(self._join_timeout if timeout is None else timeout)
        if thread.is_alive():
            logger.warning(f"Reaper thread {self._name} did not stop within timeout")

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the thread to finish on its own. Returns True if it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        logger.info(f"Lease reaper started (poll cap: {self._poll_interval * 1000:.0f}ms)")

        while not self._stop_event.is_set():
            self._wake_event.clear()
            try:
                released = self._registry.fire_due_checks()
                if released:
                    logger.debug(f"Reaper pass released {len(released)} lease(s)")
            except Exception as e:
                logger.error(f"Lease reaper error: {e}", exc_info=True)

            if self._registry.reaper_should_exit():
                break

            timeout = self._poll_interval
            next_check = self._registry.next_check_at()
            if next_check is not None:
                timeout = max(0.0, min(timeout, next_check - self._registry.clock()))
            self._wake_event.wait(timeout)

        logger.info("Lease reaper stopped")
