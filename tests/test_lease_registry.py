"""
Lease registry tests: admission, liveness, expiry policies and shutdown.
"""

import time

import pytest

from leastload.config import Settings
from leastload.errors import DuplicateAdmission, InvalidLeaseDuration, LeaseRegistryClosed
from leastload.leases import LeaseRegistry
from leastload.models import ExpiryPolicy


def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def test_admit_and_is_live(registry):
    lease = registry.admit("a", 5_000)
    assert lease.worker_id == "a"
    assert lease.duration_ms == 5_000
    assert registry.is_live("a")
    assert "a" in registry
    assert not registry.is_live("b")
    assert len(registry) == 1
    assert lease.admitted_at.tzinfo is not None


def test_new_registry_is_empty(registry):
    assert registry.is_empty()
    assert len(registry) == 0
    assert registry.next_check_at() is None


def test_duplicate_admission_rejected(registry):
    registry.admit("a", 5_000)
    with pytest.raises(DuplicateAdmission) as exc_info:
        registry.admit("a", 1_000)

    assert exc_info.value.code == "DUPLICATE_ADMISSION"
    assert exc_info.value.worker_id == "a"
    # The rejected admission must not schedule a second check
    assert registry.pending_checks == 1
    assert registry.get("a").duration_ms == 5_000


@pytest.mark.parametrize("duration", [0, -5, 1.5, True, "1000", None])
def test_invalid_duration_rejected(registry, duration):
    with pytest.raises(InvalidLeaseDuration) as exc_info:
        registry.admit("a", duration)
    assert exc_info.value.code == "INVALID_LEASE_DURATION"
    assert registry.is_empty()


def test_one_check_scheduled_per_admission(registry, clock):
    registry.admit("a", 5_000)
    registry.admit("b", 3_000)
    assert registry.pending_checks == 2
    assert registry.next_check_at() == pytest.approx(clock.now + 3.0)


def test_lease_not_released_before_due(registry, clock):
    registry.admit("a", 1_000)
    clock.advance(999)
    assert registry.fire_due_checks() == []
    assert registry.is_live("a")


def test_lease_released_when_due(registry, clock):
    registry.admit("a", 1_000)
    clock.advance(1_000)
    assert registry.fire_due_checks() == ["a"]
    assert not registry.is_live("a")
    assert registry.is_empty()


def test_elapsed_lease_reads_live_until_reaped(registry, clock):
    """Expiry is only applied by a fired check, never by a lookup."""
    lease = registry.admit("a", 1_000)
    clock.advance(2_000)
    assert lease.is_expired(clock())
    assert registry.is_live("a")

    registry.fire_due_checks()
    assert not registry.is_live("a")


def test_only_expired_leases_are_released(registry, clock):
    registry.admit("a", 5_000)
    registry.admit("b", 3_000)
    clock.advance(2_000)
    registry.fire_due_checks()
    assert registry.is_live("b")

    clock.advance(2_000)
    assert registry.fire_due_checks() == ["b"]
    assert len(registry) == 1
    assert registry.is_live("a")


def test_snapshot_reports_remaining_ms(registry, clock):
    registry.admit("a", 5_000)
    registry.admit("b", 3_000)
    clock.advance(1_000)
    assert registry.snapshot() == {"a": 4_000, "b": 2_000}
    assert "server=a, milliseconds remaining=4000" in repr(registry)


def test_any_expired_policy_releases_in_admission_order(clock):
    """
    Under ANY_EXPIRED a fired check removes the first expired lease it
    finds, not necessarily its own: b's lease is longer but b was admitted
    first, so a's check releases b.
    """
    registry = LeaseRegistry(clock=clock, policy=ExpiryPolicy.ANY_EXPIRED, start_reaper=False)
    registry.admit("b", 2_000)
    registry.admit("a", 1_000)
    clock.advance(2_500)

    assert registry.fire_due_checks() == ["b", "a"]
    registry.close()


def test_own_lease_policy_releases_in_due_order(clock):
    """Same admissions as above, but each check only removes its own lease."""
    registry = LeaseRegistry(clock=clock, policy=ExpiryPolicy.OWN_LEASE, start_reaper=False)
    registry.admit("b", 2_000)
    registry.admit("a", 1_000)
    clock.advance(2_500)

    assert registry.fire_due_checks() == ["a", "b"]
    registry.close()


@pytest.mark.parametrize("policy", list(ExpiryPolicy))
def test_policies_agree_on_who_is_left(clock, policy):
    registry = LeaseRegistry(clock=clock, policy=policy, start_reaper=False)
    registry.admit("a", 3_000)
    registry.admit("b", 1_000)
    registry.admit("c", 2_000)
    clock.advance(2_000)

    assert sorted(registry.fire_due_checks()) == ["b", "c"]
    assert registry.snapshot() == {"a": 1_000}
    registry.close()


def test_registry_shuts_down_when_last_lease_expires(registry, clock):
    registry.admit("a", 1_000)
    clock.advance(1_000)
    registry.fire_due_checks()

    assert registry.is_shut_down
    with pytest.raises(LeaseRegistryClosed):
        registry.admit("b", 1_000)


def test_registry_can_stay_open_when_empty(clock):
    registry = LeaseRegistry(
        Settings(shutdown_when_empty=False), clock=clock, start_reaper=False
    )
    registry.admit("a", 1_000)
    clock.advance(1_000)
    registry.fire_due_checks()

    assert not registry.is_shut_down
    registry.admit("a", 1_000)
    assert registry.is_live("a")
    registry.close()


def test_scheduled_checks_still_fire_after_shutdown(registry, clock):
    registry.admit("a", 1_000)
    registry.shutdown()

    with pytest.raises(LeaseRegistryClosed) as exc_info:
        registry.admit("b", 1_000)
    assert exc_info.value.code == "LEASE_REGISTRY_CLOSED"
    assert not registry.reaper_should_exit()

    clock.advance(1_000)
    assert registry.fire_due_checks() == ["a"]
    assert registry.reaper_should_exit()


def test_close_discards_pending_checks(registry):
    registry.admit("a", 1_000)
    registry.close()
    assert registry.pending_checks == 0
    assert registry.is_shut_down
    # The lease itself is never cancelled
    assert registry.is_live("a")


def test_lease_metrics(registry, clock):
    registry.admit("a", 1_000)
    registry.admit("b", 2_000)
    clock.advance(1_000)
    registry.fire_due_checks()

    snapshot = registry.metrics.snapshot()
    assert snapshot["counters"]["leases.admitted"] == 2
    assert snapshot["counters"]["leases.expired"] == 1
    assert snapshot["gauges"]["leases.live"] == 1


def test_reaper_thread_expires_leases_in_real_time():
    registry = LeaseRegistry(Settings(reaper_poll_interval_ms=20))
    try:
        registry.admit("short", 50)
        registry.admit("long", 60_000)
        assert registry.is_live("short")

        assert _wait_until(lambda: not registry.is_live("short")), "short lease never reaped"
        assert registry.is_live("long")
    finally:
        registry.close()


def test_reaper_exits_after_last_lease():
    registry = LeaseRegistry(Settings(reaper_poll_interval_ms=20))
    registry.admit("a", 30)

    assert registry.wait_for_reaper(timeout=3.0), "reaper thread should exit once drained"
    assert registry.is_empty()
    assert registry.is_shut_down


def test_reaper_wakes_for_earlier_admission():
    """A short lease admitted after a long one is not stuck behind it."""
    registry = LeaseRegistry(Settings(reaper_poll_interval_ms=5_000))
    try:
        registry.admit("long", 60_000)
        time.sleep(0.05)
        registry.admit("short", 40)

        assert _wait_until(lambda: not registry.is_live("short"), timeout=2.0)
    finally:
        registry.close()


def test_context_manager_closes_registry(clock):
    with LeaseRegistry(clock=clock, start_reaper=False) as registry:
        registry.admit("a", 1_000)
    assert registry.is_shut_down
    assert registry.pending_checks == 0


def test_reaper_waits_for_start_when_autostart_disabled():
    registry = LeaseRegistry(Settings(reaper_poll_interval_ms=5), autostart=False)
    try:
        registry.admit("a", 1)
        registry.admit("b", 1)
        time.sleep(0.05)
        assert registry.is_live("a")
        assert registry.is_live("b")
        assert not registry.is_shut_down

        registry.start()
        assert registry.wait_for_reaper(timeout=3.0)
        assert registry.is_empty()
        assert registry.is_shut_down
    finally:
        registry.close()
