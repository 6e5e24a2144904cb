import threading
import time

from vortex.store.health import HealthState, HealthStatus


def test_starts_unknown() -> None:
    state = HealthState()

    assert state.status == HealthStatus.UNKNOWN
    assert state.snapshot.last_checked_at is None


def test_successful_probe_is_cached() -> None:
    state = HealthState()
    calls = []

    for _ in range(5):
        health = state.ensure_probed(lambda: calls.append(1))

    assert health.status == HealthStatus.HEALTHY
    assert health.last_checked_at is not None
    assert len(calls) == 1
    assert state.probe_count == 1


def test_failed_probe_is_unreachable_with_reason() -> None:
    state = HealthState()

    def probe():
        raise ConnectionRefusedError("connection refused")

    health = state.ensure_probed(probe)

    assert health.status == HealthStatus.UNREACHABLE
    assert "connection refused" in health.reason
    assert state.ensure_probed(probe).status == HealthStatus.UNREACHABLE
    assert state.probe_count == 1


def test_concurrent_callers_share_one_probe() -> None:
    state = HealthState()
    probe_calls = []
    start = threading.Barrier(20)
    results = []

    def probe():
        probe_calls.append(1)
        time.sleep(0.05)

    def caller():
        start.wait()
        results.append(state.ensure_probed(probe).status)

    threads = [threading.Thread(target=caller) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(probe_calls) == 1
    assert results == [HealthStatus.HEALTHY] * 20


def test_reset_allows_reprobe() -> None:
    state = HealthState()
    state.ensure_probed(lambda: None)

    state.reset()

    assert state.status == HealthStatus.UNKNOWN
    state.ensure_probed(lambda: None)
    assert state.probe_count == 2


def test_mark_unreachable() -> None:
    state = HealthState()
    state.ensure_probed(lambda: None)

    state.mark_unreachable("dropped")

    assert state.status == HealthStatus.UNREACHABLE
    assert state.snapshot.reason == "dropped"
