"""Durable-store health cache with a single-flight probe.

One HealthState belongs to one ResilientStore. It starts UNKNOWN, the first
caller that needs the durable store runs the probe, and every concurrent
caller waits for that same probe instead of issuing its own. After that the
status is read without locking until someone calls reset() or mark_*().
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class StoreHealth:
    """Immutable snapshot of the durable store's health."""
    status: HealthStatus = HealthStatus.UNKNOWN
    last_checked_at: Optional[datetime] = None
    reason: str = ""


class HealthState:
    """Process-wide (per store instance) health cache."""

    def __init__(self) -> None:
        self._snapshot = StoreHealth()
        self._lock = threading.Lock()
        self._inflight: Optional[threading.Event] = None
        self.probe_count = 0

    @property
    def snapshot(self) -> StoreHealth:
        return self._snapshot

    @property
    def status(self) -> HealthStatus:
        return self._snapshot.status

    def ensure_probed(self, probe: Callable[[], None]) -> StoreHealth:
        """Return the cached health, running `probe` once if still UNKNOWN.

        `probe` signals failure by raising. Concurrent callers share one
        in-flight probe.
        """
        snapshot = self._snapshot
        if snapshot.status != HealthStatus.UNKNOWN:
            return snapshot

        with self._lock:
            if self._snapshot.status != HealthStatus.UNKNOWN:
                return self._snapshot
            event = self._inflight
            is_leader = event is None
            if is_leader:
                event = threading.Event()
                self._inflight = event
                self.probe_count += 1

        if not is_leader:
            event.wait()
            return self._snapshot

        result = StoreHealth(HealthStatus.UNREACHABLE, _now(), "probe did not complete")
        try:
            probe()
            result = StoreHealth(HealthStatus.HEALTHY, _now())
        except Exception as e:
            result = StoreHealth(HealthStatus.UNREACHABLE, _now(), str(e) or type(e).__name__)
        finally:
            with self._lock:
                self._snapshot = result
                self._inflight = None
            event.set()

        if result.status == HealthStatus.HEALTHY:
            logger.info("[store] Durable store healthy")
        else:
            logger.warning(
                f"[store] Durable store unreachable, using in-memory fallback: {result.reason}"
            )
        return result

    def mark_unreachable(self, reason: str) -> None:
        with self._lock:
            self._snapshot = StoreHealth(HealthStatus.UNREACHABLE, _now(), reason)
        logger.warning(f"[store] Durable store marked unreachable: {reason}")

    def reset(self) -> None:
        """Forget the cached result; the next durable call re-probes."""
        with self._lock:
            if self._inflight is None:
                self._snapshot = StoreHealth()


def _now() -> datetime:
    return datetime.now(timezone.utc)
