"""Storage with automatic durable-to-memory fallback.

Production instances come from vortex.store.factory.build_store().
"""

from vortex.store.base import Storage
from vortex.store.health import HealthState, HealthStatus, StoreHealth
from vortex.store.memory import MemoryStorage
from vortex.store.resilient import ResilientStore

__all__ = [
    "Storage",
    "HealthState",
    "HealthStatus",
    "StoreHealth",
    "MemoryStorage",
    "ResilientStore",
]
