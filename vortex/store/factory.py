"""Store factory: wires the durable backend (if configured) behind a ResilientStore."""

import logging
from typing import Optional

from vortex.config import Settings
from vortex.store.db import PostgresDatabase
from vortex.store.postgres import PostgresStorage
from vortex.store.resilient import ResilientStore

logger = logging.getLogger(__name__)


def build_store(
    settings: Optional[Settings] = None, downgrade_on_error: bool = False
) -> ResilientStore:
    """Build the production store.

    Without DATABASE_URL the store is memory-only and never probes.
    Connecting is deferred to the first call that needs the durable store.
    """
    settings = settings or Settings.from_env()
    if not settings.has_database:
        logger.warning("DATABASE_URL not set, using in-memory storage only")
        return ResilientStore(durable=None, downgrade_on_error=downgrade_on_error)

    db = PostgresDatabase(
        settings.database_url,
        max_connections=settings.db_pool_max,
        connect_timeout_s=settings.db_connect_timeout_s,
    )
    return ResilientStore(durable=PostgresStorage(db), downgrade_on_error=downgrade_on_error)
