"""PostgreSQL access layer for the durable store.

Uses raw SQL via psycopg2 for simplicity. No ORM.

Thread-safety: a ThreadedConnectionPool is created lazily on first use and
shared by all threads. Connectivity failures (cannot connect, dropped link,
exhausted pool) surface as StoreConnectionError; duplicate keys surface as
ConflictError. Every other database error propagates unchanged.
"""

import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

from vortex.errors import ConflictError, StoreConnectionError

logger = logging.getLogger(__name__)

# Errors meaning "the database is not reachable", as opposed to a bad query
CONNECTIVITY_ERRORS = (
    psycopg2.OperationalError,
    psycopg2.InterfaceError,
    psycopg2.pool.PoolError,
)


def json_param(data: Any) -> psycopg2.extras.Json:
    """Wrap a Python value for a JSONB column."""
    return psycopg2.extras.Json(data, dumps=_json_dumps)


def _json_dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, default=str)


SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(64) PRIMARY KEY,
    username VARCHAR(200) NOT NULL UNIQUE,
    email VARCHAR(320),
    role VARCHAR(50) NOT NULL DEFAULT 'user',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS projects (
    seq BIGSERIAL,
    id VARCHAR(64) PRIMARY KEY,
    owner_id VARCHAR(64),
    name VARCHAR(500) NOT NULL,
    description TEXT,
    public BOOLEAN NOT NULL DEFAULT TRUE,
    repo_url TEXT,
    metadata JSONB DEFAULT '{}',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_id);

CREATE TABLE IF NOT EXISTS project_files (
    id VARCHAR(64) PRIMARY KEY,
    project_id VARCHAR(64) NOT NULL,
    path TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    metadata JSONB DEFAULT '{}',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(project_id, path)
);

CREATE TABLE IF NOT EXISTS notifications (
    seq BIGSERIAL,
    id VARCHAR(64) PRIMARY KEY,
    user_id VARCHAR(64),
    type VARCHAR(100) NOT NULL,
    payload JSONB,
    read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id);

CREATE TABLE IF NOT EXISTS workflow_runs (
    seq BIGSERIAL PRIMARY KEY,
    repo_owner VARCHAR(200) NOT NULL,
    repo_name VARCHAR(200) NOT NULL,
    run_key VARCHAR(200),
    workflow_id VARCHAR(200),
    status VARCHAR(50),
    conclusion VARCHAR(50),
    html_url TEXT,
    run_payload JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(repo_owner, repo_name, run_key)
);
"""


class PostgresDatabase:
    """Lazily pooled psycopg2 connections plus a small execute() helper."""

    def __init__(self, dsn: str, *, max_connections: int = 5, connect_timeout_s: int = 5):
        self.dsn = dsn
        self.max_connections = max_connections
        self.connect_timeout_s = connect_timeout_s
        self._pool: Optional[psycopg2.pool.ThreadedConnectionPool] = None
        self._pool_lock = threading.Lock()
        self._schema_ready = False

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        """Get or create the connection pool."""
        if self._pool is None:
            with self._pool_lock:
                if self._pool is None:
                    self._pool = psycopg2.pool.ThreadedConnectionPool(
                        minconn=1,
                        maxconn=self.max_connections,
                        dsn=self.dsn,
                        connect_timeout=self.connect_timeout_s,
                    )
                    logger.info(
                        f"PostgreSQL connection pool initialized (1-{self.max_connections} connections)"
                    )
        return self._pool

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Borrow a pooled connection.

        On success the transaction is committed; on any error it is rolled
        back, and connections broken by connectivity errors are discarded.
        """
        try:
            pool = self._get_pool()
            conn = pool.getconn()
        except CONNECTIVITY_ERRORS as e:
            raise StoreConnectionError(f"PostgreSQL unreachable: {e}") from e

        broken = False
        try:
            yield conn
            conn.commit()
        except CONNECTIVITY_ERRORS as e:
            broken = True
            raise StoreConnectionError(f"PostgreSQL connection lost: {e}") from e
        except psycopg2.errors.UniqueViolation as e:
            conn.rollback()
            raise ConflictError(str(e).strip()) from e
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            pool.putconn(conn, close=broken or bool(conn.closed))

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Cursor inside a single transaction (commit on exit)."""
        with self.get_connection() as conn:
            with conn.cursor() as cursor:
                yield cursor

    def execute(self, sql: str, params: tuple = (), fetch: str = "none") -> Any:
        """Execute a SQL statement.

        Args:
            sql: SQL statement with %s placeholders
            params: Parameters tuple
            fetch: "none", "one", "all"

        Returns:
            None for "none", dict (or None) for "one", list[dict] for "all"
        """
        with self.transaction() as cursor:
            cursor.execute(sql, params)
            if fetch == "one":
                row = cursor.fetchone()
                if row is None:
                    return None
                columns = [desc[0] for desc in cursor.description]
                return dict(zip(columns, row))
            if fetch == "all":
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            return None

    def init_schema(self) -> None:
        """Create tables if they don't exist (once per instance)."""
        if self._schema_ready:
            return
        with self.transaction() as cursor:
            cursor.execute(SCHEMA_DDL)
        self._schema_ready = True
        logger.info("Durable store schema initialized (PostgreSQL)")

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
