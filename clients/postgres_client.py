"""
PostgreSQL client with connection pooling and RLS tenant isolation.

Uses psycopg2 with ThreadedConnectionPool. Tenant isolation enforced via
PostgreSQL Row Level Security - automatically reads tenant ID from contextvar
and sets app.current_tenant_id on each connection.

Security: No tenant context = see nothing (RLS blocks all rows). Queries in
the ledger store also filter on tenant_id explicitly.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.tenant_context import _current_tenant_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False


class PostgresClient:
    """
    PostgreSQL client with automatic RLS context from contextvar.

    Tenant context is read from utils.tenant_context contextvar on each query.
    - Tenant context set → sees only that tenant's rows (RLS filtered)
    - No tenant context → sees nothing (RLS blocks all rows)

    Usage:
        db = PostgresClient(database_url)

        with tenant_context(tenant_id):
            invoices = db.execute("SELECT * FROM invoices")

        # Several statements that must commit together
        with tenant_context(tenant_id):
            with db.transaction() as cur:
                cur.execute("SELECT ... FOR UPDATE", (...))
                cur.execute("UPDATE ...", (...))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info(
                    "Connection pool created (%d-%d connections)",
                    self._min_connections, self._max_connections,
                )

    @contextmanager
    def get_connection(self):
        """Get connection with RLS context from contextvar."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            tenant_id = _current_tenant_id.get()

            with conn.cursor() as cur:
                if tenant_id is not None:
                    cur.execute("SET app.current_tenant_id = %s", (str(tenant_id),))
                else:
                    # Empty string fails the ::uuid cast in RLS policies = no rows
                    cur.execute("SET app.current_tenant_id = ''")

            yield conn

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator["TransactionCursor"]:
        """
        Run several statements on one connection as a single transaction.

        Commits when the block exits normally, rolls back if it raises.
        Row locks taken with SELECT ... FOR UPDATE are held until then.
        """
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    yield TransactionCursor(cur, self._convert_params)
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute one statement in its own transaction, return row dicts (empty if none)."""
        with self.transaction() as cur:
            return cur.execute(query, params)

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        with self.transaction() as cur:
            return cur.execute_single(query, params)

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]


class TransactionCursor:
    """Thin wrapper over a RealDictCursor that applies parameter conversion."""

    def __init__(self, cursor, convert):
        self._cursor = cursor
        self._convert = convert

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute within the open transaction, return row dicts (empty if none)."""
        self._cursor.execute(query, self._convert(params))
        if self._cursor.description:
            return [dict(row) for row in self._cursor.fetchall()]
        return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

