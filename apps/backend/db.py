"""
db.py

PostgreSQL connection provider (psycopg2) plus dict-row query helpers.

Connection policies
-------------------
The provider is built with an explicit :class:`ConnectionPolicy`:

- ``POOLED``: every query checks out its own connection from a
  ``ThreadedConnectionPool``. A bounded semaphore sized to the pool makes
  callers wait (up to ``connect_timeout`` seconds) for a free connection
  instead of failing with "pool exhausted", so true parallelism is bounded by
  ``pool_maxconn``.
- ``STATIC``: one shared connection is opened lazily and reused by every
  caller. A lock is held from ``acquire()`` to ``release()``, so concurrent
  queries are serialized on the wire and effective parallelism is 1 whatever
  the fan-out width.

In both modes ``release()`` rolls back the implicit read transaction so a
connection never sits "idle in transaction" between queries.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence

from apps.backend.db_metrics import measure_query, query_name
from contracts.errors import DbConnectionError
from contracts.interfaces import PostgresConnectionProtocol, PostgresPoolProtocol
from infra.config import ConnectionPolicy, DatabaseConfig

logger = logging.getLogger(__name__)

PoolFactory = Callable[..., PostgresPoolProtocol]
ConnectFactory = Callable[..., PostgresConnectionProtocol]


def _default_pool_factory(**kwargs: Any) -> PostgresPoolProtocol:
    from psycopg2.pool import ThreadedConnectionPool

    return ThreadedConnectionPool(**kwargs)


def _default_connect(**kwargs: Any) -> PostgresConnectionProtocol:
    import psycopg2

    return psycopg2.connect(**kwargs)


def _connect_kwargs(config: DatabaseConfig, statement_timeout_ms: int | None) -> dict[str, Any]:
    """libpq keyword arguments shared by both policies."""
    kwargs: dict[str, Any] = {
        "dsn": config.dsn(),
        "connect_timeout": config.connect_timeout,
        # Probe idle connections so dead ones surface as connection errors.
        "keepalives": 1,
        "keepalives_idle": config.idle_timeout,
    }
    if statement_timeout_ms:
        kwargs["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"
    return kwargs


class ConnectionProvider:
    """Acquire and release psycopg2 connections according to a policy."""

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        policy: ConnectionPolicy | None = None,
        statement_timeout_ms: int | None = None,
        pool_factory: PoolFactory | None = None,
        connect: ConnectFactory | None = None,
    ) -> None:
        self._config = config
        self.policy = policy or config.policy
        self._statement_timeout_ms = statement_timeout_ms
        self._pool_factory = pool_factory or _default_pool_factory
        self._connect = connect or _default_connect

        self._init_lock = threading.Lock()
        self._pool: PostgresPoolProtocol | None = None
        self._slots = threading.BoundedSemaphore(config.pool_maxconn)

        self._static_conn: PostgresConnectionProtocol | None = None
        self._static_lock = threading.Lock()

        if self.policy is ConnectionPolicy.STATIC:
            logger.info("db_policy policy=static effective_parallelism=1")
        else:
            logger.info("db_policy policy=pooled max_connections=%d", config.pool_maxconn)

    @property
    def max_parallelism(self) -> int:
        """Upper bound on queries that can run at the same time."""
        if self.policy is ConnectionPolicy.STATIC:
            return 1
        return self._config.pool_maxconn

    # ---------------------------
    # Pooled policy
    # ---------------------------

    def _get_pool(self) -> PostgresPoolProtocol:
        with self._init_lock:
            if self._pool is None:
                self._pool = self._pool_factory(
                    minconn=1,
                    maxconn=self._config.pool_maxconn,
                    **_connect_kwargs(self._config, self._statement_timeout_ms),
                )
            return self._pool

    def _acquire_pooled(self) -> PostgresConnectionProtocol:
        if not self._slots.acquire(timeout=self._config.connect_timeout):
            raise DbConnectionError(
                f"no free connection after {self._config.connect_timeout}s "
                f"(pool_maxconn={self._config.pool_maxconn})"
            )
        try:
            return self._get_pool().getconn()
        except Exception as exc:
            self._slots.release()
            raise DbConnectionError(f"could not acquire pooled connection: {exc}") from exc

    def _release_pooled(self, conn: PostgresConnectionProtocol) -> None:
        try:
            conn.rollback()
        except Exception:
            pass
        try:
            self._get_pool().putconn(conn)
        except Exception:
            try:
                conn.close()
            except Exception:
                pass
        finally:
            self._slots.release()

    # ---------------------------
    # Static policy
    # ---------------------------

    def _static_connection(self) -> PostgresConnectionProtocol:
        conn = self._static_conn
        if conn is not None and not getattr(conn, "closed", 0):
            return conn
        logger.info("db_static_connect")
        self._static_conn = self._connect(**_connect_kwargs(self._config, self._statement_timeout_ms))
        return self._static_conn

    def _acquire_static(self) -> PostgresConnectionProtocol:
        # Callers queue on the shared connection; connect_timeout only bounds
        # opening it and QUERY_TIMEOUT_SECONDS bounds each query.
        self._static_lock.acquire()
        try:
            return self._static_connection()
        except Exception as exc:
            self._static_lock.release()
            raise DbConnectionError(f"could not open static connection: {exc}") from exc

    def _release_static(self, conn: PostgresConnectionProtocol) -> None:
        # Never closed here; the shared connection lives until close().
        try:
            conn.rollback()
        except Exception:
            pass
        finally:
            self._static_lock.release()

    # ---------------------------
    # Public API
    # ---------------------------

    def acquire(self) -> PostgresConnectionProtocol:
        """Return a connection; callers must hand it back via release()."""
        if self.policy is ConnectionPolicy.STATIC:
            return self._acquire_static()
        return self._acquire_pooled()

    def release(self, conn: PostgresConnectionProtocol) -> None:
        """Give a connection back (pool return or static lock release)."""
        if self.policy is ConnectionPolicy.STATIC:
            self._release_static(conn)
        else:
            self._release_pooled(conn)

    @contextmanager
    def connection(self) -> Iterator[PostgresConnectionProtocol]:
        """Yield a connection for the duration of the block."""
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def close(self) -> None:
        """Close the pool and the shared connection (best-effort)."""
        with self._init_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            try:
                pool.closeall()
            except Exception:
                logger.warning("db_pool_close_failed", exc_info=True)
        conn, self._static_conn = self._static_conn, None
        if conn is not None:
            try:
                conn.close()
            except Exception:
                logger.warning("db_static_close_failed", exc_info=True)


# ---------------------------
# Dict row helpers
# ---------------------------

def _cols_from_description(desc: Any) -> list[str]:
    """Extract column names from cursor.description safely."""
    if not desc:
        return []
    cols: list[str] = []
    for i, d in enumerate(desc):
        name = None
        try:
            name = d[0]
        except (IndexError, KeyError, TypeError):
            name = None
        cols.append(str(name) if name else f"col_{i}")
    return cols


def _rows_to_dicts(cursor: Any, rows: list[tuple[Any, ...]]) -> list[dict[str, Any]]:
    """Convert cursor rows into list of dicts using cursor.description."""
    cols = _cols_from_description(getattr(cursor, "description", None))
    if not cols:
        return []
    return [jsonable_row(dict(zip(cols, r, strict=False))) for r in rows]


def fetch_all_dict_conn(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
    """Execute a query and return all rows as dicts."""
    with conn.cursor() as cur:
        with measure_query(query_name(sql, operation="fetch_all")):
            cur.execute(sql, tuple(params or ()))
        rows = cur.fetchall()
        return _rows_to_dicts(cur, rows)


def fetch_one_dict_conn(conn: Any, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[dict[str, Any]]:
    """Execute a query and return one row as a dict (or None)."""
    with conn.cursor() as cur:
        with measure_query(query_name(sql, operation="fetch_one")):
            cur.execute(sql, tuple(params or ()))
        row = cur.fetchone()
        if row is None:
            return None
        cols = _cols_from_description(getattr(cur, "description", None))
        if not cols:
            return None
        return jsonable_row(dict(zip(cols, row, strict=False)))


def build_provider(config: DatabaseConfig, *, statement_timeout_ms: int | None = None) -> ConnectionProvider:
    """Build a provider from settings (policy injected from config, not globals)."""
    return ConnectionProvider(config, statement_timeout_ms=statement_timeout_ms)


# ---------------------------
# JSON helpers
# ---------------------------

def json_default(obj: Any) -> Any:
    """``json.dumps`` fallback for driver types (dates, Decimal, memoryview)."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, (bytes, memoryview)):
        return bytes(obj).hex()
    return str(obj)


def jsonable_row(row: dict[str, Any]) -> dict[str, Any]:
    """Convert a driver row to JSON-native values.

    Numeric columns become strings and temporal columns ISO 8601 text, which
    is what the SEAD browser has always received. Doing it once per row keeps
    freshly assembled and cached site documents identical.
    """
    out: dict[str, Any] = {}
    for key, value in row.items():
        if value is None or isinstance(value, (str, int, float, bool, list, dict)):
            out[key] = value
        else:
            out[key] = json_default(value)
    return out
