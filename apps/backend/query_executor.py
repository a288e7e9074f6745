"""Async query execution on top of the blocking psycopg2 provider.

Each query runs in a worker thread (``asyncio.to_thread``) so the assembler can
fan out many of them from one event loop. psycopg2 failures are translated
into the closed error taxonomy of :mod:`contracts.errors` here, so nothing
above this module ever sees a driver exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

import psycopg2
from psycopg2 import extensions as pg_extensions

from apps.backend.db import fetch_all_dict_conn, fetch_one_dict_conn
from contracts.errors import DataAccessError, QueryError
from contracts.interfaces import ConnectionProviderProtocol

logger = logging.getLogger(__name__)

_RowFetcher = Callable[[Any, str, Sequence[Any] | None], Any]


class QueryExecutor:
    """Execute parameterized queries and return dict rows."""

    def __init__(self, provider: ConnectionProviderProtocol, *, timeout_seconds: float | None = None) -> None:
        self._provider = provider
        self._timeout = timeout_seconds

    @property
    def provider(self) -> ConnectionProviderProtocol:
        return self._provider

    def _run(self, fetcher: _RowFetcher, sql: str, params: Sequence[Any]) -> Any:
        try:
            with self._provider.connection() as conn:
                return fetcher(conn, sql, params)
        except DataAccessError:
            raise
        except pg_extensions.QueryCanceledError as exc:
            raise QueryError(f"query cancelled: {exc}", sql=sql, timed_out=True) from exc
        except psycopg2.Error as exc:
            raise QueryError(f"query failed: {exc}", sql=sql) from exc
        except (RuntimeError, OSError) as exc:
            raise QueryError(f"query failed: {exc}", sql=sql) from exc

    async def _execute(self, fetcher: _RowFetcher, sql: str, params: Sequence[Any]) -> Any:
        call = asyncio.to_thread(self._run, fetcher, sql, tuple(params))
        if self._timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self._timeout)
        except asyncio.TimeoutError as exc:
            # The worker thread finishes on its own and releases its connection.
            logger.warning("query_timeout timeout_s=%s sql=%s", self._timeout, " ".join(sql.split()))
            raise QueryError(f"query exceeded {self._timeout}s", sql=sql, timed_out=True) from exc

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows."""
        return await self._execute(fetch_all_dict_conn, sql, params)

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row (or None)."""
        return await self._execute(fetch_one_dict_conn, sql, params)

    def close(self) -> None:
        self._provider.close()
