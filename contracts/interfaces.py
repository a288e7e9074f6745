"""
Protocol definitions for dependency injection.

The assembler, enrichment modules and preload scheduler only depend on these
interfaces, which keeps them testable with in-memory fakes:

    from contracts.interfaces import QueryExecutorProtocol, SiteCacheProtocol
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import AbstractContextManager
from typing import Any, Protocol, runtime_checkable

# -----------------------------------------------------------------------------
# Database Protocols
# -----------------------------------------------------------------------------

@runtime_checkable
class PostgresConnectionProtocol(Protocol):
    """Protocol for PostgreSQL connections."""

    def cursor(self) -> Any:
        """Get a cursor."""
        ...

    def rollback(self) -> None:
        """Rollback the transaction."""
        ...

    def close(self) -> None:
        """Close the connection."""
        ...


@runtime_checkable
class PostgresPoolProtocol(Protocol):
    """Protocol for PostgreSQL connection pools."""

    def getconn(self) -> PostgresConnectionProtocol:
        """Get a connection from the pool."""
        ...

    def putconn(self, conn: PostgresConnectionProtocol) -> None:
        """Return a connection to the pool."""
        ...

    def closeall(self) -> None:
        """Close all connections."""
        ...


class ConnectionProviderProtocol(Protocol):
    """Acquire/release contract shared by pooled and static providers."""

    def acquire(self) -> PostgresConnectionProtocol:
        ...

    def release(self, conn: PostgresConnectionProtocol) -> None:
        ...

    def connection(self) -> AbstractContextManager[PostgresConnectionProtocol]:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class QueryExecutorProtocol(Protocol):
    """Async, parameterized query execution returning dict rows."""

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Execute a query and return all rows."""
        ...

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row (or None)."""
        ...


# -----------------------------------------------------------------------------
# Cache Protocols
# -----------------------------------------------------------------------------

@runtime_checkable
class SiteCacheProtocol(Protocol):
    """Keyed persistence of assembled site documents."""

    def cache_name(self) -> str:
        """Return deterministic cache name for diagnostics."""
        ...

    def get(self, site_id: Any) -> dict[str, Any] | None:
        """Return the cached document or None on a miss."""
        ...

    def put(self, site: dict[str, Any]) -> None:
        """Store a document under its ``site_id``."""
        ...

    def evict(self, site_id: Any) -> bool:
        """Remove one entry, returning whether it existed."""
        ...

    def clear(self) -> int:
        """Remove every entry, returning how many were removed."""
        ...

    def site_ids(self) -> Iterator[str]:
        """Yield cached site identifiers."""
        ...

