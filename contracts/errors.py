"""Error taxonomy for site assembly and data access.

Every failure raised by the data layer is one of a closed set of kinds so that
callers can tell "the database is unreachable" apart from "the query failed"
and "the row does not exist". The HTTP boundary collapses all of them into a
generic message; everything below it keeps the distinction.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from services.enrichment.base import ModuleOutcome


class ErrorKind(str, Enum):
    """Closed set of data access failure kinds."""

    CONNECTION = "connection"
    QUERY = "query"
    NOT_FOUND = "not_found"


class DataAccessError(Exception):
    """Base class for every data access failure."""

    kind: ErrorKind = ErrorKind.QUERY

    def __init__(self, message: str = "", *, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def code(self) -> str:
        """Stable machine-readable code."""
        return self.kind.value


class DbConnectionError(DataAccessError):
    """A database connection could not be acquired."""

    kind = ErrorKind.CONNECTION


class QueryError(DataAccessError):
    """A query was issued but failed or did not finish in time."""

    kind = ErrorKind.QUERY

    def __init__(self, message: str = "", *, sql: str = "", timed_out: bool = False) -> None:
        super().__init__(message)
        self.sql = sql
        self.timed_out = timed_out


class NotFoundError(DataAccessError):
    """The requested base record does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, key: Any) -> None:
        super().__init__(f"{entity} {key!r} not found")
        self.entity = entity
        self.key = key


class EnrichmentError(DataAccessError):
    """One or more enrichment modules failed.

    ``site`` holds the partially enriched document (mutations of the modules
    that succeeded are kept) so callers can inspect it, but it must not be
    served as a complete site.
    """

    def __init__(self, failures: list[ModuleOutcome], *, site: dict[str, Any] | None = None) -> None:
        names = ", ".join(outcome.name for outcome in failures)
        first = failures[0].error if failures else None
        kind = first.kind if isinstance(first, DataAccessError) else ErrorKind.QUERY
        super().__init__(f"enrichment failed for module(s): {names}", kind=kind)
        self.failures = list(failures)
        self.site = site


__all__ = [
    "ErrorKind",
    "DataAccessError",
    "DbConnectionError",
    "QueryError",
    "NotFoundError",
    "EnrichmentError",
]
