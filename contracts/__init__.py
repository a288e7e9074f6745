"""Contracts shared across the aggregation service.

The contracts package defines:
- the error taxonomy raised by the data layer (`errors.py`)
- TypedDict definitions for the Site document (`site_types.py`)
- Protocol definitions for dependency injection (`interfaces.py`)
"""

from contracts.errors import (
    DataAccessError,
    DbConnectionError,
    EnrichmentError,
    ErrorKind,
    NotFoundError,
    QueryError,
)
from contracts.site_types import Row, SiteDocument

__all__ = [
    "DataAccessError",
    "DbConnectionError",
    "EnrichmentError",
    "ErrorKind",
    "NotFoundError",
    "QueryError",
    "Row",
    "SiteDocument",
]
