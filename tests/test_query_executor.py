"""Tests for async query execution and driver error mapping."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any

import psycopg2
import pytest
from psycopg2 import extensions as pg_extensions

from apps.backend.query_executor import QueryExecutor
from contracts.errors import DbConnectionError, ErrorKind, QueryError


class _FakeCursor:
    def __init__(self, rows: list[tuple[Any, ...]], columns: Sequence[str], error: BaseException | None) -> None:
        self._rows = rows
        self._error = error
        self.description = [(c, None, None, None, None, None, None) for c in columns]
        self.executed: list[tuple[str, tuple[Any, ...]]] = []

    def __enter__(self) -> _FakeCursor:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:  # type: ignore[no-untyped-def]
        return False

    def execute(self, sql: str, params: Sequence[Any]) -> None:
        self.executed.append((sql, tuple(params)))
        if self._error is not None:
            raise self._error

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self._rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows[0] if self._rows else None


class _FakeConn:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self) -> _FakeCursor:
        return self._cursor


class _FakeProvider:
    def __init__(
        self,
        rows: list[tuple[Any, ...]] | None = None,
        columns: Sequence[str] = ("site_id",),
        *,
        error: BaseException | None = None,
        acquire_error: BaseException | None = None,
        hold_s: float = 0.0,
    ) -> None:
        self.cursor = _FakeCursor(rows or [], columns, error)
        self._acquire_error = acquire_error
        self._hold_s = hold_s
        self.closed = False

    @contextmanager
    def connection(self) -> Iterator[_FakeConn]:
        if self._acquire_error is not None:
            raise self._acquire_error
        if self._hold_s:
            time.sleep(self._hold_s)
        yield _FakeConn(self.cursor)

    def close(self) -> None:
        self.closed = True


def test_fetch_all_returns_dict_rows_with_json_native_values() -> None:
    provider = _FakeProvider(
        rows=[(1, Decimal("55.93"), date(2021, 3, 4)), (2, None, None)],
        columns=("site_id", "latitude_dd", "date_updated"),
    )
    executor = QueryExecutor(provider)  # type: ignore[arg-type]

    rows = asyncio.run(executor.fetch_all("SELECT * FROM tbl_sites WHERE site_id = %s", [1]))

    assert rows == [
        {"site_id": 1, "latitude_dd": "55.93", "date_updated": "2021-03-04"},
        {"site_id": 2, "latitude_dd": None, "date_updated": None},
    ]
    assert provider.cursor.executed == [("SELECT * FROM tbl_sites WHERE site_id = %s", (1,))]


def test_fetch_one_returns_none_for_no_rows() -> None:
    executor = QueryExecutor(_FakeProvider(rows=[]))  # type: ignore[arg-type]
    assert asyncio.run(executor.fetch_one("SELECT * FROM tbl_sites WHERE site_id = %s", (9,))) is None


def test_driver_error_becomes_query_error() -> None:
    provider = _FakeProvider(error=psycopg2.ProgrammingError('relation "tbl_sitez" does not exist'))
    executor = QueryExecutor(provider)  # type: ignore[arg-type]

    with pytest.raises(QueryError) as excinfo:
        asyncio.run(executor.fetch_all("SELECT * FROM tbl_sitez"))

    assert excinfo.value.kind is ErrorKind.QUERY
    assert excinfo.value.timed_out is False
    assert excinfo.value.sql == "SELECT * FROM tbl_sitez"


def test_statement_timeout_becomes_timed_out_query_error() -> None:
    provider = _FakeProvider(error=pg_extensions.QueryCanceledError("canceling statement due to statement timeout"))
    executor = QueryExecutor(provider)  # type: ignore[arg-type]

    with pytest.raises(QueryError) as excinfo:
        asyncio.run(executor.fetch_one("SELECT 1"))

    assert excinfo.value.timed_out is True


def test_client_side_timeout_becomes_timed_out_query_error() -> None:
    executor = QueryExecutor(_FakeProvider(rows=[(1,)], hold_s=0.3), timeout_seconds=0.05)  # type: ignore[arg-type]

    with pytest.raises(QueryError) as excinfo:
        asyncio.run(executor.fetch_all("SELECT site_id FROM tbl_sites"))

    assert excinfo.value.timed_out is True


def test_connection_errors_pass_through_unchanged() -> None:
    provider = _FakeProvider(acquire_error=DbConnectionError("no free connection"))
    executor = QueryExecutor(provider)  # type: ignore[arg-type]

    with pytest.raises(DbConnectionError) as excinfo:
        asyncio.run(executor.fetch_all("SELECT 1"))

    assert excinfo.value.kind is ErrorKind.CONNECTION


def test_close_closes_provider() -> None:
    provider = _FakeProvider()
    QueryExecutor(provider).close()  # type: ignore[arg-type]
    assert provider.closed is True
