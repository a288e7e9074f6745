"""Tests for the connection provider lifecycle under both policies."""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from apps.backend.db import ConnectionProvider
from contracts.errors import DbConnectionError
from infra.config import ConnectionPolicy, DatabaseConfig


class _FakeConn:
    """Minimal fake psycopg2 connection."""

    def __init__(self, *, rollback_raises: bool = False) -> None:
        self.rollback_calls = 0
        self.close_calls = 0
        self.closed = 0
        self._rollback_raises = rollback_raises

    def rollback(self) -> None:
        """Record rollback and optionally raise."""
        self.rollback_calls += 1
        if self._rollback_raises:
            raise RuntimeError("rollback failed")

    def close(self) -> None:
        """Record close call."""
        self.close_calls += 1
        self.closed = 1


class _FakePool:
    """Minimal fake pool exposing getconn/putconn."""

    def __init__(self, conn: _FakeConn, *, put_raises: bool = False) -> None:
        self._conn = conn
        self.put_calls = 0
        self.closeall_calls = 0
        self.kwargs: dict[str, Any] = {}
        self._put_raises = put_raises

    def getconn(self) -> _FakeConn:
        """Return the managed fake connection."""
        return self._conn

    def putconn(self, conn: _FakeConn) -> None:
        """Record putconn call and optionally raise."""
        assert conn is self._conn
        self.put_calls += 1
        if self._put_raises:
            raise RuntimeError("putconn failed")

    def closeall(self) -> None:
        self.closeall_calls += 1


def _config(**overrides: Any) -> DatabaseConfig:
    return DatabaseConfig(url="postgresql://reader@localhost/sead", **overrides)


def _pooled(pool: _FakePool, **overrides: Any) -> ConnectionProvider:
    def _factory(**kwargs: Any) -> _FakePool:
        pool.kwargs = kwargs
        return pool

    return ConnectionProvider(_config(**overrides), policy=ConnectionPolicy.POOLED, pool_factory=_factory)


def test_pooled_connection_rolls_back_before_return() -> None:
    """Connections should be rolled back before going back to the pool."""
    conn = _FakeConn()
    pool = _FakePool(conn)
    provider = _pooled(pool)

    with provider.connection() as acquired:
        assert acquired is conn

    assert conn.rollback_calls == 1
    assert pool.put_calls == 1
    assert conn.close_calls == 0


def test_pooled_connection_still_returned_when_rollback_fails() -> None:
    """Rollback failures should not prevent returning the connection to pool."""
    conn = _FakeConn(rollback_raises=True)
    pool = _FakePool(conn)

    with _pooled(pool).connection():
        pass

    assert conn.rollback_calls == 1
    assert pool.put_calls == 1
    assert conn.close_calls == 0


def test_pooled_connection_closed_when_putconn_fails() -> None:
    """If putconn fails, the connection should be closed instead."""
    conn = _FakeConn()
    pool = _FakePool(conn, put_raises=True)

    with _pooled(pool).connection():
        pass

    assert conn.rollback_calls == 1
    assert pool.put_calls == 1
    assert conn.close_calls == 1


def test_pool_is_built_with_configured_limits_and_timeouts() -> None:
    pool = _FakePool(_FakeConn())
    provider = ConnectionProvider(
        _config(pool_maxconn=7, idle_timeout=45, connect_timeout=5),
        pool_factory=lambda **kw: pool.kwargs.update(kw) or pool,
        statement_timeout_ms=2500,
    )

    with provider.connection():
        pass

    assert pool.kwargs["maxconn"] == 7
    assert pool.kwargs["connect_timeout"] == 5
    assert pool.kwargs["keepalives_idle"] == 45
    assert pool.kwargs["options"] == "-c statement_timeout=2500"
    assert provider.max_parallelism == 7


def test_pooled_acquire_times_out_when_all_connections_are_busy() -> None:
    pool = _FakePool(_FakeConn())
    provider = _pooled(pool, pool_maxconn=1, connect_timeout=1)

    held = provider.acquire()
    try:
        with pytest.raises(DbConnectionError):
            provider.acquire()
    finally:
        provider.release(held)

    # The slot is free again.
    provider.release(provider.acquire())


def test_pool_creation_failure_is_a_connection_error() -> None:
    def _broken(**kwargs: Any) -> _FakePool:
        raise OSError("could not connect to server")

    provider = ConnectionProvider(_config(), policy=ConnectionPolicy.POOLED, pool_factory=_broken)
    with pytest.raises(DbConnectionError):
        provider.acquire()


def test_static_policy_shares_one_connection() -> None:
    opened: list[_FakeConn] = []

    def _connect(**kwargs: Any) -> _FakeConn:
        conn = _FakeConn()
        opened.append(conn)
        return conn

    provider = ConnectionProvider(_config(), policy=ConnectionPolicy.STATIC, connect=_connect)

    with provider.connection() as first:
        pass
    with provider.connection() as second:
        pass

    assert first is second
    assert len(opened) == 1
    assert first.rollback_calls == 2
    assert first.close_calls == 0
    assert provider.max_parallelism == 1


def test_static_policy_queues_callers_past_connect_timeout() -> None:
    provider = ConnectionProvider(
        _config(connect_timeout=1), policy=ConnectionPolicy.STATIC, connect=lambda **kw: _FakeConn()
    )
    held = provider.acquire()
    acquired = threading.Event()
    got: list[Any] = []

    def _contender() -> None:
        conn = provider.acquire()
        got.append(conn)
        acquired.set()
        provider.release(conn)

    worker = threading.Thread(target=_contender)
    worker.start()
    # Still waiting after connect_timeout has passed.
    assert acquired.wait(timeout=1.5) is False

    provider.release(held)
    worker.join(timeout=5)

    assert acquired.is_set()
    assert got == [held]


def test_static_policy_serializes_concurrent_queries() -> None:
    provider = ConnectionProvider(
        _config(connect_timeout=1), policy=ConnectionPolicy.STATIC, connect=lambda **kw: _FakeConn()
    )
    active = 0
    peak = 0
    guard = threading.Lock()

    def _query() -> None:
        nonlocal active, peak
        with provider.connection():
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.4)
            with guard:
                active -= 1

    workers = [threading.Thread(target=_query) for _ in range(4)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=10)

    assert peak == 1
    assert all(not worker.is_alive() for worker in workers)


def test_static_connection_reopened_after_close() -> None:
    opened: list[_FakeConn] = []

    def _connect(**kwargs: Any) -> _FakeConn:
        opened.append(_FakeConn())
        return opened[-1]

    provider = ConnectionProvider(_config(), policy=ConnectionPolicy.STATIC, connect=_connect)
    with provider.connection():
        pass
    provider.close()
    with provider.connection():
        pass

    assert len(opened) == 2
    assert opened[0].close_calls == 1


def test_close_shuts_pool_down() -> None:
    pool = _FakePool(_FakeConn())
    provider = _pooled(pool)
    with provider.connection():
        pass

    provider.close()

    assert pool.closeall_calls == 1
