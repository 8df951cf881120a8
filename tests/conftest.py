"""Shared test fixtures."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest

from sqlgauge.errors import HandleClosedError
from sqlgauge.metrics.sink import MetricSink
from sqlgauge.probes.coerce import ProbeMode
from sqlgauge.targets.registry import DatabaseTarget, PoolLimits, ProbeDefinition


class FakeHandle:
    """Stands in for DatabaseHandle: canned rows, errors and closed state."""

    def __init__(
        self,
        rows: list[tuple[Any, ...]] | None = None,
        error: Exception | None = None,
        ping_error: Exception | None = None,
    ) -> None:
        self.rows = rows or []
        self.error = error
        self.ping_error = ping_error
        self.closed = False
        self.pings = 0
        self.queries = 0
        self.released = 0

    def ping(self) -> None:
        self.pings += 1
        if self.closed:
            raise HandleClosedError("database is closed")
        if self.ping_error:
            raise self.ping_error

    @contextmanager
    def query(self, sql: str, timeout: float) -> Iterator[Iterator[Any]]:
        self.queries += 1
        if self.closed:
            raise HandleClosedError("database is closed")
        if self.error:
            raise self.error
        try:
            yield iter(self.rows)
        finally:
            self.released += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def sink() -> MetricSink:
    return MetricSink()


@pytest.fixture
def probe() -> ProbeDefinition:
    return ProbeDefinition(name="active_count", sql="SELECT 42")


@pytest.fixture
def target(probe: ProbeDefinition) -> DatabaseTarget:
    return DatabaseTarget(
        name="orders_db",
        host="db1",
        user="scott",
        password="tiger",
        database="ORDERS",
        pool=PoolLimits(max_idle=2, max_open=7),
        probes=[probe, ProbeDefinition(name="status", sql="SELECT 'OPEN'", mode=ProbeMode.LABEL)],
    )


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """A small SQLite database file with an orders table."""
    path = tmp_path / "orders.db"
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE orders (id INTEGER PRIMARY KEY, state TEXT, amount REAL);
        INSERT INTO orders (state, amount) VALUES ('active', 10.5), ('active', 2.0), ('closed', 1.0);
    """)
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_target(sqlite_db: Path) -> DatabaseTarget:
    return DatabaseTarget(
        name="orders_db",
        dsn=f"sqlite:///{sqlite_db}",
        pool=PoolLimits(max_idle=1, max_open=2),
        probes=[ProbeDefinition(name="active_count", sql="SELECT COUNT(*) FROM orders WHERE state = 'active'")],
    )


def value_of(sink: MetricSink, target: str, probe: str, label: str = "") -> float | None:
    return sink.sample("oracledb_exporter_db_metric", {"database": target, "name": probe, "value": label})


def error_of(sink: MetricSink, target: str, probe: str) -> float | None:
    return sink.sample("oracledb_exporter_query_error", {"database": target, "name": probe})


def duration_of(sink: MetricSink, target: str, probe: str) -> float | None:
    return sink.sample("oracledb_exporter_query_duration_seconds", {"database": target, "name": probe})


def up_of(sink: MetricSink, target: str) -> float | None:
    return sink.sample("oracledb_exporter_up", {"database": target})
