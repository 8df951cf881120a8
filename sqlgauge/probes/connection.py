"""Connection handles and liveness checks for database targets.

A DatabaseHandle wraps one SQLAlchemy engine (and therefore one pool). It can
be closed at any time; ConnectionHealth notices on the next check and opens a
fresh handle from the target's descriptor.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from sqlgauge.errors import ConnectError, HandleClosedError, QueryError, QueryTimeoutError

if TYPE_CHECKING:
    from sqlgauge.metrics.sink import MetricSink
    from sqlgauge.targets.registry import DatabaseTarget, PoolLimits

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "oracle+oracledb"


def build_url(target: DatabaseTarget) -> str | URL:
    """Explicit DSN if configured, otherwise an Oracle URL from the parts."""
    if target.dsn:
        return target.dsn
    return URL.create(
        DEFAULT_DRIVER,
        username=target.user or None,
        password=target.password or None,
        host=target.host or None,
        port=target.port or None,
        query={"service_name": target.database} if target.database else {},
    )


def pool_kwargs(limits: PoolLimits) -> dict[str, int]:
    """Translate max idle / max open into QueuePool arguments."""
    if limits.max_open == 0:
        return {"pool_size": limits.max_idle, "max_overflow": -1}
    pool_size = max(1, min(limits.max_idle, limits.max_open))
    return {"pool_size": pool_size, "max_overflow": limits.max_open - pool_size}


# ── Deadline ─────────────────────────────────────────────────────────────────


class _Deadline:
    """Cancels the in-flight DBAPI call once the timeout elapses."""

    def __init__(self, timeout: float, dbapi_connection: Any) -> None:
        self.timeout = timeout
        self.expired = False
        self._dbapi_connection = dbapi_connection
        self._timer = threading.Timer(timeout, self._fire)
        self._timer.daemon = True

    def __enter__(self) -> _Deadline:
        self._timer.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._timer.cancel()

    def _fire(self) -> None:
        self.expired = True
        cancel = getattr(self._dbapi_connection, "cancel", None) or getattr(
            self._dbapi_connection, "interrupt", None,
        )
        if cancel is None:
            logger.warning("Driver cannot cancel queries; waiting for the call to return")
            return
        try:
            cancel()
        except Exception:
            logger.exception("Failed to cancel query after %ss", self.timeout)


# ── Handle ───────────────────────────────────────────────────────────────────


class DatabaseHandle:
    """One pooled connection to a database target."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._closed = False

    @classmethod
    def open(cls, url: str | URL, limits: PoolLimits) -> DatabaseHandle:
        try:
            engine = create_engine(url, **pool_kwargs(limits))
        except (SQLAlchemyError, ImportError) as e:
            raise ConnectError(f"cannot open connection: {e}") from e
        return cls(engine)

    @property
    def closed(self) -> bool:
        return self._closed

    def ping(self) -> None:
        """Round-trip to the database. Raises HandleClosedError or ConnectError."""
        if self._closed:
            raise HandleClosedError("database is closed")
        # do_ping runs on the raw DBAPI cursor, so driver errors arrive unwrapped
        driver_error = self._engine.dialect.loaded_dbapi.Error
        try:
            with self._engine.connect() as conn:
                alive = self._engine.dialect.do_ping(conn.connection.dbapi_connection)
        except (SQLAlchemyError, ImportError, driver_error) as e:
            raise ConnectError(str(e)) from e
        if not alive:
            raise ConnectError("ping returned no result")

    @contextmanager
    def query(self, sql: str, timeout: float) -> Iterator[Iterator[Any]]:
        """Execute ``sql`` and yield its rows; everything is released on exit.

        The deadline covers execution and row iteration. Driver errors are
        raised as QueryTimeoutError once the deadline fired, QueryError otherwise.
        """
        if self._closed:
            raise HandleClosedError("database is closed")
        try:
            conn = self._engine.connect()
        except (SQLAlchemyError, ImportError) as e:
            raise QueryError(f"cannot acquire connection: {e}", _invalidated(e)) from e

        try:
            with _Deadline(timeout, conn.connection.dbapi_connection) as deadline:
                try:
                    result = conn.exec_driver_sql(sql)
                    if deadline.expired:
                        result.close()
                        raise QueryTimeoutError(timeout)
                    try:
                        yield iter(result)
                    finally:
                        result.close()
                except SQLAlchemyError as e:
                    if deadline.expired:
                        raise QueryTimeoutError(timeout) from e
                    raise QueryError(str(e), _invalidated(e)) from e
        finally:
            conn.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()


def _invalidated(exc: BaseException) -> bool:
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def open_handle(target: DatabaseTarget) -> DatabaseHandle:
    """Open a handle for ``target`` with its own pool limits applied."""
    return DatabaseHandle.open(build_url(target), target.pool)


# ── Health ───────────────────────────────────────────────────────────────────


@dataclass
class Readiness:
    """Result of ensure_ready: ready, or not ready with the cause."""

    ready: bool
    cause: Exception | None = None


class ConnectionHealth:
    """Liveness check per target, reopening closed handles on demand."""

    def __init__(
        self,
        sink: MetricSink,
        opener: Callable[[DatabaseTarget], DatabaseHandle] = open_handle,
    ) -> None:
        self.sink = sink
        self.opener = opener
        self._reopen_locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def ensure_ready(self, target: DatabaseTarget) -> Readiness:
        """Ping the target, reopening once if the handle was closed.

        Always sets the target's up gauge.
        """
        readiness = self._check(target)
        self.sink.set_up(target.name, readiness.ready)
        return readiness

    def _check(self, target: DatabaseTarget) -> Readiness:
        try:
            _ping(target)
            return Readiness(ready=True)
        except HandleClosedError:
            logger.info("Reconnecting to DB: %s", target.name)
        except ConnectError as e:
            logger.error("Error pinging %s: %s", target.name, e)
            return Readiness(ready=False, cause=e)

        # Probes of one target run in parallel; only one of them may reopen.
        with self._reopen_lock(target.name):
            try:
                stale = target.handle
                if stale is None or stale.closed:
                    target.handle = self.opener(target)
                    if stale is not None:
                        stale.close()
                    logger.info("Opened a new handle for DB: %s", target.name)
                _ping(target)
            except ConnectError as e:
                logger.error("Reconnect to %s failed: %s", target.name, e)
                return Readiness(ready=False, cause=e)

        return Readiness(ready=True)

    def _reopen_lock(self, name: str) -> threading.Lock:
        with self._guard:
            return self._reopen_locks.setdefault(name, threading.Lock())


def _ping(target: DatabaseTarget) -> None:
    if target.handle is None:
        raise HandleClosedError("no connection handle")
    target.handle.ping()


def open_targets(
    targets: list[DatabaseTarget],
    opener: Callable[[DatabaseTarget], DatabaseHandle] = open_handle,
) -> None:
    """Open a handle per target at startup. Failures are left for ensure_ready."""
    for target in targets:
        logger.info("Connecting to DB: %s", target.name)
        try:
            target.handle = opener(target)
        except ConnectError as e:
            logger.error("Error connecting to %s: %s", target.name, e)


def close_targets(targets: list[DatabaseTarget]) -> None:
    for target in targets:
        if target.handle is not None:
            target.handle.close()
