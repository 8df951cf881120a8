"""Query runner: one tick of one probe against one target.

Steps: liveness check, deadline-bounded query, per-cell coercion, gauge
updates. Failures are classified, logged and reflected in gauges; nothing
raised here escapes the tick.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlgauge.errors import (
    CoercionError,
    ConnectError,
    HandleClosedError,
    QueryError,
    QueryTimeoutError,
)
from sqlgauge.probes.coerce import CoercionResult, coerce

if TYPE_CHECKING:
    from sqlgauge.metrics.sink import MetricSink
    from sqlgauge.probes.connection import ConnectionHealth
    from sqlgauge.targets.registry import DatabaseTarget, ProbeDefinition

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    """What happened during a single tick. Only the latest one is kept."""

    target: str
    probe: str
    up: bool = False
    cells: list[CoercionResult] = field(default_factory=list)
    error: Exception | None = None
    duration_seconds: float = 0.0
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def error_kind(self) -> str | None:
        if self.error is None:
            return None
        if isinstance(self.error, QueryTimeoutError):
            return "timeout"
        if isinstance(self.error, CoercionError):
            return "coercion"
        if isinstance(self.error, ConnectError):
            return "connect"
        return "query"

    def to_dict(self) -> dict[str, Any]:
        return {
            "up": self.up,
            "values": [{"value": c.value, "label": c.label} for c in self.cells if c.ok],
            "error": str(self.error) if self.error else None,
            "error_kind": self.error_kind,
            "duration_seconds": round(self.duration_seconds, 6),
            "timestamp": self.timestamp,
        }


class QueryRunner:
    """Runs probes and writes their readings into the metric sink."""

    def __init__(self, health: ConnectionHealth, sink: MetricSink, query_timeout: float) -> None:
        self.health = health
        self.sink = sink
        self.query_timeout = query_timeout
        self._outcomes: dict[tuple[str, str], ExecutionOutcome] = {}
        self._lock = threading.Lock()

    def run(self, target: DatabaseTarget, probe: ProbeDefinition) -> None:
        """Execute ``probe`` once. Side effects only: gauges and log lines."""
        outcome = ExecutionOutcome(target=target.name, probe=probe.name)
        t0 = time.perf_counter()
        try:
            self._execute(target, probe, outcome)
        finally:
            outcome.duration_seconds = time.perf_counter() - t0
            self.sink.set_duration(target.name, probe.name, outcome.duration_seconds)
            with self._lock:
                self._outcomes[(target.name, probe.name)] = outcome
            logger.debug(
                "Probe %s/%s: up=%s error=%s (%.3fs)",
                target.name, probe.name, outcome.up, outcome.error_kind, outcome.duration_seconds,
            )

    def last_outcome(self, target: str, probe: str) -> ExecutionOutcome | None:
        with self._lock:
            return self._outcomes.get((target, probe))

    def _execute(
        self, target: DatabaseTarget, probe: ProbeDefinition, outcome: ExecutionOutcome,
    ) -> None:
        readiness = self.health.ensure_ready(target)
        outcome.up = readiness.ready
        if not readiness.ready:
            outcome.error = readiness.cause
            return

        handle = target.handle
        if handle is None:
            self._fail(target, probe, outcome, HandleClosedError("no connection handle"))
            return
        try:
            with handle.query(probe.sql, self.query_timeout) as rows:
                failure = self._consume(target, probe, rows, outcome)
        except QueryTimeoutError as e:
            logger.error("Query %s/%s timed out after %ss", target.name, probe.name, e.timeout)
            self._fail(target, probe, outcome, e)
            return
        except QueryError as e:
            logger.error("Query %s/%s failed: %s", target.name, probe.name, e)
            if e.connection_invalidated:
                logger.info("Connection to %s invalidated; closing handle", target.name)
                handle.close()
            self._fail(target, probe, outcome, e)
            return
        except ConnectError as e:
            logger.error("Query %s/%s could not run: %s", target.name, probe.name, e)
            self._fail(target, probe, outcome, e)
            return

        if failure is not None:
            logger.error(
                "Query %s/%s returned a non-numeric value: %r",
                target.name, probe.name, failure.raw_text,
            )
            self._fail(target, probe, outcome, CoercionError(failure.raw_text))
            return

        self.sink.set_error(target.name, probe.name, False)

    def _consume(
        self,
        target: DatabaseTarget,
        probe: ProbeDefinition,
        rows: Any,
        outcome: ExecutionOutcome,
    ) -> CoercionResult | None:
        """Write every cell; stop at the first one that is not numeric."""
        for row in rows:
            for cell in row:
                result = coerce(cell, probe.mode)
                if not result.ok:
                    return result
                outcome.cells.append(result)
                self.sink.set_value(target.name, probe.name, result.value, result.label)
                self.sink.set_error(target.name, probe.name, False)
        return None

    def _fail(
        self,
        target: DatabaseTarget,
        probe: ProbeDefinition,
        outcome: ExecutionOutcome,
        error: Exception,
    ) -> None:
        outcome.error = error
        self.sink.set_error(target.name, probe.name, True)
