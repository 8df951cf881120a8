"""Metric sink: latest-value gauges exposed for Prometheus scraping.

Each sink owns its own CollectorRegistry so tests and embedded use never
collide with the process-global default registry. Writes are plain overwrites.
"""

from __future__ import annotations

import logging

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

logger = logging.getLogger(__name__)


class MetricSink:
    """Write-only mapping from (target, probe[, label]) to the latest reading."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        namespace: str = "oracledb",
        subsystem: str = "exporter",
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.registry = registry or CollectorRegistry()
        common = {"namespace": namespace, "subsystem": subsystem, "registry": self.registry}

        self._value = Gauge(
            "db_metric", "Business metrics from Database",
            ["database", "name", "value"], **common,
        )
        self._up = Gauge("up", "Database status", ["database"], **common)
        self._error = Gauge(
            "query_error", "1 if the last run of the query failed",
            ["database", "name"], **common,
        )
        self._duration = Gauge(
            "query_duration_seconds", "Wall-clock duration of the last run of the query",
            ["database", "name"], **common,
        )
        logger.debug("Metric sink initialised (namespace=%s_%s)", namespace, subsystem)

    def set_up(self, target: str, up: bool) -> None:
        self._up.labels(target).set(1 if up else 0)

    def set_value(self, target: str, probe: str, value: float, label: str | None = None) -> None:
        self._value.labels(target, probe, label or "").set(value)

    def set_error(self, target: str, probe: str, failed: bool) -> None:
        self._error.labels(target, probe).set(1 if failed else 0)

    def set_duration(self, target: str, probe: str, seconds: float) -> None:
        self._duration.labels(target, probe).set(seconds)

    def render(self) -> bytes:
        """Current state in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def sample(self, metric: str, labels: dict[str, str]) -> float | None:
        """Read back one series by its full metric name (for diagnostics/tests)."""
        return self.registry.get_sample_value(metric, labels)
