"""Probe subsystem: cell coercion, connection health, query runner, scheduler."""

from sqlgauge.probes.coerce import CellKind, CoercionResult, ProbeMode, coerce
