"""Cell coercion: turns one SQL result cell into a gauge reading.

Every cell is classified into a finite set of kinds and exactly one rule per
kind produces the result. ``coerce`` never raises: unparsable input comes back
as a NOT_NUMERIC failure that the caller decides what to do with.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class ProbeMode(str, Enum):
    NUMERIC = "numeric"
    LABEL = "label"


class CellKind(str, Enum):
    INTEGER = "integer"
    FLOAT = "float"
    TIMESTAMP = "timestamp"
    BOOLEAN = "boolean"
    NULL = "null"
    TEXT = "text"
    OTHER = "other"


class FailureKind(str, Enum):
    NOT_NUMERIC = "not_numeric"


@dataclass(frozen=True)
class CoercionResult:
    """Outcome of coercing a single cell."""

    ok: bool
    value: float = 0.0
    label: str | None = None
    failure: FailureKind | None = None
    raw_text: str | None = None

    @classmethod
    def success(cls, value: float, label: str | None = None) -> CoercionResult:
        return cls(ok=True, value=value, label=label)

    @classmethod
    def not_numeric(cls, raw_text: str | None = None) -> CoercionResult:
        return cls(ok=False, failure=FailureKind.NOT_NUMERIC, raw_text=raw_text)


def classify(cell: Any) -> CellKind:
    """Map a driver value onto its cell kind."""
    if cell is None:
        return CellKind.NULL
    # bool is a subclass of int, so it has to be checked first
    if isinstance(cell, bool):
        return CellKind.BOOLEAN
    if isinstance(cell, int):
        return CellKind.INTEGER
    if isinstance(cell, (float, Decimal)):
        return CellKind.FLOAT
    if isinstance(cell, (datetime, date)):
        return CellKind.TIMESTAMP
    if isinstance(cell, (str, bytes, bytearray, memoryview)):
        return CellKind.TEXT
    return CellKind.OTHER


def _epoch_seconds(cell: date) -> float:
    if isinstance(cell, datetime):
        if cell.tzinfo is None:
            cell = cell.replace(tzinfo=timezone.utc)
        return cell.timestamp()
    return datetime(cell.year, cell.month, cell.day, tzinfo=timezone.utc).timestamp()


def _as_text(cell: Any) -> str:
    if isinstance(cell, str):
        return cell
    return bytes(cell).decode("utf-8", errors="replace")


def _parse_text(cell: Any) -> CoercionResult:
    raw = _as_text(cell)
    # float() accepts digit separators ("1_000"); plain literals only
    if "_" in raw:
        return CoercionResult.not_numeric(raw)
    try:
        return CoercionResult.success(float(raw.strip()))
    except ValueError:
        return CoercionResult.not_numeric(raw)


def _from_int(cell: int) -> CoercionResult:
    try:
        return CoercionResult.success(float(cell))
    except OverflowError:
        return CoercionResult.not_numeric()


_NUMERIC_RULES = {
    CellKind.INTEGER: _from_int,
    CellKind.FLOAT: lambda c: CoercionResult.success(float(c)),
    CellKind.TIMESTAMP: lambda c: CoercionResult.success(_epoch_seconds(c)),
    CellKind.BOOLEAN: lambda c: CoercionResult.success(1.0 if c else 0.0),
    CellKind.NULL: lambda c: CoercionResult.success(0.0),
    CellKind.TEXT: _parse_text,
    CellKind.OTHER: lambda c: CoercionResult.not_numeric(),
}


def coerce(cell: Any, mode: ProbeMode = ProbeMode.NUMERIC) -> CoercionResult:
    """Coerce a result cell according to the probe's mode."""
    kind = classify(cell)
    if mode is ProbeMode.LABEL:
        if kind is CellKind.TEXT:
            return CoercionResult.success(1.0, label=_as_text(cell).strip())
        if kind is CellKind.NULL:
            return CoercionResult.success(0.0, label="")
    return _NUMERIC_RULES[kind](cell)
