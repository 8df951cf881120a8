"""Tests for cell coercion."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from sqlgauge.probes.coerce import (
    _NUMERIC_RULES,
    CellKind,
    CoercionResult,
    FailureKind,
    ProbeMode,
    classify,
    coerce,
)


# ── classify ─────────────────────────────────────────────────────────────────


class TestClassify:
    @pytest.mark.parametrize(
        ("cell", "kind"),
        [
            (42, CellKind.INTEGER),
            (3.5, CellKind.FLOAT),
            (Decimal("1.25"), CellKind.FLOAT),
            (datetime(2024, 1, 1), CellKind.TIMESTAMP),
            (date(2024, 1, 1), CellKind.TIMESTAMP),
            (True, CellKind.BOOLEAN),
            (None, CellKind.NULL),
            ("12", CellKind.TEXT),
            (b"12", CellKind.TEXT),
            (timedelta(seconds=1), CellKind.OTHER),
            ([1, 2], CellKind.OTHER),
        ],
    )
    def test_kinds(self, cell, kind) -> None:
        assert classify(cell) is kind

    def test_bool_is_not_integer(self) -> None:
        assert classify(False) is CellKind.BOOLEAN

    def test_every_kind_has_a_rule(self) -> None:
        assert set(_NUMERIC_RULES) == set(CellKind)


# ── numeric mode ─────────────────────────────────────────────────────────────


class TestNumericMode:
    def test_integer(self) -> None:
        r = coerce(42)
        assert r.ok
        assert r.value == 42.0
        assert isinstance(r.value, float)

    def test_float_passthrough(self) -> None:
        assert coerce(0.125).value == 0.125

    def test_decimal(self) -> None:
        assert coerce(Decimal("19.99")).value == pytest.approx(19.99)

    def test_aware_timestamp(self) -> None:
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert coerce(ts).value == 1704067200.0

    def test_naive_timestamp_is_utc(self) -> None:
        assert coerce(datetime(2024, 1, 1)).value == 1704067200.0

    def test_date(self) -> None:
        assert coerce(date(1970, 1, 2)).value == 86400.0

    def test_bool(self) -> None:
        assert coerce(True).value == 1.0
        assert coerce(False).value == 0.0

    def test_null_is_zero(self) -> None:
        r = coerce(None)
        assert r.ok
        assert r.value == 0.0
        assert not math.isnan(r.value)

    def test_text_trimmed(self) -> None:
        r = coerce("  17.5\n")
        assert r.ok
        assert r.value == 17.5

    def test_bytes(self) -> None:
        assert coerce(b" 8 ").value == 8.0

    @pytest.mark.parametrize("value", [0.1, -2.5e-7, 123456789.123, 1e300])
    def test_text_float_matches_original(self, value: float) -> None:
        assert coerce(repr(value)).value == pytest.approx(value)

    def test_not_numeric_keeps_raw_text(self) -> None:
        r = coerce("abc")
        assert not r.ok
        assert r.failure is FailureKind.NOT_NUMERIC
        assert r.raw_text == "abc"

    def test_other_kind_has_no_raw_text(self) -> None:
        r = coerce(timedelta(minutes=5))
        assert not r.ok
        assert r.failure is FailureKind.NOT_NUMERIC
        assert r.raw_text is None

    def test_never_raises(self) -> None:
        for cell in (object(), {"a": 1}, b"\xff\xfe", "", "   ", 10**400, -(10**400)):
            assert isinstance(coerce(cell), CoercionResult)

    def test_integer_beyond_float_range(self) -> None:
        r = coerce(10**400)
        assert not r.ok
        assert r.failure is FailureKind.NOT_NUMERIC

    @pytest.mark.parametrize("text", ["1_000", "3.141_59", "1e1_0"])
    def test_digit_separators_rejected(self, text: str) -> None:
        r = coerce(text)
        assert not r.ok
        assert r.raw_text == text


# ── label mode ───────────────────────────────────────────────────────────────


class TestLabelMode:
    def test_text_becomes_label(self) -> None:
        r = coerce("OPEN ", ProbeMode.LABEL)
        assert r.ok
        assert r.label == "OPEN"
        assert r.value == 1.0

    def test_numeric_text_is_still_a_label(self) -> None:
        r = coerce("42", ProbeMode.LABEL)
        assert r.label == "42"
        assert r.value == 1.0

    def test_null_is_zero_with_empty_label(self) -> None:
        r = coerce(None, ProbeMode.LABEL)
        assert r.ok
        assert r.value == 0.0
        assert r.label == ""

    def test_numbers_fall_back_to_numeric_rules(self) -> None:
        r = coerce(7, ProbeMode.LABEL)
        assert r.value == 7.0
        assert r.label is None
