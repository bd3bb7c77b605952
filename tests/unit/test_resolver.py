"""Tests for roadcalc.quantities.resolver - manual > computed > unknown."""

from __future__ import annotations

from decimal import Decimal

import pytest

from roadcalc.errors import ValidationError
from roadcalc.formula.evaluator import FormulaErrorKind
from roadcalc.models import QuantitySource
from roadcalc.quantities.resolver import quantize_quantity, resolve_quantity


class TestPrecedence:
    """Tests for effective quantity selection."""

    def test_manual_wins_but_computed_is_kept(self):
        resolution = resolve_quantity("a + b", {"a": 1, "b": 2}, manual_quantity=7)
        assert resolution.effective_quantity == Decimal("7")
        assert resolution.computed_quantity == Decimal("3")
        assert resolution.source == QuantitySource.MANUAL

    def test_computed_when_no_manual(self):
        resolution = resolve_quantity("length * width", {"length": 10, "width": 2})
        assert resolution.effective_quantity == Decimal("20")
        assert resolution.computed_error is None
        assert resolution.source == QuantitySource.COMPUTED

    def test_no_formula_is_unknown_not_zero(self):
        resolution = resolve_quantity(None, {"length": 10})
        assert resolution.effective_quantity is None
        assert resolution.computed_error is None
        assert resolution.source == QuantitySource.UNKNOWN

    def test_blank_formula_is_treated_as_absent(self):
        resolution = resolve_quantity("   ", {})
        assert resolution.error is None
        assert resolution.source == QuantitySource.UNKNOWN

    def test_measured_zero_is_not_unknown(self):
        resolution = resolve_quantity("depth * 10", {"depth": 0})
        assert resolution.effective_quantity == Decimal("0")
        assert resolution.source == QuantitySource.COMPUTED

    def test_manual_zero_wins(self):
        resolution = resolve_quantity("a", {"a": 5}, manual_quantity="0")
        assert resolution.effective_quantity == Decimal("0")
        assert resolution.source == QuantitySource.MANUAL


class TestFailures:
    """Tests for formula failures stored as values."""

    def test_failure_stores_message_and_unknown_quantity(self):
        resolution = resolve_quantity("x / y", {"x": 10, "y": 0})
        assert resolution.computed_quantity is None
        assert resolution.effective_quantity is None
        assert resolution.error.kind == FormulaErrorKind.DIVISION_BY_ZERO
        assert resolution.computed_error == "division by zero"

    def test_failure_with_manual_override(self):
        resolution = resolve_quantity("a + b", {"a": 1}, manual_quantity=4)
        assert resolution.effective_quantity == Decimal("4")
        assert resolution.error.kind == FormulaErrorKind.MISSING_VARIABLE

    def test_result_too_large_to_store(self):
        resolution = resolve_quantity("a * a", {"a": Decimal("1e40")})
        assert resolution.computed_quantity is None
        assert resolution.error.kind == FormulaErrorKind.NON_FINITE_RESULT

    def test_result_past_column_width_is_not_stored(self):
        resolution = resolve_quantity("a * b", {"a": Decimal("1e10"), "b": Decimal("1e5")})
        assert resolution.computed_quantity is None
        assert resolution.error.kind == FormulaErrorKind.NON_FINITE_RESULT
        assert resolution.computed_error == "result is too large to store"

    def test_result_rounding_past_column_width_is_not_stored(self):
        resolution = resolve_quantity("a", {"a": Decimal("999999999999999.9996")})
        assert resolution.computed_quantity is None
        assert resolution.error.kind == FormulaErrorKind.NON_FINITE_RESULT

    def test_largest_storable_result(self):
        resolution = resolve_quantity("a", {"a": Decimal("999999999999999.999")})
        assert resolution.computed_quantity == Decimal("999999999999999.999")
        assert resolution.error is None

    @pytest.mark.parametrize("manual", ["1e100", Decimal("1e15")])
    def test_oversized_manual_is_rejected(self, manual):
        with pytest.raises(ValidationError, match="at most 15 digits"):
            resolve_quantity("a", {"a": 1}, manual_quantity=manual)


class TestQuantize:
    """Tests for stored precision."""

    @pytest.mark.parametrize(
        "value,places,expected",
        [
            (Decimal("1.2345"), 3, Decimal("1.235")),
            (Decimal("1.2344"), 3, Decimal("1.234")),
            (Decimal("2.5"), 0, Decimal("3")),
            (Decimal("20"), 3, Decimal("20.000")),
        ],
    )
    def test_round_half_up(self, value, places, expected):
        assert quantize_quantity(value, places) == expected

    def test_none_passes_through(self):
        assert quantize_quantity(None, 3) is None

    def test_stored_quantities_are_quantized(self):
        resolution = resolve_quantity("10 / 3", {}, places=3)
        assert resolution.computed_quantity == Decimal("3.333")
