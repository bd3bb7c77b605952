"""Tests for roadcalc.formula.variables - interval built-in variables."""

from __future__ import annotations

from decimal import Decimal

from roadcalc.formula.evaluator import evaluate
from roadcalc.formula.variables import (
    BUILTIN_ALIASES,
    BUILTIN_VARIABLES,
    build_formula_variables,
)
from roadcalc.models import Interval, IntervalSide


def _interval(start: str, end: str, side: IntervalSide = IntervalSide.BOTH) -> Interval:
    return Interval(id=1, phase_id=1, start_pk=Decimal(start), end_pk=Decimal(end), side=side)


class TestBuiltins:
    """Tests for geometry-derived variables."""

    def test_both_sides_doubles_length(self):
        variables = build_formula_variables(_interval("100", "250"))
        assert variables["rawLength"] == Decimal("150")
        assert variables["sideFactor"] == Decimal("2")
        assert variables["length"] == Decimal("300")
        assert variables["pointCount"] == Decimal("1")

    def test_single_side(self):
        variables = build_formula_variables(_interval("0", "40", IntervalSide.LEFT))
        assert variables["sideFactor"] == Decimal("1")
        assert variables["length"] == Decimal("40")

    def test_reversed_range_uses_absolute_length(self):
        variables = build_formula_variables(_interval("50", "20", IntervalSide.RIGHT))
        assert variables["rawLength"] == Decimal("30")
        assert variables["startPk"] == Decimal("50")
        assert variables["endPk"] == Decimal("20")

    def test_zero_length_interval_counts_as_one(self):
        variables = build_formula_variables(_interval("12", "12", IntervalSide.LEFT))
        assert variables["rawLength"] == Decimal("0")
        assert variables["length"] == Decimal("1")

    def test_all_builtins_present(self):
        names = set(build_formula_variables(_interval("0", "1")))
        assert names == set(BUILTIN_VARIABLES) | set(BUILTIN_ALIASES)

    def test_snake_case_aliases(self):
        variables = build_formula_variables(_interval("100", "250"))
        assert variables["raw_length"] == variables["rawLength"]
        assert variables["side_factor"] == variables["sideFactor"]
        assert variables["start_pk"] == Decimal("100")


class TestMeasuredValues:
    """Tests for merging measured values."""

    def test_measured_values_override_builtins(self):
        variables = build_formula_variables(_interval("0", "100"), {"length": "80", "width": "3"})
        assert variables["length"] == Decimal("80")
        assert variables["width"] == Decimal("3")

    def test_unusable_values_do_not_hide_builtins(self):
        variables = build_formula_variables(_interval("0", "100"), {"length": ""})
        assert variables["length"] == Decimal("200")

    def test_formula_over_builtins(self):
        variables = build_formula_variables(_interval("0", "100"), {"width": "3.5", "depth": "0.2"})
        result = evaluate("length * width * depth", variables)
        assert result.value == Decimal("140")

    def test_camel_case_formula(self):
        variables = build_formula_variables(
            _interval("100", "150", IntervalSide.LEFT), {"width": "4"}
        )
        result = evaluate("rawLength * width * sideFactor + pointCount + startPk - endPk", variables)
        assert result.error is None
        assert result.value == Decimal("151")
