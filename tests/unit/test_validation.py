"""Tests for roadcalc.validation - payload parsing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from roadcalc.errors import ValidationError
from roadcalc.validation import (
    parse_id,
    parse_id_list,
    parse_optional_id,
    parse_optional_quantity,
)


class TestParseId:
    @pytest.mark.parametrize("value,expected", [(5, 5), ("12", 12), (" 7 ", 7), (3.0, 3)])
    def test_valid(self, value, expected):
        assert parse_id(value, "phase_item_id") == expected

    @pytest.mark.parametrize("value", [0, -1, "abc", "1.5", 2.5, None, True, [], "-3"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError, match="phase_item_id"):
            parse_id(value, "phase_item_id")

    def test_optional(self):
        assert parse_optional_id(None, "boq_item_id") is None
        assert parse_optional_id("", "boq_item_id") is None
        assert parse_optional_id("9", "boq_item_id") == 9


class TestParseIdList:
    def test_dedupes_keeping_order(self):
        assert parse_id_list([9, "5", 9, 7, 5], "boq_item_ids") == [9, 5, 7]

    def test_empty(self):
        assert parse_id_list([], "boq_item_ids") == []

    def test_rejects_non_list(self):
        with pytest.raises(ValidationError):
            parse_id_list("5,7", "boq_item_ids")

    def test_rejects_bad_entry(self):
        with pytest.raises(ValidationError):
            parse_id_list([5, 0], "boq_item_ids")


class TestParseOptionalQuantity:
    @pytest.mark.parametrize("value", [None, "", "  "])
    def test_absent(self, value):
        assert parse_optional_quantity(value) is None

    def test_numbers(self):
        assert parse_optional_quantity("12.5") == Decimal("12.5")
        assert parse_optional_quantity(0) == Decimal("0")

    @pytest.mark.parametrize("value", ["twelve", float("inf"), True, {"q": 1}])
    def test_invalid(self, value):
        with pytest.raises(ValidationError, match="manual_quantity"):
            parse_optional_quantity(value)

    def test_largest_storable(self):
        assert parse_optional_quantity("999999999999999.5") == Decimal("999999999999999.5")

    @pytest.mark.parametrize("value", ["1e15", "1e100", "-1000000000000000"])
    def test_too_large_for_storage(self, value):
        with pytest.raises(ValidationError, match="at most 15 digits"):
            parse_optional_quantity(value)
