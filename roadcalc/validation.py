"""Conversion of already-parsed payload values into typed arguments.

Every helper raises ``roadcalc.errors.ValidationError`` with a message naming
the offending field.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from roadcalc.errors import ValidationError
from roadcalc.formula.normalize import to_decimal

# Integer digits that fit the NUMERIC(18, 3) quantity columns
MAX_QUANTITY_DIGITS = 15


def fits_stored_quantity(value: Decimal) -> bool:
    """True when ``value`` has at most MAX_QUANTITY_DIGITS integer digits."""
    return value.is_zero() or value.adjusted() < MAX_QUANTITY_DIGITS


def parse_id(value: Any, field: str) -> int:
    """Parse a positive integer identifier (ints or integral strings)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")

    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    elif isinstance(value, float) and value.is_integer():
        parsed = int(value)
    else:
        raise ValidationError(f"{field} must be a positive integer")

    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return parsed


def parse_optional_id(value: Any, field: str) -> int | None:
    """Like parse_id, but None and "" mean "no id"."""
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_id_list(value: Any, field: str) -> list[int]:
    """Parse a list of ids, dropping duplicates while keeping first-seen order."""
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"{field} must be a list of positive integers")

    ids: dict[int, None] = {}
    for entry in value:
        ids.setdefault(parse_id(entry, field), None)
    return list(ids)


def parse_optional_quantity(value: Any, field: str = "manual_quantity") -> Decimal | None:
    """Parse an optional numeric override.

    None and blank strings mean "no override"; anything else must be a finite
    number or numeric string small enough for the quantity columns.
    """
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None

    number = to_decimal(value)
    if number is None:
        raise ValidationError(f"{field} must be a finite number")
    if not fits_stored_quantity(number):
        raise ValidationError(
            f"{field} must have at most {MAX_QUANTITY_DIGITS} digits before the decimal point"
        )
    return number
