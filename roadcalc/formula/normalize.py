"""Input value normalization for formula evaluation.

Applied identically to request payloads and to stored input rows before they
are re-evaluated, so both paths see the same variable mapping.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

_NUMERIC_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


def to_decimal(value: Any) -> Decimal | None:
    """Convert a scalar to a finite Decimal, or None if it is not numeric.

    Booleans, None, blank strings and non-finite numbers all yield None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, int):
        return Decimal(value)

    if isinstance(value, float):
        # repr() gives the shortest round-tripping text, so 0.1 -> Decimal("0.1")
        result = Decimal(repr(value))
        return result if result.is_finite() else None

    if isinstance(value, str):
        text = value.strip()
        if not text or not _NUMERIC_PATTERN.match(text):
            return None
        try:
            return Decimal(text)
        except InvalidOperation:
            return None

    return None


def normalize_input_values(values: Any) -> dict[str, Decimal]:
    """Sanitize a name -> value mapping into name -> finite Decimal.

    Absent or unparseable values are dropped rather than coerced to zero:
    a missing key means "not yet measured".

    Args:
        values: Anything; only mappings produce a non-empty result

    Returns:
        New dict with trimmed string keys and Decimal values
    """
    if not isinstance(values, Mapping):
        return {}

    normalized: dict[str, Decimal] = {}
    for raw_key, raw_value in values.items():
        if raw_key is None:
            continue
        key = str(raw_key).strip()
        if not key:
            continue
        number = to_decimal(raw_value)
        if number is not None:
            normalized[key] = number

    return normalized
