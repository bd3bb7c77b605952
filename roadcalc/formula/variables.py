"""Variables available to a formula when it is evaluated on an interval."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from roadcalc.formula.normalize import normalize_input_values
from roadcalc.models import Interval, IntervalSide

BUILTIN_VARIABLES = (
    "startPk",
    "endPk",
    "rawLength",
    "sideFactor",
    "length",
    "pointCount",
)

# snake_case spellings accepted alongside the stored camelCase names
BUILTIN_ALIASES = {
    "start_pk": "startPk",
    "end_pk": "endPk",
    "raw_length": "rawLength",
    "side_factor": "sideFactor",
    "point_count": "pointCount",
}

BUILTIN_NAMES = frozenset(BUILTIN_VARIABLES) | frozenset(BUILTIN_ALIASES)


def side_factor(side: IntervalSide) -> int:
    return 2 if side == IntervalSide.BOTH else 1


def build_formula_variables(
    interval: Interval, values: Mapping[str, Any] | None = None
) -> dict[str, Decimal]:
    """Merge interval geometry built-ins with measured input values.

    Built-ins:
        startPk, endPk: interval kilometre points
        rawLength: |endPk - startPk|
        sideFactor: 2 when the interval covers both sides, else 1
        length: rawLength (1 for a zero-length interval) * sideFactor
        pointCount: always 1

    Each camelCase built-in except ``length`` is also bound under its
    snake_case alias. Measured values win over built-ins with the same name.
    """
    raw_length = abs(interval.end_pk - interval.start_pk)
    base = Decimal(1) if raw_length == 0 else raw_length
    factor = side_factor(interval.side)

    variables: dict[str, Decimal] = {
        "startPk": interval.start_pk,
        "endPk": interval.end_pk,
        "rawLength": raw_length,
        "sideFactor": Decimal(factor),
        "length": base * factor,
        "pointCount": Decimal(1),
    }
    for alias, name in BUILTIN_ALIASES.items():
        variables[alias] = variables[name]
    variables.update(normalize_input_values(values))
    return variables
