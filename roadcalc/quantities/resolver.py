"""Final quantity resolution for one (phase item, interval) pair.

Precedence: manual override > formula result > unknown. The formula result is
always computed when a formula exists, even if a manual value wins, so the
stored row keeps both for traceability.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any

from roadcalc.errors import ValidationError
from roadcalc.formula.evaluator import FormulaError, FormulaErrorKind, evaluate
from roadcalc.formula.normalize import to_decimal
from roadcalc.models import QuantitySource
from roadcalc.validation import MAX_QUANTITY_DIGITS, fits_stored_quantity

_QUANTIZE_CONTEXT = Context(prec=60)


@dataclass(frozen=True, slots=True)
class QuantityResolution:
    computed_quantity: Decimal | None
    manual_quantity: Decimal | None
    error: FormulaError | None = None

    @property
    def computed_error(self) -> str | None:
        return self.error.message if self.error else None

    @property
    def effective_quantity(self) -> Decimal | None:
        if self.manual_quantity is not None:
            return self.manual_quantity
        return self.computed_quantity

    @property
    def source(self) -> QuantitySource:
        if self.manual_quantity is not None:
            return QuantitySource.MANUAL
        if self.computed_quantity is not None:
            return QuantitySource.COMPUTED
        return QuantitySource.UNKNOWN


def quantize_quantity(value: Decimal | None, places: int) -> Decimal | None:
    """Round half-up to ``places`` decimals; None passes through.

    Raises:
        decimal.InvalidOperation: If the value has too many digits to store
    """
    if value is None:
        return None
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP, context=_QUANTIZE_CONTEXT)


def _store_quantity(value: Decimal, places: int) -> Decimal | None:
    """Quantize ``value`` for storage, or None when it does not fit the columns."""
    if not fits_stored_quantity(value):
        return None
    quantized = quantize_quantity(value, places)
    if not fits_stored_quantity(quantized):
        return None
    return quantized


def resolve_quantity(
    expression: str | None,
    variables: Mapping[str, Any],
    manual_quantity: Any = None,
    places: int = 3,
) -> QuantityResolution:
    """Resolve the quantity to persist for an input row.

    Args:
        expression: Formula expression, or None/blank when the item has none
        variables: Built-ins merged with normalized measured values
        manual_quantity: Optional override (already validated upstream)
        places: Decimal places kept for stored quantities

    Returns:
        QuantityResolution; formula failures are carried in ``error``

    Raises:
        ValidationError: If the manual override does not fit the quantity columns
    """
    manual = to_decimal(manual_quantity)
    if manual is not None:
        manual = _store_quantity(manual, places)
        if manual is None:
            raise ValidationError(
                f"manual_quantity must have at most {MAX_QUANTITY_DIGITS} digits "
                "before the decimal point"
            )

    if not expression or not expression.strip():
        return QuantityResolution(computed_quantity=None, manual_quantity=manual)

    result = evaluate(expression, variables)
    if result.error is not None:
        return QuantityResolution(
            computed_quantity=None, manual_quantity=manual, error=result.error
        )

    computed = _store_quantity(result.value, places)
    if computed is None:
        return QuantityResolution(
            computed_quantity=None,
            manual_quantity=manual,
            error=FormulaError(
                kind=FormulaErrorKind.NON_FINITE_RESULT,
                message="result is too large to store",
            ),
        )

    return QuantityResolution(computed_quantity=computed, manual_quantity=manual)
