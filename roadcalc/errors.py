"""Error taxonomy for RoadCalc operations.

Formula evaluation failures are not part of this hierarchy: they are values
(``roadcalc.formula.evaluator.FormulaError``) recorded against the input row.
Everything here aborts the operation that raised it.
"""

from __future__ import annotations


class RoadCalcError(Exception):
    """Base class for all typed RoadCalc failures."""

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RoadCalcError):
    """Malformed or out-of-range input (bad id, bad number, oversized batch)."""


class NotFoundError(RoadCalcError):
    """A referenced phase item, interval, phase or BOQ item does not exist."""

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolation(RoadCalcError):
    """Binding to an ineligible BOQ item or breaking a uniqueness rule."""


class TransactionFailure(RoadCalcError):
    """The persistence transaction aborted; safe for the caller to retry."""

    retryable = True
