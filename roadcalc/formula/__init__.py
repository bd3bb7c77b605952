"""Formula input normalization and expression evaluation."""

from roadcalc.formula.evaluator import (
    EvaluationResult,
    FormulaError,
    FormulaErrorKind,
    FormulaSyntaxError,
    evaluate,
    parse_expression,
    referenced_variables,
    validate_expression,
)
from roadcalc.formula.normalize import normalize_input_values, to_decimal
from roadcalc.formula.variables import (
    BUILTIN_ALIASES,
    BUILTIN_NAMES,
    BUILTIN_VARIABLES,
    build_formula_variables,
)

__all__ = [
    "BUILTIN_ALIASES",
    "BUILTIN_NAMES",
    "BUILTIN_VARIABLES",
    "EvaluationResult",
    "FormulaError",
    "FormulaErrorKind",
    "FormulaSyntaxError",
    "build_formula_variables",
    "evaluate",
    "normalize_input_values",
    "parse_expression",
    "referenced_variables",
    "to_decimal",
    "validate_expression",
]
