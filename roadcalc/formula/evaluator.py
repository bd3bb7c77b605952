"""Restricted arithmetic expression evaluator for phase-item formulas.

Grammar: ``+ - * /``, unary minus, parentheses, integer/decimal literals and
bare identifiers. No function calls, comparisons or strings. Expressions are
tokenized, validated, converted to reverse Polish notation (shunting-yard) and
evaluated over ``Decimal`` values in a private decimal context, so the result
depends only on the expression and the variable mapping.

Failures are returned as :class:`FormulaError` values rather than raised;
callers store the message against the input row.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import (
    ROUND_HALF_EVEN,
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
)
from enum import Enum
from functools import lru_cache
from typing import Any

from roadcalc.formula.normalize import to_decimal


class FormulaErrorKind(str, Enum):
    MISSING_VARIABLE = "MissingVariable"
    DIVISION_BY_ZERO = "DivisionByZero"
    SYNTAX_ERROR = "SyntaxError"
    NON_FINITE_RESULT = "NonFiniteResult"


@dataclass(frozen=True, slots=True)
class FormulaError:
    kind: FormulaErrorKind
    message: str
    variable: str | None = None
    position: int | None = None  # 0-based offset into the expression

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    value: Decimal | None
    error: FormulaError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FormulaSyntaxError(ValueError):
    """Raised by :func:`parse_expression` for malformed expressions."""

    def __init__(self, error: FormulaError):
        super().__init__(error.message)
        self.error = error


class _EvaluationFailure(Exception):
    def __init__(self, error: FormulaError):
        super().__init__(error.message)
        self.error = error


@dataclass(frozen=True, slots=True)
class Token:
    type: str  # number | identifier | operator | lparen | rparen
    value: Any
    position: int


@dataclass(frozen=True, slots=True)
class ParsedExpression:
    expression: str
    rpn: tuple[Token, ...]
    variables: tuple[str, ...]  # referenced identifiers, first-use order


# Unary minus is tokenized as the NEG operator.
_PRECEDENCE = {"NEG": 3, "*": 2, "/": 2, "+": 1, "-": 1}
_RIGHT_ASSOCIATIVE = {"NEG"}

_NUMBER_CHARS = frozenset("0123456789.")
_IDENTIFIER_START = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_")
_IDENTIFIER_CHARS = _IDENTIFIER_START | frozenset("0123456789")

_CONTEXT = Context(
    prec=28,
    rounding=ROUND_HALF_EVEN,
    Emax=999_999,
    Emin=-999_999,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)


def _syntax_error(message: str, position: int) -> FormulaSyntaxError:
    return FormulaSyntaxError(
        FormulaError(
            kind=FormulaErrorKind.SYNTAX_ERROR,
            message=f"{message} at position {position}",
            position=position,
        )
    )


def _tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    index = 0
    length = len(expression)

    while index < length:
        char = expression[index]
        if char.isspace():
            index += 1
            continue

        if char in _NUMBER_CHARS:
            end = index + 1
            while end < length and expression[end] in _NUMBER_CHARS:
                end += 1
            raw = expression[index:end]
            if raw == "." or raw.count(".") > 1:
                raise _syntax_error(f"invalid number '{raw}'", index)
            tokens.append(Token("number", Decimal(raw), index))
            index = end
            continue

        if char in _IDENTIFIER_START:
            end = index + 1
            while end < length and expression[end] in _IDENTIFIER_CHARS:
                end += 1
            tokens.append(Token("identifier", expression[index:end], index))
            index = end
            continue

        if char in "+-*/":
            tokens.append(Token("operator", char, index))
            index += 1
            continue

        if char == "(":
            tokens.append(Token("lparen", char, index))
            index += 1
            continue

        if char == ")":
            tokens.append(Token("rparen", char, index))
            index += 1
            continue

        raise _syntax_error(f"unexpected character '{char}'", index)

    return tokens


def _to_rpn(tokens: list[Token], end_position: int) -> list[Token]:
    output: list[Token] = []
    stack: list[Token] = []
    # What the previous token allows next: "operand" expects a value, "operator" a binary op.
    expecting = "operand"

    for token in tokens:
        if token.type in ("number", "identifier"):
            if expecting != "operand":
                raise _syntax_error(f"unexpected {token.type} '{token.value}'", token.position)
            output.append(token)
            expecting = "operator"
            continue

        if token.type == "lparen":
            if expecting != "operand":
                raise _syntax_error("unexpected '('", token.position)
            stack.append(token)
            continue

        if token.type == "rparen":
            if expecting != "operator":
                raise _syntax_error("unexpected ')'", token.position)
            while stack and stack[-1].type != "lparen":
                output.append(stack.pop())
            if not stack:
                raise _syntax_error("unbalanced ')'", token.position)
            stack.pop()
            continue

        # operator
        op = token.value
        if expecting == "operand":
            if op != "-":
                raise _syntax_error(f"unexpected operator '{op}'", token.position)
            op = "NEG"
        while stack and stack[-1].type == "operator":
            top = stack[-1].value
            if op in _RIGHT_ASSOCIATIVE:
                should_pop = _PRECEDENCE[op] < _PRECEDENCE[top]
            else:
                should_pop = _PRECEDENCE[op] <= _PRECEDENCE[top]
            if not should_pop:
                break
            output.append(stack.pop())
        stack.append(Token("operator", op, token.position))
        expecting = "operand"

    if expecting == "operand":
        raise _syntax_error("expression ends unexpectedly", end_position)

    while stack:
        top = stack.pop()
        if top.type == "lparen":
            raise _syntax_error("unbalanced '('", top.position)
        output.append(top)

    return output


@lru_cache(maxsize=512)
def parse_expression(expression: str) -> ParsedExpression:
    """Tokenize and validate an expression.

    Raises:
        FormulaSyntaxError: If the expression is empty or malformed
    """
    if not expression or not expression.strip():
        raise FormulaSyntaxError(
            FormulaError(
                kind=FormulaErrorKind.SYNTAX_ERROR,
                message="expression is empty",
                position=0,
            )
        )

    tokens = _tokenize(expression)
    rpn = _to_rpn(tokens, len(expression.rstrip()))

    seen: dict[str, None] = {}
    for token in tokens:
        if token.type == "identifier":
            seen.setdefault(token.value, None)

    return ParsedExpression(expression=expression, rpn=tuple(rpn), variables=tuple(seen))


def validate_expression(expression: str) -> FormulaError | None:
    """Return the syntax error of an expression, or None when it parses."""
    try:
        parse_expression(expression)
    except FormulaSyntaxError as exc:
        return exc.error
    return None


def referenced_variables(expression: str) -> list[str]:
    """Identifiers referenced by a valid expression, in first-use order."""
    return list(parse_expression(expression).variables)


def _lookup(name: str, variables: Mapping[str, Any]) -> Decimal:
    value = to_decimal(variables.get(name))
    if value is None:
        raise _EvaluationFailure(
            FormulaError(
                kind=FormulaErrorKind.MISSING_VARIABLE,
                message=f"missing variable '{name}'",
                variable=name,
            )
        )
    return value


def _apply(op: str, left: Decimal, right: Decimal, position: int) -> Decimal:
    if op == "+":
        return _CONTEXT.add(left, right)
    if op == "-":
        return _CONTEXT.subtract(left, right)
    if op == "*":
        return _CONTEXT.multiply(left, right)
    if right.is_zero():
        raise _EvaluationFailure(
            FormulaError(
                kind=FormulaErrorKind.DIVISION_BY_ZERO,
                message="division by zero",
                position=position,
            )
        )
    return _CONTEXT.divide(left, right)


def evaluate_parsed(
    parsed: ParsedExpression, variables: Mapping[str, Any]
) -> EvaluationResult:
    """Evaluate a parsed expression against a variable mapping."""
    stack: list[Decimal] = []

    try:
        for token in parsed.rpn:
            if token.type == "number":
                stack.append(token.value)
            elif token.type == "identifier":
                stack.append(_lookup(token.value, variables))
            elif token.value == "NEG":
                stack.append(_CONTEXT.minus(stack.pop()))
            else:
                right = stack.pop()
                left = stack.pop()
                stack.append(_apply(token.value, left, right, token.position))
    except (Overflow, InvalidOperation):
        return EvaluationResult(
            value=None,
            error=FormulaError(
                kind=FormulaErrorKind.NON_FINITE_RESULT,
                message="result is not a finite number",
            ),
        )
    except _EvaluationFailure as exc:
        return EvaluationResult(value=None, error=exc.error)

    result = stack[0]
    if len(stack) != 1 or not result.is_finite():
        return EvaluationResult(
            value=None,
            error=FormulaError(
                kind=FormulaErrorKind.NON_FINITE_RESULT,
                message="result is not a finite number",
            ),
        )

    return EvaluationResult(value=result)


def evaluate(expression: str, variables: Mapping[str, Any]) -> EvaluationResult:
    """Evaluate ``expression`` with ``variables``.

    Args:
        expression: Arithmetic expression, e.g. ``"(a + b) / c"``
        variables: Variable name -> number (int, float, Decimal or numeric str)

    Returns:
        EvaluationResult with either a finite Decimal value or a FormulaError
    """
    try:
        parsed = parse_expression(expression)
    except FormulaSyntaxError as exc:
        return EvaluationResult(value=None, error=exc.error)
    return evaluate_parsed(parsed, variables)
