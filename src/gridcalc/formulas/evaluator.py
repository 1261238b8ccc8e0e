"""Two-stack evaluator for validated formula token sequences.

Scans the tokens left to right with an operand stack and an operator stack.
``*`` and ``/`` bind tighter than ``+`` and ``-``; all operators are
left-associative.

Evaluation never raises: division by zero and failed variable lookups
return an ``EvaluationError`` value and stop the scan.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol

from gridcalc.formulas.errors import EvaluationError
from gridcalc.formulas.lexer import LPAR, OPERATOR, RPAR, VARIABLE

# Maps a normalized variable name to its numeric value.  Raising any
# exception (or returning a non-number) means "no numeric value right now".
Lookup = Callable[[str], float]


class _Token(Protocol):
    kind: str
    text: str
    value: float | None


def evaluate_tokens(tokens: Iterable[_Token], lookup: Lookup) -> float | EvaluationError:
    """Evaluate a canonical token sequence produced by ``Formula``.

    Args:
        tokens: Tokens that already satisfy the formula grammar.
        lookup: Variable resolver.

    Returns:
        The numeric result, or an ``EvaluationError``.
    """
    values: list[float] = []
    operators: list[str] = []

    for token in tokens:
        kind = token.kind

        if kind == OPERATOR and token.text in "+-":
            if operators and operators[-1] in "+-":
                values.append(_apply(operators.pop(), values))
            operators.append(token.text)
            continue

        if kind == OPERATOR or kind == LPAR:
            operators.append(token.text)
            continue

        if kind == RPAR:
            if operators and operators[-1] in "+-":
                values.append(_apply(operators.pop(), values))
            if operators and operators[-1] == "(":
                operators.pop()
            if operators and operators[-1] in "*/":
                result = _apply(operators.pop(), values)
                if isinstance(result, EvaluationError):
                    return result
                values.append(result)
            continue

        if kind == VARIABLE:
            number = _resolve(token.text, lookup)
            if isinstance(number, EvaluationError):
                return number
        else:
            number = token.value

        if operators and operators[-1] in "*/":
            values.append(number)
            result = _apply(operators.pop(), values)
            if isinstance(result, EvaluationError):
                return result
            values.append(result)
        else:
            values.append(number)

    if not operators:
        return values.pop()
    return _apply(operators.pop(), values)


def _apply(op: str, values: list[float]) -> Any:
    """Pop two operands, apply *op*, and return the result.

    The first popped value is the right operand.  Only ``/`` can fail.
    """
    right = values.pop()
    left = values.pop()
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        return EvaluationError("Division by zero")
    return left / right


def _resolve(name: str, lookup: Lookup) -> float | EvaluationError:
    try:
        value = lookup(name)
    except Exception as exc:
        detail = str(exc).strip("'\"")
        reason = f"Cannot resolve variable {name!r}"
        if detail:
            reason += f": {detail}"
        return EvaluationError(reason)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return EvaluationError(f"Variable {name!r} does not have a numeric value")
    return float(value)
