"""Immutable infix arithmetic formulas.

A ``Formula`` is built from source text plus two callbacks:

- ``normalize``: maps a variable name to its canonical form
- ``is_valid``: decides whether a canonical variable name is acceptable

Construction tokenizes the text, enforces the grammar, and records the
canonical token sequence.  It either succeeds completely or raises
``FormulaFormatError``.

Grammar rules:

1. There is at least one token.
2. The first token is a number, a variable, or ``(``.
3. The last token is a number, a variable, or ``)``.
4. Closing parentheses never outnumber opening ones while scanning left to
   right, and the totals are equal at the end.
5. A token following ``(`` or an operator is a number, a variable, or ``(``.
6. A token following a number, a variable, or ``)`` is an operator or ``)``.
7. Every variable normalizes to a syntactically valid variable accepted by
   ``is_valid``.
"""

from __future__ import annotations

import math
from typing import Callable, Iterator, NamedTuple

from gridcalc.formulas.errors import EvaluationError, FormulaFormatError
from gridcalc.formulas.evaluator import Lookup, evaluate_tokens
from gridcalc.formulas.lexer import (
    LPAR,
    NUMBER,
    OPERATOR,
    RPAR,
    VARIABLE,
    is_variable,
    tokenize,
)


class FormulaToken(NamedTuple):
    """A canonical formula token.

    ``value`` is the parsed float for ``NUMBER`` tokens and ``None`` otherwise.
    """

    kind: str
    text: str
    value: float | None = None


def format_number(value: float) -> str:
    """Render a float the way formulas and saved sheets spell it.

    Integral values print without a fractional part (``500``); everything
    else uses the shortest round-tripping representation (``0.5``, ``1e+20``).
    """
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def _identity(name: str) -> str:
    return name


def _accept_all(name: str) -> bool:
    return True


class Formula:
    """A syntactically valid formula over ``+ - * /``, numbers and variables.

    Usage::

        f = Formula("x1 + 2.0*y", normalize=str.upper)
        str(f)              # "X1+2*Y"
        f.get_variables()   # frozenset({"X1", "Y"})
        f.evaluate(lambda name: 3.0)   # 9.0

    Two formulas are equal iff their canonical strings are equal.
    """

    __slots__ = ("_tokens", "_variables", "_canonical")

    def __init__(
        self,
        formula: str,
        normalize: Callable[[str], str] | None = None,
        is_valid: Callable[[str], bool] | None = None,
    ) -> None:
        if not isinstance(formula, str):
            raise TypeError(f"formula must be a string, got {type(formula).__name__}")
        tokens = tuple(
            _canonical_tokens(formula, normalize or _identity, is_valid or _accept_all)
        )
        object.__setattr__(self, "_tokens", tokens)
        object.__setattr__(
            self,
            "_variables",
            frozenset(t.text for t in tokens if t.kind == VARIABLE),
        )
        object.__setattr__(self, "_canonical", "".join(t.text for t in tokens))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("Formula objects are immutable")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def tokens(self) -> tuple[FormulaToken, ...]:
        """The canonical token sequence."""
        return self._tokens

    @property
    def canonical(self) -> str:
        """Whitespace-free rendering with normalized variables and numbers."""
        return self._canonical

    def get_variables(self) -> frozenset[str]:
        """Return the distinct normalized variable names in this formula."""
        return self._variables

    def evaluate(self, lookup: Lookup) -> float | EvaluationError:
        """Evaluate against *lookup*, which maps a variable name to its value.

        Never raises.  Division by zero, or a variable *lookup* cannot
        resolve to a number, yields an ``EvaluationError``.
        """
        return evaluate_tokens(self._tokens, lookup)

    # ------------------------------------------------------------------
    # Equality
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Formula):
            return NotImplemented
        return self._canonical == other._canonical

    def __hash__(self) -> int:
        return hash(self._canonical)

    def __str__(self) -> str:
        return self._canonical

    def __repr__(self) -> str:
        return f"Formula({self._canonical!r})"


def _canonical_tokens(
    text: str,
    normalize: Callable[[str], str],
    is_valid: Callable[[str], bool],
) -> Iterator[FormulaToken]:
    """Validate *text* and yield its canonical tokens (see module docstring)."""
    previous: str | None = None
    depth = 0

    for token in tokenize(text):
        kind = token.type
        if previous is not None:
            _check_following(previous, kind, token)
        elif kind in (OPERATOR, RPAR):
            raise FormulaFormatError(
                "Formula cannot begin with an operator or ')'", position=token.column
            )

        if kind == LPAR:
            depth += 1
            yield FormulaToken(LPAR, "(")
        elif kind == RPAR:
            depth -= 1
            if depth < 0:
                raise FormulaFormatError(
                    "Unbalanced parentheses: ')' has no matching '('",
                    position=token.column,
                )
            yield FormulaToken(RPAR, ")")
        elif kind == OPERATOR:
            yield FormulaToken(OPERATOR, str(token))
        elif kind == VARIABLE:
            yield FormulaToken(VARIABLE, _normalize_variable(str(token), normalize, is_valid))
        else:
            value = float(token)
            if not math.isfinite(value):
                raise FormulaFormatError(
                    f"Numeric literal {str(token)!r} is out of range",
                    position=token.column,
                )
            yield FormulaToken(NUMBER, format_number(value), value)

        previous = kind

    if previous is None:
        raise FormulaFormatError("Formula is empty")
    if previous in (OPERATOR, LPAR):
        raise FormulaFormatError("Formula cannot end with an operator or '('")
    if depth != 0:
        raise FormulaFormatError("Unbalanced parentheses: missing ')'")


def _check_following(previous: str, kind: str, token: object) -> None:
    position = getattr(token, "column", None)
    if previous in (OPERATOR, LPAR):
        if kind in (OPERATOR, RPAR):
            raise FormulaFormatError(
                f"{str(token)!r} cannot follow an operator or '('; "
                "expected a number, a variable, or '('",
                position=position,
            )
    elif kind in (NUMBER, VARIABLE, LPAR):
        raise FormulaFormatError(
            f"{str(token)!r} cannot follow a number, a variable, or ')'; "
            "expected an operator or ')'",
            position=position,
        )


def _normalize_variable(
    name: str,
    normalize: Callable[[str], str],
    is_valid: Callable[[str], bool],
) -> str:
    normalized = normalize(name)
    if not is_variable(normalized):
        raise FormulaFormatError(
            f"Variable {name!r} normalizes to {normalized!r}, which is not a valid variable"
        )
    if not is_valid(normalized):
        raise FormulaFormatError(f"Variable {normalized!r} is rejected by the validator")
    return normalized
