"""Error types for formula parsing and evaluation."""

from __future__ import annotations

from dataclasses import dataclass


class FormulaError(Exception):
    """Base class for all formula-related errors."""


class FormulaFormatError(FormulaError):
    """Syntax error in a formula expression.

    Raised only by the ``Formula`` constructor; no partial formula is produced.

    Attributes:
        position: Column (1-based) where the error was detected, if known.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula format error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


@dataclass(frozen=True)
class EvaluationError:
    """The value of a well-formed formula that cannot currently produce a number.

    This is a value, not an exception.  It is returned by
    ``Formula.evaluate`` and stored as a cell's value.
    """

    reason: str

    def __str__(self) -> str:
        return f"#ERROR: {self.reason}"
