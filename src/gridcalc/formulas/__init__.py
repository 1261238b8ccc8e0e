"""Infix arithmetic formula parsing and evaluation.

Public API::

    from gridcalc.formulas import Formula, EvaluationError, FormulaFormatError
"""

from gridcalc.formulas.errors import (
    EvaluationError,
    FormulaError,
    FormulaFormatError,
)
from gridcalc.formulas.evaluator import Lookup, evaluate_tokens
from gridcalc.formulas.formula import Formula, FormulaToken, format_number
from gridcalc.formulas.lexer import is_variable, tokenize

__all__ = [
    "EvaluationError",
    "Formula",
    "FormulaError",
    "FormulaFormatError",
    "FormulaToken",
    "Lookup",
    "evaluate_tokens",
    "format_number",
    "is_variable",
    "tokenize",
]
