"""Lark-based tokenizer for infix arithmetic formulas.

Token kinds:
- ``LPAR`` / ``RPAR``: ``(`` and ``)``
- ``OPERATOR``: one of ``+ - * /``
- ``VARIABLE``: a letter or underscore followed by letters, digits, underscores
- ``NUMBER``: a non-negative decimal literal with optional exponent

Whitespace is discarded.  Grammar rules (operator placement, parenthesis
balance) are not checked here; see ``gridcalc.formulas.formula``.
"""

from __future__ import annotations

import re
from typing import Iterator

from lark import Lark, Token
from lark.exceptions import LarkError, UnexpectedCharacters

from gridcalc.formulas.errors import FormulaFormatError

# The parser is only built so that ``Lark.lex`` can reuse its terminal
# table; formulas are never parsed into a tree.
GRAMMAR = r"""
start: (LPAR | RPAR | OPERATOR | VARIABLE | NUMBER)*

LPAR: "("
RPAR: ")"
OPERATOR: /[+\-*\/]/
VARIABLE: /[A-Za-z_][A-Za-z0-9_]*/
NUMBER: /(?:\d+\.\d*|\d*\.\d+|\d+)(?:[eE][+\-]?\d+)?/

%import common.WS
%ignore WS
"""

_lexer = Lark(GRAMMAR, parser="lalr", start="start")

LPAR = "LPAR"
RPAR = "RPAR"
OPERATOR = "OPERATOR"
VARIABLE = "VARIABLE"
NUMBER = "NUMBER"

_VARIABLE_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_variable(text: str) -> bool:
    """Return True if *text* is a syntactically valid variable name."""
    return isinstance(text, str) and _VARIABLE_RE.fullmatch(text) is not None


def tokenize(text: str) -> Iterator[Token]:
    """Yield the tokens of *text*, skipping whitespace.

    Raises:
        FormulaFormatError: If a character matches no token pattern.
    """
    try:
        yield from _lexer.lex(text)
    except UnexpectedCharacters as exc:
        raise FormulaFormatError(
            f"Unrecognized token {exc.char!r}", position=exc.column
        ) from exc
    except LarkError as exc:
        raise FormulaFormatError(str(exc)) from exc
