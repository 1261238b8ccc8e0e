"""gridcalc -- a formula-driven recalculation engine for named cells.

Usage::

    from gridcalc import Spreadsheet

    sheet = Spreadsheet()
    sheet.set_contents("A1", "4.1")
    sheet.set_contents("B1", "5.2")
    sheet.set_contents("C1", "=A1+B1")
    sheet.get_value("C1")   # 9.3
    sheet.save("book.sprd")
"""

__version__ = "0.1.0"

from gridcalc.dependency_graph import DependencyGraph
from gridcalc.errors import (
    CircularError,
    InvalidNameError,
    SpreadsheetError,
    SpreadsheetReadWriteError,
)
from gridcalc.formulas import EvaluationError, Formula, FormulaError, FormulaFormatError
from gridcalc.spreadsheet import Spreadsheet

__all__ = [
    "__version__",
    "CircularError",
    "DependencyGraph",
    "EvaluationError",
    "Formula",
    "FormulaError",
    "FormulaFormatError",
    "InvalidNameError",
    "Spreadsheet",
    "SpreadsheetError",
    "SpreadsheetReadWriteError",
]
