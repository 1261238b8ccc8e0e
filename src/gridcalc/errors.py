"""Error types raised by the spreadsheet engine."""

from __future__ import annotations


class SpreadsheetError(Exception):
    """Base class for spreadsheet errors."""


class InvalidNameError(SpreadsheetError):
    """A cell name is malformed or rejected by the spreadsheet's validator.

    Attributes:
        name: The offending name, as supplied by the caller.
    """

    def __init__(self, name: object) -> None:
        self.name = name
        super().__init__(f"Invalid cell name: {name!r}")


class CircularError(SpreadsheetError):
    """Raised when a content change would create a circular dependency.

    The spreadsheet is left exactly as it was before the call.

    Attributes:
        cycle_path: Cells on the detected cycle; the first and last entries
            are the same cell.
    """

    def __init__(self, cycle_path: list[str]) -> None:
        self.cycle_path = cycle_path
        super().__init__(f"Circular cell reference: {' -> '.join(cycle_path)}")


class SpreadsheetReadWriteError(SpreadsheetError):
    """A spreadsheet file could not be read, written, or did not match.

    Attributes:
        path: The file involved, if known.
    """

    def __init__(self, message: str, path: object = None) -> None:
        self.path = path
        full = message
        if path is not None:
            full += f" ({path})"
        super().__init__(full)
