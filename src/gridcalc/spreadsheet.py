"""Spreadsheet: named cells kept consistent with their formulas.

A spreadsheet holds an unbounded set of named cells.  Each cell has

- *contents*: a string, a float, or a ``Formula`` (the empty string means
  the cell is empty and it is not stored at all), and
- a cached *value*: a string, a float, or an ``EvaluationError``.

Every content change updates the dependency graph, computes the order in
which affected cells must be recalculated (rejecting the change if it would
create a cycle), and re-evaluates those cells in that order.

Usage::

    sheet = Spreadsheet(normalize=str.upper)
    sheet.set_contents("a1", "4.1")
    sheet.set_contents("b1", "=A1 * 2")
    sheet.get_value("B1")   # 8.2
"""

from __future__ import annotations

import logging
import math
import os
import re
import threading
from typing import Callable, Iterable, Iterator, Union

from gridcalc.dependency_graph import DependencyGraph
from gridcalc.errors import (
    CircularError,
    InvalidNameError,
    SpreadsheetError,
    SpreadsheetReadWriteError,
)
from gridcalc.formulas import EvaluationError, Formula, FormulaFormatError, format_number
from gridcalc.logging.events import (
    CIRCULAR_REFERENCE,
    FORMULA_FORMAT,
    SHEET_READ_FAILED,
    SHEET_WRITE_FAILED,
    VERSION_MISMATCH,
    EventLevel,
    EventType,
    emit,
    make_cell_event,
    make_sheet_event,
)
from gridcalc.sheet_io import read_sheet, read_version, write_sheet

logger = logging.getLogger(__name__)

Contents = Union[str, float, Formula]
Value = Union[str, float, EvaluationError]

DEFAULT_VERSION = "default"

_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER_RE = re.compile(r"\s*[+-]?(?:\d+\.\d*|\d*\.\d+|\d+)(?:[eE][+-]?\d+)?\s*")


def _identity(name: str) -> str:
    return name


def _accept_all(name: str) -> bool:
    return True


def contents_to_text(contents: Contents) -> str:
    """Render cell contents in the form ``set_contents`` accepts back.

    Formulas get a leading ``=``; numbers use ``format_number``.
    """
    if isinstance(contents, Formula):
        return f"={contents}"
    if isinstance(contents, float):
        return format_number(contents)
    return contents


class _Cell:
    __slots__ = ("contents", "value")

    def __init__(self, contents: Contents) -> None:
        self.contents = contents
        self.value: Value = ""


class Spreadsheet:
    """A recalculating spreadsheet of named cells.

    Parameters
    ----------
    is_valid : Callable[[str], bool] | None
        Extra restriction on (normalized) cell names.  Defaults to accepting
        every syntactically valid name.
    normalize : Callable[[str], str] | None
        Maps every incoming cell name (and formula variable) to its canonical
        form before it is checked or stored.  Defaults to identity.
    version : str
        Version tag written by ``save`` and required by ``load``.

    All public methods are serialized by one reentrant lock per instance, so
    the cell map and the dependency graph are never observed half-updated.
    """

    def __init__(
        self,
        is_valid: Callable[[str], bool] | None = None,
        normalize: Callable[[str], str] | None = None,
        version: str = DEFAULT_VERSION,
    ) -> None:
        self._is_valid = is_valid or _accept_all
        self._normalize = normalize or _identity
        self._version = version
        self._cells: dict[str, _Cell] = {}
        self._graph = DependencyGraph()
        self._changed = False
        self._lock = threading.RLock()

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str],
        is_valid: Callable[[str], bool] | None = None,
        normalize: Callable[[str], str] | None = None,
        version: str = DEFAULT_VERSION,
    ) -> Spreadsheet:
        """Build a spreadsheet from a file written by ``save``.

        Every stored cell is re-applied through ``set_contents``.

        Raises:
            SpreadsheetReadWriteError: If the file cannot be read, is not a
                well-formed spreadsheet, holds a different version than
                *version*, or contains an invalid cell.
        """
        sheet = cls(is_valid=is_valid, normalize=normalize, version=version)
        error_code = SHEET_READ_FAILED
        try:
            file_version, cells = read_sheet(path)
            if file_version != version:
                error_code = VERSION_MISMATCH
                raise SpreadsheetReadWriteError(
                    f"Version mismatch: file has {file_version!r}, expected {version!r}", path
                )
            for name, text in cells:
                try:
                    sheet._set_contents(name, text, log=False)
                except (SpreadsheetError, FormulaFormatError) as exc:
                    raise SpreadsheetReadWriteError(f"Invalid cell {name!r}: {exc}", path) from exc
        except SpreadsheetReadWriteError as exc:
            emit(make_sheet_event(
                EventType.sheet_io_failed,
                EventLevel.error,
                str(exc),
                path=str(path),
                version=version,
                error_code=error_code,
            ))
            raise

        sheet._changed = False
        emit(make_sheet_event(
            EventType.sheet_loaded,
            EventLevel.info,
            f"Loaded {len(sheet._cells)} cells",
            path=str(path),
            version=version,
        ))
        return sheet

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def changed(self) -> bool:
        """True if the sheet was modified since it was created, loaded or saved."""
        return self._changed

    @property
    def version(self) -> str:
        return self._version

    @property
    def is_valid(self) -> Callable[[str], bool]:
        return self._is_valid

    @property
    def normalize(self) -> Callable[[str], str]:
        return self._normalize

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def names_of_nonempty_cells(self) -> set[str]:
        """Return the names of all cells whose contents are not empty."""
        with self._lock:
            return set(self._cells)

    def get_contents(self, name: str) -> Contents:
        """Return the contents of cell *name*, or ``""`` if it is empty.

        Raises:
            InvalidNameError: If *name* is not a valid cell name.
        """
        with self._lock:
            cell = self._cells.get(self._check_name(name))
            return "" if cell is None else cell.contents

    def get_value(self, name: str) -> Value:
        """Return the cached value of cell *name*, or ``""`` if it is empty.

        Raises:
            InvalidNameError: If *name* is not a valid cell name.
        """
        with self._lock:
            cell = self._cells.get(self._check_name(name))
            return "" if cell is None else cell.value

    def get_direct_dependents(self, name: str) -> set[str]:
        """Return the cells whose formulas reference *name* directly."""
        with self._lock:
            return self._graph.get_dependents(self._check_name(name))

    def cells_to_recalculate(self, names: Iterable[str]) -> list[str]:
        """Return *names* and everything that depends on them, in evaluation order.

        Raises:
            InvalidNameError: If any name is invalid.
            CircularError: If a cycle is reachable from *names*.
        """
        with self._lock:
            return self._recalculation_order([self._check_name(n) for n in names])

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_contents(self, name: str, contents: str) -> list[str]:
        """Set the contents of cell *name* from user text.

        - Text that parses as a number becomes a float.
        - Text starting with ``=`` is parsed as a ``Formula``.
        - Anything else is stored as a string; ``""`` empties the cell.

        Returns:
            The recalculated cells in evaluation order, starting with *name*
            (normalized).

        Raises:
            TypeError: If *contents* is not a string.
            InvalidNameError: If *name* is not a valid cell name.
            FormulaFormatError: If the formula text is malformed.
            CircularError: If the change would create a circular dependency.

        On any error the spreadsheet is left unchanged.
        """
        return self._set_contents(name, contents, log=True)

    def _set_contents(self, name: str, contents: str, *, log: bool) -> list[str]:
        if not isinstance(contents, str):
            raise TypeError(f"contents must be a string, got {type(contents).__name__}")

        with self._lock:
            cell_name = self._check_name(name)
            try:
                new_contents = self._parse_contents(contents)
            except FormulaFormatError as exc:
                if log:
                    emit(make_cell_event(
                        EventType.formula_rejected,
                        EventLevel.warning,
                        str(exc),
                        cell=cell_name,
                        contents=contents,
                        error_code=FORMULA_FORMAT,
                    ))
                raise

            try:
                order = self._commit(cell_name, new_contents)
            except CircularError as exc:
                if log:
                    emit(make_cell_event(
                        EventType.circular_rejected,
                        EventLevel.warning,
                        str(exc),
                        cell=cell_name,
                        contents=contents,
                        error_code=CIRCULAR_REFERENCE,
                        extra={"cycle": exc.cycle_path},
                    ))
                raise

        if log:
            emit(make_cell_event(
                EventType.cell_updated,
                EventLevel.info,
                f"Set {cell_name}; recalculated {len(order)} cells",
                cell=cell_name,
                contents=contents,
                extra={"recalculated": order},
            ))
        return order

    def _commit(self, name: str, contents: Contents) -> list[str]:
        """Rewire the graph for *contents*, then store and recalculate.

        The only state touched before the cycle check is the cell's dependee
        set, which is restored verbatim if a cycle is found.
        """
        old_dependees = self._graph.get_dependees(name)
        new_dependees = contents.get_variables() if isinstance(contents, Formula) else ()
        self._graph.replace_dependees(name, new_dependees)
        try:
            order = self._recalculation_order([name])
        except CircularError:
            self._graph.replace_dependees(name, old_dependees)
            raise

        if isinstance(contents, str) and not contents:
            self._cells.pop(name, None)
        elif name in self._cells:
            self._cells[name].contents = contents
        else:
            self._cells[name] = _Cell(contents)
        self._changed = True

        logger.debug("recalculating %s", order)
        for cell_name in order:
            self._recalculate(cell_name)
        return order

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str | os.PathLike[str]) -> None:
        """Write the non-empty cells and the version tag to *path*.

        Resets ``changed`` on success.

        Raises:
            SpreadsheetReadWriteError: If the file cannot be written.
        """
        with self._lock:
            cells = [
                (name, contents_to_text(self._cells[name].contents))
                for name in sorted(self._cells)
            ]
            try:
                write_sheet(path, self._version, cells)
            except SpreadsheetReadWriteError as exc:
                emit(make_sheet_event(
                    EventType.sheet_io_failed,
                    EventLevel.error,
                    str(exc),
                    path=str(path),
                    version=self._version,
                    error_code=SHEET_WRITE_FAILED,
                ))
                raise
            self._changed = False

        emit(make_sheet_event(
            EventType.sheet_saved,
            EventLevel.info,
            f"Saved {len(cells)} cells",
            path=str(path),
            version=self._version,
        ))

    def get_saved_version(self, path: str | os.PathLike[str]) -> str:
        """Return the version tag stored in the spreadsheet file at *path*.

        Raises:
            SpreadsheetReadWriteError: If the file cannot be read.
        """
        return read_version(path)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_name(self, name: object) -> str:
        """Normalize *name* and validate it, or raise ``InvalidNameError``."""
        if not isinstance(name, str):
            raise InvalidNameError(name)
        normalized = self._normalize(name)
        if (
            not isinstance(normalized, str)
            or _NAME_RE.fullmatch(normalized) is None
            or not self._is_valid(normalized)
        ):
            raise InvalidNameError(name)
        return normalized

    def _parse_contents(self, text: str) -> Contents:
        if _NUMBER_RE.fullmatch(text):
            number = float(text)
            if math.isfinite(number):
                return number
        if text.startswith("="):
            return Formula(text[1:], self._normalize, self._is_valid)
        return text

    def _recalculation_order(self, roots: Iterable[str]) -> list[str]:
        """Order *roots* and their transitive dependents for recalculation.

        Depth-first over the dependents relation with three-state marking:
        a node seen again while still in progress closes a cycle.  The
        reversed post-order lists every cell after all cells it depends on.

        Raises:
            CircularError: If a cycle is reachable from *roots*.
        """
        visited: set[str] = set()
        in_progress: set[str] = set()
        path: list[str] = []
        postorder: list[str] = []
        stack: list[tuple[str, Iterator[str]]] = []

        def enter(node: str) -> None:
            in_progress.add(node)
            path.append(node)
            stack.append((node, iter(sorted(self._graph.get_dependents(node)))))

        for root in roots:
            if root in visited:
                continue
            enter(root)
            while stack:
                node, dependents = stack[-1]
                for dependent in dependents:
                    if dependent in in_progress:
                        start = path.index(dependent)
                        raise CircularError(path[start:] + [dependent])
                    if dependent not in visited:
                        enter(dependent)
                        break
                else:
                    stack.pop()
                    path.pop()
                    in_progress.discard(node)
                    visited.add(node)
                    postorder.append(node)

        postorder.reverse()
        return postorder

    def _recalculate(self, name: str) -> None:
        cell = self._cells.get(name)
        if cell is None:
            return
        if isinstance(cell.contents, Formula):
            cell.value = cell.contents.evaluate(self._lookup)
        else:
            cell.value = cell.contents

    def _lookup(self, name: str) -> float:
        """Return the cached numeric value of *name* for formula evaluation."""
        cell = self._cells.get(name)
        if cell is None or not isinstance(cell.value, float):
            raise ValueError(f"cell {name} does not hold a number")
        return cell.value

    def __repr__(self) -> str:
        return f"Spreadsheet(cells={len(self._cells)}, version={self._version!r})"
