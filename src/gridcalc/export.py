"""Tabular export of spreadsheet cells."""

from __future__ import annotations

from pathlib import Path

import polars as pl

from gridcalc.formulas import EvaluationError, format_number
from gridcalc.spreadsheet import Spreadsheet, contents_to_text

_SCHEMA = {
    "name": pl.Utf8,
    "contents": pl.Utf8,
    "value": pl.Utf8,
    "number": pl.Float64,
    "error": pl.Utf8,
}


def cells_frame(sheet: Spreadsheet) -> pl.DataFrame:
    """Build a DataFrame of every non-empty cell, sorted by name.

    Columns: ``name``, ``contents`` (persisted form), ``value`` (display
    string), ``number`` (the value when numeric, else null) and ``error``
    (the evaluation error reason, else null).
    """
    rows: dict[str, list] = {col: [] for col in _SCHEMA}
    for name in sorted(sheet.names_of_nonempty_cells()):
        value = sheet.get_value(name)
        rows["name"].append(name)
        rows["contents"].append(contents_to_text(sheet.get_contents(name)))
        rows["value"].append(display_value(value))
        rows["number"].append(value if isinstance(value, float) else None)
        rows["error"].append(value.reason if isinstance(value, EvaluationError) else None)
    return pl.DataFrame(rows, schema=_SCHEMA)


def display_value(value: object) -> str:
    """Format a cell value for display."""
    if isinstance(value, float):
        return format_number(value)
    return str(value)


def export_cells(sheet: Spreadsheet, path: Path) -> Path:
    """Write the cell table to *path* as CSV or Parquet, chosen by suffix.

    Raises:
        ValueError: If the suffix is neither ``.csv`` nor ``.parquet``.
    """
    suffix = path.suffix.lower()
    df = cells_frame(sheet)
    if suffix == ".csv":
        df.write_csv(path)
    elif suffix == ".parquet":
        df.write_parquet(path)
    else:
        raise ValueError(f"Unsupported export format {path.suffix!r}; use .csv or .parquet")
    return path
