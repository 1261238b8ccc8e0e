"""Command-line interface for gridcalc."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from gridcalc import __version__
from gridcalc.errors import SpreadsheetError
from gridcalc.formulas import EvaluationError, FormulaFormatError


@click.group()
@click.version_option(version=__version__, prog_name="gridcalc")
def main() -> None:
    """gridcalc -- recalculating spreadsheet engine for named cells."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _open(file: str, project: str | None) -> tuple[Path, Any]:
    """Resolve the project config for *file*, enable event logging, open the sheet."""
    from gridcalc.logging.events import set_project_dir
    from gridcalc.project import load_project_config, open_spreadsheet

    sheet_path = Path(file)
    project_dir = Path(project) if project else sheet_path.resolve().parent
    try:
        config = load_project_config(project_dir)
        set_project_dir(project_dir)
        return sheet_path, open_spreadsheet(sheet_path, config)
    except (SpreadsheetError, ValueError) as e:
        raise click.ClickException(str(e))


def _parse_vars(items: tuple[str, ...]) -> dict[str, float]:
    variables: dict[str, float] = {}
    for item in items:
        if "=" not in item:
            raise click.ClickException(f"Invalid --var format: {item!r}. Use NAME=VALUE.")
        k, v = item.split("=", 1)
        try:
            variables[k.strip()] = float(v)
        except ValueError:
            raise click.ClickException(f"Invalid number for {k!r}: {v!r}")
    return variables


def _cell_row(sheet: Any, name: str) -> dict[str, Any]:
    from gridcalc.export import display_value
    from gridcalc.spreadsheet import contents_to_text

    value = sheet.get_value(name)
    row: dict[str, Any] = {
        "name": name,
        "contents": contents_to_text(sheet.get_contents(name)),
        "value": display_value(value),
    }
    if isinstance(value, EvaluationError):
        row["error"] = value.reason
    return row


_project_option = click.option(
    "--project",
    "project",
    default=None,
    type=click.Path(file_okay=False),
    help="Project directory holding gridcalc.yaml (default: the sheet's directory).",
)


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
@click.option("--sheet", "sheet_name", default="sheet", help="Name of the initial sheet file.")
def new(directory: str, sheet_name: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from gridcalc.project import scaffold_project

    try:
        result = scaffold_project(Path(directory), sheet_name=sheet_name)
    except (FileExistsError, SpreadsheetError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


@main.command("set")
@click.argument("file", type=click.Path(dir_okay=False))
@click.argument("name")
@click.argument("contents")
@_project_option
def set_cell(file: str, name: str, contents: str, project: str | None) -> None:
    """Set cell NAME in FILE to CONTENTS and save.

    CONTENTS is a number, text, or a formula starting with '='.  An empty
    string clears the cell.  Every recalculated cell is printed.
    """
    from gridcalc.export import display_value

    sheet_path, sheet = _open(file, project)
    try:
        order = sheet.set_contents(name, contents)
        sheet.save(sheet_path)
    except (SpreadsheetError, FormulaFormatError) as e:
        raise click.ClickException(str(e))

    for cell in order:
        click.echo(f"{cell} = {display_value(sheet.get_value(cell))}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("name")
@_project_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def get(file: str, name: str, project: str | None, as_json: bool) -> None:
    """Show the contents and value of cell NAME."""
    _, sheet = _open(file, project)
    try:
        row = _cell_row(sheet, name)
    except SpreadsheetError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(row, indent=2))
        return
    click.echo(f"contents: {row['contents']}")
    click.echo(f"value:    {row['value']}")


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@_project_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show(file: str, project: str | None, as_json: bool) -> None:
    """List every non-empty cell in FILE."""
    _, sheet = _open(file, project)
    rows = [_cell_row(sheet, n) for n in sorted(sheet.names_of_nonempty_cells())]

    if as_json:
        click.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        click.echo("No cells.")
        return
    for row in rows:
        click.echo(f"  {row['name']:10s} {row['contents']:30s} {row['value']}")


@main.command("eval")
@click.argument("expression")
@click.option("--var", "variables", multiple=True, help="Variable value as NAME=VALUE.")
def eval_formula(expression: str, variables: tuple[str, ...]) -> None:
    """Evaluate a standalone formula EXPRESSION."""
    from gridcalc.export import display_value
    from gridcalc.formulas import Formula

    values = _parse_vars(variables)
    try:
        formula = Formula(expression.removeprefix("="))
    except FormulaFormatError as e:
        raise click.ClickException(str(e))

    result = formula.evaluate(values.__getitem__)
    if isinstance(result, EvaluationError):
        raise click.ClickException(result.reason)
    click.echo(display_value(result))


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def version(file: str) -> None:
    """Print the version tag stored in FILE."""
    from gridcalc.sheet_io import read_version

    try:
        click.echo(read_version(file))
    except SpreadsheetError as e:
        raise click.ClickException(str(e))


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False))
@_project_option
def export(file: str, output: str, project: str | None) -> None:
    """Export the cells of FILE to OUTPUT (.csv or .parquet)."""
    from gridcalc.export import export_cells

    _, sheet = _open(file, project)
    try:
        path = export_cells(sheet, Path(output))
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Exported {len(sheet.names_of_nonempty_cells())} cells to {path}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]))
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--cell", default=None, help="Filter by cell name.")
@click.option("--limit", default=50, show_default=True, type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def events(
    directory: str,
    level: str | None,
    event_type: str | None,
    cell: str | None,
    limit: int,
    as_json: bool,
) -> None:
    """Show logged events for the project in DIRECTORY, newest first."""
    from gridcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    found = sink.read_events(level=level, event_type=event_type, cell=cell, limit=limit)

    if as_json:
        click.echo(json.dumps(found, indent=2))
        return
    if not found:
        click.echo("No events.")
        return
    for evt in found:
        code = f" [{evt['error_code']}]" if evt.get("error_code") else ""
        click.echo(f"{evt['ts']}  {evt['level']:7s} {evt['event_type']}{code}  {evt['message']}")
