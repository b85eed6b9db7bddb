"""Command-line interface for sheetcalc."""

from __future__ import annotations

import json
import math
from pathlib import Path

import click

from sheetcalc import __version__
from sheetcalc.formulas.errors import FormulaError


@click.group()
@click.version_option(version=__version__, prog_name="sheetcalc")
def main() -> None:
    """sheetcalc -- evaluate spreadsheet formulas and sheets."""


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _resolve_sheet_path(target: Path) -> tuple[Path, Path | None]:
    """Return (sheet_file, project_dir) for a sheet file or project directory."""
    from sheetcalc.config import SHEET_FILENAME

    if target.is_dir():
        sheet_path = target / SHEET_FILENAME
        if not sheet_path.exists():
            raise click.ClickException(f"No {SHEET_FILENAME} in {target}")
        return sheet_path, target
    return target, None


def _json_number(value: float) -> float | None:
    """JSON has no infinity or NaN; such values are written as null."""
    return value if math.isfinite(value) else None


def _load(target: Path):
    from sheetcalc.config import load_project_config
    from sheetcalc.logging.events import set_project_dir
    from sheetcalc.sheet.memory import load_sheet

    sheet_path, project_dir = _resolve_sheet_path(target)
    config = load_project_config(project_dir) if project_dir else {}
    if project_dir:
        set_project_dir(project_dir, config)
    try:
        return load_sheet(sheet_path, config)
    except (FormulaError, ValueError) as e:
        raise click.ClickException(str(e))


# ---------------------------------------------------------------------------
# New
# ---------------------------------------------------------------------------


@main.command()
@click.argument("directory", type=click.Path())
def new(directory: str) -> None:
    """Scaffold a new project at DIRECTORY."""
    from sheetcalc.config import scaffold_project

    try:
        result = scaffold_project(Path(directory))
    except FileExistsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created project at {result}")


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------


@main.command("eval")
@click.argument("formula")
@click.option("--sheet", "sheet_target", default=None, type=click.Path(exists=True), help="Sheet file or project directory to resolve references against.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def eval_cmd(formula: str, sheet_target: str | None, as_json: bool) -> None:
    """Evaluate FORMULA (e.g. "=A1 * (2 + 3)")."""
    from sheetcalc.sheet.cell import format_value
    from sheetcalc.sheet.memory import SheetMemory

    sheet = _load(Path(sheet_target)) if sheet_target else SheetMemory()
    try:
        value, error = sheet.evaluate_formula(formula)
    except FormulaError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps({"value": _json_number(value), "error": error}, allow_nan=False))
    else:
        click.echo(error or format_value(value))
    if error:
        raise SystemExit(1)


@main.command()
@click.argument("formula")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def tokens(formula: str, as_json: bool) -> None:
    """Show the tokens of FORMULA."""
    from sheetcalc.formulas.tokens import tokenize

    try:
        toks = tokenize(formula)
    except FormulaError as e:
        raise click.ClickException(str(e))

    if as_json:
        out = [{"kind": t.kind.value, "text": t.text, "position": t.position} for t in toks]
        click.echo(json.dumps(out, indent=2))
        return
    for t in toks:
        click.echo(f"  {t.position:>4}  {t.kind.value:9s} {t.text}")


# ---------------------------------------------------------------------------
# Sheets
# ---------------------------------------------------------------------------


@main.command()
@click.argument("target", type=click.Path(exists=True))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--csv", "csv_path", default=None, type=click.Path(), help="Also write computed cells to a CSV file.")
@click.option("--grid", is_flag=True, help="Print the sheet as a grid.")
def run(target: str, as_json: bool, csv_path: str | None, grid: bool) -> None:
    """Recalculate the sheet in TARGET (a sheet file or project directory)."""
    sheet = _load(Path(target))

    if csv_path:
        from sheetcalc.sheet.export import write_csv

        write_csv(sheet, Path(csv_path))

    if as_json:
        out = [{**c.to_dict(), "value": _json_number(c.value)} for c in sheet.cells()]
        click.echo(json.dumps(out, indent=2, allow_nan=False))
        return

    if grid:
        from sheetcalc.formulas.tokens import index_to_col_letter

        rows = sheet.grid()
        if not rows:
            click.echo("Sheet is empty.")
            return
        header = "     " + "".join(f"{index_to_col_letter(c):>12s}" for c in range(len(rows[0])))
        click.echo(header)
        for r, row in enumerate(rows):
            click.echo(f"{r + 1:>4} " + "".join(f"{v:>12s}" for v in row))
        return

    cells = sheet.cells()
    if not cells:
        click.echo("Sheet is empty.")
        return
    for cell in cells:
        click.echo(f"  {cell.label:6s} {cell.display:>14s}   ={cell.source}")


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@main.command("events")
@click.argument("directory", type=click.Path(exists=True))
@click.option("--level", default=None, type=click.Choice(["info", "warning", "error"]), help="Filter by level.")
@click.option("--type", "event_type", default=None, help="Filter by event type.")
@click.option("--label", default=None, help="Filter by cell label.")
@click.option("--limit", default=100, type=int, help="Maximum events to show.")
def events_cmd(
    directory: str,
    level: str | None,
    event_type: str | None,
    label: str | None,
    limit: int,
) -> None:
    """Show structured event log for DIRECTORY."""
    from sheetcalc.logging.sink import EventSink

    sink = EventSink(Path(directory))
    events = sink.read_global(
        level=level,
        event_type=event_type,
        label=label,
        limit=limit,
    )

    if not events:
        click.echo("No events found.")
        return

    for evt in events:
        ts = evt.get("ts", "")
        lvl = evt.get("level", "").upper()
        etype = evt.get("event_type", "")
        msg = evt.get("message", "")
        err = evt.get("error_code")
        line = f"[{ts}] {lvl:7s} {etype}: {msg}"
        if err:
            line += f"  ({err})"
        click.echo(line)


if __name__ == "__main__":
    main()
