"""Export computed sheet cells as a polars DataFrame or CSV."""

from __future__ import annotations

from pathlib import Path

import polars as pl

from sheetcalc.formulas.tokens import parse_label
from sheetcalc.sheet.memory import SheetMemory

_SCHEMA = {
    "label": pl.Utf8,
    "row": pl.Int64,
    "col": pl.Int64,
    "formula": pl.Utf8,
    "value": pl.Float64,
    "error": pl.Utf8,
    "display": pl.Utf8,
}


def to_frame(sheet: SheetMemory) -> pl.DataFrame:
    """One row per non-empty cell, row-major, with 1-based row/col numbers.

    ``value`` is null for cells in an error state.
    """
    records = []
    for cell in sheet.cells():
        row, col = parse_label(cell.label)
        records.append({
            "label": cell.label,
            "row": row + 1,
            "col": col + 1,
            "formula": cell.source,
            "value": None if cell.error else float(cell.value),
            "error": cell.error,
            "display": cell.display,
        })
    return pl.DataFrame(records, schema=_SCHEMA)


def write_csv(sheet: SheetMemory, path: Path) -> Path:
    """Write :func:`to_frame` output to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    to_frame(sheet).write_csv(path)
    return path
