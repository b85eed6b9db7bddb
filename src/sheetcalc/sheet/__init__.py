"""Cell storage, recalculation and export."""

from sheetcalc.sheet.cell import Cell, format_value
from sheetcalc.sheet.memory import RecalcSummary, SheetMemory, load_sheet

__all__ = [
    "Cell",
    "RecalcSummary",
    "SheetMemory",
    "format_value",
    "load_sheet",
]
