"""sheetcalc -- recursive-descent formula evaluation for spreadsheet cells."""

__version__ = "0.1.0"
