"""A single spreadsheet cell: formula tokens plus last computed value/error."""

from __future__ import annotations

import math
from typing import Any, Iterable

from sheetcalc.formulas.errors import ErrorMessage
from sheetcalc.formulas.tokens import Token, TokenLike, as_tokens, formula_text


class Cell:
    """Stored state of one cell.

    ``value`` and ``error`` are written by the recalculation pass; the
    evaluator reads them when another formula references this cell.
    """

    def __init__(
        self,
        label: str,
        formula: Iterable[TokenLike] = (),
        value: float = 0,
        error: str = "",
    ) -> None:
        self.label = label
        self.formula: tuple[Token, ...] = as_tokens(formula)
        self.value = value
        self.error = error

    @property
    def is_empty(self) -> bool:
        return len(self.formula) == 0

    @property
    def source(self) -> str:
        """Formula rendered back to text (no leading ``=``)."""
        return formula_text(self.formula)

    @property
    def display(self) -> str:
        """Display string: the error, the formatted value, or ``""`` if empty."""
        if self.error and self.error != ErrorMessage.EMPTY_FORMULA.value:
            return self.error
        if self.is_empty:
            return ""
        return format_value(self.value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "formula": self.source,
            "value": self.value,
            "error": self.error,
            "display": self.display,
        }

    def __repr__(self) -> str:
        return f"Cell({self.label!r}, formula={self.source!r}, value={self.value!r}, error={self.error!r})"


def format_value(value: float) -> str:
    """Format a numeric value cleanly (``3.0`` -> ``"3"``)."""
    if isinstance(value, float):
        if not math.isfinite(value):
            return str(value)
        if value == int(value):
            return str(int(value))
        return f"{value:.10g}"
    return str(value)
