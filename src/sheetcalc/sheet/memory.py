"""In-memory cell store with dependency-ordered recalculation.

``SheetMemory`` is the store the evaluator reads referenced cells from.
Every edit triggers a full recalculation: non-empty cells are ordered so
that each is evaluated after the cells it references, and cells that
cannot be ordered because of a reference cycle are marked ``#CIRC!``
without being evaluated.
"""

from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import yaml

from sheetcalc.formulas.errors import CellLabelError, ErrorMessage, FormulaParseError
from sheetcalc.formulas.evaluator import DEFAULT_MAX_DEPTH, EvaluationResult, FormulaEvaluator
from sheetcalc.formulas.tokens import TokenLike, extract_refs, make_label, parse_label, tokenize
from sheetcalc.logging.events import (
    record_cell_error,
    record_cycle,
    record_parse_error,
    record_recalc_completed,
    record_recalc_started,
)
from sheetcalc.sheet.cell import Cell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalcSummary:
    """Outcome of one recalculation pass.

    Attributes:
        evaluated: Number of cells evaluated.
        errors: Label -> error for every cell left in an error state.
        cycles: Labels that could not be ordered (sorted row-major).
        elapsed_ms: Wall time of the pass.
    """

    evaluated: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    cycles: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0


class SheetMemory:
    """Grid of cells addressed by A1-style labels.

    Parameters
    ----------
    rows : int
        Number of rows in the grid.
    cols : int
        Number of columns in the grid.
    max_depth : int
        Parenthesis nesting limit passed to the evaluator.
    """

    def __init__(self, rows: int = 100, cols: int = 26, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if rows < 1 or cols < 1:
            raise ValueError(f"Sheet needs at least one row and column, got {rows}x{cols}")
        self.rows = rows
        self.cols = cols
        self._cells: dict[str, Cell] = {}
        self._evaluator = FormulaEvaluator(self, max_depth=max_depth)

    # ------------------------------------------------------------------
    # CellStore protocol implementation
    # ------------------------------------------------------------------

    def get_cell_by_label(self, label: str) -> Cell:
        """Return the cell at *label* (an empty cell if never set).

        Raises:
            CellLabelError: If *label* is malformed or outside the grid.
        """
        self._check_label(label)
        cell = self._cells.get(label)
        if cell is None:
            return Cell(label)
        return cell

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def set_cell_formula(self, label: str, formula: str | Sequence[TokenLike]) -> Cell:
        """Store a formula at *label* and recalculate the sheet.

        Args:
            label: Target cell, e.g. ``"B2"``.
            formula: Formula text (``"=A1 * 2"``) or a token sequence.

        Returns:
            The updated cell.

        Raises:
            CellLabelError: If *label* is not addressable.
            FormulaParseError: If *formula* text cannot be tokenized.
        """
        self._store(label, formula)
        self.recalculate()
        return self.get_cell_by_label(label)

    def clear_cell(self, label: str) -> None:
        """Remove the formula at *label* and recalculate."""
        self._check_label(label)
        self._cells.pop(label, None)
        self.recalculate()

    def _store(self, label: str, formula: str | Sequence[TokenLike]) -> None:
        self._check_label(label)
        if isinstance(formula, str):
            try:
                tokens = tokenize(formula)
            except FormulaParseError as exc:
                record_parse_error(label, formula, exc)
                raise
        else:
            tokens = list(formula)
        if not tokens:
            self._cells.pop(label, None)
            return
        self._cells[label] = Cell(label, tokens)

    def _check_label(self, label: str) -> None:
        row, col = parse_label(label)
        if row >= self.rows or col >= self.cols:
            raise CellLabelError(
                label,
                f"Cell {label!r} is outside the {self.rows}x{self.cols} sheet",
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def labels(self) -> list[str]:
        """Labels of all non-empty cells, row-major."""
        return sorted(self._cells, key=parse_label)

    def cells(self) -> list[Cell]:
        return [self._cells[label] for label in self.labels()]

    def values(self) -> dict[str, float]:
        return {cell.label: cell.value for cell in self.cells()}

    def errors(self) -> dict[str, str]:
        return {cell.label: cell.error for cell in self.cells() if cell.error}

    def evaluate_formula(self, formula: str | Sequence[TokenLike]) -> EvaluationResult:
        """Evaluate an ad-hoc formula against the current sheet without storing it."""
        tokens = tokenize(formula) if isinstance(formula, str) else formula
        return self._evaluator.evaluate(tokens)

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    def recalculate(self) -> RecalcSummary:
        """Re-evaluate every non-empty cell in dependency order.

        Returns:
            A :class:`RecalcSummary` for the pass.
        """
        t0 = time.perf_counter()
        record_recalc_started(list(self._cells))

        deps: dict[str, set[str]] = {
            label: extract_refs(cell.formula) & set(self._cells)
            for label, cell in self._cells.items()
        }
        dependents: dict[str, list[str]] = {label: [] for label in self._cells}
        pending = {label: len(d) for label, d in deps.items()}
        for label, d in deps.items():
            for dep in d:
                dependents[dep].append(label)

        ready = [(parse_label(label), label) for label, n in pending.items() if n == 0]
        heapq.heapify(ready)

        evaluated = 0
        while ready:
            _, label = heapq.heappop(ready)
            cell = self._cells[label]
            cell.value, cell.error = self._evaluator.evaluate(cell.formula)
            evaluated += 1
            for dependent in dependents[label]:
                pending[dependent] -= 1
                if pending[dependent] == 0:
                    heapq.heappush(ready, (parse_label(dependent), dependent))

        cycles = sorted((label for label, n in pending.items() if n > 0), key=parse_label)
        for label in cycles:
            cell = self._cells[label]
            cell.value = 0
            cell.error = ErrorMessage.CIRCULAR_REFERENCE.value

        summary = RecalcSummary(
            evaluated=evaluated,
            errors=self.errors(),
            cycles=cycles,
            elapsed_ms=round((time.perf_counter() - t0) * 1000, 3),
        )
        self._emit_recalc_events(summary)
        return summary

    def _emit_recalc_events(self, summary: RecalcSummary) -> None:
        if summary.cycles:
            record_cycle(summary.cycles)
        for label, error in summary.errors.items():
            if label in summary.cycles:
                continue
            logger.debug("cell %s evaluated with error %s", label, error)
            record_cell_error(label, self._cells[label].source, error)
        record_recalc_completed(
            summary.evaluated,
            len(summary.errors),
            len(summary.cycles),
            summary.elapsed_ms,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, max_depth: int = DEFAULT_MAX_DEPTH) -> SheetMemory:
        """Build a sheet from ``{"rows": .., "cols": .., "cells": {label: formula}}``.

        Cell entries may be formula text or bare numbers.
        """
        sheet = cls(
            rows=int(data.get("rows", 100)),
            cols=int(data.get("cols", 26)),
            max_depth=max_depth,
        )
        for label, raw in (data.get("cells") or {}).items():
            sheet._store(str(label).upper(), "" if raw is None else str(raw))
        sheet.recalculate()
        return sheet

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "cols": self.cols,
            "cells": {cell.label: "=" + cell.source for cell in self.cells()},
        }

    def grid(self) -> list[list[str]]:
        """Display strings for every position, row-major, trimmed to used bounds."""
        if not self._cells:
            return []
        positions = [parse_label(label) for label in self._cells]
        n_rows = max(r for r, _ in positions) + 1
        n_cols = max(c for _, c in positions) + 1
        return [
            [self.get_cell_by_label(make_label(r, c)).display for c in range(n_cols)]
            for r in range(n_rows)
        ]


def load_sheet(path: Path, config: dict[str, Any] | None = None) -> SheetMemory:
    """Load a sheet from a YAML file.

    Args:
        path: Sheet file (see ``sheetcalc.config.DEMO_SHEET`` for the layout).
        config: Project config; supplies grid bounds and the depth limit.

    Raises:
        ValueError: If the file is not a YAML mapping.
    """
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a YAML mapping")
    config = config or {}
    data.setdefault("rows", config.get("max_rows", 100))
    data.setdefault("cols", config.get("max_cols", 26))
    return SheetMemory.from_dict(data, max_depth=int(config.get("max_paren_depth", DEFAULT_MAX_DEPTH)))
