"""Recursive-descent evaluator for tokenized cell formulas.

Parsing and evaluation are fused: each grammar production returns the
value of the text it recognized.  Precedence (lowest to highest)::

    expression := term { ("+" | "-") term }
    term       := factor { ("*" | "/") factor }
    factor     := NUMBER | CELL_REF | "(" expression ")"

The evaluator never raises for bad input.  Every call returns an
:class:`EvaluationResult` whose ``error`` is empty exactly when the whole
formula was consumed without a problem.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, NamedTuple, Protocol, Sequence

from sheetcalc.formulas.errors import ErrorMessage
from sheetcalc.formulas.tokens import (
    Formula,
    Token,
    TokenKind,
    as_tokens,
    is_valid_label,
)

DEFAULT_MAX_DEPTH = 100


# ---------------------------------------------------------------------------
# Store protocol -- the evaluator only ever reads through it
# ---------------------------------------------------------------------------


class CellSnapshot(Protocol):
    """Read-only view of a stored cell."""

    @property
    def formula(self) -> Sequence[Token | str]: ...

    @property
    def value(self) -> float: ...

    @property
    def error(self) -> str: ...


class CellStore(Protocol):
    """Protocol for looking up previously computed cells by label."""

    def get_cell_by_label(self, label: str) -> CellSnapshot:
        """Return the cell stored under *label*.

        May raise ``LookupError`` for labels the store cannot address.
        """
        ...


class EvaluationResult(NamedTuple):
    """Outcome of one evaluation; compares equal to ``(value, error)``."""

    value: float
    error: str

    @property
    def ok(self) -> bool:
        return self.error == ""


@dataclass
class _EvaluationState:
    """Per-call parser state, threaded through the descent."""

    tokens: tuple[Token, ...]
    cursor: int = 0
    error_occurred: bool = False
    error_message: str = ""
    depth: int = 0

    @property
    def current(self) -> Token | None:
        if self.cursor < len(self.tokens):
            return self.tokens[self.cursor]
        return None

    def is_current(self, kind: TokenKind, text: str | None = None) -> bool:
        tok = self.current
        if tok is None or tok.kind is not kind:
            return False
        return text is None or tok.text == text

    def advance(self) -> None:
        self.cursor += 1

    def fail(self, message: str) -> None:
        """Record an error; the first one recorded is kept."""
        if not self.error_occurred:
            self.error_occurred = True
            self.error_message = message


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class FormulaEvaluator:
    """Evaluate formulas against a cell store.

    The evaluator keeps no state between calls, so one instance can be
    shared across sequential and concurrent evaluations.

    Parameters
    ----------
    store : CellStore
        Source of referenced cells' formula, value and error.
    is_valid_label : Callable[[str], bool]
        Predicate recognizing cell-reference labels.
    max_depth : int
        Maximum parenthesis nesting before ``#DEPTH!`` is reported.
    """

    def __init__(
        self,
        store: CellStore,
        *,
        is_valid_label: Callable[[str], bool] = is_valid_label,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self._store = store
        self._is_valid_label = is_valid_label
        self._max_depth = max_depth

    def evaluate(self, formula: Formula) -> EvaluationResult:
        """Evaluate *formula* and return its value and error.

        An empty formula yields ``(0, "#EMPTY!")``.  Tokens left over after
        a complete expression yield ``"#ERR"`` unless an earlier error was
        already recorded.  The value is the value of the top-level
        expression, including when an error was recorded.

        Args:
            formula: Ordered tokens (or raw token strings).

        Returns:
            ``EvaluationResult(value, error)`` with ``error == ""`` on success.
        """
        if len(formula) == 0:
            return EvaluationResult(0, ErrorMessage.EMPTY_FORMULA.value)

        state = _EvaluationState(as_tokens(formula, self._is_valid_label))
        try:
            result = self._expression(state)
        except RecursionError:
            # max_depth is set above what the interpreter stack allows
            return EvaluationResult(0, ErrorMessage.FORMULA_TOO_COMPLEX.value)

        if state.cursor != len(state.tokens) and not state.error_occurred:
            state.fail(ErrorMessage.INVALID_FORMULA.value)

        return EvaluationResult(result, state.error_message)

    def _expression(self, state: _EvaluationState) -> float:
        value = self._term(state)
        while state.is_current(TokenKind.operator, "+") or state.is_current(
            TokenKind.operator, "-"
        ):
            operator = state.current.text
            state.advance()
            if operator == "+":
                value += self._term(state)
            else:
                value -= self._term(state)
        return value

    def _term(self, state: _EvaluationState) -> float:
        value = self._factor(state)
        while state.is_current(TokenKind.operator, "*") or state.is_current(
            TokenKind.operator, "/"
        ):
            operator = state.current.text
            state.advance()
            if operator == "*":
                value *= self._factor(state)
            else:
                divisor = self._factor(state)
                if divisor == 0:
                    # Stops the term; remaining factors are not consumed.
                    state.fail(ErrorMessage.DIVIDE_BY_ZERO.value)
                    return math.inf
                value /= divisor
        return value

    def _factor(self, state: _EvaluationState) -> float:
        tok = state.current

        if tok is not None and tok.kind is TokenKind.number:
            state.advance()
            return tok.number

        if (
            tok is not None
            and tok.kind is TokenKind.cell_ref
            and self._is_valid_label(tok.text)
        ):
            value, error = self.get_cell_value(tok.text)
            if error:
                state.fail(error)
            state.advance()
            return value

        if tok is not None and tok.kind is TokenKind.lparen:
            if state.depth >= self._max_depth:
                state.fail(ErrorMessage.FORMULA_TOO_COMPLEX.value)
                return 0
            state.advance()
            state.depth += 1
            value = self._expression(state)
            state.depth -= 1
            if state.is_current(TokenKind.rparen):
                state.advance()
            else:
                state.fail(ErrorMessage.INVALID_FORMULA.value)
            return value

        state.fail(ErrorMessage.INVALID_FORMULA.value)
        return 0

    def get_cell_value(self, label: str) -> tuple[float, str]:
        """Look up a referenced cell's value.

        Returns:
            ``(value, "")`` for a usable cell; ``(0, error)`` when the cell
            carries its own error (forwarded verbatim) or has no formula.
        """
        try:
            cell = self._store.get_cell_by_label(label)
        except LookupError:
            return 0, ErrorMessage.INVALID_CELL.value

        error = cell.error
        if error and error != ErrorMessage.EMPTY_FORMULA.value:
            return 0, error

        if len(cell.formula) == 0:
            return 0, ErrorMessage.INVALID_CELL.value

        return cell.value, ""
