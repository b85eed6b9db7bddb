"""Error types for formula tokenizing and evaluation.

Evaluation failures are reported as :class:`ErrorMessage` values returned
alongside the result.  Exceptions are reserved for the layers around the
evaluator (tokenizing text, addressing cells).
"""

from __future__ import annotations

from enum import Enum


class ErrorMessage(str, Enum):
    """Stable error strings stored on cells and shown in place of values."""

    EMPTY_FORMULA = "#EMPTY!"
    INVALID_FORMULA = "#ERR"
    DIVIDE_BY_ZERO = "#DIV/0!"
    INVALID_CELL = "#REF!"
    FORMULA_TOO_COMPLEX = "#DEPTH!"
    CIRCULAR_REFERENCE = "#CIRC!"


class FormulaError(Exception):
    """Base class for all formula-related errors."""


class FormulaParseError(FormulaError):
    """Formula text that cannot be split into tokens.

    Attributes:
        position: Character position where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class CellLabelError(FormulaError, LookupError):
    """Malformed cell label, or a label outside the sheet grid.

    Attributes:
        label: The offending label.
    """

    def __init__(self, label: str, message: str | None = None) -> None:
        self.label = label
        super().__init__(message or f"Invalid cell label: {label!r}")
