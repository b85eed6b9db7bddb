"""Spreadsheet formula tokenizing and evaluation.

Public API::

    from sheetcalc.formulas import tokenize, FormulaEvaluator
"""

from sheetcalc.formulas.errors import (
    CellLabelError,
    ErrorMessage,
    FormulaError,
    FormulaParseError,
)
from sheetcalc.formulas.evaluator import (
    CellSnapshot,
    CellStore,
    EvaluationResult,
    FormulaEvaluator,
)
from sheetcalc.formulas.tokens import (
    Token,
    TokenKind,
    extract_refs,
    is_valid_label,
    make_label,
    parse_label,
    tokenize,
)

__all__ = [
    "CellLabelError",
    "CellSnapshot",
    "CellStore",
    "ErrorMessage",
    "EvaluationResult",
    "FormulaError",
    "FormulaEvaluator",
    "FormulaParseError",
    "Token",
    "TokenKind",
    "extract_refs",
    "is_valid_label",
    "make_label",
    "parse_label",
    "tokenize",
]
