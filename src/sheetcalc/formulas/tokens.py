"""Formula tokens, cell labels, and a Lark-based tokenizer.

Tokens are classified once, when they are produced, and carry their kind
so the evaluator never has to re-derive it from the text:

- Numeric literals: ``12``, ``3.5``, ``.5``
- Cell references: ``A1``, ``AA10`` (letters then a row number)
- Operators: ``+ - * /``
- Parentheses: ``(`` and ``)``
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Sequence, Union

from lark import Lark
from lark.exceptions import UnexpectedInput

from sheetcalc.formulas.errors import CellLabelError, FormulaParseError


# ---------------------------------------------------------------------------
# Cell labels
# ---------------------------------------------------------------------------

_LABEL_RE = re.compile(r"^([A-Z]+)([1-9][0-9]*)$")


def is_valid_label(text: str) -> bool:
    """Return True if *text* follows the cell labeling convention (``A1``)."""
    return bool(_LABEL_RE.match(text))


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


def parse_label(label: str) -> tuple[int, int]:
    """Parse 'A1' -> (row_0based, col_0based).

    Raises:
        CellLabelError: If *label* is not a valid cell label.
    """
    m = _LABEL_RE.match(label)
    if not m:
        raise CellLabelError(label)
    return int(m.group(2)) - 1, col_letter_to_index(m.group(1))


def make_label(row: int, col: int) -> str:
    """Build a cell label from 0-based row/col."""
    return f"{index_to_col_letter(col)}{row + 1}"


# ---------------------------------------------------------------------------
# Token model
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

OPERATORS = frozenset({"+", "-", "*", "/"})


class TokenKind(str, Enum):
    number = "number"
    cell_ref = "cell_ref"
    operator = "operator"
    lparen = "lparen"
    rparen = "rparen"
    unknown = "unknown"


@dataclass(frozen=True)
class Token:
    """One unit of formula syntax.

    Attributes:
        kind: Classification decided when the token was produced.
        text: Source text of the token.
        position: Character offset in the formula text, if known.
    """

    kind: TokenKind
    text: str
    position: int | None = None

    @classmethod
    def classify(
        cls,
        text: str,
        is_valid_label: Callable[[str], bool] = is_valid_label,
        position: int | None = None,
    ) -> Token:
        """Build a token from raw text, deciding its kind."""
        if text in OPERATORS:
            kind = TokenKind.operator
        elif text == "(":
            kind = TokenKind.lparen
        elif text == ")":
            kind = TokenKind.rparen
        elif _NUMBER_RE.match(text):
            kind = TokenKind.number
        elif is_valid_label(text):
            kind = TokenKind.cell_ref
        else:
            kind = TokenKind.unknown
        return cls(kind, text, position)

    @property
    def number(self) -> float:
        """Numeric value of a number token; literals too large for a float are ``inf``."""
        if self.kind is not TokenKind.number:
            raise ValueError(f"Not a numeric literal: {self.text!r}")
        return float(self.text)

    def __str__(self) -> str:
        return self.text


TokenLike = Union[Token, str]
Formula = Sequence[TokenLike]


def as_tokens(
    formula: Iterable[TokenLike],
    is_valid_label: Callable[[str], bool] = is_valid_label,
) -> tuple[Token, ...]:
    """Return *formula* as a tuple of tokens, classifying raw strings."""
    return tuple(
        item if isinstance(item, Token) else Token.classify(str(item), is_valid_label)
        for item in formula
    )


def extract_refs(formula: Iterable[TokenLike]) -> set[str]:
    """Return the set of cell labels referenced by *formula*."""
    return {t.text for t in as_tokens(formula) if t.kind is TokenKind.cell_ref}


def formula_text(formula: Iterable[TokenLike]) -> str:
    """Render a token sequence back to display text."""
    return " ".join(str(t) for t in formula)


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

# Only the lexer is used; the grammar is checked by the evaluator.
GRAMMAR = r"""
start: (NUMBER | CELL_REF | OPERATOR | LPAR | RPAR)*

NUMBER: /\d+(\.\d*)?|\.\d+/
CELL_REF: /[A-Za-z]+[0-9]+/
OPERATOR: "+" | "-" | "*" | "/"
LPAR: "("
RPAR: ")"

%import common.WS
%ignore WS
"""

_lexer = Lark(GRAMMAR, parser="lalr", lexer="basic")

_KIND_BY_TERMINAL = {
    "NUMBER": TokenKind.number,
    "CELL_REF": TokenKind.cell_ref,
    "OPERATOR": TokenKind.operator,
    "LPAR": TokenKind.lparen,
    "RPAR": TokenKind.rparen,
}


def tokenize(text: str) -> list[Token]:
    """Split formula text into tokens.

    A leading ``=`` is optional.  Cell labels are upper-cased.

    Args:
        text: The formula text, e.g. ``"=A1 * (2 + B3)"``.

    Returns:
        The ordered token list (empty for blank text).

    Raises:
        FormulaParseError: If the text contains an unrecognized character.
    """
    offset = len(text) - len(text.lstrip())
    body = text.strip()
    if body.startswith("="):
        body = body[1:]
        offset += 1

    tokens: list[Token] = []
    try:
        for lt in _lexer.lex(body):
            kind = _KIND_BY_TERMINAL[lt.type]
            value = str(lt).upper() if kind is TokenKind.cell_ref else str(lt)
            tokens.append(Token(kind, value, offset + lt.start_pos))
    except UnexpectedInput as exc:
        pos = getattr(exc, "pos_in_stream", None)
        char = body[pos] if pos is not None and pos < len(body) else ""
        raise FormulaParseError(
            f"Unexpected character {char!r}",
            position=offset + pos if pos is not None else None,
        ) from exc
    return tokens
