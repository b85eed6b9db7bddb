"""Recursive-descent evaluator tests: grammar, errors, and cell dereference."""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

import pytest

from sheetcalc.formulas import (
    ErrorMessage,
    EvaluationResult,
    FormulaEvaluator,
    tokenize,
)


# ────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────


@dataclass
class StubCell:
    formula: list[str] = field(default_factory=list)
    value: float = 0
    error: str = ""


class DictStore:
    """Minimal cell store; raises KeyError for unknown labels."""

    def __init__(self, cells: dict[str, StubCell] | None = None) -> None:
        self.cells = cells or {}
        self.lookups: list[str] = []

    def get_cell_by_label(self, label: str) -> StubCell:
        self.lookups.append(label)
        return self.cells[label]


@pytest.fixture
def store() -> DictStore:
    return DictStore(
        {
            "A1": StubCell(formula=["5"], value=5),
            "A2": StubCell(formula=["A1", "*", "2"], value=10),
            "B1": StubCell(formula=[], value=0, error=""),
            "B2": StubCell(formula=["1", "/", "0"], value=math.inf, error="#DIV/0!"),
            "B3": StubCell(formula=[], value=0, error="#EMPTY!"),
            "B4": StubCell(formula=["oops"], value=0, error="custom failure"),
        }
    )


@pytest.fixture
def evaluator(store: DictStore) -> FormulaEvaluator:
    return FormulaEvaluator(store)


# ────────────────────────────────────────────────────────────────
# Literals, precedence, associativity
# ────────────────────────────────────────────────────────────────


class TestArithmetic:
    def test_empty_formula(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate([]) == (0, "#EMPTY!")

    def test_single_integer(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["7"]) == (7, "")

    def test_single_decimal(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["3.25"]) == (3.25, "")

    def test_signed_literal_token(self, evaluator: FormulaEvaluator) -> None:
        """A literal that already carries a sign converts as a number."""
        assert evaluator.evaluate(["-3"]) == (-3, "")

    def test_exponent_literal_token(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["1e2"]) == (100.0, "")

    def test_oversized_literal_is_infinite(self, evaluator: FormulaEvaluator) -> None:
        big = "1" + "0" * 400
        assert evaluator.evaluate([big]) == (math.inf, "")
        assert evaluator.evaluate([big, "+", "0.5"]) == (math.inf, "")
        assert evaluator.evaluate([big, "/", "3"]) == (math.inf, "")

    def test_oversized_literal_difference(self, evaluator: FormulaEvaluator) -> None:
        big = "9" * 400
        value, error = evaluator.evaluate([big, "-", big])
        assert math.isnan(value)
        assert error == ""

    def test_multiplication_binds_tighter(self, evaluator: FormulaEvaluator) -> None:
        """2 + 3 * 4 = 14."""
        assert evaluator.evaluate(["2", "+", "3", "*", "4"]) == (14, "")

    def test_parentheses_override_precedence(self, evaluator: FormulaEvaluator) -> None:
        """(2 + 3) * 4 = 20."""
        assert evaluator.evaluate(["(", "2", "+", "3", ")", "*", "4"]) == (20, "")

    def test_subtraction_left_associative(self, evaluator: FormulaEvaluator) -> None:
        """10 - 4 - 3 = (10 - 4) - 3 = 3."""
        assert evaluator.evaluate(["10", "-", "4", "-", "3"]) == (3, "")

    def test_division_left_associative(self, evaluator: FormulaEvaluator) -> None:
        """8 / 4 / 2 = (8 / 4) / 2 = 1."""
        assert evaluator.evaluate(["8", "/", "4", "/", "2"]) == (1, "")

    def test_true_division(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["7", "/", "2"]) == (3.5, "")

    def test_nested_parentheses(self, evaluator: FormulaEvaluator) -> None:
        formula = ["(", "(", "1", "+", "2", ")", "*", "(", "3", "-", "1", ")", ")", "/", "4"]
        assert evaluator.evaluate(formula) == (1.5, "")

    def test_accepts_tokenizer_output(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(tokenize("=2 + 3 * 4")) == (14, "")

    def test_result_is_named_tuple(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate(["1", "+", "1"])
        assert isinstance(result, EvaluationResult)
        assert result.value == 2
        assert result.error == ""
        assert result.ok


# ────────────────────────────────────────────────────────────────
# Division by zero
# ────────────────────────────────────────────────────────────────


class TestDivideByZero:
    def test_divide_by_zero_is_infinity(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["5", "/", "0"]) == (math.inf, "#DIV/0!")

    def test_divide_by_zero_expression(self, evaluator: FormulaEvaluator) -> None:
        value, error = evaluator.evaluate(["5", "/", "(", "2", "-", "2", ")"])
        assert value == math.inf
        assert error == ErrorMessage.DIVIDE_BY_ZERO

    def test_stops_current_term(self, evaluator: FormulaEvaluator) -> None:
        """Remaining factors of the term are left unconsumed, no #ERR reported."""
        assert evaluator.evaluate(["5", "/", "0", "*", "3"]) == (math.inf, "#DIV/0!")

    def test_later_terms_still_run(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["5", "/", "0", "+", "2"]) == (math.inf, "#DIV/0!")

    def test_wins_over_missing_close_paren(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["(", "1", "/", "0"]) == (math.inf, "#DIV/0!")

    def test_zero_numerator_is_fine(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["0", "/", "5"]) == (0, "")


# ────────────────────────────────────────────────────────────────
# Grammar violations
# ────────────────────────────────────────────────────────────────


class TestInvalidFormula:
    def test_unclosed_paren_keeps_inner_value(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["(", "1", "+", "2"]) == (3, "#ERR")

    def test_trailing_token(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["1", "+", "2", "3"]) == (3, "#ERR")

    def test_leading_minus_is_not_unary(self, evaluator: FormulaEvaluator) -> None:
        _, error = evaluator.evaluate(["-", "1"])
        assert error == "#ERR"

    def test_dangling_operator(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["1", "+"]) == (1, "#ERR")

    def test_stray_close_paren(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate([")"]) == (0, "#ERR")

    def test_unmatched_close_paren_after_expression(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["1", "+", "2", ")"]) == (3, "#ERR")

    def test_empty_parentheses(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["(", ")"]) == (0, "#ERR")

    def test_unknown_token(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["foo"]) == (0, "#ERR")

    def test_double_operator(self, evaluator: FormulaEvaluator) -> None:
        _, error = evaluator.evaluate(["1", "*", "*", "2"])
        assert error == "#ERR"


# ────────────────────────────────────────────────────────────────
# Cell references
# ────────────────────────────────────────────────────────────────


class TestCellReferences:
    def test_reference_value(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["A1", "*", "2"]) == (10, "")

    def test_reference_chain(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["A1", "+", "A2"]) == (15, "")

    def test_reference_to_empty_formula(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["B1"]) == (0, "#REF!")

    def test_reference_to_empty_formula_marker(self, evaluator: FormulaEvaluator) -> None:
        """A cell whose stored error is #EMPTY! is an invalid reference target."""
        assert evaluator.evaluate(["B3"]) == (0, "#REF!")

    def test_propagates_referenced_error(self, evaluator: FormulaEvaluator) -> None:
        value, error = evaluator.evaluate(["B2", "+", "1"])
        assert error == "#DIV/0!"
        assert value == 1

    def test_propagates_error_verbatim(self, evaluator: FormulaEvaluator) -> None:
        _, error = evaluator.evaluate(["B4"])
        assert error == "custom failure"

    def test_unknown_label_is_invalid_cell(self, evaluator: FormulaEvaluator) -> None:
        """A store that cannot address the label is reported as #REF!."""
        assert evaluator.evaluate(["Z99"]) == (0, "#REF!")

    def test_cursor_advances_past_failed_reference(self, evaluator: FormulaEvaluator) -> None:
        """The rest of the formula is still parsed after a lookup error."""
        assert evaluator.evaluate(["B1", "+", "A1"]) == (5, "#REF!")

    def test_store_not_mutated(self, evaluator: FormulaEvaluator, store: DictStore) -> None:
        before = {k: (list(v.formula), v.value, v.error) for k, v in store.cells.items()}
        evaluator.evaluate(["A1", "+", "B2", "/", "A2"])
        after = {k: (list(v.formula), v.value, v.error) for k, v in store.cells.items()}
        assert before == after

    def test_lowercase_label_not_a_reference(self, evaluator: FormulaEvaluator, store: DictStore) -> None:
        assert evaluator.evaluate(["a1"]) == (0, "#ERR")
        assert store.lookups == []

    def test_custom_label_predicate(self) -> None:
        store = DictStore({"rate": StubCell(formula=["0.5"], value=0.5)})
        ev = FormulaEvaluator(store, is_valid_label=lambda text: text.isalpha())
        assert ev.evaluate(["rate", "*", "4"]) == (2.0, "")


# ────────────────────────────────────────────────────────────────
# Error priority
# ────────────────────────────────────────────────────────────────


class TestErrorPriority:
    def test_first_error_wins_over_structural(self, evaluator: FormulaEvaluator) -> None:
        _, error = evaluator.evaluate(["B2", "+", "(", "1"])
        assert error == "#DIV/0!"

    def test_first_error_wins_over_later_division(self, evaluator: FormulaEvaluator) -> None:
        """A later division by zero still yields infinity but keeps the first message."""
        value, error = evaluator.evaluate(["B1", "+", "1", "/", "0"])
        assert error == "#REF!"
        assert value == math.inf

    def test_trailing_check_only_without_prior_error(self, evaluator: FormulaEvaluator) -> None:
        _, error = evaluator.evaluate(["B4", "1"])
        assert error == "custom failure"

    def test_empty_formula_short_circuits(self, store: DictStore) -> None:
        ev = FormulaEvaluator(store)
        assert ev.evaluate([]) == (0, "#EMPTY!")
        assert store.lookups == []


# ────────────────────────────────────────────────────────────────
# Depth guard
# ────────────────────────────────────────────────────────────────


class TestDepthGuard:
    def test_within_limit(self, store: DictStore) -> None:
        ev = FormulaEvaluator(store, max_depth=3)
        assert ev.evaluate(["(", "(", "(", "1", ")", ")", ")"]) == (1, "")

    def test_beyond_limit(self, store: DictStore) -> None:
        ev = FormulaEvaluator(store, max_depth=2)
        assert ev.evaluate(["(", "(", "(", "1", ")", ")", ")"]) == (0, "#DEPTH!")

    def test_pathological_nesting_does_not_crash(self, evaluator: FormulaEvaluator) -> None:
        depth = 5000
        formula = ["("] * depth + ["1"] + [")"] * depth
        _, error = evaluator.evaluate(formula)
        assert error == ErrorMessage.FORMULA_TOO_COMPLEX

    def test_limit_above_interpreter_stack(self, store: DictStore) -> None:
        """A configured limit deeper than the stack still reports #DEPTH!."""
        ev = FormulaEvaluator(store, max_depth=50_000)
        depth = 20_000
        formula = ["("] * depth + ["1"] + [")"] * depth
        assert ev.evaluate(formula) == (0, "#DEPTH!")
        assert ev.evaluate(["(", "2", ")"]) == (2, "")


# ────────────────────────────────────────────────────────────────
# Statelessness
# ────────────────────────────────────────────────────────────────


class TestReentrancy:
    def test_idempotent(self, evaluator: FormulaEvaluator) -> None:
        formula = ["A1", "*", "(", "2", "+", "1", ")"]
        assert evaluator.evaluate(formula) == evaluator.evaluate(formula)

    def test_no_error_leaks_between_calls(self, evaluator: FormulaEvaluator) -> None:
        assert evaluator.evaluate(["1", "+"]).error == "#ERR"
        assert evaluator.evaluate(["2"]) == (2, "")

    def test_input_not_mutated(self, evaluator: FormulaEvaluator) -> None:
        formula = ["(", "1", "+", "A1", ")"]
        snapshot = list(formula)
        evaluator.evaluate(formula)
        assert formula == snapshot

    def test_concurrent_calls_share_instance(self, evaluator: FormulaEvaluator) -> None:
        cases: list[tuple[list[Any], tuple[float, str]]] = [
            (["2", "+", "3", "*", "4"], (14, "")),
            (["5", "/", "0"], (math.inf, "#DIV/0!")),
            (["(", "1", "+", "2"], (3, "#ERR")),
            (["A1", "*", "2"], (10, "")),
        ] * 50
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda case: evaluator.evaluate(case[0]), cases))
        assert results == [expected for _, expected in cases]
