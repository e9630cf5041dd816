import pytest

from bookmap.engine.errors import ConfigurationError, FormulaError
from bookmap.engine.formula import BinaryOp, FieldRef, FormulaEvaluator, Literal, is_formula, parse_formula
from bookmap.engine.paths import TabularExtractor, TabularRow
from bookmap.engine.resolver import MappingResolver
from bookmap.engine.types import CanonicalFieldSpec, TabularSource


def _evaluate(expr, record=None):
    return FormulaEvaluator().evaluate(expr, record)


def test_multiplication_binds_tighter():
    assert _evaluate("[A] + [B] * [C]", {"A": 4, "B": 3, "C": 4}) == 16


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("10 - 4 - 3", 3),
        ("8 / 4 / 2", 1),
        ("(2 + 3) * 4", 20),
        ("-3 + 5", 2),
        ("2 * -(1 + 1)", -4),
        ("1.5e2 / 3", 50),
    ],
)
def test_arithmetic(expr, expected):
    assert _evaluate(expr) == pytest.approx(expected)


def test_ast_shape():
    assert parse_formula("[A] - 2") == BinaryOp("-", FieldRef("A"), Literal(2.0))


def test_division_by_zero():
    with pytest.raises(FormulaError, match="Division by zero"):
        _evaluate("[A] / [B]", {"A": 1, "B": 0})


def test_unresolved_reference():
    with pytest.raises(FormulaError, match=r"Unresolved field reference \[Missing\]"):
        _evaluate("[Missing] + 1")


def test_non_numeric_operand():
    with pytest.raises(FormulaError, match="not a number"):
        _evaluate("[A] * 2", {"A": "n/a"})


def test_currency_operands():
    assert _evaluate("[A] + [B]", {"A": "$1,200.50", "B": "-$0.50"}) == 1200


def test_cycle_detected():
    fields = [CanonicalFieldSpec("a", "A", value_kind="number"), CanonicalFieldSpec("b", "B", value_kind="number")]
    resolver = MappingResolver(fields)
    resolver.update({"a": "[b] + 1", "b": "[a] + 1"})
    with pytest.raises(FormulaError, match="Circular field reference: a -> b -> a"):
        FormulaEvaluator(resolver=resolver).evaluate("[b] + 1", target="a")


def test_reference_to_other_target_uses_its_mapping():
    src = TabularSource.from_table(["Rate", "Nights"], [["100", "3"]])
    row = TabularRow(TabularExtractor(src.headers), src.rows[0])
    fields = [CanonicalFieldSpec("rate", "Rate", value_kind="number"), CanonicalFieldSpec("total", "Total", value_kind="number")]
    resolver = MappingResolver(fields)
    resolver.update({"rate": "Rate", "total": "[rate] * [Nights]"})
    assert FormulaEvaluator(row, resolver).evaluate("[rate] * [Nights]", {}, "total") == 300


def test_blank_cell_in_formula_is_unresolved():
    src = TabularSource.from_table(["Fee"], [[""]])
    row = TabularRow(TabularExtractor(src.headers), src.rows[0])
    with pytest.raises(FormulaError, match="Unresolved"):
        FormulaEvaluator(row).evaluate("[Fee] + 1")


def test_plain_reference_returns_raw_value():
    src = TabularSource.from_table(["Nightly Rate", "2024"], [["100", "x"]])
    row = TabularRow(TabularExtractor(src.headers), src.rows[0])
    ev = FormulaEvaluator(row)
    assert ev.evaluate("Nightly Rate") == "100"
    # an exact header match wins over formula shape
    assert ev.evaluate("2024") == "x"


@pytest.mark.parametrize("expr", ["Total Price", "data.guest.name", "items[0].price"])
def test_references_are_not_formulas(expr):
    assert not is_formula(expr)


@pytest.mark.parametrize(
    "expr, msg",
    [("[A] +", "ends unexpectedly"), ("[]", "Empty field reference"), ("1 2", "Unexpected"), ("(1 + 2", "ends unexpectedly")],
)
def test_malformed_formulas(expr, msg):
    with pytest.raises(ConfigurationError, match=msg):
        parse_formula(expr)
