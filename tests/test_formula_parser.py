import pytest

from core.enums import BinaryOperator, ErrorKind
from core.exceptions import FormulaSyntaxError
from formula.ast import (
    BinaryOp,
    BooleanLiteral,
    CellRef,
    ErrorLiteral,
    FunctionCall,
    NamedRef,
    NumberLiteral,
    RangeRef,
    TextLiteral,
    UnaryOp,
    references,
)
from formula.parser import parse_formula
from formula.references import CellAddress, parse_range
from formula.rewrite import rewrite_references
from formula.tokenizer import tokenize


def test_operator_precedence(library):
    expr = parse_formula("=1 + 2 * 3", library)
    assert isinstance(expr, BinaryOp)
    assert expr.op == BinaryOperator.ADD
    assert expr.left == NumberLiteral(1.0)
    assert expr.right == BinaryOp(BinaryOperator.MULTIPLY, NumberLiteral(2.0), NumberLiteral(3.0))


def test_power_is_right_associative(library):
    expr = parse_formula("=2^3^2", library)
    assert expr == BinaryOp(
        BinaryOperator.POWER,
        NumberLiteral(2.0),
        BinaryOp(BinaryOperator.POWER, NumberLiteral(3.0), NumberLiteral(2.0)),
    )


def test_comparison_binds_loosest(library):
    expr = parse_formula('=A1 & "x" = "ax"', library)
    assert expr.op == BinaryOperator.EQ
    assert expr.left.op == BinaryOperator.CONCAT


def test_number_with_unit(library):
    expr = parse_formula("=100 mi + 50 km", library)
    assert expr.left.unit.symbol == "mi"
    assert expr.right.unit.symbol == "km"


def test_compound_unit_literal_needs_contiguous_operators(library):
    expr = parse_formula("=75 USD/hr * 40 hr", library)
    assert expr.op == BinaryOperator.MULTIPLY
    assert expr.left.value == 75.0
    assert expr.left.unit.symbol == "USD/hr"
    assert expr.right.unit.symbol == "hr"


def test_unit_followed_by_division(library):
    expr = parse_formula("=10 m / 2 s", library)
    assert expr.op == BinaryOperator.DIVIDE
    assert expr.left.unit.symbol == "m"
    assert expr.right.unit.symbol == "s"


def test_currency_percent_and_scientific_literals(library):
    assert parse_formula("=$15", library) == NumberLiteral(15.0, library.unit("USD"))
    percent = parse_formula("=10%", library)
    assert percent.value == pytest.approx(0.1)
    assert percent.unit.symbol == "%"
    assert parse_formula("=1.5e3 m", library) == NumberLiteral(1500.0, library.unit("m"))


def test_negative_literal_folds(library):
    assert parse_formula("=-5 kg", library) == NumberLiteral(-5.0, library.unit("kg"))
    assert isinstance(parse_formula("=-A1", library), UnaryOp)


def test_references(library):
    assert parse_formula("=$B$2", library) == CellRef(CellAddress(2, 2), None, True, True)
    quoted = parse_formula("='My Sheet'!C4", library)
    assert quoted.sheet == "My Sheet"
    assert quoted.address == CellAddress(4, 3)

    rng = parse_formula("=Data!A1:B10", library)
    assert isinstance(rng, RangeRef)
    assert rng.sheet == "Data"
    assert rng.end.address == CellAddress(10, 2)


def test_functions_names_booleans_and_errors(library):
    call = parse_formula("=sum(A1:A3, 2)", library)
    assert isinstance(call, FunctionCall)
    assert call.name == "SUM"
    assert len(call.args) == 2

    assert parse_formula("=IF(TRUE, 1, 2)", library).args[0] == BooleanLiteral(True)
    assert parse_formula("=rate * 2", library).left == NamedRef("rate")
    assert parse_formula('="a ""b"""', library) == TextLiteral('a "b"')
    assert parse_formula("=#REF!+1", library).left == ErrorLiteral(ErrorKind.REF)
    assert parse_formula("=NOW()", library) == FunctionCall("NOW", ())


@pytest.mark.parametrize(
    "source",
    ["=1 +", "=(1", "=5 furlongs", "=SUM(1,", "=Foo", "=1 2", "=", "=@"],
)
def test_syntax_errors(library, source):
    with pytest.raises(FormulaSyntaxError):
        parse_formula(source, library)


def test_syntax_error_reports_position(library):
    with pytest.raises(FormulaSyntaxError) as excinfo:
        parse_formula("=1 + )", library)
    assert excinfo.value.token == ")"
    assert excinfo.value.position == 5


def test_references_walk(library):
    expr = parse_formula("=A1 + SUM(B1:B2) * rate", library)
    found = list(references(expr))
    assert isinstance(found[0], CellRef)
    assert isinstance(found[1], RangeRef)
    assert found[2] == NamedRef("rate")


def test_rewrite_references_preserves_formatting():
    def move_a1(node):
        if isinstance(node, CellRef) and node.address == CellAddress(1, 1):
            return "C3"
        return None

    assert rewrite_references("=A1 +  B2*A1", move_a1) == "=C3 +  B2*C3"
    assert rewrite_references("=B2", move_a1) == "=B2"


def test_tokenizer_and_range_parsing():
    kinds = [token.type for token in tokenize('A1:B2 + "x" & 3')]
    assert kinds == ["range", "op", "string", "op", "number"]
    assert parse_range("A1:B3") == (CellAddress(1, 1), CellAddress(3, 2))
