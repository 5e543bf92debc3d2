import pytest

from core.enums import ValueKind
from core.exceptions import InvalidLabelName
from engine.cell_input import parse_cell_input


@pytest.mark.parametrize(
    "raw, magnitude, unit",
    [
        ("42", 42.0, ""),
        ("100 mi", 100.0, "mi"),
        ("-3 ft", -3.0, "ft"),
        ("1,234.5 kg", 1234.5, "kg"),
        ("2.5e3 m", 2500.0, "m"),
        ("$15", 15.0, "USD"),
        ("$15/hr", 15.0, "USD/hr"),
        ("€3", 3.0, "EUR"),
        ("75 USD/hr", 75.0, "USD/hr"),
        ("20 C", 20.0, "C"),
    ],
)
def test_numbers_with_units(library, raw, magnitude, unit):
    parsed = parse_cell_input(raw, library)
    assert parsed.kind == ValueKind.NUMBER
    assert parsed.magnitude == pytest.approx(magnitude)
    assert parsed.unit.symbol == unit


def test_percent_is_stored_as_fraction(library):
    parsed = parse_cell_input("10%", library)
    assert parsed.kind == ValueKind.NUMBER
    assert parsed.magnitude == pytest.approx(0.1)
    assert parsed.unit.is_percent


def test_text_and_empty(library):
    assert parse_cell_input("", library).kind == ValueKind.EMPTY
    assert parse_cell_input("   ", library).kind == ValueKind.EMPTY
    assert parse_cell_input("hello world", library).text == "hello world"
    # Unknown trailing unit keeps the input as text
    assert parse_cell_input("5 furlongs", library).kind == ValueKind.TEXT
    assert parse_cell_input("12:30", library).kind == ValueKind.TEXT


def test_formula(library):
    parsed = parse_cell_input("  =A1 * 2", library)
    assert parsed.kind == ValueKind.FORMULA
    assert parsed.formula == "=A1 * 2"


def test_labels_define_names(library):
    value = parse_cell_input("rate: 5%", library)
    assert value.label == "rate"
    assert value.kind == ValueKind.NUMBER
    assert value.magnitude == pytest.approx(0.05)

    formula = parse_cell_input("total:= A1 * 2", library)
    assert formula.label == "total"
    assert formula.kind == ValueKind.FORMULA
    assert formula.formula == "=A1 * 2"

    private = parse_cell_input("_tmp: hello", library)
    assert private.label == "_tmp"
    assert private.text == "hello"


def test_uppercase_label_is_rejected(library):
    with pytest.raises(InvalidLabelName):
        parse_cell_input("Total: 5", library)


def test_scientific_literal_is_exact(library):
    assert parse_cell_input("1.15e2", library).magnitude == 115.0
    assert parse_cell_input("-2.5E-3 kg", library).magnitude == -0.0025


def test_out_of_range_literal_is_text(library):
    parsed = parse_cell_input("1e400 m", library)
    assert parsed.kind == ValueKind.TEXT
    assert parsed.text == "1e400 m"
