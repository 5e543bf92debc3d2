import pytest

from core.enums import ErrorKind
from engine.cell import ErrorValue, NumberValue, TextValue
from functions import function_registry
from functions.numeric import round_half_away
from functions.registry import FunctionRegistry, FunctionSpec


def calc(workbook, formula, **inputs):
    """Write inputs into column A (a1=..., a2=...) and evaluate formula in C1."""
    for address, text in inputs.items():
        workbook.set_cell("Sheet1", address.upper(), text)
    workbook.set_cell("Sheet1", "C1", formula)
    return workbook.value("Sheet1", "C1")


def test_registry_contents():
    expected = {
        "SUM", "AVERAGE", "COUNT", "MIN", "MAX", "ABS", "ROUND", "FLOOR", "CEIL",
        "CEILING", "TRUNC", "MOD", "SIGN", "SQRT", "POWER", "MEDIAN", "STDEV", "VAR",
        "IF", "AND", "OR", "NOT", "GT", "LT", "GTE", "LTE", "EQ", "NE", "CONVERT", "PERCENT",
    }
    assert expected <= set(function_registry.list_registered())
    assert "sum" in function_registry
    assert function_registry.get("if").lazy
    assert {spec.name for spec in function_registry.by_category("statistics")} == {"MEDIAN", "STDEV", "VAR"}


def test_registry_rejects_duplicates():
    registry = FunctionRegistry()
    registry.register(FunctionSpec("ONE", fn=lambda ctx, args: None))
    with pytest.raises(ValueError):
        registry.register(FunctionSpec("ONE", fn=lambda ctx, args: None))
    assert FunctionSpec("X", fn=None, min_args=1, max_args=None).accepts_count(10)
    assert not FunctionSpec("X", fn=None, min_args=2, max_args=2).accepts_count(1)


def test_sum_converts_to_first_unit(workbook):
    result = calc(workbook, "=SUM(A1:A3)", a1="1 km", a2="500 m", a3="hello")
    assert result.unit.symbol == "km"
    assert result.magnitude == pytest.approx(1.5)


def test_sum_skips_incompatible_with_warning(workbook):
    result = calc(workbook, "=SUM(A1:A2)", a1="2 m", a2="3 s")
    assert result.magnitude == pytest.approx(2)
    assert "Incompatible units" in workbook.get_cell("Sheet1", "C1").warning


def test_average_min_max_count(workbook):
    for address, text in {"A1": "10 kg", "A2": "20 kg", "A3": "3000 g", "A4": "note"}.items():
        workbook.set_cell("Sheet1", address, text)

    assert calc(workbook, "=AVERAGE(A1:A4)").magnitude == pytest.approx(11)
    assert calc(workbook, "=MIN(A1:A4)").magnitude == pytest.approx(3)
    assert calc(workbook, "=MAX(A1:A4)").unit.symbol == "kg"
    count = calc(workbook, "=COUNT(A1:A4)")
    assert count.magnitude == 4 - 1
    assert count.unit.is_dimensionless


def test_average_of_nothing_is_div_zero(workbook):
    result = calc(workbook, "=AVERAGE(A1:A3)")
    assert result == ErrorValue(ErrorKind.DIV_ZERO)


def test_rounding_family_keeps_unit(workbook):
    assert calc(workbook, "=ROUND(2.5 m)") == NumberValue(3.0, workbook.library.unit("m"))
    assert calc(workbook, "=ROUND(-2.5)").magnitude == -3.0
    assert calc(workbook, "=ROUND(3.14159 kg, 2)").magnitude == pytest.approx(3.14)
    assert calc(workbook, "=TRUNC(-7.8 s)").magnitude == -7.0
    assert calc(workbook, "=FLOOR(17 min, 5)").magnitude == 15.0
    assert calc(workbook, "=CEIL(17 min, 5)").magnitude == 20.0
    assert calc(workbook, "=CEILING(61 s, 1 min)").magnitude == 120.0
    assert calc(workbook, "=ABS(-4 ft)") == NumberValue(4.0, workbook.library.unit("ft"))


def test_round_half_away_from_zero():
    assert round_half_away(0.5) == 1.0
    assert round_half_away(-0.5) == -1.0
    assert round_half_away(2.675, 2) == 2.68
    assert round_half_away(1250, -2) == 1300.0
    assert round_half_away(1e30, 2) == 1e30
    assert round_half_away(-1e300) == -1e300


def test_mod_sign_sqrt_power(workbook):
    mod = calc(workbook, "=MOD(130 min, 1 hr)")
    assert mod.unit.symbol == "min"
    assert mod.magnitude == pytest.approx(10)

    assert calc(workbook, "=MOD(5, 0)") == ErrorValue(ErrorKind.DIV_ZERO)
    sign = calc(workbook, "=SIGN(-3 m)")
    assert sign == NumberValue(-1.0, workbook.library.unit("m"))
    assert calc(workbook, "=SIGN(0 kg)").unit.symbol == "kg"

    root = calc(workbook, "=SQRT(16 m^2)")
    assert root.magnitude == pytest.approx(4)
    assert root.unit.symbol == "m"
    assert calc(workbook, "=SQRT(-1)") == ErrorValue(ErrorKind.VALUE)

    squared = calc(workbook, "=POWER(3 m, 2)")
    assert squared.magnitude == pytest.approx(9)
    assert squared.unit.symbol == "m^2"


def test_sqrt_of_odd_exponent_degrades(workbook):
    result = calc(workbook, "=SQRT(9 m)")
    assert result.magnitude == pytest.approx(3)
    assert result.unit.is_dimensionless
    assert "square root" in workbook.get_cell("Sheet1", "C1").warning


def test_statistics(workbook):
    for address, text in {"A1": "2 m", "A2": "4 m", "A3": "4 m", "A4": "5 m"}.items():
        workbook.set_cell("Sheet1", address, text)

    median = calc(workbook, "=MEDIAN(A1:A4)")
    assert median.magnitude == pytest.approx(4)
    stdev = calc(workbook, "=STDEV(A1:A4)")
    assert stdev.magnitude == pytest.approx(1.2583057)
    assert stdev.unit.symbol == "m"
    var = calc(workbook, "=VAR(A1:A4)")
    assert var.magnitude == pytest.approx(1.5833333)
    assert var.unit.symbol == "m^2"

    assert calc(workbook, "=STDEV(A1)") == ErrorValue(ErrorKind.VALUE)


def test_logic_functions(workbook):
    assert calc(workbook, '=IF(2 km > 1500 m, "far", "near")') == TextValue("far")
    assert calc(workbook, "=IF(FALSE, 1)").magnitude == 0.0
    # Only the chosen branch is evaluated
    assert calc(workbook, "=IF(TRUE, 5 kg, 1/0)") == NumberValue(5.0, workbook.library.unit("kg"))
    assert calc(workbook, "=AND(1, TRUE, 2 m)").magnitude == 1.0
    assert calc(workbook, "=OR(0, FALSE)").magnitude == 0.0
    assert calc(workbook, "=NOT(0)").magnitude == 1.0
    assert calc(workbook, '=IF("maybe", 1, 2)') == ErrorValue(ErrorKind.VALUE)


def test_comparison_functions_convert_units(workbook):
    assert calc(workbook, "=GT(1 mi, 1 km)").magnitude == 1.0
    assert calc(workbook, "=LT(1 mi, 1 km)").magnitude == 0.0
    assert calc(workbook, "=EQ(1000 m, 1 km)").magnitude == 1.0
    assert calc(workbook, "=NE(1 ft, 12 in)").magnitude == 0.0
    assert calc(workbook, "=GTE(60 min, 1 hr)").magnitude == 1.0
    assert calc(workbook, "=LTE(2, 1)").magnitude == 0.0


def test_convert_function(workbook):
    result = calc(workbook, "=CONVERT(A1, 1 km)", a1="5000 m")
    assert result == NumberValue(5.0, workbook.library.unit("km"))

    by_name = calc(workbook, '=CONVERT(100 USD, "EUR")')
    assert by_name.unit.symbol == "EUR"
    assert by_name.magnitude == pytest.approx(92)

    assert calc(workbook, "=CONVERT(5 m, 1 s)") == ErrorValue(ErrorKind.CONVERSION)
    assert calc(workbook, '=CONVERT(5 m, "furlongs")') == ErrorValue(ErrorKind.CONVERSION)


def test_percent_function(workbook):
    result = calc(workbook, "=PERCENT(0.15)")
    assert result.unit.is_percent
    assert workbook.display("Sheet1", "C1") == "15%"


def test_unknown_function_and_arity(workbook):
    assert calc(workbook, "=FOO(1)") == ErrorValue(ErrorKind.NAME)
    bad = calc(workbook, "=ABS(1, 2)")
    assert bad == ErrorValue(ErrorKind.VALUE)
    assert "expects 1 argument(s)" in bad.message
    assert calc(workbook, "=ABS(A1:A2)") == ErrorValue(ErrorKind.VALUE)


def test_errors_propagate_through_functions(workbook):
    workbook.set_cell("Sheet1", "A1", "=1/0")
    assert calc(workbook, "=SUM(A1, 2)") == ErrorValue(ErrorKind.DIV_ZERO)
    assert calc(workbook, "=COUNT(A1, 2)").magnitude == 1.0
    assert calc(workbook, "=COUNT(A1, A1:A2, 2)").magnitude == 1.0


def test_round_large_magnitude_keeps_value(workbook):
    result = calc(workbook, "=ROUND(1e30 m, 2)")
    assert result == NumberValue(1e30, workbook.library.unit("m"))


def test_non_finite_result_is_value_error(workbook):
    assert calc(workbook, "=1e308 * 10") == ErrorValue(ErrorKind.VALUE)
    assert calc(workbook, "=POWER(10, 400)") == ErrorValue(ErrorKind.VALUE)
