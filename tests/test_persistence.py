import json
from pathlib import Path

import pytest

from core.enums import CellState, DisplayPreference, ErrorKind, RateProvenance
from core.exceptions import PersistenceError
from engine.cell import ErrorValue, NumberValue, TextValue
from formats import FORMAT_VERSION, dumps, load_workbook, loads, save_workbook
from formula.references import CellAddress


def build_sample(workbook):
    workbook.add_sheet("Data")
    workbook.set_cell("Sheet1", "A1", "100 mi")
    workbook.set_cell("Sheet1", "A2", "50 km")
    workbook.set_cell("Sheet1", "A3", "=A1 + A2")
    workbook.set_cell("Sheet1", "A4", "=1/0")
    workbook.set_cell("Sheet1", "A5", "=5 m + 10 s")
    workbook.set_cell("Data", "B2", "rate: 5%")
    workbook.set_cell("Data", "B3", "notes")
    workbook.set_display_unit("Sheet1", "A3", "km")
    workbook.set_currency_rate("EUR", 0.9)
    workbook.sheet("Sheet1").column_widths["A"] = 18.0
    workbook.sheet("Data").row_heights[2] = 24.0
    workbook.settings.display_preference = DisplayPreference.METRIC
    return workbook


def test_round_trip_preserves_cells(workbook):
    build_sample(workbook)
    restored = loads(dumps(workbook))

    assert restored.name == workbook.name
    assert restored.sheet_names == ["Sheet1", "Data"]
    assert restored.value("Sheet1", "A1") == NumberValue(100.0, restored.library.unit("mi"))
    assert restored.get_cell("Sheet1", "A3").formula_source == "=A1 + A2"
    assert restored.value("Sheet1", "A3").magnitude == pytest.approx(131.0686, rel=1e-6)
    assert restored.get_cell("Sheet1", "A3").display_unit.symbol == "km"
    assert restored.value("Data", "B3") == TextValue("notes")
    assert restored.settings.display_preference == DisplayPreference.METRIC
    assert restored.sheet("Sheet1").column_widths == {"A": 18.0}
    assert restored.sheet("Data").row_heights == {2: 24.0}
    assert not restored.dirty


def test_round_trip_keeps_errors_and_warnings(workbook):
    build_sample(workbook)
    restored = loads(dumps(workbook))

    error_cell = restored.get_cell("Sheet1", "A4")
    assert error_cell.result == ErrorValue(ErrorKind.DIV_ZERO)
    assert error_cell.state == CellState.ERROR
    assert "Incompatible units" in restored.get_cell("Sheet1", "A5").warning


def test_round_trip_names_and_rates(workbook):
    build_sample(workbook)
    restored = loads(dumps(workbook))

    assert restored.resolve_name("rate") == ("Data", CellAddress(2, 2))
    assert restored.rates.rate("EUR") == pytest.approx(0.9)
    assert restored.rates.entry("EUR").provenance == RateProvenance.MANUAL
    assert restored.rates.entry("GBP").provenance == RateProvenance.HARDCODED


def test_loaded_workbook_recalculates_on_edit(workbook):
    build_sample(workbook)
    restored = loads(dumps(workbook))

    restored.set_cell("Sheet1", "A2", "100 km")
    assert restored.value("Sheet1", "A3").magnitude == pytest.approx(162.137, rel=1e-5)


def test_document_layout(workbook):
    build_sample(workbook)
    document = json.loads(dumps(workbook))

    assert document["version"] == FORMAT_VERSION
    assert document["metadata"]["app_version"]
    cell = document["workbook"]["sheets"][0]["cells"]["A3"]
    assert cell["value"]["type"] == "number"
    assert cell["storage_unit"] == "mi"
    assert cell["display_unit"] == "km"
    assert cell["formula"] == "=A1 + A2"
    assert document["workbook"]["sheets"][0]["cells"]["A4"]["value"]["error"] == "#DIV/0!"
    assert document["workbook"]["named_ranges"]["rate"] == {"sheet": "Data", "address": "B2"}


def test_save_and_load_file(workbook, tmp_path: Path):
    build_sample(workbook)
    path = save_workbook(workbook, tmp_path / "budget.json")

    assert path.exists()
    assert not workbook.dirty
    restored = load_workbook(path)
    assert restored.value("Sheet1", "A2") == NumberValue(50.0, restored.library.unit("km"))


def test_unsupported_version_is_rejected(workbook):
    document = json.loads(dumps(workbook))
    document["version"] = "2.0"
    with pytest.raises(PersistenceError) as excinfo:
        loads(json.dumps(document))
    assert excinfo.value.version == "2.0"


@pytest.mark.parametrize("text", ["not json", "{}", '{"version": "1.0"}'])
def test_invalid_documents(text):
    with pytest.raises(PersistenceError):
        loads(text)


def test_unknown_unit_in_document(workbook):
    workbook.set_cell("Sheet1", "A1", "3 kg")
    document = json.loads(dumps(workbook))
    document["workbook"]["sheets"][0]["cells"]["A1"]["storage_unit"] = "furlongs"
    with pytest.raises(PersistenceError):
        loads(json.dumps(document))


def test_missing_file(tmp_path: Path):
    with pytest.raises(PersistenceError):
        load_workbook(tmp_path / "missing.json")


def test_overflow_result_survives_round_trip(workbook):
    workbook.set_cell("Sheet1", "A1", "=1e308 * 10")
    restored = loads(dumps(workbook))
    assert restored.value("Sheet1", "A1") == ErrorValue(ErrorKind.VALUE)
    assert restored.get_cell("Sheet1", "A1").formula_source == "=1e308 * 10"


def test_number_without_magnitude_is_rejected(workbook):
    workbook.set_cell("Sheet1", "A1", "3 kg")
    document = json.loads(dumps(workbook))
    document["workbook"]["sheets"][0]["cells"]["A1"]["value"]["number"] = None
    with pytest.raises(PersistenceError):
        loads(json.dumps(document))
