from pathlib import Path

import openpyxl
import pytest

from core.enums import DisplayPreference, ExportFormat
from formats import CsvExporter, ExcelExporter, get_exporter, sheet_to_dataframe
from formats.excel import number_format
from units.unit import DIMENSIONLESS_UNIT


def populate(workbook):
    workbook.set_cell("Sheet1", "A1", "Distance")
    workbook.set_cell("Sheet1", "B1", "100 mi")
    workbook.set_cell("Sheet1", "B2", "15%")
    workbook.set_cell("Sheet1", "B3", "=B1 * 2")
    workbook.set_cell("Sheet1", "C3", "=1/0")
    workbook.set_cell("Sheet1", "D1", "total: 42")
    workbook.sheet("Sheet1").column_widths["A"] = 25.0
    return workbook


def test_number_format(library):
    assert number_format(library.unit("mi")) == '0.00 "mi"'
    assert number_format(library.unit("%")) == "0.00%"
    assert number_format(library.unit("kg"), precision=0) == '0 "kg"'
    assert number_format(DIMENSIONLESS_UNIT) == "General"


def test_excel_export(workbook, tmp_path: Path):
    populate(workbook)
    path = ExcelExporter().export(workbook, tmp_path / "out.xlsx")

    book = openpyxl.load_workbook(path)
    assert book.sheetnames == ["Sheet1", "_units", "_rates"]

    sheet = book["Sheet1"]
    assert sheet["A1"].value == "Distance"
    assert sheet["B1"].value == 100
    assert sheet["B1"].number_format == '0.00 "mi"'
    assert sheet["B2"].number_format == "0.00%"
    assert sheet["B3"].value == 200
    assert sheet["C3"].value == "#DIV/0!"
    assert sheet.column_dimensions["A"].width == 25.0


def test_excel_unit_and_rate_sheets(workbook, tmp_path: Path):
    populate(workbook)
    path = ExcelExporter().export(workbook, tmp_path / "out.xlsx")
    book = openpyxl.load_workbook(path)

    rows = list(book["_units"].iter_rows(values_only=True))
    assert rows[0][:4] == ("Sheet", "Cell", "Value", "Storage Unit")
    by_cell = {row[1]: row for row in rows[1:] if row and row[0] == "Sheet1"}
    assert by_cell["B1"][3] == "mi"
    assert by_cell["B3"][5] == "=B1 * 2"
    assert ("total", "Sheet1", "D1") in [row[:3] for row in rows]

    rates = {row[0]: row for row in book["_rates"].iter_rows(min_row=2, values_only=True)}
    assert rates["USD"][1] == 1.0
    assert rates["EUR"][2] == "hardcoded"


def test_sheet_to_dataframe(workbook):
    populate(workbook)
    df = sheet_to_dataframe(workbook, "Sheet1")

    assert list(df.columns) == ["A", "B", "C", "D"]
    assert list(df.index) == [1, 2, 3]
    assert df.loc[1, "B"] == "100 mi"
    assert df.loc[2, "B"] == "15%"
    assert df.loc[3, "C"] == "#DIV/0!"
    assert df.loc[2, "A"] == ""

    metric = sheet_to_dataframe(workbook, "Sheet1", DisplayPreference.METRIC)
    assert metric.loc[1, "B"] == "160934.4 m"


def test_csv_export(workbook, tmp_path: Path):
    populate(workbook)
    path = CsvExporter(sheet_name="Sheet1").export(workbook, tmp_path / "out.csv")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Distance,100 mi,,42"
    assert lines[2] == ",200 mi,#DIV/0!,"


@pytest.mark.parametrize(
    "export_format, exporter_type, extension",
    [
        (ExportFormat.XLSX, ExcelExporter, ".xlsx"),
        ("csv", CsvExporter, ".csv"),
    ],
)
def test_get_exporter(export_format, exporter_type, extension):
    exporter = get_exporter(export_format)
    assert isinstance(exporter, exporter_type)
    assert exporter.supported_extensions == [extension]
