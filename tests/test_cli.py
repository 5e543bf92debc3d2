from pathlib import Path

import openpyxl
from click.testing import CliRunner

from formats import load_workbook
from main import cli


def invoke(*args):
    return CliRunner().invoke(cli, ["--log-level", "ERROR", *args])


def test_new_set_and_show(tmp_path: Path):
    path = tmp_path / "trip.json"

    result = invoke("new", str(path))
    assert result.exit_code == 0
    assert load_workbook(path).name == "trip"

    assert invoke("set", str(path), "A1", "100 mi").exit_code == 0
    assert invoke("set", str(path), "A2", "50 km").exit_code == 0
    result = invoke("set", str(path), "a3", "=A1 + A2")
    assert result.exit_code == 0
    assert "Sheet1!A3 = 131.07 mi" in result.output

    result = invoke("show", str(path))
    assert result.exit_code == 0
    assert "100 mi" in result.output
    assert "131.07 mi" in result.output

    result = invoke("show", str(path), "--preference", "metric")
    assert "160934.4 m" in result.output


def test_new_refuses_to_overwrite(tmp_path: Path):
    path = tmp_path / "book.json"
    invoke("new", str(path))

    result = invoke("new", str(path))
    assert result.exit_code != 0
    assert "already exists" in result.output
    assert invoke("new", str(path), "--force", "--name", "Fresh").exit_code == 0
    assert load_workbook(path).name == "Fresh"


def test_set_reports_warning_and_errors(tmp_path: Path):
    path = tmp_path / "book.json"
    invoke("new", str(path))

    result = invoke("set", str(path), "B1", "=5 m + 10 s")
    assert result.exit_code == 0
    assert "Incompatible units" in result.output

    result = invoke("set", str(path), "B2", "=1/0")
    assert "#DIV/0!" in result.output

    result = invoke("set", str(path), "B3", "1", "--sheet", "Missing")
    assert result.exit_code != 0
    assert "Sheet not found" in result.output


def test_show_empty_sheet(tmp_path: Path):
    path = tmp_path / "book.json"
    invoke("new", str(path))
    assert "(empty sheet)" in invoke("show", str(path)).output


def test_convert():
    result = invoke("convert", "1", "km", "m")
    assert result.exit_code == 0
    assert "1 km = 1000.00 m" in result.output

    result = invoke("convert", "1", "km", "s")
    assert result.exit_code != 0


def test_export(tmp_path: Path):
    path = tmp_path / "book.json"
    invoke("new", str(path))
    invoke("set", str(path), "A1", "3 kg")

    xlsx = tmp_path / "book.xlsx"
    result = invoke("export", str(path), str(xlsx))
    assert result.exit_code == 0
    assert openpyxl.load_workbook(xlsx)["Sheet1"]["A1"].value == 3

    csv_path = tmp_path / "sheet.txt"
    result = invoke("export", str(path), str(csv_path), "--format", "csv")
    assert result.exit_code == 0
    assert csv_path.read_text(encoding="utf-8").strip() == "3 kg"

    result = invoke("export", str(path), str(tmp_path / "book.pdf"))
    assert result.exit_code != 0
    assert "--format" in result.output


def test_corrupt_workbook_file(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    result = invoke("show", str(path))
    assert result.exit_code != 0
    assert "Invalid workbook document" in result.output
