"""Excel (.xlsx) export.

Spreadsheet applications have no notion of units, so every exported sheet
holds plain magnitudes with a unit-suffixed number format, and an
auxiliary sheet records the original unit of every cell.
"""

from pathlib import Path
from typing import List, Union

import openpyxl
from openpyxl.styles import Font

from config import settings
from core.exceptions import PersistenceError
from core.interfaces import WorkbookExporter
from engine.cell import ErrorValue, NumberValue, TextValue
from engine.display import format_computed
from engine.workbook import Workbook
from logging_config import get_logger
from units.unit import Unit

logger = get_logger(__name__)

UNIT_COLUMNS = ["Sheet", "Cell", "Value", "Storage Unit", "Display Unit", "Formula", "Warning"]
RATE_COLUMNS = ["Currency", "Rate (per USD)", "Provenance", "Updated At"]


def number_format(unit: Unit, precision: int = 2) -> str:
    """Excel number format showing the unit after the magnitude."""
    digits = "0." + "0" * precision if precision > 0 else "0"
    if unit.is_percent:
        return f"{digits}%"
    if not unit.symbol:
        return "General"
    symbol = unit.symbol.replace('"', "")
    return f'{digits} "{symbol}"'


class ExcelExporter(WorkbookExporter):
    """Exporter for .xlsx files"""

    @property
    def supported_extensions(self) -> List[str]:
        return [".xlsx"]

    def export(self, workbook: Workbook, path: Union[str, Path]) -> Path:
        path = Path(path)
        book = openpyxl.Workbook()
        book.remove(book.active)

        for sheet in workbook.sheets:
            self._write_sheet(book, sheet)
        self._write_units(book, workbook)
        self._write_rates(book, workbook)

        try:
            book.save(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e
        logger.info("workbook_exported", path=str(path), format="xlsx", sheets=len(workbook.sheets))
        return path

    def _write_sheet(self, book, sheet) -> None:
        worksheet = book.create_sheet(title=sheet.name[:31])
        for address, cell in sheet:
            target = worksheet.cell(row=address.row, column=address.col)
            result = cell.result
            if isinstance(result, NumberValue):
                target.value = result.magnitude
                target.number_format = number_format(result.unit, settings.DISPLAY_PRECISION)
            elif isinstance(result, TextValue):
                target.value = result.text
                target.data_type = "s"
            elif isinstance(result, ErrorValue):
                target.value = format_computed(result)
        for letter, width in sheet.column_widths.items():
            worksheet.column_dimensions[letter].width = width
        for row, height in sheet.row_heights.items():
            worksheet.row_dimensions[row].height = height

    def _write_units(self, book, workbook: Workbook) -> None:
        worksheet = book.create_sheet(title=settings.UNIT_METADATA_SHEET)
        worksheet.append(UNIT_COLUMNS)
        for cell in worksheet[1]:
            cell.font = Font(bold=True)

        for sheet_name, address, cell in workbook.iter_cells():
            result = cell.result
            unit = result.unit if isinstance(result, NumberValue) else cell.storage_unit
            worksheet.append(
                [
                    sheet_name,
                    str(address),
                    result.magnitude if isinstance(result, NumberValue) else format_computed(result),
                    unit.symbol,
                    cell.display_unit.symbol if cell.display_unit is not None else "",
                    cell.formula_source or "",
                    cell.warning or "",
                ]
            )
            # Formula text is metadata, not a live Excel formula
            worksheet.cell(row=worksheet.max_row, column=6).data_type = "s"

        names = workbook.named_ranges()
        if names:
            worksheet.append([])
            worksheet.append(["Named Range", "Sheet", "Cell"])
            worksheet.cell(row=worksheet.max_row, column=1).font = Font(bold=True)
            for name, (sheet_name, address) in sorted(names.items()):
                worksheet.append([name, sheet_name, str(address)])

    def _write_rates(self, book, workbook: Workbook) -> None:
        worksheet = book.create_sheet(title=settings.RATES_SHEET)
        worksheet.append(RATE_COLUMNS)
        for cell in worksheet[1]:
            cell.font = Font(bold=True)
        for code, entry in sorted(workbook.rates.entries().items()):
            worksheet.append(
                [
                    code,
                    entry.rate,
                    entry.provenance.value,
                    entry.updated_at.isoformat() if entry.updated_at else "",
                ]
            )
