"""Persistence and export formats"""

from core.enums import ExportFormat
from core.interfaces import WorkbookExporter
from .csv import CsvExporter, sheet_to_dataframe
from .excel import ExcelExporter
from .json_format import FORMAT_VERSION, dumps, loads, load_workbook, save_workbook

EXPORTERS = {
    ExportFormat.XLSX: ExcelExporter,
    ExportFormat.CSV: CsvExporter,
}


def get_exporter(export_format: ExportFormat, **options) -> WorkbookExporter:
    """Create the exporter for a format"""
    return EXPORTERS[ExportFormat(export_format)](**options)


__all__ = [
    "FORMAT_VERSION",
    "dumps",
    "loads",
    "load_workbook",
    "save_workbook",
    "ExcelExporter",
    "CsvExporter",
    "sheet_to_dataframe",
    "get_exporter",
]
