"""Versioned JSON workbook documents.

Loading restores cached formula results and warnings verbatim; the
workbook is not recalculated.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from config import settings
from core.enums import CellState, ErrorKind, ValueKind
from core.exceptions import PersistenceError, UnitParseError
from core.models import (
    CellRecord,
    CurrencyRateRecord,
    DocumentMetadata,
    NamedRangeRecord,
    SheetRecord,
    StoredValue,
    WorkbookDocument,
    WorkbookRecord,
)
from engine.cell import EMPTY, Cell, Computed, ErrorValue, FormulaValue, NumberValue, TextValue
from engine.workbook import Workbook
from formula.references import CellAddress
from logging_config import get_logger
from units.currency import CurrencyRate, CurrencyRateTable
from units.library import UnitLibrary, default_library
from units.parser import parse_unit
from units.unit import DIMENSIONLESS_UNIT, Unit

logger = get_logger(__name__)

FORMAT_VERSION = "1.0"
_ERROR_KINDS = {kind.code: kind for kind in ErrorKind}


# ─────────────────────────────────────────────────────────────
# Workbook -> document
# ─────────────────────────────────────────────────────────────

def _stored_value(value: Computed) -> StoredValue:
    if isinstance(value, NumberValue):
        return StoredValue(type=ValueKind.NUMBER, number=value.magnitude)
    if isinstance(value, TextValue):
        return StoredValue(type=ValueKind.TEXT, text=value.text)
    if isinstance(value, ErrorValue):
        return StoredValue(type=ValueKind.ERROR, error=value.code, text=value.message or None)
    return StoredValue(type=ValueKind.EMPTY)


def _cell_record(cell: Cell) -> CellRecord:
    result = cell.result
    unit = result.unit if isinstance(result, NumberValue) else cell.storage_unit
    return CellRecord(
        value=_stored_value(result),
        storage_unit=unit.symbol,
        display_unit=cell.display_unit.symbol if cell.display_unit is not None else None,
        formula=cell.formula_source,
        warning=cell.warning,
    )


def to_document(workbook: Workbook) -> WorkbookDocument:
    sheets = []
    for sheet in workbook.sheets:
        sheets.append(
            SheetRecord(
                name=sheet.name,
                cells={str(address): _cell_record(cell) for address, cell in sheet},
                column_widths=dict(sheet.column_widths),
                row_heights={str(row): height for row, height in sheet.row_heights.items()},
            )
        )
    rates = {
        code: CurrencyRateRecord(
            rate=entry.rate, provenance=entry.provenance, updated_at=entry.updated_at
        )
        for code, entry in workbook.rates.entries().items()
    }
    names = {
        name: NamedRangeRecord(sheet=sheet, address=str(address))
        for name, (sheet, address) in workbook.named_ranges().items()
    }
    metadata = DocumentMetadata(created_at=workbook.created_at, app_version=settings.APP_VERSION)
    return WorkbookDocument(
        version=FORMAT_VERSION,
        metadata=metadata,
        workbook=WorkbookRecord(
            name=workbook.name,
            settings=workbook.settings.model_copy(deep=True),
            currency_rates=rates,
            sheets=sheets,
            active_sheet=workbook.active_sheet,
            named_ranges=names,
        ),
    )


# ─────────────────────────────────────────────────────────────
# Document -> workbook
# ─────────────────────────────────────────────────────────────

def _unit(symbol: Optional[str], library: UnitLibrary) -> Unit:
    if not symbol:
        return DIMENSIONLESS_UNIT
    try:
        return parse_unit(symbol, library)
    except UnitParseError as e:
        raise PersistenceError(f"Unknown unit in document: {symbol}") from e


def _computed(stored: StoredValue, unit: Unit) -> Computed:
    if stored.type == ValueKind.NUMBER:
        if stored.number is None:
            raise PersistenceError("Number value without a magnitude in document")
        return NumberValue(stored.number, unit)
    if stored.type == ValueKind.TEXT:
        return TextValue(stored.text or "")
    if stored.type == ValueKind.ERROR:
        kind = _ERROR_KINDS.get(stored.error or "")
        if kind is None:
            raise PersistenceError(f"Unknown error code in document: {stored.error}")
        return ErrorValue(kind, stored.text or "")
    return EMPTY


def _restore_cell(record: CellRecord, library: UnitLibrary) -> Cell:
    unit = _unit(record.storage_unit, library)
    result = _computed(record.value, unit)
    display_unit = _unit(record.display_unit, library) if record.display_unit else None
    if record.formula is not None:
        cell = Cell(
            value=FormulaValue(record.formula, result),
            storage_unit=unit,
            state=CellState.ERROR if isinstance(result, ErrorValue) else CellState.CLEAN,
        )
    elif isinstance(result, ErrorValue):
        cell = Cell(value=result, state=CellState.ERROR)
    else:
        cell = Cell(value=result, storage_unit=unit)
    cell.display_unit = display_unit
    cell.warning = record.warning
    return cell


def from_document(document: WorkbookDocument, library: Optional[UnitLibrary] = None) -> Workbook:
    if document.version != FORMAT_VERSION:
        raise PersistenceError(
            f"Unsupported workbook format version {document.version!r}", document.version
        )
    library = library or default_library()
    record = document.workbook
    if not record.sheets:
        raise PersistenceError("Workbook document has no sheets")

    rates = CurrencyRateTable(
        {
            code: CurrencyRate(entry.rate, entry.provenance, entry.updated_at)
            for code, entry in record.currency_rates.items()
        }
    ) if record.currency_rates else CurrencyRateTable()

    workbook = Workbook(
        name=record.name,
        workbook_settings=record.settings,
        library=library,
        rates=rates,
        sheet_names=[sheet.name for sheet in record.sheets],
    )
    for sheet_record in record.sheets:
        sheet = workbook.sheet(sheet_record.name)
        sheet.column_widths = dict(sheet_record.column_widths)
        sheet.row_heights = {int(row): height for row, height in sheet_record.row_heights.items()}
        for address, cell_record in sheet_record.cells.items():
            workbook.restore_cell(sheet.name, address, _restore_cell(cell_record, library))

    for name, target in record.named_ranges.items():
        workbook.restore_name(name, target.sheet, CellAddress.parse(target.address))
    workbook.active_sheet = min(max(record.active_sheet, 0), len(record.sheets) - 1)
    workbook.created_at = document.metadata.created_at
    workbook.rebuild_graph()
    workbook.mark_saved()
    return workbook


# ─────────────────────────────────────────────────────────────
# Text and file round-trip
# ─────────────────────────────────────────────────────────────

def dumps(workbook: Workbook, indent: Optional[int] = 2) -> str:
    return to_document(workbook).model_dump_json(indent=indent)


def loads(text: Union[str, bytes], library: Optional[UnitLibrary] = None) -> Workbook:
    try:
        document = WorkbookDocument.model_validate_json(text)
    except ValidationError as e:
        raise PersistenceError(f"Invalid workbook document: {e}") from e
    return from_document(document, library)


def save_workbook(workbook: Workbook, path: Union[str, Path]) -> Path:
    path = Path(path)
    document = to_document(workbook)
    try:
        path.write_text(document.model_dump_json(indent=2), encoding="utf-8")
    except OSError as e:
        raise PersistenceError(f"Failed to write workbook {path}: {e}") from e
    workbook.mark_saved()
    logger.info("workbook_saved", path=str(path), sheets=len(workbook.sheets))
    return path


def load_workbook(path: Union[str, Path], library: Optional[UnitLibrary] = None) -> Workbook:
    path = Path(path)
    if not path.exists():
        raise PersistenceError(f"File not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PersistenceError(f"Failed to read workbook {path}: {e}") from e
    workbook = loads(text, library)
    logger.info("workbook_loaded", path=str(path), sheets=len(workbook.sheets))
    return workbook


__all__ = [
    "FORMAT_VERSION",
    "to_document",
    "from_document",
    "dumps",
    "loads",
    "save_workbook",
    "load_workbook",
]
