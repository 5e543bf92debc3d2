"""Tool definitions and handlers exposed over the RPC surface.

Handlers translate tool arguments onto workbook and unit-library
operations. Every numeric value they return carries its unit.
"""

import json
from typing import Any, Callable, Dict, List, Optional

from config import settings
from core.enums import BaseDimension, RateProvenance
from core.exceptions import UnitCalcError, UnitParseError
from engine.cell import Cell, Computed, EmptyValue, ErrorValue, NumberValue, TextValue
from engine.display import format_computed
from engine.workbook import Workbook
from formula.references import CellAddress, expand_range, parse_range, range_size
from logging_config import get_logger
from units.parser import parse_unit
from units.unit import Unit
from .types import CallToolResult, ToolDefinition

logger = get_logger(__name__)


class ToolError(UnitCalcError):
    """Tool call that cannot be carried out; reported as an isError result"""
    pass


_SHEET_NAME = {
    "type": "string",
    "description": "Sheet name (optional, defaults to active sheet)",
}

TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="read_cell",
        description="Read a single cell with full metadata including value, unit, formula, and warnings",
        input_schema={
            "type": "object",
            "properties": {
                "cell_ref": {"type": "string", "description": "Cell reference (e.g., 'A1', 'B5')"},
                "sheet_name": _SHEET_NAME,
            },
            "required": ["cell_ref"],
        },
    ),
    ToolDefinition(
        name="read_range",
        description="Read a range of cells in a single operation",
        input_schema={
            "type": "object",
            "properties": {
                "range": {"type": "string", "description": "Cell range (e.g., 'A1:B10')"},
                "sheet_name": _SHEET_NAME,
            },
            "required": ["range"],
        },
    ),
    ToolDefinition(
        name="write_cell",
        description="Write a value to a single cell with optional unit and validation",
        input_schema={
            "type": "object",
            "properties": {
                "cell_ref": {"type": "string", "description": "Cell reference (e.g., 'A1', 'B5')"},
                "value": {"description": "Cell value (number, string, or formula)"},
                "unit": {"type": "string", "description": "Unit for the value (optional)"},
                "sheet_name": _SHEET_NAME,
                "validate": {
                    "type": "boolean",
                    "description": "Reject unknown units (default: true)",
                },
            },
            "required": ["cell_ref", "value"],
        },
    ),
    ToolDefinition(
        name="write_range",
        description="Write multiple cells in a single operation with one recalculation",
        input_schema={
            "type": "object",
            "properties": {
                "cells": {
                    "type": "array",
                    "description": "Array of cell writes",
                    "items": {
                        "type": "object",
                        "properties": {
                            "cell_ref": {"type": "string"},
                            "value": {},
                            "unit": {"type": "string"},
                        },
                        "required": ["cell_ref", "value"],
                    },
                },
                "sheet_name": _SHEET_NAME,
                "validate": {"type": "boolean", "description": "Reject unknown units (default: true)"},
            },
            "required": ["cells"],
        },
    ),
    ToolDefinition(
        name="get_sheet_structure",
        description="Get the structure of a sheet including dimensions, used cells and named ranges",
        input_schema={"type": "object", "properties": {"sheet_name": _SHEET_NAME}},
    ),
    ToolDefinition(
        name="list_tables",
        description="List all available tables (sheets) in the workbook with their metadata",
        input_schema={"type": "object", "properties": {}},
    ),
    ToolDefinition(
        name="convert_value",
        description="Convert a value from one unit to another with metadata about the conversion",
        input_schema={
            "type": "object",
            "properties": {
                "value": {"type": "number", "description": "Value to convert"},
                "from_unit": {"type": "string", "description": "Source unit (e.g., 'USD', 'm', 'GB')"},
                "to_unit": {"type": "string", "description": "Target unit (e.g., 'EUR', 'ft', 'TB')"},
                "include_path": {
                    "type": "boolean",
                    "description": "Whether to include conversion path metadata (default: false)",
                },
            },
            "required": ["value", "from_unit", "to_unit"],
        },
    ),
    ToolDefinition(
        name="get_conversion_rate",
        description="Get the current conversion rate between two units with its provenance",
        input_schema={
            "type": "object",
            "properties": {
                "from_unit": {"type": "string", "description": "Source unit"},
                "to_unit": {"type": "string", "description": "Target unit"},
            },
            "required": ["from_unit", "to_unit"],
        },
    ),
    ToolDefinition(
        name="list_compatible_units",
        description="List all units compatible with a given unit (same dimension)",
        input_schema={
            "type": "object",
            "properties": {"unit": {"type": "string", "description": "Unit to check compatibility for"}},
            "required": ["unit"],
        },
    ),
    ToolDefinition(
        name="validate_unit",
        description="Validate if a unit is recognized and get its canonical form",
        input_schema={
            "type": "object",
            "properties": {"unit": {"type": "string", "description": "Unit string to validate"}},
            "required": ["unit"],
        },
    ),
    ToolDefinition(
        name="get_workbook_metadata",
        description="Get metadata about the entire workbook including sheets, settings, and units in use",
        input_schema={"type": "object", "properties": {}},
    ),
]


def value_payload(value: Computed) -> Dict[str, Any]:
    """JSON form of a computed value; numbers always carry their unit."""
    if isinstance(value, NumberValue):
        return {"type": "number", "value": value.magnitude, "unit": value.unit.symbol}
    if isinstance(value, TextValue):
        return {"type": "text", "value": value.text}
    if isinstance(value, ErrorValue):
        return {"type": "error", "error": value.code, "message": value.message}
    return {"type": "empty", "value": None}


def _require(args: Dict[str, Any], key: str, kind: type = str) -> Any:
    value = args.get(key)
    if value is None:
        raise ToolError(f"Missing {key}")
    if kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ToolError(f"Invalid {key}: expected a number")
        return float(value)
    if not isinstance(value, kind):
        raise ToolError(f"Invalid {key}: expected {kind.__name__}")
    return value


class ToolHandler:
    """Dispatches tool calls onto one workbook.

    Callers serialise access; the handler itself does no locking.
    """

    def __init__(self, workbook: Workbook):
        self.workbook = workbook
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "read_cell": self.read_cell,
            "read_range": self.read_range,
            "write_cell": self.write_cell,
            "write_range": self.write_range,
            "get_sheet_structure": self.get_sheet_structure,
            "list_tables": self.list_tables,
            "convert_value": self.convert_value,
            "get_conversion_rate": self.get_conversion_rate,
            "list_compatible_units": self.list_compatible_units,
            "validate_unit": self.validate_unit,
            "get_workbook_metadata": self.get_workbook_metadata,
        }

    @property
    def library(self):
        return self.workbook.library

    def definitions(self) -> List[ToolDefinition]:
        return list(TOOL_DEFINITIONS)

    def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> CallToolResult:
        handler = self._handlers.get(name)
        if handler is None:
            return CallToolResult.text(f"Unknown tool: {name}", is_error=True)
        try:
            result = handler(arguments or {})
        except UnitCalcError as e:
            logger.info("tool_failed", tool=name, error=str(e))
            return CallToolResult.text(str(e), is_error=True)
        except ValueError as e:
            logger.info("tool_failed", tool=name, error=str(e))
            return CallToolResult.text(str(e), is_error=True)
        return CallToolResult.text(json.dumps(result, indent=2))

    # ─────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────

    def read_cell(self, args: Dict[str, Any]) -> Dict[str, Any]:
        cell_ref = _require(args, "cell_ref")
        sheet = self.workbook.sheet(args.get("sheet_name"))
        address = CellAddress.parse(cell_ref)
        cell = sheet.get(address)
        if cell is None:
            raise ToolError(f"Cell {cell_ref} is empty or does not exist")
        return self._cell_payload(sheet.name, address, cell)

    def _cell_payload(self, sheet_name: str, address: CellAddress, cell: Cell) -> Dict[str, Any]:
        result = cell.result
        unit = result.unit if isinstance(result, NumberValue) else cell.storage_unit
        display_unit = cell.display_unit or unit
        return {
            "cell_ref": str(address),
            "sheet": sheet_name,
            "value": value_payload(result),
            "unit": {
                "canonical": unit.symbol,
                "dimension": str(unit.dimension),
                "display": display_unit.symbol,
            },
            "display": self.workbook.display(sheet_name, address),
            "formula": cell.formula_source,
            "warnings": [cell.warning] if cell.warning else [],
            "state": cell.state.value,
            "is_empty": isinstance(result, EmptyValue),
            "is_number": cell.is_number,
            "is_text": cell.is_text,
            "is_error": cell.is_error,
        }

    def read_range(self, args: Dict[str, Any]) -> Dict[str, Any]:
        text = _require(args, "range")
        sheet = self.workbook.sheet(args.get("sheet_name"))
        start, end = parse_range(text)
        if range_size(start, end) > settings.MAX_RANGE_EXPANSION:
            raise ToolError(f"Range {text} is larger than {settings.MAX_RANGE_EXPANSION} cells")
        cells = []
        for address in expand_range(start, end):
            cell = sheet.get(address)
            if cell is not None:
                cells.append(
                    {
                        "cell_ref": str(address),
                        "value": value_payload(cell.result),
                        "display": self.workbook.display(sheet.name, address),
                        "formula": cell.formula_source,
                    }
                )
        return {
            "range": f"{start}:{end}",
            "sheet": sheet.name,
            "rows": abs(end.row - start.row) + 1,
            "columns": abs(end.col - start.col) + 1,
            "cells": cells,
        }

    def get_sheet_structure(self, args: Dict[str, Any]) -> Dict[str, Any]:
        sheet = self.workbook.sheet(args.get("sheet_name"))
        names = {
            name: str(address)
            for name, (sheet_name, address) in self.workbook.named_ranges().items()
            if sheet_name == sheet.name
        }
        return {
            "sheet_name": sheet.name,
            "used_cells": len(sheet),
            "dimensions": sheet.dimensions,
            "max_row": sheet.max_row,
            "max_column": sheet.max_col,
            "cell_references": [str(address) for address in sheet.addresses()],
            "formula_cells": [str(address) for address, _ in sheet.formula_cells()],
            "named_ranges": names,
            "column_widths": dict(sheet.column_widths),
            "row_heights": {str(row): height for row, height in sheet.row_heights.items()},
        }

    def list_tables(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "tables": [
                {"name": sheet.name, "cell_count": len(sheet), "dimensions": sheet.dimensions}
                for sheet in self.workbook.sheets
            ],
            "active_sheet": self.workbook.sheet().name,
        }

    def get_workbook_metadata(self, args: Dict[str, Any]) -> Dict[str, Any]:
        units_in_use = set()
        for _, _, cell in self.workbook.iter_cells():
            result = cell.result
            if isinstance(result, NumberValue) and result.unit.symbol:
                units_in_use.add(result.unit.symbol)
        workbook_settings = self.workbook.settings
        return {
            "name": self.workbook.name,
            "sheet_count": len(self.workbook.sheets),
            "sheets": [{"name": sheet.name, "cell_count": len(sheet)} for sheet in self.workbook.sheets],
            "active_sheet": self.workbook.sheet().name,
            "display_preference": workbook_settings.display_preference.value,
            "auto_recalculate": workbook_settings.auto_recalculate,
            "named_ranges": {
                name: f"{sheet}!{address}"
                for name, (sheet, address) in sorted(self.workbook.named_ranges().items())
            },
            "currency_rates": {
                code: {"rate": entry.rate, "provenance": entry.provenance.value}
                for code, entry in sorted(self.workbook.rates.entries().items())
            },
            "units_in_use": sorted(units_in_use),
            "dirty": self.workbook.dirty,
        }

    # ─────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────

    def _check_write(self, item: Dict[str, Any], validate: bool) -> None:
        _require(item, "cell_ref")
        CellAddress.parse(item["cell_ref"])
        value = item.get("value")
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ToolError(f"Invalid value type for {item['cell_ref']}")
        unit = item.get("unit")
        if unit is not None and not isinstance(unit, str):
            raise ToolError(f"Invalid unit for {item['cell_ref']}")
        if validate and unit:
            try:
                parse_unit(unit, self.library)
            except UnitParseError as e:
                raise ToolError(f"Invalid unit '{unit}': {e}") from e

    def _write(self, sheet_name: str, item: Dict[str, Any]) -> Cell:
        value = item["value"]
        unit = item.get("unit") or ""
        if isinstance(value, str):
            text = value if not unit or value.startswith("=") else f"{value} {unit}"
            return self.workbook.set_cell(sheet_name, item["cell_ref"], text)
        try:
            parsed_unit = parse_unit(unit, self.library)
        except UnitParseError:
            # Unvalidated input keeps the unit text as typed
            return self.workbook.set_cell(sheet_name, item["cell_ref"], f"{value} {unit}")
        return self.workbook.set_number(sheet_name, item["cell_ref"], float(value), parsed_unit)

    def write_cell(self, args: Dict[str, Any]) -> Dict[str, Any]:
        validate = args.get("validate", True)
        self._check_write(args, validate)
        sheet = self.workbook.sheet(args.get("sheet_name"))
        cell = self._write(sheet.name, args)
        address = CellAddress.parse(args["cell_ref"])
        logger.debug("tool_write_cell", sheet=sheet.name, cell=str(address))
        return {
            "success": True,
            "cell_ref": str(address),
            "sheet": sheet.name,
            "value": value_payload(cell.result) if cell is not None else value_payload(EmptyValue()),
            "warning": cell.warning if cell is not None else None,
        }

    def write_range(self, args: Dict[str, Any]) -> Dict[str, Any]:
        cells = args.get("cells")
        if not isinstance(cells, list) or not cells:
            raise ToolError("Missing cells")
        validate = args.get("validate", True)
        for item in cells:
            if not isinstance(item, dict):
                raise ToolError("Each cell write must be an object")
            self._check_write(item, validate)

        sheet = self.workbook.sheet(args.get("sheet_name"))
        with self.workbook.batch():
            for item in cells:
                self._write(sheet.name, item)
        written = [str(CellAddress.parse(item["cell_ref"])) for item in cells]
        return {
            "success": True,
            "sheet": sheet.name,
            "written": len(written),
            "cells": [
                {"cell_ref": ref, "value": value_payload(self.workbook.value(sheet.name, ref))}
                for ref in written
            ],
        }

    # ─────────────────────────────────────────────────────────────
    # Units
    # ─────────────────────────────────────────────────────────────

    def _unit(self, text: str) -> Unit:
        try:
            return parse_unit(text, self.library)
        except UnitParseError as e:
            raise ToolError(f"Invalid unit '{text}': {e}") from e

    def _provenance(self, *units: Unit) -> RateProvenance:
        codes = [
            term.symbol
            for unit in units
            for term in unit.terms
            if term.base == BaseDimension.CURRENCY
        ]
        if not codes:
            return RateProvenance.HARDCODED
        return self.workbook.rates.provenance_for(*codes)

    def convert_value(self, args: Dict[str, Any]) -> Dict[str, Any]:
        value = _require(args, "value", float)
        from_unit = self._unit(_require(args, "from_unit"))
        to_unit = self._unit(_require(args, "to_unit"))
        converted = self.library.convert(value, from_unit, to_unit, self.workbook.rates)
        rate = self.library.convert(1.0, from_unit, to_unit, self.workbook.rates)
        result = {
            "original": {"value": value, "unit": from_unit.symbol},
            "converted": {"value": converted, "unit": to_unit.symbol},
            "conversion_rate": rate,
            "provenance": self._provenance(from_unit, to_unit).value,
        }
        if args.get("include_path"):
            result["path"] = {
                "dimension": str(from_unit.dimension),
                "from_factor": self._reference_factor(from_unit),
                "to_factor": self._reference_factor(to_unit),
                "affine": any(term.base == BaseDimension.TEMPERATURE for term in from_unit.terms)
                and from_unit.is_simple,
            }
        return result

    def _reference_factor(self, unit: Unit) -> float:
        factor = 1.0
        for term in unit.terms:
            factor *= self.library.factor(term.symbol, self.workbook.rates) ** term.exponent
        return factor

    def get_conversion_rate(self, args: Dict[str, Any]) -> Dict[str, Any]:
        from_text = _require(args, "from_unit")
        to_text = _require(args, "to_unit")
        from_unit = self._unit(from_text)
        to_unit = self._unit(to_text)
        rate = self.library.convert(1.0, from_unit, to_unit, self.workbook.rates)
        return {
            "from_unit": from_unit.symbol,
            "to_unit": to_unit.symbol,
            "rate": rate,
            "provenance": self._provenance(from_unit, to_unit).value,
            "formula": f"1 {from_unit.symbol} = {rate:g} {to_unit.symbol}",
        }

    def list_compatible_units(self, args: Dict[str, Any]) -> Dict[str, Any]:
        text = _require(args, "unit")
        unit = self._unit(text)
        compatible = self.library.compatible_units(unit)
        return {
            "unit": unit.symbol,
            "dimension": str(unit.dimension),
            "compatible_units": compatible,
            "count": len(compatible),
        }

    def validate_unit(self, args: Dict[str, Any]) -> Dict[str, Any]:
        text = _require(args, "unit")
        try:
            unit = parse_unit(text, self.library)
        except UnitParseError as e:
            return {"valid": False, "input": text, "error": str(e)}
        return {
            "valid": True,
            "input": text,
            "canonical": unit.symbol,
            "dimension": str(unit.dimension),
        }

    # ─────────────────────────────────────────────────────────────
    # Resources
    # ─────────────────────────────────────────────────────────────

    def sheet_snapshot(self, sheet_name: str) -> Dict[str, Any]:
        """Structure plus every populated cell of one sheet"""
        sheet = self.workbook.sheet(sheet_name)
        snapshot = self.get_sheet_structure({"sheet_name": sheet.name})
        snapshot["cells"] = {
            str(address): {
                "value": value_payload(cell.result),
                "display": self.workbook.display(sheet.name, address),
                "formula": cell.formula_source,
                "text": format_computed(cell.result),
            }
            for address, cell in sheet
        }
        return snapshot
