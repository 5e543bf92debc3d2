"""Workbook: sheets, named references, currency rates and recalculation.

Every public edit is followed by a synchronous recalculation of the
cells that depend on it, unless the edit happens inside `batch()` or
`auto_recalculate` is off.
"""

from __future__ import annotations

import math
import re
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

from openpyxl.utils.cell import column_index_from_string, get_column_letter

from config import settings
from core.enums import CellState, DisplayPreference, ErrorKind, RateProvenance, ValueKind
from core.exceptions import (
    EvaluationError,
    FormulaSyntaxError,
    InvalidLabelName,
    SheetNotFoundError,
    WorkbookError,
)
from core.models import WorkbookSettings, utc_now
from formula.ast import CellRef, NamedRef, RangeRef, references
from formula.parser import parse_formula
from formula.references import CellAddress, expand_range, make_cell_id, range_size, split_cell_id
from logging_config import get_logger
from units.currency import CurrencyRateTable
from units.library import UnitLibrary, default_library
from units.parser import parse_unit
from units.unit import Unit
from .cell import EMPTY, Cell, Computed, ErrorValue, FormulaValue
from .cell_input import parse_cell_input
from .display import display_cell
from .evaluator import Evaluator
from .graph import DependencyGraph, is_name_node, name_node
from .sheet import Sheet
from .structure import COLUMN, ROW, StructuralEdit, rename_sheet_references, shift_formula

logger = get_logger(__name__)

NAME_PATTERN = re.compile(r"^[a-z_][A-Za-z0-9_]*$")

Address = Union[str, CellAddress]


def _address(address: Address) -> CellAddress:
    if isinstance(address, CellAddress):
        return address
    return CellAddress.parse(address)


class Workbook:
    """In-memory workbook owning its cells, dependency graph and rate table."""

    def __init__(
        self,
        name: Optional[str] = None,
        workbook_settings: Optional[WorkbookSettings] = None,
        library: Optional[UnitLibrary] = None,
        rates: Optional[CurrencyRateTable] = None,
        sheet_names: Optional[Iterable[str]] = None,
    ):
        self.name = name or settings.DEFAULT_WORKBOOK_NAME
        self.settings = workbook_settings or WorkbookSettings()
        self.library = library or default_library()
        self.rates = rates if rates is not None else CurrencyRateTable.from_settings()
        self._sheets: Dict[str, Sheet] = {}
        self._names: Dict[str, Tuple[str, CellAddress]] = {}
        self._graph = DependencyGraph()
        self.active_sheet = 0
        self.dirty = False
        self.created_at = utc_now()

        self._batch_depth = 0
        self._pending: Set[str] = set()
        self._needs_rebuild = False

        for sheet_name in sheet_names or [settings.DEFAULT_SHEET_NAME]:
            self._sheets[sheet_name] = Sheet(sheet_name)

    def __repr__(self) -> str:
        return f"Workbook(name={self.name!r}, sheets={self.sheet_names})"

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    # ─────────────────────────────────────────────────────────────
    # Sheets
    # ─────────────────────────────────────────────────────────────

    @property
    def sheet_names(self) -> List[str]:
        return list(self._sheets)

    @property
    def sheets(self) -> List[Sheet]:
        return list(self._sheets.values())

    def sheet(self, name: Optional[str] = None) -> Sheet:
        """Sheet by name; the active sheet when name is None."""
        if name is None:
            return self.sheets[self.active_sheet]
        try:
            return self._sheets[name]
        except KeyError:
            raise SheetNotFoundError(name)

    def has_sheet(self, name: str) -> bool:
        return name in self._sheets

    def add_sheet(self, name: Optional[str] = None) -> Sheet:
        if name is None:
            index = len(self._sheets) + 1
            while f"Sheet{index}" in self._sheets:
                index += 1
            name = f"Sheet{index}"
        if not name.strip():
            raise WorkbookError("Sheet name cannot be empty")
        if name in self._sheets:
            raise WorkbookError(f"Sheet '{name}' already exists")
        sheet = Sheet(name)
        self._sheets[name] = sheet
        self.dirty = True
        logger.debug("sheet_added", sheet=name)
        # Formulas may already point at the new name
        self._structure_changed()
        return sheet

    def remove_sheet(self, name: str) -> None:
        if name not in self._sheets:
            raise SheetNotFoundError(name)
        if len(self._sheets) == 1:
            raise WorkbookError("Cannot remove the last sheet")
        position = self.sheet_names.index(name)
        del self._sheets[name]
        self._names = {
            label: target for label, target in self._names.items() if target[0] != name
        }
        if self.active_sheet >= len(self._sheets) or self.active_sheet > position:
            self.active_sheet = max(0, self.active_sheet - 1)
        self.dirty = True
        logger.info("sheet_removed", sheet=name)
        self._structure_changed()

    def rename_sheet(self, old_name: str, new_name: str) -> None:
        if old_name not in self._sheets:
            raise SheetNotFoundError(old_name)
        if old_name == new_name:
            return
        if not new_name.strip():
            raise WorkbookError("Sheet name cannot be empty")
        if new_name in self._sheets:
            raise WorkbookError(f"Sheet '{new_name}' already exists")

        self._sheets = {
            (new_name if name == old_name else name): sheet
            for name, sheet in self._sheets.items()
        }
        self._sheets[new_name].name = new_name
        for sheet in self.sheets:
            for address, cell in sheet.formula_cells():
                source = rename_sheet_references(cell.formula_source, old_name, new_name)
                if source != cell.formula_source:
                    self._replace_formula(cell, source)
        self._names = {
            label: ((new_name if sheet == old_name else sheet), address)
            for label, (sheet, address) in self._names.items()
        }
        self.dirty = True
        logger.info("sheet_renamed", old=old_name, new=new_name)
        self._structure_changed()

    def set_active_sheet(self, name: str) -> None:
        if name not in self._sheets:
            raise SheetNotFoundError(name)
        self.active_sheet = self.sheet_names.index(name)

    # ─────────────────────────────────────────────────────────────
    # Cells
    # ─────────────────────────────────────────────────────────────

    def get_cell(self, sheet: str, address: Address) -> Optional[Cell]:
        return self.sheet(sheet).get(_address(address))

    def value(self, sheet: str, address: Address) -> Computed:
        cell = self.get_cell(sheet, address)
        return cell.result if cell is not None else EMPTY

    def set_cell(self, sheet: str, address: Address, text: str) -> Optional[Cell]:
        """Store raw user input.

        Numbers keep the unit they were entered with; `=` starts a
        formula; `label: value` also defines a named reference. Formula
        problems are stored as error values, never raised.
        """
        target = self.sheet(sheet)
        address = _address(address)
        parsed = parse_cell_input(text, self.library)
        previous = target.get(address)

        if parsed.kind == ValueKind.EMPTY:
            cell = None
            target.remove(address)
        elif parsed.kind == ValueKind.FORMULA:
            cell = Cell.formula(parsed.formula)
            self._parse(cell)
        elif parsed.kind == ValueKind.NUMBER:
            cell = Cell.number(parsed.magnitude, parsed.unit)
        else:
            cell = Cell.text(parsed.text)

        if cell is not None:
            self._keep_display_unit(previous, cell)
            target.put(address, cell)
        if parsed.label:
            self._names[parsed.label] = (target.name, address)
            self._graph.set_precedents(name_node(parsed.label), [make_cell_id(target.name, address)])

        logger.debug("cell_set", sheet=target.name, address=str(address), kind=parsed.kind.value)
        self._cell_changed(target.name, address, cell)
        return target.get(address)

    def set_number(
        self, sheet: str, address: Address, magnitude: float, unit: Union[str, Unit] = ""
    ) -> Cell:
        target = self.sheet(sheet)
        address = _address(address)
        if not math.isfinite(magnitude):
            raise WorkbookError(f"Cannot store non-finite number {magnitude}")
        if isinstance(unit, str):
            unit = parse_unit(unit, self.library)
        cell = Cell.number(magnitude, unit)
        self._keep_display_unit(target.get(address), cell)
        target.put(address, cell)
        self._cell_changed(target.name, address, cell)
        return cell

    def clear_cell(self, sheet: str, address: Address) -> None:
        target = self.sheet(sheet)
        address = _address(address)
        if target.remove(address) is None:
            return
        logger.debug("cell_cleared", sheet=target.name, address=str(address))
        self._cell_changed(target.name, address, None)

    def restore_cell(self, sheet: str, address: Address, cell: Cell) -> None:
        """Place a cell as-is, without recalculation (used when loading)."""
        target = self.sheet(sheet)
        address = _address(address)
        if cell.is_formula:
            self._parse(cell, keep_result=True)
        target.put(address, cell)

    def set_display_unit(self, sheet: str, address: Address, unit: Union[str, Unit, None]) -> None:
        """Change the presentational unit; storage and formula inputs are untouched."""
        cell = self.get_cell(sheet, address)
        if cell is None:
            raise WorkbookError(f"Cell {sheet}!{address} is empty")
        if isinstance(unit, str):
            unit = parse_unit(unit, self.library) if unit else None
        if unit is not None:
            current = cell.result.unit if cell.is_number else cell.storage_unit
            if unit.dimension != current.dimension:
                raise WorkbookError(
                    f"Display unit {unit.symbol} is not compatible with {current.symbol or 'dimensionless'}"
                )
        cell.display_unit = unit
        self.dirty = True

    def display(
        self,
        sheet: str,
        address: Address,
        preference: Optional[DisplayPreference] = None,
    ) -> str:
        return display_cell(
            self.get_cell(sheet, address),
            preference or self.settings.display_preference,
            self.library,
            self.settings.unit_preferences,
            rates=self.rates,
            precision=settings.DISPLAY_PRECISION,
        )

    def iter_cells(self) -> Iterator[Tuple[str, CellAddress, Cell]]:
        for sheet in self.sheets:
            for address, cell in sheet:
                yield sheet.name, address, cell

    def _keep_display_unit(self, previous: Optional[Cell], cell: Cell) -> None:
        if previous is None or previous.display_unit is None:
            return
        # A formula's unit is only known after evaluation
        if cell.is_formula or previous.display_unit.dimension == cell.storage_unit.dimension:
            cell.display_unit = previous.display_unit

    # ─────────────────────────────────────────────────────────────
    # Named references
    # ─────────────────────────────────────────────────────────────

    def define_name(self, name: str, sheet: str, address: Address) -> None:
        if not NAME_PATTERN.match(name):
            raise InvalidLabelName(name)
        target = self.sheet(sheet)
        address = _address(address)
        self._names[name] = (target.name, address)
        self._graph.set_precedents(name_node(name), [make_cell_id(target.name, address)])
        self.dirty = True
        logger.debug("name_defined", name=name, sheet=target.name, address=str(address))
        self._schedule([name_node(name)])

    def remove_name(self, name: str) -> None:
        if name not in self._names:
            raise WorkbookError(f"Unknown name '{name}'")
        del self._names[name]
        self._graph.remove(name_node(name))
        self.dirty = True
        self._schedule([name_node(name)])

    def restore_name(self, name: str, sheet: str, address: CellAddress) -> None:
        """Register a name without recalculation (used when loading)."""
        self._names[name] = (sheet, address)

    def named_ranges(self) -> Dict[str, Tuple[str, CellAddress]]:
        return dict(self._names)

    def resolve_name(self, name: str) -> Optional[Tuple[str, CellAddress]]:
        return self._names.get(name)

    # ─────────────────────────────────────────────────────────────
    # Currency
    # ─────────────────────────────────────────────────────────────

    def set_currency_rate(
        self, code: str, rate: float, provenance: RateProvenance = RateProvenance.MANUAL
    ) -> None:
        self.rates.set_rate(code, rate, provenance)
        self.dirty = True
        self._rates_changed()

    def update_currency_rates(self, rates: Dict[str, float], provenance: RateProvenance) -> int:
        count = self.rates.update_rates(rates, provenance)
        self.dirty = True
        self._rates_changed()
        return count

    def _rates_changed(self) -> None:
        if self._batch_depth:
            self._needs_rebuild = True
        elif self.settings.auto_recalculate:
            self.recalculate_all()

    # ─────────────────────────────────────────────────────────────
    # Structural edits
    # ─────────────────────────────────────────────────────────────

    def insert_rows(self, sheet: str, index: int, count: int = 1) -> None:
        self._apply_edit(sheet, StructuralEdit(ROW, index, count))

    def delete_rows(self, sheet: str, index: int, count: int = 1) -> None:
        self._apply_edit(sheet, StructuralEdit(ROW, index, count, delete=True))

    def insert_columns(self, sheet: str, index: int, count: int = 1) -> None:
        self._apply_edit(sheet, StructuralEdit(COLUMN, index, count))

    def delete_columns(self, sheet: str, index: int, count: int = 1) -> None:
        self._apply_edit(sheet, StructuralEdit(COLUMN, index, count, delete=True))

    def _apply_edit(self, sheet_name: str, edit: StructuralEdit) -> None:
        target = self.sheet(sheet_name)

        moved: Dict[CellAddress, Cell] = {}
        for address, cell in target:
            new_address = edit.map_address(address)
            if new_address is not None:
                moved[new_address] = cell
        target.cells = moved

        if edit.axis == ROW:
            heights = {}
            for row, height in target.row_heights.items():
                mapped = edit.map_index(row)
                if mapped is not None:
                    heights[mapped] = height
            target.row_heights = heights
        else:
            widths = {}
            for letter, width in target.column_widths.items():
                mapped = edit.map_index(column_index_from_string(letter))
                if mapped is not None:
                    widths[get_column_letter(mapped)] = width
            target.column_widths = widths

        for sheet in self.sheets:
            for address, cell in sheet.formula_cells():
                source = shift_formula(cell.formula_source, sheet.name, target.name, edit)
                if source != cell.formula_source:
                    self._replace_formula(cell, source)

        names = {}
        for label, (sheet, address) in self._names.items():
            if sheet != target.name:
                names[label] = (sheet, address)
                continue
            mapped = edit.map_address(address)
            if mapped is not None:
                names[label] = (sheet, mapped)
        self._names = names

        self.dirty = True
        logger.info(
            "structural_edit",
            sheet=target.name,
            axis=edit.axis,
            index=edit.index,
            count=edit.count,
            delete=edit.delete,
        )
        self._structure_changed()

    def _replace_formula(self, cell: Cell, source: str) -> None:
        cell.value = FormulaValue(source, cell.value.cached)
        cell.expression = None
        cell.state = CellState.DIRTY
        self._parse(cell)

    # ─────────────────────────────────────────────────────────────
    # Batching and recalculation
    # ─────────────────────────────────────────────────────────────

    @contextmanager
    def batch(self):
        """Defer graph rebuilds and recalculation until the outermost batch exits."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush()

    def _flush(self) -> None:
        if self._needs_rebuild:
            self._needs_rebuild = False
            self._pending.clear()
            self.rebuild_graph()
            if self.settings.auto_recalculate:
                self.recalculate_all()
            return
        if self._pending and self.settings.auto_recalculate:
            roots, self._pending = self._pending, set()
            self._recalculate(roots)

    def recalculate(self) -> int:
        """Evaluate everything left dirty while auto-recalculation was off."""
        if self._needs_rebuild:
            self._needs_rebuild = False
            self.rebuild_graph()
            return self.recalculate_all()
        roots, self._pending = self._pending, set()
        return self._recalculate(roots)

    def recalculate_all(self) -> int:
        nodes = set()
        for sheet in self.sheets:
            for address, cell in sheet.formula_cells():
                nodes.add(make_cell_id(sheet.name, address))
        nodes.update(name_node(name) for name in self._names)
        return self._run(nodes)

    def rebuild_graph(self) -> None:
        """Rebuild every edge from the parsed formulas and named references."""
        self._graph.clear()
        for sheet in self.sheets:
            for address, cell in sheet.formula_cells():
                if cell.expression is None:
                    self._parse(cell, keep_result=True)
                self._register(sheet.name, address, cell)
        for name, (sheet, address) in self._names.items():
            self._graph.set_precedents(name_node(name), [make_cell_id(sheet, address)])
        logger.debug("graph_rebuilt", nodes=len(self._graph), edges=self._graph.edge_count)

    def _structure_changed(self) -> None:
        if self._batch_depth:
            self._needs_rebuild = True
            return
        self.rebuild_graph()
        if self.settings.auto_recalculate:
            self.recalculate_all()
        else:
            self._needs_rebuild = True

    def _cell_changed(self, sheet: str, address: CellAddress, cell: Optional[Cell]) -> None:
        node = make_cell_id(sheet, address)
        if cell is not None and cell.is_formula:
            self._register(sheet, address, cell)
        else:
            self._graph.remove(node)
        self.dirty = True
        self._schedule([node])

    def _schedule(self, roots: Iterable[str]) -> None:
        if self._batch_depth or not self.settings.auto_recalculate:
            self._pending.update(roots)
            return
        self._recalculate(roots)

    def _recalculate(self, roots: Iterable[str]) -> int:
        return self._run(self._graph.dependents_closure(roots))

    def _run(self, affected: Set[str]) -> int:
        """Evaluate the affected nodes in dependency order.

        Nodes on a cycle are set to a circular-reference error and not
        evaluated; cells downstream of a cycle read that error.
        """
        cells: Dict[str, Tuple[str, CellAddress, Cell]] = {}
        for node in affected:
            if is_name_node(node):
                continue
            sheet_name, address = split_cell_id(node)
            sheet = self._sheets.get(sheet_name)
            cell = sheet.get(address) if sheet is not None else None
            if cell is not None and cell.is_formula:
                cell.state = CellState.DIRTY
                cells[node] = (sheet_name, address, cell)

        order, leftover = self._graph.topological_order(affected)
        cycle = self._graph.cycle_members(leftover)
        for node in cycle:
            if node in cells:
                cell = cells[node][2]
                cell.store_result(ErrorValue(ErrorKind.CIRCULAR, "Circular reference"))
                cell.state = CellState.ERROR
        downstream, unordered = self._graph.topological_order(leftover - cycle)

        evaluated = 0
        for node in order + downstream + sorted(unordered):
            entry = cells.get(node)
            if entry is None or entry[2].state != CellState.DIRTY:
                continue
            self._evaluate(*entry)
            evaluated += 1

        if cycle:
            logger.warning("circular_reference", cells=sorted(n for n in cycle if n in cells))
        logger.debug("recalculated", cells=evaluated, cycles=len(cycle))
        return evaluated

    # ─────────────────────────────────────────────────────────────
    # Evaluation
    # ─────────────────────────────────────────────────────────────

    def value_at(self, sheet_name: str, address: CellAddress) -> Computed:
        """Resolver hook for the evaluator; pulls dirty precedents on demand."""
        sheet = self._sheets.get(sheet_name)
        if sheet is None:
            raise EvaluationError(ErrorKind.REF, f"Unknown sheet '{sheet_name}'")
        cell = sheet.get(address)
        if cell is None:
            return EMPTY
        if cell.is_formula:
            if cell.state == CellState.EVALUATING:
                raise EvaluationError(ErrorKind.CIRCULAR, "Circular reference")
            if cell.state == CellState.DIRTY:
                self._evaluate(sheet_name, address, cell)
        return cell.result

    def _evaluate(self, sheet_name: str, address: CellAddress, cell: Cell) -> None:
        if cell.expression is None and not self._parse(cell):
            return
        cell.state = CellState.EVALUATING
        evaluator = Evaluator(self, sheet_name, self.library, self.rates)
        result = evaluator.evaluate(cell.expression)
        cell.store_result(result, evaluator.warning)
        cell.state = CellState.ERROR if isinstance(result, ErrorValue) else CellState.CLEAN

    def _parse(self, cell: Cell, keep_result: bool = False) -> bool:
        """Parse a formula cell; a syntax error is stored as the cell's value."""
        try:
            cell.expression = parse_formula(cell.formula_source, self.library)
        except FormulaSyntaxError as exc:
            cell.expression = None
            if not keep_result:
                cell.store_result(ErrorValue(ErrorKind.SYNTAX, str(exc)))
            cell.state = CellState.ERROR
            return False
        return True

    def _register(self, sheet: str, address: CellAddress, cell: Cell) -> None:
        node = make_cell_id(sheet, address)
        if cell.expression is None:
            self._graph.remove(node)
            return
        sources: Set[str] = set()
        for ref in references(cell.expression):
            if isinstance(ref, CellRef):
                sources.add(make_cell_id(ref.sheet or sheet, ref.address))
            elif isinstance(ref, RangeRef):
                if range_size(ref.start.address, ref.end.address) > settings.MAX_RANGE_EXPANSION:
                    continue
                range_sheet = ref.sheet or sheet
                sources.update(
                    make_cell_id(range_sheet, member)
                    for member in expand_range(ref.start.address, ref.end.address)
                )
            elif isinstance(ref, NamedRef):
                sources.add(name_node(ref.name))
        self._graph.set_precedents(node, sources)

    def mark_saved(self) -> None:
        self.dirty = False

