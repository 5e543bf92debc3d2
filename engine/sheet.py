"""A named grid of populated cells."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from formula.references import CellAddress
from .cell import Cell


class Sheet:
    """Sparse cell storage keyed by address.

    Only populated cells are stored. Column widths are keyed by column
    letter and row heights by 1-based row number.
    """

    def __init__(self, name: str):
        self.name = name
        self.cells: Dict[CellAddress, Cell] = {}
        self.column_widths: Dict[str, float] = {}
        self.row_heights: Dict[int, float] = {}

    def __repr__(self) -> str:
        return f"Sheet(name={self.name!r}, cells={len(self.cells)})"

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, address: CellAddress) -> bool:
        return address in self.cells

    def __iter__(self) -> Iterator[Tuple[CellAddress, Cell]]:
        for address in sorted(self.cells):
            yield address, self.cells[address]

    def get(self, address: CellAddress) -> Optional[Cell]:
        return self.cells.get(address)

    def put(self, address: CellAddress, cell: Cell) -> None:
        self.cells[address] = cell

    def remove(self, address: CellAddress) -> Optional[Cell]:
        return self.cells.pop(address, None)

    def addresses(self) -> List[CellAddress]:
        return sorted(self.cells)

    def formula_cells(self) -> List[Tuple[CellAddress, Cell]]:
        return [(address, cell) for address, cell in self if cell.is_formula]

    @property
    def max_row(self) -> int:
        return max((address.row for address in self.cells), default=0)

    @property
    def max_col(self) -> int:
        return max((address.col for address in self.cells), default=0)

    @property
    def dimensions(self) -> Optional[str]:
        """Bounding range of populated cells, e.g. `A1:C10`."""
        if not self.cells:
            return None
        top = min(address.row for address in self.cells)
        left = min(address.col for address in self.cells)
        start = CellAddress(row=top, col=left)
        end = CellAddress(row=self.max_row, col=self.max_col)
        return f"{start}:{end}"
