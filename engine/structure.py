"""Row/column insertion and deletion applied to addresses and formula text."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

from formula.ast import CellRef, RangeRef
from formula.references import CellAddress
from formula.rewrite import rewrite_references

REF_ERROR = "#REF!"

ROW = "row"
COLUMN = "column"


@dataclass(frozen=True)
class StructuralEdit:
    """Insert or delete `count` rows/columns starting at 1-based `index`."""

    axis: str
    index: int
    count: int
    delete: bool = False

    def __post_init__(self):
        if self.axis not in (ROW, COLUMN):
            raise ValueError(f"Unknown axis {self.axis!r}")
        if self.index < 1:
            raise ValueError("index must be >= 1")
        if self.count < 1:
            raise ValueError("count must be >= 1")

    @property
    def last(self) -> int:
        return self.index + self.count - 1

    def map_index(self, index: int) -> Optional[int]:
        """New position of a row/column index, None if it was deleted."""
        if index < self.index:
            return index
        if not self.delete:
            return index + self.count
        if index > self.last:
            return index - self.count
        return None

    def map_span(self, low: int, high: int) -> Optional[Tuple[int, int]]:
        """New bounds of an inclusive span; deleted spans shrink or vanish."""
        if not self.delete:
            return self.map_index(low), self.map_index(high)
        new_low = self.map_index(low)
        if new_low is None:
            new_low = self.index
        new_high = self.map_index(high)
        if new_high is None:
            new_high = self.index - 1
        if new_high < new_low:
            return None
        return new_low, new_high

    def _coordinate(self, address: CellAddress) -> int:
        return address.row if self.axis == ROW else address.col

    def _with(self, address: CellAddress, value: int) -> CellAddress:
        if self.axis == ROW:
            return CellAddress(row=value, col=address.col)
        return CellAddress(row=address.row, col=value)

    def map_address(self, address: CellAddress) -> Optional[CellAddress]:
        mapped = self.map_index(self._coordinate(address))
        if mapped is None:
            return None
        return self._with(address, mapped)

    def map_range(
        self, start: CellAddress, end: CellAddress
    ) -> Optional[Tuple[CellAddress, CellAddress]]:
        """Normalized corners of a shifted range, None if fully deleted."""
        top, bottom = sorted((start.row, end.row))
        left, right = sorted((start.col, end.col))
        first = CellAddress(row=top, col=left)
        second = CellAddress(row=bottom, col=right)
        span = self.map_span(self._coordinate(first), self._coordinate(second))
        if span is None:
            return None
        return self._with(first, span[0]), self._with(second, span[1])


def shift_formula(source: str, formula_sheet: str, edited_sheet: str, edit: StructuralEdit) -> str:
    """Rewrite references into the edited sheet; deleted targets become #REF!."""

    def transform(node):
        if (node.sheet or formula_sheet) != edited_sheet:
            return None
        if isinstance(node, CellRef):
            mapped = edit.map_address(node.address)
            if mapped is None:
                return REF_ERROR
            return replace(node, address=mapped).to_text()
        corners = edit.map_range(node.start.address, node.end.address)
        if corners is None:
            return REF_ERROR
        return RangeRef(
            start=replace(node.start, address=corners[0]),
            end=replace(node.end, address=corners[1]),
        ).to_text()

    return rewrite_references(source, transform)


def rename_sheet_references(source: str, old_name: str, new_name: str) -> str:
    """Point sheet-qualified references at a renamed sheet."""

    def transform(node):
        if node.sheet != old_name:
            return None
        if isinstance(node, CellRef):
            return replace(node, sheet=new_name).to_text()
        return RangeRef(
            start=replace(node.start, sheet=new_name),
            end=replace(node.end, sheet=new_name),
        ).to_text()

    return rewrite_references(source, transform)
