"""Cell addresses and stable string cell ids ("Sheet1!A1")."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Tuple

from openpyxl.utils.cell import coordinate_to_tuple, get_column_letter, range_boundaries

from core.exceptions import CellAddressError

_PLAIN_SHEET = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True, order=True)
class CellAddress:
    """1-based row/column coordinate within a sheet"""

    row: int
    col: int

    @classmethod
    def parse(cls, text: str) -> CellAddress:
        try:
            row, col = coordinate_to_tuple(text.replace("$", "").strip().upper())
        except (ValueError, TypeError, AttributeError, KeyError):
            raise CellAddressError(text)
        return cls(row=row, col=col)

    @property
    def column_letter(self) -> str:
        return get_column_letter(self.col)

    def shifted(self, rows: int = 0, cols: int = 0) -> CellAddress:
        return CellAddress(row=self.row + rows, col=self.col + cols)

    def __str__(self) -> str:
        return f"{self.column_letter}{self.row}"


def make_cell_id(sheet: str, address: CellAddress) -> str:
    return f"{sheet}!{address}"


def split_cell_id(cell_id: str) -> Tuple[str, CellAddress]:
    sheet, address = cell_id.rsplit("!", 1)
    return sheet, CellAddress.parse(address)


def quote_sheet_name(name: str) -> str:
    if _PLAIN_SHEET.match(name):
        return name
    return "'" + name.replace("'", "''") + "'"


def expand_range(start: CellAddress, end: CellAddress) -> Iterator[CellAddress]:
    """Every address in the rectangle spanned by two corners, row-major."""
    top, bottom = sorted((start.row, end.row))
    left, right = sorted((start.col, end.col))
    for row in range(top, bottom + 1):
        for col in range(left, right + 1):
            yield CellAddress(row=row, col=col)


def parse_range(text: str) -> Tuple[CellAddress, CellAddress]:
    """Parse `A1:B10` (or a single address) into its corner addresses."""
    try:
        min_col, min_row, max_col, max_row = range_boundaries(text.replace("$", "").strip().upper())
    except (ValueError, TypeError, AttributeError):
        raise CellAddressError(text)
    if None in (min_col, min_row, max_col, max_row):
        raise CellAddressError(text)
    return CellAddress(row=min_row, col=min_col), CellAddress(row=max_row, col=max_col)


def range_size(start: CellAddress, end: CellAddress) -> int:
    return (abs(end.row - start.row) + 1) * (abs(end.col - start.col) + 1)
