"""Expression tree produced by the formula parser.

Nodes are immutable; the evaluator dispatches on the node type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

from core.enums import BinaryOperator, ErrorKind
from units.unit import DIMENSIONLESS_UNIT, Unit
from .references import CellAddress, quote_sheet_name


@dataclass(frozen=True)
class NumberLiteral:
    value: float
    unit: Unit = DIMENSIONLESS_UNIT


@dataclass(frozen=True)
class TextLiteral:
    value: str


@dataclass(frozen=True)
class BooleanLiteral:
    value: bool


@dataclass(frozen=True)
class ErrorLiteral:
    kind: ErrorKind


@dataclass(frozen=True)
class CellRef:
    address: CellAddress
    sheet: Optional[str] = None
    absolute_col: bool = False
    absolute_row: bool = False

    def to_text(self) -> str:
        col = ("$" if self.absolute_col else "") + self.address.column_letter
        row = ("$" if self.absolute_row else "") + str(self.address.row)
        prefix = f"{quote_sheet_name(self.sheet)}!" if self.sheet else ""
        return f"{prefix}{col}{row}"


@dataclass(frozen=True)
class RangeRef:
    start: CellRef
    end: CellRef

    @property
    def sheet(self) -> Optional[str]:
        return self.start.sheet

    def to_text(self) -> str:
        end = CellRef(self.end.address, None, self.end.absolute_col, self.end.absolute_row)
        return f"{self.start.to_text()}:{end.to_text()}"


@dataclass(frozen=True)
class NamedRef:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Expression"


@dataclass(frozen=True)
class BinaryOp:
    op: BinaryOperator
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple["Expression", ...] = ()


Expression = Union[
    NumberLiteral,
    TextLiteral,
    BooleanLiteral,
    ErrorLiteral,
    CellRef,
    RangeRef,
    NamedRef,
    UnaryOp,
    BinaryOp,
    FunctionCall,
]


def walk(expr: Expression) -> Iterator[Expression]:
    """Pre-order traversal of an expression tree."""
    yield expr
    if isinstance(expr, UnaryOp):
        yield from walk(expr.operand)
    elif isinstance(expr, BinaryOp):
        yield from walk(expr.left)
        yield from walk(expr.right)
    elif isinstance(expr, FunctionCall):
        for arg in expr.args:
            yield from walk(arg)


def references(expr: Expression) -> Iterator[Union[CellRef, RangeRef, NamedRef]]:
    """Cell, range and name references in evaluation order."""
    for node in walk(expr):
        if isinstance(node, (CellRef, RangeRef, NamedRef)):
            yield node
