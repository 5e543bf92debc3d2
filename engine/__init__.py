"""Cell model, evaluation and the workbook recalculation engine"""

from .cell import (
    EMPTY,
    Cell,
    Computed,
    EmptyValue,
    ErrorValue,
    FormulaValue,
    NumberValue,
    TextValue,
    Value,
)
from .cell_input import CellInput, parse_cell_input
from .display import display_value, format_computed, format_number
from .graph import DependencyGraph
from .evaluator import Evaluator
from .sheet import Sheet
from .structure import StructuralEdit
from .workbook import Workbook

__all__ = [
    "EMPTY",
    "Cell",
    "Computed",
    "EmptyValue",
    "ErrorValue",
    "FormulaValue",
    "NumberValue",
    "TextValue",
    "Value",
    "CellInput",
    "parse_cell_input",
    "display_value",
    "format_computed",
    "format_number",
    "DependencyGraph",
    "Evaluator",
    "Sheet",
    "StructuralEdit",
    "Workbook",
]
