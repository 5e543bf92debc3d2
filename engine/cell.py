"""Cell value model.

A cell value is one of a closed set of variants. Formula cells keep their
source text next to the cached result of their last evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from core.enums import CellState, ErrorKind, ValueKind
from units.unit import DIMENSIONLESS_UNIT, Unit


@dataclass(frozen=True)
class EmptyValue:
    kind = ValueKind.EMPTY


@dataclass(frozen=True)
class NumberValue:
    magnitude: float
    unit: Unit = DIMENSIONLESS_UNIT

    kind = ValueKind.NUMBER


@dataclass(frozen=True)
class TextValue:
    text: str

    kind = ValueKind.TEXT


@dataclass(frozen=True)
class ErrorValue:
    error: ErrorKind
    message: str = field(default="", compare=False)

    kind = ValueKind.ERROR

    @property
    def code(self) -> str:
        return self.error.code


Computed = Union[EmptyValue, NumberValue, TextValue, ErrorValue]

EMPTY = EmptyValue()


@dataclass(frozen=True)
class FormulaValue:
    source: str
    cached: Computed = EMPTY

    kind = ValueKind.FORMULA

    @property
    def cached_unit(self) -> Unit:
        if isinstance(self.cached, NumberValue):
            return self.cached.unit
        return DIMENSIONLESS_UNIT


Value = Union[EmptyValue, NumberValue, TextValue, FormulaValue, ErrorValue]


@dataclass
class Cell:
    """One populated cell of a sheet"""

    value: Value = EMPTY
    storage_unit: Unit = DIMENSIONLESS_UNIT
    display_unit: Optional[Unit] = None
    warning: Optional[str] = None
    state: CellState = CellState.CLEAN
    expression: object = field(default=None, repr=False, compare=False)

    @classmethod
    def number(cls, magnitude: float, unit: Unit = DIMENSIONLESS_UNIT) -> Cell:
        return cls(value=NumberValue(float(magnitude), unit), storage_unit=unit)

    @classmethod
    def text(cls, text: str) -> Cell:
        return cls(value=TextValue(text))

    @classmethod
    def formula(cls, source: str) -> Cell:
        return cls(value=FormulaValue(source), state=CellState.DIRTY)

    @property
    def result(self) -> Computed:
        """The value other cells see: the cached result for formulas."""
        if isinstance(self.value, FormulaValue):
            return self.value.cached
        return self.value

    @property
    def formula_source(self) -> Optional[str]:
        if isinstance(self.value, FormulaValue):
            return self.value.source
        return None

    @property
    def is_formula(self) -> bool:
        return isinstance(self.value, FormulaValue)

    @property
    def is_empty(self) -> bool:
        return isinstance(self.result, EmptyValue)

    @property
    def is_number(self) -> bool:
        return isinstance(self.result, NumberValue)

    @property
    def is_text(self) -> bool:
        return isinstance(self.result, TextValue)

    @property
    def is_error(self) -> bool:
        return isinstance(self.result, ErrorValue)

    @property
    def magnitude(self) -> Optional[float]:
        result = self.result
        return result.magnitude if isinstance(result, NumberValue) else None

    def store_result(self, result: Computed, warning: Optional[str] = None) -> None:
        """Cache a formula result and the unit it carries."""
        self.value = FormulaValue(self.value.source, result)
        self.storage_unit = result.unit if isinstance(result, NumberValue) else DIMENSIONLESS_UNIT
        self.warning = warning
