"""Core enumerations for the unit-aware calculation engine"""

from enum import Enum


class BaseDimension(str, Enum):
    """Physical or financial kind of a quantity"""
    LENGTH = "length"
    MASS = "mass"
    TIME = "time"
    TEMPERATURE = "temperature"
    CURRENCY = "currency"
    DIGITAL_STORAGE = "digital_storage"
    DIMENSIONLESS = "dimensionless"


class BinaryOperator(str, Enum):
    """Infix operators understood by the formula language"""
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    POWER = "^"
    CONCAT = "&"
    EQ = "="
    NE = "<>"
    LT = "<"
    GT = ">"
    LTE = "<="
    GTE = ">="

    @property
    def is_comparison(self) -> bool:
        return self in COMPARISON_OPERATORS


COMPARISON_OPERATORS = frozenset(
    {
        BinaryOperator.EQ,
        BinaryOperator.NE,
        BinaryOperator.LT,
        BinaryOperator.GT,
        BinaryOperator.LTE,
        BinaryOperator.GTE,
    }
)


class ValueKind(str, Enum):
    """Variant tag of a cell value"""
    EMPTY = "empty"
    NUMBER = "number"
    TEXT = "text"
    FORMULA = "formula"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Cell-level error taxonomy"""
    SYNTAX = "syntax"
    CONVERSION = "conversion"
    CIRCULAR = "circular"
    REF = "ref"
    DIV_ZERO = "div_zero"
    VALUE = "value"
    NAME = "name"

    @property
    def code(self) -> str:
        return ERROR_CODES[self]


ERROR_CODES = {
    ErrorKind.SYNTAX: "#SYNTAX!",
    ErrorKind.CONVERSION: "#CONV!",
    ErrorKind.CIRCULAR: "#CIRC!",
    ErrorKind.REF: "#REF!",
    ErrorKind.DIV_ZERO: "#DIV/0!",
    ErrorKind.VALUE: "#VALUE!",
    ErrorKind.NAME: "#NAME?",
}


class CellState(str, Enum):
    """Recalculation state of a cell"""
    CLEAN = "clean"
    DIRTY = "dirty"
    EVALUATING = "evaluating"
    ERROR = "error"


class DisplayPreference(str, Enum):
    """Unit system used when rendering values"""
    AS_ENTERED = "as_entered"
    METRIC = "metric"
    IMPERIAL = "imperial"


class MetricSystem(str, Enum):
    """Flavour of metric units used for display"""
    MKS = "mks"
    CGS = "cgs"


class RateProvenance(str, Enum):
    """Where a conversion rate came from"""
    LIVE = "live"
    MANUAL = "manual"
    HARDCODED = "hardcoded"


class ExportFormat(str, Enum):
    """Supported one-way export formats"""
    XLSX = "xlsx"
    CSV = "csv"
