"""Custom exceptions for the calculation engine"""

from core.enums import ErrorKind


class UnitCalcError(Exception):
    """Base exception for all engine errors"""
    pass


class UnitParseError(UnitCalcError):
    """Unit text could not be resolved to a known unit"""
    def __init__(self, symbol: str, message: str = None):
        super().__init__(message or f"Unknown unit: {symbol!r}")
        self.symbol = symbol


class UnitError(UnitCalcError):
    """Illegal dimensional operation"""
    pass


class InvalidUnitOperation(UnitError):
    """Exponent transform that would leave a non-integral exponent"""
    def __init__(self, operation: str, unit: str, message: str = None):
        super().__init__(message or f"Cannot apply {operation} to unit {unit!r}")
        self.operation = operation
        self.unit = unit


class ConversionError(UnitCalcError):
    """No conversion path between two units"""
    def __init__(self, from_unit: str, to_unit: str, message: str = None):
        super().__init__(message or f"Cannot convert from {from_unit!r} to {to_unit!r}")
        self.from_unit = from_unit
        self.to_unit = to_unit


class FormulaSyntaxError(UnitCalcError):
    """Malformed formula text"""
    def __init__(self, message: str, token: str = None, position: int = None):
        detail = message
        if token is not None and position is not None:
            detail = f"{message} (token {token!r} at position {position})"
        super().__init__(detail)
        self.message = message
        self.token = token
        self.position = position


class EvaluationError(UnitCalcError):
    """Carries a cell-level error out of the evaluator"""
    def __init__(self, kind: ErrorKind, message: str = None):
        super().__init__(message or kind.code)
        self.kind = kind
        self.message = message or kind.code


class InvalidLabelName(UnitCalcError):
    """Inline label that cannot become a named reference"""
    def __init__(self, label: str):
        super().__init__(
            f"Invalid label {label!r}: labels must start with a lowercase letter or underscore"
        )
        self.label = label


class WorkbookError(UnitCalcError):
    """Invalid workbook operation"""
    pass


class SheetNotFoundError(WorkbookError):
    """Sheet lookup failed"""
    def __init__(self, name: str):
        super().__init__(f"Sheet not found: {name}")
        self.name = name


class CellAddressError(WorkbookError):
    """Malformed cell address"""
    def __init__(self, address: str):
        super().__init__(f"Invalid cell address: {address!r}")
        self.address = address


class PersistenceError(UnitCalcError):
    """Workbook document could not be read or written"""
    def __init__(self, message: str, version: str = None):
        super().__init__(message)
        self.version = version
