"""Core abstractions for the calculation engine"""

from .models import *
from .enums import *
from .exceptions import *
from .interfaces import *

__all__ = [
    # Models
    "UnitPreferences",
    "WorkbookSettings",
    "StoredValue",
    "CellRecord",
    "SheetRecord",
    "NamedRangeRecord",
    "CurrencyRateRecord",
    "WorkbookRecord",
    "DocumentMetadata",
    "WorkbookDocument",
    # Enums
    "BaseDimension",
    "BinaryOperator",
    "ValueKind",
    "ErrorKind",
    "CellState",
    "DisplayPreference",
    "MetricSystem",
    "RateProvenance",
    "ExportFormat",
    # Exceptions
    "UnitCalcError",
    "UnitParseError",
    "UnitError",
    "InvalidUnitOperation",
    "ConversionError",
    "FormulaSyntaxError",
    "EvaluationError",
    "InvalidLabelName",
    "WorkbookError",
    "SheetNotFoundError",
    "CellAddressError",
    "PersistenceError",
    # Interfaces
    "RateSource",
    "WorkbookExporter",
]
