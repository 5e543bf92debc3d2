"""Unit & dimension system"""

from .dimension import Dimension, DIMENSIONLESS
from .unit import (
    Unit,
    UnitTerm,
    DIMENSIONLESS_UNIT,
    combine,
    multiply,
    divide,
    sqrt_unit,
    power_unit,
    format_symbol,
)
from .currency import (
    CurrencyRate,
    CurrencyRateTable,
    HardcodedRateSource,
    StaticRateSource,
    DEFAULT_CURRENCY_RATES,
    REFERENCE_CURRENCY,
)
from .library import UnitDefinition, UnitLibrary, DEFAULT_UNITS, default_library
from .parser import parse_unit, is_known_unit

__all__ = [
    "Dimension",
    "DIMENSIONLESS",
    "Unit",
    "UnitTerm",
    "DIMENSIONLESS_UNIT",
    "combine",
    "multiply",
    "divide",
    "sqrt_unit",
    "power_unit",
    "format_symbol",
    "CurrencyRate",
    "CurrencyRateTable",
    "HardcodedRateSource",
    "StaticRateSource",
    "DEFAULT_CURRENCY_RATES",
    "REFERENCE_CURRENCY",
    "UnitDefinition",
    "UnitLibrary",
    "DEFAULT_UNITS",
    "default_library",
    "parse_unit",
    "is_known_unit",
]
