"""Unit registry and conversion graph.

Every simple unit converts to the reference unit of its dimension with
`reference = value * factor + offset`. Only temperature uses an offset.
Currency factors come from a CurrencyRateTable supplied by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from core.enums import BaseDimension
from core.exceptions import ConversionError
from .currency import CurrencyRateTable, DEFAULT_CURRENCY_RATES
from .unit import Unit, UnitTerm, make_unit


@dataclass(frozen=True)
class UnitDefinition:
    symbol: str
    dimension: BaseDimension
    factor: float = 1.0
    offset: float = 0.0
    aliases: Tuple[str, ...] = ()
    name: str = ""

    @property
    def is_affine(self) -> bool:
        return self.offset != 0.0

    @property
    def is_currency(self) -> bool:
        return self.dimension == BaseDimension.CURRENCY


_YEAR = 365.25 * 86400.0

DEFAULT_UNITS: Tuple[UnitDefinition, ...] = (
    # Length (reference: metre)
    UnitDefinition("m", BaseDimension.LENGTH, 1.0, aliases=("meter", "meters", "metre", "metres"), name="meter"),
    UnitDefinition("cm", BaseDimension.LENGTH, 0.01, name="centimeter"),
    UnitDefinition("mm", BaseDimension.LENGTH, 0.001, name="millimeter"),
    UnitDefinition("km", BaseDimension.LENGTH, 1000.0, name="kilometer"),
    UnitDefinition("in", BaseDimension.LENGTH, 0.0254, aliases=("inch", "inches"), name="inch"),
    UnitDefinition("ft", BaseDimension.LENGTH, 0.3048, aliases=("feet", "foot"), name="foot"),
    UnitDefinition("yd", BaseDimension.LENGTH, 0.9144, aliases=("yard", "yards"), name="yard"),
    UnitDefinition("mi", BaseDimension.LENGTH, 1609.344, aliases=("mile", "miles"), name="mile"),
    # Mass (reference: kilogram)
    UnitDefinition("g", BaseDimension.MASS, 0.001, aliases=("gram", "grams"), name="gram"),
    UnitDefinition("mg", BaseDimension.MASS, 0.000001, name="milligram"),
    UnitDefinition("kg", BaseDimension.MASS, 1.0, name="kilogram"),
    UnitDefinition("t", BaseDimension.MASS, 1000.0, aliases=("tonne", "tonnes"), name="tonne"),
    UnitDefinition("oz", BaseDimension.MASS, 0.0283495, aliases=("ounce", "ounces"), name="ounce"),
    UnitDefinition("lb", BaseDimension.MASS, 0.453592, aliases=("lbs", "pound", "pounds"), name="pound"),
    # Time (reference: second)
    UnitDefinition("s", BaseDimension.TIME, 1.0, aliases=("sec", "second", "seconds"), name="second"),
    UnitDefinition("min", BaseDimension.TIME, 60.0, aliases=("m", "minute", "minutes"), name="minute"),
    UnitDefinition("hr", BaseDimension.TIME, 3600.0, aliases=("h", "hour", "hours"), name="hour"),
    UnitDefinition("day", BaseDimension.TIME, 86400.0, aliases=("days", "d"), name="day"),
    UnitDefinition("week", BaseDimension.TIME, 7 * 86400.0, aliases=("weeks", "wk"), name="week"),
    UnitDefinition("month", BaseDimension.TIME, _YEAR / 12, aliases=("months", "mo"), name="month"),
    UnitDefinition("quarter", BaseDimension.TIME, _YEAR / 4, aliases=("quarters", "qtr"), name="quarter"),
    UnitDefinition("year", BaseDimension.TIME, _YEAR, aliases=("yr", "years", "yrs"), name="year"),
    # Temperature (reference: kelvin)
    UnitDefinition("C", BaseDimension.TEMPERATURE, 1.0, 273.15, aliases=("°C", "degC"), name="celsius"),
    UnitDefinition("F", BaseDimension.TEMPERATURE, 5.0 / 9.0, 273.15 - 32.0 * 5.0 / 9.0, aliases=("°F", "degF"), name="fahrenheit"),
    UnitDefinition("K", BaseDimension.TEMPERATURE, 1.0, name="kelvin"),
    # Currency (reference: USD, factor from the rate table)
    UnitDefinition("USD", BaseDimension.CURRENCY, aliases=("$", "usd"), name="US dollar"),
    UnitDefinition("EUR", BaseDimension.CURRENCY, aliases=("€", "eur"), name="euro"),
    UnitDefinition("GBP", BaseDimension.CURRENCY, aliases=("£", "gbp"), name="pound sterling"),
    UnitDefinition("JPY", BaseDimension.CURRENCY, aliases=("¥", "jpy"), name="yen"),
    UnitDefinition("CAD", BaseDimension.CURRENCY, aliases=("cad",), name="Canadian dollar"),
    UnitDefinition("AUD", BaseDimension.CURRENCY, aliases=("aud",), name="Australian dollar"),
    # Digital storage (reference: byte, decimal prefixes)
    UnitDefinition("b", BaseDimension.DIGITAL_STORAGE, 0.125, aliases=("bit", "bits"), name="bit"),
    UnitDefinition("B", BaseDimension.DIGITAL_STORAGE, 1.0, aliases=("byte", "bytes"), name="byte"),
    UnitDefinition("KB", BaseDimension.DIGITAL_STORAGE, 1e3, aliases=("kB",), name="kilobyte"),
    UnitDefinition("MB", BaseDimension.DIGITAL_STORAGE, 1e6, name="megabyte"),
    UnitDefinition("GB", BaseDimension.DIGITAL_STORAGE, 1e9, name="gigabyte"),
    UnitDefinition("TB", BaseDimension.DIGITAL_STORAGE, 1e12, name="terabyte"),
    UnitDefinition("PB", BaseDimension.DIGITAL_STORAGE, 1e15, name="petabyte"),
    UnitDefinition("Kb", BaseDimension.DIGITAL_STORAGE, 1e3 / 8, name="kilobit"),
    UnitDefinition("Mb", BaseDimension.DIGITAL_STORAGE, 1e6 / 8, name="megabit"),
    UnitDefinition("Gb", BaseDimension.DIGITAL_STORAGE, 1e9 / 8, name="gigabit"),
    UnitDefinition("Tb", BaseDimension.DIGITAL_STORAGE, 1e12 / 8, name="terabit"),
    UnitDefinition("Pb", BaseDimension.DIGITAL_STORAGE, 1e15 / 8, name="petabit"),
    # Dimensionless ratios (stored as fractions)
    UnitDefinition("%", BaseDimension.DIMENSIONLESS, 1.0, aliases=("percent",), name="percent"),
)


class UnitLibrary:
    """Symbol registry with priority-based disambiguation and conversions."""

    def __init__(
        self,
        definitions: Iterable[UnitDefinition] = DEFAULT_UNITS,
        priority: Optional[Sequence[BaseDimension]] = None,
    ):
        if priority is None:
            from config import settings
            priority = settings.get_unit_domain_priority()
        self.priority: List[BaseDimension] = list(priority)
        self._definitions: Dict[str, UnitDefinition] = {}
        self._candidates: Dict[str, List[UnitDefinition]] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: UnitDefinition) -> None:
        self._definitions[definition.symbol] = definition
        for symbol in (definition.symbol,) + definition.aliases:
            candidates = self._candidates.setdefault(symbol, [])
            candidates.append(definition)
            candidates.sort(key=lambda candidate, key=symbol: self._rank(candidate, key))

    def _rank(self, definition: UnitDefinition, symbol: str) -> Tuple[int, int]:
        try:
            domain = self.priority.index(definition.dimension)
        except ValueError:
            domain = len(self.priority)
        # A canonical symbol beats an alias within the same domain
        return domain, 0 if definition.symbol == symbol else 1

    # ─────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────

    def lookup(self, symbol: str) -> Optional[UnitDefinition]:
        candidates = self._candidates.get(symbol)
        if not candidates:
            return None
        return candidates[0]

    def candidates(self, symbol: str) -> List[UnitDefinition]:
        return list(self._candidates.get(symbol, []))

    def definition(self, canonical: str) -> UnitDefinition:
        return self._definitions[canonical]

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._candidates

    def known_symbols(self) -> List[str]:
        return list(self._definitions)

    def unit(self, symbol: str) -> Unit:
        """Simple unit for a symbol or alias; KeyError if unknown."""
        definition = self.lookup(symbol)
        if definition is None:
            raise KeyError(symbol)
        return Unit((UnitTerm(definition.symbol, definition.dimension, 1),))

    def compatible_units(self, unit: Unit) -> List[str]:
        return [
            definition.symbol
            for definition in self._definitions.values()
            if Unit((UnitTerm(definition.symbol, definition.dimension, 1),)).dimension == unit.dimension
        ]

    # ─────────────────────────────────────────────────────────────
    # Conversion
    # ─────────────────────────────────────────────────────────────

    def factor(self, symbol: str, rates: Optional[CurrencyRateTable] = None) -> float:
        definition = self._definitions[symbol]
        if definition.is_currency:
            if rates is None:
                return 1.0 / DEFAULT_CURRENCY_RATES[definition.symbol]
            return rates.usd_factor(definition.symbol)
        return definition.factor

    def _scale(self, unit: Unit, rates: Optional[CurrencyRateTable]) -> float:
        scale = 1.0
        for term in unit.terms:
            scale *= self.factor(term.symbol, rates) ** term.exponent
        return scale

    def convert(
        self,
        value: float,
        from_unit: Unit,
        to_unit: Unit,
        rates: Optional[CurrencyRateTable] = None,
    ) -> float:
        """Convert a magnitude between two units of equal dimension."""
        if from_unit.terms == to_unit.terms:
            return value
        if from_unit.dimension != to_unit.dimension:
            raise ConversionError(
                from_unit.symbol,
                to_unit.symbol,
                f"Cannot convert {from_unit.symbol or 'dimensionless'} "
                f"to {to_unit.symbol or 'dimensionless'}: dimensions differ",
            )
        if self._is_absolute_temperature(from_unit) and self._is_absolute_temperature(to_unit):
            source = self._definitions[from_unit.terms[0].symbol]
            target = self._definitions[to_unit.terms[0].symbol]
            reference = value * source.factor + source.offset
            return (reference - target.offset) / target.factor
        for unit in (from_unit, to_unit):
            for term in unit.terms:
                if term.base == BaseDimension.TEMPERATURE and abs(term.exponent) > 1:
                    raise ConversionError(
                        from_unit.symbol,
                        to_unit.symbol,
                        f"Cannot convert temperature raised to power {term.exponent}",
                    )
        return value * self._scale(from_unit, rates) / self._scale(to_unit, rates)

    def _is_absolute_temperature(self, unit: Unit) -> bool:
        return unit.is_simple and unit.terms[0].base == BaseDimension.TEMPERATURE

    def normalize(
        self, unit: Unit, rates: Optional[CurrencyRateTable] = None
    ) -> Tuple[Unit, float]:
        """Fold terms that share a base dimension into the first such term.

        Returns the folded unit and the factor to multiply magnitudes by.
        """
        anchors: Dict[BaseDimension, str] = {}
        for term in unit.terms:
            if term.base != BaseDimension.DIMENSIONLESS:
                anchors.setdefault(term.base, term.symbol)
        return self.rebase(unit, anchors, rates)

    def harmonize(
        self, unit: Unit, target: Unit, rates: Optional[CurrencyRateTable] = None
    ) -> Tuple[Unit, float]:
        """Express unit's terms in target's unit for each shared base dimension."""
        anchors: Dict[BaseDimension, str] = {}
        for term in target.terms:
            if term.base != BaseDimension.DIMENSIONLESS:
                anchors.setdefault(term.base, term.symbol)
        return self.rebase(unit, anchors, rates)

    def rebase(
        self,
        unit: Unit,
        anchors: Dict[BaseDimension, str],
        rates: Optional[CurrencyRateTable] = None,
    ) -> Tuple[Unit, float]:
        """Swap term symbols for the anchor symbol of their base dimension."""
        factor = 1.0
        terms: List[UnitTerm] = []
        for term in unit.terms:
            anchor = anchors.get(term.base)
            if anchor is None or anchor == term.symbol:
                terms.append(term)
                continue
            ratio = self.factor(term.symbol, rates) / self.factor(anchor, rates)
            factor *= ratio ** term.exponent
            terms.append(UnitTerm(anchor, term.base, term.exponent))
        return make_unit(terms), factor


_default_library: Optional[UnitLibrary] = None


def default_library() -> UnitLibrary:
    """Shared library built from the default definitions and configured priority."""
    global _default_library
    if _default_library is None:
        _default_library = UnitLibrary()
    return _default_library
