"""Render cell values as text, optionally converted to a preferred unit system."""

from __future__ import annotations

from typing import Optional

from core.enums import DisplayPreference
from core.exceptions import ConversionError
from core.models import UnitPreferences
from units.currency import CurrencyRateTable
from units.library import UnitLibrary
from units.unit import Unit
from .cell import Cell, Computed, EmptyValue, ErrorValue, NumberValue, TextValue


def format_magnitude(value: float, precision: int = 2) -> str:
    """Fixed-precision rendering with trailing zeros stripped."""
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


def format_number(magnitude: float, unit: Unit, precision: int = 2) -> str:
    if unit.is_percent:
        return f"{format_magnitude(magnitude * 100.0, precision)}%"
    number = format_magnitude(magnitude, precision)
    return f"{number} {unit.symbol}" if unit.symbol else number


def format_computed(value: Computed, precision: int = 2) -> str:
    if isinstance(value, NumberValue):
        return format_number(value.magnitude, value.unit, precision)
    if isinstance(value, TextValue):
        return value.text
    if isinstance(value, ErrorValue):
        return value.code
    return ""


def target_unit(
    unit: Unit,
    preference: DisplayPreference,
    library: UnitLibrary,
    preferences: UnitPreferences,
    display_unit: Optional[Unit] = None,
) -> Unit:
    """The unit a value of `unit` is shown in under a display preference."""
    if preference == DisplayPreference.AS_ENTERED:
        if display_unit is not None and display_unit.dimension == unit.dimension:
            return display_unit
        return unit
    anchors = {}
    for dimension, symbol in preferences.preferred_units(preference).items():
        definition = library.lookup(symbol)
        if definition is not None and definition.dimension == dimension:
            anchors[dimension] = definition.symbol
    rebased, _ = library.rebase(unit, anchors)
    return rebased


def display_value(
    value: Computed,
    preference: DisplayPreference,
    library: UnitLibrary,
    preferences: UnitPreferences,
    rates: Optional[CurrencyRateTable] = None,
    display_unit: Optional[Unit] = None,
    precision: int = 2,
) -> str:
    if not isinstance(value, NumberValue):
        return format_computed(value, precision)
    target = target_unit(value.unit, preference, library, preferences, display_unit)
    try:
        magnitude = library.convert(value.magnitude, value.unit, target, rates)
    except ConversionError:
        return format_number(value.magnitude, value.unit, precision)
    return format_number(magnitude, target, precision)


def display_cell(
    cell: Optional[Cell],
    preference: DisplayPreference,
    library: UnitLibrary,
    preferences: UnitPreferences,
    rates: Optional[CurrencyRateTable] = None,
    precision: int = 2,
) -> str:
    """Text shown for a cell; never mutates its storage unit."""
    if cell is None:
        return format_computed(EmptyValue(), precision)
    return display_value(
        cell.result,
        preference,
        library,
        preferences,
        rates=rates,
        display_unit=cell.display_unit,
        precision=precision,
    )
