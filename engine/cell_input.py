"""Classify raw cell input as number-with-unit, text or formula."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional

from core.enums import ValueKind
from core.exceptions import InvalidLabelName, UnitParseError
from units.library import UnitLibrary, default_library
from units.parser import parse_unit
from units.unit import DIMENSIONLESS_UNIT, Unit

LABEL_PATTERN = re.compile(r"^\s*(?P<label>[^\s:=]+)\s*:(?:(?P<formula>=)|(?=\s|$))\s*(?P<rest>.*)$", re.DOTALL)
NUMBER_PATTERN = re.compile(
    r"""
    ^\s*
    (?P<sign>[+-])?\s*
    (?P<currency>[$€£¥])?\s*
    (?P<number>(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d*)?|\.\d+)
    (?:[eE](?P<exp>[+-]?\d+))?
    \s*(?P<unit>.*?)\s*$
    """,
    re.VERBOSE,
)
CURRENCY_CODES = {"$": "USD", "€": "EUR", "£": "GBP", "¥": "JPY"}


@dataclass(frozen=True)
class CellInput:
    kind: ValueKind
    magnitude: Optional[float] = None
    unit: Unit = DIMENSIONLESS_UNIT
    text: Optional[str] = None
    formula: Optional[str] = None
    label: Optional[str] = None


def parse_cell_input(raw: str, library: Optional[UnitLibrary] = None) -> CellInput:
    """Classify raw input.

    `label: value` and `label:= formula` attach a named reference to
    the cell. Labels must start lowercase or with `_`; a leading digit
    means the text is not a label at all (`12:30`).
    """
    library = library or default_library()
    if raw is None or not raw.strip():
        return CellInput(ValueKind.EMPTY)

    label = None
    match = LABEL_PATTERN.match(raw)
    if match and not raw.lstrip().startswith("="):
        candidate = match.group("label")
        if candidate[0].isdigit():
            match = None
        elif not (candidate[0].islower() or candidate[0] == "_"):
            raise InvalidLabelName(candidate)
        elif not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", candidate):
            match = None
    if match and not raw.lstrip().startswith("="):
        label = match.group("label")
        rest = match.group("rest")
        raw = "=" + rest if match.group("formula") else rest
        if not raw.strip():
            return CellInput(ValueKind.EMPTY, label=label)

    stripped = raw.strip()
    if stripped.startswith("="):
        return CellInput(ValueKind.FORMULA, formula=stripped, label=label)

    number = _parse_number(stripped, library)
    if number is not None:
        magnitude, unit = number
        return CellInput(ValueKind.NUMBER, magnitude=magnitude, unit=unit, label=label)
    return CellInput(ValueKind.TEXT, text=raw, label=label)


def _parse_number(text: str, library: UnitLibrary):
    match = NUMBER_PATTERN.match(text)
    if not match:
        return None
    literal = match.group("number").replace(",", "")
    if match.group("exp"):
        literal += "e" + match.group("exp")
    magnitude = float(literal)
    if not math.isfinite(magnitude):
        return None
    if match.group("sign") == "-":
        magnitude = -magnitude

    unit_text = match.group("unit")
    currency = match.group("currency")
    if currency:
        # "$15" or "$15/hr"
        if unit_text and not unit_text.startswith(("/", "*")):
            return None
        unit_text = CURRENCY_CODES[currency] + unit_text
    elif unit_text == "%":
        return magnitude / 100.0, library.unit("%")

    try:
        unit = parse_unit(unit_text, library)
    except UnitParseError:
        return None
    return magnitude, unit
