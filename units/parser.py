"""Parse unit text such as `mi/hr`, `ft^2` or `kg*m/s^2`."""

from __future__ import annotations

import re
from typing import List, Optional

from core.exceptions import UnitParseError
from .library import UnitLibrary, default_library
from .unit import DIMENSIONLESS_UNIT, Unit, UnitTerm, make_unit

TERM_PATTERN = re.compile(r"^(?P<symbol>[^\s*/^]+)(?:\^(?P<power>[+-]?\d+))?$")


def parse_unit(text: str, library: Optional[UnitLibrary] = None) -> Unit:
    """Resolve unit text to a canonical Unit.

    A whole-string library match wins first, so symbols that contain
    operator characters stay intact. Otherwise the text is split on
    `*` and `/`, read left to right.
    """
    library = library or default_library()
    text = (text or "").strip()
    if not text:
        return DIMENSIONLESS_UNIT

    if text in library:
        return library.unit(text)

    pieces = re.split(r"\s*([*/])\s*", text)
    terms: List[UnitTerm] = []
    sign = 1
    for index, piece in enumerate(pieces):
        if index % 2 == 1:
            sign = -1 if piece == "/" else 1
            continue
        if not piece:
            raise UnitParseError(text, f"Malformed unit: {text!r}")
        if piece == "1" and index == 0:
            continue
        match = TERM_PATTERN.match(piece)
        if not match:
            raise UnitParseError(text, f"Malformed unit term {piece!r} in {text!r}")
        definition = library.lookup(match.group("symbol"))
        if definition is None:
            raise UnitParseError(match.group("symbol"))
        power = int(match.group("power") or 1)
        terms.append(UnitTerm(definition.symbol, definition.dimension, sign * power))
    return make_unit(terms)


def is_known_unit(text: str, library: Optional[UnitLibrary] = None) -> bool:
    try:
        parse_unit(text, library)
    except UnitParseError:
        return False
    return True
