"""Rewrite reference tokens inside formula text, keeping everything else."""

from __future__ import annotations

from typing import Callable, Optional, Union

from core.exceptions import FormulaSyntaxError
from .ast import CellRef, RangeRef
from .parser import parse_cell_reference, parse_range_reference
from .tokenizer import tokenize

ReferenceTransform = Callable[[Union[CellRef, RangeRef]], Optional[str]]


def rewrite_references(source: str, transform: ReferenceTransform) -> str:
    """Apply transform to every cell/range reference in a formula.

    The transform returns replacement text, or None to keep the
    reference unchanged. Formulas that do not tokenize are returned
    as-is.
    """
    prefix = "=" if source.startswith("=") else ""
    body = source[len(prefix):]
    try:
        tokens = tokenize(body)
    except FormulaSyntaxError:
        return source

    pieces = []
    cursor = 0
    changed = False
    for token in tokens:
        if token.type not in ("ref", "range"):
            continue
        if token.type == "ref":
            node = parse_cell_reference(token.value)
        else:
            node = parse_range_reference(token.value)
        replacement = transform(node)
        if replacement is None or replacement == token.value:
            continue
        pieces.append(body[cursor:token.start])
        pieces.append(replacement)
        cursor = token.end
        changed = True

    if not changed:
        return source
    pieces.append(body[cursor:])
    return prefix + "".join(pieces)
