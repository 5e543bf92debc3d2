"""Formula tokenizer."""

from __future__ import annotations

import re
from typing import List, NamedTuple

from core.exceptions import FormulaSyntaxError

SHEET = r"(?:'(?:[^']|'')+'|[A-Za-z_][A-Za-z0-9_]*)!"
CELL = r"\$?[A-Z]{1,3}\$?[1-9]\d*"

TOKEN_PATTERN = re.compile(
    rf'''
    (?P<ws>\s+)
    |(?P<error>\#REF!)
    |(?P<string>"(?:[^"]|"")*")
    |(?P<range>(?:{SHEET})?{CELL}:{CELL})(?![A-Za-z0-9_(])
    |(?P<ref>(?:{SHEET})?{CELL})(?![A-Za-z0-9_(!])
    |(?P<currency>[$€£¥])(?=\d|\.\d)
    |(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<op><>|>=|<=|=|>|<|\+|\-|\*|/|\^|&|%)
    |(?P<comma>,)
    |(?P<lparen>\()
    |(?P<rparen>\))
    |(?P<name>[A-Za-z_°][A-Za-z0-9_°]*)
    |(?P<symbol>[$€£¥])
    ''',
    re.VERBOSE,
)
CELL_REF_PATTERN = re.compile(
    r"^(?:(?P<sheet>'(?:[^']|'')+'|[A-Za-z_][A-Za-z0-9_]*)!)?"
    r"(?P<col_abs>\$?)(?P<col>[A-Z]{1,3})(?P<row_abs>\$?)(?P<row>\d+)$"
)


class Token(NamedTuple):
    type: str
    value: str
    start: int
    end: int


def tokenize(source: str) -> List[Token]:
    """Split formula text (without the leading `=`) into tokens.

    Raises FormulaSyntaxError on a character no token can start with.
    """
    tokens: List[Token] = []
    position = 0
    while position < len(source):
        match = TOKEN_PATTERN.match(source, position)
        if match is None:
            raise FormulaSyntaxError("Unexpected character", source[position], position)
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(kind), match.start(), match.end()))
        position = match.end()
    return tokens


def unquote_sheet(sheet: str) -> str:
    if sheet.startswith("'") and sheet.endswith("'"):
        return sheet[1:-1].replace("''", "'")
    return sheet
