"""Recursive-descent formula parser.

Precedence, lowest to highest: comparisons, `&`, `+ -`, `* /`, `^`
(right associative), unary minus. A number may carry a trailing unit
which must resolve in the unit library.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from core.enums import BinaryOperator, ErrorKind
from core.exceptions import FormulaSyntaxError, UnitParseError
from units.library import UnitLibrary, default_library
from units.parser import parse_unit
from units.unit import DIMENSIONLESS_UNIT, Unit
from .ast import (
    BinaryOp,
    BooleanLiteral,
    CellRef,
    ErrorLiteral,
    Expression,
    FunctionCall,
    NamedRef,
    NumberLiteral,
    RangeRef,
    TextLiteral,
    UnaryOp,
)
from .references import CellAddress
from .tokenizer import CELL_REF_PATTERN, Token, tokenize, unquote_sheet

COMPARISON_OPS = {"=", "<>", "<", ">", "<=", ">="}


def parse_cell_reference(text: str) -> CellRef:
    """Build a CellRef from `$A$1`, `Sheet2!B3` or `'My Sheet'!C4`."""
    match = CELL_REF_PATTERN.match(text)
    if not match:
        raise FormulaSyntaxError("Invalid cell reference", text, 0)
    sheet = match.group("sheet")
    return CellRef(
        address=CellAddress(row=int(match.group("row")), col=_column_index(match.group("col"))),
        sheet=unquote_sheet(sheet) if sheet else None,
        absolute_col=bool(match.group("col_abs")),
        absolute_row=bool(match.group("row_abs")),
    )


def parse_range_reference(text: str) -> RangeRef:
    head, tail = text.rsplit(":", 1)
    start = parse_cell_reference(head)
    end = parse_cell_reference(tail)
    return RangeRef(start=start, end=CellRef(end.address, start.sheet, end.absolute_col, end.absolute_row))


def _column_index(letters: str) -> int:
    index = 0
    for char in letters:
        index = index * 26 + (ord(char) - 64)
    return index


class FormulaParser:
    """Parse formula source text into an Expression."""

    def __init__(self, library: Optional[UnitLibrary] = None):
        self.library = library or default_library()

    def parse(self, source: str) -> Expression:
        text = source[1:] if source.startswith("=") else source
        offset = len(source) - len(text)
        self._source = text
        self._offset = offset
        self._tokens = tokenize(text)
        self._index = 0
        if not self._tokens:
            raise FormulaSyntaxError("Empty formula", "", offset)
        expr = self._comparison()
        if self._index < len(self._tokens):
            self._fail("Unexpected token", self._tokens[self._index])
        return expr

    # ─────────────────────────────────────────────────────────────
    # Token helpers
    # ─────────────────────────────────────────────────────────────

    def _peek(self, ahead: int = 0) -> Optional[Token]:
        position = self._index + ahead
        if position < len(self._tokens):
            return self._tokens[position]
        return None

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        token = self._peek()
        return token is not None and token.type == "op" and token.value in ops

    def _expect(self, kind: str) -> Token:
        token = self._peek()
        if token is None:
            self._fail(f"Expected {kind}, reached end of formula", None)
        if token.type != kind:
            self._fail(f"Expected {kind}", token)
        return self._advance()

    def _fail(self, message: str, token: Optional[Token]):
        if token is None:
            raise FormulaSyntaxError(message, "", self._offset + len(self._source))
        raise FormulaSyntaxError(message, token.value, self._offset + token.start)

    # ─────────────────────────────────────────────────────────────
    # Grammar
    # ─────────────────────────────────────────────────────────────

    def _comparison(self) -> Expression:
        left = self._concat()
        while self._at_op(*COMPARISON_OPS):
            op = BinaryOperator(self._advance().value)
            left = BinaryOp(op, left, self._concat())
        return left

    def _concat(self) -> Expression:
        left = self._additive()
        while self._at_op("&"):
            self._advance()
            left = BinaryOp(BinaryOperator.CONCAT, left, self._additive())
        return left

    def _additive(self) -> Expression:
        left = self._multiplicative()
        while self._at_op("+", "-"):
            op = BinaryOperator(self._advance().value)
            left = BinaryOp(op, left, self._multiplicative())
        return left

    def _multiplicative(self) -> Expression:
        left = self._power()
        while self._at_op("*", "/"):
            op = BinaryOperator(self._advance().value)
            left = BinaryOp(op, left, self._power())
        return left

    def _power(self) -> Expression:
        base = self._unary()
        if self._at_op("^"):
            self._advance()
            return BinaryOp(BinaryOperator.POWER, base, self._power())
        return base

    def _unary(self) -> Expression:
        if self._at_op("-", "+"):
            op = self._advance().value
            operand = self._unary()
            if op == "+":
                return operand
            if isinstance(operand, NumberLiteral):
                return NumberLiteral(-operand.value, operand.unit)
            return UnaryOp("-", operand)
        return self._primary()

    def _primary(self) -> Expression:
        token = self._peek()
        if token is None:
            self._fail("Unexpected end of formula", None)

        if token.type == "number":
            self._advance()
            return self._number(float(token.value), token, None)
        if token.type == "currency":
            self._advance()
            number = self._expect("number")
            return self._number(float(number.value), number, token)
        if token.type == "string":
            self._advance()
            return TextLiteral(token.value[1:-1].replace('""', '"'))
        if token.type == "error":
            self._advance()
            return ErrorLiteral(ErrorKind.REF)
        if token.type == "ref":
            self._advance()
            return parse_cell_reference(token.value)
        if token.type == "range":
            self._advance()
            return parse_range_reference(token.value)
        if token.type == "lparen":
            self._advance()
            expr = self._comparison()
            self._expect("rparen")
            return expr
        if token.type == "name":
            return self._identifier()
        self._fail("Unexpected token", token)

    def _identifier(self) -> Expression:
        token = self._advance()
        following = self._peek()
        if following is not None and following.type == "lparen":
            self._advance()
            return FunctionCall(token.value.upper(), tuple(self._arguments()))
        upper = token.value.upper()
        if upper in ("TRUE", "FALSE"):
            return BooleanLiteral(upper == "TRUE")
        if token.value[0].islower() or token.value[0] == "_":
            return NamedRef(token.value)
        self._fail("Unknown identifier", token)

    def _arguments(self) -> List[Expression]:
        args: List[Expression] = []
        if self._peek() is not None and self._peek().type == "rparen":
            self._advance()
            return args
        while True:
            args.append(self._comparison())
            token = self._peek()
            if token is None:
                self._fail("Expected ')' to close function call", None)
            if token.type == "comma":
                self._advance()
                continue
            if token.type == "rparen":
                self._advance()
                return args
            self._fail("Expected ',' or ')'", token)

    # ─────────────────────────────────────────────────────────────
    # Number literals with units
    # ─────────────────────────────────────────────────────────────

    def _number(self, value: float, token: Token, currency: Optional[Token]) -> Expression:
        if currency is not None:
            unit, _ = self._unit_after(token, prefix=currency.value)
            return NumberLiteral(value, unit)
        following = self._peek()
        if following is not None and following.type == "op" and following.value == "%":
            self._advance()
            return NumberLiteral(value / 100.0, self.library.unit("%"))
        if following is not None and following.type in ("name", "symbol"):
            unit, consumed = self._unit_after(token, prefix=None)
            if consumed == 0:
                self._fail("Unknown unit", following)
            return NumberLiteral(value, unit)
        return NumberLiteral(value, DIMENSIONLESS_UNIT)

    def _unit_after(self, number: Token, prefix: Optional[str]) -> Tuple[Unit, int]:
        """Greedily read the longest known unit following a number.

        Returns the unit and how many tokens were consumed. Operators
        inside a unit must touch their neighbours: `75 USD/hr`.
        """
        pieces: List[Token] = []
        if prefix is None:
            pieces.append(self._peek())
        position = self._index + len(pieces)
        previous_end = pieces[-1].end if pieces else number.end
        while True:
            op = self._peek(position - self._index)
            if op is None or op.type != "op" or op.value not in ("/", "*", "^"):
                break
            if op.start != previous_end:
                break
            operand_tokens = self._unit_operand(position + 1, op.end, op.value == "^")
            if not operand_tokens:
                break
            pieces.append(op)
            pieces.extend(operand_tokens)
            position += 1 + len(operand_tokens)
            previous_end = operand_tokens[-1].end

        # Try the longest candidate first
        for count in range(len(pieces), -1, -1):
            if count == 0 and prefix is None:
                break
            text = (prefix or "") + "".join(token.value for token in pieces[:count])
            try:
                unit = parse_unit(text, self.library)
            except UnitParseError:
                continue
            self._index += count
            return unit, count
        return DIMENSIONLESS_UNIT, 0

    def _unit_operand(self, position: int, previous_end: int, exponent: bool) -> List[Token]:
        token = self._peek(position - self._index)
        if token is None or token.start != previous_end:
            return []
        if exponent:
            if token.type == "op" and token.value == "-":
                number = self._peek(position + 1 - self._index)
                if number is not None and number.type == "number" and number.start == token.end:
                    return [token, number]
                return []
            return [token] if token.type == "number" else []
        return [token] if token.type in ("name", "symbol") else []


def parse_formula(source: str, library: Optional[UnitLibrary] = None) -> Expression:
    return FormulaParser(library).parse(source)
