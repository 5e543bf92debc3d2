"""Expression evaluator applying unit rules at every operation.

The evaluator walks an expression tree and reads cells through a
resolver (the workbook), which supplies:

    value_at(sheet, address) -> Computed
    resolve_name(name) -> Optional[(sheet, address)]

Cell-level failures travel as EvaluationError and are turned into
error values at the cell boundary by `evaluate`.
"""

from __future__ import annotations

import math
from functools import partial
from typing import List, Optional

from config import settings
from core.enums import BinaryOperator, ErrorKind
from core.exceptions import ConversionError, EvaluationError, InvalidUnitOperation
from formula.ast import (
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
from formula.references import CellAddress, expand_range, range_size
from functions import function_registry
from functions.registry import FunctionRegistry
from units.currency import CurrencyRateTable
from units.library import UnitLibrary, default_library
from units.unit import DIMENSIONLESS_UNIT, Unit, divide, incompatible_warning, multiply, power_unit
from .cell import Computed, EmptyValue, ErrorValue, NumberValue, TextValue
from .display import format_computed


class Evaluator:
    """Evaluates one formula in the context of its sheet."""

    def __init__(
        self,
        resolver,
        sheet: str,
        library: Optional[UnitLibrary] = None,
        rates: Optional[CurrencyRateTable] = None,
        functions: Optional[FunctionRegistry] = None,
    ):
        self.resolver = resolver
        self.sheet = sheet
        self.library = library or default_library()
        self.rates = rates
        self.functions = functions or function_registry
        self.warnings: List[str] = []

    @property
    def warning(self) -> Optional[str]:
        if not self.warnings:
            return None
        return "; ".join(dict.fromkeys(self.warnings))

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def evaluate(self, expr: Expression) -> Computed:
        """Evaluate to a value; cell-level errors become ErrorValue."""
        try:
            value = self._eval(expr)
        except EvaluationError as exc:
            return ErrorValue(exc.kind, exc.message)
        except ArithmeticError as exc:
            return ErrorValue(ErrorKind.VALUE, str(exc))
        if isinstance(value, EmptyValue):
            return NumberValue(0.0, DIMENSIONLESS_UNIT)
        if isinstance(value, NumberValue) and not math.isfinite(value.magnitude):
            return ErrorValue(ErrorKind.VALUE, "Result is not a finite number")
        return value

    # ─────────────────────────────────────────────────────────────
    # Unit helpers used by the function library
    # ─────────────────────────────────────────────────────────────

    def convert(self, magnitude: float, from_unit: Unit, to_unit: Unit) -> float:
        try:
            return self.library.convert(magnitude, from_unit, to_unit, self.rates)
        except ConversionError as exc:
            raise EvaluationError(ErrorKind.CONVERSION, str(exc))

    def normalize(self, magnitude: float, unit: Unit) -> NumberValue:
        try:
            folded, factor = self.library.normalize(unit, self.rates)
        except ConversionError as exc:
            raise EvaluationError(ErrorKind.CONVERSION, str(exc))
        return NumberValue(magnitude * factor, folded)

    def format(self, value: Computed) -> str:
        return format_computed(value, settings.DISPLAY_PRECISION)

    # ─────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────

    def _eval(self, expr: Expression) -> Computed:
        if isinstance(expr, NumberLiteral):
            return NumberValue(expr.value, expr.unit)
        if isinstance(expr, TextLiteral):
            return TextValue(expr.value)
        if isinstance(expr, BooleanLiteral):
            return NumberValue(1.0 if expr.value else 0.0)
        if isinstance(expr, ErrorLiteral):
            raise EvaluationError(expr.kind, "Reference to a deleted cell")
        if isinstance(expr, CellRef):
            return self._read(expr.sheet or self.sheet, expr.address)
        if isinstance(expr, RangeRef):
            raise EvaluationError(ErrorKind.VALUE, "A range cannot be used as a single value")
        if isinstance(expr, NamedRef):
            target = self.resolver.resolve_name(expr.name)
            if target is None:
                raise EvaluationError(ErrorKind.NAME, f"Unknown name '{expr.name}'")
            return self._read(*target)
        if isinstance(expr, UnaryOp):
            return self._unary(expr)
        if isinstance(expr, BinaryOp):
            return self._binary(expr)
        if isinstance(expr, FunctionCall):
            return self._call(expr)
        raise EvaluationError(ErrorKind.VALUE, f"Unsupported expression {type(expr).__name__}")

    def _read(self, sheet: str, address: CellAddress) -> Computed:
        value = self.resolver.value_at(sheet, address)
        if isinstance(value, ErrorValue):
            raise EvaluationError(value.error, value.message)
        return value

    def _range_values(self, node: RangeRef) -> List[Computed]:
        if range_size(node.start.address, node.end.address) > settings.MAX_RANGE_EXPANSION:
            raise EvaluationError(ErrorKind.VALUE, f"Range {node.to_text()} is too large")
        sheet = node.sheet or self.sheet
        return [
            self.resolver.value_at(sheet, address)
            for address in expand_range(node.start.address, node.end.address)
        ]

    # ─────────────────────────────────────────────────────────────
    # Operators
    # ─────────────────────────────────────────────────────────────

    def _unary(self, node: UnaryOp) -> Computed:
        operand = self._eval(node.operand)
        if isinstance(operand, EmptyValue):
            operand = NumberValue(0.0)
        if not isinstance(operand, NumberValue):
            raise EvaluationError(ErrorKind.VALUE, f"Cannot apply unary {node.op} to text")
        if node.op == "-":
            return NumberValue(-operand.magnitude, operand.unit)
        return operand

    def _binary(self, node: BinaryOp) -> Computed:
        left = self._eval(node.left)
        right = self._eval(node.right)
        op = node.op

        if op == BinaryOperator.CONCAT:
            return TextValue(self.format(left) + self.format(right))
        if op.is_comparison:
            return self.compare(op, left, right)
        if op == BinaryOperator.ADD and (isinstance(left, TextValue) or isinstance(right, TextValue)):
            return TextValue(self.format(left) + self.format(right))

        left, right = self._numbers(op, left, right)
        if op in (BinaryOperator.ADD, BinaryOperator.SUBTRACT):
            return self._add(op, left, right)
        if op == BinaryOperator.MULTIPLY:
            return self._multiply(left, right)
        if op == BinaryOperator.DIVIDE:
            return self._divide(left, right)
        if op == BinaryOperator.POWER:
            return self._power(left, right)
        raise EvaluationError(ErrorKind.VALUE, f"Unsupported operator {op.value}")

    def _numbers(self, op: BinaryOperator, left: Computed, right: Computed):
        """Coerce both operands to numbers; an empty cell is zero in the other's unit."""
        if isinstance(left, TextValue) or isinstance(right, TextValue):
            raise EvaluationError(ErrorKind.VALUE, f"Cannot apply {op.value} to text")
        if isinstance(left, EmptyValue):
            left = NumberValue(0.0, right.unit if isinstance(right, NumberValue) else DIMENSIONLESS_UNIT)
        if isinstance(right, EmptyValue):
            right = NumberValue(0.0, left.unit)
        return left, right

    def _add(self, op: BinaryOperator, left: NumberValue, right: NumberValue) -> NumberValue:
        sign = 1.0 if op == BinaryOperator.ADD else -1.0
        if left.unit.dimension != right.unit.dimension:
            verb = "add" if op == BinaryOperator.ADD else "subtract"
            self.warn(incompatible_warning(verb, left.unit, right.unit))
            return NumberValue(left.magnitude + sign * right.magnitude, DIMENSIONLESS_UNIT)
        rhs = self.convert(right.magnitude, right.unit, left.unit)
        return NumberValue(left.magnitude + sign * rhs, left.unit)

    def _harmonized(self, left: NumberValue, right: NumberValue) -> NumberValue:
        """Right operand re-expressed in left's unit per shared base dimension."""
        try:
            unit, factor = self.library.harmonize(right.unit, left.unit, self.rates)
        except ConversionError as exc:
            raise EvaluationError(ErrorKind.CONVERSION, str(exc))
        return NumberValue(right.magnitude * factor, unit)

    def _multiply(self, left: NumberValue, right: NumberValue) -> NumberValue:
        right = self._harmonized(left, right)
        return self.normalize(left.magnitude * right.magnitude, multiply(left.unit, right.unit))

    def _divide(self, left: NumberValue, right: NumberValue) -> NumberValue:
        if right.magnitude == 0:
            raise EvaluationError(ErrorKind.DIV_ZERO, "Division by zero")
        right = self._harmonized(left, right)
        return self.normalize(left.magnitude / right.magnitude, divide(left.unit, right.unit))

    def _power(self, base: NumberValue, exponent: NumberValue) -> NumberValue:
        if not exponent.unit.is_dimensionless:
            self.warn(f"Exponent {exponent.unit.symbol} is not dimensionless; its unit is ignored")
        return self.raise_to(base, exponent.magnitude, "POWER")

    def raise_to(self, base: NumberValue, power: float, operation: str) -> NumberValue:
        """base ** power with exponent transformation of its unit.

        An invalid unit transform degrades to a dimensionless result with
        a warning.
        """
        try:
            magnitude = math.pow(base.magnitude, power)
        except (ValueError, OverflowError) as exc:
            raise EvaluationError(ErrorKind.VALUE, f"{operation}: {exc}")
        try:
            unit = power_unit(base.unit, power)
        except InvalidUnitOperation as exc:
            self.warn(str(exc))
            unit = DIMENSIONLESS_UNIT
        return NumberValue(magnitude, unit)

    def compare(self, op: BinaryOperator, left: Computed, right: Computed) -> NumberValue:
        if isinstance(left, EmptyValue):
            left = TextValue("") if isinstance(right, TextValue) else NumberValue(0.0, getattr(right, "unit", DIMENSIONLESS_UNIT))
        if isinstance(right, EmptyValue):
            right = TextValue("") if isinstance(left, TextValue) else NumberValue(0.0, left.unit)

        if isinstance(left, TextValue) and isinstance(right, TextValue):
            a, b = left.text.casefold(), right.text.casefold()
        elif isinstance(left, TextValue) or isinstance(right, TextValue):
            # Numbers sort before text
            a, b = (1, 0) if isinstance(left, TextValue) else (0, 1)
        elif left.unit.dimension != right.unit.dimension:
            self.warn(incompatible_warning("compare", left.unit, right.unit))
            a, b = left.magnitude, right.magnitude
        else:
            a, b = left.magnitude, self.convert(right.magnitude, right.unit, left.unit)
        return NumberValue(1.0 if compare_values(op, a, b) else 0.0)

    # ─────────────────────────────────────────────────────────────
    # Functions
    # ─────────────────────────────────────────────────────────────

    def _call(self, node: FunctionCall) -> Computed:
        spec = self.functions.get(node.name)
        if spec is None:
            raise EvaluationError(ErrorKind.NAME, f"Unknown function {node.name}")
        if not spec.accepts_count(len(node.args)):
            if spec.max_args is None:
                expected = f"at least {spec.min_args}"
            elif spec.min_args == spec.max_args:
                expected = str(spec.min_args)
            else:
                expected = f"{spec.min_args} to {spec.max_args}"
            raise EvaluationError(
                ErrorKind.VALUE,
                f"{spec.name} expects {expected} argument(s), got {len(node.args)}",
            )
        if spec.lazy:
            args = [partial(self._argument, arg, spec) for arg in node.args]
        else:
            args = [self._argument(arg, spec) for arg in node.args]
        return spec.fn(self, args)

    def _argument(self, expr: Expression, spec):
        if isinstance(expr, RangeRef):
            if not spec.accepts_ranges:
                raise EvaluationError(ErrorKind.VALUE, f"{spec.name} does not accept ranges")
            return self._range_values(expr)
        return self._eval(expr)


def compare_values(op: BinaryOperator, a, b) -> bool:
    if isinstance(a, float) and isinstance(b, float):
        close = math.isclose(a, b, rel_tol=1e-9, abs_tol=1e-12)
    else:
        close = a == b
    if op == BinaryOperator.EQ:
        return close
    if op == BinaryOperator.NE:
        return not close
    if op == BinaryOperator.LT:
        return a < b and not close
    if op == BinaryOperator.GT:
        return a > b and not close
    if op == BinaryOperator.LTE:
        return a < b or close
    if op == BinaryOperator.GTE:
        return a > b or close
    raise ValueError(f"Not a comparison: {op}")
