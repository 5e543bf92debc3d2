"""Argument helpers shared by the function implementations."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Tuple

from core.enums import ErrorKind
from core.exceptions import EvaluationError
from engine.cell import Computed, EmptyValue, ErrorValue, NumberValue, TextValue
from units.unit import DIMENSIONLESS_UNIT, Unit, incompatible_warning


def flatten(args: Sequence) -> List[Computed]:
    """Expand range arguments (lists) into their member values."""
    values: List[Computed] = []
    for arg in args:
        if isinstance(arg, list):
            values.extend(arg)
        else:
            values.append(arg)
    return values


def raise_errors(values: Iterable[Computed]) -> None:
    for value in values:
        if isinstance(value, ErrorValue):
            raise EvaluationError(value.error, value.message)


def collect_numbers(ctx, args: Sequence, name: str) -> Tuple[List[float], Unit]:
    """Numbers sharing the first operand's dimension, converted to its unit.

    Text and empty cells are skipped. Operands of another dimension are
    excluded with an incompatible-units warning.
    """
    values = flatten(args)
    raise_errors(values)
    numbers = [value for value in values if isinstance(value, NumberValue)]
    if not numbers:
        return [], DIMENSIONLESS_UNIT
    unit = numbers[0].unit
    magnitudes: List[float] = []
    for number in numbers:
        if number.unit.dimension != unit.dimension:
            ctx.warn(f"{name}: " + incompatible_warning("aggregate", unit, number.unit))
            continue
        magnitudes.append(ctx.convert(number.magnitude, number.unit, unit))
    return magnitudes, unit


def scalar(ctx, arg, name: str) -> Computed:
    if isinstance(arg, list):
        raise EvaluationError(ErrorKind.VALUE, f"{name} does not accept a range here")
    if isinstance(arg, ErrorValue):
        raise EvaluationError(arg.error, arg.message)
    return arg


def number_arg(ctx, arg, name: str) -> NumberValue:
    value = scalar(ctx, arg, name)
    if isinstance(value, EmptyValue):
        return NumberValue(0.0)
    if isinstance(value, TextValue):
        raise EvaluationError(ErrorKind.VALUE, f"{name} expects a number, got text")
    return value


def dimensionless_arg(ctx, arg, name: str) -> float:
    """A plain number argument such as a digit count or exponent."""
    value = number_arg(ctx, arg, name)
    if not value.unit.is_dimensionless:
        ctx.warn(f"{name}: expected a dimensionless argument, ignoring unit {value.unit.symbol}")
    return value.magnitude


def truthy(ctx, arg, name: str) -> bool:
    value = scalar(ctx, arg, name)
    if isinstance(value, EmptyValue):
        return False
    if isinstance(value, TextValue):
        upper = value.text.strip().upper()
        if upper in ("TRUE", "FALSE"):
            return upper == "TRUE"
        raise EvaluationError(ErrorKind.VALUE, f"{name} expects a logical value, got text")
    return value.magnitude != 0


def boolean(flag: bool) -> NumberValue:
    return NumberValue(1.0 if flag else 0.0, DIMENSIONLESS_UNIT)
