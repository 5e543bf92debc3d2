"""Aggregation functions.

All operands must share one dimension; mismatched operands are left out
of the aggregate with a warning and the result carries the first
operand's unit. COUNT is always dimensionless.
"""

from core.enums import ErrorKind
from core.exceptions import EvaluationError
from engine.cell import NumberValue
from units.unit import DIMENSIONLESS_UNIT
from .common import collect_numbers, flatten
from .registry import function_registry

CATEGORY = "aggregation"


@function_registry.function(
    "SUM", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="common operand unit", category=CATEGORY,
)
def sum_(ctx, args):
    values, unit = collect_numbers(ctx, args, "SUM")
    return NumberValue(sum(values), unit)


@function_registry.function(
    "AVERAGE", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="common operand unit", category=CATEGORY,
)
def average(ctx, args):
    values, unit = collect_numbers(ctx, args, "AVERAGE")
    if not values:
        raise EvaluationError(ErrorKind.DIV_ZERO, "AVERAGE of no numbers")
    return NumberValue(sum(values) / len(values), unit)


@function_registry.function(
    "COUNT", min_args=1, max_args=None, accepts_ranges=True, lazy=True,
    unit_rule="dimensionless", category=CATEGORY,
)
def count(ctx, args):
    values = []
    for arg in args:
        try:
            values.append(arg())
        except EvaluationError:
            # Errors are not numbers, whether read directly or from a range
            continue
    numbers = [value for value in flatten(values) if isinstance(value, NumberValue)]
    return NumberValue(float(len(numbers)), DIMENSIONLESS_UNIT)


@function_registry.function(
    "MIN", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="common operand unit", category=CATEGORY,
)
def min_(ctx, args):
    values, unit = collect_numbers(ctx, args, "MIN")
    return NumberValue(min(values) if values else 0.0, unit)


@function_registry.function(
    "MAX", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="common operand unit", category=CATEGORY,
)
def max_(ctx, args):
    values, unit = collect_numbers(ctx, args, "MAX")
    return NumberValue(max(values) if values else 0.0, unit)
