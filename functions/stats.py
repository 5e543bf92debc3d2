"""Statistics functions (sample statistics)."""

import statistics

from core.enums import ErrorKind
from core.exceptions import EvaluationError
from engine.cell import NumberValue
from units.unit import multiply
from .common import collect_numbers
from .registry import function_registry

CATEGORY = "statistics"


def _sample(ctx, args, name: str):
    values, unit = collect_numbers(ctx, args, name)
    if len(values) < 2:
        raise EvaluationError(ErrorKind.VALUE, f"{name} needs at least two numbers")
    return values, unit


@function_registry.function(
    "MEDIAN", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="input unit", category=CATEGORY,
)
def median(ctx, args):
    values, unit = collect_numbers(ctx, args, "MEDIAN")
    if not values:
        raise EvaluationError(ErrorKind.VALUE, "MEDIAN of no numbers")
    return NumberValue(statistics.median(values), unit)


@function_registry.function(
    "STDEV", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="input unit", category=CATEGORY,
)
def stdev(ctx, args):
    values, unit = _sample(ctx, args, "STDEV")
    return NumberValue(statistics.stdev(values), unit)


@function_registry.function(
    "VAR", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="input unit squared", category=CATEGORY,
)
def var(ctx, args):
    values, unit = _sample(ctx, args, "VAR")
    return NumberValue(statistics.variance(values), multiply(unit, unit))
