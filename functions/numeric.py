"""Math functions. Rounding family keeps the input unit unchanged."""

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext

from core.enums import ErrorKind
from core.exceptions import EvaluationError, InvalidUnitOperation
from engine.cell import NumberValue
from units.unit import DIMENSIONLESS_UNIT, sqrt_unit
from .common import dimensionless_arg, number_arg
from .registry import function_registry

CATEGORY = "math"


def _significance(ctx, args, value: NumberValue, name: str) -> float:
    """Step for FLOOR/CEIL, expressed in the value's unit."""
    if len(args) < 2:
        return 1.0
    step = number_arg(ctx, args[1], name)
    if step.unit.is_dimensionless:
        significance = step.magnitude
    else:
        significance = ctx.convert(step.magnitude, step.unit, value.unit)
    if significance == 0:
        raise EvaluationError(ErrorKind.DIV_ZERO, f"{name} significance is zero")
    return abs(significance)


def round_half_away(value: float, digits: int = 0) -> float:
    exact = Decimal(repr(value))
    quantum = Decimal(1).scaleb(-digits)
    with localcontext() as context:
        # Enough digits for every float magnitude at the requested scale
        context.prec = max(28, exact.adjusted() + digits + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


@function_registry.function("ABS", unit_rule="input unit", category=CATEGORY)
def abs_(ctx, args):
    value = number_arg(ctx, args[0], "ABS")
    return NumberValue(abs(value.magnitude), value.unit)


@function_registry.function("ROUND", min_args=1, max_args=2, unit_rule="input unit", category=CATEGORY)
def round_(ctx, args):
    value = number_arg(ctx, args[0], "ROUND")
    digits = int(dimensionless_arg(ctx, args[1], "ROUND")) if len(args) > 1 else 0
    return NumberValue(round_half_away(value.magnitude, digits), value.unit)


@function_registry.function("FLOOR", min_args=1, max_args=2, unit_rule="input unit", category=CATEGORY)
def floor(ctx, args):
    value = number_arg(ctx, args[0], "FLOOR")
    step = _significance(ctx, args, value, "FLOOR")
    return NumberValue(math.floor(value.magnitude / step) * step, value.unit)


@function_registry.function(
    "CEIL", "CEILING", min_args=1, max_args=2, unit_rule="input unit", category=CATEGORY,
)
def ceil(ctx, args):
    value = number_arg(ctx, args[0], "CEIL")
    step = _significance(ctx, args, value, "CEIL")
    return NumberValue(math.ceil(value.magnitude / step) * step, value.unit)


@function_registry.function("TRUNC", min_args=1, max_args=2, unit_rule="input unit", category=CATEGORY)
def trunc(ctx, args):
    value = number_arg(ctx, args[0], "TRUNC")
    digits = int(dimensionless_arg(ctx, args[1], "TRUNC")) if len(args) > 1 else 0
    scale = 10.0 ** digits
    return NumberValue(math.trunc(value.magnitude * scale) / scale, value.unit)


@function_registry.function("MOD", min_args=2, max_args=2, unit_rule="dividend unit", category=CATEGORY)
def mod(ctx, args):
    value = number_arg(ctx, args[0], "MOD")
    divisor = number_arg(ctx, args[1], "MOD")
    if divisor.unit.is_dimensionless:
        step = divisor.magnitude
    else:
        step = ctx.convert(divisor.magnitude, divisor.unit, value.unit)
    if step == 0:
        raise EvaluationError(ErrorKind.DIV_ZERO, "MOD by zero")
    return NumberValue(value.magnitude % step, value.unit)


@function_registry.function("SIGN", unit_rule="input unit", category=CATEGORY)
def sign(ctx, args):
    value = number_arg(ctx, args[0], "SIGN")
    if value.magnitude == 0:
        return NumberValue(0.0, value.unit)
    return NumberValue(math.copysign(1.0, value.magnitude), value.unit)


@function_registry.function("SQRT", unit_rule="every exponent halved", category=CATEGORY)
def sqrt(ctx, args):
    value = number_arg(ctx, args[0], "SQRT")
    if value.magnitude < 0:
        raise EvaluationError(ErrorKind.VALUE, "SQRT of a negative number")
    try:
        unit = sqrt_unit(value.unit)
    except InvalidUnitOperation as exc:
        ctx.warn(str(exc))
        unit = DIMENSIONLESS_UNIT
    return NumberValue(math.sqrt(value.magnitude), unit)


@function_registry.function("POWER", min_args=2, max_args=2, unit_rule="every exponent times n", category=CATEGORY)
def power(ctx, args):
    value = number_arg(ctx, args[0], "POWER")
    exponent = dimensionless_arg(ctx, args[1], "POWER")
    return ctx.raise_to(value, exponent, "POWER")
