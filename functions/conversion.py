"""Unit conversion functions."""

from core.enums import ErrorKind
from core.exceptions import EvaluationError, UnitParseError
from engine.cell import NumberValue, TextValue
from units.parser import parse_unit
from .common import number_arg, scalar
from .registry import function_registry

CATEGORY = "conversion"


@function_registry.function(
    "CONVERT", min_args=2, max_args=2,
    unit_rule="target unit", category=CATEGORY,
)
def convert(ctx, args):
    """CONVERT(value, target).

    The target is a unit literal such as `1 km`, a unit name in quotes,
    or a cell whose unit (or unit text) is the target.
    """
    value = number_arg(ctx, args[0], "CONVERT")
    target = scalar(ctx, args[1], "CONVERT")
    if isinstance(target, TextValue):
        try:
            unit = parse_unit(target.text.strip(), ctx.library)
        except UnitParseError as exc:
            raise EvaluationError(ErrorKind.CONVERSION, str(exc))
    elif isinstance(target, NumberValue):
        unit = target.unit
    else:
        raise EvaluationError(ErrorKind.VALUE, "CONVERT needs a target unit")
    return NumberValue(ctx.convert(value.magnitude, value.unit, unit), unit)


@function_registry.function("PERCENT", unit_rule="%", category=CATEGORY)
def percent(ctx, args):
    value = number_arg(ctx, args[0], "PERCENT")
    return NumberValue(value.magnitude, ctx.library.unit("%"))
