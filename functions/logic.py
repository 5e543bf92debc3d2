"""Logic and comparison functions; results are dimensionless 1/0."""

from core.enums import BinaryOperator
from engine.cell import NumberValue
from .common import boolean, raise_errors, scalar, truthy
from .registry import function_registry

CATEGORY = "logic"


@function_registry.function(
    "IF", min_args=2, max_args=3, lazy=True,
    unit_rule="unit of the chosen branch", category=CATEGORY,
)
def if_(ctx, args):
    condition = truthy(ctx, args[0](), "IF")
    if condition:
        return args[1]()
    if len(args) > 2:
        return args[2]()
    return boolean(False)


def _flags(ctx, args, name: str):
    flags = []
    for arg in args:
        if isinstance(arg, list):
            raise_errors(arg)
            flags.extend(
                value.magnitude != 0 for value in arg if isinstance(value, NumberValue)
            )
        else:
            flags.append(truthy(ctx, arg, name))
    return flags


@function_registry.function(
    "AND", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="dimensionless", category=CATEGORY,
)
def and_(ctx, args):
    return boolean(all(_flags(ctx, args, "AND")))


@function_registry.function(
    "OR", min_args=1, max_args=None, accepts_ranges=True,
    unit_rule="dimensionless", category=CATEGORY,
)
def or_(ctx, args):
    return boolean(any(_flags(ctx, args, "OR")))


@function_registry.function("NOT", unit_rule="dimensionless", category=CATEGORY)
def not_(ctx, args):
    return boolean(not truthy(ctx, args[0], "NOT"))


def _comparison(name: str, op: BinaryOperator):
    def compare(ctx, args):
        left = scalar(ctx, args[0], name)
        right = scalar(ctx, args[1], name)
        return ctx.compare(op, left, right)

    compare.__name__ = name.lower()
    function_registry.function(
        name, min_args=2, max_args=2,
        unit_rule="operands converted to a common unit; dimensionless result",
        category=CATEGORY,
    )(compare)
    return compare


gt = _comparison("GT", BinaryOperator.GT)
lt = _comparison("LT", BinaryOperator.LT)
gte = _comparison("GTE", BinaryOperator.GTE)
lte = _comparison("LTE", BinaryOperator.LTE)
eq = _comparison("EQ", BinaryOperator.EQ)
ne = _comparison("NE", BinaryOperator.NE)
