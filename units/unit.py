"""Unit representation and the unit algebra used by formula operators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Tuple

from core.enums import BaseDimension, BinaryOperator
from core.exceptions import InvalidUnitOperation
from .dimension import Dimension


class UnitTerm(NamedTuple):
    """One simple unit raised to an integer exponent."""

    symbol: str
    base: BaseDimension
    exponent: int = 1


@dataclass(frozen=True)
class Unit:
    """A canonical unit: an ordered product of simple unit terms."""

    terms: Tuple[UnitTerm, ...] = ()

    @property
    def symbol(self) -> str:
        return format_symbol(self.terms)

    @property
    def dimension(self) -> Dimension:
        exponents: Dict[BaseDimension, int] = {}
        for term in self.terms:
            exponents[term.base] = exponents.get(term.base, 0) + term.exponent
        return Dimension.of(exponents)

    @property
    def is_dimensionless(self) -> bool:
        return self.dimension.is_dimensionless

    @property
    def is_simple(self) -> bool:
        return len(self.terms) == 1 and self.terms[0].exponent == 1

    @property
    def is_percent(self) -> bool:
        return self.is_simple and self.terms[0].symbol == "%"

    def is_compatible(self, other: Unit) -> bool:
        return self.dimension == other.dimension

    def __str__(self) -> str:
        return self.symbol


DIMENSIONLESS_UNIT = Unit()


def format_symbol(terms) -> str:
    """Render terms as `a*b^2/c` with positive exponents first."""
    numerator = []
    denominator = []
    for term in terms:
        power = abs(term.exponent)
        text = term.symbol if power == 1 else f"{term.symbol}^{power}"
        if term.exponent > 0:
            numerator.append(text)
        elif term.exponent < 0:
            denominator.append(text)
    if not numerator and not denominator:
        return ""
    head = "*".join(numerator) if numerator else "1"
    return head + "".join(f"/{text}" for text in denominator)


def make_unit(terms) -> Unit:
    """Merge repeated symbols and drop zero exponents."""
    merged: List[UnitTerm] = []
    index: Dict[str, int] = {}
    for term in terms:
        if term.symbol in index:
            position = index[term.symbol]
            existing = merged[position]
            merged[position] = existing._replace(exponent=existing.exponent + term.exponent)
        else:
            index[term.symbol] = len(merged)
            merged.append(term)
    return Unit(tuple(term for term in merged if term.exponent != 0))


def _cancel(terms: List[UnitTerm]) -> Unit:
    unit = make_unit(terms)
    net = unit.dimension.as_dict()
    kept = [
        term
        for term in unit.terms
        if term.base == BaseDimension.DIMENSIONLESS or net.get(term.base, 0) != 0
    ]
    physical = [term for term in kept if term.base != BaseDimension.DIMENSIONLESS]
    if physical:
        # Percentages scale the other operand and disappear
        return Unit(tuple(physical))
    ratios = [term._replace(exponent=1) for term in kept if term.exponent > 0]
    return Unit(tuple(ratios[:1]))


def multiply(left: Unit, right: Unit) -> Unit:
    return _cancel(list(left.terms) + list(right.terms))


def divide(left: Unit, right: Unit) -> Unit:
    inverted = [term._replace(exponent=-term.exponent) for term in right.terms]
    return _cancel(list(left.terms) + inverted)


def combine(op: BinaryOperator, left: Unit, right: Unit) -> Tuple[Unit, Optional[str]]:
    """Result unit of `left op right` plus an optional warning.

    Addition and subtraction keep the left unit when dimensions match and
    degrade to dimensionless with a warning otherwise. Multiplication and
    division always succeed. Comparisons and concatenation are
    dimensionless.
    """
    if op in (BinaryOperator.ADD, BinaryOperator.SUBTRACT):
        if left.dimension == right.dimension:
            return left, None
        verb = "add" if op == BinaryOperator.ADD else "subtract"
        return DIMENSIONLESS_UNIT, incompatible_warning(verb, left, right)
    if op == BinaryOperator.MULTIPLY:
        return multiply(left, right), None
    if op == BinaryOperator.DIVIDE:
        return divide(left, right), None
    if op.is_comparison and left.dimension != right.dimension:
        return DIMENSIONLESS_UNIT, incompatible_warning("compare", left, right)
    return DIMENSIONLESS_UNIT, None


def incompatible_warning(verb: str, left: Unit, right: Unit) -> str:
    return (
        f"Incompatible units: cannot {verb} "
        f"{left.symbol or 'dimensionless'} and {right.symbol or 'dimensionless'}"
    )


def sqrt_unit(unit: Unit) -> Unit:
    """Halve every exponent; odd exponents are rejected."""
    physical = [term for term in unit.terms if term.base != BaseDimension.DIMENSIONLESS]
    if any(term.exponent % 2 for term in physical):
        raise InvalidUnitOperation(
            "SQRT", unit.symbol, f"Cannot take the square root of {unit.symbol}: odd exponent"
        )
    return Unit(tuple(term._replace(exponent=term.exponent // 2) for term in physical))


def power_unit(unit: Unit, power: float) -> Unit:
    """Multiply every exponent by an integral power."""
    physical = [term for term in unit.terms if term.base != BaseDimension.DIMENSIONLESS]
    if not physical:
        return DIMENSIONLESS_UNIT
    if float(power) != int(power):
        raise InvalidUnitOperation(
            "POWER",
            unit.symbol,
            f"Cannot raise {unit.symbol} to non-integer power {power}",
        )
    n = int(power)
    if n == 0:
        return DIMENSIONLESS_UNIT
    return Unit(tuple(term._replace(exponent=term.exponent * n) for term in physical))
