"""Dimension algebra over base dimensions with integer exponents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from core.enums import BaseDimension


_ORDER = {dimension: index for index, dimension in enumerate(BaseDimension)}


@dataclass(frozen=True)
class Dimension:
    """Mapping from base dimension to a non-zero integer exponent.

    The empty mapping is Dimensionless. Two dimensions are equal when
    every exponent matches, which is the compatibility rule for
    addition and subtraction.
    """

    exponents: Tuple[Tuple[BaseDimension, int], ...] = ()

    @classmethod
    def of(cls, exponents: Mapping[BaseDimension, int]) -> Dimension:
        cleaned = {
            dimension: exponent
            for dimension, exponent in exponents.items()
            if exponent != 0 and dimension != BaseDimension.DIMENSIONLESS
        }
        return cls(tuple(sorted(cleaned.items(), key=lambda item: _ORDER[item[0]])))

    @classmethod
    def base(cls, dimension: BaseDimension) -> Dimension:
        return cls.of({dimension: 1})

    def as_dict(self) -> Dict[BaseDimension, int]:
        return dict(self.exponents)

    def exponent(self, dimension: BaseDimension) -> int:
        return self.as_dict().get(dimension, 0)

    @property
    def is_dimensionless(self) -> bool:
        return not self.exponents

    def as_base(self) -> Optional[BaseDimension]:
        """Return the single base dimension if this is one at exponent 1."""
        if self.is_dimensionless:
            return BaseDimension.DIMENSIONLESS
        if len(self.exponents) == 1 and self.exponents[0][1] == 1:
            return self.exponents[0][0]
        return None

    def __mul__(self, other: Dimension) -> Dimension:
        merged = self.as_dict()
        for dimension, exponent in other.exponents:
            merged[dimension] = merged.get(dimension, 0) + exponent
        return Dimension.of(merged)

    def __truediv__(self, other: Dimension) -> Dimension:
        return self * other ** -1

    def __pow__(self, power: int) -> Dimension:
        return Dimension.of({d: e * power for d, e in self.exponents})

    def __str__(self) -> str:
        if self.is_dimensionless:
            return "Dimensionless"
        parts = []
        for dimension, exponent in self.exponents:
            name = dimension.value.replace("_", " ").title().replace(" ", "")
            parts.append(name if exponent == 1 else f"{name}^{exponent}")
        return "*".join(parts)


DIMENSIONLESS = Dimension()
