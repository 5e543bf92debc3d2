"""Function registry with arity and unit-transformation rules."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class FunctionSpec:
    """Specification for a built-in formula function.

    Attributes:
        name: Upper-case function name as written in formulas.
        fn: Implementation, called as fn(context, args).
        min_args: Minimum argument count.
        max_args: Maximum argument count, None for variadic.
        accepts_ranges: Whether range references may be passed.
        lazy: Arguments arrive as zero-argument callables (IF, COUNT).
        unit_rule: Human-readable description of the result unit.
        category: Aggregation, math, logic, statistics or conversion.
    """

    name: str
    fn: Callable
    min_args: int = 1
    max_args: Optional[int] = 1
    accepts_ranges: bool = False
    lazy: bool = False
    unit_rule: str = ""
    category: str = ""

    def accepts_count(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args


class FunctionRegistry:
    """Registry of formula functions keyed by upper-case name."""

    def __init__(self):
        self._functions: Dict[str, FunctionSpec] = {}

    def register(self, spec: FunctionSpec) -> None:
        """Register a function specification.

        Raises:
            ValueError: If the name is already registered.
        """
        if spec.name in self._functions:
            raise ValueError(f"Function {spec.name} already registered")
        self._functions[spec.name] = spec

    def function(
        self,
        *names: str,
        min_args: int = 1,
        max_args: Optional[int] = 1,
        accepts_ranges: bool = False,
        lazy: bool = False,
        unit_rule: str = "",
        category: str = "",
    ):
        """Decorator registering fn under one or more names."""

        def decorator(fn: Callable) -> Callable:
            for name in names:
                self.register(
                    FunctionSpec(
                        name=name.upper(),
                        fn=fn,
                        min_args=min_args,
                        max_args=max_args,
                        accepts_ranges=accepts_ranges,
                        lazy=lazy,
                        unit_rule=unit_rule,
                        category=category,
                    )
                )
            return fn

        return decorator

    def get(self, name: str) -> Optional[FunctionSpec]:
        return self._functions.get(name.upper())

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._functions

    def list_registered(self) -> List[str]:
        return sorted(self._functions)

    def by_category(self, category: str) -> List[FunctionSpec]:
        return [spec for spec in self._functions.values() if spec.category == category]


function_registry = FunctionRegistry()
