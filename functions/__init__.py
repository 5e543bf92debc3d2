"""Built-in formula functions.

Importing this package registers every function with `function_registry`.
"""

from .registry import FunctionSpec, FunctionRegistry, function_registry
from . import aggregate, numeric, logic, stats, conversion  # noqa: F401

__all__ = [
    "FunctionSpec",
    "FunctionRegistry",
    "function_registry",
]
