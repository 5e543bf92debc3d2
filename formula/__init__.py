"""Formula language: addresses, tokenizer, AST and parser"""

from .references import (
    CellAddress,
    make_cell_id,
    split_cell_id,
    quote_sheet_name,
    expand_range,
    parse_range,
    range_size,
)
from .ast import (
    Expression,
    NumberLiteral,
    TextLiteral,
    BooleanLiteral,
    ErrorLiteral,
    CellRef,
    RangeRef,
    NamedRef,
    UnaryOp,
    BinaryOp,
    FunctionCall,
    walk,
    references,
)
from .tokenizer import Token, tokenize
from .parser import FormulaParser, parse_formula, parse_cell_reference, parse_range_reference
from .rewrite import rewrite_references

__all__ = [
    "CellAddress",
    "make_cell_id",
    "split_cell_id",
    "quote_sheet_name",
    "expand_range",
    "parse_range",
    "range_size",
    "Expression",
    "NumberLiteral",
    "TextLiteral",
    "BooleanLiteral",
    "ErrorLiteral",
    "CellRef",
    "RangeRef",
    "NamedRef",
    "UnaryOp",
    "BinaryOp",
    "FunctionCall",
    "walk",
    "references",
    "Token",
    "tokenize",
    "FormulaParser",
    "parse_formula",
    "parse_cell_reference",
    "parse_range_reference",
    "rewrite_references",
]
