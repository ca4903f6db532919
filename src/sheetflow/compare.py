"""
Condition Evaluator.

`compare(op, left, right)` is the only comparison primitive the Step
Router uses. Coercion is explicit:

    ==, !=          -> to_comparable_string on both sides
    <, <=, >, >=    -> to_comparable_number on both sides

NaN semantics:
    to_comparable_number returns NaN for anything that is not a number,
    a numeric string or a bool. Every ordering comparison involving NaN
    is False, so `x < y` and `x >= y` can both be False.
"""

import math
import re
from typing import Callable, Dict

from sheetflow.model import Value

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def to_comparable_string(value: Value) -> str:
    """
    Render a value the way the rule sheet writes it.

    True/False -> "true"/"false", None -> "null", integral floats drop
    their ".0" so that a set_vars `100` equals an answer "100".
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def parse_number(text: str):
    """Parse a decimal literal; None if `text` is not one."""
    text = text.strip()
    if not _NUMBER_RE.match(text):
        return None
    number = float(text)
    if number.is_integer() and "." not in text and "e" not in text.lower():
        return int(text)
    return number


def to_comparable_number(value: Value) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        number = parse_number(value)
        if number is not None:
            return float(number)
    return math.nan


_OPERATORS: Dict[str, Callable[[Value, Value], bool]] = {
    "==": lambda a, b: to_comparable_string(a) == to_comparable_string(b),
    "!=": lambda a, b: to_comparable_string(a) != to_comparable_string(b),
    "<": lambda a, b: to_comparable_number(a) < to_comparable_number(b),
    "<=": lambda a, b: to_comparable_number(a) <= to_comparable_number(b),
    ">": lambda a, b: to_comparable_number(a) > to_comparable_number(b),
    ">=": lambda a, b: to_comparable_number(a) >= to_comparable_number(b),
}

OPERATORS = frozenset(_OPERATORS)


def compare(op: str, left: Value, right: Value) -> bool:
    """
    Compare two values under a sheet operator.

    Args:
        op: One of ==, !=, <, <=, >, >=
        left: Value read from vars
        right: Value written in the sheet

    Returns:
        Result of the comparison; False for an unknown operator
    """
    fn = _OPERATORS.get(op)
    if fn is None:
        return False
    return fn(left, right)


__all__ = [
    "compare",
    "to_comparable_string",
    "to_comparable_number",
    "parse_number",
    "OPERATORS",
]
