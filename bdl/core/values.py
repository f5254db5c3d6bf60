"""
Variable values for dialogue scripts.

Values are plain Python objects:

    str          String
    int / float  Number
    bool         Boolean
    None         Empty
    dict         Nested mapping (e.g. ``completed_modules: {}``)

Only truthiness and display formatting are defined on them; the engine
never evaluates expressions.
"""

from __future__ import annotations

import copy
from typing import Any, Union

Value = Union[str, int, float, bool, None, dict]

EMPTY: Value = None

# String values that read as false in a condition
FALSY_STRINGS = frozenset({"false", "0"})


def is_value(obj: Any) -> bool:
    """Check whether an object is a storable value."""
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return True
    if isinstance(obj, dict):
        return all(isinstance(k, str) and is_value(v) for k, v in obj.items())
    return False


def is_truthy(value: Value) -> bool:
    """
    Truthiness used by ``?{var}`` conditions.

    Empty, ``False``, numeric zero and the strings ``"false"`` / ``"0"``
    are falsy. Everything else is truthy, including ``{}`` and ``""``.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value not in FALSY_STRINGS
    return True


def format_number(number: int | float) -> str:
    """Format a number, dropping a zero fractional part."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def to_display_string(value: Value) -> str:
    """Convert a value to the text substituted for ``${name}``."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, dict):
        inner = ", ".join(
            f"{key}: {to_display_string(item)}" for key, item in value.items()
        )
        return "{" + inner + "}"
    return str(value)


def copy_value(value: Value) -> Value:
    """Copy a value so mutations of nested mappings don't leak."""
    if isinstance(value, dict):
        return copy.deepcopy(value)
    return value


def normalize_results(result: Any) -> list[Value]:
    """
    Normalize what a host function returned into an ordered value list.

    None becomes no values, a scalar becomes a single value and any
    list or tuple is taken in order.
    """
    if result is None:
        return []
    if isinstance(result, (list, tuple)):
        return list(result)
    return [result]
