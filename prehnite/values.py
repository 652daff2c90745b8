"""The SQL value model: column types and the runtime values that inhabit them.

Runtime values are plain Python objects: ``None`` is NULL, and ``int``,
``float``, ``str`` and ``bool`` stand for INT, REAL, TEXT and BOOL.
"""

from __future__ import annotations

import math
from decimal import Decimal
from enum import Enum
from typing import Union

from prehnite.errors import ExecError

Value = Union[None, int, float, str, bool]


class Type(Enum):
    """The type of a column. Nullability belongs to values, not columns."""

    INT = "INT"
    REAL = "REAL"
    TEXT = "TEXT"
    BOOL = "BOOL"

    def __str__(self) -> str:
        return self.value


def type_name(value: Value) -> str:
    """A short type name for a value, used in error messages."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "BOOL"
    if isinstance(value, int):
        return "INT"
    if isinstance(value, float):
        return "REAL"
    if isinstance(value, str):
        return "TEXT"
    raise TypeError(f"not a SQL value: {value!r}")


def _format_real(r: float) -> str:
    if math.isnan(r):
        return "NaN"
    if math.isinf(r):
        return "inf" if r > 0 else "-inf"
    text = format(Decimal(repr(r)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_value(value: Value) -> str:
    """Render a value the way result sets display it."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_real(value)
    if isinstance(value, str):
        return value
    raise TypeError(f"not a SQL value: {value!r}")


def coerce(value: Value, target: Type) -> Value:
    """Adapt a value to a column type.

    NULL fits anywhere and an integer widens into REAL; nothing else converts.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        if target is Type.BOOL:
            return value
    elif isinstance(value, int):
        if target is Type.INT:
            return value
        if target is Type.REAL:
            return float(value)
    elif isinstance(value, float):
        if target is Type.REAL:
            return value
    elif isinstance(value, str):
        if target is Type.TEXT:
            return value
    raise ExecError(f"cannot store {type_name(value)} in a {target} column")