"""SQL values, data types and the errors raised when handling them.

SQL values are plain Python objects: ``None`` is NULL, and ``bool``, ``int``,
``float`` and ``str`` are the boolean, integer, float and string types.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

SqlValue = Union[None, bool, int, float, str]


class Error(Exception):
    """Base class for all errors raised by this package."""


class InvalidValue(Error):
    """A value, schema or expression is invalid."""


class InternalError(Error):
    """An internal invariant was violated."""


class DataType(Enum):
    """A column data type."""

    BOOLEAN = "BOOLEAN"
    INTEGER = "INTEGER"
    FLOAT = "FLOAT"
    STRING = "STRING"

    def __str__(self) -> str:
        return self.value


_NUMERIC = frozenset({DataType.INTEGER, DataType.FLOAT})


@dataclass(frozen=True)
class ResultColumn:
    """A column of a result set, optionally named."""

    name: Optional[str] = None


def datatype_of(value: SqlValue) -> Optional[DataType]:
    """Return the data type of a value, or None for NULL."""
    if value is None:
        return None
    if isinstance(value, bool):
        return DataType.BOOLEAN
    if isinstance(value, int):
        return DataType.INTEGER
    if isinstance(value, float):
        return DataType.FLOAT
    if isinstance(value, str):
        return DataType.STRING
    raise InvalidValue(f"Unsupported value {value!r}")


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_value(value: SqlValue) -> str:
    """Render a value the way it appears in query output and plans."""
    datatype = datatype_of(value)
    if datatype is None:
        return "NULL"
    if datatype is DataType.BOOLEAN:
        return "TRUE" if value else "FALSE"
    if datatype is DataType.FLOAT:
        return _format_float(value)  # type: ignore[arg-type]
    return str(value)


def _debug(value: SqlValue) -> str:
    datatype = datatype_of(value)
    if datatype is None:
        return "Null"
    if datatype is DataType.BOOLEAN:
        return f"Boolean({'true' if value else 'false'})"
    if datatype is DataType.INTEGER:
        return f"Integer({value})"
    if datatype is DataType.FLOAT:
        return f"Float({value!r})"
    return f"String({value!r})"


def values_equal(lhs: SqlValue, rhs: SqlValue) -> bool:
    """Strict equality: values must share a type, and NaN never equals anything."""
    if datatype_of(lhs) != datatype_of(rhs):
        return False
    return lhs == rhs


def compare_values(lhs: SqlValue, rhs: SqlValue) -> Optional[int]:
    """Order two values, returning -1, 0 or 1, or None when they are not comparable.

    NULL sorts before everything else, integers and floats compare numerically,
    and values of otherwise different types, or NaN, are not comparable.
    """
    if lhs is None and rhs is None:
        return 0
    if lhs is None:
        return -1
    if rhs is None:
        return 1
    ltype, rtype = datatype_of(lhs), datatype_of(rhs)
    if ltype != rtype:
        if ltype in _NUMERIC and rtype in _NUMERIC:
            lhs, rhs = float(lhs), float(rhs)  # type: ignore[arg-type]
        else:
            return None
    if lhs < rhs:  # type: ignore[operator]
        return -1
    if lhs > rhs:  # type: ignore[operator]
        return 1
    if lhs == rhs:
        return 0
    return None


def as_boolean(value: SqlValue) -> bool:
    """Return the value if it is a boolean, else raise InvalidValue."""
    if datatype_of(value) is DataType.BOOLEAN:
        return value  # type: ignore[return-value]
    raise InvalidValue(f"Not a boolean: {_debug(value)}")


def as_float(value: SqlValue) -> float:
    """Return the value if it is a float, else raise InvalidValue."""
    if datatype_of(value) is DataType.FLOAT:
        return value  # type: ignore[return-value]
    raise InvalidValue(f"Not a float: {_debug(value)}")


def as_integer(value: SqlValue) -> int:
    """Return the value if it is an integer, else raise InvalidValue."""
    if datatype_of(value) is DataType.INTEGER:
        return value  # type: ignore[return-value]
    raise InvalidValue(f"Not an integer: {_debug(value)}")


def as_string(value: SqlValue) -> str:
    """Return the value if it is a string, else raise InvalidValue."""
    if datatype_of(value) is DataType.STRING:
        return value  # type: ignore[return-value]
    raise InvalidValue(f"Not a string: {_debug(value)}")