"""Expression trees made up of constants, field references and operations."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, Optional, Sequence

from .values import DataType, InvalidValue, SqlValue, datatype_of, format_value, values_equal

Label = Optional[tuple[Optional[str], str]]
Row = Sequence[SqlValue]
Transformer = Callable[["Expression"], "Expression"]
Visitor = Callable[["Expression"], bool]

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1
_NUMERIC = (DataType.INTEGER, DataType.FLOAT)


def _checked(value: int) -> int:
    if not _I64_MIN <= value <= _I64_MAX:
        raise InvalidValue("Integer overflow")
    return value


def _trunc_div(lhs: int, rhs: int) -> int:
    quotient = abs(lhs) // abs(rhs)
    return quotient if (lhs < 0) == (rhs < 0) else -quotient


def _float_div(lhs: float, rhs: float) -> float:
    if rhs == 0:
        if lhs == 0 or math.isnan(lhs):
            return math.nan
        return math.copysign(math.inf, lhs) * math.copysign(1.0, rhs)
    return lhs / rhs


def _float_mod(lhs: float, rhs: float) -> float:
    try:
        return math.fmod(lhs, rhs)
    except ValueError:
        return math.nan


def _is_odd_integer(value: float) -> bool:
    return math.isfinite(value) and value == int(value) and int(value) % 2 == 1


def _powf(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except ValueError:
        if base == 0 and exponent < 0:
            negative = math.copysign(1.0, base) < 0 and _is_odd_integer(exponent)
            return -math.inf if negative else math.inf
        return math.nan
    except OverflowError:
        return -math.inf if base < 0 and _is_odd_integer(exponent) else math.inf


def _null_arith(ltype: Optional[DataType], rtype: Optional[DataType]) -> bool:
    return (ltype is None or ltype in _NUMERIC) and (rtype is None or rtype in _NUMERIC)


def _arith(
    verb: str,
    lhs: SqlValue,
    rhs: SqlValue,
    int_op: Callable[[int, int], SqlValue],
    float_op: Callable[[float, float], float],
) -> SqlValue:
    ltype, rtype = datatype_of(lhs), datatype_of(rhs)
    if ltype is DataType.INTEGER and rtype is DataType.INTEGER:
        return int_op(lhs, rhs)  # type: ignore[arg-type]
    if ltype in _NUMERIC and rtype in _NUMERIC:
        return float_op(float(lhs), float(rhs))  # type: ignore[arg-type]
    if _null_arith(ltype, rtype):
        return None
    raise InvalidValue(f"Can't {verb} {format_value(lhs)} and {format_value(rhs)}")


def _compare(lhs: SqlValue, rhs: SqlValue, op: Callable[[object, object], bool]) -> SqlValue:
    ltype, rtype = datatype_of(lhs), datatype_of(rhs)
    if ltype is not None and ltype == rtype:
        return op(lhs, rhs)
    if ltype in _NUMERIC and rtype in _NUMERIC:
        return op(float(lhs), float(rhs))  # type: ignore[arg-type]
    if ltype is None or rtype is None:
        return None
    raise InvalidValue(f"Can't compare {format_value(lhs)} and {format_value(rhs)}")


class Expression(ABC):
    """An expression node."""

    @abstractmethod
    def evaluate(self, row: Optional[Row] = None) -> SqlValue:
        """Evaluate the expression against an optional row of values."""

    def _children(self) -> tuple["Expression", ...]:
        return ()

    def _rebuild(self, children: tuple["Expression", ...]) -> "Expression":
        return self

    def walk(self, visitor: Visitor) -> bool:
        """Visit every node depth-first, stopping as soon as the visitor returns False."""
        return visitor(self) and all(child.walk(visitor) for child in self._children())

    def contains(self, visitor: Visitor) -> bool:
        """Return True as soon as the visitor returns True for some node."""
        return not self.walk(lambda e: not visitor(e))

    def transform(self, before: Transformer, after: Transformer) -> "Expression":
        """Rebuild the tree, applying ``before`` on the way down and ``after`` on the way up."""
        expr = before(self)
        children = expr._children()
        if children:
            expr = expr._rebuild(tuple(c.transform(before, after) for c in children))
        return after(expr)


@dataclass(frozen=True, eq=False)
class Constant(Expression):
    """A constant value."""

    value: SqlValue

    def evaluate(self, row: Optional[Row] = None) -> SqlValue:
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Constant):
            return NotImplemented
        return values_equal(self.value, other.value)

    def __hash__(self) -> int:
        return hash((datatype_of(self.value), self.value))

    def __str__(self) -> str:
        return format_value(self.value)


@dataclass(frozen=True)
class Field(Expression):
    """A reference to a row field by position, with an optional (table, name) label."""

    index: int
    label: Label = None

    def evaluate(self, row: Optional[Row] = None) -> SqlValue:
        if row is None or not 0 <= self.index < len(row):
            return None
        return row[self.index]

    def __str__(self) -> str:
        if self.label is None:
            return f"#{self.index}"
        table, name = self.label
        return name if table is None else f"{table}.{name}"


@dataclass(frozen=True)
class _Binary(Expression):
    lhs: Expression
    rhs: Expression

    _symbol = ""

    def _children(self) -> tuple[Expression, ...]:
        return (self.lhs, self.rhs)

    def _rebuild(self, children: tuple[Expression, ...]) -> Expression:
        return replace(self, lhs=children[0], rhs=children[1])

    def evaluate(self, row: Optional[Row] = None) -> SqlValue:
        return self._apply(self.lhs.evaluate(row), self.rhs.evaluate(row))

    @abstractmethod
    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue: ...

    def __str__(self) -> str:
        return f"{self.lhs} {self._symbol} {self.rhs}"


@dataclass(frozen=True)
class _Unary(Expression):
    expr: Expression

    def _children(self) -> tuple[Expression, ...]:
        return (self.expr,)

    def _rebuild(self, children: tuple[Expression, ...]) -> Expression:
        return replace(self, expr=children[0])

    def evaluate(self, row: Optional[Row] = None) -> SqlValue:
        return self._apply(self.expr.evaluate(row))

    @abstractmethod
    def _apply(self, value: SqlValue) -> SqlValue: ...


class And(_Binary):
    """Logical AND with three-valued NULL semantics."""

    _symbol = "AND"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        ltype, rtype = datatype_of(lhs), datatype_of(rhs)
        valid = (DataType.BOOLEAN, None)
        if ltype not in valid or rtype not in valid:
            raise InvalidValue(f"Can't and {format_value(lhs)} and {format_value(rhs)}")
        if lhs is False or rhs is False:
            return False
        if lhs is None or rhs is None:
            return None
        return True


class Or(_Binary):
    """Logical OR with three-valued NULL semantics."""

    _symbol = "OR"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        ltype, rtype = datatype_of(lhs), datatype_of(rhs)
        valid = (DataType.BOOLEAN, None)
        if ltype not in valid or rtype not in valid:
            raise InvalidValue(f"Can't or {format_value(lhs)} and {format_value(rhs)}")
        if lhs is True or rhs is True:
            return True
        if lhs is None or rhs is None:
            return None
        return False


class Not(_Unary):
    """Logical negation."""

    def _apply(self, value: SqlValue) -> SqlValue:
        if value is None:
            return None
        if datatype_of(value) is DataType.BOOLEAN:
            return not value
        raise InvalidValue(f"Can't negate {format_value(value)}")

    def __str__(self) -> str:
        return f"NOT {self.expr}"


class Equal(_Binary):
    """Equality comparison."""

    _symbol = "="

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _compare(lhs, rhs, lambda a, b: a == b)


class GreaterThan(_Binary):
    """Greater-than comparison."""

    _symbol = ">"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _compare(lhs, rhs, lambda a, b: a > b)  # type: ignore[operator]


class LessThan(_Binary):
    """Less-than comparison."""

    _symbol = "<"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _compare(lhs, rhs, lambda a, b: a < b)  # type: ignore[operator]


class IsNull(_Unary):
    """Checks whether a value is NULL."""

    def _apply(self, value: SqlValue) -> SqlValue:
        return value is None

    def __str__(self) -> str:
        return f"{self.expr} IS NULL"


class Add(_Binary):
    """Addition."""

    _symbol = "+"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("add", lhs, rhs, lambda a, b: _checked(a + b), lambda a, b: a + b)


class Subtract(_Binary):
    """Subtraction."""

    _symbol = "-"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("subtract", lhs, rhs, lambda a, b: _checked(a - b), lambda a, b: a - b)


class Multiply(_Binary):
    """Multiplication."""

    _symbol = "*"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("multiply", lhs, rhs, lambda a, b: _checked(a * b), lambda a, b: a * b)


class Divide(_Binary):
    """Division; integer division truncates toward zero."""

    _symbol = "/"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("divide", lhs, rhs, _int_divide, _float_div)


def _int_divide(lhs: int, rhs: int) -> int:
    if rhs == 0:
        raise InvalidValue("Can't divide by zero")
    return _checked(_trunc_div(lhs, rhs))


class Modulo(_Binary):
    """Remainder, taking the sign of the dividend."""

    _symbol = "%"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("take modulo of", lhs, rhs, _int_modulo, _float_mod)


def _int_modulo(lhs: int, rhs: int) -> int:
    if rhs == 0:
        raise InvalidValue("Can't divide by zero")
    return lhs - rhs * _trunc_div(lhs, rhs)


class Exponentiate(_Binary):
    """Exponentiation."""

    _symbol = "^"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        return _arith("exponentiate", lhs, rhs, _int_pow, _powf)


def _int_pow(base: int, exponent: int) -> SqlValue:
    if exponent < 0:
        return _powf(float(base), float(exponent))
    exponent &= 0xFFFFFFFF
    if abs(base) >= 2 and exponent >= 64:
        raise InvalidValue("Integer overflow")
    return _checked(base**exponent)


class Assert(_Unary):
    """Unary plus: passes numbers through unchanged."""

    def _apply(self, value: SqlValue) -> SqlValue:
        if value is None or datatype_of(value) in _NUMERIC:
            return value
        raise InvalidValue(f"Can't take the positive of {format_value(value)}")

    def __str__(self) -> str:
        return str(self.expr)


class Negate(_Unary):
    """Unary minus."""

    def _apply(self, value: SqlValue) -> SqlValue:
        datatype = datatype_of(value)
        if datatype is DataType.INTEGER:
            return _checked(-value)  # type: ignore[operator]
        if datatype is DataType.FLOAT:
            return -value  # type: ignore[operator]
        if value is None:
            return None
        raise InvalidValue(f"Can't negate {format_value(value)}")

    def __str__(self) -> str:
        return f"-{self.expr}"


class Factorial(_Unary):
    """Factorial of a non-negative integer."""

    def _apply(self, value: SqlValue) -> SqlValue:
        if datatype_of(value) is DataType.INTEGER:
            if value < 0:  # type: ignore[operator]
                raise InvalidValue("Can't take factorial of negative number")
            if value > 20:  # type: ignore[operator]
                raise InvalidValue("Integer overflow")
            return math.factorial(value)  # type: ignore[arg-type]
        if value is None:
            return None
        raise InvalidValue(f"Can't take factorial of {format_value(value)}")

    def __str__(self) -> str:
        return f"!{self.expr}"


class Like(_Binary):
    """SQL LIKE pattern match, where % matches any run and _ any single character."""

    _symbol = "LIKE"

    def _apply(self, lhs: SqlValue, rhs: SqlValue) -> SqlValue:
        ltype, rtype = datatype_of(lhs), datatype_of(rhs)
        if ltype is DataType.STRING and rtype is DataType.STRING:
            pattern = (
                re.escape(rhs)  # type: ignore[arg-type]
                .replace("%", ".*")
                .replace(".*.*", "%")
                .replace("_", ".")
                .replace("..", "_")
            )
            try:
                return re.fullmatch(pattern, lhs, re.DOTALL if False else 0) is not None  # type: ignore[arg-type]
            except re.error as exc:
                raise InvalidValue(str(exc)) from exc
        if (ltype is DataType.STRING and rhs is None) or (lhs is None and rtype is DataType.STRING):
            return None
        raise InvalidValue(f"Can't LIKE {format_value(lhs)} and {format_value(rhs)}")