"""Normal forms of boolean expressions, and conversions to and from field lookups."""

from __future__ import annotations

from functools import reduce
from typing import Optional, Sequence

from .expression import And, Constant, Equal, Expression, Field, IsNull, Label, Not, Or
from .values import SqlValue


def _push_not(expr: Expression) -> Expression:
    if isinstance(expr, Not):
        inner = expr.expr
        if isinstance(inner, And):
            return Or(Not(inner.lhs), Not(inner.rhs))
        if isinstance(inner, Or):
            return And(Not(inner.lhs), Not(inner.rhs))
        if isinstance(inner, Not):
            return inner.expr
    return expr


def _keep(expr: Expression) -> Expression:
    return expr


def into_nnf(expr: Expression) -> Expression:
    """Convert to negation normal form, pushing NOT below AND and OR by De Morgan's laws."""
    return expr.transform(_push_not, _keep)


def _distribute_or(expr: Expression) -> Expression:
    if isinstance(expr, Or):
        lhs, rhs = expr.lhs, expr.rhs
        if isinstance(lhs, And):
            return And(Or(lhs.lhs, rhs), Or(lhs.rhs, rhs))
        if isinstance(rhs, And):
            return And(Or(lhs, rhs.lhs), Or(lhs, rhs.rhs))
    return expr


def _distribute_and(expr: Expression) -> Expression:
    if isinstance(expr, And):
        lhs, rhs = expr.lhs, expr.rhs
        if isinstance(lhs, Or):
            return Or(And(lhs.lhs, rhs), And(lhs.rhs, rhs))
        if isinstance(rhs, Or):
            return Or(And(lhs, rhs.lhs), And(lhs, rhs.rhs))
    return expr


def into_cnf(expr: Expression) -> Expression:
    """Convert to conjunctive normal form, an AND of ORs."""
    return into_nnf(expr).transform(_distribute_or, _keep)


def into_dnf(expr: Expression) -> Expression:
    """Convert to disjunctive normal form, an OR of ANDs."""
    return into_nnf(expr).transform(_distribute_and, _keep)


def _flatten(expr: Expression, kind: type) -> list[Expression]:
    terms: list[Expression] = []
    stack = [expr]
    while stack:
        current = stack.pop()
        if isinstance(current, kind):
            stack.append(current.rhs)  # type: ignore[attr-defined]
            stack.append(current.lhs)  # type: ignore[attr-defined]
        else:
            terms.append(current)
    return terms


def into_cnf_vec(expr: Expression) -> list[Expression]:
    """Convert to conjunctive normal form and return the conjuncts in order."""
    return _flatten(into_cnf(expr), And)


def into_dnf_vec(expr: Expression) -> list[Expression]:
    """Convert to disjunctive normal form and return the disjuncts in order."""
    return _flatten(into_dnf(expr), Or)


def from_cnf_vec(cnf: Sequence[Expression]) -> Optional[Expression]:
    """Join conjuncts with AND, or return None if there are none."""
    if not cnf:
        return None
    return reduce(And, cnf)


def from_dnf_vec(dnf: Sequence[Expression]) -> Optional[Expression]:
    """Join disjuncts with OR, or return None if there are none."""
    if not dnf:
        return None
    return reduce(Or, dnf)


def as_lookup(expr: Expression, field: int) -> Optional[list[SqlValue]]:
    """Return the values looked up if the expression is a lookup on the given field.

    Only combinations of ``=`` against a constant, ``IS NULL`` and ``OR`` qualify.
    """
    if isinstance(expr, Equal):
        lhs, rhs = expr.lhs, expr.rhs
        if isinstance(lhs, Field) and isinstance(rhs, Constant) and lhs.index == field:
            return [rhs.value]
        if isinstance(lhs, Constant) and isinstance(rhs, Field) and rhs.index == field:
            return [lhs.value]
        return None
    if isinstance(expr, IsNull):
        inner = expr.expr
        if isinstance(inner, Field) and inner.index == field:
            return [None]
        return None
    if isinstance(expr, Or):
        left = as_lookup(expr.lhs, field)
        right = as_lookup(expr.rhs, field)
        if left is None or right is None:
            return None
        return left + right
    return None


def from_lookup(field: int, label: Label, values: Sequence[SqlValue]) -> Expression:
    """Build an expression that looks up the given values on a field."""
    if not values:
        return Equal(Field(field, label), Constant(None))
    result = from_dnf_vec([Equal(Field(field, label), Constant(v)) for v in values])
    assert result is not None
    return result