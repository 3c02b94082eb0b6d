"""Plan optimizers, which rewrite a plan tree into an equivalent but cheaper one."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .expression import And, Constant, Equal, Expression, Field, Or
from .normal import as_lookup, from_cnf_vec, from_lookup, into_cnf_vec
from .plan import Filter, HashJoin, IndexLookup, KeyLookup, NestedLoopJoin, Node, Scan
from .schema import Catalog
from .values import InternalError, SqlValue, values_equal


def _keep(item):
    return item


def _is_constant(expr: Expression, value: SqlValue) -> bool:
    return isinstance(expr, Constant) and values_equal(expr.value, value)


def _references(expr: Expression, accept: Callable[[int], bool]) -> bool:
    return expr.contains(lambda e: isinstance(e, Field) and accept(e.index))


class Optimizer(ABC):
    """A plan optimizer."""

    @abstractmethod
    def optimize(self, node: Node) -> Node:
        """Return an optimized version of the plan rooted at ``node``."""


class ConstantFolder(Optimizer):
    """Replaces expressions without field references by their evaluated value."""

    @staticmethod
    def _fold(expr: Expression) -> Expression:
        if expr.contains(lambda e: isinstance(e, Field)):
            return expr
        return Constant(expr.evaluate(None))

    def optimize(self, node: Node) -> Node:
        return node.transform(_keep, lambda n: n.transform_expressions(self._fold, _keep))


class FilterPushdown(Optimizer):
    """Moves filter predicates into, or closer to, the nodes that produce the rows."""

    def optimize(self, node: Node) -> Node:
        return node.transform(self._push, _keep)

    def _push(self, node: Node) -> Node:
        if isinstance(node, Filter):
            # The filter node is kept with a noop predicate so that transform() still
            # descends into its source; NoopCleaner removes it later.
            source, remainder = self._pushdown(node.predicate, node.source)
            return Filter(source, remainder if remainder is not None else Constant(True))
        if isinstance(node, NestedLoopJoin) and node.predicate is not None:
            left, right, predicate = self._pushdown_join(
                node.predicate, node.left, node.right, node.left_size
            )
            return NestedLoopJoin(left, node.left_size, right, predicate, node.outer)
        return node

    @staticmethod
    def _pushdown(expr: Expression, target: Node) -> tuple[Node, Optional[Expression]]:
        """Push an expression into a target, returning the new target and any remainder."""
        if isinstance(target, Scan):
            combined = expr if target.filter is None else And(expr, target.filter)
            return Scan(target.table, target.alias, combined), None
        if isinstance(target, NestedLoopJoin):
            combined = expr if target.predicate is None else And(expr, target.predicate)
            return (
                NestedLoopJoin(
                    target.left, target.left_size, target.right, combined, target.outer
                ),
                None,
            )
        if isinstance(target, Filter):
            return Filter(target.source, And(target.predicate, expr)), None
        return target, expr

    def _pushdown_join(
        self, predicate: Expression, left: Node, right: Node, boundary: int
    ) -> tuple[Node, Node, Optional[Expression]]:
        """Split a join predicate and push the single-source parts into either side."""
        push_left: list[Expression] = []
        push_right: list[Expression] = []
        cnf: list[Expression] = []
        for expr in into_cnf_vec(predicate):
            if not _references(expr, lambda i: i >= boundary):
                push_left.append(expr)
            elif not _references(expr, lambda i: i < boundary):
                push_right.append(expr)
            else:
                cnf.append(expr)

        # Equijoins with a constant lookup on one side get the lookup copied to the
        # other side, so that both sides can use index lookups.
        for expr in cnf:
            if not (
                isinstance(expr, Equal)
                and isinstance(expr.lhs, Field)
                and isinstance(expr.rhs, Field)
            ):
                continue
            lfield, rfield = expr.lhs, expr.rhs
            if lfield.index > rfield.index:
                lfield, rfield = rfield, lfield
            lvals = next(
                (v for v in (as_lookup(e, lfield.index) for e in push_left) if v is not None),
                None,
            )
            if lvals is not None:
                push_right.append(from_lookup(rfield.index, rfield.label, lvals))
                continue
            rvals = next(
                (v for v in (as_lookup(e, rfield.index) for e in push_right) if v is not None),
                None,
            )
            if rvals is not None:
                push_left.append(from_lookup(lfield.index, lfield.label, rvals))

        left_expr = from_cnf_vec(push_left)
        if left_expr is not None:
            left, remainder = self._pushdown(left_expr, left)
            if remainder is not None:
                cnf.append(remainder)

        right_expr = from_cnf_vec(push_right)
        if right_expr is not None:
            shifted = right_expr.transform(
                lambda e: Field(e.index - boundary, e.label) if isinstance(e, Field) else e,
                _keep,
            )
            right, remainder = self._pushdown(shifted, right)
            if remainder is not None:
                cnf.append(remainder)

        return left, right, from_cnf_vec(cnf)


class IndexLookupOptimizer(Optimizer):
    """Converts filtered table scans into primary key or index lookups."""

    def __init__(self, catalog: Catalog) -> None:
        self.catalog = catalog

    @staticmethod
    def _wrap(node: Node, cnf: list[Expression]) -> Node:
        predicate = from_cnf_vec(cnf)
        return node if predicate is None else Filter(node, predicate)

    def _lookup(self, node: Node) -> Node:
        if not isinstance(node, Scan) or node.filter is None:
            return node
        columns = self.catalog.must_read_table(node.table).columns
        pk = next((i for i, c in enumerate(columns) if c.primary_key), None)
        if pk is None:
            raise InternalError(f"Primary key not found in table {node.table}")

        cnf = into_cnf_vec(node.filter)
        for position, expr in enumerate(cnf):
            rest = cnf[:position] + cnf[position + 1 :]
            keys = as_lookup(expr, pk)
            if keys is not None:
                return self._wrap(KeyLookup(node.table, node.alias, keys), rest)
            for index, column in enumerate(columns):
                if not column.index:
                    continue
                values = as_lookup(expr, index)
                if values is not None:
                    return self._wrap(
                        IndexLookup(node.table, node.alias, column.name, values), rest
                    )
        return node

    def optimize(self, node: Node) -> Node:
        return node.transform(_keep, self._lookup)


class NoopCleaner(Optimizer):
    """Simplifies constant boolean logic and removes filters that always pass."""

    @staticmethod
    def _clean(expr: Expression) -> Expression:
        if isinstance(expr, And):
            lhs, rhs = expr.lhs, expr.rhs
            if any(_is_constant(e, v) for e in (lhs, rhs) for v in (False, None)):
                return Constant(False)
            if _is_constant(lhs, True):
                return rhs
            if _is_constant(rhs, True):
                return lhs
            return expr
        if isinstance(expr, Or):
            lhs, rhs = expr.lhs, expr.rhs
            if _is_constant(lhs, False) or _is_constant(lhs, None):
                return rhs
            if _is_constant(rhs, False) or _is_constant(rhs, None):
                return lhs
            if _is_constant(lhs, True) or _is_constant(rhs, True):
                return Constant(True)
        return expr

    @staticmethod
    def _remove(node: Node) -> Node:
        if isinstance(node, Filter) and _is_constant(node.predicate, True):
            return node.source
        return node

    def optimize(self, node: Node) -> Node:
        return node.transform(lambda n: n.transform_expressions(_keep, self._clean), self._remove)


class JoinTypeOptimizer(Optimizer):
    """Replaces nested-loop equijoins on two fields with hash joins."""

    @staticmethod
    def _choose(node: Node) -> Node:
        if not isinstance(node, NestedLoopJoin):
            return node
        predicate = node.predicate
        if not (
            isinstance(predicate, Equal)
            and isinstance(predicate.lhs, Field)
            and isinstance(predicate.rhs, Field)
        ):
            return node
        a, b = predicate.lhs, predicate.rhs
        if a.index < node.left_size:
            left_field = (a.index, a.label)
            right_field = (b.index - node.left_size, b.label)
        else:
            left_field = (b.index, b.label)
            right_field = (a.index - node.left_size, a.label)
        return HashJoin(node.left, left_field, node.right, right_field, node.outer)

    def optimize(self, node: Node) -> Node:
        return node.transform(self._choose, _keep)


def optimize(node: Node, catalog: Catalog) -> Node:
    """Run all optimizers over a plan, in order."""
    optimizers: list[Optimizer] = [
        ConstantFolder(),
        FilterPushdown(),
        IndexLookupOptimizer(catalog),
        NoopCleaner(),
        JoinTypeOptimizer(),
    ]
    for optimizer in optimizers:
        node = optimizer.optimize(node)
    return node