"""Query plan nodes: a tree of operations that produces or changes rows."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from .expression import Expression, Label
from .schema import Table
from .values import SqlValue, format_value

NodeTransformer = Callable[["Node"], "Node"]
ExpressionTransformer = Callable[[Expression], Expression]

_LOOKUP_LIST_LIMIT = 10


class Aggregate(Enum):
    """An aggregate function."""

    AVERAGE = "average"
    COUNT = "count"
    MAX = "maximum"
    MIN = "minimum"
    SUM = "sum"

    def __str__(self) -> str:
        return self.value


class Direction(Enum):
    """A sort order direction."""

    ASCENDING = "asc"
    DESCENDING = "desc"

    def __str__(self) -> str:
        return self.value


def _freeze(node: object, name: str, value: object) -> None:
    object.__setattr__(node, name, value)


class Node:
    """A plan node."""

    def _children(self) -> tuple["Node", ...]:
        return ()

    def _with_children(self, children: tuple["Node", ...]) -> "Node":
        return self

    def _map_expressions(self, apply: ExpressionTransformer) -> "Node":
        return self

    def _describe(self) -> str:
        raise NotImplementedError

    def transform(self, before: NodeTransformer, after: NodeTransformer) -> "Node":
        """Rebuild the tree, applying ``before`` on the way down and ``after`` on the way up."""
        node = before(self)
        children = node._children()
        if children:
            node = node._with_children(tuple(c.transform(before, after) for c in children))
        return after(node)

    def transform_expressions(
        self, before: ExpressionTransformer, after: ExpressionTransformer
    ) -> "Node":
        """Transform every expression held directly by this node (not by its children)."""
        return self._map_expressions(lambda e: e.transform(before, after))

    def format(self, indent: str, root: bool, last: bool) -> str:
        """Render the node and its children as a tree, prefixing lines with ``indent``."""
        text = indent
        if not last:
            text += "├─ "
            indent += "│  "
        elif not root:
            text += "└─ "
            indent += "   "
        text += self._describe() + "\n"
        children = self._children()
        for position, child in enumerate(children):
            text += child.format(indent, False, position == len(children) - 1)
        if root:
            text = text.rstrip()
        return text

    def __str__(self) -> str:
        return self.format("", True, True)


class _SingleSource:
    source: Node

    def _children(self) -> tuple[Node, ...]:
        return (self.source,)

    def _with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, source=children[0])  # type: ignore[type-var]


class _TwoSources:
    left: Node
    right: Node

    def _children(self) -> tuple[Node, ...]:
        return (self.left, self.right)

    def _with_children(self, children: tuple[Node, ...]) -> Node:
        return replace(self, left=children[0], right=children[1])  # type: ignore[type-var]


def _format_lookup(values: tuple[SqlValue, ...], noun: str) -> str:
    if values and len(values) < _LOOKUP_LIST_LIMIT:
        return " (" + ", ".join(format_value(v) for v in values) + ")"
    return f" ({len(values)} {noun})"


def _format_join_field(field: tuple[int, Label], side: str) -> str:
    index, label = field
    if label is None:
        return f"{side} #{index}"
    table, name = label
    return name if table is None else f"{table}.{name}"


@dataclass(frozen=True)
class Aggregation(_SingleSource, Node):
    """Computes aggregates over the source rows, grouped by any trailing columns."""

    source: Node
    aggregates: tuple[Aggregate, ...]

    def __post_init__(self) -> None:
        _freeze(self, "aggregates", tuple(self.aggregates))

    def _describe(self) -> str:
        return "Aggregation: " + ", ".join(str(a) for a in self.aggregates)


@dataclass(frozen=True)
class CreateTable(Node):
    """Creates a table."""

    schema: Table

    def _describe(self) -> str:
        return f"CreateTable: {self.schema.name}"


@dataclass(frozen=True)
class Delete(_SingleSource, Node):
    """Deletes the source rows from a table."""

    table: str
    source: Node

    def _describe(self) -> str:
        return f"Delete: {self.table}"


@dataclass(frozen=True)
class DropTable(Node):
    """Drops a table."""

    table: str

    def _describe(self) -> str:
        return f"DropTable: {self.table}"


@dataclass(frozen=True)
class Filter(_SingleSource, Node):
    """Keeps the source rows for which the predicate holds."""

    source: Node
    predicate: Expression

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        return replace(self, predicate=apply(self.predicate))

    def _describe(self) -> str:
        return f"Filter: {self.predicate}"


@dataclass(frozen=True)
class HashJoin(_TwoSources, Node):
    """Joins two sources on equal field values using a hash table."""

    left: Node
    left_field: tuple[int, Label]
    right: Node
    right_field: tuple[int, Label]
    outer: bool = False

    def __post_init__(self) -> None:
        _freeze(self, "left_field", tuple(self.left_field))
        _freeze(self, "right_field", tuple(self.right_field))

    def _describe(self) -> str:
        kind = "outer" if self.outer else "inner"
        left = _format_join_field(self.left_field, "left")
        right = _format_join_field(self.right_field, "right")
        return f"HashJoin: {kind} on {left} = {right}"


@dataclass(frozen=True)
class IndexLookup(Node):
    """Looks up rows by the values of an indexed column."""

    table: str
    alias: Optional[str]
    column: str
    values: tuple[SqlValue, ...]

    def __post_init__(self) -> None:
        _freeze(self, "values", tuple(self.values))

    def _describe(self) -> str:
        text = f"IndexLookup: {self.table}"
        if self.alias is not None:
            text += f" as {self.alias}"
        text += f" column {self.column}"
        return text + _format_lookup(self.values, "values")


@dataclass(frozen=True)
class Insert(Node):
    """Inserts rows of evaluated expressions into a table."""

    table: str
    columns: tuple[str, ...]
    expressions: tuple[tuple[Expression, ...], ...]

    def __post_init__(self) -> None:
        _freeze(self, "columns", tuple(self.columns))
        _freeze(self, "expressions", tuple(tuple(row) for row in self.expressions))

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        return replace(
            self, expressions=tuple(tuple(apply(e) for e in row) for row in self.expressions)
        )

    def _describe(self) -> str:
        return f"Insert: {self.table} ({len(self.expressions)} rows)"


@dataclass(frozen=True)
class KeyLookup(Node):
    """Looks up rows by primary key."""

    table: str
    alias: Optional[str]
    keys: tuple[SqlValue, ...]

    def __post_init__(self) -> None:
        _freeze(self, "keys", tuple(self.keys))

    def _describe(self) -> str:
        text = f"KeyLookup: {self.table}"
        if self.alias is not None:
            text += f" as {self.alias}"
        return text + _format_lookup(self.keys, "keys")


@dataclass(frozen=True)
class Limit(_SingleSource, Node):
    """Passes through at most ``limit`` source rows."""

    source: Node
    limit: int

    def _describe(self) -> str:
        return f"Limit: {self.limit}"


@dataclass(frozen=True)
class NestedLoopJoin(_TwoSources, Node):
    """Joins two sources by testing every pair of rows against an optional predicate."""

    left: Node
    left_size: int
    right: Node
    predicate: Optional[Expression] = None
    outer: bool = False

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        if self.predicate is None:
            return self
        return replace(self, predicate=apply(self.predicate))

    def _describe(self) -> str:
        text = "NestedLoopJoin: " + ("outer" if self.outer else "inner")
        if self.predicate is not None:
            text += f" on {self.predicate}"
        return text


@dataclass(frozen=True)
class Nothing(Node):
    """Produces a single empty row."""

    def _describe(self) -> str:
        return "Nothing"


@dataclass(frozen=True)
class Offset(_SingleSource, Node):
    """Skips the first ``offset`` source rows."""

    source: Node
    offset: int

    def _describe(self) -> str:
        return f"Offset: {self.offset}"


@dataclass(frozen=True)
class Order(_SingleSource, Node):
    """Sorts the source rows by the given expressions."""

    source: Node
    orders: tuple[tuple[Expression, Direction], ...]

    def __post_init__(self) -> None:
        _freeze(self, "orders", tuple((e, d) for e, d in self.orders))

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        return replace(self, orders=tuple((apply(e), d) for e, d in self.orders))

    def _describe(self) -> str:
        return "Order: " + ", ".join(f"{e} {d}" for e, d in self.orders)


@dataclass(frozen=True)
class Projection(_SingleSource, Node):
    """Evaluates expressions over each source row, with optional output labels."""

    source: Node
    expressions: tuple[tuple[Expression, Optional[str]], ...]

    def __post_init__(self) -> None:
        _freeze(self, "expressions", tuple((e, label) for e, label in self.expressions))

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        return replace(
            self, expressions=tuple((apply(e), label) for e, label in self.expressions)
        )

    def _describe(self) -> str:
        return "Projection: " + ", ".join(str(e) for e, _ in self.expressions)


@dataclass(frozen=True)
class Scan(Node):
    """Scans a table, optionally filtering its rows."""

    table: str
    alias: Optional[str] = None
    filter: Optional[Expression] = None

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        if self.filter is None:
            return self
        return replace(self, filter=apply(self.filter))

    def _describe(self) -> str:
        text = f"Scan: {self.table}"
        if self.alias is not None:
            text += f" as {self.alias}"
        if self.filter is not None:
            text += f" ({self.filter})"
        return text


@dataclass(frozen=True)
class Update(_SingleSource, Node):
    """Updates columns of the source rows, given as (index, label, expression)."""

    table: str
    source: Node
    expressions: tuple[tuple[int, Optional[str], Expression], ...]

    def __post_init__(self) -> None:
        _freeze(self, "expressions", tuple((i, label, e) for i, label, e in self.expressions))

    def _map_expressions(self, apply: ExpressionTransformer) -> Node:
        return replace(
            self, expressions=tuple((i, label, apply(e)) for i, label, e in self.expressions)
        )

    def _describe(self) -> str:
        sets = ",".join(
            f"{label if label is not None else f'#{i}'}={e}" for i, label, e in self.expressions
        )
        return f"Update: {self.table} ({sets})"