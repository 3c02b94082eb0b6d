import pytest

from sqlplan.expression import Add, Constant, Equal, Field, Not
from sqlplan.plan import (
    Aggregate,
    Aggregation,
    CreateTable,
    Delete,
    Direction,
    DropTable,
    Filter,
    HashJoin,
    IndexLookup,
    Insert,
    KeyLookup,
    Limit,
    NestedLoopJoin,
    Nothing,
    Offset,
    Order,
    Projection,
    Scan,
    Update,
)
from sqlplan.schema import Column, Table
from sqlplan.values import DataType


def _id_eq(value):
    return Equal(Field(0, (None, "id")), Constant(value))


def _fold(expr):
    if isinstance(expr, Add) and isinstance(expr.lhs, Constant) and isinstance(expr.rhs, Constant):
        return Constant(expr.evaluate())
    return expr


def _keep(value):
    return value


def test_enum_display():
    aggregation = Aggregation(Nothing(), [Aggregate.AVERAGE, Aggregate.MAX])
    assert str(aggregation).split("\n")[0] == "Aggregation: average, maximum"
    order = Order(Nothing(), [(Constant(1), Direction.DESCENDING)])
    assert str(order).split("\n")[0] == "Order: 1 desc"


def test_nothing_display():
    assert str(Nothing()) == "Nothing"


def test_root_has_no_trailing_whitespace_but_child_lines_do():
    node = Limit(Scan("movies"), 10)
    assert not str(node).endswith("\n")
    assert node.format("", False, True).endswith("\n")


def test_single_source_tree_uses_last_branch():
    node = Limit(Filter(Scan("movies"), _id_eq(1)), 10)
    lines = str(node).split("\n")
    assert len(lines) == 3
    assert lines[0] == f"Limit: {node.limit}"
    assert lines[1].startswith("└─ Filter: ")
    assert lines[2].startswith("   └─ Scan: movies")


def test_join_tree_uses_middle_branch_for_left():
    node = NestedLoopJoin(Scan("a"), 1, Scan("b"))
    lines = str(node).split("\n")
    assert lines[1].startswith("├─ ")
    assert lines[2].startswith("└─ ")
    assert lines[1].endswith("Scan: a")
    assert lines[2].endswith("Scan: b")


def test_nested_join_indents_under_middle_branch():
    inner = NestedLoopJoin(Scan("a"), 1, Scan("b"))
    node = NestedLoopJoin(inner, 2, Scan("c"))
    lines = str(node).split("\n")
    assert len(lines) == 5
    assert lines[2].startswith("│  ├─ ")
    assert lines[3].startswith("│  └─ ")


def test_scan_with_alias_and_filter():
    node = Scan("movies", "m", _id_eq(1))
    text = str(node)
    assert text.startswith("Scan: movies as m (")
    assert str(_id_eq(1)) in text


def test_key_lookup_lists_few_keys_and_counts_many():
    few = KeyLookup("movies", None, [1, 2])
    assert str(few).endswith("(1, 2)")
    many = KeyLookup("movies", None, list(range(10)))
    assert str(many).endswith(f"({len(many.keys)} keys)")
    empty = KeyLookup("movies", None, [])
    assert str(empty).endswith("(0 keys)")


def test_index_lookup_display():
    node = IndexLookup("movies", "m", "genre", ["x", None])
    assert str(node) == "IndexLookup: movies as m column genre (x, NULL)"


def test_hash_join_field_labels():
    node = HashJoin(Scan("a"), (0, ("a", "id")), Scan("b"), (2, None), outer=True)
    first = str(node).split("\n")[0]
    assert "outer" in first
    assert "a.id = right #2" in first


def test_update_label_fallback_uses_index():
    node = Update("t", Scan("t"), [(2, None, Constant(1)), (0, "name", Constant("x"))])
    first = str(node).split("\n")[0]
    assert "#2=1" in first
    assert "name=x" in first


def test_insert_and_ddl_display():
    insert = Insert("t", [], [[Constant(1)], [Constant(2)], [Constant(3)]])
    assert str(insert) == f"Insert: t ({len(insert.expressions)} rows)"
    schema = Table("movies", [Column("id", DataType.INTEGER, primary_key=True, unique=True)])
    assert str(CreateTable(schema)) == "CreateTable: movies"
    assert str(DropTable("movies")) == "DropTable: movies"


def test_sequences_are_normalized():
    assert Projection(Nothing(), [(Constant(1), None)]) == Projection(
        Nothing(), ((Constant(1), None),)
    )
    assert Aggregation(Nothing(), [Aggregate.SUM]).aggregates == (Aggregate.SUM,)


def test_transform_order_of_visits():
    node = Limit(Filter(Scan("movies"), _id_eq(1)), 10)
    down, up = [], []

    def before(n):
        down.append(type(n).__name__)
        return n

    def after(n):
        up.append(type(n).__name__)
        return n

    result = node.transform(before, after)
    assert result == node
    assert down == ["Limit", "Filter", "Scan"]
    assert up == list(reversed(down))


def test_transform_visits_both_join_sides():
    node = HashJoin(Scan("a"), (0, None), Scan("b"), (0, None))
    result = node.transform(
        _keep, lambda n: Scan(n.table, "x") if isinstance(n, Scan) else n
    )
    assert result.left == Scan("a", "x")
    assert result.right == Scan("b", "x")
    assert result.left_field == node.left_field


def test_transform_after_can_replace_node():
    node = Offset(Filter(Scan("t"), Constant(True)), 3)
    result = node.transform(
        _keep, lambda n: n.source if isinstance(n, Filter) else n
    )
    assert result == Offset(Scan("t"), 3)


def test_transform_expressions_filter():
    node = Filter(Scan("t"), Add(Constant(1), Constant(2)))
    result = node.transform_expressions(_keep, _fold)
    assert result.predicate == Constant(3)
    assert result.source == node.source


def test_transform_expressions_does_not_descend_into_children():
    inner = Filter(Scan("t"), Add(Constant(1), Constant(2)))
    node = Filter(inner, Add(Constant(1), Constant(1)))
    result = node.transform_expressions(_keep, _fold)
    assert result.predicate == Constant(2)
    assert result.source == inner


@pytest.mark.parametrize(
    "node",
    [
        Scan("t"),
        NestedLoopJoin(Scan("a"), 1, Scan("b")),
        Limit(Scan("t"), 1),
        Nothing(),
        Aggregation(Scan("t"), [Aggregate.COUNT]),
    ],
)
def test_transform_expressions_leaves_expressionless_nodes(node):
    def fail(expr):
        raise AssertionError("should not be called")

    assert node.transform_expressions(fail, fail) == node


def test_transform_expressions_on_collections():
    add = Add(Constant(1), Constant(2))
    order = Order(Scan("t"), [(add, Direction.ASCENDING)])
    assert order.transform_expressions(_keep, _fold).orders == ((Constant(3), Direction.ASCENDING),)
    projection = Projection(Scan("t"), [(add, "x")])
    assert projection.transform_expressions(_keep, _fold).expressions == ((Constant(3), "x"),)
    update = Update("t", Scan("t"), [(1, "a", add)])
    assert update.transform_expressions(_keep, _fold).expressions == ((1, "a", Constant(3)),)
    insert = Insert("t", ["a"], [[add, Constant(5)]])
    assert insert.transform_expressions(_keep, _fold).expressions == ((Constant(3), Constant(5)),)


def test_transform_expressions_scan_and_join_predicates():
    scan = Scan("t", None, Not(Add(Constant(1), Constant(1))))
    assert scan.transform_expressions(_keep, _fold).filter == Not(Constant(2))
    join = NestedLoopJoin(Scan("a"), 1, Scan("b"), Add(Constant(2), Constant(2)))
    assert join.transform_expressions(_keep, _fold).predicate == Constant(4)


def test_delete_display_with_child():
    node = Delete("t", Scan("t"))
    lines = str(node).split("\n")
    assert lines[0] == "Delete: t"
    assert lines[1] == "└─ Scan: t"