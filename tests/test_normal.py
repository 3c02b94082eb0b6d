import itertools

import pytest

from sqlplan.expression import (
    And,
    Constant,
    Equal,
    Field,
    GreaterThan,
    IsNull,
    Not,
    Or,
)
from sqlplan.normal import (
    as_lookup,
    from_cnf_vec,
    from_dnf_vec,
    from_lookup,
    into_cnf,
    into_cnf_vec,
    into_dnf,
    into_dnf_vec,
    into_nnf,
)

A, B, C, D = Field(0), Field(1), Field(2), Field(3)
TRUTH = (True, False, None)

SAMPLES = [
    Not(And(A, B)),
    Not(Or(A, Not(B))),
    Or(And(A, B), C),
    And(Or(A, B), Or(C, D)),
    Not(Or(And(A, Not(B)), And(C, D))),
    Or(Or(And(A, B), C), D),
    Not(Not(Not(A))),
]


def _rows():
    return itertools.product(TRUTH, repeat=4)


def _contains(expr, kind):
    return expr.contains(lambda e: isinstance(e, kind))


@pytest.mark.parametrize("expr", SAMPLES)
@pytest.mark.parametrize("convert", [into_nnf, into_cnf, into_dnf])
def test_conversions_preserve_meaning(expr, convert):
    converted = convert(expr)
    for row in _rows():
        assert converted.evaluate(list(row)) == expr.evaluate(list(row))


@pytest.mark.parametrize("expr", SAMPLES)
def test_vec_round_trips_preserve_meaning(expr):
    cnf = from_cnf_vec(into_cnf_vec(expr))
    dnf = from_dnf_vec(into_dnf_vec(expr))
    for row in _rows():
        assert cnf.evaluate(list(row)) == expr.evaluate(list(row))
        assert dnf.evaluate(list(row)) == expr.evaluate(list(row))


@pytest.mark.parametrize("expr", SAMPLES)
def test_nnf_has_no_not_above_logic(expr):
    nnf = into_nnf(expr)
    assert not nnf.contains(
        lambda e: isinstance(e, Not) and isinstance(e.expr, (And, Or, Not))
    )


def test_nnf_de_morgan():
    assert into_nnf(Not(And(A, B))) == Or(Not(A), Not(B))
    assert into_nnf(Not(Or(A, B))) == And(Not(A), Not(B))
    assert into_nnf(Not(Not(A))) == A


def test_nnf_leaves_other_negations():
    expr = Not(Equal(A, Constant(1)))
    assert into_nnf(expr) == expr


def test_cnf_distributes_or_over_and():
    assert into_cnf(Or(And(A, B), C)) == And(Or(A, C), Or(B, C))
    assert into_cnf(Or(A, And(B, C))) == And(Or(A, B), Or(A, C))


def test_dnf_distributes_and_over_or():
    assert into_dnf(And(Or(A, B), C)) == Or(And(A, C), And(B, C))
    assert into_dnf(And(A, Or(B, C))) == Or(And(A, B), And(A, C))


def test_cnf_vec_order_and_contents():
    terms = into_cnf_vec(And(And(A, B), Or(C, D)))
    assert terms == [A, B, Or(C, D)]
    assert not any(_contains(t, And) for t in terms)


def test_dnf_vec_order_and_contents():
    terms = into_dnf_vec(Or(A, Or(B, And(C, D))))
    assert terms == [A, B, And(C, D)]
    assert not any(_contains(t, Or) for t in terms)


def test_vec_of_single_term():
    assert into_cnf_vec(A) == [A]
    assert into_dnf_vec(A) == [A]


def test_from_vec_empty_is_none():
    assert from_cnf_vec([]) is None
    assert from_dnf_vec([]) is None


def test_from_vec_folds_left():
    assert from_cnf_vec([A, B, C]) == And(And(A, B), C)
    assert from_dnf_vec([A, B, C]) == Or(Or(A, B), C)
    assert from_cnf_vec([A]) == A


def test_as_lookup_equal_either_side():
    assert as_lookup(Equal(Field(2), Constant("x")), 2) == ["x"]
    assert as_lookup(Equal(Constant(7), Field(2)), 2) == [7]


def test_as_lookup_is_null_and_or():
    expr = Or(Equal(A, Constant(1)), Or(IsNull(A), Equal(Constant(3), A)))
    assert as_lookup(expr, 0) == [1, None, 3]


@pytest.mark.parametrize(
    "expr",
    [
        Equal(A, Constant(1)),
        Equal(A, B),
        GreaterThan(A, Constant(1)),
        IsNull(Constant(1)),
        Or(Equal(A, Constant(1)), GreaterThan(A, Constant(2))),
        And(Equal(A, Constant(1)), Equal(A, Constant(2))),
    ],
)
def test_as_lookup_rejects(expr):
    field = 1 if expr == Equal(A, Constant(1)) else 0
    assert as_lookup(expr, field) is None


def test_from_lookup_round_trip():
    values = [1, 2, None, 4]
    expr = from_lookup(5, (None, "id"), values)
    assert as_lookup(expr, 5) == values
    assert expr.contains(lambda e: e == Field(5, (None, "id")))


def test_from_lookup_single_value():
    assert from_lookup(0, None, ["a"]) == Equal(Field(0), Constant("a"))


def test_from_lookup_empty_matches_nothing():
    expr = from_lookup(0, None, [])
    assert expr == Equal(Field(0), Constant(None))
    assert as_lookup(expr, 0) == [None]
    for value in (1, "a", None):
        assert expr.evaluate([value]) is None