"""Tests for the $apply transformation pipeline."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.apply import AGGREGATION_METHODS, ApplyEngine, apply_data
from cqrs_ddd_odata.exceptions import (
    ApplyTransformationError,
    UnsupportedTransformationError,
)
from cqrs_ddd_odata.query_options import QueryOptions


@pytest.fixture
def engine(registry):
    return ApplyEngine(registry=registry)


@pytest.fixture
def sales():
    return [
        {"id": 1, "region": "north", "product": "a", "amount": 10},
        {"id": 2, "region": "south", "product": "a", "amount": 5},
        {"id": 3, "region": "north", "product": "b", "amount": 20},
        {"id": 4, "region": "south", "product": "b", "amount": None},
        {"id": 5, "region": "north", "product": "a", "amount": 1},
    ]


# -- aggregation -------------------------------------------------------------


def test_groupby_with_aggregate(engine, products):
    result = engine.apply(
        products, ["groupby((categoryId), aggregate(price with sum as total))"]
    )
    assert result == [
        {"categoryId": 1, "total": 22.5},
        {"categoryId": 2, "total": 7},
    ]


def test_groupby_with_having(engine, products):
    result = engine.apply(
        products,
        "groupby((categoryId), aggregate(price with sum as total), having(total gt 15))",
    )
    assert result == [{"categoryId": 1, "total": 22.5}]


def test_aggregate_without_groupby(engine, sales):
    (row,) = engine.apply(
        sales,
        [
            "aggregate(amount with sum as total, amount with average as avg, "
            "amount with min as lo, amount with max as hi, $count as n)"
        ],
    )
    assert row == {"total": 36, "avg": 9, "lo": 1, "hi": 20, "n": 5}


def test_count_methods_skip_nulls(engine, sales):
    (row,) = engine.apply(
        sales,
        "aggregate(amount with count as c, product with countdistinct as d)",
    )
    assert row == {"c": 4, "d": 2}


def test_groupby_multiple_properties(engine, sales):
    result = engine.apply(
        sales, "groupby((region, product), aggregate($count as n))"
    )
    assert result == [
        {"region": "north", "product": "a", "n": 2},
        {"region": "south", "product": "a", "n": 1},
        {"region": "north", "product": "b", "n": 1},
        {"region": "south", "product": "b", "n": 1},
    ]


def test_groupby_without_aggregate_lists_distinct_keys(engine, sales):
    assert engine.apply(sales, "groupby((region))") == [
        {"region": "north"},
        {"region": "south"},
    ]


def test_groupby_nested_path(engine):
    rows = [{"a": {"b": 1}}, {"a": {"b": 1}}, {"a": {"b": 2}}]
    assert engine.apply(rows, "groupby((a/b))") == [{"a": {"b": 1}}, {"a": {"b": 2}}]


def test_groupby_keeps_booleans_apart_from_numbers(engine):
    rows = [
        {"id": 1, "flag": True},
        {"id": 2, "flag": 1},
        {"id": 3, "flag": 0},
        {"id": 4, "flag": False},
    ]
    result = engine.apply(rows, "groupby((flag), aggregate($count as n))")
    assert [(r["flag"], r["n"]) for r in result] == [
        (True, 1),
        (1, 1),
        (0, 1),
        (False, 1),
    ]
    assert [type(r["flag"]) for r in result] == [bool, int, int, bool]

    (row,) = engine.apply(rows, "aggregate(flag with countdistinct as kinds)")
    assert row == {"kinds": 4}


def test_average_of_empty_is_null():
    assert AGGREGATION_METHODS["average"]([]) is None


# -- row-level steps ---------------------------------------------------------


def test_filter_orderby_top_chain(engine, sales):
    result = engine.apply(
        sales, "filter(region eq 'north')/orderby(amount desc)/top(2)"
    )
    assert [r["id"] for r in result] == [3, 1]


def test_skip_and_count(engine, sales):
    assert engine.apply(sales, "skip(3)/count()") == [{"count": 2}]


def test_compute_and_select_steps(engine, products):
    result = engine.apply(
        products, "compute(price mul 2 as double)/select(id,double)/top(1)"
    )
    assert result == [{"id": 1, "double": 21.0}]


def test_search_and_identity_steps(engine, products):
    result = engine.apply(products, "identity/search(B)")
    assert [r["id"] for r in result] == [2]


def test_steps_after_groupby_run_on_groups(engine, sales):
    result = engine.apply(
        sales,
        "groupby((region), aggregate(amount with sum as total))/orderby(total desc)",
    )
    assert result == [
        {"region": "north", "total": 31},
        {"region": "south", "total": 5},
    ]


def test_having_step_on_plain_rows(engine, sales):
    result = engine.apply(sales, "having(amount ge 10)")
    assert [r["id"] for r in result] == [1, 3]


def test_input_rows_are_not_mutated(engine, products):
    snapshot = [dict(p) for p in products]
    engine.apply(products, "compute(price add 1 as p1)")
    assert products == snapshot


# -- errors ------------------------------------------------------------------


def test_unknown_transformation_suggests(engine, sales):
    with pytest.raises(UnsupportedTransformationError) as exc:
        engine.apply(sales, "groupbyy((region))")
    assert "Did you mean: groupby?" in exc.value.message
    assert exc.value.status_code == 501


@pytest.mark.parametrize(
    "step",
    [
        "groupby(region)",
        "aggregate()",
        "aggregate(amount as total)",
        "aggregate(amount with median as m)",
        "top(x)",
        "skip(-1)",
        "filter()",
        "orderby()",
        "select()",
        "compute()",
        "expand()",
        "top(",
    ],
)
def test_malformed_steps_raise(engine, sales, step):
    with pytest.raises(ApplyTransformationError, match="Invalid apply transformation"):
        engine.apply(sales, [step])


@pytest.mark.parametrize(
    "steps",
    [
        "filter(nope(amount))",
        "filter(amount gtt 10)",
        "filter(amount gt)",
        "having()",
        "groupby((region), aggregate(amount with sum as total), having(total gt))",
    ],
)
def test_bad_predicates_raise_instead_of_matching_nothing(engine, sales, steps):
    with pytest.raises(ApplyTransformationError, match="Invalid apply transformation"):
        engine.apply(sales, steps)


def test_bad_predicate_error_names_the_step(engine, sales):
    with pytest.raises(ApplyTransformationError) as exc:
        engine.apply(sales, ["filter(amount gtt 10)"])
    assert "filter(amount gtt 10)" in exc.value.message
    assert exc.value.status_code == 400
    assert exc.value.__cause__ is not None


def test_apply_data_without_steps_copies(sales):
    result = apply_data(sales, QueryOptions())
    assert result == sales
    assert result is not sales
