"""Tests for $orderby and $top/$skip."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.ordering import compare_values, order_array
from cqrs_ddd_odata.pagination import PageWindow, paginate_array, resolve_window
from cqrs_ddd_odata.query_options import OrderByTerm, QueryOptions

# -- ordering ----------------------------------------------------------------


def test_order_ascending_and_descending(people):
    asc = order_array(people, QueryOptions(orderby=[OrderByTerm("age")]))
    assert [p["name"] for p in asc] == ["Charlie", "Bob", "Alice"]
    desc = order_array(people, QueryOptions(orderby=[OrderByTerm("age", "desc")]))
    assert [p["name"] for p in desc] == ["Alice", "Bob", "Charlie"]


def test_composite_key_is_stable():
    rows = [
        {"id": 1, "group": "b", "rank": 2},
        {"id": 2, "group": "a", "rank": 1},
        {"id": 3, "group": "b", "rank": 1},
        {"id": 4, "group": "a", "rank": 1},
    ]
    options = QueryOptions(orderby=[OrderByTerm("group"), OrderByTerm("rank")])
    assert [r["id"] for r in order_array(rows, options)] == [2, 4, 3, 1]


def test_nulls_sort_first_in_both_directions():
    rows = [{"id": 1, "v": 2}, {"id": 2, "v": None}, {"id": 3, "v": 1}, {"id": 4}]
    asc = order_array(rows, QueryOptions(orderby=[OrderByTerm("v")]))
    assert [r["id"] for r in asc] == [2, 4, 3, 1]
    desc = order_array(rows, QueryOptions(orderby=[OrderByTerm("v", "desc")]))
    assert [r["id"] for r in desc] == [2, 4, 1, 3]


def test_order_by_nested_path():
    rows = [
        {"id": 1, "address": {"city": "Rome"}},
        {"id": 2, "address": {"city": "Oslo"}},
    ]
    result = order_array(rows, QueryOptions(orderby=[OrderByTerm("address/city")]))
    assert [r["id"] for r in result] == [2, 1]


def test_no_terms_returns_copy(people):
    result = order_array(people, QueryOptions())
    assert result == people
    assert result is not people


def test_compare_values_is_total_across_types():
    assert compare_values(1, 2) == -1
    assert compare_values("b", "a") == 1
    assert compare_values(1, "a") != 0
    assert compare_values(1, "a") == -compare_values("a", 1)


# -- pagination --------------------------------------------------------------


def test_paginate_skip_then_top(people):
    page = paginate_array(people, QueryOptions(skip=1, top=1))
    assert [p["name"] for p in page] == ["Bob"]


@pytest.mark.parametrize(
    ("top", "skip", "expected"),
    [
        (None, None, 3),
        (0, None, 0),
        (-2, None, 0),
        (None, -5, 3),
        (10, 2, 1),
        (None, 10, 0),
    ],
)
def test_paginate_edge_values(people, top, skip, expected):
    assert len(paginate_array(people, QueryOptions(top=top, skip=skip))) == expected


def test_window_has_more_and_next_skip():
    window = resolve_window(5, top=2, skip=1)
    assert window == PageWindow(skip=1, top=2, total=5)
    assert window.end == 3
    assert window.has_more
    assert window.next_skip == 3
    assert not resolve_window(3, top=2, skip=1).has_more


def test_default_top_applies_only_without_top():
    assert resolve_window(50, default_top=10).top == 10
    assert resolve_window(50, top=3, default_top=10).top == 3


def test_max_top_caps_requested_top():
    assert resolve_window(50, top=100, max_top=20).top == 20
    assert resolve_window(50, max_top=20).top is None
