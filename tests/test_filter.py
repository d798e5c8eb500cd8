"""Tests for $filter parsing and evaluation."""

from __future__ import annotations

import datetime
import logging

import pytest

from cqrs_ddd_odata.ast import Binary, Call, Conditional, Lambda, Literal, Property
from cqrs_ddd_odata.exceptions import FilterSyntaxError, QueryTooComplexError
from cqrs_ddd_odata.expression import parse_expression, tokenize
from cqrs_ddd_odata.filtering import FilterEngine, filter_array
from cqrs_ddd_odata.operators import ODataOperator
from cqrs_ddd_odata.query_options import QueryOptions


@pytest.fixture
def engine(registry):
    return FilterEngine(registry=registry)


def names(rows):
    return [r["name"] for r in rows]


# -- parsing -----------------------------------------------------------------


def test_and_binds_tighter_than_or():
    node = parse_expression("a eq 1 or b eq 2 and c eq 3")
    assert isinstance(node, Binary)
    assert node.op is ODataOperator.OR
    assert isinstance(node.right, Binary)
    assert node.right.op is ODataOperator.AND


def test_negative_literal_is_folded():
    node = parse_expression("price gt -5")
    assert isinstance(node, Binary)
    assert node.right == Literal(-5, "-5")


def test_property_paths_are_single_tokens():
    node = parse_expression("address/city eq 'Rome'")
    assert isinstance(node, Binary)
    assert node.left == Property(("address", "city"))


def test_function_names_are_lowercased():
    node = parse_expression("ToLower(name) eq 'a'")
    assert isinstance(node, Binary)
    assert isinstance(node.left, Call)
    assert node.left.name == "tolower"


def test_lambda_and_conditional_nodes():
    node = parse_expression("tags/any(t: t eq 'x')")
    assert isinstance(node, Lambda)
    assert node.variable == "t"
    assert isinstance(parse_expression("a gt 1 ? 'x' : 'y'"), Conditional)


def test_string_escape_and_date_literal():
    node = parse_expression("name eq 'O''Brien'")
    assert isinstance(node, Binary)
    assert node.right.value == "O'Brien"  # type: ignore[attr-defined]
    date_node = parse_expression("born lt 2020-01-01")
    assert isinstance(date_node, Binary)
    assert date_node.right.value == datetime.date(2020, 1, 1)  # type: ignore[attr-defined]


def test_tokenize_rejects_unterminated_string():
    with pytest.raises(FilterSyntaxError):
        tokenize("name eq 'abc")


@pytest.mark.parametrize(
    "expression",
    ["", "name eq", "(a eq 1", "a eq 1)", "a/b/func(1)", "eq 1"],
)
def test_malformed_expressions_raise(expression):
    with pytest.raises(FilterSyntaxError):
        parse_expression(expression)


def test_deep_nesting_is_rejected():
    expression = "(" * 80 + "a eq 1" + ")" * 80
    with pytest.raises(QueryTooComplexError) as exc:
        parse_expression(expression)
    assert exc.value.status_code == 422


# -- comparison and logic ----------------------------------------------------


def test_basic_comparisons(engine, people):
    assert names(engine.filter(people, "age ge 20")) == ["Alice", "Bob"]
    assert names(engine.filter(people, "age lt 20")) == ["Charlie"]
    assert names(engine.filter(people, "name ne 'Bob'")) == ["Alice", "Charlie"]


def test_operators_are_case_insensitive(engine, people):
    assert names(engine.filter(people, "age GT 18 AND name EQ 'Bob'")) == ["Bob"]


def test_empty_expression_keeps_all_rows(engine, people):
    assert engine.filter(people, None) == people
    assert engine.filter(people, "   ") == people


def test_in_operator(engine, people):
    assert names(engine.filter(people, "name in ('Alice', 'Charlie')")) == [
        "Alice",
        "Charlie",
    ]


def test_booleans_are_distinct_from_numbers(engine):
    rows = [
        {"id": 1, "flag": True},
        {"id": 2, "flag": 1},
        {"id": 3, "flag": 0},
        {"id": 4, "flag": False},
    ]

    def ids(expression):
        return [r["id"] for r in engine.filter(rows, expression)]

    assert ids("flag eq 1") == [2]
    assert ids("flag eq true") == [1]
    assert ids("flag eq false") == [4]
    assert ids("flag in (0)") == [3]
    assert ids("flag in (true, 0)") == [1, 3]
    assert ids("flag ne true") == [2, 3, 4]
    # a boolean is not ordered against a number
    assert ids("flag gt 0") == [2]


def test_not_operator(engine, people):
    assert names(engine.filter(people, "not (age gt 18)")) == ["Charlie"]


def test_missing_property_is_unknown_not_false(engine):
    rows = [{"name": "x"}, {"name": "y", "age": 5}]
    assert names(engine.filter(rows, "age lt 10")) == ["y"]
    # not(unknown) is still unknown, so the row stays excluded
    assert names(engine.filter(rows, "not (age lt 10)")) == []


def test_kleene_or_with_unknown(engine):
    rows = [{"name": "x", "flag": True}]
    assert names(engine.filter(rows, "missing eq 1 or flag eq true")) == ["x"]
    assert names(engine.filter(rows, "missing eq 1 and flag eq true")) == []


def test_null_literal_comparison(engine):
    rows = [{"name": "a", "v": None}, {"name": "b", "v": 1}, {"name": "c"}]
    assert names(engine.filter(rows, "v eq null")) == ["a", "c"]
    assert names(engine.filter(rows, "v ne null")) == ["b"]


def test_arithmetic_in_filter(engine, products):
    assert [p["id"] for p in engine.filter(products, "price mul 2 gt 22")] == [3]
    assert [p["id"] for p in engine.filter(products, "id mod 2 eq 1")] == [1, 3]
    assert [p["id"] for p in engine.filter(products, "7 div 2 eq 3")] == [1, 2, 3]
    assert [p["id"] for p in engine.filter(products, "7 divby 2 eq 3.5")] == [1, 2, 3]


def test_date_string_against_date_literal(engine):
    rows = [
        {"name": "old", "created": "2019-05-01T10:00:00Z"},
        {"name": "new", "created": "2021-03-04T00:00:00Z"},
    ]
    assert names(engine.filter(rows, "created gt 2020-01-01")) == ["new"]


def test_nested_property_path(engine):
    rows = [
        {"name": "a", "address": {"city": "Rome"}},
        {"name": "b", "address": {"city": "Oslo"}},
        {"name": "c", "address": None},
    ]
    assert names(engine.filter(rows, "address/city eq 'Oslo'")) == ["b"]


def test_lambda_any_and_all(engine):
    rows = [
        {"name": "a", "tags": ["x", "y"]},
        {"name": "b", "tags": ["y"]},
        {"name": "c", "tags": []},
    ]
    assert names(engine.filter(rows, "tags/any(t: t eq 'x')")) == ["a"]
    assert names(engine.filter(rows, "tags/all(t: t eq 'y')")) == ["b", "c"]
    assert names(engine.filter(rows, "tags/any()")) == ["a", "b"]


def test_collection_count_segment(engine):
    rows = [{"name": "a", "tags": ["x", "y"]}, {"name": "b", "tags": ["x"]}]
    assert names(engine.filter(rows, "tags/$count gt 1")) == ["a"]


def test_parameter_aliases(engine, people):
    result = engine.filter(people, "age gt @min", {"@min": "18"})
    assert names(result) == ["Alice", "Bob"]


# -- lenient degradation -----------------------------------------------------


def test_syntax_error_yields_no_rows(engine, people, caplog):
    caplog.set_level(logging.WARNING)
    assert engine.filter(people, "age gt") == []
    assert "Ignoring unsupported $filter" in caplog.text


def test_unknown_function_yields_no_rows(engine, people):
    assert engine.filter(people, "frobnicate(name) eq 1") == []


def test_predicate_raises_where_filter_degrades(engine):
    with pytest.raises(FilterSyntaxError):
        engine.predicate("frobnicate(name)")


def test_input_rows_are_not_mutated(engine, people):
    snapshot = [dict(p) for p in people]
    engine.filter(people, "age gt 18")
    assert people == snapshot


def test_filter_array_uses_options_aliases(people):
    options = QueryOptions(filter="name eq @who", parameter_aliases={"@who": "'Bob'"})
    assert names(filter_array(people, options)) == ["Bob"]
