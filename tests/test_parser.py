"""Tests for query-string parsing and QueryOptions."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.exceptions import QueryOptionError
from cqrs_ddd_odata.parser import (
    QueryStringParser,
    normalise_query,
    parse_expand,
    parse_odata_query,
    validate_query_params,
)
from cqrs_ddd_odata.query_options import (
    ConformanceLevel,
    ConformanceOptions,
    ExpandItem,
    OrderByTerm,
    QueryOptions,
)
from cqrs_ddd_odata.utils import split_top_level, strip_outer_parens

# -- split_top_level ---------------------------------------------------------


def test_split_ignores_nested_separators():
    assert split_top_level("round(price), concat(a, 'x,y')") == [
        "round(price)",
        "concat(a, 'x,y')",
    ]


def test_split_drops_empty_parts():
    assert split_top_level("a,,b, ") == ["a", "b"]


def test_split_on_slash_keeps_groupby_whole():
    parts = split_top_level(
        "groupby((a), aggregate(p with sum as t))/filter(t gt 1)", "/"
    )
    assert parts == ["groupby((a), aggregate(p with sum as t))", "filter(t gt 1)"]


def test_strip_outer_parens_only_when_wrapping():
    assert strip_outer_parens("(a, b)") == "a, b"
    assert strip_outer_parens("(a) and (b)") == "(a) and (b)"


# -- QueryStringParser -------------------------------------------------------


def test_parse_full_query():
    options = parse_odata_query(
        {
            "$select": "name,price",
            "$orderby": "price desc, name",
            "$filter": "price gt 10",
            "$top": "2",
            "$skip": "1",
            "$count": "true",
            "$expand": "category",
            "$search": "alpha",
            "$compute": "price mul 2 as double",
            "$apply": "filter(price gt 1)/top(1)",
        }
    )
    assert options.select == ["name", "price"]
    assert options.orderby == [OrderByTerm("price", "desc"), OrderByTerm("name")]
    assert options.filter == "price gt 10"
    assert options.top == 2
    assert options.skip == 1
    assert options.count is True
    assert options.expand == [ExpandItem("category")]
    assert options.search == "alpha"
    assert options.compute == ["price mul 2 as double"]
    assert options.apply == ["filter(price gt 1)", "top(1)"]


def test_parse_raw_query_string():
    options = parse_odata_query("?$top=5&$filter=name eq 'Bob'&@p=3")
    assert options.top == 5
    assert options.filter == "name eq 'Bob'"
    assert options.parameter_aliases == {"@p": "3"}


def test_parse_is_lenient_about_bad_integers():
    options = QueryStringParser().parse({"$top": "abc", "$skip": "-3"})
    assert options.top is None
    assert options.skip == -3


def test_parse_count_only_true_enables():
    assert parse_odata_query({"$count": "TRUE"}).count is True
    assert parse_odata_query({"$count": "false"}).count is False
    assert parse_odata_query({}).count is False


def test_option_names_are_case_insensitive():
    options = parse_odata_query({"$TOP": "3", "$Filter": "a eq 1"})
    assert options.top == 3
    assert options.filter == "a eq 1"


def test_multi_valued_parameter_uses_first_value():
    assert parse_odata_query({"$top": ["4", "9"]}).top == 4


def test_normalise_query_lowercases_system_names_only():
    params = normalise_query(
        {"$Conformance": ["advanced", "minimal"], "@Min": "1", "custom": ()}
    )
    assert params == {"$conformance": "advanced", "@Min": "1"}
    assert normalise_query("?$TOP=2&$top=5") == {"$top": "2"}


def test_blank_filter_and_search_are_none():
    options = parse_odata_query({"$filter": "  ", "$search": ""})
    assert options.filter is None
    assert options.search is None


def test_orderby_accepts_paths():
    options = parse_odata_query({"$orderby": "address/city desc"})
    assert options.orderby == [OrderByTerm("address/city", "desc")]


def test_expand_plain_list():
    assert parse_expand("category, orders") == [
        ExpandItem("category"),
        ExpandItem("orders"),
    ]


def test_expand_nested_options():
    (item,) = parse_expand("orders($select=id,total;$filter=total gt 5;$top=2)")
    assert item.path == "orders"
    assert item.options is not None
    assert item.options.select == ["id", "total"]
    assert item.options.filter == "total gt 5"
    assert item.options.top == 2


def test_expand_nested_expand():
    (item,) = parse_expand("orders($expand=items($select=sku))")
    assert item.options is not None
    (inner,) = item.options.expand
    assert inner.path == "items"
    assert inner.options is not None
    assert inner.options.select == ["sku"]


def test_expand_malformed_nested_option_raises():
    with pytest.raises(QueryOptionError):
        parse_expand("orders($top)")


# -- validate_query_params ---------------------------------------------------


@pytest.mark.parametrize(
    "query",
    [
        {"$top": "abc"},
        {"$top": "-1"},
        {"$skip": "1.5"},
        {"$count": "yes"},
    ],
)
def test_validate_rejects_malformed_values(query):
    with pytest.raises(QueryOptionError) as exc:
        validate_query_params(query)
    assert exc.value.status_code == 400
    assert exc.value.target == next(iter(query))


def test_validate_unknown_option_only_in_strict_mode():
    validate_query_params({"$foo": "1"})
    with pytest.raises(QueryOptionError, match=r"\$foo"):
        validate_query_params({"$foo": "1"}, strict=True)


def test_validate_accepts_well_formed_query():
    validate_query_params(
        {"$top": "10", "$skip": "0", "$count": "false", "$format": "json"},
        strict=True,
    )


# -- QueryOptions ------------------------------------------------------------


def test_from_dict_accepts_camel_case_shape():
    options = QueryOptions.from_dict(
        {
            "filter": "age gt @minAge",
            "orderby": [{"property": "name", "direction": "desc"}],
            "parameterAliases": {"@minAge": "18"},
            "select": "name",
        }
    )
    assert options.orderby == [OrderByTerm("name", "desc")]
    assert options.parameter_aliases == {"@minAge": "18"}
    assert options.select == ["name"]


def test_from_dict_accepts_string_terms():
    options = QueryOptions.from_dict({"orderby": ["age desc"], "expand": "a,b"})
    assert options.orderby[0].descending
    assert [e.path for e in options.expand] == ["a", "b"]


def test_to_dict_round_trips_through_from_dict():
    original = QueryOptions(
        select=["a"],
        orderby=[OrderByTerm("a", "desc")],
        top=3,
        count=True,
        expand=[ExpandItem("b", QueryOptions(select=["x"]))],
    )
    assert QueryOptions.from_dict(original.to_dict()) == original


def test_merge_combines_filters_with_and():
    merged = QueryOptions(filter="a eq 1", top=5).merge(
        QueryOptions(filter="b eq 2", skip=1)
    )
    assert merged.filter == "(a eq 1) and (b eq 2)"
    assert merged.top == 5
    assert merged.skip == 1


def test_copy_helpers_leave_original_untouched():
    options = QueryOptions(top=1, filter="a eq 1")
    paged = options.with_pagination(top=10, skip=2)
    assert (paged.top, paged.skip) == (10, 2)
    assert options.top == 1
    assert options.without("filter").filter is None


def test_conformance_options_coerce_level():
    options = ConformanceOptions.from_dict({"conformance": "advanced", "key": 3})
    assert options.conformance is ConformanceLevel.ADVANCED
    assert options.key == 3
    assert type(options.query_options) is QueryOptions


def test_conformance_options_reject_unknown_level():
    with pytest.raises(ValueError, match="Invalid conformance level"):
        ConformanceOptions(conformance="maximal")  # type: ignore[arg-type]


def test_conformance_levels_are_ordered():
    assert ConformanceLevel.MINIMAL < ConformanceLevel.INTERMEDIATE
    assert ConformanceLevel.ADVANCED >= ConformanceLevel.INTERMEDIATE
