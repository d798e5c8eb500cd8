"""Tests for the OData exception hierarchy."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.exceptions import (
    ApplyTransformationError,
    ComputeExpressionError,
    EntityNotFoundError,
    FeatureNotSupportedError,
    FilterSyntaxError,
    InvalidConformanceLevelError,
    InvalidPropertyError,
    ODataError,
    QueryOptionError,
    QueryTooComplexError,
    RequestTimeoutError,
    SearchSyntaxError,
    UnknownFunctionError,
    UnsupportedComputeFunctionError,
    UnsupportedSearchFeatureError,
    UnsupportedTransformationError,
)


class TestEnvelope:
    """to_dict() renders the OData error envelope."""

    def test_minimal_envelope(self) -> None:
        assert ODataError("boom").to_dict() == {
            "error": {"code": "InternalServerError", "message": "boom"}
        }

    def test_target_and_details(self) -> None:
        exc = QueryOptionError(
            "bad", target="$top", details=[{"code": "X", "message": "y"}]
        )
        assert exc.to_dict() == {
            "error": {
                "code": "BadRequest",
                "message": "bad",
                "target": "$top",
                "details": [{"code": "X", "message": "y"}],
            }
        }

    def test_str_is_message(self) -> None:
        assert str(SearchSyntaxError("unbalanced quote")) == (
            "Invalid search syntax: unbalanced quote"
        )


class TestInvalidProperty:
    """Fuzzy suggestions for misspelled names."""

    def test_suggestion_in_message_and_details(self) -> None:
        exc = InvalidPropertyError("nme", "$select", ["id", "name", "price"])
        assert exc.message == "Invalid property 'nme' in $select. Did you mean: name?"
        assert exc.to_dict()["error"]["details"] == [
            {"code": "Suggestion", "message": "name", "target": "$select"}
        ]

    def test_no_suggestion_for_unrelated_name(self) -> None:
        exc = InvalidPropertyError("zzz", "$orderby", ["id", "name"])
        assert exc.suggestions == []
        assert exc.message == "Invalid property 'zzz' in $orderby."
        assert "details" not in exc.to_dict()["error"]


def test_unsupported_transformation_lists_valid_names() -> None:
    exc = UnsupportedTransformationError("filtr", ["groupby", "filter", "top"])
    assert "Did you mean: filter?" in exc.message
    assert exc.message.endswith("Valid transformations: filter, groupby, top")


@pytest.mark.parametrize(
    ("exc", "status", "code"),
    [
        (FilterSyntaxError("x"), 400, "BadRequest"),
        (UnknownFunctionError("frob"), 400, "BadRequest"),
        (SearchSyntaxError("x"), 400, "BadRequest"),
        (UnsupportedSearchFeatureError("x"), 501, "NotImplemented"),
        (ComputeExpressionError("a", "x"), 400, "BadRequest"),
        (UnsupportedComputeFunctionError("frob(a)", "frob"), 501, "NotImplemented"),
        (ApplyTransformationError("top(x)", "x"), 400, "BadRequest"),
        (UnsupportedTransformationError("x", []), 501, "NotImplemented"),
        (InvalidConformanceLevelError("full"), 400, "BadRequest"),
        (FeatureNotSupportedError("Batch", "minimal"), 501, "NotImplemented"),
        (QueryTooComplexError("deep"), 422, "QueryTooComplex"),
        (EntityNotFoundError("Products", 1), 404, "NotFound"),
        (RequestTimeoutError("slow"), 504, "GatewayTimeout"),
    ],
)
def test_status_codes(exc, status, code) -> None:
    assert isinstance(exc, ODataError)
    assert exc.status_code == status
    assert exc.to_dict()["error"]["code"] == code


def test_unsupported_compute_function_is_a_compute_error() -> None:
    exc = UnsupportedComputeFunctionError("frob(a)", "frob")
    assert isinstance(exc, ComputeExpressionError)
    assert exc.expression == "frob(a)"
    assert exc.message == "Unsupported compute function 'frob' in 'frob(a)'"


def test_entity_not_found_message() -> None:
    assert EntityNotFoundError("Products", "x").message == (
        "Products with key 'x' not found"
    )
    assert EntityNotFoundError(None, 1).message == "Entity with key 1 not found"
