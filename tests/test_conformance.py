"""Tests for conformance levels and the conformance gate."""

from __future__ import annotations

import pytest

from cqrs_ddd_odata.conformance import (
    ConformanceGate,
    check_query_option_support,
    compute_etag,
    get_available_features,
    get_supported_query_options,
    is_feature_supported,
    negotiate_conformance_level,
    query_with_conformance,
    validate_conformance,
    validate_conformance_level,
)
from cqrs_ddd_odata.exceptions import (
    EntityNotFoundError,
    FeatureNotSupportedError,
    InvalidConformanceLevelError,
)
from cqrs_ddd_odata.query_options import (
    ConformanceLevel,
    ConformanceOptions,
    QueryOptions,
)

LEVELS = list(ConformanceLevel)


class TestLevels:
    """Option and feature sets per level."""

    def test_supported_options_grow_monotonically(self) -> None:
        for lower, higher in zip(LEVELS, LEVELS[1:]):
            assert set(get_supported_query_options(lower)) < set(
                get_supported_query_options(higher)
            )

    def test_minimal_only_selects(self) -> None:
        assert get_supported_query_options("minimal") == ["$select"]

    @pytest.mark.parametrize(
        ("level", "option", "expected"),
        [
            ("minimal", "$select", True),
            ("minimal", "filter", False),
            ("intermediate", "$filter", True),
            ("intermediate", "$expand", True),
            ("intermediate", "$search", False),
            ("advanced", "apply", True),
            ("advanced", "$COMPUTE", True),
        ],
    )
    def test_check_query_option_support(
        self, level: str, option: str, expected: bool
    ) -> None:
        assert check_query_option_support(level, option) is expected

    def test_features_include_lower_levels(self) -> None:
        assert get_available_features("minimal") == [
            "read",
            "metadata",
            "service-document",
            "select",
        ]
        advanced = get_available_features(ConformanceLevel.ADVANCED)
        assert {"select", "filter", "apply"} <= set(advanced)
        assert is_feature_supported("expand", "intermediate")
        assert not is_feature_supported("search", "intermediate")

    def test_levels_are_ordered(self) -> None:
        assert ConformanceLevel.MINIMAL < ConformanceLevel.INTERMEDIATE
        assert ConformanceLevel.ADVANCED >= ConformanceLevel.INTERMEDIATE
        assert sorted(reversed(LEVELS)) == LEVELS

    def test_invalid_level(self) -> None:
        with pytest.raises(InvalidConformanceLevelError) as exc:
            validate_conformance_level("full")
        assert exc.value.status_code == 400
        assert isinstance(exc.value, ValueError)


class TestValidation:
    """Self-description against full compliance."""

    def test_minimal_reports_missing_capabilities(self) -> None:
        report = validate_conformance("minimal")
        assert not report.is_valid
        assert "Navigation properties" in report.missing_features
        assert "Custom functions" in report.missing_features
        assert "Custom actions" in report.missing_features

    def test_advanced_is_complete(self) -> None:
        assert validate_conformance("advanced").to_dict() == {
            "isValid": True,
            "missingFeatures": [],
        }


class TestNegotiation:
    """Picking a level for a request."""

    def test_requested_level_is_used(self) -> None:
        assert negotiate_conformance_level("Advanced") is ConformanceLevel.ADVANCED

    def test_falls_back_to_highest_supported_below(self) -> None:
        level = negotiate_conformance_level(
            "advanced", supported=["minimal", "intermediate"]
        )
        assert level is ConformanceLevel.INTERMEDIATE

    def test_unknown_or_missing_uses_default(self) -> None:
        assert negotiate_conformance_level(None) is ConformanceLevel.MINIMAL
        assert (
            negotiate_conformance_level("bogus", default="intermediate")
            is ConformanceLevel.INTERMEDIATE
        )


class TestGate:
    """Evaluating queries under a level."""

    def test_minimal_ignores_filter(self, products) -> None:
        body = query_with_conformance(
            products, {"conformance": "minimal", "filter": "price gt 10"}
        )
        assert len(body["value"]) == 3

    def test_intermediate_applies_filter(self, products) -> None:
        body = query_with_conformance(
            products, {"conformance": "intermediate", "filter": "price gt 10"}
        )
        assert [r["name"] for r in body["value"]] == ["A", "C"]

    def test_select_applies_at_every_level(self, products) -> None:
        for level in LEVELS:
            body = query_with_conformance(
                products, {"conformance": level.value, "select": ["id"]}
            )
            assert body["value"] == [{"id": 1}, {"id": 2}, {"id": 3}]

    def test_restrict_resets_options_above_level(self) -> None:
        gate = ConformanceGate("intermediate")
        options = QueryOptions(filter="a eq 1", search="x", top=2)
        assert "$search" not in gate.supported_query_options
        assert gate.unsupported_options(options) == ["$search"]
        restricted = gate.restrict(options)
        assert restricted.search is None
        assert restricted.filter == "a eq 1"
        assert gate.restrict(QueryOptions(top=1)) == QueryOptions(top=1)

    def test_collection_envelope(self, products) -> None:
        gate = ConformanceGate(
            "intermediate", service_root="https://svc/odata", entity_set="Products"
        )
        body = gate.query(products, QueryOptions(top=1, count=True, select=["id"]))
        assert body == {
            "@odata.context": "https://svc/odata/$metadata#Products",
            "@odata.count": 3,
            "value": [{"id": 1}],
            "@odata.nextLink": "https://svc/odata/Products?$top=1&$skip=1",
        }

    def test_context_without_entity_set(self, products) -> None:
        body = query_with_conformance(products, {"conformance": "minimal"})
        assert body["@odata.context"] == "/$metadata#"

    def test_single_entity_by_key(self, products) -> None:
        gate = ConformanceGate(
            "intermediate", service_root="https://svc/odata", entity_set="Products"
        )
        body = gate.query(products, ConformanceOptions(select=["name"]), key=2)
        assert body["@odata.context"] == "https://svc/odata/$metadata#Products(2)/$entity"
        assert body["@odata.etag"] == compute_etag(products[1])
        assert body["name"] == "B"
        assert "price" not in body

    def test_key_from_options(self, products) -> None:
        gate = ConformanceGate("minimal", entity_set="Products")
        body = gate.query(products, {"key": 3})
        assert body["name"] == "C"
        assert "@odata.etag" not in body

    def test_string_key_is_quoted(self) -> None:
        gate = ConformanceGate("minimal", entity_set="Codes", key_property="code")
        body = gate.query([{"code": "o'k"}], {}, key="o'k")
        assert body["@odata.context"] == "/$metadata#Codes('o''k')/$entity"

    def test_missing_key_is_not_found(self, products) -> None:
        gate = ConformanceGate("intermediate", entity_set="Products")
        with pytest.raises(EntityNotFoundError) as exc:
            gate.query(products, {}, key=99)
        assert exc.value.status_code == 404

    def test_invocation_rejected_at_minimal(self) -> None:
        gate = ConformanceGate("minimal")
        with pytest.raises(FeatureNotSupportedError) as exc:
            gate.ensure_invocation_allowed("function", "topSellers")
        assert exc.value.message == (
            "Function 'topSellers' not supported in minimal conformance"
        )
        assert exc.value.status_code == 501

        with pytest.raises(FeatureNotSupportedError, match="Action import"):
            gate.ensure_invocation_allowed("action-import")

    def test_invocation_allowed_above_minimal(self) -> None:
        ConformanceGate("intermediate").ensure_invocation_allowed("batch")

    def test_unknown_invocation_kind(self) -> None:
        with pytest.raises(ValueError, match="Unknown invocation kind"):
            ConformanceGate("advanced").ensure_invocation_allowed("procedure")


def test_etag_ignores_annotations_and_is_weak(products) -> None:
    etag = compute_etag(products[0])
    assert etag.startswith('W/"') and etag.endswith('"')
    assert compute_etag({**products[0], "@search.score": 1.0}) == etag
    assert compute_etag({**products[0], "price": 1}) != etag
