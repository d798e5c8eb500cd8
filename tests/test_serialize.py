"""Tests for OData JSON envelopes and responses."""

from __future__ import annotations

import datetime
import decimal
import json
import uuid

import pytest

from cqrs_ddd_odata.query import apply_odata_query
from cqrs_ddd_odata.serialize import (
    ODataResponse,
    ResponseContext,
    build_context_url,
    build_next_link,
    create_odata_response,
    dumps,
    format_key,
    serialize_collection,
    serialize_entity,
)

ROOT = "https://api.example.com/odata"


# ════════════════════════════════════════════════════════════════════════
# Responses
# ════════════════════════════════════════════════════════════════════════


class TestCreateResponse:
    """create_odata_response envelopes and headers."""

    def test_collection_with_count(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "People"),
            {"value": [{"name": "Bob"}], "count": 2},
        )
        assert response.status_code == 200
        assert response.headers["Content-Type"] == "application/json"
        assert response.headers["OData-Version"] == "4.01"
        assert response.json() == {
            "@odata.context": f"{ROOT}/$metadata#People",
            "@odata.count": 2,
            "value": [{"name": "Bob"}],
        }

    def test_count_flag_uses_page_length_when_unknown(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "People"), {"value": [{}, {}]}, count=True
        )
        assert response.body["@odata.count"] == 2

    def test_no_count_unless_present(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "People"), {"value": []}
        )
        assert "@odata.count" not in response.body

    def test_query_result_with_next_link(self, products) -> None:
        result = apply_odata_query(
            products, {"top": 2}, service_root=ROOT, entity_set="Products"
        )
        body = create_odata_response(ResponseContext(ROOT, "Products"), result).body
        assert body["@odata.nextLink"] == f"{ROOT}/Products?$top=2&$skip=2"
        assert len(body["value"]) == 2

    def test_single_entity_by_key(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "People", key=7), {"value": {"id": 7}}
        )
        assert response.body == {
            "@odata.context": f"{ROOT}/$metadata#People(7)/$entity",
            "id": 7,
        }

    def test_single_entity_without_key(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "Me"), {"value": {"name": "Bob"}}
        )
        assert response.body["@odata.context"] == f"{ROOT}/$metadata#Me/$entity"

    def test_extra_headers_and_status(self) -> None:
        response = create_odata_response(
            ResponseContext(ROOT, "People"),
            {"value": []},
            status_code=206,
            odata_version="4.0",
            headers={"ETag": 'W/"1"'},
        )
        assert response.status_code == 206
        assert response.headers["OData-Version"] == "4.0"
        assert response.headers["ETag"] == 'W/"1"'

    def test_text_is_json(self) -> None:
        response = ODataResponse(200, body={"value": [1]})
        assert json.loads(response.text) == {"value": [1]}
        assert ODataResponse(204).text == ""


# ════════════════════════════════════════════════════════════════════════
# Envelope helpers
# ════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        (5, "5"),
        ("abc", "'abc'"),
        ("it's", "'it''s'"),
        (True, "true"),
    ],
)
def test_format_key(key, expected):
    assert format_key(key) == expected


def test_context_urls_strip_trailing_slash():
    assert build_context_url(ROOT + "/", "People") == f"{ROOT}/$metadata#People"
    assert (
        build_context_url(ROOT, "People", "x")
        == f"{ROOT}/$metadata#People('x')/$entity"
    )


def test_next_link_carries_extra_options():
    link = build_next_link(ROOT, "People", 10, 20, {"$filter": "age gt 5", "$top": 99})
    assert link == f"{ROOT}/People?$top=10&$skip=20&$filter=age%20gt%205"


def test_collection_envelope_key_order():
    body = serialize_collection([1], context="c", count=1, next_link="n")
    assert list(body) == ["@odata.context", "@odata.count", "value", "@odata.nextLink"]


def test_entity_annotations_come_first():
    body = serialize_entity({"id": 1, "name": "A"}, context="c", etag='W/"x"')
    assert list(body) == ["@odata.context", "@odata.etag", "id", "name"]


def test_dumps_renders_odata_scalars():
    payload = {
        "at": datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc),
        "on": datetime.date(2024, 1, 2),
        "span": datetime.timedelta(days=1, hours=2),
        "price": decimal.Decimal("10.50"),
        "uid": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        "tags": {"a"},
    }
    assert json.loads(dumps(payload)) == {
        "at": "2024-01-02T03:04:05Z",
        "on": "2024-01-02",
        "span": "P1DT2H",
        "price": 10.5,
        "uid": "12345678-1234-5678-1234-567812345678",
        "tags": ["a"],
    }


def test_dumps_rejects_unknown_types():
    with pytest.raises(TypeError, match="not JSON serializable"):
        dumps({"x": object()})
