"""
OData JSON envelope construction.

Builds ``@odata.context``/``@odata.count``/``@odata.nextLink`` annotated
payloads and a transport-neutral :class:`ODataResponse` that HTTP adapters
translate into their own response objects.
"""

from __future__ import annotations

import datetime
import decimal
import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from .utils import format_duration, to_text

if TYPE_CHECKING:
    from .query import QueryResult

ODATA_VERSION = "4.01"
JSON_CONTENT_TYPE = "application/json"


def _root(service_root: str) -> str:
    return service_root.rstrip("/")


def format_key(key: Any) -> str:
    """Render an entity key the way it appears in a resource path."""
    if isinstance(key, str):
        return "'" + key.replace("'", "''") + "'"
    return to_text(key)


def build_context_url(
    service_root: str,
    entity_set: str,
    key: Any = None,
) -> str:
    """
    ``<root>/$metadata#<EntitySet>`` for a collection, or
    ``<root>/$metadata#<EntitySet>(<key>)/$entity`` for a single entity.
    """
    base = f"{_root(service_root)}/$metadata#{entity_set}"
    if key is None:
        return base
    return f"{base}({format_key(key)})/$entity"


def build_next_link(
    service_root: str,
    entity_set: str,
    top: int,
    skip: int,
    extra: Mapping[str, Any] | None = None,
) -> str:
    """``<root>/<EntitySet>?$top=<n>&$skip=<m>`` plus any *extra* options."""
    params: dict[str, Any] = {"$top": top, "$skip": skip}
    for name, value in (extra or {}).items():
        if name not in params and value is not None:
            params[name] = value
    query = urlencode(params, safe="$,/()'", quote_via=quote)
    return f"{_root(service_root)}/{entity_set}?{query}"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        return to_text(value)
    if isinstance(value, datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return format_duration(value)
    if isinstance(value, decimal.Decimal):
        return float(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, set | frozenset | tuple):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(payload: Any) -> str:
    """Serialise *payload* to JSON, rendering dates and durations as ISO text."""
    return json.dumps(payload, default=_json_default, ensure_ascii=False)


def serialize_collection(
    value: list[Any],
    *,
    context: str | None = None,
    count: int | None = None,
    next_link: str | None = None,
) -> dict[str, Any]:
    """Wrap a page of rows in the OData collection envelope."""
    body: dict[str, Any] = {}
    if context is not None:
        body["@odata.context"] = context
    if count is not None:
        body["@odata.count"] = count
    body["value"] = value
    if next_link is not None:
        body["@odata.nextLink"] = next_link
    return body


def serialize_entity(
    entity: Mapping[str, Any],
    *,
    context: str | None = None,
    etag: str | None = None,
) -> dict[str, Any]:
    """A single entity with its annotations first, as OData orders them."""
    body: dict[str, Any] = {}
    if context is not None:
        body["@odata.context"] = context
    if etag is not None:
        body["@odata.etag"] = etag
    for key, value in entity.items():
        if key not in body:
            body[key] = value
    return body


@dataclass(frozen=True)
class ResponseContext:
    """Where a response's payload lives within the service."""

    service_root: str
    entity_set: str
    key: Any = None


@dataclass
class ODataResponse:
    """Transport-neutral HTTP response."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def text(self) -> str:
        return "" if self.body is None else dumps(self.body)

    def json(self) -> Any:
        return self.body


def default_headers(odata_version: str = ODATA_VERSION) -> dict[str, str]:
    return {"Content-Type": JSON_CONTENT_TYPE, "OData-Version": odata_version}


def create_odata_response(
    context: ResponseContext,
    result: QueryResult | Mapping[str, Any],
    *,
    count: bool = False,
    status_code: int = 200,
    odata_version: str = ODATA_VERSION,
    headers: Mapping[str, str] | None = None,
) -> ODataResponse:
    """
    Build the JSON response for a query result.

    *result* is a :class:`~cqrs_ddd_odata.query.QueryResult` or a mapping
    with ``value`` and optional ``count``/``nextLink``. ``@odata.count`` is
    included when *count* is set or the result carries a count.
    """
    if isinstance(result, Mapping):
        value = result.get("value")
        total = result.get("count")
        next_link = result.get("nextLink")
    else:
        value = result.value
        total = result.count
        next_link = result.next_link

    if isinstance(value, list):
        if count and total is None:
            total = len(value)
        body = serialize_collection(
            value,
            context=build_context_url(context.service_root, context.entity_set),
            count=total,
            next_link=next_link,
        )
    else:
        context_url = build_context_url(
            context.service_root, context.entity_set, context.key
        )
        if context.key is None:
            context_url += "/$entity"
        body = serialize_entity(value or {}, context=context_url)

    all_headers = default_headers(odata_version)
    all_headers.update(headers or {})
    return ODataResponse(status_code=status_code, headers=all_headers, body=body)
