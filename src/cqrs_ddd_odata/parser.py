"""QueryStringParser — raw OData query parameters -> QueryOptions."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from .exceptions import QueryOptionError
from .query_options import ExpandItem, OrderByTerm, QueryOptions
from .utils import split_top_level

if TYPE_CHECKING:
    from collections.abc import Mapping

SYSTEM_QUERY_OPTIONS: frozenset[str] = frozenset(
    {
        "$select",
        "$orderby",
        "$filter",
        "$top",
        "$skip",
        "$count",
        "$expand",
        "$search",
        "$compute",
        "$apply",
        "$format",
        "$skiptoken",
        "$deltatoken",
        "$levels",
        "$schemaversion",
        "$index",
        "$id",
        "$conformance",
    }
)

_ORDERBY_TERM_RE = re.compile(
    r"^(?P<prop>.+?)(?:\s+(?P<dir>asc|desc))?$", re.IGNORECASE
)
_EXPAND_ITEM_RE = re.compile(r"^(?P<path>[^()]+?)\s*(?:\((?P<opts>.*)\))?$", re.DOTALL)


def _single(value: Any) -> str | None:
    """Collapse a multi-valued parameter to its first value."""
    if isinstance(value, list | tuple):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def normalise_query(query: Mapping[str, Any] | str) -> dict[str, str]:
    """Single-valued parameters keyed with lower-cased ``$`` names.

    The first value of a repeated or list-valued parameter wins.
    """
    if isinstance(query, str):
        pairs = parse_qsl(query.lstrip("?"), keep_blank_values=True)
    else:
        pairs = [(k, _single(v)) for k, v in query.items()]
    params: dict[str, str] = {}
    for key, value in pairs:
        if value is None:
            continue
        # System query option names are case-insensitive.
        name = key.lower() if key.startswith("$") else key
        params.setdefault(name, value)
    return params


def parse_select(raw: str | None) -> list[str]:
    if not raw:
        return []
    return split_top_level(raw, ",")


def parse_orderby(raw: str | None) -> list[OrderByTerm]:
    """Parse ``name desc, address/city`` into ordered terms."""
    if not raw:
        return []
    terms: list[OrderByTerm] = []
    for part in split_top_level(raw, ","):
        m = _ORDERBY_TERM_RE.match(part)
        if m is None:
            continue
        direction = (m.group("dir") or "asc").lower()
        terms.append(
            OrderByTerm(m.group("prop").strip(), "desc" if direction == "desc" else "asc")
        )
    return terms


def parse_expand(raw: str | None) -> list[ExpandItem]:
    """
    Parse ``$expand``.

    Plain paths become bare items; ``Orders($select=id;$top=2)`` carries
    nested options, which may themselves contain ``$expand``.
    """
    if not raw:
        return []
    items: list[ExpandItem] = []
    for part in split_top_level(raw, ","):
        m = _EXPAND_ITEM_RE.match(part)
        if m is None:
            raise QueryOptionError(f"Malformed $expand item: {part!r}", target="$expand")
        nested: QueryOptions | None = None
        if m.group("opts") is not None:
            params: dict[str, str] = {}
            for option in split_top_level(m.group("opts"), ";"):
                key, sep, value = option.partition("=")
                if not sep:
                    raise QueryOptionError(
                        f"Malformed nested option {option!r} in $expand",
                        target="$expand",
                    )
                params[key.strip()] = value.strip()
            nested = QueryStringParser().parse(params)
        items.append(ExpandItem(m.group("path").strip(), nested))
    return items


class QueryStringParser:
    """
    Parse a flat query mapping into :class:`QueryOptions`.

    Parsing is lenient: malformed ``$top``/``$skip`` become ``None`` and
    negative values are kept as given. Run :func:`validate_query_params`
    first when malformed input must be rejected.
    """

    def parse(self, query: Mapping[str, Any] | str) -> QueryOptions:
        """Return the options described by *query*."""
        params = self._normalise(query)
        aliases = {k: v for k, v in params.items() if k.startswith("@")}

        filter_raw = (params.get("$filter") or "").strip()
        search_raw = (params.get("$search") or "").strip()
        count_raw = params.get("$count")

        return QueryOptions(
            select=parse_select(params.get("$select")),
            orderby=parse_orderby(params.get("$orderby")),
            filter=filter_raw or None,
            top=self._int_param(params.get("$top")),
            skip=self._int_param(params.get("$skip")),
            count=count_raw is not None and count_raw.strip().lower() == "true",
            expand=parse_expand(params.get("$expand")),
            search=search_raw or None,
            compute=split_top_level(params.get("$compute") or "", ","),
            apply=split_top_level(params.get("$apply") or "", "/"),
            parameter_aliases=aliases,
        )

    def _normalise(self, query: Mapping[str, Any] | str) -> dict[str, str]:
        return normalise_query(query)

    def _int_param(self, v: Any) -> int | None:
        if v is None:
            return None
        try:
            return int(str(v).strip())
        except (TypeError, ValueError):
            return None


def parse_odata_query(query: Mapping[str, Any] | str) -> QueryOptions:
    """Parse a query mapping (or raw query string) into options."""
    return QueryStringParser().parse(query)


def validate_query_params(query: Mapping[str, Any], strict: bool = False) -> None:
    """
    Reject malformed system query options.

    Raises:
        QueryOptionError: For a non-integer or negative ``$top``/``$skip``,
            a ``$count`` other than ``true``/``false`` and, in strict mode,
            an unknown ``$``-prefixed option.
    """
    for key, raw in query.items():
        if not key.startswith("$"):
            continue
        name = key.lower()
        value = _single(raw)
        if name in ("$top", "$skip"):
            text = (value or "").strip()
            if not re.fullmatch(r"-?\d+", text):
                raise QueryOptionError(
                    f"Invalid value for {name}: {value!r} is not an integer",
                    target=name,
                )
            if int(text) < 0:
                raise QueryOptionError(
                    f"Invalid value for {name}: must be non-negative", target=name
                )
        elif name == "$count":
            if (value or "").strip().lower() not in ("true", "false"):
                raise QueryOptionError(
                    f"Invalid value for $count: {value!r}", target=name
                )
        elif strict and name not in SYSTEM_QUERY_OPTIONS:
            raise QueryOptionError(f"Unknown system query option {key!r}", target=key)
