"""
Parsed OData query options.

``QueryOptions`` is the canonical, immutable representation of a request's
query string. The engines consume it; the parser and the conformance gate
produce it. ``ExpandItem`` nests a full ``QueryOptions`` per navigation
branch, so the structure is recursive.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal

Direction = Literal["asc", "desc"]


@dataclass(frozen=True)
class OrderByTerm:
    """One ``$orderby`` term: a property path and a direction."""

    property: str
    direction: Direction = "asc"

    @property
    def descending(self) -> bool:
        return self.direction == "desc"

    def to_dict(self) -> dict[str, str]:
        return {"property": self.property, "direction": self.direction}


@dataclass(frozen=True)
class ExpandItem:
    """One ``$expand`` entry, optionally with nested query options."""

    path: str
    options: QueryOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path}
        if self.options is not None:
            result["options"] = self.options.to_dict()
        return result


@dataclass(frozen=True)
class QueryOptions:
    """
    Immutable container for OData system query options.

    Attributes:
        select: Property names to project, insertion order preserved.
        orderby: Composite sort key, evaluated left to right.
        filter: Raw ``$filter`` expression text.
        top: Maximum number of rows (unclamped; engines clamp negatives).
        skip: Number of rows to skip (unclamped).
        count: Whether a total-count annotation was requested.
        expand: Navigation properties to expand, each with nested options.
        search: Raw ``$search`` text.
        compute: ``$compute`` expressions, one derived field each.
        apply: ``$apply`` pipeline steps.
        parameter_aliases: ``@name`` -> literal text used inside ``filter``.
    """

    select: list[str] = field(default_factory=list)
    orderby: list[OrderByTerm] = field(default_factory=list)
    filter: str | None = None
    top: int | None = None
    skip: int | None = None
    count: bool = False
    expand: list[ExpandItem] = field(default_factory=list)
    search: str | None = None
    compute: list[str] = field(default_factory=list)
    apply: list[str] = field(default_factory=list)
    parameter_aliases: dict[str, str] = field(default_factory=dict)

    def with_pagination(
        self,
        top: int | None = None,
        skip: int | None = None,
    ) -> QueryOptions:
        """Return a copy with updated pagination parameters."""
        return replace(
            self,
            top=top if top is not None else self.top,
            skip=skip if skip is not None else self.skip,
        )

    def with_ordering(self, *terms: OrderByTerm) -> QueryOptions:
        """Return a copy with the ordering replaced."""
        return replace(self, orderby=list(terms))

    def without(self, *names: str) -> QueryOptions:
        """Return a copy with the named options reset to their defaults."""
        defaults = QueryOptions()
        return replace(self, **{n: getattr(defaults, n) for n in names})

    def merge(self, other: QueryOptions) -> QueryOptions:
        """
        Merge two ``QueryOptions`` instances.

        - Filters are combined with ``and``.
        - ``other``'s top/skip/search override ``self``'s if set.
        - List options are concatenated (``other`` appended).
        """
        if self.filter and other.filter:
            merged_filter: str | None = f"({self.filter}) and ({other.filter})"
        else:
            merged_filter = other.filter or self.filter

        return QueryOptions(
            select=list(self.select) + list(other.select),
            orderby=list(self.orderby) + list(other.orderby),
            filter=merged_filter,
            top=other.top if other.top is not None else self.top,
            skip=other.skip if other.skip is not None else self.skip,
            count=other.count or self.count,
            expand=list(self.expand) + list(other.expand),
            search=other.search or self.search,
            compute=list(self.compute) + list(other.compute),
            apply=list(self.apply) + list(other.apply),
            parameter_aliases={**self.parameter_aliases, **other.parameter_aliases},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible dictionary."""
        result: dict[str, Any] = {}
        if self.select:
            result["select"] = list(self.select)
        if self.orderby:
            result["orderby"] = [t.to_dict() for t in self.orderby]
        if self.filter is not None:
            result["filter"] = self.filter
        if self.top is not None:
            result["top"] = self.top
        if self.skip is not None:
            result["skip"] = self.skip
        if self.count:
            result["count"] = True
        if self.expand:
            result["expand"] = [e.to_dict() for e in self.expand]
        if self.search is not None:
            result["search"] = self.search
        if self.compute:
            result["compute"] = list(self.compute)
        if self.apply:
            result["apply"] = list(self.apply)
        if self.parameter_aliases:
            result["parameterAliases"] = dict(self.parameter_aliases)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryOptions:
        """
        Build options from a plain dictionary.

        Accepts both the snake_case field names and the camelCase shape
        (``parameterAliases``); ``orderby`` entries may be dicts,
        ``OrderByTerm`` instances or ``"prop desc"`` strings, ``expand``
        entries may be dicts, ``ExpandItem`` instances or bare paths.
        """
        return cls(**_coerce_fields(data))


def _coerce_orderby(raw: Any) -> list[OrderByTerm]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    terms: list[OrderByTerm] = []
    for item in raw:
        if isinstance(item, OrderByTerm):
            terms.append(item)
        elif isinstance(item, dict):
            direction = str(item.get("direction", "asc")).lower()
            terms.append(
                OrderByTerm(item["property"], "desc" if direction == "desc" else "asc")
            )
        elif isinstance(item, str) and item.strip():
            parts = item.split()
            desc = len(parts) > 1 and parts[1].lower() == "desc"
            terms.append(OrderByTerm(parts[0], "desc" if desc else "asc"))
    return terms


def _coerce_expand(raw: Any) -> list[ExpandItem]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [p for p in raw.split(",") if p.strip()]
    items: list[ExpandItem] = []
    for item in raw:
        if isinstance(item, ExpandItem):
            items.append(item)
        elif isinstance(item, dict):
            nested = item.get("options")
            if isinstance(nested, dict):
                nested = QueryOptions.from_dict(nested)
            items.append(ExpandItem(item["path"], nested))
        else:
            items.append(ExpandItem(str(item).strip()))
    return items


def _coerce_fields(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        if key in ("parameterAliases", "parameter_aliases"):
            out["parameter_aliases"] = dict(value or {})
        elif key == "orderby":
            out["orderby"] = _coerce_orderby(value)
        elif key == "expand":
            out["expand"] = _coerce_expand(value)
        elif key in ("select", "compute", "apply"):
            out[key] = [value] if isinstance(value, str) else list(value or [])
        else:
            out[key] = value
    return out


class ConformanceLevel(str, Enum):
    """Ordered OData conformance tiers."""

    MINIMAL = "minimal"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def __ge__(self, other: object) -> bool:
        if isinstance(other, ConformanceLevel):
            return self.rank >= other.rank
        return NotImplemented

    def __gt__(self, other: object) -> bool:
        if isinstance(other, ConformanceLevel):
            return self.rank > other.rank
        return NotImplemented

    def __le__(self, other: object) -> bool:
        if isinstance(other, ConformanceLevel):
            return self.rank <= other.rank
        return NotImplemented

    def __lt__(self, other: object) -> bool:
        if isinstance(other, ConformanceLevel):
            return self.rank < other.rank
        return NotImplemented


_LEVEL_ORDER = [
    ConformanceLevel.MINIMAL,
    ConformanceLevel.INTERMEDIATE,
    ConformanceLevel.ADVANCED,
]


@dataclass(frozen=True)
class ConformanceOptions(QueryOptions):
    """
    Query options tagged with the conformance level they run under.

    ``key`` selects a single entity instead of the whole collection.
    """

    conformance: ConformanceLevel = ConformanceLevel.MINIMAL
    key: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.conformance, ConformanceLevel):
            # Local import: conformance.py imports this module.
            from .conformance import validate_conformance_level

            object.__setattr__(
                self, "conformance", validate_conformance_level(self.conformance)
            )

    @property
    def query_options(self) -> QueryOptions:
        """The plain ``QueryOptions`` part, without conformance/key."""
        return QueryOptions(
            select=self.select,
            orderby=self.orderby,
            filter=self.filter,
            top=self.top,
            skip=self.skip,
            count=self.count,
            expand=self.expand,
            search=self.search,
            compute=self.compute,
            apply=self.apply,
            parameter_aliases=self.parameter_aliases,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConformanceOptions:
        return cls(**_coerce_fields(data))
