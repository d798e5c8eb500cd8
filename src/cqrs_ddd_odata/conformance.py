"""
OData conformance levels.

Each level honours a fixed, monotonically growing set of system query
options::

    minimal        $select
    intermediate   + $filter $orderby $top $skip $count $expand
    advanced       + $search $compute $apply

Options above the active level are accepted and ignored. Function,
action and batch invocation is rejected outright at ``minimal``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import (
    EntityNotFoundError,
    FeatureNotSupportedError,
    InvalidConformanceLevelError,
)
from .query import apply_odata_query
from .query_options import ConformanceLevel, ConformanceOptions, QueryOptions
from .serialize import build_context_url, serialize_collection, serialize_entity
from .shape import DEFAULT_MAX_EXPAND_DEPTH

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .evaluator import FunctionRegistry
    from .shape import ExpandResolver

logger = logging.getLogger(__name__)

_MINIMAL_OPTIONS = ("$select",)
_INTERMEDIATE_OPTIONS = (
    *_MINIMAL_OPTIONS,
    "$expand",
    "$filter",
    "$orderby",
    "$top",
    "$skip",
    "$count",
)
_ADVANCED_OPTIONS = (*_INTERMEDIATE_OPTIONS, "$search", "$compute", "$apply")

SUPPORTED_QUERY_OPTIONS: dict[ConformanceLevel, tuple[str, ...]] = {
    ConformanceLevel.MINIMAL: _MINIMAL_OPTIONS,
    ConformanceLevel.INTERMEDIATE: _INTERMEDIATE_OPTIONS,
    ConformanceLevel.ADVANCED: _ADVANCED_OPTIONS,
}

# System query option -> QueryOptions attribute
OPTION_FIELDS: dict[str, str] = {
    "$select": "select",
    "$expand": "expand",
    "$filter": "filter",
    "$orderby": "orderby",
    "$top": "top",
    "$skip": "skip",
    "$count": "count",
    "$search": "search",
    "$compute": "compute",
    "$apply": "apply",
}

# Capability -> lowest level providing it
CAPABILITIES: dict[str, ConformanceLevel] = {
    "Entity set access": ConformanceLevel.MINIMAL,
    "Single entity access by key": ConformanceLevel.MINIMAL,
    "Property projection": ConformanceLevel.MINIMAL,
    "Navigation properties": ConformanceLevel.INTERMEDIATE,
    "Filtering": ConformanceLevel.INTERMEDIATE,
    "Sorting": ConformanceLevel.INTERMEDIATE,
    "Paging": ConformanceLevel.INTERMEDIATE,
    "Counting": ConformanceLevel.INTERMEDIATE,
    "ETags": ConformanceLevel.INTERMEDIATE,
    "Custom functions": ConformanceLevel.INTERMEDIATE,
    "Custom actions": ConformanceLevel.INTERMEDIATE,
    "Batch requests": ConformanceLevel.INTERMEDIATE,
    "Full-text search": ConformanceLevel.ADVANCED,
    "Computed properties": ConformanceLevel.ADVANCED,
    "Data aggregation": ConformanceLevel.ADVANCED,
}

_FEATURES: dict[ConformanceLevel, tuple[str, ...]] = {
    ConformanceLevel.MINIMAL: ("read", "metadata", "service-document", "select"),
    ConformanceLevel.INTERMEDIATE: (
        "filter",
        "orderby",
        "top",
        "skip",
        "count",
        "expand",
        "format",
    ),
    ConformanceLevel.ADVANCED: (
        "search",
        "compute",
        "apply",
        "batch",
        "any",
        "all",
        "cast",
        "isof",
    ),
}

INVOCATION_KINDS = ("function", "action", "function-import", "action-import", "batch")

_LEVELS = list(ConformanceLevel)


def validate_conformance_level(level: Any) -> ConformanceLevel:
    """
    Return *level* as a :class:`ConformanceLevel`.

    Raises:
        InvalidConformanceLevelError: If it is not one of the three levels.
    """
    if isinstance(level, ConformanceLevel):
        return level
    try:
        return ConformanceLevel(level)
    except ValueError as exc:
        raise InvalidConformanceLevelError(level) from exc


def get_supported_query_options(level: ConformanceLevel | str) -> list[str]:
    """System query options honoured at *level*."""
    return list(SUPPORTED_QUERY_OPTIONS[validate_conformance_level(level)])


def check_query_option_support(level: ConformanceLevel | str, option: str) -> bool:
    """Whether *option* (with or without ``$``) is honoured at *level*."""
    name = option if option.startswith("$") else f"${option}"
    return name.lower() in get_supported_query_options(level)


def get_available_features(level: ConformanceLevel | str) -> list[str]:
    """Feature keywords available at *level*, lower levels included."""
    current = validate_conformance_level(level)
    features: list[str] = []
    for lvl in _LEVELS:
        if lvl <= current:
            features.extend(f for f in _FEATURES[lvl] if f not in features)
    return features


def is_feature_supported(feature: str, level: ConformanceLevel | str) -> bool:
    return feature in get_available_features(level)


@dataclass(frozen=True)
class ConformanceReport:
    """Self-description of a level against full OData compliance."""

    level: ConformanceLevel
    missing_features: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.missing_features

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "missingFeatures": list(self.missing_features)}


def validate_conformance(level: ConformanceLevel | str) -> ConformanceReport:
    """List the capabilities a service at *level* does not offer."""
    current = validate_conformance_level(level)
    missing = [name for name, needed in CAPABILITIES.items() if needed > current]
    return ConformanceReport(current, missing)


def negotiate_conformance_level(
    requested: str | None,
    supported: Sequence[ConformanceLevel | str] = tuple(ConformanceLevel),
    default: ConformanceLevel | str = ConformanceLevel.MINIMAL,
) -> ConformanceLevel:
    """
    Pick the level to serve a request at.

    The requested level is used when supported; otherwise the highest
    supported level below it. Unknown or absent requests get *default*.
    """
    fallback = validate_conformance_level(default)
    if not requested:
        return fallback
    try:
        wanted = ConformanceLevel(requested.strip().lower())
    except ValueError:
        return fallback
    offered = {validate_conformance_level(s) for s in supported}
    for lvl in reversed(_LEVELS):
        if lvl <= wanted and lvl in offered:
            return lvl
    return fallback


def compute_etag(entity: Mapping[str, Any]) -> str:
    """Weak ETag over the entity's content (annotations excluded)."""
    content = {k: v for k, v in entity.items() if not str(k).startswith("@")}
    canonical = json.dumps(content, sort_keys=True, default=str)
    digest = hashlib.sha1(canonical.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f'W/"{digest}"'


class ConformanceGate:
    """
    Restrict query evaluation to what a conformance level honours.

    Usage::

        gate = ConformanceGate("intermediate", service_root="https://svc/odata",
                               entity_set="Products")
        body = gate.query(products, ConformanceOptions(filter="price gt 10"))
    """

    def __init__(
        self,
        level: ConformanceLevel | str = ConformanceLevel.MINIMAL,
        *,
        service_root: str = "",
        entity_set: str | None = None,
        key_property: str = "id",
        registry: FunctionRegistry | None = None,
        resolvers: Mapping[str, ExpandResolver] | None = None,
        max_expand_depth: int = DEFAULT_MAX_EXPAND_DEPTH,
        max_top: int | None = None,
        default_top: int | None = None,
    ) -> None:
        self.level = validate_conformance_level(level)
        self.service_root = service_root
        self.entity_set = entity_set
        self.key_property = key_property
        self.registry = registry
        self.resolvers = resolvers
        self.max_expand_depth = max_expand_depth
        self.max_top = max_top
        self.default_top = default_top

    @property
    def supported_query_options(self) -> list[str]:
        return get_supported_query_options(self.level)

    def allows(self, option: str) -> bool:
        return check_query_option_support(self.level, option)

    # -- option filtering ----------------------------------------------------

    def unsupported_options(self, options: QueryOptions) -> list[str]:
        """System query options set on *options* that this level ignores."""
        defaults = QueryOptions()
        return [
            name
            for name, attr in OPTION_FIELDS.items()
            if not self.allows(name)
            and getattr(options, attr) != getattr(defaults, attr)
        ]

    def restrict(self, options: QueryOptions) -> QueryOptions:
        """Return *options* with every option above this level reset."""
        ignored = self.unsupported_options(options)
        if not ignored:
            return options
        logger.debug(
            "Ignoring %s at %s conformance", ", ".join(ignored), self.level.value
        )
        return options.without(*(OPTION_FIELDS[name] for name in ignored))

    def ensure_invocation_allowed(self, kind: str, name: str | None = None) -> None:
        """
        Reject function, action and batch invocation at ``minimal``.

        Raises:
            FeatureNotSupportedError: When invocation is not allowed.
        """
        if kind not in INVOCATION_KINDS:
            raise ValueError(f"Unknown invocation kind: {kind}")
        if self.level is ConformanceLevel.MINIMAL:
            label = kind.replace("-", " ").capitalize()
            feature = f"{label} '{name}'" if name else label
            raise FeatureNotSupportedError(feature, self.level.value)

    # -- evaluation ----------------------------------------------------------

    def etag(self, entity: Mapping[str, Any]) -> str | None:
        if self.level is ConformanceLevel.MINIMAL:
            return None
        return compute_etag(entity)

    def query(
        self,
        data: Sequence[Any],
        options: ConformanceOptions | QueryOptions | Mapping[str, Any],
        *,
        key: Any = None,
    ) -> dict[str, Any]:
        """
        Evaluate *options* at this level and return the JSON envelope.

        With a key (argument or ``ConformanceOptions.key``) a single entity
        is returned.

        Raises:
            EntityNotFoundError: If no row has the requested key.
        """
        if not isinstance(options, QueryOptions):
            options = ConformanceOptions.from_dict(dict(options))
        if key is None and isinstance(options, ConformanceOptions):
            key = options.key
        if isinstance(options, ConformanceOptions):
            options = options.query_options
        options = self.restrict(options)
        entity_set = self.entity_set or ""

        if key is not None:
            entity = next(
                (
                    row
                    for row in data
                    if isinstance(row, dict) and row.get(self.key_property) == key
                ),
                None,
            )
            if entity is None:
                raise EntityNotFoundError(self.entity_set, key)
            # Single-entity requests ignore collection-only options.
            single = options.without(
                "filter", "search", "apply", "orderby", "top", "skip", "count"
            )
            shaped = apply_odata_query(
                [entity],
                single,
                registry=self.registry,
                resolvers=self.resolvers,
                max_expand_depth=self.max_expand_depth,
            ).value[0]
            return serialize_entity(
                shaped,
                context=build_context_url(self.service_root, entity_set, key),
                etag=self.etag(entity),
            )

        result = apply_odata_query(
            data,
            options,
            registry=self.registry,
            resolvers=self.resolvers,
            max_expand_depth=self.max_expand_depth,
            max_top=self.max_top,
            default_top=self.default_top,
            service_root=self.service_root,
            entity_set=self.entity_set,
        )
        return serialize_collection(
            result.value,
            context=build_context_url(self.service_root, entity_set),
            count=result.count,
            next_link=result.next_link,
        )


def query_with_conformance(
    data: Sequence[Any],
    options: ConformanceOptions | Mapping[str, Any],
    *,
    service_root: str = "",
    entity_set: str | None = None,
    key_property: str = "id",
    registry: FunctionRegistry | None = None,
    resolvers: Mapping[str, ExpandResolver] | None = None,
) -> dict[str, Any]:
    """
    Evaluate *options* at the conformance level they carry.

    Returns the envelope ``{"@odata.context", "value", "@odata.count"?}``.
    """
    if not isinstance(options, ConformanceOptions):
        options = ConformanceOptions.from_dict(dict(options))
    gate = ConformanceGate(
        options.conformance,
        service_root=service_root,
        entity_set=entity_set,
        key_property=key_property,
        registry=registry,
        resolvers=resolvers,
    )
    return gate.query(data, options)
