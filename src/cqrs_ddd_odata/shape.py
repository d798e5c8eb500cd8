"""
Result shaping: ``$select`` projection and recursive ``$expand``.

Expansion is bounded by an explicit depth counter. Levels beyond
``max_depth`` are left as they are on the entity, and the levels already
expanded are kept.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .filtering import FilterEngine
from .functions import build_default_registry
from .ordering import order_array
from .pagination import paginate

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from .evaluator import FunctionRegistry
    from .query_options import ExpandItem, QueryOptions

    ExpandResolver = Callable[[dict[str, Any], ExpandItem], Any]

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXPAND_DEPTH = 3


# ---------------------------------------------------------------------------
# $select
# ---------------------------------------------------------------------------


def _is_annotation(key: str) -> bool:
    return key.startswith("@")


def apply_select(entity: Any, select: Iterable[str] | None = None) -> Any:
    """
    Project *entity* onto the selected properties.

    Without a selection a shallow copy is returned. Unknown names are
    dropped silently, ``*`` keeps every property, ``a/b`` keeps the nested
    property ``b`` of ``a``. Instance annotations (``@odata.etag``,
    ``@search.score``, ``prop@odata.count``) ride along with what they
    annotate.
    """
    if not isinstance(entity, dict):
        return entity
    names = [s.strip() for s in (select or []) if s and s.strip()]
    if not names or "*" in names:
        return dict(entity)

    result: dict[str, Any] = {}
    for name in names:
        head, _, rest = name.partition("/")
        if head not in entity:
            continue
        if rest and isinstance(entity[head], dict):
            nested = apply_select(entity[head], [rest])
            existing = result.get(head)
            if isinstance(existing, dict):
                nested = {**existing, **nested}
            result[head] = nested
        else:
            result[head] = entity[head]

    for key, value in entity.items():
        if _is_annotation(key):
            result[key] = value
        elif "@" in key and key.split("@", 1)[0] in result:
            result[key] = value
    return result


def project_array(rows: Sequence[Any], options: QueryOptions) -> list[Any]:
    """Map :func:`apply_select` over *rows*."""
    return [apply_select(row, options.select) for row in rows]


# ---------------------------------------------------------------------------
# $expand
# ---------------------------------------------------------------------------


def _shape_collection(
    rows: Sequence[Any],
    options: QueryOptions,
    engine: FilterEngine,
) -> tuple[list[Any], int]:
    working = engine.filter(rows, options.filter, options.parameter_aliases)
    count = len(working)
    working = order_array(working, options)
    working = paginate(working, options.top, options.skip)
    return working, count


def expand_data(
    data: Any,
    options: QueryOptions,
    *,
    resolvers: Mapping[str, ExpandResolver] | None = None,
    max_depth: int = DEFAULT_MAX_EXPAND_DEPTH,
    registry: FunctionRegistry | None = None,
) -> Any:
    """
    Populate the navigation properties named by ``options.expand``.

    For each expand item the value comes from ``resolvers[path](entity,
    item)`` when a resolver is configured, else from the entity itself.
    Unresolved navigation properties are set to ``None``. Nested options
    (filter, orderby, top, skip, count, expand, select) are applied to the
    resolved value.

    Args:
        data: A single entity or a list of entities.
        options: Options whose ``expand`` list drives the expansion.
        resolvers: Navigation property name -> resolver callable.
        max_depth: Maximum number of nested expansion levels.
        registry: Function registry for nested filters.
    """
    if not options.expand:
        return data
    engine = FilterEngine(registry=registry or build_default_registry())
    return _expand(data, options.expand, resolvers or {}, max_depth, 0, engine)


def _expand(
    data: Any,
    items: Sequence[ExpandItem],
    resolvers: Mapping[str, ExpandResolver],
    max_depth: int,
    depth: int,
    engine: FilterEngine,
) -> Any:
    if isinstance(data, list | tuple):
        return [_expand(row, items, resolvers, max_depth, depth, engine) for row in data]
    if not isinstance(data, dict) or not items:
        return data
    if depth >= max_depth:
        logger.warning(
            "Maximum $expand depth %d reached; leaving %s unexpanded",
            max_depth,
            ", ".join(item.path for item in items),
        )
        return data

    entity = dict(data)
    for item in items:
        resolver = resolvers.get(item.path)
        if resolver is not None:
            value = resolver(data, item)
        else:
            value = data.get(item.path)

        if value is None:
            entity[item.path] = None
            continue

        nested = item.options
        if nested is None:
            entity[item.path] = value
            continue

        if isinstance(value, list | tuple):
            rows, count = _shape_collection(value, nested, engine)
            if nested.count:
                entity[f"{item.path}@odata.count"] = count
            rows = _expand(rows, nested.expand, resolvers, max_depth, depth + 1, engine)
            entity[item.path] = [apply_select(r, nested.select) for r in rows]
        else:
            single = _expand(value, nested.expand, resolvers, max_depth, depth + 1, engine)
            entity[item.path] = apply_select(single, nested.select)
    return entity
