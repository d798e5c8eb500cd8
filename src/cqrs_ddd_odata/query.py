"""
The full query pipeline over an in-memory collection.

Stage order is fixed::

    $filter -> $search -> $apply -> $compute -> (count) -> $orderby
            -> $skip/$top -> $expand -> $select

``@odata.count`` is sampled after every row-reducing stage and before
pagination, so it never depends on ``$top``/``$skip``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .apply import ApplyEngine
from .compute import ComputeEngine
from .filtering import FilterEngine
from .functions import build_default_registry
from .ordering import order_array
from .pagination import PageWindow, resolve_window
from .query_options import QueryOptions
from .search import SearchEngine
from .serialize import build_next_link
from .shape import DEFAULT_MAX_EXPAND_DEPTH, expand_data, project_array

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .evaluator import FunctionRegistry
    from .shape import ExpandResolver


@dataclass(frozen=True)
class QueryResult:
    """
    Outcome of :func:`apply_odata_query`.

    Attributes:
        value: The shaped page of rows.
        count: Total matching rows before pagination, when requested.
        next_link: Link to the following page, when one exists and a
            service root and entity set were supplied.
        window: The pagination window that produced ``value``.
    """

    value: list[Any]
    count: int | None = None
    next_link: str | None = None
    window: PageWindow | None = None

    @property
    def has_more(self) -> bool:
        return self.window is not None and self.window.has_more

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"value": self.value}
        if self.count is not None:
            result["count"] = self.count
        if self.next_link is not None:
            result["nextLink"] = self.next_link
        return result


def apply_odata_query(
    data: Sequence[Any],
    options: QueryOptions | Mapping[str, Any],
    *,
    registry: FunctionRegistry | None = None,
    resolvers: Mapping[str, ExpandResolver] | None = None,
    max_expand_depth: int = DEFAULT_MAX_EXPAND_DEPTH,
    max_top: int | None = None,
    default_top: int | None = None,
    service_root: str | None = None,
    entity_set: str | None = None,
) -> QueryResult:
    """
    Evaluate every query option in *options* against *data*.

    *options* may be a :class:`QueryOptions` or the equivalent dictionary
    (see :meth:`QueryOptions.from_dict`). The input rows are never mutated.

    Raises:
        SearchSyntaxError: If ``$search`` is malformed.
        ComputeExpressionError: If a ``$compute`` entry is malformed.
        ApplyTransformationError: If an ``$apply`` step is malformed.
    """
    if not isinstance(options, QueryOptions):
        options = QueryOptions.from_dict(dict(options))
    registry = registry or build_default_registry()
    aliases = options.parameter_aliases

    rows = FilterEngine(registry=registry).filter(data, options.filter, aliases)
    if options.search:
        rows = SearchEngine().search(rows, options.search)
    if options.apply:
        engine = ApplyEngine(
            registry=registry, resolvers=resolvers, max_expand_depth=max_expand_depth
        )
        rows = engine.apply(rows, options.apply, aliases)
    if options.compute:
        rows = ComputeEngine(registry=registry).compute(rows, options.compute, aliases)

    total = len(rows)
    rows = order_array(rows, options)
    window = resolve_window(
        total, options.top, options.skip, max_top=max_top, default_top=default_top
    )
    rows = rows[window.skip : window.end]

    if options.expand:
        rows = expand_data(
            rows,
            options,
            resolvers=resolvers,
            max_depth=max_expand_depth,
            registry=registry,
        )
    rows = project_array(rows, options)

    next_link = None
    if window.has_more and window.top and service_root is not None and entity_set:
        next_link = build_next_link(
            service_root, entity_set, window.top or 0, window.next_skip
        )

    return QueryResult(
        value=rows,
        count=total if options.count else None,
        next_link=next_link,
        window=window,
    )
