"""
``$apply`` transformation pipeline.

Steps run left to right, each consuming the previous step's output::

    groupby((categoryId), aggregate(price with sum as total), having(total gt 15))
    aggregate(price with average as avg, $count as n)
    filter(price gt 10)/orderby(price desc)/top(2)/count()

Transformations nested in ``groupby`` after its property list (comma or
``/`` separated) run over the grouped rows. Unlike ``$filter``, malformed
or unknown steps raise.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from .compute import ComputeEngine
from .evaluator import ExpressionEvaluator, FunctionRegistry
from .exceptions import (
    ApplyTransformationError,
    FilterSyntaxError,
    UnsupportedTransformationError,
)
from .expression import parse_expression
from .filtering import FilterEngine
from .functions import build_default_registry
from .ordering import order_array
from .pagination import paginate
from .parser import parse_expand, parse_orderby, parse_select
from .query_options import QueryOptions
from .search import SearchEngine
from .shape import DEFAULT_MAX_EXPAND_DEPTH, apply_select, expand_data
from .utils import is_number, resolve_path, split_top_level, strip_outer_parens

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .ast import Node
    from .shape import ExpandResolver

logger = logging.getLogger(__name__)

_STEP_RE = re.compile(
    r"^(?P<name>[A-Za-z_$]\w*)\s*(?:\((?P<args>.*)\))?$", re.DOTALL
)
_AGGREGATE_RE = re.compile(
    r"^(?P<expr>.+?)\s+with\s+(?P<method>\w+)\s+as\s+(?P<alias>[A-Za-z_]\w*)$",
    re.DOTALL | re.IGNORECASE,
)
_COUNT_RE = re.compile(r"^\$count\s+as\s+(?P<alias>[A-Za-z_]\w*)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Aggregation methods
# ---------------------------------------------------------------------------


def _numbers(values: list[Any]) -> list[int | float]:
    return [v for v in values if is_number(v)]


def _sum(values: list[Any]) -> Any:
    return sum(_numbers(values))


def _average(values: list[Any]) -> Any:
    nums = _numbers(values)
    return sum(nums) / len(nums) if nums else None


def _min(values: list[Any]) -> Any:
    present = [v for v in values if v is not None]
    try:
        return min(present) if present else None
    except TypeError:
        return None


def _max(values: list[Any]) -> Any:
    present = [v for v in values if v is not None]
    try:
        return max(present) if present else None
    except TypeError:
        return None


def _count(values: list[Any]) -> Any:
    return sum(1 for v in values if v is not None)


def _countdistinct(values: list[Any]) -> Any:
    return len({_hashable(v) for v in values if v is not None})


AGGREGATION_METHODS: dict[str, Callable[[list[Any]], Any]] = {
    "sum": _sum,
    "average": _average,
    "avg": _average,
    "min": _min,
    "max": _max,
    "count": _count,
    "countdistinct": _countdistinct,
}


class _Aggregation:
    def __init__(self, alias: str, method: str, node: Node | None) -> None:
        self.alias = alias
        self.method = method
        self.node = node

    def compute(self, rows: Sequence[Any], evaluator: ExpressionEvaluator) -> Any:
        if self.node is None:
            return len(rows)
        values = [evaluator.evaluate(self.node, row) for row in rows]
        return AGGREGATION_METHODS[self.method](values)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ApplyEngine:
    """
    Interpret an ``$apply`` pipeline over in-memory rows.

    Usage::

        engine = ApplyEngine(registry=build_default_registry())
        totals = engine.apply(
            rows, ["groupby((categoryId), aggregate(price with sum as total))"]
        )
    """

    def __init__(
        self,
        *,
        registry: FunctionRegistry,
        resolvers: Mapping[str, ExpandResolver] | None = None,
        max_expand_depth: int = DEFAULT_MAX_EXPAND_DEPTH,
    ) -> None:
        self.registry = registry
        self.resolvers = resolvers
        self.max_expand_depth = max_expand_depth
        self._filters = FilterEngine(registry=registry)
        self._computes = ComputeEngine(registry=registry)
        self._searches = SearchEngine()
        self._transformations: dict[
            str, Callable[[list[Any], str, Mapping[str, str]], list[Any]]
        ] = {
            "groupby": self._groupby,
            "aggregate": self._aggregate,
            "filter": self._filter,
            "having": self._having,
            "orderby": self._orderby,
            "top": self._top,
            "skip": self._skip,
            "count": self._count,
            "compute": self._compute,
            "expand": self._expand,
            "select": self._select,
            "search": self._search,
            "identity": self._identity,
        }

    @property
    def transformations(self) -> list[str]:
        return sorted(self._transformations)

    def apply(
        self,
        rows: Sequence[Any],
        steps: Sequence[str] | str,
        aliases: Mapping[str, str] | None = None,
    ) -> list[Any]:
        """
        Run *steps* over *rows*.

        Raises:
            ApplyTransformationError: If a step is malformed.
            UnsupportedTransformationError: If a step name is unknown.
        """
        if isinstance(steps, str):
            steps = split_top_level(steps, "/")
        working = list(rows)
        for step in steps:
            working = self.apply_step(working, step, aliases or {})
        return working

    def apply_step(
        self, rows: list[Any], step: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        name, args = self._split_step(step)
        handler = self._transformations.get(name.lower())
        if handler is None:
            raise UnsupportedTransformationError(name, list(self._transformations))
        logger.debug("Applying $apply step %s over %d rows", name, len(rows))
        return handler(rows, args, aliases)

    def _split_step(self, step: str) -> tuple[str, str]:
        m = _STEP_RE.match(step.strip())
        if m is None:
            raise ApplyTransformationError(step, "expected name(arguments)")
        return m.group("name"), (m.group("args") or "").strip()

    # -- aggregation ---------------------------------------------------------

    def _parse_aggregations(self, args: str) -> list[_Aggregation]:
        if not args:
            raise ApplyTransformationError("aggregate()", "no aggregations given")
        aggregations = []
        for part in split_top_level(args, ","):
            counted = _COUNT_RE.match(part)
            if counted:
                aggregations.append(_Aggregation(counted.group("alias"), "count", None))
                continue
            m = _AGGREGATE_RE.match(part)
            if m is None:
                raise ApplyTransformationError(
                    f"aggregate({args})",
                    f"expected 'property with method as alias', got {part!r}",
                )
            method = m.group("method").lower()
            if method not in AGGREGATION_METHODS:
                raise ApplyTransformationError(
                    f"aggregate({args})", f"unknown aggregation method {method!r}"
                )
            try:
                node = parse_expression(m.group("expr"))
                self.registry.check(node)
            except FilterSyntaxError as exc:
                raise ApplyTransformationError(f"aggregate({args})", exc.message) from exc
            aggregations.append(_Aggregation(m.group("alias"), method, node))
        return aggregations

    def _aggregate_row(
        self,
        rows: Sequence[Any],
        aggregations: list[_Aggregation],
        aliases: Mapping[str, str],
    ) -> dict[str, Any]:
        evaluator = ExpressionEvaluator(self.registry, aliases=aliases)
        return {a.alias: a.compute(rows, evaluator) for a in aggregations}

    def _aggregate(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return [self._aggregate_row(rows, self._parse_aggregations(args), aliases)]

    def _groupby(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        parts = split_top_level(args, ",")
        if not parts or not parts[0].startswith("("):
            raise ApplyTransformationError(
                f"groupby({args})", "expected a parenthesised property list"
            )
        properties = split_top_level(strip_outer_parens(parts[0]), ",")
        if not properties:
            raise ApplyTransformationError(f"groupby({args})", "no grouping properties")

        nested: list[str] = []
        for part in parts[1:]:
            nested.extend(split_top_level(part, "/"))

        aggregations: list[_Aggregation] = []
        if nested and self._split_step(nested[0])[0].lower() == "aggregate":
            aggregations = self._parse_aggregations(self._split_step(nested[0])[1])
            nested = nested[1:]

        groups: dict[tuple[Any, ...], list[Any]] = {}
        for row in rows:
            key = tuple(_hashable(resolve_path(row, p)) for p in properties)
            groups.setdefault(key, []).append(row)

        grouped: list[Any] = []
        for members in groups.values():
            out: dict[str, Any] = {}
            for prop in properties:
                _assign_path(out, prop, resolve_path(members[0], prop))
            if aggregations:
                out.update(self._aggregate_row(members, aggregations, aliases))
            grouped.append(out)

        for step in nested:
            grouped = self.apply_step(grouped, step, aliases)
        return grouped

    # -- row-level steps -----------------------------------------------------

    def _filter(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return self._matching("filter", rows, args, aliases)

    def _having(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return self._matching("having", rows, args, aliases)

    def _matching(
        self, name: str, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        if not args:
            raise ApplyTransformationError(f"{name}()", "missing predicate")
        try:
            matches = self._filters.predicate(args, aliases)
        except FilterSyntaxError as exc:
            raise ApplyTransformationError(f"{name}({args})", exc.message) from exc
        return [row for row in rows if matches(row)]

    def _orderby(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        terms = parse_orderby(args)
        if not terms:
            raise ApplyTransformationError("orderby()", "missing sort terms")
        return order_array(rows, QueryOptions(orderby=terms))

    def _int_arg(self, name: str, args: str) -> int:
        try:
            value = int(args)
        except ValueError as exc:
            raise ApplyTransformationError(
                f"{name}({args})", "expected an integer"
            ) from exc
        if value < 0:
            raise ApplyTransformationError(f"{name}({args})", "must be non-negative")
        return value

    def _top(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return paginate(rows, top=self._int_arg("top", args))

    def _skip(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return paginate(rows, skip=self._int_arg("skip", args))

    def _count(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return [{"count": len(rows)}]

    def _compute(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        entries = split_top_level(args, ",")
        if not entries:
            raise ApplyTransformationError("compute()", "no expressions given")
        return self._computes.compute(rows, entries, aliases)

    def _expand(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        items = parse_expand(args)
        if not items:
            raise ApplyTransformationError("expand()", "no navigation properties given")
        result = expand_data(
            rows,
            QueryOptions(expand=items),
            resolvers=self.resolvers,
            max_depth=self.max_expand_depth,
            registry=self.registry,
        )
        return list(result)

    def _select(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        names = parse_select(args)
        if not names:
            raise ApplyTransformationError("select()", "no properties given")
        return [apply_select(row, names) for row in rows]

    def _search(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return self._searches.search(rows, args)

    def _identity(
        self, rows: list[Any], args: str, aliases: Mapping[str, str]
    ) -> list[Any]:
        return list(rows)


def _hashable(value: Any) -> Any:
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, dict):
        return tuple(sorted((k, _hashable(v)) for k, v in value.items()))
    if isinstance(value, list):
        return tuple(_hashable(v) for v in value)
    return value


def _assign_path(target: dict[str, Any], path: str, value: Any) -> None:
    head, _, rest = path.partition("/")
    if not rest:
        target[head] = value
        return
    nested = target.setdefault(head, {})
    _assign_path(nested, rest, value)


def apply_data(
    rows: Sequence[Any],
    options: QueryOptions,
    *,
    registry: FunctionRegistry | None = None,
    resolvers: Mapping[str, ExpandResolver] | None = None,
) -> list[Any]:
    """Run ``options.apply`` over *rows*."""
    if not options.apply:
        return list(rows)
    engine = ApplyEngine(
        registry=registry or build_default_registry(), resolvers=resolvers
    )
    return engine.apply(rows, options.apply, options.parameter_aliases)
