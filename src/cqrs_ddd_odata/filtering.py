"""
``$filter`` evaluation over in-memory collections.

Unlike search and apply, filtering degrades leniently: an expression that
does not parse or calls an unknown function matches no rows, and a
warning is logged instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .evaluator import ExpressionEvaluator, FunctionRegistry
from .exceptions import FilterSyntaxError
from .expression import parse_expression
from .functions import build_default_registry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from .ast import Node
    from .query_options import QueryOptions

logger = logging.getLogger(__name__)


class FilterEngine:
    """
    Evaluate ``$filter`` expressions against records.

    A registry MUST be provided explicitly; use
    :func:`~cqrs_ddd_odata.functions.build_default_registry` for the
    built-in function set.

    Usage::

        engine = FilterEngine(registry=build_default_registry())
        adults = engine.filter(rows, "age ge 18")
    """

    def __init__(self, *, registry: FunctionRegistry) -> None:
        self.registry = registry

    def compile(self, expression: str) -> Node:
        """
        Parse *expression* and check its function calls.

        Raises:
            FilterSyntaxError: On malformed syntax or unknown functions.
        """
        node = parse_expression(expression)
        self.registry.check(node, expression)
        return node

    def predicate(
        self,
        expression: str,
        aliases: Mapping[str, str] | None = None,
    ) -> Callable[[Any], bool]:
        """
        Return a callable ``row -> bool`` for *expression*.

        Raises:
            FilterSyntaxError: On malformed syntax or unknown functions.
        """
        node = self.compile(expression)
        evaluator = ExpressionEvaluator(self.registry, aliases=aliases)
        return lambda row: evaluator.matches(node, row)

    def filter(
        self,
        rows: Sequence[Any],
        expression: str | None,
        aliases: Mapping[str, str] | None = None,
    ) -> list[Any]:
        """
        Keep the rows for which *expression* evaluates to ``True``.

        An empty or missing expression keeps every row. An expression that
        fails to compile keeps none.
        """
        if expression is None or not expression.strip():
            return list(rows)
        try:
            matches = self.predicate(expression, aliases)
        except FilterSyntaxError as exc:
            logger.warning("Ignoring unsupported $filter %r: %s", expression, exc)
            return []
        return [row for row in rows if matches(row)]


def filter_array(
    rows: Sequence[Any],
    options: QueryOptions,
    *,
    registry: FunctionRegistry | None = None,
) -> list[Any]:
    """Apply ``options.filter`` (with its parameter aliases) to *rows*."""
    engine = FilterEngine(registry=registry or build_default_registry())
    return engine.filter(rows, options.filter, options.parameter_aliases)
