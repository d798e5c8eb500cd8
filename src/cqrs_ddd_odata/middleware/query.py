"""ODataQueryMiddleware — run the handler and evaluate the query on its data."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..conformance import ConformanceGate
from ..query import apply_odata_query
from ..serialize import (
    ODataResponse,
    ResponseContext,
    create_odata_response,
    default_headers,
)
from .navigation import NavigationResolver

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..evaluator import FunctionRegistry
    from ..shape import ExpandResolver
    from .context import ODataContext
    from .navigation import AsyncExpandResolver, DataProvider

logger = logging.getLogger("cqrs_ddd.odata.middleware")


class ODataQueryMiddleware:
    """Innermost stage: the handler returns rows, this stage shapes them.

    The handler receives the ``ODataContext`` and returns a list of rows,
    a single row, or an ``ODataResponse`` (passed through untouched).
    Navigation data for ``$expand`` is loaded before evaluation; paging
    follows ``max_top``/``default_top`` from the settings.
    """

    def __init__(
        self,
        *,
        providers: Mapping[str, DataProvider] | None = None,
        expand_resolvers: Mapping[str, AsyncExpandResolver] | None = None,
        registry: FunctionRegistry | None = None,
    ) -> None:
        self.providers = dict(providers or {})
        self.expand_resolvers = dict(expand_resolvers or {})
        self.registry = registry

    async def __call__(
        self,
        context: ODataContext,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        data = await next_handler(context)
        if isinstance(data, ODataResponse):
            return data

        settings = context.settings
        options = context.options
        navigation = NavigationResolver(
            context.model,
            self.providers,
            expand_resolvers=self.expand_resolvers,
        )
        rows = [data] if isinstance(data, Mapping) else list(data or [])
        resolvers: dict[str, ExpandResolver] = {}
        if options.expand:
            rows = await navigation.attach(rows, options.expand, context.deadline)
            resolvers = await navigation.prepare(
                context.entity_set, options.expand, context.deadline
            )

        gate = ConformanceGate(
            context.conformance,
            service_root=settings.service_root,
            entity_set=context.entity_set,
            key_property=settings.key_property,
            registry=self.registry,
            resolvers=resolvers,
            max_expand_depth=settings.max_expand_depth,
            max_top=settings.max_top,
            default_top=settings.default_top,
        )
        headers = default_headers(settings.odata_version)

        key = context.request.key
        if key is None and isinstance(data, Mapping):
            key = data.get(settings.key_property)
        if key is not None:
            body = gate.query(rows, options, key=key)
            return ODataResponse(status_code=200, headers=headers, body=body)

        if isinstance(data, Mapping):
            single = options.without(
                "filter", "search", "apply", "orderby", "top", "skip", "count"
            )
            result = apply_odata_query(
                rows,
                single,
                registry=self.registry,
                resolvers=resolvers,
                max_expand_depth=settings.max_expand_depth,
            )
            return create_odata_response(
                ResponseContext(settings.service_root, context.entity_set or ""),
                {"value": result.value[0]},
                odata_version=settings.odata_version,
            )

        body = gate.query(rows, options)
        logger.debug(
            "Served %d of %s rows from %s",
            len(body["value"]),
            body.get("@odata.count", "?"),
            context.entity_set,
        )
        return ODataResponse(status_code=200, headers=headers, body=body)
