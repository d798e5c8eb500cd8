"""ODataParseMiddleware — request query mapping -> ODataContext."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ..compute import ComputeEngine
from ..config import ODataSettings
from ..exceptions import InvalidPropertyError
from ..functions import build_default_registry
from ..parser import QueryStringParser, validate_query_params
from .context import ODataContext, ODataRequest

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..edm import EdmEntityType, EdmModel
    from ..query_options import QueryOptions


class ODataParseMiddleware:
    """Parses and validates the query, then hands an ``ODataContext`` on.

    Strict validation of ``$top``/``$skip``/``$count`` always runs; unknown
    ``$`` options are rejected only in strict mode. When a model is given
    and ``validate_against_model`` is on, names used by ``$select``,
    ``$orderby`` and ``$expand`` must be declared on the entity type.
    """

    def __init__(
        self,
        settings: ODataSettings | None = None,
        model: EdmModel | None = None,
    ) -> None:
        self.settings = settings or ODataSettings()
        self.model = model
        self._parser = QueryStringParser()

    async def __call__(
        self,
        message: ODataRequest | ODataContext,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        request = message.request if isinstance(message, ODataContext) else message
        validate_query_params(request.query, strict=self.settings.strict_mode)
        options = self._parser.parse(request.query)

        if self.model is not None and self.settings.validate_against_model:
            entity_type = (
                self.model.entity_type_for_set(request.entity_set)
                if request.entity_set
                else None
            )
            if entity_type is not None:
                self._validate(options, entity_type)

        deadline = None
        if self.settings.timeout_seconds is not None:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.settings.timeout_seconds

        context = ODataContext(
            request=request,
            settings=self.settings,
            options=options,
            model=self.model,
            conformance=self.settings.conformance,
            deadline=deadline,
        )
        return await next_handler(context)

    # -- model validation ----------------------------------------------------

    def _validate(self, options: QueryOptions, entity_type: EdmEntityType) -> None:
        navigation = entity_type.navigation_names
        known = [*entity_type.property_names, *navigation]
        if options.compute:
            engine = ComputeEngine(registry=build_default_registry())
            known.extend(engine.compile(entry).name for entry in options.compute)

        for name in options.select:
            head = name.split("/", 1)[0]
            if head != "*" and head not in known:
                raise InvalidPropertyError(head, "$select", known)

        # $apply reshapes rows; ordering may then use aggregate aliases.
        if not options.apply:
            for term in options.orderby:
                head = term.property.split("/", 1)[0]
                if head not in known:
                    raise InvalidPropertyError(head, "$orderby", known)

        for item in options.expand:
            if item.path not in navigation:
                raise InvalidPropertyError(item.path, "$expand", navigation)
