"""ODataConformanceMiddleware — negotiate and enforce the conformance level."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..conformance import (
    ConformanceGate,
    get_available_features,
    negotiate_conformance_level,
)
from ..exceptions import ConformanceError
from ..parser import normalise_query
from ..query_options import ConformanceLevel
from ..serialize import ODataResponse

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from .context import ODataContext

logger = logging.getLogger("cqrs_ddd.odata.middleware")

CONFORMANCE_HEADER = "OData-Conformance"


class ODataConformanceMiddleware:
    """Decides the level a request is served at.

    The level comes from the ``$conformance`` query parameter, then the
    ``OData-Conformance`` request header, then the context default. Query
    options above that level are dropped, or rejected with a 400 in strict
    mode. Function, action and batch requests are refused at ``minimal``.
    The chosen level and its features are reported in response headers.
    """

    def __init__(
        self,
        *,
        strict_mode: bool = False,
        supported: Sequence[ConformanceLevel | str] = tuple(ConformanceLevel),
    ) -> None:
        self.strict_mode = strict_mode
        self.supported = [ConformanceLevel(s) for s in supported]

    async def __call__(
        self,
        context: ODataContext,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        request = context.request
        requested = normalise_query(request.query).get(
            "$conformance"
        ) or request.header(CONFORMANCE_HEADER)
        level = negotiate_conformance_level(
            requested, self.supported, default=context.conformance
        )
        gate = ConformanceGate(level)

        if request.operation:
            gate.ensure_invocation_allowed(request.operation, request.operation_name)

        ignored = gate.unsupported_options(context.options)
        if ignored and self.strict_mode:
            raise ConformanceError(
                f"Query options {', '.join(ignored)} are not supported at "
                f"{level.value} conformance",
                target=ignored[0],
            )
        if ignored:
            logger.debug("Dropping %s at %s conformance", ignored, level.value)
            context.options = gate.restrict(context.options)
        context.conformance = level
        context.metadata["conformance"] = {
            "level": level.value,
            "requested": requested,
            "ignored": ignored,
        }

        response = await next_handler(context)
        if isinstance(response, ODataResponse):
            response.headers[CONFORMANCE_HEADER] = level.value
            response.headers["OData-Supported-Conformance"] = ",".join(
                s.value for s in self.supported
            )
            response.headers["OData-Features"] = ",".join(get_available_features(level))
        return response
