"""Composable async request-processing stages."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..config import ODataSettings
from .conformance import ODataConformanceMiddleware
from .context import ODataContext, ODataRequest
from .error import ODataErrorMiddleware
from .logging import ODataLoggingMiddleware
from .navigation import NavigationResolver
from .parse import ODataParseMiddleware
from .pipeline import IMiddleware, build_pipeline
from .query import ODataQueryMiddleware

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ..edm import EdmModel
    from ..evaluator import FunctionRegistry
    from .navigation import AsyncExpandResolver, DataProvider


def create_odata_pipeline(
    settings: ODataSettings | None,
    handler: Callable[[ODataContext], Any],
    *,
    model: EdmModel | None = None,
    providers: Mapping[str, DataProvider] | None = None,
    expand_resolvers: Mapping[str, AsyncExpandResolver] | None = None,
    registry: FunctionRegistry | None = None,
    extra: list[IMiddleware] | None = None,
) -> Callable[[ODataRequest], Any]:
    """Wire the standard stack around *handler*.

    Order, outermost first: error, logging, parse, conformance, any
    *extra* stages, query. The returned coroutine function takes an
    ``ODataRequest`` and always resolves to an ``ODataResponse``.
    """
    settings = settings or ODataSettings()
    middlewares: list[IMiddleware] = [
        ODataErrorMiddleware(
            timeout_seconds=settings.timeout_seconds,
            include_stack_trace=settings.include_stack_trace,
            redact_errors=settings.redact_errors,
            odata_version=settings.odata_version,
        ),
        ODataLoggingMiddleware(),
        ODataParseMiddleware(settings, model),
        ODataConformanceMiddleware(strict_mode=settings.strict_mode),
        *(extra or []),
        ODataQueryMiddleware(
            providers=providers,
            expand_resolvers=expand_resolvers,
            registry=registry,
        ),
    ]
    return build_pipeline(middlewares, handler)


__all__ = [
    "IMiddleware",
    "NavigationResolver",
    "ODataConformanceMiddleware",
    "ODataContext",
    "ODataErrorMiddleware",
    "ODataLoggingMiddleware",
    "ODataParseMiddleware",
    "ODataQueryMiddleware",
    "ODataRequest",
    "build_pipeline",
    "create_odata_pipeline",
]
