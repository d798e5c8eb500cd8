"""ODataLoggingMiddleware — logs request path, status and duration."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("cqrs_ddd.odata.middleware")


class ODataLoggingMiddleware:
    """Logs each request: method, path, entity set, status, duration."""

    async def __call__(
        self,
        message: Any,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        request = getattr(message, "request", message)
        method = getattr(request, "method", "GET")
        path = getattr(request, "path", "/")
        entity_set = getattr(request, "entity_set", None)
        logger.info("Handling OData %s %s (entity_set=%s)", method, path, entity_set)
        start = time.perf_counter()
        try:
            response = await next_handler(message)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("OData %s %s failed after %.2fms", method, path, elapsed)
            raise
        elapsed = (time.perf_counter() - start) * 1000
        status = getattr(response, "status_code", None)
        logger.info(
            "OData %s %s completed with %s in %.2fms", method, path, status, elapsed
        )
        return response
