"""ODataErrorMiddleware — map failures to OData error responses."""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import TYPE_CHECKING, Any

from ..exceptions import ODataError, RequestTimeoutError
from ..serialize import ODATA_VERSION, ODataResponse, default_headers

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("cqrs_ddd.odata.middleware")

GENERIC_ERROR_MESSAGE = "An error occurred while processing the request"


class ODataErrorMiddleware:
    """Outermost stage: turns exceptions into ``{"error": {...}}`` responses.

    ``ODataError`` subclasses keep their own status code and envelope.
    Anything else becomes a 500 whose message is redacted unless
    ``redact_errors`` is off. With ``timeout_seconds`` set, the rest of
    the chain runs under ``asyncio.wait_for`` and overruns map to 504.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        include_stack_trace: bool = False,
        redact_errors: bool = True,
        odata_version: str = ODATA_VERSION,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.include_stack_trace = include_stack_trace
        self.redact_errors = redact_errors
        self.odata_version = odata_version

    async def __call__(
        self,
        message: Any,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        try:
            if self.timeout_seconds is None:
                return await next_handler(message)
            return await asyncio.wait_for(next_handler(message), self.timeout_seconds)
        except asyncio.TimeoutError:
            error = RequestTimeoutError(
                f"Request exceeded the {self.timeout_seconds}s time limit"
            )
            logger.warning("OData request timed out: %s", error.message)
            return self._response(error.status_code, error.to_dict())
        except ODataError as exc:
            logger.warning("OData request failed (%s): %s", exc.code, exc.message)
            return self._response(exc.status_code, exc.to_dict())
        except Exception as exc:
            logger.exception("Unhandled error in OData request")
            return self._response(500, self._internal_error(exc))

    def _internal_error(self, exc: Exception) -> dict[str, Any]:
        message = GENERIC_ERROR_MESSAGE if self.redact_errors else str(exc)
        error: dict[str, Any] = {"code": "InternalServerError", "message": message}
        if self.include_stack_trace:
            error["details"] = [
                {
                    "code": type(exc).__name__,
                    "message": "".join(traceback.format_exception(exc)),
                }
            ]
        return {"error": error}

    def _response(self, status_code: int, body: dict[str, Any]) -> ODataResponse:
        return ODataResponse(
            status_code=status_code,
            headers=default_headers(self.odata_version),
            body=body,
        )
