"""build_pipeline — construct the OData middleware chain."""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@runtime_checkable
class IMiddleware(Protocol):
    """Protocol for stages in the OData request pipeline.

    A stage may inspect or replace the message it receives, short-circuit
    the chain, or post-process the response returned by ``next_handler``.
    The chain is applied in **LIFO** order (first registered = outermost).
    """

    async def __call__(
        self,
        message: Any,
        next_handler: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        """Execute stage logic and call next_handler to proceed.

        Parameters
        ----------
        message:
            The ``ODataRequest`` or, past the parse stage, the ``ODataContext``.
        next_handler:
            Async callable representing the rest of the pipeline.

        Returns
        -------
        The response produced by the rest of the chain.
        """
        ...


def build_pipeline(
    middlewares: list[IMiddleware],
    handler_fn: Callable[[Any], Any],
) -> Callable[[Any], Any]:
    """Build a LIFO middleware chain ending at *handler_fn*.

    The first middleware in the list is the **outermost** wrapper.
    Each middleware must implement: ``async def __call__(message, next_handler)``.
    """
    pipeline: Callable[[Any], Any] = handler_fn

    for mw in reversed(middlewares):
        current_next = pipeline  # capture for closure

        async def _wrapper(
            message: Any,
            _mw: IMiddleware = mw,
            _next: Callable[[Any], Any] = current_next,
        ) -> Any:
            return await _mw(message, _next)

        pipeline = _wrapper

    return pipeline
