"""Request and per-request context passed along the middleware chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..query_options import ConformanceLevel, QueryOptions

if TYPE_CHECKING:
    from ..config import ODataSettings
    from ..edm import EdmModel


@dataclass
class ODataRequest:
    """
    Transport-neutral view of an incoming request.

    HTTP adapters fill this from their own request objects. ``operation``
    names a function/action/batch invocation (``"function"``,
    ``"action"``, ``"function-import"``, ``"action-import"``, ``"batch"``)
    and ``operation_name`` the invoked operation.
    """

    entity_set: str | None = None
    key: Any = None
    query: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    path: str = "/"
    operation: str | None = None
    operation_name: str | None = None

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lower = name.lower()
        return next((v for k, v in self.headers.items() if k.lower() == lower), None)


@dataclass
class ODataContext:
    """State shared by the stages behind the parse stage."""

    request: ODataRequest
    settings: ODataSettings
    options: QueryOptions = field(default_factory=QueryOptions)
    model: EdmModel | None = None
    conformance: ConformanceLevel = ConformanceLevel.MINIMAL
    deadline: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def service_root(self) -> str:
        return self.settings.service_root

    @property
    def entity_set(self) -> str | None:
        return self.request.entity_set
