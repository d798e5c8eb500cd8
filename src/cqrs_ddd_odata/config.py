"""ODataSettings — immutable service configuration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .query_options import ConformanceLevel
from .serialize import ODATA_VERSION


class ODataSettings(BaseModel):
    """
    Configuration for the request pipeline.

    Attributes:
        service_root: Absolute URL used in context URLs and next links.
        conformance: Level served when the request does not negotiate one.
        max_top: Upper bound applied to every page size.
        default_top: Page size used when ``$top`` is absent (server paging).
        max_expand_depth: Nesting bound for ``$expand``.
        strict_mode: Reject, rather than ignore, unknown or unsupported options.
        validate_against_model: Check names in query options against the EDM.
        timeout_seconds: Wall-clock budget per request; ``None`` disables it.
        include_stack_trace: Add the traceback to 500 error details.
        redact_errors: Replace unexpected error messages with a generic one.
    """

    model_config = ConfigDict(frozen=True)

    service_root: str = ""
    conformance: ConformanceLevel = ConformanceLevel.MINIMAL
    max_top: int = Field(default=1000, ge=0)
    default_top: int | None = Field(default=None, ge=0)
    max_expand_depth: int = Field(default=3, ge=0)
    strict_mode: bool = False
    validate_against_model: bool = True
    timeout_seconds: float | None = Field(default=None, gt=0)
    include_stack_trace: bool = False
    redact_errors: bool = True
    odata_version: str = ODATA_VERSION
    key_property: str = "id"
