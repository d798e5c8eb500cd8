"""
OData exception hierarchy with fuzzy-match suggestions.

All exceptions inherit from ``ODataError`` and provide ``to_dict()``
returning the OData error envelope ``{"error": {"code", "message", ...}}``.
Each class carries the HTTP status code the error middleware maps it to.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class ODataError(Exception):
    """Base exception for all OData query errors."""

    status_code: int = 500
    code: str = "InternalServerError"

    def __init__(
        self,
        message: str,
        *,
        target: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message
        self.target = target
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.target is not None:
            error["target"] = self.target
        if self.details:
            error["details"] = self.details
        return {"error": error}


class QueryOptionError(ODataError):
    """A query option is malformed."""

    status_code = 400
    code = "BadRequest"


class InvalidPropertyError(QueryOptionError):
    """
    A query option references a property the model does not declare.

    Example error message::

        Invalid property 'nme' in $select. Did you mean: name?
    """

    def __init__(
        self,
        prop: str,
        option: str,
        available: list[str],
        cutoff: float = 0.6,
    ) -> None:
        self.prop = prop
        self.option = option
        self.available = available
        self.suggestions = get_close_matches(prop, available, n=3, cutoff=cutoff)

        message = f"Invalid property '{prop}' in {option}."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message, target=option)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.suggestions:
            payload["error"]["details"] = [
                {"code": "Suggestion", "message": s, "target": self.option}
                for s in self.suggestions
            ]
        return payload


class FilterSyntaxError(QueryOptionError):
    """A ``$filter`` (or compute) expression could not be parsed."""

    def __init__(self, message: str, expression: str | None = None) -> None:
        self.expression = expression
        super().__init__(message, target="$filter")


class UnknownFunctionError(FilterSyntaxError):
    """An expression calls a function the registry does not know."""

    def __init__(self, name: str, expression: str | None = None) -> None:
        self.name = name
        super().__init__(f"Unknown function '{name}'", expression)


class SearchSyntaxError(QueryOptionError):
    """``$search`` text is not well formed."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid search syntax: {reason}", target="$search")


class UnsupportedSearchFeatureError(ODataError):
    """``$search`` uses a construct recognised but not implemented."""

    status_code = 501
    code = "NotImplemented"

    def __init__(self, feature: str) -> None:
        super().__init__(f"Unsupported search feature: {feature}", target="$search")


class ComputeExpressionError(QueryOptionError):
    """A ``$compute`` entry could not be evaluated."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        super().__init__(
            f"Invalid compute expression '{expression}': {reason}",
            target="$compute",
        )


class UnsupportedComputeFunctionError(ComputeExpressionError):
    """A ``$compute`` entry calls an unknown function."""

    status_code = 501
    code = "NotImplemented"

    def __init__(self, expression: str, function: str) -> None:
        self.function = function
        QueryOptionError.__init__(
            self,
            f"Unsupported compute function '{function}' in '{expression}'",
            target="$compute",
        )
        self.expression = expression


class ApplyTransformationError(QueryOptionError):
    """An ``$apply`` step is malformed."""

    def __init__(self, step: str, reason: str) -> None:
        self.step = step
        super().__init__(
            f"Invalid apply transformation '{step}': {reason}",
            target="$apply",
        )


class UnsupportedTransformationError(ODataError):
    """
    Unknown ``$apply`` transformation.

    Provides fuzzy-matched suggestions for likely intended transformations.
    """

    status_code = 501
    code = "NotImplemented"

    def __init__(self, name: str, valid_transformations: list[str]) -> None:
        self.name = name
        self.valid_transformations = valid_transformations
        self.suggestions = get_close_matches(
            name, valid_transformations, n=3, cutoff=0.6
        )

        message = f"Unsupported apply transformation: '{name}'."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        message += f" Valid transformations: {', '.join(sorted(valid_transformations))}"
        super().__init__(message, target="$apply")


class ConformanceError(ODataError):
    """Base for conformance-level failures."""

    status_code = 400
    code = "BadRequest"


class InvalidConformanceLevelError(ConformanceError, ValueError):
    """The requested conformance level is not one of the known levels."""

    def __init__(self, level: object) -> None:
        self.level = level
        super().__init__(f"Invalid conformance level: {level}", target="conformance")


class FeatureNotSupportedError(ConformanceError):
    """An operation is not allowed at the active conformance level."""

    status_code = 501
    code = "NotImplemented"

    def __init__(self, feature: str, level: str) -> None:
        self.feature = feature
        self.level = level
        super().__init__(f"{feature} not supported in {level} conformance")


class QueryTooComplexError(ODataError):
    """The query exceeds a configured complexity bound."""

    status_code = 422
    code = "QueryTooComplex"


class EntityNotFoundError(ODataError):
    """No entity matches the requested key."""

    status_code = 404
    code = "NotFound"

    def __init__(self, entity_set: str | None, key: object) -> None:
        self.entity_set = entity_set
        self.key = key
        super().__init__(
            f"{entity_set or 'Entity'} with key {key!r} not found",
            target=entity_set,
        )


class RequestTimeoutError(ODataError):
    """Request processing exceeded its deadline."""

    status_code = 504
    code = "GatewayTimeout"
