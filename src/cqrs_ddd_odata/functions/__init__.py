"""
Built-in OData function implementations.

Provides concrete ODataFunction subclasses for the canonical string,
math, date/time and type functions and a factory function to create
registries.

Usage::

    from cqrs_ddd_odata.functions import build_default_registry

    registry = build_default_registry()
    result = registry.invoke("tolower", ["ABC"])
"""

from __future__ import annotations

from ..evaluator import FunctionRegistry
from .arithmetic import (
    AbsFunction,
    CeilingFunction,
    FloorFunction,
    ModFunction,
    PowerFunction,
    RoundFunction,
    SqrtFunction,
)
from .conversion import CastFunction, IsOfFunction, cast_edm, is_of_edm
from .string import (
    ConcatFunction,
    ContainsFunction,
    EndsWithFunction,
    IndexOfFunction,
    LengthFunction,
    LTrimFunction,
    MatchesPatternFunction,
    RTrimFunction,
    StartsWithFunction,
    SubstringFunction,
    ToLowerFunction,
    ToUpperFunction,
    TrimFunction,
)
from .temporal import (
    DateFunction,
    DayFunction,
    FractionalSecondsFunction,
    HourFunction,
    MaxDateTimeFunction,
    MinDateTimeFunction,
    MinuteFunction,
    MonthFunction,
    NowFunction,
    SecondFunction,
    TimeFunction,
    TotalOffsetMinutesFunction,
    TotalSecondsFunction,
    YearFunction,
)


def build_default_registry() -> FunctionRegistry:
    """
    Create a registry with all built-in functions.

    Returns a fresh instance on every call, so callers may register
    custom functions without affecting other registries.

    Example:
        >>> registry = build_default_registry()
        >>> registry.invoke("toupper", ["abc"])
        'ABC'
    """
    registry = FunctionRegistry()
    registry.register_all(
        # String
        ContainsFunction(),
        StartsWithFunction(),
        EndsWithFunction(),
        LengthFunction(),
        IndexOfFunction(),
        SubstringFunction(),
        ToLowerFunction(),
        ToUpperFunction(),
        TrimFunction(),
        LTrimFunction(),
        RTrimFunction(),
        ConcatFunction(),
        MatchesPatternFunction(),
        # Math
        RoundFunction(),
        FloorFunction(),
        CeilingFunction(),
        AbsFunction(),
        SqrtFunction(),
        PowerFunction(),
        ModFunction(),
        # Date / time
        YearFunction(),
        MonthFunction(),
        DayFunction(),
        HourFunction(),
        MinuteFunction(),
        SecondFunction(),
        FractionalSecondsFunction(),
        DateFunction(),
        TimeFunction(),
        TotalSecondsFunction(),
        TotalOffsetMinutesFunction(),
        NowFunction(),
        MaxDateTimeFunction(),
        MinDateTimeFunction(),
        # Type
        CastFunction(),
        IsOfFunction(),
    )
    return registry


__all__ = [
    "build_default_registry",
    "cast_edm",
    "is_of_edm",
]
