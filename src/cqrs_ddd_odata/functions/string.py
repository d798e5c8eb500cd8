"""String functions: contains, startswith, substring, concat, trim, etc."""

from __future__ import annotations

import re
from typing import Any

from ..evaluator import ODataFunction
from ..utils import to_text


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


class ContainsFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "contains"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[1]) in _text(args[0])


class StartsWithFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "startswith"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).startswith(_text(args[1]))


class EndsWithFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "endswith"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).endswith(_text(args[1]))


class LengthFunction(ODataFunction):
    """Length of a string or of a collection."""

    @property
    def name(self) -> str:
        return "length"

    def evaluate(self, *args: Any) -> Any:
        value = args[0]
        if isinstance(value, str | list | tuple):
            return len(value)
        return None


class IndexOfFunction(ODataFunction):
    """Zero-based position of the first occurrence, ``-1`` when absent."""

    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "indexof"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).find(_text(args[1]))


class SubstringFunction(ODataFunction):
    min_args = 2
    max_args = 3

    @property
    def name(self) -> str:
        return "substring"

    def evaluate(self, *args: Any) -> Any:
        text = _text(args[0])
        start = max(int(args[1]), 0)
        if len(args) == 3:
            length = max(int(args[2]), 0)
            return text[start : start + length]
        return text[start:]


class ToLowerFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "tolower"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).lower()


class ToUpperFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "toupper"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).upper()


class TrimFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "trim"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).strip()


class LTrimFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "ltrim"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).lstrip()


class RTrimFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "rtrim"

    def evaluate(self, *args: Any) -> Any:
        return _text(args[0]).rstrip()


class ConcatFunction(ODataFunction):
    """Concatenate two or more values; non-strings are rendered as text."""

    min_args = 2
    max_args = None

    @property
    def name(self) -> str:
        return "concat"

    def evaluate(self, *args: Any) -> Any:
        return "".join(a if isinstance(a, str) else to_text(a) for a in args)


class MatchesPatternFunction(ODataFunction):
    """ECMAScript-style regular expression search."""

    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "matchespattern"

    def evaluate(self, *args: Any) -> Any:
        try:
            return re.search(_text(args[1]), _text(args[0])) is not None
        except re.error:
            return None
