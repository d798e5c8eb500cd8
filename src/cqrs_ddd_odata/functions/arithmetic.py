"""Math functions: round, floor, ceiling, abs, sqrt, power, mod."""

from __future__ import annotations

import math
from typing import Any

from ..evaluator import ODataFunction
from ..utils import is_number


def _num(value: Any) -> Any:
    if not is_number(value):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return value


class RoundFunction(ODataFunction):
    """Round half away from zero, so ``round(10.5)`` is ``11``."""

    @property
    def name(self) -> str:
        return "round"

    def evaluate(self, *args: Any) -> Any:
        value = _num(args[0])
        if isinstance(value, int):
            return value
        return math.copysign(math.floor(abs(value) + 0.5), value)


class FloorFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "floor"

    def evaluate(self, *args: Any) -> Any:
        return math.floor(_num(args[0]))


class CeilingFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "ceiling"

    def evaluate(self, *args: Any) -> Any:
        return math.ceil(_num(args[0]))


class AbsFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "abs"

    def evaluate(self, *args: Any) -> Any:
        return abs(_num(args[0]))


class SqrtFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "sqrt"

    def evaluate(self, *args: Any) -> Any:
        value = _num(args[0])
        if value < 0:
            return None
        return math.sqrt(value)


class PowerFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "power"

    def evaluate(self, *args: Any) -> Any:
        result = _num(args[0]) ** _num(args[1])
        if isinstance(result, complex):
            return None
        return result


class ModFunction(ODataFunction):
    """Remainder with the sign of the dividend; ``None`` on a zero divisor."""

    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "mod"

    def evaluate(self, *args: Any) -> Any:
        left, right = _num(args[0]), _num(args[1])
        if right == 0:
            return None
        result = math.fmod(left, right)
        if isinstance(left, int) and isinstance(right, int):
            return int(result)
        return result
