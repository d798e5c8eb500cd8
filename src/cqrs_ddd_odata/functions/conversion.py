"""Type functions: cast and isof over ``Edm.*`` primitive type names."""

from __future__ import annotations

import datetime
import uuid
from typing import Any

from ..evaluator import ODataFunction
from ..utils import as_datetime, is_number, parse_datetime, parse_duration, to_text

_INTEGER_TYPES = {"Edm.Byte", "Edm.SByte", "Edm.Int16", "Edm.Int32", "Edm.Int64"}
_FLOAT_TYPES = {"Edm.Single", "Edm.Double", "Edm.Decimal"}


def cast_edm(value: Any, type_name: str) -> Any:
    """
    Convert *value* to the Python representation of an ``Edm`` type.

    Returns ``None`` when the value cannot be represented, which is how
    OData defines a failed cast.
    """
    if type_name == "Edm.String":
        return to_text(value)
    if type_name in _INTEGER_TYPES:
        if isinstance(value, bool):
            return int(value)
        if is_number(value):
            return int(value)
        return int(str(value).strip())
    if type_name in _FLOAT_TYPES:
        if isinstance(value, bool):
            return None
        return float(value)
    if type_name == "Edm.Boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "1"):
            return True
        if text in ("false", "0"):
            return False
        return None
    if type_name == "Edm.Date":
        parsed = parse_datetime(value)
        if isinstance(parsed, datetime.datetime):
            return parsed.date()
        return parsed
    if type_name == "Edm.DateTimeOffset":
        return as_datetime(value)
    if type_name == "Edm.Duration":
        return parse_duration(value)
    if type_name == "Edm.Guid":
        return str(uuid.UUID(str(value)))
    return None


def is_of_edm(value: Any, type_name: str) -> bool:
    """Whether *value* already is an instance of the ``Edm`` type."""
    if type_name == "Edm.String":
        return isinstance(value, str)
    if type_name in _INTEGER_TYPES:
        return isinstance(value, int) and not isinstance(value, bool)
    if type_name in _FLOAT_TYPES:
        return is_number(value)
    if type_name == "Edm.Boolean":
        return isinstance(value, bool)
    if type_name == "Edm.Date":
        return isinstance(value, datetime.date) and not isinstance(
            value, datetime.datetime
        )
    if type_name == "Edm.DateTimeOffset":
        return isinstance(value, datetime.datetime)
    if type_name == "Edm.Duration":
        return isinstance(value, datetime.timedelta)
    return False


class CastFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "cast"

    def evaluate(self, *args: Any) -> Any:
        return cast_edm(args[0], str(args[1]))


class IsOfFunction(ODataFunction):
    min_args = max_args = 2

    @property
    def name(self) -> str:
        return "isof"

    def evaluate(self, *args: Any) -> Any:
        return is_of_edm(args[0], str(args[1]))
