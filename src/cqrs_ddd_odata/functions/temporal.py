"""
Date and time functions.

Arguments may be ``date``/``datetime``/``time``/``timedelta`` values or
their ISO-8601 string forms, as records loaded from JSON carry them.
"""

from __future__ import annotations

import datetime
from typing import Any

from ..evaluator import ODataFunction
from ..utils import parse_datetime, parse_duration, parse_time


def _date_value(value: Any) -> datetime.date:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"not a date: {value!r}")
    return parsed


def _time_value(value: Any) -> datetime.time | datetime.datetime:
    parsed = parse_time(value)
    if parsed is not None:
        return parsed
    dt = parse_datetime(value)
    if isinstance(dt, datetime.datetime):
        return dt
    raise ValueError(f"no time component: {value!r}")


class _DatePartFunction(ODataFunction):
    part: str = ""

    @property
    def name(self) -> str:
        return self.part

    def evaluate(self, *args: Any) -> Any:
        return getattr(_date_value(args[0]), self.part)


class YearFunction(_DatePartFunction):
    part = "year"


class MonthFunction(_DatePartFunction):
    part = "month"


class DayFunction(_DatePartFunction):
    part = "day"


class _TimePartFunction(ODataFunction):
    part: str = ""

    @property
    def name(self) -> str:
        return self.part

    def evaluate(self, *args: Any) -> Any:
        return getattr(_time_value(args[0]), self.part)


class HourFunction(_TimePartFunction):
    part = "hour"


class MinuteFunction(_TimePartFunction):
    part = "minute"


class SecondFunction(_TimePartFunction):
    part = "second"


class FractionalSecondsFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "fractionalseconds"

    def evaluate(self, *args: Any) -> Any:
        return _time_value(args[0]).microsecond / 1_000_000


class DateFunction(ODataFunction):
    """Date part of a date-time."""

    @property
    def name(self) -> str:
        return "date"

    def evaluate(self, *args: Any) -> Any:
        value = _date_value(args[0])
        if isinstance(value, datetime.datetime):
            return value.date()
        return value


class TimeFunction(ODataFunction):
    """Time-of-day part of a date-time."""

    @property
    def name(self) -> str:
        return "time"

    def evaluate(self, *args: Any) -> Any:
        value = _time_value(args[0])
        if isinstance(value, datetime.datetime):
            return value.time()
        return value


class TotalSecondsFunction(ODataFunction):
    """Length of a duration in seconds."""

    @property
    def name(self) -> str:
        return "totalseconds"

    def evaluate(self, *args: Any) -> Any:
        delta = parse_duration(args[0])
        if delta is None:
            return None
        return delta.total_seconds()


class TotalOffsetMinutesFunction(ODataFunction):
    @property
    def name(self) -> str:
        return "totaloffsetminutes"

    def evaluate(self, *args: Any) -> Any:
        value = _date_value(args[0])
        if not isinstance(value, datetime.datetime):
            return 0
        offset = value.utcoffset()
        return 0 if offset is None else int(offset.total_seconds() // 60)


class NowFunction(ODataFunction):
    min_args = max_args = 0

    @property
    def name(self) -> str:
        return "now"

    def evaluate(self, *args: Any) -> Any:
        return datetime.datetime.now(datetime.timezone.utc)


class MaxDateTimeFunction(ODataFunction):
    min_args = max_args = 0

    @property
    def name(self) -> str:
        return "maxdatetime"

    def evaluate(self, *args: Any) -> Any:
        return datetime.datetime.max.replace(tzinfo=datetime.timezone.utc)


class MinDateTimeFunction(ODataFunction):
    min_args = max_args = 0

    @property
    def name(self) -> str:
        return "mindatetime"

    def evaluate(self, *args: Any) -> Any:
        return datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
