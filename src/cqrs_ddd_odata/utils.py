"""
Shared utility functions for the OData engines.

These are pure-Python helpers with no infrastructure dependencies.
"""

from __future__ import annotations

import datetime
import re
from typing import Any

# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """
    Split *text* on *separator*, ignoring separators nested in
    parentheses, square brackets or single-quoted string literals.

    Empty parts are dropped and every part is stripped::

        >>> split_top_level("round(price), concat(a, 'x,y')")
        ['round(price)', "concat(a, 'x,y')"]
        >>> split_top_level("groupby((a), aggregate(p with sum as t))/top(2)", "/")
        ['groupby((a), aggregate(p with sum as t))', 'top(2)']
    """
    parts: list[str] = []
    depth = 0
    in_string = False
    current: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if in_string:
            current.append(char)
            if char == "'":
                # '' is an escaped quote inside a literal
                if i + 1 < len(text) and text[i + 1] == "'":
                    current.append("'")
                    i += 1
                else:
                    in_string = False
        elif char == "'":
            in_string = True
            current.append(char)
        elif char in "([":
            depth += 1
            current.append(char)
        elif char in ")]":
            depth = max(depth - 1, 0)
            current.append(char)
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
        i += 1
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def strip_outer_parens(text: str) -> str:
    """Remove one pair of parentheses wrapping the whole of *text*."""
    text = text.strip()
    if not (text.startswith("(") and text.endswith(")")):
        return text
    depth = 0
    for i, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return text
    return text[1:-1].strip()


# ---------------------------------------------------------------------------
# Property paths
# ---------------------------------------------------------------------------


def resolve_path(entity: Any, path: str | tuple[str, ...] | list[str]) -> Any:
    """
    Resolve a ``/``-separated property path against nested mappings.

    Returns ``None`` when any segment is missing or a non-mapping is
    traversed. ``$count`` as a segment yields the length of a collection.
    """
    segments = path.split("/") if isinstance(path, str) else path
    current = entity
    for segment in segments:
        if current is None:
            return None
        if segment == "$count" and isinstance(current, list | tuple):
            current = len(current)
        elif isinstance(current, dict):
            current = current.get(segment)
        else:
            return None
    return current


def has_path(entity: Any, path: str) -> bool:
    """Whether every segment of *path* exists on *entity*."""
    current = entity
    for segment in path.split("/"):
        if not isinstance(current, dict) or segment not in current:
            return False
        current = current[segment]
    return True


# ---------------------------------------------------------------------------
# Date / time parsing
# ---------------------------------------------------------------------------

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)
_TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2}(\.\d+)?)?$")
_DURATION_RE = re.compile(
    r"^(?P<sign>-)?P"
    r"(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T"
    r"(?:(?P<hours>\d+(?:\.\d+)?)H)?"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$",
    re.IGNORECASE,
)


def parse_datetime(value: Any) -> datetime.datetime | datetime.date | None:
    """
    Parse an ISO-8601 date or date-time into a ``date``/``datetime``.

    ``datetime``/``date`` instances pass through. A trailing ``Z`` is read
    as UTC. Returns ``None`` for anything that is not a recognisable
    ISO-8601 value.
    """
    if isinstance(value, datetime.datetime | datetime.date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if _DATE_RE.match(text):
            return datetime.date.fromisoformat(text)
        if _DATETIME_RE.match(text):
            if text[-1] in "zZ":
                text = text[:-1] + "+00:00"
            return datetime.datetime.fromisoformat(text)
    except ValueError:
        return None
    return None


def parse_time(value: Any) -> datetime.time | None:
    """Parse ``HH:MM[:SS[.fff]]`` into a ``time``; pass ``time`` through."""
    if isinstance(value, datetime.time):
        return value
    if isinstance(value, str) and _TIME_RE.match(value.strip()):
        try:
            return datetime.time.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def as_datetime(value: Any) -> datetime.datetime | None:
    """Like :func:`parse_datetime` but widens a bare date to midnight."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    if not isinstance(parsed, datetime.datetime):
        return datetime.datetime(parsed.year, parsed.month, parsed.day)
    return parsed


def parse_duration(value: Any) -> datetime.timedelta | None:
    """
    Parse an ISO-8601 day-time duration (``P1DT2H30M``, ``-PT0.5S``).

    Year and month designators are not supported since they have no
    fixed length. Returns ``None`` when *value* is not a duration.
    """
    if isinstance(value, datetime.timedelta):
        return value
    if not isinstance(value, str):
        return None
    m = _DURATION_RE.match(value.strip())
    if not m or value.strip().upper() in ("P", "-P", "PT", "-PT"):
        return None
    parts = {k: float(v) for k, v in m.groupdict().items() if k != "sign" and v}
    delta = datetime.timedelta(**parts)
    return -delta if m.group("sign") else delta


def format_duration(delta: datetime.timedelta) -> str:
    """Format a ``timedelta`` as an ISO-8601 day-time duration."""
    total = delta.total_seconds()
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    out = f"{sign}P"
    if days:
        out += f"{int(days)}D"
    time_part = ""
    if hours:
        time_part += f"{int(hours)}H"
    if minutes:
        time_part += f"{int(minutes)}M"
    if seconds or not (days or hours or minutes):
        time_part += f"{format_number(round(seconds, 6))}S"
    if time_part:
        out += "T" + time_part
    return out


# ---------------------------------------------------------------------------
# Value formatting
# ---------------------------------------------------------------------------


def is_number(value: Any) -> bool:
    """``int``/``float`` but not ``bool``."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def format_number(value: int | float) -> str:
    """Render a number without a trailing ``.0`` for integral floats."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_text(value: Any) -> str:
    """Render a scalar the way it appears in an OData payload."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(value)
    if isinstance(value, datetime.datetime):
        text = value.isoformat()
        return text.replace("+00:00", "Z")
    if isinstance(value, datetime.date | datetime.time):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return format_duration(value)
    return str(value)
