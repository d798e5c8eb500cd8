"""
``$orderby`` evaluation.

Sorting is stable and composite: terms are compared left to right and
rows that tie on every term keep their input order. ``None`` sorts before
every defined value whatever the direction; the direction only flips the
order of defined values.
"""

from __future__ import annotations

import datetime
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any

from .evaluator import coerce_pair
from .utils import is_number, resolve_path

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .query_options import OrderByTerm, QueryOptions


def compare_values(left: Any, right: Any) -> int:
    """
    Three-way comparison of two defined values.

    Values of incomparable types fall back to comparing their type name
    and then their text, so the ordering is total.
    """
    left, right = coerce_pair(left, right)
    if isinstance(left, bool) and isinstance(right, bool):
        return (left > right) - (left < right)
    if is_number(left) and is_number(right):
        return (left > right) - (left < right)
    if isinstance(left, datetime.date) and isinstance(right, datetime.date):
        try:
            return (left > right) - (left < right)
        except TypeError:
            pass
    if type(left) is type(right):
        try:
            return (left > right) - (left < right)
        except TypeError:
            pass
    a = (type(left).__name__, str(left))
    b = (type(right).__name__, str(right))
    return (a > b) - (a < b)


def compare_rows(left: Any, right: Any, orderby: Sequence[OrderByTerm]) -> int:
    """Compare two rows by a composite ``$orderby`` key."""
    for term in orderby:
        a = resolve_path(left, term.property)
        b = resolve_path(right, term.property)
        if a is None and b is None:
            continue
        if a is None:
            return -1
        if b is None:
            return 1
        result = compare_values(a, b)
        if result:
            return -result if term.descending else result
    return 0


def order_array(rows: Sequence[Any], options: QueryOptions) -> list[Any]:
    """
    Return *rows* sorted by ``options.orderby``.

    Returns a copy of the input order unchanged when no terms are given.
    """
    if not options.orderby:
        return list(rows)
    terms = list(options.orderby)
    return sorted(rows, key=cmp_to_key(lambda a, b: compare_rows(a, b, terms)))
