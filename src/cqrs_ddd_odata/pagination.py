"""
``$top`` / ``$skip`` handling.

Negative values are clamped to zero; ``top=0`` yields an empty page rather
than meaning "unset".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .query_options import QueryOptions

T = TypeVar("T")


@dataclass(frozen=True)
class PageWindow:
    """Resolved pagination window over a collection of ``total`` rows."""

    skip: int
    top: int | None
    total: int

    @property
    def end(self) -> int:
        if self.top is None:
            return self.total
        return min(self.skip + self.top, self.total)

    @property
    def has_more(self) -> bool:
        """Whether rows remain after this page."""
        return self.end < self.total

    @property
    def next_skip(self) -> int:
        return self.end


def resolve_window(
    total: int,
    top: int | None = None,
    skip: int | None = None,
    *,
    max_top: int | None = None,
    default_top: int | None = None,
) -> PageWindow:
    """
    Normalise raw ``top``/``skip`` values into a :class:`PageWindow`.

    ``default_top`` applies when no ``top`` was requested; ``max_top``
    caps whatever ``top`` results.
    """
    effective_skip = max(skip or 0, 0)
    effective_top = top if top is not None else default_top
    if effective_top is not None:
        effective_top = max(effective_top, 0)
        if max_top is not None:
            effective_top = min(effective_top, max_top)
    return PageWindow(skip=effective_skip, top=effective_top, total=total)


def paginate(
    rows: Sequence[T],
    top: int | None = None,
    skip: int | None = None,
) -> list[T]:
    """Slice ``rows[skip : skip + top]`` with negative values clamped to 0."""
    window = resolve_window(len(rows), top, skip)
    return list(rows[window.skip : window.end])


def paginate_array(rows: Sequence[Any], options: QueryOptions) -> list[Any]:
    """Apply ``options.top`` and ``options.skip`` to *rows*."""
    return paginate(rows, options.top, options.skip)
