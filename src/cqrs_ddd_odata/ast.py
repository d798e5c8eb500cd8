"""
Expression tree for ``$filter``, ``$compute`` and ``$apply`` predicates.

Nodes are immutable dataclasses produced by
:class:`~cqrs_ddd_odata.expression.ExpressionParser` and interpreted by
:class:`~cqrs_ddd_odata.evaluator.ExpressionEvaluator`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .operators import ODataOperator


class Node:
    """Base class of all expression nodes."""

    def children(self) -> tuple[Node, ...]:
        return ()


@dataclass(frozen=True)
class Literal(Node):
    value: Any
    # Source text, kept for field-name derivation.
    text: str | None = None

    @property
    def is_null(self) -> bool:
        return self.value is None


@dataclass(frozen=True)
class Property(Node):
    """A property path; ``segments[0]`` may name a lambda variable or ``$it``."""

    segments: tuple[str, ...]

    @property
    def path(self) -> str:
        return "/".join(self.segments)


@dataclass(frozen=True)
class Alias(Node):
    """An ``@name`` parameter alias reference."""

    name: str


@dataclass(frozen=True)
class Unary(Node):
    op: ODataOperator
    operand: Node

    def children(self) -> tuple[Node, ...]:
        return (self.operand,)


@dataclass(frozen=True)
class Binary(Node):
    op: ODataOperator
    left: Node
    right: Node

    def children(self) -> tuple[Node, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class Call(Node):
    """A function call; ``name`` is normalised to lower case."""

    name: str
    args: tuple[Node, ...] = ()

    def children(self) -> tuple[Node, ...]:
        return self.args


@dataclass(frozen=True)
class Lambda(Node):
    """``collection/any(var: predicate)`` or ``collection/all(...)``."""

    collection: Property
    op: ODataOperator
    variable: str | None = None
    predicate: Node | None = None

    def children(self) -> tuple[Node, ...]:
        if self.predicate is None:
            return (self.collection,)
        return (self.collection, self.predicate)


@dataclass(frozen=True)
class ListExpr(Node):
    """Parenthesised literal list, the right operand of ``in``."""

    items: tuple[Node, ...]

    def children(self) -> tuple[Node, ...]:
        return self.items


@dataclass(frozen=True)
class Conditional(Node):
    """``condition ? if_true : if_false``."""

    condition: Node
    if_true: Node
    if_false: Node

    def children(self) -> tuple[Node, ...]:
        return (self.condition, self.if_true, self.if_false)


def walk(node: Node) -> Iterator[Node]:
    """Yield *node* and all of its descendants, depth first."""
    yield node
    for child in node.children():
        yield from walk(child)
