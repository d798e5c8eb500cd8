"""
``$compute`` evaluation.

Each entry adds one field to a shallow copy of every row. An entry is
written ``alias: expr``, ``expr as alias`` or just ``expr``; a bare
expression gets a name derived from its shape::

    price add categoryId          -> price_plus_categoryId
    price mul 2                   -> price_times_2
    round(price)                  -> round_price
    cast(price, Edm.String)       -> cast_price_Edm.String
    category/name                 -> category_name
    price gt 15 ? 'high' : 'low'  -> price_gt_15_high_low

Missing arithmetic operands count as ``0``. When two entries produce the
same field name the later one wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .ast import (
    Alias,
    Binary,
    Call,
    Conditional,
    Lambda,
    ListExpr,
    Literal,
    Node,
    Property,
    Unary,
)
from .evaluator import ExpressionEvaluator, FunctionRegistry
from .exceptions import (
    ComputeExpressionError,
    FilterSyntaxError,
    UnknownFunctionError,
    UnsupportedComputeFunctionError,
)
from .expression import parse_expression
from .functions import build_default_registry
from .operators import NAME_INFIXES, ODataOperator

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from .query_options import QueryOptions

_LABELLED_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*:\s*(.+)$", re.DOTALL)
_AS_RE = re.compile(r"^(.+?)\s+as\s+([A-Za-z_]\w*)\s*$", re.DOTALL | re.IGNORECASE)


def derive_name(node: Node) -> str:
    """Field name for a bare compute expression."""
    if isinstance(node, Property):
        return "_".join(s for s in node.segments if s != "$it") or "it"
    if isinstance(node, Literal):
        if node.text is None:
            return str(node.value)
        return node.text.strip("'")
    if isinstance(node, Alias):
        return node.name
    if isinstance(node, Binary):
        infix = NAME_INFIXES.get(node.op, node.op.value)
        return f"{derive_name(node.left)}_{infix}_{derive_name(node.right)}"
    if isinstance(node, Unary):
        prefix = "neg" if node.op is ODataOperator.NEG else node.op.value
        return f"{prefix}_{derive_name(node.operand)}"
    if isinstance(node, Call):
        return "_".join([node.name, *(derive_name(a) for a in node.args)])
    if isinstance(node, Conditional):
        return "_".join(
            derive_name(n) for n in (node.condition, node.if_true, node.if_false)
        )
    if isinstance(node, Lambda):
        return f"{derive_name(node.collection)}_{node.op.value}"
    if isinstance(node, ListExpr):
        return "_".join(derive_name(i) for i in node.items)
    return type(node).__name__.lower()


@dataclass(frozen=True)
class ComputedField:
    """A compiled ``$compute`` entry."""

    name: str
    expression: str
    node: Node


class ComputeEngine:
    """
    Append computed fields to records.

    Usage::

        engine = ComputeEngine(registry=build_default_registry())
        rows = engine.compute(rows, ["price mul 2 as double", "round(price)"])
    """

    def __init__(self, *, registry: FunctionRegistry) -> None:
        self.registry = registry

    def compile(self, entry: str) -> ComputedField:
        """
        Parse one ``$compute`` entry.

        Raises:
            ComputeExpressionError: If the expression is malformed.
            UnsupportedComputeFunctionError: If it calls an unknown function.
        """
        text = entry.strip()
        name: str | None = None
        labelled = _LABELLED_RE.match(text)
        aliased = _AS_RE.match(text)
        if labelled:
            name, text = labelled.group(1), labelled.group(2).strip()
        elif aliased:
            text, name = aliased.group(1).strip(), aliased.group(2)

        try:
            node = parse_expression(text)
            self.registry.check(node, text)
        except UnknownFunctionError as exc:
            raise UnsupportedComputeFunctionError(entry, exc.name) from exc
        except FilterSyntaxError as exc:
            raise ComputeExpressionError(entry, exc.message) from exc
        return ComputedField(name or derive_name(node), entry, node)

    def compute(
        self,
        rows: Sequence[Any],
        entries: Sequence[str],
        aliases: Mapping[str, str] | None = None,
    ) -> list[Any]:
        """Return shallow copies of *rows* with one field per entry added."""
        if not entries:
            return list(rows)
        fields = [self.compile(e) for e in entries]
        evaluator = ExpressionEvaluator(
            self.registry, aliases=aliases, missing_as_zero=True
        )
        results = []
        for row in rows:
            if not isinstance(row, dict):
                results.append(row)
                continue
            out = dict(row)
            for f in fields:
                out[f.name] = evaluator.evaluate(f.node, out)
            results.append(out)
        return results


def compute_data(
    rows: Sequence[Any],
    options: QueryOptions,
    *,
    registry: FunctionRegistry | None = None,
) -> list[Any]:
    """Apply ``options.compute`` to *rows*."""
    engine = ComputeEngine(registry=registry or build_default_registry())
    return engine.compute(rows, options.compute, options.parameter_aliases)
