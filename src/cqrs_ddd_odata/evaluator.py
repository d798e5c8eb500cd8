"""
In-memory expression evaluation.

Provides the ODataFunction strategy, the FunctionRegistry that maps
function names to strategies, and the ExpressionEvaluator that interprets
an expression tree against one record with three-valued logic.

New functions are added by subclassing ODataFunction and registering via
``register()``.
"""

from __future__ import annotations

import datetime
import math
from abc import ABC, abstractmethod
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
    walk,
)
from .exceptions import FilterSyntaxError, UnknownFunctionError
from .expression import parse_expression
from .operators import ODataOperator
from .utils import is_number, parse_datetime, parse_duration

if TYPE_CHECKING:
    from collections.abc import Mapping


class ODataFunction(ABC):
    """
    Strategy interface for one built-in or custom function.

    Each function is an isolated class with a single ``evaluate`` method.
    With ``propagate_null`` set (the default) a ``None`` argument makes the
    call evaluate to ``None`` without invoking ``evaluate``.
    """

    min_args: int = 1
    max_args: int | None = 1
    propagate_null: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Function name as written in expressions, lower case."""
        ...

    @abstractmethod
    def evaluate(self, *args: Any) -> Any:
        """
        Evaluate the function against concrete argument values.

        Implementations return ``None`` for arguments of the wrong type
        rather than raising.
        """
        ...

    def accepts(self, argc: int) -> bool:
        if argc < self.min_args:
            return False
        return self.max_args is None or argc <= self.max_args


class FunctionRegistry:
    """
    Registry of ODataFunction instances keyed by lower-case name.

    Usage::

        registry = FunctionRegistry()
        registry.register(ContainsFunction())

        result = registry.invoke("contains", ["Alpha", "lp"])
    """

    def __init__(self) -> None:
        self._functions: dict[str, ODataFunction] = {}

    # -- registration --------------------------------------------------------

    def register(self, function: ODataFunction) -> None:
        """Register a function strategy instance."""
        self._functions[function.name.lower()] = function

    def register_all(self, *functions: ODataFunction) -> None:
        """Register multiple function strategy instances at once."""
        for fn in functions:
            self.register(fn)

    def unregister(self, name: str) -> None:
        """Remove a function from the registry."""
        self._functions.pop(name.lower(), None)

    # -- look-up -------------------------------------------------------------

    def get(self, name: str) -> ODataFunction | None:
        """Return the registered function or ``None``."""
        return self._functions.get(name.lower())

    def has(self, name: str) -> bool:
        return name.lower() in self._functions

    @property
    def supported_functions(self) -> set[str]:
        return set(self._functions.keys())

    # -- validation / invocation ---------------------------------------------

    def check(self, node: Node, expression: str | None = None) -> None:
        """
        Verify every call in *node* names a registered function with a
        valid argument count.

        Raises:
            UnknownFunctionError: For an unregistered function.
            FilterSyntaxError: For a wrong number of arguments.
        """
        for n in walk(node):
            if not isinstance(n, Call):
                continue
            fn = self.get(n.name)
            if fn is None:
                raise UnknownFunctionError(n.name, expression)
            if not fn.accepts(len(n.args)):
                raise FilterSyntaxError(
                    f"{n.name}() does not take {len(n.args)} argument(s)", expression
                )

    def invoke(self, name: str, args: list[Any]) -> Any:
        """
        Look up the function and evaluate.

        Raises:
            UnknownFunctionError: If the function is not registered.
        """
        fn = self.get(name)
        if fn is None:
            raise UnknownFunctionError(name)
        if fn.propagate_null and any(a is None for a in args):
            return None
        try:
            return fn.evaluate(*args)
        except (TypeError, ValueError, ArithmeticError, AttributeError):
            return None


# ---------------------------------------------------------------------------
# Value comparison helpers
# ---------------------------------------------------------------------------


def _widen(value: datetime.date) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime(value.year, value.month, value.day)


def _normalize_tz(
    left: datetime.datetime, right: datetime.datetime
) -> tuple[datetime.datetime, datetime.datetime]:
    if (left.tzinfo is None) != (right.tzinfo is None):
        if left.tzinfo is None:
            left = left.replace(tzinfo=datetime.timezone.utc)
        else:
            right = right.replace(tzinfo=datetime.timezone.utc)
    return left, right


def coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """
    Bring two operands to comparable types.

    ISO strings compared with a date or date-time are parsed; a date
    compared with a date-time is widened to midnight; naive date-times
    compared with aware ones are read as UTC. Durations compared with
    ISO duration strings are parsed.
    """
    left_dt = isinstance(left, datetime.date)
    right_dt = isinstance(right, datetime.date)
    if left_dt or right_dt:
        if isinstance(left, str):
            left = parse_datetime(left)
        if isinstance(right, str):
            right = parse_datetime(right)
        if isinstance(left, datetime.date) and isinstance(right, datetime.date):
            both_plain = not isinstance(left, datetime.datetime) and not isinstance(
                right, datetime.datetime
            )
            if not both_plain:
                left, right = _normalize_tz(_widen(left), _widen(right))
        return left, right

    if isinstance(left, datetime.timedelta) and isinstance(right, str):
        return left, parse_duration(right)
    if isinstance(right, datetime.timedelta) and isinstance(left, str):
        return parse_duration(left), right
    return left, right


def compare(op: ODataOperator, left: Any, right: Any) -> bool | None:
    """Apply a relational operator; ``None`` when operands are not comparable."""
    left, right = coerce_pair(left, right)
    if left is None or right is None:
        return None
    if isinstance(left, bool) != isinstance(right, bool):
        # Booleans never equal numbers.
        if op is ODataOperator.EQ:
            return False
        return True if op is ODataOperator.NE else None
    if op is ODataOperator.EQ:
        return bool(left == right)
    if op is ODataOperator.NE:
        return bool(left != right)
    if is_number(left) != is_number(right):
        return None
    try:
        if op is ODataOperator.GT:
            return bool(left > right)
        if op is ODataOperator.GE:
            return bool(left >= right)
        if op is ODataOperator.LT:
            return bool(left < right)
        if op is ODataOperator.LE:
            return bool(left <= right)
    except TypeError:
        return None
    return None


def arithmetic(op: ODataOperator, left: Any, right: Any) -> Any:
    """Apply an arithmetic operator; ``None`` for unsupported operands."""
    if left is None or right is None:
        return None

    if isinstance(left, datetime.date) or isinstance(left, datetime.timedelta):
        return _temporal_arithmetic(op, left, right)

    if not (is_number(left) and is_number(right)):
        return None
    try:
        if op is ODataOperator.ADD:
            return left + right
        if op is ODataOperator.SUB:
            return left - right
        if op is ODataOperator.MUL:
            return left * right
        if op is ODataOperator.DIV:
            if isinstance(left, int) and isinstance(right, int):
                # Integer division truncates toward zero.
                return int(left / right)
            return left / right
        if op is ODataOperator.DIVBY:
            return left / right
        if op is ODataOperator.MOD:
            result = math.fmod(left, right)
            if isinstance(left, int) and isinstance(right, int):
                return int(result)
            return result
    except ZeroDivisionError:
        return None
    except ValueError:
        # math.fmod(x, 0)
        return None
    return None


def _temporal_arithmetic(op: ODataOperator, left: Any, right: Any) -> Any:
    if isinstance(right, str):
        right = parse_duration(right) or parse_datetime(right)
    try:
        if op is ODataOperator.ADD and isinstance(right, datetime.timedelta):
            return left + right
        if op is ODataOperator.SUB:
            if isinstance(right, datetime.timedelta):
                return left - right
            if isinstance(left, datetime.date) and isinstance(right, datetime.date):
                a, b = _normalize_tz(_widen(left), _widen(right))
                return a - b
        if isinstance(left, datetime.timedelta) and is_number(right):
            if op is ODataOperator.MUL:
                return left * right
            if op in (ODataOperator.DIV, ODataOperator.DIVBY):
                return left / right
    except (TypeError, ZeroDivisionError, OverflowError):
        return None
    return None


def _as_bool(value: Any) -> bool | None:
    return value if isinstance(value, bool) else None


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """
    Interpret an expression tree against a single record.

    Logical operators follow Kleene three-valued logic: ``None`` stands for
    "unknown" and a filter keeps a row only when its predicate is ``True``.
    Comparisons against the ``null`` literal use identity semantics.

    Args:
        registry: Function registry used for ``Call`` nodes.
        aliases: Parameter aliases (``@name`` -> literal text).
        missing_as_zero: Treat ``None`` arithmetic operands as ``0``.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        *,
        aliases: Mapping[str, str] | None = None,
        missing_as_zero: bool = False,
    ) -> None:
        self.registry = registry
        self.aliases = dict(aliases or {})
        self.missing_as_zero = missing_as_zero
        self._alias_cache: dict[str, Any] = {}

    def evaluate(
        self,
        node: Node,
        row: Any,
        scope: Mapping[str, Any] | None = None,
    ) -> Any:
        scope = scope or {}
        method = getattr(self, f"_eval_{type(node).__name__.lower()}", None)
        if method is None:
            raise FilterSyntaxError(f"Cannot evaluate node {type(node).__name__}")
        return method(node, row, scope)

    def matches(self, node: Node, row: Any) -> bool:
        """Whether *row* satisfies the predicate (``None`` counts as no)."""
        return self.evaluate(node, row) is True

    # -- leaves --------------------------------------------------------------

    def _eval_literal(self, node: Literal, row: Any, scope: Mapping[str, Any]) -> Any:
        return node.value

    def _eval_property(
        self, node: Property, row: Any, scope: Mapping[str, Any]
    ) -> Any:
        head, *rest = node.segments
        if head in scope:
            current = scope[head]
        elif head == "$it":
            current = row
        elif isinstance(row, dict):
            current = row.get(head)
        else:
            return None
        for segment in rest:
            if current is None:
                return None
            if segment == "$count" and isinstance(current, list | tuple):
                current = len(current)
            elif isinstance(current, dict):
                current = current.get(segment)
            else:
                return None
        return current

    def _eval_alias(self, node: Alias, row: Any, scope: Mapping[str, Any]) -> Any:
        if node.name in self._alias_cache:
            return self._alias_cache[node.name]
        raw = self.aliases.get(f"@{node.name}", self.aliases.get(node.name))
        value: Any = None
        if raw is not None:
            try:
                parsed: Node | None = parse_expression(raw)
            except FilterSyntaxError:
                parsed = None
            # Aliases carry literal values only; anything else stays raw text.
            if isinstance(parsed, Literal | ListExpr | Unary):
                value = self.evaluate(parsed, row, scope)
            else:
                value = raw
        self._alias_cache[node.name] = value
        return value

    def _eval_listexpr(
        self, node: ListExpr, row: Any, scope: Mapping[str, Any]
    ) -> list[Any]:
        return [self.evaluate(item, row, scope) for item in node.items]

    # -- operators -----------------------------------------------------------

    def _eval_unary(self, node: Unary, row: Any, scope: Mapping[str, Any]) -> Any:
        value = self.evaluate(node.operand, row, scope)
        if node.op is ODataOperator.NOT:
            b = _as_bool(value)
            return None if b is None else not b
        if value is None and self.missing_as_zero:
            return 0
        if is_number(value) or isinstance(value, datetime.timedelta):
            return -value
        return None

    def _eval_binary(self, node: Binary, row: Any, scope: Mapping[str, Any]) -> Any:
        op = node.op
        if op is ODataOperator.AND:
            left = _as_bool(self.evaluate(node.left, row, scope))
            if left is False:
                return False
            right = _as_bool(self.evaluate(node.right, row, scope))
            if right is False:
                return False
            if left is None or right is None:
                return None
            return True
        if op is ODataOperator.OR:
            left = _as_bool(self.evaluate(node.left, row, scope))
            if left is True:
                return True
            right = _as_bool(self.evaluate(node.right, row, scope))
            if right is True:
                return True
            if left is None or right is None:
                return None
            return False

        left = self.evaluate(node.left, row, scope)
        right = self.evaluate(node.right, row, scope)

        if op in (ODataOperator.EQ, ODataOperator.NE):
            if _is_null_literal(node.left) or _is_null_literal(node.right):
                same = left is None and right is None
                return same if op is ODataOperator.EQ else not same
            return compare(op, left, right)
        if op in (ODataOperator.GT, ODataOperator.GE, ODataOperator.LT, ODataOperator.LE):
            return compare(op, left, right)
        if op is ODataOperator.HAS:
            return _has(left, right)
        if op is ODataOperator.IN:
            return _in(left, right)

        if self.missing_as_zero:
            left = 0 if left is None else left
            right = 0 if right is None else right
        return arithmetic(op, left, right)

    def _eval_call(self, node: Call, row: Any, scope: Mapping[str, Any]) -> Any:
        args = [self.evaluate(arg, row, scope) for arg in node.args]
        return self.registry.invoke(node.name, args)

    def _eval_lambda(self, node: Lambda, row: Any, scope: Mapping[str, Any]) -> Any:
        collection = self._eval_property(node.collection, row, scope)
        if collection is None:
            return None
        if not isinstance(collection, list | tuple):
            return None
        if node.predicate is None:
            return len(collection) > 0

        results = []
        for item in collection:
            inner = {**scope, node.variable or "$it": item}
            results.append(self.evaluate(node.predicate, row, inner) is True)
        if node.op is ODataOperator.ANY:
            return any(results)
        return all(results)

    def _eval_conditional(
        self, node: Conditional, row: Any, scope: Mapping[str, Any]
    ) -> Any:
        if self.evaluate(node.condition, row, scope) is True:
            return self.evaluate(node.if_true, row, scope)
        return self.evaluate(node.if_false, row, scope)


def _is_null_literal(node: Node) -> bool:
    return isinstance(node, Literal) and node.value is None


def _has(collection: Any, member: Any) -> bool | None:
    if collection is None or member is None:
        return None
    if isinstance(collection, list | tuple | set | frozenset):
        return any(
            compare(ODataOperator.EQ, member, item) is True for item in collection
        )
    if isinstance(collection, str):
        # Flags enums serialise as comma-separated member names.
        flags = {f.strip() for f in collection.split(",")}
        return str(member) in flags
    return None


def _in(value: Any, candidates: Any) -> bool | None:
    if value is None:
        return None
    if not isinstance(candidates, list | tuple | set | frozenset):
        return None
    for candidate in candidates:
        if compare(ODataOperator.EQ, value, candidate) is True:
            return True
    return False
