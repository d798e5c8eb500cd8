"""
Tokenizer and recursive-descent parser for OData common expressions.

Grammar (lowest to highest precedence)::

    conditional    := or ( "?" conditional ":" conditional )?
    or             := and ( "or" and )*
    and            := not ( "and" not )*
    not            := "not" not | comparison
    comparison     := additive ( (eq|ne|gt|ge|lt|le|has|in) additive )*
    additive       := multiplicative ( (add|sub|+|-) multiplicative )*
    multiplicative := unary ( (mul|div|divby|mod|*|/|%) unary )*
    unary          := "-" unary | primary
    primary        := literal | @alias | "(" expr ("," expr)* ")"
                    | name "(" args ")" | path "/" (any|all) "(" lambda ")"
                    | path

Property paths ``a/b/c`` are scanned as a single token, so a ``/`` written
with surrounding spaces is division. Parentheses, call arguments, lambda
bodies and prefix operators nest at most ``MAX_NESTING_DEPTH`` levels
deep; past that the parser raises ``QueryTooComplexError``.
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
from .exceptions import FilterSyntaxError, QueryTooComplexError
from .operators import (
    ADDITIVE_OPERATORS,
    COMPARISON_OPERATORS,
    MULTIPLICATIVE_OPERATORS,
    SYMBOL_OPERATORS,
    ODataOperator,
)
from .utils import parse_datetime, parse_duration

if TYPE_CHECKING:
    from collections.abc import Callable

MAX_NESTING_DEPTH = 64

_TOKEN_SPEC: list[tuple[str, str]] = [
    ("WS", r"\s+"),
    ("STRING", r"'(?:[^']|'')*'"),
    ("DURATION", r"duration'[^']*'"),
    (
        "DATETIME",
        r"\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?"
        r"(?:Z|[+-]\d{2}:\d{2})?)?(?![\w-])",
    ),
    ("NUMBER", r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?"),
    ("ALIAS", r"@[A-Za-z_]\w*"),
    ("IDENT", r"\$?[A-Za-z_][\w.]*(?:/\$?[A-Za-z_][\w.]*)*"),
    ("LPAREN", r"\("),
    ("RPAREN", r"\)"),
    ("COMMA", r","),
    ("COLON", r":"),
    ("QUESTION", r"\?"),
    ("SYMBOL", r"[+\-*/%]"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{rx})" for name, rx in _TOKEN_SPEC))

_KEYWORD_LITERALS: dict[str, Any] = {"true": True, "false": False, "null": None}
_LAMBDA_OPERATORS = {ODataOperator.ANY.value, ODataOperator.ALL.value}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    pos: int


def tokenize(text: str) -> list[Token]:
    """
    Split an expression into tokens.

    Raises:
        FilterSyntaxError: On a character no token can start with,
            e.g. an unterminated string literal.
    """
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise FilterSyntaxError(
                f"Unexpected character {text[pos]!r} at position {pos}", text
            )
        kind = m.lastgroup or ""
        if kind != "WS":
            tokens.append(Token(kind, m.group(), pos))
        pos = m.end()
    tokens.append(Token("EOF", "", len(text)))
    return tokens


def _word_operator(token: Token) -> ODataOperator | None:
    if token.kind != "IDENT":
        return None
    try:
        return ODataOperator(token.value.lower())
    except ValueError:
        return None


class ExpressionParser:
    """
    Parse an expression string into an AST.

    Usage::

        node = ExpressionParser("price gt 10 and contains(name, 'A')").parse()
    """

    def __init__(self, text: str, max_depth: int = MAX_NESTING_DEPTH) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0
        self.max_depth = max_depth
        self._depth = 0

    # -- entry point ---------------------------------------------------------

    def parse(self) -> Node:
        if self._peek().kind == "EOF":
            raise FilterSyntaxError("Empty expression", self.text)
        node = self._conditional()
        if self._peek().kind != "EOF":
            tok = self._peek()
            raise FilterSyntaxError(
                f"Unexpected token {tok.value!r} at position {tok.pos}", self.text
            )
        return node

    # -- token helpers -------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = min(self.index + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def _advance(self) -> Token:
        tok = self.tokens[self.index]
        if tok.kind != "EOF":
            self.index += 1
        return tok

    def _expect(self, kind: str) -> Token:
        tok = self._peek()
        if tok.kind != kind:
            found = tok.value or "end of input"
            raise FilterSyntaxError(
                f"Expected {kind.lower()} at position {tok.pos}, found {found!r}",
                self.text,
            )
        return self._advance()

    def _nested(self, parse: Callable[[], Node]) -> Node:
        """Run *parse* one nesting level deeper."""
        self._depth += 1
        if self._depth > self.max_depth:
            raise QueryTooComplexError(
                f"Expression nesting exceeds {self.max_depth} levels", target="$filter"
            )
        try:
            return parse()
        finally:
            self._depth -= 1

    def _match_word(self, *ops: ODataOperator) -> ODataOperator | None:
        op = _word_operator(self._peek())
        if op is not None and op in ops:
            self._advance()
            return op
        return None

    # -- precedence levels ---------------------------------------------------

    def _conditional(self) -> Node:
        node = self._or()
        if self._peek().kind == "QUESTION":
            self._advance()
            if_true = self._nested(self._conditional)
            self._expect("COLON")
            if_false = self._nested(self._conditional)
            return Conditional(node, if_true, if_false)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._match_word(ODataOperator.OR):
            node = Binary(ODataOperator.OR, node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._match_word(ODataOperator.AND):
            node = Binary(ODataOperator.AND, node, self._not())
        return node

    def _not(self) -> Node:
        if self._match_word(ODataOperator.NOT):
            return Unary(ODataOperator.NOT, self._nested(self._not))
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        while True:
            op = self._match_word(*COMPARISON_OPERATORS)
            if op is None:
                return node
            right = self._additive()
            if op is ODataOperator.IN and not isinstance(right, ListExpr | Property):
                right = ListExpr((right,))
            node = Binary(op, node, right)

    def _additive(self) -> Node:
        node = self._multiplicative()
        while True:
            op = self._match_word(*ADDITIVE_OPERATORS) or self._match_symbol("+", "-")
            if op is None:
                return node
            node = Binary(op, node, self._multiplicative())

    def _multiplicative(self) -> Node:
        node = self._unary()
        while True:
            op = self._match_word(*MULTIPLICATIVE_OPERATORS) or self._match_symbol(
                "*", "/", "%"
            )
            if op is None:
                return node
            node = Binary(op, node, self._unary())

    def _match_symbol(self, *symbols: str) -> ODataOperator | None:
        tok = self._peek()
        if tok.kind == "SYMBOL" and tok.value in symbols:
            self._advance()
            return SYMBOL_OPERATORS[tok.value]
        return None

    def _unary(self) -> Node:
        tok = self._peek()
        if tok.kind == "SYMBOL" and tok.value == "-":
            self._advance()
            operand = self._nested(self._unary)
            if isinstance(operand, Literal) and isinstance(operand.value, int | float):
                return Literal(-operand.value, f"-{operand.text}")
            return Unary(ODataOperator.NEG, operand)
        return self._primary()

    # -- primaries -----------------------------------------------------------

    def _primary(self) -> Node:
        tok = self._peek()
        kind = tok.kind

        if kind == "STRING":
            self._advance()
            return Literal(tok.value[1:-1].replace("''", "'"), tok.value)
        if kind == "NUMBER":
            self._advance()
            return Literal(_number(tok.value), tok.value)
        if kind == "DATETIME":
            self._advance()
            value = parse_datetime(tok.value)
            if value is None:
                raise FilterSyntaxError(f"Invalid date literal {tok.value!r}", self.text)
            return Literal(value, tok.value)
        if kind == "DURATION":
            self._advance()
            delta = parse_duration(tok.value[len("duration'") : -1])
            if delta is None:
                raise FilterSyntaxError(
                    f"Invalid duration literal {tok.value!r}", self.text
                )
            return Literal(delta, tok.value)
        if kind == "ALIAS":
            self._advance()
            return Alias(tok.value[1:])
        if kind == "LPAREN":
            return self._group()
        if kind == "IDENT":
            return self._identifier()

        found = tok.value or "end of input"
        raise FilterSyntaxError(
            f"Unexpected {found!r} at position {tok.pos}", self.text
        )

    def _group(self) -> Node:
        self._expect("LPAREN")
        items = [self._nested(self._conditional)]
        while self._peek().kind == "COMMA":
            self._advance()
            items.append(self._nested(self._conditional))
        self._expect("RPAREN")
        if len(items) == 1:
            return items[0]
        return ListExpr(tuple(items))

    def _identifier(self) -> Node:
        tok = self._advance()
        text = tok.value
        lowered = text.lower()

        if self._peek().kind == "LPAREN":
            segments = text.split("/")
            if len(segments) > 1 and segments[-1].lower() in _LAMBDA_OPERATORS:
                return self._lambda(tuple(segments[:-1]), segments[-1].lower())
            if len(segments) > 1:
                raise FilterSyntaxError(
                    f"Bound function calls are not supported: {text!r}", self.text
                )
            return Call(lowered, self._arguments())

        if lowered in _KEYWORD_LITERALS:
            return Literal(_KEYWORD_LITERALS[lowered], text)
        if text.startswith("Edm."):
            # Type names are passed to cast/isof as plain strings.
            return Literal(text, text)
        if _word_operator(tok) is not None and lowered not in ("$it",):
            raise FilterSyntaxError(
                f"Unexpected operator {text!r} at position {tok.pos}", self.text
            )
        return Property(tuple(text.split("/")))

    def _arguments(self) -> tuple[Node, ...]:
        self._expect("LPAREN")
        args: list[Node] = []
        if self._peek().kind != "RPAREN":
            args.append(self._nested(self._conditional))
            while self._peek().kind == "COMMA":
                self._advance()
                args.append(self._nested(self._conditional))
        self._expect("RPAREN")
        return tuple(args)

    def _lambda(self, collection: tuple[str, ...], op_name: str) -> Node:
        op = ODataOperator(op_name)
        self._expect("LPAREN")
        if self._peek().kind == "RPAREN":
            self._advance()
            if op is ODataOperator.ALL:
                raise FilterSyntaxError("all() requires a predicate", self.text)
            return Lambda(Property(collection), op)

        var_tok = self._expect("IDENT")
        self._expect("COLON")
        predicate = self._nested(self._conditional)
        self._expect("RPAREN")
        return Lambda(Property(collection), op, var_tok.value, predicate)


def _number(text: str) -> int | float:
    if re.fullmatch(r"\d+", text):
        return int(text)
    return float(text)


def parse_expression(text: str) -> Node:
    """Parse *text* into an expression tree."""
    return ExpressionParser(text).parse()
