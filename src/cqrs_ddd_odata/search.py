"""
``$search`` parsing and relevance scoring.

Supported syntax::

    term            case-insensitive substring match in any text field
    "a phrase"      whole phrase; "a b"~N matches words within N positions
    te*m / te?m     wildcards, matched against single words
    term~           fuzzy match (similarity >= 0.8)
    field:value     match a single (possibly nested, a/b) property
    field:[lo TO hi]  inclusive range, ``*`` for an open bound
    term^N          multiply the score of a clause by N
    AND, OR, NOT, ( )

Juxtaposed clauses combine with OR. Every returned row carries an
``@search.score`` annotation; rows come back best first, ties in input
order. Unlike ``$filter``, malformed search text raises.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any

from .exceptions import SearchSyntaxError, UnsupportedSearchFeatureError
from .utils import has_path, is_number, resolve_path

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from .query_options import QueryOptions

SCORE_ANNOTATION = "@search.score"
FUZZY_THRESHOLD = 0.8

_NUM = r"\d+(?:\.\d+)?"
_TOKEN_RE = re.compile(
    rf"""
    (?P<ws>\s+)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<range>(?P<rfield>[\w./]+):\[\s*(?P<lo>[^\]\s]+)\s+TO\s+(?P<hi>[^\]\s]+)\s*\])
  | (?P<field>(?P<ffield>[\w./]+):(?P<fvalue>"[^"]*"|[^\s()"\[\]^]+))
        (?:\^(?P<fboost>{_NUM}))?
  | (?P<phrase>"(?P<ptext>[^"]*)")(?:~(?P<prox>\d+))?(?:\^(?P<pboost>{_NUM}))?
  | (?P<term>[^\s()"\[\]^~:]+)(?P<fuzzy>~)?(?:\^(?P<tboost>{_NUM}))?
    """,
    re.VERBOSE,
)
_KEYWORDS = ("AND", "OR", "NOT")
_WORD_RE = re.compile(r"\w+")


# ---------------------------------------------------------------------------
# Scoring context
# ---------------------------------------------------------------------------


def _iter_text(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for key, nested in value.items():
            if not str(key).startswith("@"):
                yield from _iter_text(nested)
    elif isinstance(value, list | tuple):
        for nested in value:
            yield from _iter_text(nested)


@dataclass
class _Document:
    row: Any
    texts: list[str] = field(default_factory=list)
    words: list[list[str]] = field(default_factory=list)

    @classmethod
    def of(cls, row: Any) -> _Document:
        texts = [t.lower() for t in _iter_text(row)]
        return cls(row, texts, [_WORD_RE.findall(t) for t in texts])


# ---------------------------------------------------------------------------
# Query nodes
# ---------------------------------------------------------------------------


class SearchNode(ABC):
    boost: float = 1.0

    @abstractmethod
    def score(self, doc: _Document) -> float:
        """Relevance of *doc*; ``0`` when it does not match."""

    def fields(self) -> Iterator[str]:
        return iter(())


@dataclass(frozen=True)
class Term(SearchNode):
    text: str
    fuzzy: bool = False
    boost: float = 1.0

    @property
    def is_wildcard(self) -> bool:
        return "*" in self.text or "?" in self.text

    def _matches_word(self, word: str) -> bool:
        needle = self.text.lower()
        if self.is_wildcard:
            return fnmatchcase(word, needle)
        if needle in word:
            return True
        return SequenceMatcher(None, needle, word).ratio() >= FUZZY_THRESHOLD

    def score(self, doc: _Document) -> float:
        needle = self.text.lower()
        if not (self.is_wildcard or self.fuzzy):
            hits = sum(1 for text in doc.texts if needle in text)
        else:
            hits = sum(
                1 for words in doc.words if any(self._matches_word(w) for w in words)
            )
        return hits * self.boost


@dataclass(frozen=True)
class Phrase(SearchNode):
    text: str
    proximity: int | None = None
    boost: float = 1.0

    @property
    def terms(self) -> list[str]:
        return _WORD_RE.findall(self.text.lower())

    def _within(self, words: list[str]) -> bool:
        terms = self.terms
        positions = [[i for i, w in enumerate(words) if w == t] for t in terms]
        if any(not p for p in positions):
            return False
        window = self.proximity or 0
        # Every term must sit within ``window`` words of the first one.
        for anchor in positions[0]:
            if all(
                any(abs(p - anchor) <= window + idx for p in plist)
                for idx, plist in enumerate(positions[1:], start=1)
            ):
                return True
        return False

    def score(self, doc: _Document) -> float:
        weight = max(len(self.terms), 1) * 2
        if self.proximity is None:
            needle = self.text.lower()
            hits = sum(1 for text in doc.texts if needle and needle in text)
        else:
            hits = sum(1 for words in doc.words if self._within(words))
        return hits * weight * self.boost


@dataclass(frozen=True)
class FieldTerm(SearchNode):
    field: str
    value: str
    boost: float = 1.0

    def fields(self) -> Iterator[str]:
        yield self.field

    def score(self, doc: _Document) -> float:
        actual = resolve_path(doc.row, self.field)
        if actual is None:
            return 0.0
        if is_number(actual):
            try:
                matched = float(self.value) == actual
            except ValueError:
                matched = False
        elif "*" in self.value or "?" in self.value:
            matched = fnmatchcase(str(actual).lower(), self.value.lower())
        else:
            matched = self.value.lower() in str(actual).lower()
        return self.boost if matched else 0.0


@dataclass(frozen=True)
class FieldRange(SearchNode):
    field: str
    low: str
    high: str

    def fields(self) -> Iterator[str]:
        yield self.field

    def score(self, doc: _Document) -> float:
        actual = resolve_path(doc.row, self.field)
        if actual is None:
            return 0.0
        if is_number(actual):
            try:
                low = float("-inf") if self.low == "*" else float(self.low)
                high = float("inf") if self.high == "*" else float(self.high)
            except ValueError:
                return 0.0
            return 1.0 if low <= actual <= high else 0.0
        text = str(actual).lower()
        if self.low != "*" and text < self.low.lower():
            return 0.0
        if self.high != "*" and text > self.high.lower():
            return 0.0
        return 1.0


@dataclass(frozen=True)
class AndNode(SearchNode):
    parts: tuple[SearchNode, ...]

    def fields(self) -> Iterator[str]:
        for p in self.parts:
            yield from p.fields()

    def score(self, doc: _Document) -> float:
        scores = [p.score(doc) for p in self.parts]
        if any(s <= 0 for s in scores):
            return 0.0
        return sum(scores)


@dataclass(frozen=True)
class OrNode(SearchNode):
    parts: tuple[SearchNode, ...]

    def fields(self) -> Iterator[str]:
        for p in self.parts:
            yield from p.fields()

    def score(self, doc: _Document) -> float:
        return sum(p.score(doc) for p in self.parts)


@dataclass(frozen=True)
class NotNode(SearchNode):
    operand: SearchNode

    def fields(self) -> Iterator[str]:
        return self.operand.fields()

    def score(self, doc: _Document) -> float:
        return 0.0 if self.operand.score(doc) > 0 else 1.0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Token:
    kind: str
    node: SearchNode | None = None
    pos: int = 0


def _boost(raw: str | None) -> float:
    return float(raw) if raw else 1.0


def tokenize_search(text: str) -> list[_Token]:
    """
    Split search text into operator and clause tokens.

    Raises:
        SearchSyntaxError: On stray brackets, unclosed quotes and other
            characters no clause can start with.
    """
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise SearchSyntaxError(f"unexpected {text[pos]!r} at position {pos}")
        g = m.groupdict()
        if g["lparen"]:
            tokens.append(_Token("(", pos=pos))
        elif g["rparen"]:
            tokens.append(_Token(")", pos=pos))
        elif g["range"]:
            tokens.append(_Token("clause", FieldRange(g["rfield"], g["lo"], g["hi"]), pos))
        elif g["field"]:
            value = g["fvalue"].strip('"')
            tokens.append(
                _Token("clause", FieldTerm(g["ffield"], value, _boost(g["fboost"])), pos)
            )
        elif g["phrase"]:
            proximity = int(g["prox"]) if g["prox"] else None
            phrase = Phrase(g["ptext"], proximity, _boost(g["pboost"]))
            tokens.append(_Token("clause", phrase, pos))
        elif g["term"]:
            word = g["term"]
            if word in _KEYWORDS and not g["fuzzy"] and not g["tboost"]:
                tokens.append(_Token(word, pos=pos))
            else:
                term = Term(word, bool(g["fuzzy"]), _boost(g["tboost"]))
                tokens.append(_Token("clause", term, pos))
        pos = m.end()
    return tokens


class _SearchParser:
    def __init__(self, tokens: list[_Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def _peek(self) -> str | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index].kind
        return None

    def parse(self) -> SearchNode:
        node = self._or()
        if self._peek() is not None:
            tok = self.tokens[self.index]
            raise SearchSyntaxError(f"unexpected {tok.kind!r} at position {tok.pos}")
        return node

    def _or(self) -> SearchNode:
        parts = [self._and()]
        while self._peek() in ("OR", "clause", "(", "NOT"):
            if self._peek() == "OR":
                self.index += 1
            parts.append(self._and())
        return parts[0] if len(parts) == 1 else OrNode(tuple(parts))

    def _and(self) -> SearchNode:
        parts = [self._not()]
        while self._peek() == "AND":
            self.index += 1
            parts.append(self._not())
        return parts[0] if len(parts) == 1 else AndNode(tuple(parts))

    def _not(self) -> SearchNode:
        if self._peek() == "NOT":
            self.index += 1
            return NotNode(self._not())
        return self._primary()

    def _primary(self) -> SearchNode:
        kind = self._peek()
        if kind == "(":
            self.index += 1
            node = self._or()
            if self._peek() != ")":
                raise SearchSyntaxError("unbalanced parentheses")
            self.index += 1
            return node
        if kind == "clause":
            tok = self.tokens[self.index]
            self.index += 1
            assert tok.node is not None
            return tok.node
        if kind is None:
            raise SearchSyntaxError("unexpected end of input")
        if kind == ")":
            raise SearchSyntaxError("unbalanced parentheses")
        raise SearchSyntaxError(f"operator {kind} is missing an operand")


def parse_search(text: str) -> SearchNode:
    """
    Parse search text into a scoring tree.

    Raises:
        SearchSyntaxError: If the text is not well formed.
    """
    tokens = tokenize_search(text)
    if not tokens:
        raise SearchSyntaxError("empty search expression")
    return _SearchParser(tokens).parse()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class SearchEngine:
    """
    Rank records against ``$search`` text.

    Usage::

        ranked = SearchEngine().search(rows, '"Alpha Beta" OR Alpha')
    """

    def search(self, rows: Sequence[Any], text: str | None) -> list[Any]:
        """
        Return matching rows annotated with ``@search.score``, best first.

        Raises:
            SearchSyntaxError: If *text* is malformed.
            UnsupportedSearchFeatureError: If a field-scoped clause names a
                property none of the rows has.
        """
        if text is None or not text.strip():
            return list(rows)
        query = parse_search(text.strip())
        self._check_fields(rows, query)

        scored: list[tuple[float, int, Any]] = []
        for index, row in enumerate(rows):
            score = query.score(_Document.of(row))
            if score > 0:
                scored.append((score, index, row))
        scored.sort(key=lambda item: (-item[0], item[1]))

        results = []
        for score, _, row in scored:
            if isinstance(row, dict):
                results.append({**row, SCORE_ANNOTATION: score})
            else:
                results.append(row)
        return results

    def _check_fields(self, rows: Sequence[Any], query: SearchNode) -> None:
        if not rows:
            return
        for name in query.fields():
            if not any(has_path(row, name) for row in rows):
                raise UnsupportedSearchFeatureError(f"field '{name}'")


def search_data(rows: Sequence[Any], options: QueryOptions) -> list[Any]:
    """Apply ``options.search`` to *rows*."""
    return SearchEngine().search(rows, options.search)
