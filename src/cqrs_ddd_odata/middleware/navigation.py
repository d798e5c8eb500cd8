"""
Navigation data for ``$expand``.

Related rows come from two sources:

- *expand resolvers*: ``async (entity, item) -> value`` callables keyed by
  navigation property, called once per top-level row;
- *data providers*: ``() -> rows`` callables (sync or async) keyed by
  entity set. The EDM model maps each navigation property to its target
  set and rows are joined on conventional foreign-key names
  (``categoryId``, ``productId`` ...), compared case-insensitively.

Every entity set an expand tree needs is loaded once, concurrently, and
cached for the rest of the request. Loading is bounded by the request
deadline.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..exceptions import RequestTimeoutError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence

    from ..edm import EdmEntityType, EdmModel, EdmNavigationProperty
    from ..query_options import ExpandItem
    from ..shape import ExpandResolver

    DataProvider = Callable[[], Any]
    AsyncExpandResolver = Callable[[dict[str, Any], ExpandItem], Awaitable[Any]]

logger = logging.getLogger("cqrs_ddd.odata.middleware")


def _lower_first(text: str) -> str:
    return text[:1].lower() + text[1:]


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


def get_ci(entity: Mapping[str, Any], name: str) -> tuple[bool, Any]:
    """``(found, value)`` for *name* looked up case-insensitively."""
    if name in entity:
        return True, entity[name]
    lower = name.lower()
    for key, value in entity.items():
        if key.lower() == lower:
            return True, value
    return False, None


def foreign_key_candidates(
    navigation: str, target_type: str, target_key: str | None = None
) -> list[str]:
    """Names a to-one foreign key may carry on the source row."""
    key = _capitalize(target_key) if target_key else "Id"
    names = [
        f"{_lower_first(navigation)}Id",
        f"{_lower_first(navigation)}{key}",
        f"{_lower_first(target_type)}Id",
        f"{_lower_first(target_type)}{key}",
    ]
    return list(dict.fromkeys(names))


def collection_key_candidates(
    source_type: str, navigation: str, source_key: str | None = None
) -> list[str]:
    """Names the back-reference may carry on rows of a to-many target."""
    bases = [_lower_first(source_type), _lower_first(navigation)]
    if len(navigation) > 1 and navigation.endswith("s"):
        bases.append(_lower_first(navigation[:-1]))
    key = _capitalize(source_key) if source_key else "Id"
    names = [n for base in bases if base for n in (f"{base}Id", f"{base}{key}")]
    if source_key and source_key.lower() != "id":
        names.append(source_key)
    return list(dict.fromkeys(names))


@dataclass(frozen=True)
class _Link:
    source: EdmEntityType
    navigation: EdmNavigationProperty
    target: EdmEntityType
    target_set: str


class NavigationResolver:
    """
    Resolve navigation properties from providers and resolvers.

    Usage::

        resolver = NavigationResolver(model, providers={"Categories": load_categories})
        resolvers = await resolver.prepare("Products", options.expand)
        rows = expand_data(rows, options, resolvers=resolvers)
    """

    def __init__(
        self,
        model: EdmModel | None = None,
        providers: Mapping[str, DataProvider] | None = None,
        *,
        expand_resolvers: Mapping[str, AsyncExpandResolver] | None = None,
    ) -> None:
        self.model = model
        self.providers = dict(providers or {})
        self.expand_resolvers = dict(expand_resolvers or {})
        self._cache: dict[str, list[Any]] = {}

    # -- loading -------------------------------------------------------------

    async def load(self, entity_set: str, deadline: float | None = None) -> list[Any]:
        """Rows of *entity_set* from its provider, cached per resolver."""
        if entity_set in self._cache:
            return self._cache[entity_set]
        provider = self.providers.get(entity_set)
        if provider is None:
            return []

        async def _call() -> Any:
            result = provider()
            if inspect.isawaitable(result):
                result = await result
            return result

        data = await _with_deadline(_call(), deadline, f"entity set '{entity_set}'")
        rows = list(data) if isinstance(data, list | tuple) else [data]
        self._cache[entity_set] = rows
        return rows

    async def attach(
        self,
        rows: Sequence[Any],
        items: Iterable[ExpandItem],
        deadline: float | None = None,
    ) -> list[Any]:
        """
        Run the async expand resolvers for the top-level *items*.

        Returns copies of *rows* with each resolved value stored under its
        navigation property, ready for :func:`~cqrs_ddd_odata.shape.expand_data`.
        """
        wanted = [i for i in items if i.path in self.expand_resolvers]
        if not wanted:
            return list(rows)
        result = []
        for row in rows:
            if not isinstance(row, dict):
                result.append(row)
                continue
            values = await asyncio.gather(
                *(
                    _with_deadline(
                        self.expand_resolvers[i.path](row, i),
                        deadline,
                        f"navigation '{i.path}'",
                    )
                    for i in wanted
                )
            )
            copy = dict(row)
            for item, value in zip(wanted, values):
                copy[item.path] = value
            result.append(copy)
        return result

    async def prepare(
        self,
        entity_set: str | None,
        items: Sequence[ExpandItem],
        deadline: float | None = None,
    ) -> dict[str, ExpandResolver]:
        """
        Load every entity set the expand tree under *entity_set* targets and
        return synchronous resolvers keyed by navigation property.
        """
        if self.model is None or not entity_set or not self.providers:
            return {}
        links: dict[str, _Link] = {}
        self._collect(entity_set, items, links)
        sets = sorted({link.target_set for link in links.values()})
        await asyncio.gather(*(self.load(s, deadline) for s in sets))
        return {path: self._resolver(link) for path, link in links.items()}

    def _collect(
        self,
        entity_set: str,
        items: Sequence[ExpandItem],
        links: dict[str, _Link],
    ) -> None:
        assert self.model is not None
        source = self.model.entity_type_for_set(entity_set)
        if source is None:
            return
        for item in items:
            nav = source.get_navigation(item.path)
            target_set = self.model.navigation_target(entity_set, item.path)
            target = self.model.entity_type(nav.target) if nav else None
            if nav is None or target_set is None or target is None:
                continue
            if target_set.name not in self.providers:
                continue
            links.setdefault(item.path, _Link(source, nav, target, target_set.name))
            if item.options is not None and item.options.expand:
                self._collect(target_set.name, item.options.expand, links)

    # -- matching ------------------------------------------------------------

    def _resolver(self, link: _Link) -> ExpandResolver:
        def resolve(entity: dict[str, Any], item: ExpandItem) -> Any:
            if entity.get(item.path) is not None:
                return entity[item.path]
            rows = self._cache.get(link.target_set, [])
            if link.navigation.collection:
                return match_collection(entity, link, rows)
            return match_single(entity, link, rows)

        return resolve


def match_single(entity: Mapping[str, Any], link: _Link, rows: Sequence[Any]) -> Any:
    """The target row whose key equals the source row's foreign key."""
    target_key = link.target.key[0] if link.target.key else None
    if target_key is None:
        return None
    fk = None
    for name in foreign_key_candidates(link.navigation.name, link.target.name, target_key):
        found, fk = get_ci(entity, name)
        if found:
            break
    if fk is None:
        return None
    for row in rows:
        if isinstance(row, dict):
            found, value = get_ci(row, target_key)
            if found and value == fk:
                return row
    return None


def match_collection(
    entity: Mapping[str, Any], link: _Link, rows: Sequence[Any]
) -> list[Any]:
    """Target rows whose back-reference equals the source row's key."""
    source_key = link.source.key[0] if link.source.key else None
    if source_key is None:
        return []
    found, key_value = get_ci(entity, source_key)
    if not found or key_value is None:
        return []
    names = collection_key_candidates(link.source.name, link.navigation.name, source_key)
    matched = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        for name in names:
            has, value = get_ci(row, name)
            if has and value == key_value:
                matched.append(row)
                break
    return matched


async def _with_deadline(
    awaitable: Awaitable[Any], deadline: float | None, label: str
) -> Any:
    if deadline is None:
        return await awaitable
    remaining = deadline - asyncio.get_running_loop().time()
    if remaining <= 0:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise RequestTimeoutError(f"Timeout while resolving {label}")
    try:
        return await asyncio.wait_for(awaitable, remaining)
    except asyncio.TimeoutError as exc:
        logger.warning("Timed out resolving %s", label)
        raise RequestTimeoutError(f"Timeout while resolving {label}") from exc
