"""Filter-keyed cache of derived views and the invalidation coordinator."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from sales_funnel.models.filters import SalesFilters

logger = logging.getLogger(__name__)

ACTIVITIES = "activities"
CLIENT_ROLLUP = "client_rollup"
FUNNEL_METRICS = "funnel_metrics"
OPPORTUNITIES = "opportunities"

NAMESPACES = (ACTIVITIES, CLIENT_ROLLUP, FUNNEL_METRICS, OPPORTUNITIES)

RefreshCallback = Callable[[], Awaitable[Any]]


class CacheStore:
    """In-process cache keyed by (namespace, canonical filter key)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], Any] = {}

    @staticmethod
    def _key(namespace: str, filters: SalesFilters) -> tuple[str, str]:
        if namespace not in NAMESPACES:
            raise ValueError(f"Unknown cache namespace: {namespace}")
        return namespace, filters.cache_key()

    def get(self, namespace: str, filters: SalesFilters) -> Optional[Any]:
        return self._entries.get(self._key(namespace, filters))

    def set(self, namespace: str, filters: SalesFilters, value: Any) -> None:
        self._entries[self._key(namespace, filters)] = value

    def contains(self, namespace: str, filters: SalesFilters) -> bool:
        return self._key(namespace, filters) in self._entries

    def invalidate(self, namespaces: Optional[Iterable[str]] = None) -> int:
        """Drop every entry in the given namespaces (all by default). Returns entries removed."""
        targets = set(namespaces) if namespaces is not None else set(NAMESPACES)
        stale = [k for k in self._entries if k[0] in targets]
        for key in stale:
            del self._entries[key]
        logger.debug("Invalidated %d cache entries in %s", len(stale), sorted(targets))
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class InvalidationCoordinator:
    """
    After any mutation: invalidate every derived view, then refresh the views
    that are currently shown. Inactive views refetch when next activated.
    """

    def __init__(self, cache: CacheStore):
        self._cache = cache
        self._views: dict[str, RefreshCallback] = {}
        self._active: set[str] = set()

    @property
    def cache(self) -> CacheStore:
        return self._cache

    def register_view(self, name: str, refresh: RefreshCallback) -> None:
        self._views[name] = refresh

    def activate(self, name: str) -> None:
        if name not in self._views:
            raise KeyError(f"Unknown view: {name}")
        self._active.add(name)

    def deactivate(self, name: str) -> None:
        self._active.discard(name)

    @property
    def active_views(self) -> list[str]:
        return sorted(self._active)

    async def on_mutation(self, kind: str, record_id: str) -> list[str]:
        """Invalidate all namespaces and refresh active views. Returns the views refreshed."""
        removed = self._cache.invalidate()
        names = self.active_views
        logger.info("%s on %s: dropped %d cache entries, refreshing %s", kind, record_id, removed, names)

        results = await asyncio.gather(*(self._views[n]() for n in names), return_exceptions=True)
        errors = [(n, r) for n, r in zip(names, results) if isinstance(r, BaseException)]
        for name, error in errors:
            logger.error("Refresh of view %s failed: %s", name, error)
        if errors:
            raise errors[0][1]
        return names
