"""
Query cache for club_graphql.

A small client-side cache keyed by operation name and variables. Concurrent
fetches of the same key share one in-flight task, and results stay fresh for
a configurable stale time. Failures are never cached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple, Union

logger = logging.getLogger(__name__)

QueryKey = Tuple[Hashable, ...]


def _normalize_key(key: Union[QueryKey, str]) -> QueryKey:
    return (key,) if isinstance(key, str) else tuple(key)


@dataclass
class CacheEntry:
    """Cached query result with metadata."""

    data: Any
    updated_at: float = field(default_factory=lambda: time.monotonic())

    def is_fresh(self, stale_time: float) -> bool:
        return time.monotonic() - self.updated_at < stale_time

    @property
    def age(self) -> float:
        """Get entry age in seconds."""
        return time.monotonic() - self.updated_at


class QueryCache:
    """
    In-memory query cache with in-flight deduplication.

    Examples:
        ```python
        cache = QueryCache(stale_time=30)
        data = await cache.fetch_query(
            ("GetMember", '{"id": "42"}'),
            graphql_fetcher(registry, GET_MEMBER, {"id": "42"}),
        )
        cache.invalidate("GetMember")
        ```
    """

    def __init__(self, stale_time: float = 0.0) -> None:
        """
        Initialize the cache.

        Args:
            stale_time: Default seconds a result is served without refetching
        """
        self.stale_time = stale_time
        self._entries: Dict[QueryKey, CacheEntry] = {}
        self._in_flight: Dict[QueryKey, asyncio.Task[Any]] = {}

        # Statistics
        self._hits = 0
        self._misses = 0
        self._deduplicated = 0

    def __len__(self) -> int:
        return len(self._entries)

    async def fetch_query(
        self,
        key: Union[QueryKey, str],
        fetcher: Callable[[], Awaitable[Any]],
        stale_time: Optional[float] = None,
    ) -> Any:
        """
        Return cached data for ``key`` or run ``fetcher`` to get it.

        Callers awaiting the same key concurrently share one fetch. A caller
        that is cancelled does not cancel the shared fetch.

        Args:
            key: Query key
            fetcher: Zero-argument coroutine function
            stale_time: Override of the default stale time

        Returns:
            Query data
        """
        key = _normalize_key(key)
        freshness = self.stale_time if stale_time is None else stale_time

        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(freshness):
            self._hits += 1
            return entry.data

        task = self._in_flight.get(key)
        if task is None:
            self._misses += 1
            task = asyncio.ensure_future(fetcher())
            self._in_flight[key] = task
            task.add_done_callback(partial(self._settle, key))
        else:
            self._deduplicated += 1
            logger.debug(f"Joining in-flight query {key!r}")

        return await asyncio.shield(task)

    def _settle(self, key: QueryKey, task: asyncio.Task[Any]) -> None:
        current = self._in_flight.get(key) is task
        if current:
            del self._in_flight[key]

        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Query {key!r} failed: {error}")
            return
        # An invalidation while in flight drops the result
        if current:
            self._entries[key] = CacheEntry(task.result())

    def get_query_data(self, key: Union[QueryKey, str]) -> Any:
        """Get cached data regardless of freshness, or None."""
        entry = self._entries.get(_normalize_key(key))
        return entry.data if entry is not None else None

    def set_query_data(self, key: Union[QueryKey, str], data: Any) -> None:
        """Store data for ``key`` as if it had just been fetched."""
        self._entries[_normalize_key(key)] = CacheEntry(data)

    def invalidate(self, prefix: Union[QueryKey, str, None] = None) -> int:
        """
        Drop entries whose key starts with ``prefix``.

        In-flight fetches under the prefix keep running for their waiters but
        their results are not stored.

        Args:
            prefix: Key prefix, or an operation name; None drops everything

        Returns:
            Number of entries dropped
        """
        if prefix is None:
            count = len(self._entries)
            self._entries.clear()
            self._in_flight.clear()
            return count

        prefix = _normalize_key(prefix)
        size = len(prefix)
        matching = [key for key in self._entries if key[:size] == prefix]
        for key in matching:
            del self._entries[key]
        for key in [key for key in self._in_flight if key[:size] == prefix]:
            del self._in_flight[key]

        if matching:
            logger.debug(f"Invalidated {len(matching)} cached queries for {prefix!r}")
        return len(matching)

    def clear(self) -> None:
        """Drop every entry and cancel in-flight fetches."""
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "misses": self._misses,
            "deduplicated": self._deduplicated,
            "hit_rate": self._hits / total if total else 0.0,
        }
