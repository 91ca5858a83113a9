"""In-memory query cache shared by every sync consumer of one session.

Values are stored under tuple keys such as ``("photos", collection_id,
filters_key)``. Invalidation works on key prefixes: invalidating
``("photos", "c1")`` marks every photo query of collection c1 stale and asks
each live subscriber of a matching key to refetch.

Writes always replace a whole value; cached values are treated as
immutable by everybody.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, TypeVar

from api.errors import ApiError

logger = logging.getLogger(__name__)

QueryKey = tuple
T = TypeVar("T")

Loader = Callable[[], Awaitable[Any]]
InvalidateCallback = Callable[[], Awaitable[None]]


def key_matches(key: QueryKey, prefix: QueryKey) -> bool:
    """True if ``key`` starts with ``prefix``."""
    return key[:len(prefix)] == prefix


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    updated_at: float
    stale: bool = False


class QueryCache:
    """Keyed store with prefix invalidation and request de-duplication."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Task] = {}
        self._subscribers: dict[int, tuple[QueryKey, InvalidateCallback]] = {}
        self._next_subscriber = 0
        # Only the most recent load per key may commit
        self._latest: dict[QueryKey, int] = {}
        self._next_ticket = 0
        # Bumped by clear(); loads started before a clear never commit
        self._epoch = 0

    # -------------------------------------------------------------------------
    # Reads and writes
    # -------------------------------------------------------------------------

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        return entry.value if entry else default

    def entry(self, key: QueryKey) -> CacheEntry | None:
        return self._entries.get(key)

    def has(self, key: QueryKey) -> bool:
        return key in self._entries

    def set(self, key: QueryKey, value: Any) -> None:
        """Store ``value`` under ``key`` as a fresh entry."""
        self._entries[key] = CacheEntry(value=value, updated_at=self._clock())

    def update(self, prefix: QueryKey, fn: Callable[[Any], Any]) -> int:
        """Replace the value of every entry under ``prefix`` with ``fn(value)``.

        Returns the number of entries replaced. Freshness is left untouched.
        """
        count = 0
        for key in [k for k in self._entries if key_matches(k, prefix)]:
            entry = self._entries[key]
            new_value = fn(entry.value)
            if new_value is not entry.value:
                self._entries[key] = replace(entry, value=new_value)
                count += 1
        return count

    def remove(self, key: QueryKey) -> None:
        self._entries.pop(key, None)

    def is_fresh(self, key: QueryKey, max_age: float | None = None) -> bool:
        """Entry exists, has not been invalidated and is younger than ``max_age``.

        ``max_age=None`` means fresh until invalidated.
        """
        entry = self._entries.get(key)
        if entry is None or entry.stale:
            return False
        if max_age is None:
            return True
        return self._clock() - entry.updated_at <= max_age

    @property
    def epoch(self) -> int:
        """Incremented by every ``clear()``."""
        return self._epoch

    def clear(self) -> None:
        """Drop every entry. Requests in flight complete but do not commit."""
        self._entries.clear()
        self._inflight.clear()
        self._latest.clear()
        self._epoch += 1
        logger.debug("Query cache cleared (epoch %d)", self._epoch)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def fetch(
        self,
        key: QueryKey,
        loader: Loader,
        *,
        max_age: float | None = None,
        force: bool = False,
    ) -> Any:
        """Return the cached value for ``key`` or load it.

        Concurrent callers for the same key share one request. ``force``
        starts a new request even when a cached value is fresh; an older
        request still in flight then no longer commits its result.
        Loader exceptions propagate to every waiting caller.
        """
        if not force and self.is_fresh(key, max_age):
            return self._entries[key].value

        task = self._inflight.get(key)
        if task is None or force:
            self._next_ticket += 1
            self._latest[key] = self._next_ticket
            task = asyncio.ensure_future(
                self._load(key, loader, self._epoch, self._next_ticket)
            )
            self._inflight[key] = task
        # A cancelled caller must not cancel the shared request
        return await asyncio.shield(task)

    async def _load(self, key: QueryKey, loader: Loader, epoch: int, ticket: int) -> Any:
        try:
            value = await loader()
        finally:
            current = epoch == self._epoch and self._latest.get(key) == ticket
            if current:
                self._inflight.pop(key, None)
                self._latest.pop(key, None)
        if current:
            self.set(key, value)
        else:
            logger.debug("Discarding superseded result for %s", key)
        return value

    def is_fetching(self, key: QueryKey) -> bool:
        return key in self._inflight

    def inflight(self, key: QueryKey) -> asyncio.Task | None:
        """The request currently loading ``key``, if any."""
        return self._inflight.get(key)

    def track(self, key: QueryKey, task: asyncio.Task) -> None:
        """Register ``task`` as the request loading ``key`` until it is done.

        Used by loaders that manage their own commits (paged sequences) so
        other consumers of ``key`` can join the request instead of issuing
        their own. The entry is dropped when the task finishes, whether or
        not anybody is still awaiting it.
        """
        self._inflight[key] = task

        def untrack(done: asyncio.Task) -> None:
            if self._inflight.get(key) is done:
                del self._inflight[key]

        task.add_done_callback(untrack)

    # -------------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------------

    def subscribe(self, key: QueryKey, on_invalidate: InvalidateCallback) -> Callable[[], None]:
        """Call ``on_invalidate`` whenever a prefix covering ``key`` is invalidated.

        Returns an unsubscribe function.
        """
        token = self._next_subscriber
        self._next_subscriber += 1
        self._subscribers[token] = (key, on_invalidate)

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    async def invalidate(self, prefix: QueryKey) -> int:
        """Mark entries under ``prefix`` stale and refetch live subscribers.

        Returns the number of entries marked stale.
        """
        keys = [k for k in self._entries if key_matches(k, prefix)]
        for key in keys:
            self._entries[key] = replace(self._entries[key], stale=True)

        callbacks = [
            callback
            for key, callback in list(self._subscribers.values())
            if key_matches(key, prefix)
        ]
        logger.debug("Invalidated %s: %d entries, %d subscribers", prefix, len(keys), len(callbacks))
        if callbacks:
            await asyncio.gather(*(callback() for callback in callbacks))
        return len(keys)


class Query(Generic[T]):
    """A single cached read that a view can observe.

    Transport failures are captured on ``error`` instead of raised; the last
    good value stays available on ``data``. A ``None`` key disables the query.
    """

    def __init__(
        self,
        cache: QueryCache,
        key: QueryKey | None,
        loader: Callable[[], Awaitable[T]] | None,
        *,
        max_age: float | None = None,
    ) -> None:
        self._cache = cache
        self._max_age = max_age
        self._key: QueryKey | None = None
        self._loader: Callable[[], Awaitable[T]] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._generation = 0
        self.error: ApiError | None = None
        self.is_loading = False
        self.set_key(key, loader)

    @property
    def key(self) -> QueryKey | None:
        return self._key

    @property
    def enabled(self) -> bool:
        return self._key is not None and self._loader is not None

    @property
    def data(self) -> T | None:
        if self._key is None:
            return None
        return self._cache.get(self._key)

    def set_key(self, key: QueryKey | None, loader: Callable[[], Awaitable[T]] | None) -> None:
        """Point the query at another key; results for the old key are ignored."""
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._key = key
        self._loader = loader
        self.error = None
        self.is_loading = False
        if key is not None:
            self._unsubscribe = self._cache.subscribe(key, self.refetch)

    async def load(self) -> T | None:
        """Return fresh data, fetching only when the cache has none."""
        return await self._run(force=False)

    async def refetch(self) -> T | None:
        return await self._run(force=True)

    async def _run(self, force: bool) -> T | None:
        if not self.enabled:
            return None
        generation = self._generation
        key = self._key
        self.is_loading = True
        try:
            value = await self._cache.fetch(key, self._loader, max_age=self._max_age, force=force)
        except ApiError as e:
            if generation == self._generation:
                logger.warning("Query %s failed: %s", key, e)
                self.error = e
            return self.data
        finally:
            if generation == self._generation:
                self.is_loading = False
        if generation != self._generation:
            return self.data
        self.error = None
        return value

    def close(self) -> None:
        """Stop reacting to invalidation and ignore results still in flight."""
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
