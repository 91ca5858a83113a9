"""Incremental loading of long, ordered sequences from the backend.

Two pagination disciplines are supported:

- cursor: every page carries an opaque cursor for the next one (photos)
- offset/limit with tiered page sizes: a small first page for fast first
  paint, larger follow-up pages to amortise scroll-triggered loads
  (people, clusters)

Loaded pages live in the shared QueryCache as a single immutable
``PagedData`` value, so every consumer with the same key sees the same
sequence and an invalidation of a matching key prefix refetches it.

One request per key is in flight at a time; fetchers sharing a key join it.
A generation counter is bumped whenever the key changes, a refetch starts or
the fetcher is closed; a request that completes under an older generation,
or after the cache was cleared, is discarded without touching shared state.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from api.errors import ApiError
from sync.cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[["PagedFetcher"], None]


@dataclass(frozen=True)
class Page(Generic[T]):
    """One fetched page; ``next_param`` is None once the sequence is exhausted."""

    items: tuple[T, ...]
    next_param: Any = None
    total: int | None = None


@dataclass(frozen=True)
class PagedData(Generic[T]):
    """All pages loaded so far for one query key."""

    pages: tuple[Page[T], ...] = ()

    @property
    def items(self) -> list[T]:
        return [item for page in self.pages for item in page.items]

    @property
    def has_more(self) -> bool:
        return bool(self.pages) and self.pages[-1].next_param is not None

    @property
    def total(self) -> int | None:
        return self.pages[0].total if self.pages else None

    def append(self, page: Page[T]) -> PagedData[T]:
        return PagedData(self.pages + (page,))

    def map_items(self, fn: Callable[[T], T]) -> PagedData[T]:
        """Copy with ``fn`` applied to every item; pages are replaced whole."""
        return PagedData(tuple(
            replace(page, items=tuple(fn(item) for item in page.items))
            for page in self.pages
        ))

    def without(self, predicate: Callable[[T], bool]) -> PagedData[T]:
        """Copy with items matching ``predicate`` dropped (self if none match)."""
        if not any(predicate(item) for item in self.items):
            return self
        return PagedData(tuple(
            replace(page, items=tuple(item for item in page.items if not predicate(item)))
            for page in self.pages
        ))


@dataclass(frozen=True)
class TieredPageSize:
    """Page-size policy: ``first`` items on page 0, ``rest`` on every later page."""

    first: int
    rest: int

    def __post_init__(self) -> None:
        if self.first <= 0 or self.rest <= 0:
            raise ValueError("page sizes must be positive")

    def window(self, page_index: int) -> tuple[int, int]:
        """Return ``(limit, offset)`` for ``page_index``."""
        if page_index < 0:
            raise ValueError(f"negative page index: {page_index}")
        if page_index == 0:
            return self.first, 0
        return self.rest, self.first + (page_index - 1) * self.rest


class PagedFetcher(ABC, Generic[T]):
    """Base class: a growing ordered sequence plus loading state.

    Subclasses provide the first page parameter and how one page is fetched.
    A ``None`` key (e.g. no collection selected yet) disables the fetcher.
    """

    def __init__(self, cache: QueryCache, key: QueryKey | None, loader: Any) -> None:
        self._cache = cache
        self._key: QueryKey | None = None
        self._loader: Any = None
        self._generation = 0
        self._unsubscribe: Callable[[], None] | None = None
        self._listeners: list[Listener] = []
        self.error: ApiError | None = None
        self.is_loading = False
        self.is_loading_more = False
        self.is_refreshing = False
        self.set_key(key, loader)

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _initial_param(self) -> Any:
        """Parameter of the first page."""

    @abstractmethod
    async def _fetch_page(self, loader: Any, param: Any) -> Page[T]:
        """Fetch the page for ``param`` through ``loader``."""

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def key(self) -> QueryKey | None:
        return self._key

    @property
    def enabled(self) -> bool:
        return self._key is not None and self._loader is not None

    @property
    def data(self) -> PagedData[T] | None:
        if self._key is None:
            return None
        return self._cache.get(self._key)

    @property
    def items(self) -> list[T]:
        data = self.data
        return data.items if data else []

    @property
    def has_more(self) -> bool:
        data = self.data
        return self.enabled and data is not None and data.has_more

    @property
    def is_fetching(self) -> bool:
        return self._key is not None and self._cache.inflight(self._key) is not None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(fetcher)`` after every state change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -------------------------------------------------------------------------
    # Key lifecycle
    # -------------------------------------------------------------------------

    def set_key(self, key: QueryKey | None, loader: Any) -> None:
        """Switch to another query key (collection or filters changed).

        A request still in flight for the previous key completes but its
        result is dropped.
        """
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._key = key
        self._loader = loader
        self.error = None
        self.is_loading = self.is_loading_more = self.is_refreshing = False
        if key is not None:
            self._unsubscribe = self._cache.subscribe(key, self.refetch)
        self._notify()

    def close(self) -> None:
        """Tear down: stop refetching on invalidation and ignore late responses."""
        self._generation += 1
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._listeners.clear()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Load the first page unless pages for this key are already cached.

        Joins the request already loading this key, whoever started it.
        """
        if not self.enabled:
            return
        task = self._cache.inflight(self._key)
        if task is not None:
            await self._join(task)
            return
        if self._cache.is_fresh(self._key):
            return
        if self._cache.has(self._key):
            await self.refetch()
            return
        await self._run(self._load_next)

    async def load_more(self) -> None:
        """Append the next page.

        No-op when disabled or exhausted. While a request for this key is in
        flight the call joins it instead of issuing another one.
        """
        if not self.enabled:
            return
        task = self._cache.inflight(self._key)
        if task is not None:
            await self._join(task)
            return
        data = self.data
        if data is None:
            await self.load()
            return
        if not data.has_more:
            return
        await self._run(self._load_next)

    async def refetch(self) -> None:
        """Reload every page loaded so far and replace them in one step.

        Supersedes any request in flight for this key.
        """
        if not self.enabled:
            return
        self._generation += 1
        await self._run(self._reload)

    async def _run(self, step: Callable[[int, int, QueryKey, Any], Awaitable[ApiError | None]]) -> None:
        generation, epoch = self._generation, self._cache.epoch
        task = asyncio.ensure_future(step(generation, epoch, self._key, self._loader))
        self._cache.track(self._key, task)
        # A cancelled caller leaves the request running and registered
        await asyncio.shield(task)

    async def _join(self, task: asyncio.Task) -> None:
        generation = self._generation
        error = await asyncio.shield(task)
        if not self._is_current(generation) or self.error is error:
            return
        self.error = error
        self._notify()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _can_commit(self, generation: int, epoch: int) -> bool:
        """Still current, and the cache was not cleared (logout) meanwhile."""
        return self._is_current(generation) and epoch == self._cache.epoch

    def _set_flags(self, generation: int, *, first: bool, refresh: bool, value: bool) -> None:
        if not self._is_current(generation):
            return
        if refresh:
            self.is_refreshing = value
        elif first:
            self.is_loading = value
        else:
            self.is_loading_more = value
        self._notify()

    def _record_error(self, generation: int, key: QueryKey, error: ApiError) -> None:
        if not self._is_current(generation):
            return
        logger.warning("Page fetch for %s failed: %s", key, error)
        self.error = error

    async def _load_next(
        self, generation: int, epoch: int, key: QueryKey, loader: Any
    ) -> ApiError | None:
        data: PagedData[T] = self._cache.get(key) or PagedData()
        first = not data.pages
        param = self._initial_param() if first else data.pages[-1].next_param

        self._set_flags(generation, first=first, refresh=False, value=True)
        try:
            page = await self._fetch_page(loader, param)
        except ApiError as e:
            self._record_error(generation, key, e)
            return e
        finally:
            self._set_flags(generation, first=first, refresh=False, value=False)

        if not self._can_commit(generation, epoch):
            logger.debug("Discarding stale page for %s", key)
            return None
        current: PagedData[T] = self._cache.get(key) or PagedData()
        if len(current.pages) != len(data.pages):
            # Another consumer of the same key got there first
            logger.debug("Pages for %s changed while loading; dropping page", key)
            return None
        self._cache.set(key, current.append(page))
        self.error = None
        self._notify()
        return None

    async def _reload(
        self, generation: int, epoch: int, key: QueryKey, loader: Any
    ) -> ApiError | None:
        previous: PagedData[T] | None = self._cache.get(key)
        page_count = max(1, len(previous.pages)) if previous else 1
        first = previous is None

        self._set_flags(generation, first=first, refresh=not first, value=True)
        pages: list[Page[T]] = []
        param = self._initial_param()
        try:
            for _ in range(page_count):
                page = await self._fetch_page(loader, param)
                pages.append(page)
                if page.next_param is None:
                    break
                param = page.next_param
        except ApiError as e:
            self._record_error(generation, key, e)
            return e
        finally:
            self._set_flags(generation, first=first, refresh=not first, value=False)

        if not self._can_commit(generation, epoch):
            logger.debug("Discarding stale refetch for %s", key)
            return None
        self._cache.set(key, PagedData(tuple(pages)))
        self.error = None
        self._notify()
        return None


CursorLoader = Callable[[Any], Awaitable[Page]]
OffsetLoader = Callable[[int, int], Awaitable[Sequence]]


class CursorPagedFetcher(PagedFetcher[T]):
    """Cursor discipline.

    ``loader(cursor)`` receives None for the first page and returns a Page
    whose ``next_param`` is the next cursor, or None when exhausted.
    """

    def _initial_param(self) -> Any:
        return None

    async def _fetch_page(self, loader: CursorLoader, param: Any) -> Page[T]:
        return await loader(param)


class OffsetPagedFetcher(PagedFetcher[T]):
    """Offset/limit discipline with a tiered page size.

    ``loader(limit, offset)`` returns the items of one window. A page shorter
    than its limit marks the end of the sequence.
    """

    def __init__(
        self,
        cache: QueryCache,
        key: QueryKey | None,
        loader: OffsetLoader | None,
        page_size: TieredPageSize,
    ) -> None:
        self.page_size = page_size
        super().__init__(cache, key, loader)

    def _initial_param(self) -> int:
        return 0

    async def _fetch_page(self, loader: OffsetLoader, param: int) -> Page[T]:
        limit, offset = self.page_size.window(param)
        items = tuple(await loader(limit, offset))
        has_more = len(items) >= limit
        return Page(items=items, next_param=param + 1 if has_more else None)
