"""
Page cache and prefetch manager for paginated entity collections.

``PageCache`` stores entity pages keyed by ``(kind, page_index,
filter_signature)`` with passive expiry; each entry carries the lifetime of
the plan that fetched it, so kinds on different strategies can share one
cache.  ``PaginationManager`` consumes a
:class:`~src.data.strategy.DataLoadPlan` and, after a debounce delay on
each navigation, prefetches a small window of pages around the current one
while bounding memory with distance-based eviction.

Page indices are zero-based; ``offset = page_index * page_size``.

Concurrency model: everything runs on one asyncio event loop.  The
debounce timer is a ``loop.call_later`` handle that is cancelled and
rescheduled on every navigation.  In-flight prefetch fetches are never
cancelled by navigation; their results are stored under the signature
that was active when they were issued, so a superseded result lands in a
key nobody reads.  :meth:`PaginationManager.dispose` releases the timer
and cancels outstanding prefetch tasks.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from src.data.strategy import DataLoadPlan, DataStrategy
from src.filters import ContentFilters
from src.models import Entity, EntityKind

logger = logging.getLogger(__name__)

CacheKey = Tuple[EntityKind, int, str]


@dataclass
class EntityPage:
    """One page of entities as returned by the list endpoint.

    Attributes:
        items: Entities on this page.
        page: Zero-based page index.
        page_size: Requested page size.
        total: Total matching items on the server, when reported.
        total_pages: Total page count, when reported.
    """

    items: List[Entity]
    page: int = 0
    page_size: int = 0
    total: Optional[int] = None
    total_pages: Optional[int] = None


# fetch_page(page_index, page_size, filters) -> EntityPage
FetchPage = Callable[[int, int, ContentFilters], Awaitable[EntityPage]]


# =============================================================================
# PAGE CACHE
# =============================================================================


@dataclass
class PageCacheEntry:
    """Cached page with the monotonic times it was fetched and expires."""

    page: EntityPage
    fetched_at: float
    expires_at: float


class PageCache:
    """Page store with passive expiry and id-keyed entity overwrite.

    Args:
        cache_time_ms: Default lifetime of an entry, used when :meth:`put` is
            not given one.  An expired entry is dropped on read and reported
            as a miss.
        clock: Monotonic clock in seconds (injectable for tests).
    """

    def __init__(
        self,
        cache_time_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache_time_ms = cache_time_ms
        self._clock = clock
        self._entries: Dict[CacheKey, PageCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def _expired(self, entry: PageCacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    def get(self, kind: EntityKind, page: int, signature: str) -> Optional[EntityPage]:
        """Return a fresh cached page or ``None`` (stale entries are dropped)."""
        key = (kind, page, signature)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            logger.debug("[PREFETCH] Expired cache entry %s page %d", kind.value, page)
            return None
        return entry.page

    def has_fresh(self, kind: EntityKind, page: int, signature: str) -> bool:
        return self.get(kind, page, signature) is not None

    def put(
        self,
        kind: EntityKind,
        page: int,
        signature: str,
        entity_page: EntityPage,
        cache_time_ms: Optional[int] = None,
    ) -> None:
        """Store *entity_page*, expiring after *cache_time_ms* (default: the cache's)."""
        lifetime = self.cache_time_ms if cache_time_ms is None else cache_time_ms
        now = self._clock()
        self._entries[(kind, page, signature)] = PageCacheEntry(
            page=entity_page, fetched_at=now, expires_at=now + lifetime / 1000
        )

    def evict_page(self, kind: EntityKind, page: int) -> int:
        """Drop every entry for *page* under any signature; returns the count."""
        keys = [key for key in self._entries if key[0] == kind and key[1] == page]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def retain_signature(self, kind: EntityKind, signature: str) -> int:
        """Drop entries of *kind* cached under any other signature; returns the count."""
        keys = [key for key in self._entries if key[0] == kind and key[2] != signature]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self, kind: Optional[EntityKind] = None) -> None:
        if kind is None:
            self._entries.clear()
            return
        for key in [key for key in self._entries if key[0] == kind]:
            del self._entries[key]

    def pages(self, kind: EntityKind) -> List[EntityPage]:
        return [entry.page for key, entry in self._entries.items() if key[0] == kind]

    def find_entity(self, kind: EntityKind, entity_id: str) -> Optional[Entity]:
        """First cached copy of *entity_id* for *kind*, if any."""
        for page in self.pages(kind):
            for item in page.items:
                if item.id == entity_id:
                    return item
        return None

    def replace_entity(self, kind: EntityKind, entity: Entity) -> int:
        """Overwrite every cached copy of ``entity.id``; returns the count."""
        replaced = 0
        for page in self.pages(kind):
            for index, item in enumerate(page.items):
                if item.id == entity.id:
                    page.items[index] = entity
                    replaced += 1
        return replaced

    def remove_entity(self, kind: EntityKind, entity_id: str) -> int:
        """Remove every cached copy of *entity_id*; returns the count."""
        removed = 0
        for page in self.pages(kind):
            before = len(page.items)
            page.items[:] = [item for item in page.items if item.id != entity_id]
            removed += before - len(page.items)
        return removed


# =============================================================================
# PAGINATION MANAGER
# =============================================================================


class PaginationManager:
    """Keeps a bounded window of prefetched pages around the current page.

    Args:
        kind: Entity kind this manager pages through.
        plan: Active data-load plan.
        fetch_page: Coroutine function fetching one page.
        debounce_ms: Delay after the last navigation before prefetching.
        cache: Shared page cache; a private one is created when omitted.
    """

    def __init__(
        self,
        kind: EntityKind,
        plan: DataLoadPlan,
        fetch_page: FetchPage,
        debounce_ms: int = 300,
        cache: Optional[PageCache] = None,
    ) -> None:
        self.kind = kind
        self.plan = plan
        self.fetch_page = fetch_page
        self.debounce_ms = debounce_ms
        self.cache = cache if cache is not None else PageCache(plan.cache_time_ms)

        self.current_page: int = 0
        self.filters: ContentFilters = ContentFilters()
        self.total_pages: Optional[int] = None

        # Pages known to have been prefetched (bounded by eviction)
        self.prefetched: Set[int] = set()

        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._inflight: Set[CacheKey] = set()
        self._disposed: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def signature(self) -> str:
        return self.filters.signature()

    @property
    def prefetch_distance(self) -> int:
        return self.plan.prefetch_distance

    @property
    def disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigate(self, page: int, filters: Optional[ContentFilters] = None) -> None:
        """Move to *page*, rescheduling the debounced prefetch.

        Must be called from within a running event loop.

        Raises:
            RuntimeError: If the manager has been disposed.
            ValueError: If *page* is negative.
        """
        self._ensure_alive()
        if page < 0:
            raise ValueError(f"Page index must be >= 0, got {page}")

        if filters is not None and filters.signature() != self.signature:
            # Different filter set: pages cached under other signatures are unreachable
            self.prefetched.clear()
            self.total_pages = None
            self.filters = filters
            dropped = self.cache.retain_signature(self.kind, filters.signature())
            if dropped:
                logger.debug(
                    "[PREFETCH] %s: dropped %d pages cached under previous filters",
                    self.kind.value,
                    dropped,
                )
        self.current_page = page

        if self.plan.strategy == DataStrategy.CLIENT:
            return

        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_ms / 1000, self._on_debounce)

    def _on_debounce(self) -> None:
        self._timer = None
        if self._disposed:
            return
        task = asyncio.ensure_future(self.prefetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def prefetch_candidates(self, page: Optional[int] = None) -> List[int]:
        """Pages in the prefetch window around *page* (default: current)."""
        center = self.current_page if page is None else page
        if self.plan.strategy == DataStrategy.CLIENT or self.prefetch_distance <= 0:
            return []
        candidates = [center + step for step in range(1, self.prefetch_distance + 1)]
        if center > 0:
            candidates.append(center - 1)
        if self.total_pages is not None:
            candidates = [p for p in candidates if p < self.total_pages]
        return candidates

    async def prefetch(self) -> List[int]:
        """Fetch uncached pages in the current window concurrently.

        Filters and signature are captured at issue time.  Failures are
        logged and skipped; they never propagate into navigation.

        Returns:
            Page indices that were fetched and cached by this call.
        """
        if self._disposed:
            return []

        filters = self.filters
        signature = filters.signature()
        pending: List[int] = []
        for page in self.prefetch_candidates():
            key = (self.kind, page, signature)
            if key in self._inflight or self.cache.has_fresh(self.kind, page, signature):
                continue
            pending.append(page)
            self._inflight.add(key)

        if not pending:
            return []

        logger.debug(
            "[PREFETCH] %s: fetching pages %s around page %d",
            self.kind.value,
            pending,
            self.current_page,
        )
        try:
            results = await asyncio.gather(
                *(self.fetch_page(page, self.plan.page_size, filters) for page in pending),
                return_exceptions=True,
            )
        finally:
            for page in pending:
                self._inflight.discard((self.kind, page, signature))

        if self._disposed:
            return []

        fetched: List[int] = []
        for page, result in zip(pending, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "[PREFETCH] %s page %d prefetch failed: %s",
                    self.kind.value,
                    page,
                    result,
                )
                continue
            self.cache.put(self.kind, page, signature, result, self.plan.cache_time_ms)
            if signature == self.signature:
                self.prefetched.add(page)
                if result.total_pages is not None:
                    self.total_pages = result.total_pages
            fetched.append(page)

        self._evict()
        return fetched

    async def get_page(self, page: int, filters: Optional[ContentFilters] = None) -> EntityPage:
        """Return *page* from cache or fetch it (a stale entry is refetched)."""
        self._ensure_alive()
        filters = filters or self.filters
        signature = filters.signature()
        cached = self.cache.get(self.kind, page, signature)
        if cached is not None:
            return cached

        result = await self.fetch_page(page, self.plan.page_size, filters)
        self.cache.put(self.kind, page, signature, result, self.plan.cache_time_ms)
        if signature == self.signature and result.total_pages is not None:
            self.total_pages = result.total_pages
        return result

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _evict(self) -> List[int]:
        distance = self.prefetch_distance
        if distance <= 0 or len(self.prefetched) <= 4 * distance:
            return []
        far = sorted(
            page for page in self.prefetched
            if abs(page - self.current_page) > 2 * distance
        )
        for page in far:
            self.prefetched.discard(page)
            self.cache.evict_page(self.kind, page)
        if far:
            logger.debug(
                "[PREFETCH] %s: evicted pages %s (current page %d)",
                self.kind.value,
                far,
                self.current_page,
            )
        return far

    # ------------------------------------------------------------------
    # Plan changes and lifecycle
    # ------------------------------------------------------------------

    def update_plan(self, plan: DataLoadPlan) -> None:
        """Adopt a recomputed plan; a strategy change invalidates the cache."""
        if plan.strategy != self.plan.strategy or plan.page_size != self.plan.page_size:
            self._cancel_timer()
            self.cache.clear(self.kind)
            self.prefetched.clear()
            self.total_pages = None
            logger.info(
                "[PREFETCH] %s: strategy %s -> %s (page size %d)",
                self.kind.value,
                self.plan.strategy.value,
                plan.strategy.value,
                plan.page_size,
            )
        self.plan = plan

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise RuntimeError(f"PaginationManager for {self.kind.value} is disposed")

    def dispose(self) -> None:
        """Cancel the debounce timer and outstanding prefetch tasks. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        self._cancel_timer()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._inflight.clear()
        self.prefetched.clear()
        logger.debug("[PREFETCH] %s: disposed", self.kind.value)


__all__ = [
    "EntityPage",
    "FetchPage",
    "PageCacheEntry",
    "PageCache",
    "PaginationManager",
]
