"""
Pipeline session: the constructed owner of dashboard view state.

A :class:`PipelineSession` is created when a dashboard view starts and
disposed when it ends.  It owns:

- the active entity kind and one :class:`~src.selection.SelectionEngine`
  per kind (switching kind clears every selection),
- the shared :class:`~src.data.prefetch.PageCache` and one
  :class:`~src.data.prefetch.PaginationManager` per kind,
- the strategy inputs (total counts, device class) and the derived
  :class:`~src.data.strategy.DataLoadPlan` per kind,
- the active filters per kind and the :class:`~src.preferences.PreferenceStore`,
- the :class:`~src.mutations.OptimisticMutationCoordinator` and
  :class:`~src.scheduling.post_scheduler.PostScheduler` wired to them.

Nothing here is global: two sessions never share state.
"""

import logging
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from src.config import Settings, get_settings, validate_env
from src.data.prefetch import EntityPage, PageCache, PaginationManager
from src.data.strategy import (
    DataLoadPlan,
    DataStrategy,
    DeviceClass,
    build_load_plan,
    device_class_for_width,
)
from src.filters import ContentFilters
from src.logging import AuditLogger, ComponentLogger, LogComponent, LogLevel, init_logger
from src.models import Entity, EntityKind
from src.mutations import BulkOperationResult, OptimisticMutationCoordinator
from src.preferences import PreferenceStore
from src.scheduling.post_scheduler import PostScheduler
from src.selection import SelectionEngine
from src.status_model import Status
from src.tools.content_api import EntityApi, HttpEntityApi, make_fetch_page
from src.utils import generate_id

logger = logging.getLogger(__name__)


class PipelineSession:
    """View-state owner for one dashboard session.

    Args:
        api: Content API transport.
        settings: Settings (defaults to :func:`~src.config.get_settings`).
        device_class: Initial device class.
        preferences: Preference store; one at ``settings.preferences_path``
            is created when omitted.
        audit_logger: Audit logger shared with the coordinator; a memory-only
            one at ``settings.log_level`` is created when omitted.
        forced_strategy: Pin the data strategy (testing/debugging).
        initial_kind: Kind shown first.
    """

    def __init__(
        self,
        api: EntityApi,
        settings: Optional[Settings] = None,
        device_class: Union[DeviceClass, str] = DeviceClass.DESKTOP,
        preferences: Optional[PreferenceStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        forced_strategy: Optional[Union[DataStrategy, str]] = None,
        initial_kind: EntityKind = EntityKind.TRANSCRIPTS,
    ) -> None:
        self.session_id = generate_id()
        self.api = api
        self.settings = settings or get_settings()
        self.device_class = DeviceClass(device_class)
        self.forced_strategy = forced_strategy
        self.preferences = preferences or PreferenceStore.from_settings(self.settings)
        self.active_kind = EntityKind(initial_kind)

        self.selections: Dict[EntityKind, SelectionEngine] = {
            kind: SelectionEngine(kind) for kind in EntityKind
        }
        self.filters: Dict[EntityKind, ContentFilters] = {
            kind: self.preferences.get(kind).to_filters() for kind in EntityKind
        }
        self.totals: Dict[EntityKind, Optional[int]] = {kind: None for kind in EntityKind}
        self.plans: Dict[EntityKind, DataLoadPlan] = {
            kind: self._build_plan(kind) for kind in EntityKind
        }
        self.current_pages: Dict[EntityKind, int] = {kind: 0 for kind in EntityKind}

        self.cache = PageCache(self.plans[self.active_kind].cache_time_ms)
        self._pagers: Dict[EntityKind, PaginationManager] = {}
        self._loaded: Dict[EntityKind, EntityPage] = {}

        self.audit_logger = audit_logger or AuditLogger(
            log_dir=None, min_level=LogLevel.from_name(self.settings.log_level)
        )
        self.audit_logger.set_context(session_id=self.session_id)
        self._audit = ComponentLogger(LogComponent.SESSION, self.audit_logger)
        self.coordinator = OptimisticMutationCoordinator(
            api,
            self.cache,
            rollback_on_failure=self.settings.rollback_on_failure,
            audit_logger=self.audit_logger,
            on_bulk_complete=self._on_bulk_complete,
        )
        self.scheduler = PostScheduler.from_settings(self.coordinator, self.settings)
        self._disposed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "PipelineSession":
        """Load saved preferences and apply their filters."""
        await self.preferences.load()
        for kind in EntityKind:
            self.filters[kind] = self.preferences.get(kind).to_filters()
        logger.info("[SESSION] Started session %s on %s", self.session_id, self.active_kind.value)
        await self._audit.info("Session started", data={"device": self.device_class.value})
        return self

    async def __aenter__(self) -> "PipelineSession":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        self.dispose()

    def dispose(self) -> None:
        """Release timers and pending prefetches of every kind. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        for pager in self._pagers.values():
            pager.dispose()
        self._pagers.clear()
        for engine in self.selections.values():
            engine.clear()
        logger.info("[SESSION] Disposed session %s", self.session_id)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_alive(self) -> None:
        if self._disposed:
            raise RuntimeError(f"Session {self.session_id} is disposed")

    # ------------------------------------------------------------------
    # Active kind and selection
    # ------------------------------------------------------------------

    @property
    def selection(self) -> SelectionEngine:
        """Selection engine of the active kind."""
        return self.selections[self.active_kind]

    def switch_kind(self, kind: EntityKind) -> None:
        """Make *kind* active; every kind's selection is cleared."""
        self._ensure_alive()
        kind = EntityKind(kind)
        self.clear_selections()
        if kind == self.active_kind:
            return
        previous = self._pagers.pop(self.active_kind, None)
        if previous is not None:
            previous.dispose()
        logger.info("[SESSION] Switched %s -> %s", self.active_kind.value, kind.value)
        self.active_kind = kind

    def clear_selections(self) -> None:
        for engine in self.selections.values():
            engine.clear()

    def _on_bulk_complete(self, kind: EntityKind) -> None:
        self.selections[kind].clear()
        self._sync_collection(kind)

    # ------------------------------------------------------------------
    # Strategy inputs
    # ------------------------------------------------------------------

    def _build_plan(self, kind: EntityKind) -> DataLoadPlan:
        return build_load_plan(
            self.totals[kind] or 0,
            self.device_class,
            self.settings.thresholds,
            self.forced_strategy,
        )

    def _recompute_plan(self, kind: EntityKind) -> DataLoadPlan:
        plan = self._build_plan(kind)
        if plan != self.plans[kind]:
            logger.debug(
                "[SESSION] %s plan: %s page_size=%d",
                kind.value,
                plan.strategy.value,
                plan.page_size,
            )
            self.plans[kind] = plan
            pager = self._pagers.get(kind)
            if pager is not None:
                pager.update_plan(plan)
        return plan

    def set_device_class(self, device_class: Union[DeviceClass, str]) -> None:
        """Change the device class; plans of every kind are recomputed."""
        device = DeviceClass(device_class)
        if device == self.device_class:
            return
        self.device_class = device
        for kind in EntityKind:
            self._recompute_plan(kind)

    def set_viewport_width(self, width_px: int) -> DeviceClass:
        self.set_device_class(device_class_for_width(width_px))
        return self.device_class

    def set_total(self, kind: EntityKind, total: int) -> DataLoadPlan:
        """Record the server-side item count of *kind* and recompute its plan."""
        kind = EntityKind(kind)
        self.totals[kind] = total
        return self._recompute_plan(kind)

    @property
    def plan(self) -> DataLoadPlan:
        return self.plans[self.active_kind]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def pager(self, kind: Optional[EntityKind] = None) -> PaginationManager:
        """Pagination manager of *kind* (default: active), created on demand."""
        self._ensure_alive()
        kind = EntityKind(kind or self.active_kind)
        if kind not in self._pagers:
            self._pagers[kind] = PaginationManager(
                kind,
                self.plans[kind],
                make_fetch_page(self.api, kind),
                debounce_ms=self.settings.prefetch_debounce_ms,
                cache=self.cache,
            )
        return self._pagers[kind]

    def _request_filters(self, kind: EntityKind) -> ContentFilters:
        """Filters sent to the server; client strategy fetches unfiltered."""
        filters = self.filters[kind]
        if self.plans[kind].should_use_server_filters:
            return filters
        return ContentFilters(sort_by=filters.sort_by, sort_order=filters.sort_order)

    async def load(self, kind: Optional[EntityKind] = None, page: int = 0) -> List[Entity]:
        """Fetch a page of *kind*, adapting the plan to the reported total.

        When the reported total changes the strategy, the page is fetched
        again under the new plan.

        Returns:
            The visible items (filtered/sorted as the strategy requires).
        """
        self._ensure_alive()
        kind = EntityKind(kind or self.active_kind)
        page = page if self.plans[kind].should_paginate else 0

        entity_page = await self.pager(kind).get_page(page, self._request_filters(kind))
        if entity_page.total is not None and entity_page.total != self.totals[kind]:
            before = self.plans[kind]
            after = self.set_total(kind, entity_page.total)
            if (after.strategy, after.page_size) != (before.strategy, before.page_size):
                page = page if after.should_paginate else 0
                entity_page = await self.pager(kind).get_page(page, self._request_filters(kind))

        self.current_pages[kind] = page
        self._loaded[kind] = entity_page
        if self.plans[kind].should_paginate:
            self.pager(kind).navigate(page, self._request_filters(kind))
        self._sync_collection(kind)
        return self.visible_items(kind)

    async def go_to_page(self, page: int) -> List[Entity]:
        """Navigate the active kind to *page* (prefetch is debounced)."""
        return await self.load(self.active_kind, page)

    def loaded_items(self, kind: Optional[EntityKind] = None) -> List[Entity]:
        kind = EntityKind(kind or self.active_kind)
        loaded = self._loaded.get(kind)
        return list(loaded.items) if loaded is not None else []

    def visible_items(self, kind: Optional[EntityKind] = None) -> List[Entity]:
        """Loaded items after client-side filtering and sorting.

        Server strategy returns pages already filtered and sorted; client
        and hybrid strategies refine locally.
        """
        kind = EntityKind(kind or self.active_kind)
        items = self.loaded_items(kind)
        if self.plans[kind].strategy == DataStrategy.SERVER:
            return items
        return self.filters[kind].apply(items)

    def _sync_collection(self, kind: EntityKind) -> None:
        self.selections[kind].set_collection(self.loaded_items(kind))

    # ------------------------------------------------------------------
    # Filters and preferences
    # ------------------------------------------------------------------

    async def set_filters(self, filters: ContentFilters, kind: Optional[EntityKind] = None) -> List[Entity]:
        """Apply new filters; remote strategies reload from page 0."""
        kind = EntityKind(kind or self.active_kind)
        self.filters[kind] = filters
        self.preferences.remember_filters(kind, filters)
        if self.plans[kind].should_use_server_filters:
            return await self.load(kind, 0)
        return self.visible_items(kind)

    def select_filtered(self) -> FrozenSet[str]:
        """Select exactly the items passing the active filters."""
        return self.selection.select_filtered(self.visible_items())

    async def save_preferences(self) -> None:
        await self.preferences.save()

    # ------------------------------------------------------------------
    # Mutations on the active kind
    # ------------------------------------------------------------------

    async def transition(self, entity_id: str, target: Union[Status, str]) -> Entity:
        entity = await self.coordinator.transition(self.active_kind, entity_id, target)
        self._sync_collection(self.active_kind)
        return entity

    async def delete(self, entity_id: str) -> None:
        await self.coordinator.delete(self.active_kind, entity_id)
        self._sync_collection(self.active_kind)

    async def bulk(self, action: str, ids: Optional[Sequence[str]] = None) -> BulkOperationResult:
        """Run a bulk action on *ids* (default: the current selection)."""
        self._ensure_alive()
        kind = self.active_kind
        targets = list(ids) if ids is not None else sorted(self.selection.selected_ids)
        async with self._audit.timed(
            f"Bulk {action}", entity_kind=kind.value, data={"count": len(targets)}
        ):
            return await self.coordinator.bulk(kind, action, targets)

    async def bulk_schedule(self, pairs: Sequence[Tuple[str, str]]) -> BulkOperationResult:
        """Schedule posts from ``(post_id, local wall-clock input)`` pairs."""
        self._ensure_alive()
        async with self._audit.timed(
            "Bulk schedule",
            entity_kind=EntityKind.POSTS.value,
            data={"count": len(pairs), "zone": self.scheduler.zone},
        ):
            return await self.scheduler.bulk_schedule(pairs)


async def open_session(
    api: Optional[EntityApi] = None,
    settings: Optional[Settings] = None,
    **kwargs: Any,
) -> PipelineSession:
    """Start a session the way an application does at startup.

    When *api* is omitted the HTTP client is built from settings, so the
    required environment must be present.  The global audit logger is
    registered writing under ``settings.log_dir`` at ``settings.log_level``
    and shared with the session.

    Raises:
        ConfigurationError: A required environment variable is missing.
        ValueError: ``settings.log_level`` is not a level name.
    """
    settings = settings or get_settings()
    if api is None:
        validate_env(strict=True)
        api = HttpEntityApi.from_settings(settings)
    audit = init_logger(
        log_dir=settings.log_dir or None,
        min_level=LogLevel.from_name(settings.log_level),
    )
    return await PipelineSession(api, settings, audit_logger=audit, **kwargs).start()


__all__ = ["PipelineSession", "open_session"]
