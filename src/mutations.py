"""
Optimistic mutation coordinator and bulk-operation aggregation.

Single-entity mutations follow one protocol:

1. Validate locally (status model, field checks).  Invalid requests raise
   before anything is sent.
2. Apply the new value optimistically to every cached copy of the entity.
3. Issue the request.
4. On success, overwrite the cached copies with the server's value.  On
   failure, restore the previous value (unless rollback is disabled) and
   re-raise the ``ApiError``/``NetworkError``.

Bulk operations send one request per id and wait for all of them to
settle; a failed id never aborts its siblings.  The outcome is a
:class:`BulkOperationResult` whose ``successful_ids`` and ``failed_ids``
partition the requested ids.  Only successful ids get the action's target
status applied locally.

Concurrency: mutations interleave on one event loop; the last response to
arrive wins.  Bulk requests touch disjoint ids.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from src.data.prefetch import PageCache
from src.entity_kinds import get_handler
from src.exceptions import InvalidTransitionError, ValidationError
from src.logging import AuditLogger, ComponentLogger, LogComponent
from src.models import Entity, EntityKind, Post, PostStatus, entity_from_dict
from src.scheduling.time_converter import local_input_to_utc, to_utc_iso
from src.status_model import Status, request_transition
from src.tools.content_api import ApiResponse, EntityApi
from src.utils import utc_now

logger = logging.getLogger(__name__)

# Fields a caller may never change through ``update``
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})

# Text fields that must stay non-blank when edited
REQUIRED_TEXT_FIELDS = frozenset({"title", "content", "raw_content", "summary"})


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class BulkOperationResult:
    """Outcome of an all-settled bulk operation.

    ``successful_ids`` and ``failed_ids`` are disjoint and together equal the
    (de-duplicated) requested ids, each in request order.
    """

    kind: EntityKind
    action: str
    successful_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    errors_by_id: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.successful_ids) + len(self.failed_ids)

    @property
    def succeeded(self) -> int:
        return len(self.successful_ids)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def is_partial(self) -> bool:
        """Some, but not all, ids failed."""
        return bool(self.successful_ids) and bool(self.failed_ids)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed_ids

    def summary(self) -> str:
        """Short human-readable outcome, e.g. ``"approve: 3 succeeded, 2 failed"``."""
        text = f"{self.action}: {self.succeeded} succeeded"
        if self.failed_ids:
            text += f", {self.failed} failed"
        return text


# Prepared bulk item: request coroutine factory + local value applied on success
_Prepared = Tuple[Callable[[], Awaitable[ApiResponse]], Optional[Entity]]


# =============================================================================
# COORDINATOR
# =============================================================================


class OptimisticMutationCoordinator:
    """Applies mutations locally, sends them, and reconciles the cache.

    Args:
        api: Transport implementing :class:`~src.tools.content_api.EntityApi`.
        cache: Page cache whose copies are updated in place.
        rollback_on_failure: Restore the previous value when a single-entity
            request fails.
        audit_logger: Optional audit logger for operation records.
        on_bulk_complete: Called with the kind after every bulk operation
            (the session passes its selection reset here).
        clock: ``updated_at`` source for locally applied values.
    """

    def __init__(
        self,
        api: EntityApi,
        cache: PageCache,
        rollback_on_failure: bool = True,
        audit_logger: Optional[AuditLogger] = None,
        on_bulk_complete: Optional[Callable[[EntityKind], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.api = api
        self.cache = cache
        self.rollback_on_failure = rollback_on_failure
        self.on_bulk_complete = on_bulk_complete
        self._clock = clock
        self.audit: Optional[ComponentLogger] = (
            ComponentLogger(LogComponent.MUTATIONS, audit_logger)
            if audit_logger is not None
            else None
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _loaded(self, kind: EntityKind, entity_id: str) -> Entity:
        entity = self.cache.find_entity(kind, entity_id)
        if entity is None:
            raise ValidationError(f"{kind.value} {entity_id} is not loaded")
        return entity

    def _reconcile(self, kind: EntityKind, response: ApiResponse, fallback: Entity) -> Entity:
        """Overwrite cached copies with the server value (or *fallback*).

        The request already succeeded, so a server payload the model rejects
        keeps the locally computed value instead of failing the mutation.
        """
        value = fallback
        if isinstance(response.data, dict) and response.data.get("id") == fallback.id:
            try:
                value = entity_from_dict(kind, response.data)
            except ValueError as exc:
                logger.warning(
                    "[MUTATION] %s %s: unreadable server value, keeping local value: %s",
                    kind.value,
                    fallback.id,
                    exc,
                )
        self.cache.replace_entity(kind, value)
        return value

    @staticmethod
    def _diff_payload(before: Entity, after: Entity) -> Dict[str, Any]:
        """camelCase fields whose serialized value changed."""
        old, new = before.to_dict(), after.to_dict()
        return {
            key: value for key, value in new.items()
            if key != "updatedAt" and old.get(key) != value
        }

    async def _audit(self, level: str, message: str, **kwargs: Any) -> None:
        if self.audit is not None:
            await getattr(self.audit, level)(message, **kwargs)

    async def _send(
        self,
        kind: EntityKind,
        previous: Entity,
        optimistic: Entity,
        request: Callable[[], Awaitable[ApiResponse]],
        label: str,
    ) -> Entity:
        self.cache.replace_entity(kind, optimistic)
        try:
            response = await request()
        except Exception as exc:
            if self.rollback_on_failure:
                self.cache.replace_entity(kind, previous)
            logger.warning(
                "[MUTATION] %s %s %s failed (%s): %s",
                label,
                kind.value,
                previous.id,
                "rolled back" if self.rollback_on_failure else "kept optimistic value",
                exc,
            )
            await self._audit(
                "error",
                f"{label} failed",
                error=exc,
                entity_kind=kind.value,
                entity_id=previous.id,
            )
            raise

        value = self._reconcile(kind, response, optimistic)
        await self._audit("info", f"{label} applied", entity_kind=kind.value, entity_id=value.id)
        return value

    # ------------------------------------------------------------------
    # Single-entity operations
    # ------------------------------------------------------------------

    async def update(
        self,
        kind: EntityKind,
        entity_id: str,
        changes: Dict[str, Any],
    ) -> Entity:
        """Edit fields of one entity (dataclass field names).

        A ``status`` change is routed through the status model.

        Raises:
            ValidationError: Unknown/immutable field, blank required text,
                or the entity is not loaded.
            InvalidTransitionError: Illegal status change.
            ApiError, NetworkError: The request failed.
        """
        kind = EntityKind(kind)
        current = self._loaded(kind, entity_id)
        changes = dict(changes)

        names = {f.name for f in dataclasses.fields(current)}
        for name, value in changes.items():
            if name not in names or name in IMMUTABLE_FIELDS:
                raise ValidationError(f"Field '{name}' cannot be updated on {kind.value}")
            if name in REQUIRED_TEXT_FIELDS and not str(value or "").strip():
                raise ValidationError(f"Field '{name}' must not be blank")

        status = changes.pop("status", None)
        optimistic = current
        if status is not None:
            optimistic = request_transition(
                current,
                status,
                scheduled_for=changes.pop("scheduled_for", None),
                now=self._clock(),
            )
        if changes:
            changes["updated_at"] = self._clock()
            optimistic = dataclasses.replace(optimistic, **changes)

        payload = self._diff_payload(current, optimistic)
        if not payload:
            return current

        return await self._send(
            kind,
            current,
            optimistic,
            lambda: self.api.update(kind, entity_id, payload),
            "update",
        )

    async def transition(
        self,
        kind: EntityKind,
        entity_id: str,
        target: Union[Status, str],
        *,
        scheduled_for: Optional[datetime] = None,
    ) -> Entity:
        """Change the status of one entity.

        Raises:
            InvalidTransitionError: The edge is not in the kind's table.
            ValidationError: Missing ``scheduled_for`` or entity not loaded.
            ApiError, NetworkError: The request failed.
        """
        kind = EntityKind(kind)
        current = self._loaded(kind, entity_id)
        optimistic = request_transition(
            current, target, scheduled_for=scheduled_for, now=self._clock()
        )
        payload: Dict[str, Any] = {"status": optimistic.status.value}
        if isinstance(optimistic, Post) and (
            optimistic.scheduled_for is not None or current.scheduled_for is not None
        ):
            payload["scheduledFor"] = (
                to_utc_iso(optimistic.scheduled_for) if optimistic.scheduled_for else None
            )
        return await self._send(
            kind,
            current,
            optimistic,
            lambda: self.api.update(kind, entity_id, payload),
            f"transition to {optimistic.status.value}",
        )

    async def schedule(self, post_id: str, instant: datetime) -> Post:
        """Schedule (or reschedule) one approved post at a UTC instant."""
        current = self._loaded(EntityKind.POSTS, post_id)
        optimistic = self._scheduled_value(current, instant)
        iso = to_utc_iso(instant)
        return await self._send(
            EntityKind.POSTS,
            current,
            optimistic,
            lambda: self.api.schedule(post_id, iso),
            "schedule",
        )

    async def delete(self, kind: EntityKind, entity_id: str) -> None:
        """Delete one entity; cached copies are removed once the server confirms."""
        kind = EntityKind(kind)
        try:
            await self.api.delete(kind, entity_id)
        except Exception as exc:
            await self._audit(
                "error", "delete failed", error=exc, entity_kind=kind.value, entity_id=entity_id
            )
            raise
        removed = self.cache.remove_entity(kind, entity_id)
        logger.info("[MUTATION] Deleted %s %s (%d cached copies)", kind.value, entity_id, removed)
        await self._audit("info", "delete applied", entity_kind=kind.value, entity_id=entity_id)

    def _scheduled_value(self, current: Entity, instant: datetime) -> Post:
        if not isinstance(current, Post):
            raise ValidationError(f"Only posts can be scheduled, got {current.KIND.value}")
        if current.status == PostStatus.SCHEDULED:
            # Reschedule: same status, new instant
            return dataclasses.replace(
                current, scheduled_for=instant, updated_at=self._clock()
            )
        return request_transition(
            current, PostStatus.SCHEDULED, scheduled_for=instant, now=self._clock()
        )

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def _prepare_action(self, kind: EntityKind, action: str, entity_id: str) -> _Prepared:
        handler = get_handler(kind)
        target = handler.bulk_target(action)

        if target is None:
            return (lambda: self.api.delete(kind, entity_id)), None

        current = self._loaded(kind, entity_id)
        local = request_transition(current, target, now=self._clock())
        if action in handler.command_actions:
            return (lambda: self.api.bulk(kind, action, [entity_id])), local
        return (lambda: self.api.update(kind, entity_id, {"status": target})), local

    async def _settle(
        self,
        kind: EntityKind,
        action: str,
        prepared: Dict[str, _Prepared],
        result: BulkOperationResult,
    ) -> None:
        ids = list(prepared)
        outcomes = await asyncio.gather(
            *(prepared[entity_id][0]() for entity_id in ids),
            return_exceptions=True,
        )
        for entity_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                result.failed_ids.append(entity_id)
                result.errors_by_id[entity_id] = outcome
                continue

            local = prepared[entity_id][1]
            if local is None:
                self.cache.remove_entity(kind, entity_id)
            else:
                self._reconcile(kind, outcome, local)
            result.successful_ids.append(entity_id)

    @staticmethod
    def _order(result: BulkOperationResult, ids: Sequence[str]) -> None:
        position = {entity_id: index for index, entity_id in enumerate(ids)}
        result.successful_ids.sort(key=position.__getitem__)
        result.failed_ids.sort(key=position.__getitem__)

    async def _finish_bulk(self, result: BulkOperationResult) -> BulkOperationResult:
        log = logger.warning if result.failed_ids else logger.info
        log("[MUTATION] Bulk %s on %s: %s", result.action, result.kind.value, result.summary())
        await self._audit(
            "warning" if result.failed_ids else "info",
            f"Bulk {result.summary()}",
            entity_kind=result.kind.value,
            data={
                "successful_ids": result.successful_ids,
                "failed_ids": result.failed_ids,
                "errors": {k: str(v) for k, v in result.errors_by_id.items()},
            },
        )
        self.complete_bulk(result.kind)
        return result

    async def bulk(self, kind: EntityKind, action: str, ids: Sequence[str]) -> BulkOperationResult:
        """Run *action* on every id, waiting for all requests to settle.

        Ids failing local validation are reported as failed without a
        request.

        Raises:
            ValueError: If *action* is not supported for *kind*.
        """
        kind = EntityKind(kind)
        get_handler(kind).bulk_target(action)
        ordered = list(dict.fromkeys(ids))
        result = BulkOperationResult(kind=kind, action=action)

        prepared: Dict[str, _Prepared] = {}
        for entity_id in ordered:
            try:
                prepared[entity_id] = self._prepare_action(kind, action, entity_id)
            except (InvalidTransitionError, ValidationError) as exc:
                result.failed_ids.append(entity_id)
                result.errors_by_id[entity_id] = exc

        await self._settle(kind, action, prepared, result)
        self._order(result, ordered)
        return await self._finish_bulk(result)

    async def bulk_schedule(
        self,
        pairs: Sequence[Tuple[str, str]],
        zone: str,
        *,
        strict: bool = False,
        validator: Optional[Callable[[datetime], None]] = None,
    ) -> BulkOperationResult:
        """Schedule posts from ``(post_id, local wall-clock input)`` pairs.

        Each input is converted to UTC in *zone*.  Conversion, validation
        and transition errors fail that id only.  Only ids whose request
        succeeds transition to ``scheduled``.

        Args:
            pairs: ``(post_id, "YYYY-MM-DDTHH:MM")`` pairs.
            zone: IANA zone the inputs are expressed in.
            strict: Reject wall-clock times inside a DST transition.
            validator: Extra check on each UTC instant (raises
                ``ValidationError``).
        """
        kind = EntityKind.POSTS
        ordered: Dict[str, str] = {}
        for post_id, local_value in pairs:
            ordered.setdefault(post_id, local_value)
        result = BulkOperationResult(kind=kind, action="schedule")

        prepared: Dict[str, _Prepared] = {}
        for post_id, local_value in ordered.items():
            try:
                instant = local_input_to_utc(local_value, zone, strict=strict)
                if validator is not None:
                    validator(instant)
                local = self._scheduled_value(self._loaded(kind, post_id), instant)
            except (InvalidTransitionError, ValidationError) as exc:
                result.failed_ids.append(post_id)
                result.errors_by_id[post_id] = exc
                continue
            iso = to_utc_iso(instant)
            prepared[post_id] = (
                lambda post_id=post_id, iso=iso: self.api.schedule(post_id, iso)
            ), local

        await self._settle(kind, "schedule", prepared, result)
        self._order(result, list(ordered))
        return await self._finish_bulk(result)

    def complete_bulk(self, kind: EntityKind) -> None:
        """Clear the session selection after a bulk operation."""
        if self.on_bulk_complete is not None:
            self.on_bulk_complete(EntityKind(kind))


__all__ = [
    "BulkOperationResult",
    "OptimisticMutationCoordinator",
]
