"""
Entity status model: legal transition tables and ``request_transition``.

Each entity kind has a finite status enum (see :mod:`src.models`) and a
directed table of legal edges.  There are no implicit back-edges: an edge
is legal only if it is listed here.

``request_transition`` is pure.  Callers apply the returned value locally
(optimistically) and separately issue the API request; see
:class:`~src.mutations.OptimisticMutationCoordinator`.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Union

from src.exceptions import InvalidTransitionError, ValidationError
from src.models import (
    Entity,
    EntityKind,
    InsightStatus,
    Post,
    PostStatus,
    TranscriptStatus,
)
from src.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

Status = Union[TranscriptStatus, InsightStatus, PostStatus]


# =============================================================================
# TRANSITION TABLES
# =============================================================================

TRANSCRIPT_TRANSITIONS: Dict[TranscriptStatus, FrozenSet[TranscriptStatus]] = {
    TranscriptStatus.RAW: frozenset({
        TranscriptStatus.CLEANED,
        TranscriptStatus.PROCESSING,  # clean in flight
    }),
    TranscriptStatus.CLEANED: frozenset({TranscriptStatus.PROCESSING}),
    TranscriptStatus.PROCESSING: frozenset({
        TranscriptStatus.INSIGHTS_GENERATED,
        TranscriptStatus.FAILED,
    }),
    TranscriptStatus.INSIGHTS_GENERATED: frozenset({TranscriptStatus.POSTS_CREATED}),
    # Terminal: further work creates insights/posts, not a status change
    TranscriptStatus.POSTS_CREATED: frozenset(),
    TranscriptStatus.FAILED: frozenset({TranscriptStatus.RAW}),
}

INSIGHT_TRANSITIONS: Dict[InsightStatus, FrozenSet[InsightStatus]] = {
    InsightStatus.NEEDS_REVIEW: frozenset({
        InsightStatus.APPROVED,
        InsightStatus.REJECTED,
    }),
    InsightStatus.APPROVED: frozenset({
        InsightStatus.NEEDS_REVIEW,
        InsightStatus.ARCHIVED,
    }),
    InsightStatus.REJECTED: frozenset({
        InsightStatus.NEEDS_REVIEW,
        InsightStatus.ARCHIVED,
    }),
    InsightStatus.ARCHIVED: frozenset(),
}

POST_TRANSITIONS: Dict[PostStatus, FrozenSet[PostStatus]] = {
    PostStatus.NEEDS_REVIEW: frozenset({
        PostStatus.APPROVED,
        PostStatus.REJECTED,
    }),
    PostStatus.APPROVED: frozenset({
        PostStatus.SCHEDULED,
        PostStatus.ARCHIVED,
    }),
    # Scheduling is end-of-review: no way back to NEEDS_REVIEW
    PostStatus.SCHEDULED: frozenset({
        PostStatus.PUBLISHED,
        PostStatus.APPROVED,  # unschedule
        PostStatus.ARCHIVED,
        PostStatus.FAILED,
    }),
    PostStatus.PUBLISHED: frozenset(),
    PostStatus.REJECTED: frozenset(),
    PostStatus.FAILED: frozenset({PostStatus.APPROVED}),
    PostStatus.ARCHIVED: frozenset(),
}

TRANSITION_TABLES: Dict[EntityKind, Dict] = {
    EntityKind.TRANSCRIPTS: TRANSCRIPT_TRANSITIONS,
    EntityKind.INSIGHTS: INSIGHT_TRANSITIONS,
    EntityKind.POSTS: POST_TRANSITIONS,
}

# =============================================================================
# QUERIES
# =============================================================================


def _handler(kind: EntityKind):
    # entity_kinds imports the tables above, so the registry is resolved lazily
    from src.entity_kinds import get_handler

    return get_handler(kind)


def _coerce_status(kind: EntityKind, status: Union[Status, str]) -> Status:
    enum_cls = _handler(kind).status_enum
    if isinstance(status, enum_cls):
        return status
    try:
        return enum_cls(status)
    except ValueError as exc:
        raise ValidationError(
            f"'{status}' is not a valid {kind.value} status"
        ) from exc


def allowed_targets(kind: EntityKind, current: Union[Status, str]) -> FrozenSet[Status]:
    """Return every status reachable from *current* in one step."""
    return _handler(kind).status_table[_coerce_status(kind, current)]


def can_transition(
    kind: EntityKind,
    current: Union[Status, str],
    target: Union[Status, str],
) -> bool:
    """Check whether ``current -> target`` is a listed edge for *kind*."""
    try:
        target_status = _coerce_status(kind, target)
    except ValidationError:
        return False
    return target_status in allowed_targets(kind, current)


def is_terminal(kind: EntityKind, status: Union[Status, str]) -> bool:
    """A status is terminal when it has no outgoing edges."""
    return not allowed_targets(kind, status)


# =============================================================================
# TRANSITION
# =============================================================================


def request_transition(
    entity: Entity,
    target: Union[Status, str],
    *,
    scheduled_for: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Entity:
    """Validate and apply a status change, returning a new entity value.

    The input entity is never mutated.  Status-coupled fields are
    normalized: a post leaving ``SCHEDULED`` for anything but
    ``PUBLISHED`` loses its ``scheduled_for``; a post entering
    ``SCHEDULED`` must receive (or already carry) one.

    Args:
        entity: Current entity value.
        target: Requested status (enum member or its string value).
        scheduled_for: Instant to attach when entering ``SCHEDULED``.
        now: Timestamp for ``updated_at`` (defaults to :func:`utc_now`).

    Returns:
        A new entity of the same type with the target status.

    Raises:
        InvalidTransitionError: If the edge is not in the kind's table.
        ValidationError: If *target* is not a status of this kind, or a
            post is scheduled without an instant.
    """
    kind = entity.KIND
    target_status = _coerce_status(kind, target)
    current = entity.status

    if target_status not in _handler(kind).status_table[current]:
        logger.debug(
            "[STATUS] Rejected %s %s transition %s -> %s",
            kind.value,
            entity.id,
            current.value,
            target_status.value,
        )
        raise InvalidTransitionError(kind.value, current.value, target_status.value)

    changes: Dict[str, object] = {
        "status": target_status,
        "updated_at": now or utc_now(),
    }

    if isinstance(entity, Post):
        if target_status == PostStatus.SCHEDULED:
            instant = scheduled_for or entity.scheduled_for
            if instant is None:
                raise ValidationError(
                    f"Post {entity.id} cannot be scheduled without a scheduled_for instant"
                )
            changes["scheduled_for"] = ensure_utc(instant)
        elif not target_status.keeps_schedule:
            changes["scheduled_for"] = None

    return dataclasses.replace(entity, **changes)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "TRANSCRIPT_TRANSITIONS",
    "INSIGHT_TRANSITIONS",
    "POST_TRANSITIONS",
    "TRANSITION_TABLES",
    "allowed_targets",
    "can_transition",
    "is_terminal",
    "request_transition",
]
