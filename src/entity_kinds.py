"""
Per-kind handlers: one closed registry instead of ``switch(kind)`` blocks.

Each :class:`EntityKindHandler` bundles what the status model, selection
engine and data-strategy code need to know about one entity kind, so those
components are written once and parameterized by kind.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from src.models import (
    Entity,
    EntityKind,
    InsightStatus,
    PostStatus,
    TranscriptStatus,
)
from src.status_model import TRANSITION_TABLES


@dataclass(frozen=True)
class LoadPlanHints:
    """Kind-specific inputs to data loading.

    Attributes:
        default_sort: API sort field used when none is chosen.
        default_order: ``"asc"`` or ``"desc"``.
        server_filters: Kind-specific query parameters the list endpoint
            understands, beyond status/search/sort.
    """

    default_sort: str = "createdAt"
    default_order: str = "desc"
    server_filters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class EntityKindHandler:
    """Everything kind-specific the generic core components need.

    Attributes:
        kind: The entity kind.
        status_enum: Status enum of the kind (used to coerce status strings).
        status_table: Legal transition table consulted by
            :mod:`src.status_model`.
        selection_attribute: Attribute compared by
            ``select_by_platform_or_category`` (``None`` when the kind has
            no such attribute).
        bulk_actions: Bulk action name -> target status (``None`` for
            non-status actions such as delete).
        command_actions: Bulk actions executed by the server as commands
            (``POST /entities/{kind}/bulk`` with a single id) rather than
            as a status PATCH; their target status is applied locally only.
        load_plan_hints: Sorting and server-filter hints.
        default_columns: Columns visible before any preference is saved.
    """

    kind: EntityKind
    status_enum: type
    status_table: Dict
    selection_attribute: Optional[str]
    bulk_actions: Dict[str, Optional[str]]
    command_actions: FrozenSet[str] = frozenset()
    load_plan_hints: LoadPlanHints = field(default_factory=LoadPlanHints)
    default_columns: Tuple[str, ...] = ()

    def selection_value(self, entity: Entity) -> Optional[str]:
        """Platform/category value of *entity* used for selection."""
        if self.selection_attribute is None:
            return None
        value = getattr(entity, self.selection_attribute, None)
        return getattr(value, "value", value)

    def bulk_target(self, action: str) -> Optional[str]:
        """Target status for a bulk *action*.

        Raises:
            ValueError: If *action* is not supported for this kind.
        """
        if action not in self.bulk_actions:
            raise ValueError(
                f"Unsupported bulk action '{action}' for {self.kind.value}. "
                f"Valid actions: {sorted(self.bulk_actions)}"
            )
        return self.bulk_actions[action]


HANDLERS: Dict[EntityKind, EntityKindHandler] = {
    EntityKind.TRANSCRIPTS: EntityKindHandler(
        kind=EntityKind.TRANSCRIPTS,
        status_enum=TranscriptStatus,
        status_table=TRANSITION_TABLES[EntityKind.TRANSCRIPTS],
        selection_attribute=None,
        bulk_actions={
            "clean": TranscriptStatus.PROCESSING.value,
            "process": TranscriptStatus.PROCESSING.value,
            "delete": None,
        },
        command_actions=frozenset({"clean", "process"}),
        default_columns=("title", "source", "wordCount", "status", "createdAt"),
    ),
    EntityKind.INSIGHTS: EntityKindHandler(
        kind=EntityKind.INSIGHTS,
        status_enum=InsightStatus,
        status_table=TRANSITION_TABLES[EntityKind.INSIGHTS],
        selection_attribute="category",
        bulk_actions={
            "approve": InsightStatus.APPROVED.value,
            "reject": InsightStatus.REJECTED.value,
            "archive": InsightStatus.ARCHIVED.value,
            "needs_review": InsightStatus.NEEDS_REVIEW.value,
            "delete": None,
        },
        load_plan_hints=LoadPlanHints(
            default_sort="totalScore",
            server_filters=("category", "postType", "scoreMin", "scoreMax"),
        ),
        default_columns=("title", "type", "category", "totalScore", "status", "createdAt"),
    ),
    EntityKind.POSTS: EntityKindHandler(
        kind=EntityKind.POSTS,
        status_enum=PostStatus,
        status_table=TRANSITION_TABLES[EntityKind.POSTS],
        selection_attribute="platform",
        bulk_actions={
            "approve": PostStatus.APPROVED.value,
            "reject": PostStatus.REJECTED.value,
            "archive": PostStatus.ARCHIVED.value,
            "delete": None,
        },
        load_plan_hints=LoadPlanHints(server_filters=("platform",)),
        default_columns=(
            "title",
            "platform",
            "status",
            "createdAt",
            "scheduledFor",
            "characterCount",
            "insightTitle",
        ),
    ),
}


def get_handler(kind: EntityKind) -> EntityKindHandler:
    """Return the handler for *kind* (accepts the string value too)."""
    return HANDLERS[EntityKind(kind)]


__all__ = [
    "LoadPlanHints",
    "EntityKindHandler",
    "HANDLERS",
    "get_handler",
]
