"""
Selection algebra over the loaded collection of one entity kind.

The module-level functions are pure: given the loaded collection (and, for
``invert``, the current selection) they return a new id set.  The
:class:`SelectionEngine` wraps them for one kind, holds the current
:class:`SelectionSet`, and keeps the invariant that a selection never
contains an id absent from the loaded collection.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Iterator, List, Optional, Sequence, Union

from src.entity_kinds import get_handler
from src.models import Entity, EntityKind
from src.utils import ensure_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionSet:
    """Selected ids, scoped to exactly one entity kind. Order is irrelevant."""

    kind: EntityKind
    ids: FrozenSet[str] = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self.ids

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids)

    @property
    def is_empty(self) -> bool:
        return not self.ids


# =============================================================================
# PURE OPERATIONS
# =============================================================================


def _ids(items: Iterable[Entity]) -> FrozenSet[str]:
    return frozenset(item.id for item in items)


def select_all(items: Sequence[Entity], on: bool = True) -> FrozenSet[str]:
    """Every loaded id when *on*, otherwise the empty set."""
    return _ids(items) if on else frozenset()


def select_filtered(items: Sequence[Entity], filtered_items: Iterable[Entity]) -> FrozenSet[str]:
    """Exactly the ids passing the active filter (replaces, never unions)."""
    return _ids(filtered_items) & _ids(items)


def select_by_status(items: Sequence[Entity], status: Union[str, object]) -> FrozenSet[str]:
    """Ids whose status equals *status*, ignoring the active filters."""
    wanted = getattr(status, "value", status)
    return frozenset(item.id for item in items if item.status.value == wanted)


def select_by_platform_or_category(
    items: Sequence[Entity],
    kind: EntityKind,
    value: Union[str, object],
) -> FrozenSet[str]:
    """Ids whose platform (posts) or category (insights) equals *value*."""
    handler = get_handler(kind)
    wanted = getattr(value, "value", value)
    if handler.selection_attribute is None:
        return frozenset()
    return frozenset(
        item.id for item in items if handler.selection_value(item) == wanted
    )


def select_by_date_range(
    items: Sequence[Entity],
    start: datetime,
    end: datetime,
) -> FrozenSet[str]:
    """Ids whose ``created_at`` falls in ``[start, end]`` (inclusive).

    Naive bounds are treated as UTC.
    """
    start_utc, end_utc = ensure_utc(start), ensure_utc(end)
    return frozenset(
        item.id for item in items
        if start_utc <= ensure_utc(item.created_at) <= end_utc
    )


def invert(items: Sequence[Entity], selected: Iterable[str]) -> FrozenSet[str]:
    """Set complement of *selected* within the loaded ids."""
    return _ids(items) - frozenset(selected)


# =============================================================================
# ENGINE
# =============================================================================


class SelectionEngine:
    """Holds the selection for one entity kind over its loaded collection.

    Args:
        kind: Entity kind this engine selects.
        items: Initially loaded collection.
    """

    def __init__(self, kind: EntityKind, items: Optional[Iterable[Entity]] = None) -> None:
        self.kind = EntityKind(kind)
        self._items: List[Entity] = list(items or [])
        self._selection = SelectionSet(self.kind)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[Entity]:
        return list(self._items)

    @property
    def selection(self) -> SelectionSet:
        return self._selection

    @property
    def selected_ids(self) -> FrozenSet[str]:
        return self._selection.ids

    def is_selected(self, entity_id: str) -> bool:
        return entity_id in self._selection

    def _set(self, ids: FrozenSet[str]) -> FrozenSet[str]:
        # Never hold ids that are not in the loaded collection
        ids = ids & _ids(self._items)
        self._selection = SelectionSet(self.kind, ids)
        return ids

    def set_collection(self, items: Iterable[Entity]) -> FrozenSet[str]:
        """Replace the loaded collection, pruning ids that disappeared."""
        self._items = list(items)
        before = len(self._selection)
        ids = self._set(self._selection.ids)
        if len(ids) != before:
            logger.debug(
                "[SELECTION] %s: pruned %d ids no longer loaded",
                self.kind.value,
                before - len(ids),
            )
        return ids

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def select_all(self, on: bool = True) -> FrozenSet[str]:
        return self._set(select_all(self._items, on))

    def select_filtered(self, filtered_items: Iterable[Entity]) -> FrozenSet[str]:
        return self._set(select_filtered(self._items, filtered_items))

    def select_by_status(self, status: Union[str, object]) -> FrozenSet[str]:
        return self._set(select_by_status(self._items, status))

    def select_by_platform_or_category(self, value: Union[str, object]) -> FrozenSet[str]:
        return self._set(select_by_platform_or_category(self._items, self.kind, value))

    def select_by_date_range(self, start: datetime, end: datetime) -> FrozenSet[str]:
        return self._set(select_by_date_range(self._items, start, end))

    def invert(self) -> FrozenSet[str]:
        return self._set(invert(self._items, self._selection.ids))

    # ------------------------------------------------------------------
    # Single-item edits
    # ------------------------------------------------------------------

    def select(self, entity_id: str) -> FrozenSet[str]:
        return self._set(self._selection.ids | {entity_id})

    def deselect(self, entity_id: str) -> FrozenSet[str]:
        return self._set(self._selection.ids - {entity_id})

    def toggle(self, entity_id: str) -> FrozenSet[str]:
        if entity_id in self._selection:
            return self.deselect(entity_id)
        return self.select(entity_id)

    def clear(self) -> None:
        self._selection = SelectionSet(self.kind)


__all__ = [
    "SelectionSet",
    "select_all",
    "select_filtered",
    "select_by_status",
    "select_by_platform_or_category",
    "select_by_date_range",
    "invert",
    "SelectionEngine",
]
