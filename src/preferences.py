"""
Persisted per-kind view preferences.

Survives reloads: status/category/platform/post-type filters, sort field
and order, column visibility, and whether the filter panel is open.
Never persisted: selections and any modal state.

Stored as one JSON document (written with ``aiofiles``)::

    {"version": 1, "kinds": {"posts": {"status": "approved", ...}, ...}}
"""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiofiles

from src.entity_kinds import get_handler
from src.exceptions import PreferenceStoreError
from src.filters import ContentFilters
from src.models import EntityKind

logger = logging.getLogger(__name__)

PREFERENCES_VERSION = 1


def default_columns(kind: EntityKind) -> Dict[str, bool]:
    """Column visibility before any preference is saved: all default columns on."""
    return {column: True for column in get_handler(kind).default_columns}


@dataclass
class KindPreferences:
    """Saved view state for one entity kind."""

    status: Optional[str] = None
    category: Optional[str] = None
    platform: Optional[str] = None
    post_type: Optional[str] = None
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    columns: Dict[str, bool] = field(default_factory=dict)
    filters_open: bool = False

    @classmethod
    def defaults(cls, kind: EntityKind) -> "KindPreferences":
        hints = get_handler(kind).load_plan_hints
        return cls(
            sort_by=hints.default_sort,
            sort_order=hints.default_order,
            columns=default_columns(kind),
        )

    @classmethod
    def from_dict(cls, kind: EntityKind, data: Dict[str, Any]) -> "KindPreferences":
        """Build from stored JSON; unknown keys are ignored, missing ones defaulted."""
        prefs = cls.defaults(kind)
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        columns = dict(prefs.columns)
        columns.update(values.pop("columns", None) or {})
        return replace(prefs, columns=columns, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "category": self.category,
            "platform": self.platform,
            "post_type": self.post_type,
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "columns": dict(self.columns),
            "filters_open": self.filters_open,
        }

    def to_filters(self, search: str = "") -> ContentFilters:
        """Filters to start a view with (search is never persisted)."""
        return ContentFilters(
            status=self.status,
            search=search,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
            category=self.category,
            post_type=self.post_type,
            platform=self.platform,
        )

    def visible_columns(self) -> List[str]:
        return [column for column, visible in self.columns.items() if visible]


class PreferenceStore:
    """Loads and saves :class:`KindPreferences` for every entity kind.

    Args:
        path: JSON file location (parent directories are created on save).

    Usage::

        store = PreferenceStore("data/preferences.json")
        await store.load()
        store.update(EntityKind.POSTS, status="approved")
        await store.save()
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._kinds: Dict[EntityKind, KindPreferences] = {
            kind: KindPreferences.defaults(kind) for kind in EntityKind
        }

    @classmethod
    def from_settings(cls, settings: Any) -> "PreferenceStore":
        return cls(settings.preferences_path)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Read the file; a missing file leaves the defaults in place.

        Raises:
            PreferenceStoreError: If the file is unreadable or not valid JSON.
        """
        if not self.path.exists():
            logger.debug("[PREFERENCES] No preferences at %s, using defaults", self.path)
            return
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as fh:
                raw = await fh.read()
            data = json.loads(raw) if raw.strip() else {}
        except (OSError, json.JSONDecodeError) as exc:
            raise PreferenceStoreError(
                f"Failed to read preferences from {self.path}: {exc}"
            ) from exc

        if not isinstance(data, dict):
            raise PreferenceStoreError(f"Preferences at {self.path} must be a JSON object")

        for kind_value, kind_data in (data.get("kinds") or {}).items():
            try:
                kind = EntityKind(kind_value)
            except ValueError:
                logger.warning("[PREFERENCES] Ignoring unknown kind '%s'", kind_value)
                continue
            try:
                self._kinds[kind] = KindPreferences.from_dict(kind, kind_data or {})
            except (TypeError, ValueError) as exc:
                raise PreferenceStoreError(
                    f"Invalid preferences for {kind.value}: {exc}"
                ) from exc

    async def save(self) -> None:
        """Write all kinds to the file.

        Raises:
            PreferenceStoreError: If the file cannot be written.
        """
        payload = {
            "version": PREFERENCES_VERSION,
            "kinds": {kind.value: prefs.to_dict() for kind, prefs in self._kinds.items()},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "w", encoding="utf-8") as fh:
                await fh.write(json.dumps(payload, indent=2, ensure_ascii=False))
        except OSError as exc:
            raise PreferenceStoreError(
                f"Failed to write preferences to {self.path}: {exc}"
            ) from exc
        logger.debug("[PREFERENCES] Saved preferences to %s", self.path)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, kind: EntityKind) -> KindPreferences:
        return self._kinds[EntityKind(kind)]

    def update(self, kind: EntityKind, **changes: Any) -> KindPreferences:
        """Replace fields of one kind's preferences.

        Raises:
            ValueError: If a field name is unknown.
        """
        kind = EntityKind(kind)
        known = {f.name for f in fields(KindPreferences)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
        self._kinds[kind] = replace(self._kinds[kind], **changes)
        return self._kinds[kind]

    def remember_filters(self, kind: EntityKind, filters: ContentFilters) -> KindPreferences:
        """Store the persistable part of *filters* (search is dropped)."""
        return self.update(
            kind,
            status=filters.status,
            category=filters.category,
            platform=filters.platform,
            post_type=filters.post_type,
            sort_by=filters.sort_by,
            sort_order=filters.sort_order,
        )

    def set_column_visible(self, kind: EntityKind, column: str, visible: bool) -> KindPreferences:
        columns = dict(self.get(kind).columns)
        columns[column] = visible
        return self.update(kind, columns=columns)

    def toggle_filters_panel(self, kind: EntityKind) -> bool:
        prefs = self.update(kind, filters_open=not self.get(kind).filters_open)
        return prefs.filters_open

    def reset(self, kind: Optional[EntityKind] = None) -> None:
        """Restore defaults for one kind, or for all kinds."""
        kinds = [EntityKind(kind)] if kind is not None else list(EntityKind)
        for each in kinds:
            self._kinds[each] = KindPreferences.defaults(each)


__all__ = [
    "PREFERENCES_VERSION",
    "default_columns",
    "KindPreferences",
    "PreferenceStore",
]
