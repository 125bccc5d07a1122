"""
Collection filters shared by client-side filtering, server queries and the
page cache.

``ContentFilters`` is one immutable description of the active filter /
search / sort state.  The same object:

- filters and sorts a loaded collection in memory (client strategy and
  hybrid refinement),
- renders the query parameters of ``GET /entities/{kind}`` (server
  strategy),
- produces the *filter signature* used in page-cache keys, so a page
  fetched under one filter set is never served under another.
"""

import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from src.entity_kinds import get_handler
from src.models import Entity, EntityKind, Insight, Post, Transcript

logger = logging.getLogger(__name__)

ALL = "all"

# Score range covered by four sub-scores
SCORE_MIN: float = 0.0
SCORE_MAX: float = 20.0

# API sort field -> attribute path on the entity dataclass
SORT_FIELDS: Dict[str, str] = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "status": "status",
    "wordCount": "word_count",
    "duration": "duration",
    "sourceType": "source_type",
    "category": "category",
    "postType": "post_type",
    "totalScore": "scores.total",
    "score.urgency": "scores.urgency",
    "score.relatability": "scores.relatability",
    "score.specificity": "scores.specificity",
    "score.authority": "scores.authority",
    "platform": "platform",
    "scheduledFor": "scheduled_for",
    "characterCount": "character_count",
}


def _resolve(entity: Entity, path: str) -> Any:
    value: Any = entity
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return getattr(value, "value", value)


def _active(value: Optional[str]) -> bool:
    return value is not None and value != "" and value != ALL


@dataclass(frozen=True)
class ContentFilters:
    """Filter, search and sort state for one entity kind.

    ``None``, ``""`` and ``"all"`` all mean "no filter" for the optional
    equality filters.
    """

    status: Optional[str] = None
    search: str = ""
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    category: Optional[str] = None
    post_type: Optional[str] = None
    platform: Optional[str] = None
    score_min: float = SCORE_MIN
    score_max: float = SCORE_MAX

    def __post_init__(self) -> None:
        if self.sort_order not in ("asc", "desc"):
            raise ValueError(f"sort_order must be 'asc' or 'desc', got '{self.sort_order}'")

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def signature(self) -> str:
        """Stable string identifying this filter state (cache-key component)."""
        parts = []
        for key, value in sorted(asdict(self).items()):
            if isinstance(value, str) and key != "search":
                value = value if _active(value) else ""
            parts.append(f"{key}={'' if value is None else value}")
        return "|".join(parts)

    def with_changes(self, **changes: Any) -> "ContentFilters":
        return replace(self, **changes)

    @property
    def has_score_range(self) -> bool:
        return self.score_min > SCORE_MIN or self.score_max < SCORE_MAX

    # ------------------------------------------------------------------
    # Server-side
    # ------------------------------------------------------------------

    def to_query_params(self, kind: EntityKind) -> Dict[str, Any]:
        """Query parameters for ``GET /entities/{kind}`` (paging excluded).

        Kind-specific filters are sent only when the kind's handler lists
        them in ``load_plan_hints.server_filters``.
        """
        params: Dict[str, Any] = {
            "sortBy": self.sort_by,
            "sortOrder": self.sort_order,
        }
        if _active(self.status):
            params["status"] = self.status
        if self.search.strip():
            params["search"] = self.search.strip()
        specific: Dict[str, Any] = {}
        if _active(self.category):
            specific["category"] = self.category
        if _active(self.post_type):
            specific["postType"] = self.post_type
        if self.has_score_range:
            specific["scoreMin"] = self.score_min
            specific["scoreMax"] = self.score_max
        if _active(self.platform):
            specific["platform"] = self.platform

        accepted = get_handler(kind).load_plan_hints.server_filters
        params.update({key: value for key, value in specific.items() if key in accepted})
        return params

    # ------------------------------------------------------------------
    # Client-side
    # ------------------------------------------------------------------

    def matches(self, entity: Entity) -> bool:
        """Whether *entity* passes every active filter and the search query."""
        if _active(self.status) and entity.status.value != self.status:
            return False

        if isinstance(entity, Insight):
            if _active(self.category) and entity.category != self.category:
                return False
            if _active(self.post_type) and entity.post_type.value != self.post_type:
                return False
            if self.has_score_range:
                total = entity.scores.total or 0.0
                if not (self.score_min <= total <= self.score_max):
                    return False
        elif isinstance(entity, Post):
            if _active(self.platform) and entity.platform.value != self.platform:
                return False

        query = self.search.strip().lower()
        if query:
            return any(query in text.lower() for text in _searchable_text(entity))
        return True

    def apply(self, items: Iterable[Entity]) -> List[Entity]:
        """Filter then sort *items*; entities missing the sort value go last."""
        filtered = [item for item in items if self.matches(item)]
        path = SORT_FIELDS.get(self.sort_by)
        if path is None:
            logger.debug("[FILTERS] Unknown sort field '%s', keeping order", self.sort_by)
            return filtered

        present = [item for item in filtered if _resolve(item, path) is not None]
        missing = [item for item in filtered if _resolve(item, path) is None]
        present.sort(
            key=lambda item: _sort_key(_resolve(item, path)),
            reverse=self.sort_order == "desc",
        )
        return present + missing


def _sort_key(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, str):
        return value.lower()
    return value


def _searchable_text(entity: Entity) -> List[str]:
    texts = [entity.title]
    if isinstance(entity, Transcript):
        texts.append(entity.raw_content)
        if entity.cleaned_content:
            texts.append(entity.cleaned_content)
    elif isinstance(entity, Insight):
        texts.append(entity.summary)
        if entity.verbatim_quote:
            texts.append(entity.verbatim_quote)
        if entity.transcript_title:
            texts.append(entity.transcript_title)
    elif isinstance(entity, Post):
        texts.append(entity.content)
        if entity.insight_title:
            texts.append(entity.insight_title)
    return texts


__all__ = [
    "ALL",
    "SORT_FIELDS",
    "ContentFilters",
]
