"""
Centralized shared data types for the content pipeline core.

This module is THE single source of truth for the three entity kinds the
dashboard manages and the enums their fields draw from.

Hierarchy of types
------------------
- **Enums**: ``EntityKind``, ``TranscriptStatus``, ``InsightStatus``,
  ``PostStatus``, ``SourceType``, ``Platform``, ``PostType``
- **Entities**: ``Transcript``, ``Insight`` (with ``InsightScores``),
  ``Post``
- **Helpers**: ``coerce_enum``, ``entity_from_dict``

Entities are plain dataclasses.  ``from_dict``/``to_dict`` translate to and
from the camelCase JSON the content API speaks.  Status fields are always
enum members, never free strings: unknown values raise ``ValidationError``
during deserialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar, Union

from src.exceptions import ValidationError
from src.utils import format_timestamp, parse_timestamp, utc_now


E = TypeVar("E", bound=Enum)


# =============================================================================
# ENUMS
# =============================================================================


class EntityKind(str, Enum):
    """The three entity kinds of the pipeline, in pipeline order.

    Inherits from ``str`` so values drop straight into URL paths.
    """

    TRANSCRIPTS = "transcripts"
    INSIGHTS = "insights"
    POSTS = "posts"


class TranscriptStatus(str, Enum):
    """Processing status of a transcript.

    Transitions:
        RAW -> CLEANED -> PROCESSING -> INSIGHTS_GENERATED -> POSTS_CREATED
        RAW -> PROCESSING
        PROCESSING -> FAILED -> RAW
    """

    RAW = "raw"
    CLEANED = "cleaned"
    PROCESSING = "processing"
    INSIGHTS_GENERATED = "insights_generated"
    POSTS_CREATED = "posts_created"
    FAILED = "failed"


class InsightStatus(str, Enum):
    """Review status of an insight.

    Transitions:
        NEEDS_REVIEW <-> APPROVED
        NEEDS_REVIEW -> REJECTED -> NEEDS_REVIEW
        APPROVED | REJECTED -> ARCHIVED
    """

    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class PostStatus(str, Enum):
    """Lifecycle status of a post.

    Transitions:
        NEEDS_REVIEW -> APPROVED -> SCHEDULED -> PUBLISHED
        NEEDS_REVIEW -> REJECTED
        APPROVED | SCHEDULED -> ARCHIVED
        SCHEDULED -> APPROVED            (unschedule)
        SCHEDULED -> FAILED -> APPROVED  (publish failure, re-review)
    """

    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"
    ARCHIVED = "archived"

    @property
    def keeps_schedule(self) -> bool:
        """Whether a post in this status may carry a ``scheduled_for``."""
        return self in {PostStatus.SCHEDULED, PostStatus.PUBLISHED}


class SourceType(str, Enum):
    """Where a transcript came from."""

    RECORDING = "recording"
    UPLOAD = "upload"
    MANUAL = "manual"
    YOUTUBE = "youtube"
    PODCAST = "podcast"
    ARTICLE = "article"


class Platform(str, Enum):
    """Social platforms a post can target."""

    LINKEDIN = "linkedin"
    X = "x"


class PostType(str, Enum):
    """Post archetype an insight is suited for."""

    PROBLEM = "problem"
    PROOF = "proof"
    FRAMEWORK = "framework"
    CONTRARIAN_TAKE = "contrarian_take"
    MENTAL_MODEL = "mental_model"


def coerce_enum(enum_cls: Type[E], value: Any, field_name: str) -> E:
    """Convert *value* to a member of *enum_cls*.

    Raises:
        ValidationError: If *value* is not a valid member value.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        valid = [member.value for member in enum_cls]
        raise ValidationError(
            f"Invalid {field_name} '{value}'. Valid values: {valid}"
        ) from exc


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    if key not in data or data[key] is None:
        raise ValidationError(f"{kind} payload is missing required field '{key}'")
    return data[key]


def _ts(value: Optional[datetime]) -> Optional[str]:
    return format_timestamp(value) if value is not None else None


# =============================================================================
# TRANSCRIPT
# =============================================================================


@dataclass
class Transcript:
    """Raw or cleaned source material for the pipeline.

    ``word_count`` is derived from the raw content when not supplied.
    """

    id: str
    title: str
    raw_content: str
    status: TranscriptStatus = TranscriptStatus.RAW
    cleaned_content: Optional[str] = None
    word_count: Optional[int] = None
    duration: Optional[int] = None  # seconds
    source_type: SourceType = SourceType.MANUAL
    source_url: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    KIND = EntityKind.TRANSCRIPTS

    def __post_init__(self) -> None:
        self.status = coerce_enum(TranscriptStatus, self.status, "transcript status")
        self.source_type = coerce_enum(SourceType, self.source_type, "source type")
        if self.word_count is None:
            self.word_count = len(self.raw_content.split())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transcript":
        return cls(
            id=str(_require(data, "id", "Transcript")),
            title=data.get("title", ""),
            raw_content=data.get("rawContent", ""),
            status=data.get("status", TranscriptStatus.RAW.value),
            cleaned_content=data.get("cleanedContent"),
            word_count=data.get("wordCount"),
            duration=data.get("duration"),
            source_type=data.get("sourceType", SourceType.MANUAL.value),
            source_url=data.get("sourceUrl"),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "rawContent": self.raw_content,
            "cleanedContent": self.cleaned_content,
            "wordCount": self.word_count,
            "duration": self.duration,
            "sourceType": self.source_type.value,
            "sourceUrl": self.source_url,
            "status": self.status.value,
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }


# =============================================================================
# INSIGHT
# =============================================================================


@dataclass
class InsightScores:
    """Four sub-scores plus their total (total is summed when omitted)."""

    urgency: float = 0.0
    relatability: float = 0.0
    specificity: float = 0.0
    authority: float = 0.0
    total: Optional[float] = None

    def __post_init__(self) -> None:
        if self.total is None:
            self.total = (
                self.urgency + self.relatability + self.specificity + self.authority
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "InsightScores":
        data = data or {}
        return cls(
            urgency=float(data.get("urgency", 0.0)),
            relatability=float(data.get("relatability", 0.0)),
            specificity=float(data.get("specificity", 0.0)),
            authority=float(data.get("authority", 0.0)),
            total=float(data["total"]) if data.get("total") is not None else None,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "urgency": self.urgency,
            "relatability": self.relatability,
            "specificity": self.specificity,
            "authority": self.authority,
            "total": self.total,
        }


@dataclass
class Insight:
    """A scored idea extracted from a transcript.

    ``transcript_id``/``transcript_title`` are a weak back-reference: the
    insight never owns its transcript.
    """

    id: str
    title: str
    summary: str
    category: str
    post_type: PostType
    scores: InsightScores = field(default_factory=InsightScores)
    status: InsightStatus = InsightStatus.NEEDS_REVIEW
    transcript_id: Optional[str] = None
    transcript_title: Optional[str] = None
    verbatim_quote: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    KIND = EntityKind.INSIGHTS

    def __post_init__(self) -> None:
        self.status = coerce_enum(InsightStatus, self.status, "insight status")
        self.post_type = coerce_enum(PostType, self.post_type, "post type")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Insight":
        return cls(
            id=str(_require(data, "id", "Insight")),
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            category=data.get("category", ""),
            post_type=_require(data, "postType", "Insight"),
            scores=InsightScores.from_dict(data.get("scores")),
            status=data.get("status", InsightStatus.NEEDS_REVIEW.value),
            transcript_id=data.get("transcriptId"),
            transcript_title=data.get("transcriptTitle"),
            verbatim_quote=data.get("verbatimQuote"),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "category": self.category,
            "postType": self.post_type.value,
            "scores": self.scores.to_dict(),
            "status": self.status.value,
            "transcriptId": self.transcript_id,
            "transcriptTitle": self.transcript_title,
            "verbatimQuote": self.verbatim_quote,
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }


# =============================================================================
# POST
# =============================================================================


@dataclass
class Post:
    """A social-media post generated from an insight.

    Invariants enforced on construction (and therefore on every
    ``dataclasses.replace``):

    - ``SCHEDULED`` requires a ``scheduled_for`` instant.
    - Statuses other than ``SCHEDULED``/``PUBLISHED`` carry no
      ``scheduled_for``.
    """

    id: str
    title: str
    content: str
    platform: Platform
    status: PostStatus = PostStatus.NEEDS_REVIEW
    scheduled_for: Optional[datetime] = None
    character_count: Optional[int] = None
    insight_id: Optional[str] = None
    insight_title: Optional[str] = None
    transcript_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    KIND = EntityKind.POSTS

    def __post_init__(self) -> None:
        self.status = coerce_enum(PostStatus, self.status, "post status")
        self.platform = coerce_enum(Platform, self.platform, "platform")
        if self.character_count is None:
            self.character_count = len(self.content)
        if self.status == PostStatus.SCHEDULED and self.scheduled_for is None:
            raise ValidationError(
                f"Post {self.id} is scheduled but has no scheduled_for instant"
            )
        if not self.status.keeps_schedule:
            self.scheduled_for = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(
            id=str(_require(data, "id", "Post")),
            title=data.get("title", ""),
            content=data.get("content", ""),
            platform=_require(data, "platform", "Post"),
            status=data.get("status", PostStatus.NEEDS_REVIEW.value),
            scheduled_for=parse_timestamp(data.get("scheduledFor")),
            character_count=data.get("characterCount"),
            insight_id=data.get("insightId"),
            insight_title=data.get("insightTitle"),
            transcript_id=data.get("transcriptId"),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            updated_at=parse_timestamp(data.get("updatedAt")) or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "platform": self.platform.value,
            "status": self.status.value,
            "scheduledFor": _ts(self.scheduled_for),
            "characterCount": self.character_count,
            "insightId": self.insight_id,
            "insightTitle": self.insight_title,
            "transcriptId": self.transcript_id,
            "createdAt": _ts(self.created_at),
            "updatedAt": _ts(self.updated_at),
        }


Entity = Union[Transcript, Insight, Post]

ENTITY_MODELS: Dict[EntityKind, type] = {
    EntityKind.TRANSCRIPTS: Transcript,
    EntityKind.INSIGHTS: Insight,
    EntityKind.POSTS: Post,
}


def entity_from_dict(kind: EntityKind, data: Dict[str, Any]) -> Entity:
    """Build the entity dataclass for *kind* from an API payload."""
    return ENTITY_MODELS[kind].from_dict(data)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "EntityKind",
    "TranscriptStatus",
    "InsightStatus",
    "PostStatus",
    "SourceType",
    "Platform",
    "PostType",
    "coerce_enum",
    "Transcript",
    "InsightScores",
    "Insight",
    "Post",
    "Entity",
    "ENTITY_MODELS",
    "entity_from_dict",
]
