"""
Tests for src.status_model -- legal transition tables and request_transition.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.exceptions import InvalidTransitionError, ValidationError
from src.models import EntityKind, InsightStatus, PostStatus, TranscriptStatus
from src.status_model import (
    INSIGHT_TRANSITIONS,
    POST_TRANSITIONS,
    TRANSCRIPT_TRANSITIONS,
    allowed_targets,
    can_transition,
    is_terminal,
    request_transition,
)

from conftest import make_insight, make_post, make_transcript

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
LATER = datetime(2025, 6, 16, 13, 0, tzinfo=timezone.utc)


# =============================================================================
# Tables
# =============================================================================


class TestTransitionTables:
    """Every status has an entry; there are no implicit back-edges."""

    @pytest.mark.parametrize(
        "table,enum_cls",
        [
            (TRANSCRIPT_TRANSITIONS, TranscriptStatus),
            (INSIGHT_TRANSITIONS, InsightStatus),
            (POST_TRANSITIONS, PostStatus),
        ],
    )
    def test_tables_cover_every_status(self, table, enum_cls):
        assert set(table) == set(enum_cls)

    def test_no_self_loops(self):
        for table in (TRANSCRIPT_TRANSITIONS, INSIGHT_TRANSITIONS, POST_TRANSITIONS):
            for status, targets in table.items():
                assert status not in targets

    def test_scheduled_post_cannot_return_to_review(self):
        assert not can_transition(EntityKind.POSTS, "scheduled", "needs_review")

    def test_unschedule_is_allowed(self):
        assert can_transition(EntityKind.POSTS, PostStatus.SCHEDULED, PostStatus.APPROVED)

    def test_failed_transcript_retries_from_raw(self):
        assert allowed_targets(EntityKind.TRANSCRIPTS, "failed") == frozenset(
            {TranscriptStatus.RAW}
        )

    @pytest.mark.parametrize(
        "kind,status",
        [
            (EntityKind.TRANSCRIPTS, "posts_created"),
            (EntityKind.INSIGHTS, "archived"),
            (EntityKind.POSTS, "published"),
            (EntityKind.POSTS, "rejected"),
        ],
    )
    def test_terminal_statuses(self, kind, status):
        assert is_terminal(kind, status)

    def test_can_transition_unknown_target_is_false(self):
        assert can_transition(EntityKind.INSIGHTS, "needs_review", "bogus") is False

    def test_allowed_targets_unknown_current_raises(self):
        with pytest.raises(ValidationError):
            allowed_targets(EntityKind.INSIGHTS, "bogus")


# =============================================================================
# request_transition
# =============================================================================


class TestRequestTransition:
    """request_transition returns a new value and never mutates its input."""

    def test_transcript_raw_to_processing_then_cleaned_rejected(self):
        transcript = make_transcript(status="raw")
        processing = request_transition(transcript, "processing", now=NOW)
        assert processing.status is TranscriptStatus.PROCESSING

        with pytest.raises(InvalidTransitionError) as exc_info:
            request_transition(processing, "cleaned")
        assert exc_info.value.kind == "transcripts"
        assert exc_info.value.current == "processing"
        assert exc_info.value.target == "cleaned"

    def test_input_not_mutated(self):
        insight = make_insight()
        approved = request_transition(insight, InsightStatus.APPROVED, now=NOW)
        assert insight.status is InsightStatus.NEEDS_REVIEW
        assert approved is not insight
        assert approved.status is InsightStatus.APPROVED

    def test_updated_at_stamped(self):
        approved = request_transition(make_insight(), "approved", now=NOW)
        assert approved.updated_at == NOW

    def test_invalid_target_for_kind_raises_validation_error(self):
        with pytest.raises(ValidationError):
            request_transition(make_insight(), "scheduled")

    def test_schedule_attaches_instant(self):
        post = make_post(status="approved")
        scheduled = request_transition(post, "scheduled", scheduled_for=LATER, now=NOW)
        assert scheduled.status is PostStatus.SCHEDULED
        assert scheduled.scheduled_for == LATER

    def test_schedule_normalizes_to_utc(self):
        local = datetime(2025, 6, 16, 9, 0, tzinfo=timezone(timedelta(hours=-4)))
        scheduled = request_transition(make_post(), "scheduled", scheduled_for=local)
        assert scheduled.scheduled_for == LATER
        assert scheduled.scheduled_for.tzinfo == timezone.utc

    def test_schedule_without_instant_raises(self):
        with pytest.raises(ValidationError, match="scheduled_for"):
            request_transition(make_post(status="approved"), "scheduled")

    def test_unschedule_clears_instant(self):
        post = make_post(status="scheduled", scheduled_for=LATER)
        approved = request_transition(post, "approved")
        assert approved.status is PostStatus.APPROVED
        assert approved.scheduled_for is None

    def test_publish_keeps_instant(self):
        post = make_post(status="scheduled", scheduled_for=LATER)
        published = request_transition(post, "published")
        assert published.scheduled_for == LATER

    def test_archive_scheduled_clears_instant(self):
        post = make_post(status="scheduled", scheduled_for=LATER)
        assert request_transition(post, "archived").scheduled_for is None

    def test_illegal_post_edge(self):
        with pytest.raises(InvalidTransitionError):
            request_transition(make_post(status="needs_review"), "published")
