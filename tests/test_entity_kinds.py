"""
Tests for src.entity_kinds -- the per-kind handler registry.
"""

import dataclasses

import pytest

from src.entity_kinds import HANDLERS, LoadPlanHints, get_handler
from src.filters import ContentFilters
from src.models import EntityKind, InsightStatus, PostStatus, TranscriptStatus
from src.status_model import TRANSITION_TABLES, can_transition

from conftest import make_insight, make_post, make_transcript


class TestRegistry:
    """Every kind has exactly one handler wired to its status enum and table."""

    def test_registry_is_closed(self):
        assert set(HANDLERS) == set(EntityKind)

    @pytest.mark.parametrize(
        "kind,status_enum",
        [
            (EntityKind.TRANSCRIPTS, TranscriptStatus),
            (EntityKind.INSIGHTS, InsightStatus),
            (EntityKind.POSTS, PostStatus),
        ],
    )
    def test_status_wiring(self, kind, status_enum):
        handler = get_handler(kind)
        assert handler.status_enum is status_enum
        assert handler.status_table is TRANSITION_TABLES[kind]

    def test_get_handler_accepts_string(self):
        assert get_handler("posts").kind is EntityKind.POSTS

    def test_get_handler_unknown_raises(self):
        with pytest.raises(ValueError):
            get_handler("comments")

    def test_status_model_reads_table_from_handler(self, monkeypatch):
        posts = HANDLERS[EntityKind.POSTS]
        narrowed = dict(posts.status_table)
        narrowed[PostStatus.NEEDS_REVIEW] = frozenset({PostStatus.REJECTED})
        monkeypatch.setitem(
            HANDLERS, EntityKind.POSTS, dataclasses.replace(posts, status_table=narrowed)
        )
        assert not can_transition(EntityKind.POSTS, "needs_review", "approved")
        assert can_transition(EntityKind.POSTS, "needs_review", "rejected")


class TestSelectionValue:
    """Platform for posts, category for insights, nothing for transcripts."""

    def test_post_platform(self):
        assert get_handler(EntityKind.POSTS).selection_value(make_post(platform="x")) == "x"

    def test_insight_category(self):
        handler = get_handler(EntityKind.INSIGHTS)
        assert handler.selection_value(make_insight(category="growth")) == "growth"

    def test_transcript_has_none(self):
        assert get_handler(EntityKind.TRANSCRIPTS).selection_value(make_transcript()) is None


class TestBulkActions:
    """Bulk action vocabulary per kind."""

    def test_post_approve_target(self):
        assert get_handler(EntityKind.POSTS).bulk_target("approve") == "approved"

    def test_delete_has_no_target(self):
        assert get_handler(EntityKind.INSIGHTS).bulk_target("delete") is None

    def test_transcript_commands(self):
        handler = get_handler(EntityKind.TRANSCRIPTS)
        assert handler.command_actions == frozenset({"clean", "process"})
        assert handler.bulk_target("clean") == "processing"

    def test_unsupported_action_raises(self):
        with pytest.raises(ValueError, match="Unsupported bulk action 'schedule'"):
            get_handler(EntityKind.INSIGHTS).bulk_target("schedule")

    def test_insight_default_sort(self):
        assert get_handler(EntityKind.INSIGHTS).load_plan_hints.default_sort == "totalScore"


class TestServerFilters:
    """Kind-specific query parameters come from the handler's load plan hints."""

    def test_declared_filters(self):
        assert get_handler(EntityKind.POSTS).load_plan_hints.server_filters == ("platform",)
        assert get_handler(EntityKind.TRANSCRIPTS).load_plan_hints.server_filters == ()

    def test_query_params_follow_hints(self, monkeypatch):
        posts = HANDLERS[EntityKind.POSTS]
        monkeypatch.setitem(
            HANDLERS,
            EntityKind.POSTS,
            dataclasses.replace(posts, load_plan_hints=LoadPlanHints(server_filters=())),
        )
        params = ContentFilters(platform="x").to_query_params(EntityKind.POSTS)
        assert "platform" not in params
