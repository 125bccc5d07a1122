"""
Tests for src.selection -- selection algebra and the SelectionEngine.
"""

from datetime import datetime, timezone

import pytest

from src.filters import ContentFilters
from src.models import EntityKind, PostStatus
from src.selection import (
    SelectionEngine,
    SelectionSet,
    invert,
    select_all,
    select_by_date_range,
    select_by_platform_or_category,
    select_by_status,
    select_filtered,
)

from conftest import make_insight, make_post, make_transcript


def _at(day: int) -> datetime:
    return datetime(2025, 6, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def posts():
    return [
        make_post("p1", platform="linkedin", status="approved", created_at=_at(1)),
        make_post("p2", platform="x", status="needs_review", created_at=_at(5)),
        make_post("p3", platform="x", status="approved", created_at=_at(10)),
        make_post("p4", platform="linkedin", status="rejected", created_at=_at(20)),
    ]


# =============================================================================
# Pure operations
# =============================================================================


class TestPureOperations:
    """Module-level selection functions."""

    def test_select_all(self, posts):
        assert select_all(posts) == {"p1", "p2", "p3", "p4"}
        assert select_all(posts, on=False) == frozenset()

    def test_select_filtered_is_subset_of_loaded(self, posts):
        stranger = make_post("p99")
        result = select_filtered(posts, [posts[0], stranger])
        assert result == {"p1"}

    def test_select_by_status_accepts_enum(self, posts):
        assert select_by_status(posts, PostStatus.APPROVED) == {"p1", "p3"}
        assert select_by_status(posts, "rejected") == {"p4"}

    def test_select_by_platform(self, posts):
        assert select_by_platform_or_category(posts, EntityKind.POSTS, "x") == {"p2", "p3"}

    def test_select_by_category(self):
        insights = [make_insight("i1", category="growth"), make_insight("i2")]
        result = select_by_platform_or_category(insights, EntityKind.INSIGHTS, "growth")
        assert result == {"i1"}

    def test_transcripts_have_no_platform_or_category(self):
        transcripts = [make_transcript("t1"), make_transcript("t2")]
        result = select_by_platform_or_category(transcripts, EntityKind.TRANSCRIPTS, "x")
        assert result == frozenset()

    def test_date_range_is_inclusive(self, posts):
        assert select_by_date_range(posts, _at(5), _at(10)) == {"p2", "p3"}

    def test_date_range_naive_bounds_are_utc(self, posts):
        start = datetime(2025, 6, 1, 9, 0)
        end = datetime(2025, 6, 1, 9, 0)
        assert select_by_date_range(posts, start, end) == {"p1"}

    def test_date_range_is_subset_and_idempotent(self, posts):
        first = select_by_date_range(posts, _at(2), _at(30))
        second = select_by_date_range(posts, _at(2), _at(30))
        assert first == second
        assert first <= select_all(posts)

    def test_empty_date_range(self, posts):
        assert select_by_date_range(posts, _at(11), _at(19)) == frozenset()

    def test_invert(self, posts):
        assert invert(posts, {"p1", "p3"}) == {"p2", "p4"}

    def test_invert_is_an_involution(self, posts):
        selected = frozenset({"p2"})
        assert invert(posts, invert(posts, selected)) == selected


# =============================================================================
# SelectionSet
# =============================================================================


class TestSelectionSet:
    """SelectionSet is a frozen, kind-scoped id set."""

    def test_container_protocol(self):
        selection = SelectionSet(EntityKind.POSTS, frozenset({"p1", "p2"}))
        assert len(selection) == 2
        assert "p1" in selection
        assert sorted(selection) == ["p1", "p2"]
        assert not selection.is_empty

    def test_default_is_empty(self):
        assert SelectionSet(EntityKind.INSIGHTS).is_empty


# =============================================================================
# Engine
# =============================================================================


class TestSelectionEngine:
    """The engine keeps selections within the loaded collection."""

    def test_select_all_and_clear(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select_all()
        assert len(engine.selection) == 4
        engine.clear()
        assert engine.selection.is_empty

    def test_select_filtered_replaces_previous_selection(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select("p4")
        visible = ContentFilters(platform="x").apply(posts)
        assert engine.select_filtered(visible) == {"p2", "p3"}

    def test_unknown_id_is_not_selected(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select("p99")
        assert engine.selected_ids == frozenset()

    def test_toggle(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.toggle("p1")
        assert engine.is_selected("p1")
        engine.toggle("p1")
        assert not engine.is_selected("p1")

    def test_deselect(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select_all()
        engine.deselect("p2")
        assert engine.selected_ids == {"p1", "p3", "p4"}

    def test_invert_twice_restores(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select_by_status("approved")
        engine.invert()
        assert engine.selected_ids == {"p2", "p4"}
        engine.invert()
        assert engine.selected_ids == {"p1", "p3"}

    def test_set_collection_prunes_missing_ids(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.select_all()
        remaining = engine.set_collection(posts[:2])
        assert remaining == {"p1", "p2"}
        assert engine.selection.kind is EntityKind.POSTS

    def test_platform_selection_through_engine(self, posts):
        engine = SelectionEngine("posts", posts)
        assert engine.select_by_platform_or_category("linkedin") == {"p1", "p4"}

    def test_date_range_through_engine(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        assert engine.select_by_date_range(_at(1), _at(5)) == {"p1", "p2"}

    def test_items_property_is_a_copy(self, posts):
        engine = SelectionEngine(EntityKind.POSTS, posts)
        engine.items.clear()
        assert len(engine.items) == 4
