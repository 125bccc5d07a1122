"""Shared fixtures for the content pipeline core test suite."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from src.config import Settings, StrategyThresholds, reset_settings
from src.data.prefetch import EntityPage, PageCache
from src.exceptions import ApiError, NetworkError
from src.filters import ContentFilters
from src.models import EntityKind, Insight, Post, Transcript
from src.tools.content_api import ApiResponse, Pagination


# ---------------------------------------------------------------------------
# Ensure we don't pick up real deployment configuration
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear configuration env vars so tests never hit a real API."""
    keys = [
        "CONTENT_API_BASE_URL",
        "CONTENT_API_TOKEN",
        "PIPELINE_TIMEZONE",
        "SCHEDULE_LEAD_TIME_MINUTES",
        "SCHEDULE_STRICT_DST",
        "STRATEGY_THRESHOLD_MOBILE",
        "STRATEGY_THRESHOLD_TABLET",
        "STRATEGY_THRESHOLD_DESKTOP",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing preferences and logs into a temp directory."""
    return Settings(
        timezone="America/New_York",
        thresholds=StrategyThresholds(),
        preferences_path=str(tmp_path / "preferences.json"),
        log_dir=str(tmp_path / "logs"),
    )


# ---------------------------------------------------------------------------
# Entity factories
# ---------------------------------------------------------------------------
def make_transcript(entity_id: str = "t1", **kwargs: Any) -> Transcript:
    defaults: Dict[str, Any] = dict(
        title=f"Transcript {entity_id}",
        raw_content="we talked about shipping small batches",
        created_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return Transcript(id=entity_id, **defaults)


def make_insight(entity_id: str = "i1", **kwargs: Any) -> Insight:
    defaults: Dict[str, Any] = dict(
        title=f"Insight {entity_id}",
        summary="Small batches reduce risk",
        category="engineering",
        post_type="framework",
        created_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return Insight(id=entity_id, **defaults)


def make_post(entity_id: str = "p1", **kwargs: Any) -> Post:
    defaults: Dict[str, Any] = dict(
        title=f"Post {entity_id}",
        content="Ship small. Ship often.",
        platform="linkedin",
        status="approved",
        created_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return Post(id=entity_id, **defaults)


def cache_with(kind: EntityKind, items: List[Any], cache_time_ms: int = 600_000) -> PageCache:
    """A page cache holding *items* as page 0 under the default filters."""
    cache = PageCache(cache_time_ms)
    cache.put(kind, 0, ContentFilters().signature(), EntityPage(items=list(items)))
    return cache


# ---------------------------------------------------------------------------
# In-memory EntityApi
# ---------------------------------------------------------------------------
class FakeEntityApi:
    """In-memory ``EntityApi`` recording every call.

    Args:
        rows: Entity dicts per kind served by ``list``.
        fail_ids: Ids whose mutations raise ``ApiError``.
        network_fail_ids: Ids whose mutations raise ``NetworkError``.
    """

    def __init__(
        self,
        rows: Optional[Dict[EntityKind, List[Dict[str, Any]]]] = None,
        fail_ids: Optional[Set[str]] = None,
        network_fail_ids: Optional[Set[str]] = None,
    ) -> None:
        self.rows = rows or {}
        self.fail_ids = set(fail_ids or ())
        self.network_fail_ids = set(network_fail_ids or ())
        self.calls: List[Tuple[str, Any]] = []

    def _check(self, entity_id: str) -> None:
        if entity_id in self.network_fail_ids:
            raise NetworkError(f"connection reset for {entity_id}")
        if entity_id in self.fail_ids:
            raise ApiError(f"server rejected {entity_id}", status_code=422)

    async def list(self, kind: EntityKind, params: Dict[str, Any]) -> ApiResponse:
        self.calls.append(("list", (kind, dict(params))))
        rows = self.rows.get(EntityKind(kind), [])
        status = params.get("status")
        if status:
            rows = [row for row in rows if row.get("status") == status]
        limit = int(params.get("limit", len(rows) or 1))
        offset = int(params.get("offset", 0))
        total = len(rows)
        return ApiResponse(
            success=True,
            data=rows[offset:offset + limit],
            pagination=Pagination(
                page=offset // limit,
                limit=limit,
                total=total,
                total_pages=max(1, -(-total // limit)),
            ),
        )

    async def update(self, kind: EntityKind, entity_id: str, fields: Dict[str, Any]) -> ApiResponse:
        self.calls.append(("update", (kind, entity_id, dict(fields))))
        self._check(entity_id)
        return ApiResponse(success=True, data=None)

    async def bulk(self, kind: EntityKind, action: str, ids: Sequence[str]) -> ApiResponse:
        self.calls.append(("bulk", (kind, action, list(ids))))
        for entity_id in ids:
            self._check(entity_id)
        return ApiResponse(success=True, data=None)

    async def schedule(self, post_id: str, scheduled_for_iso: str) -> ApiResponse:
        self.calls.append(("schedule", (post_id, scheduled_for_iso)))
        self._check(post_id)
        return ApiResponse(success=True, data=None)

    async def schedule_many(self, items: Sequence[Tuple[str, str]]) -> ApiResponse:
        self.calls.append(("schedule_many", list(items)))
        return ApiResponse(success=True, data=None)

    async def delete(self, kind: EntityKind, entity_id: str) -> ApiResponse:
        self.calls.append(("delete", (kind, entity_id)))
        self._check(entity_id)
        return ApiResponse(success=True, data={"id": entity_id})

    def calls_named(self, name: str) -> List[Any]:
        return [args for call, args in self.calls if call == name]


@pytest.fixture
def fake_api():
    """An empty in-memory EntityApi."""
    return FakeEntityApi()
