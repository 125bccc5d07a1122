"""
Tests for src.tools.content_api -- envelope decoding, the httpx client and
the page adapter.

HTTP is exercised through ``httpx.MockTransport``; nothing leaves the process.
"""

import json

import httpx
import pytest

from src.exceptions import ApiError, NetworkError
from src.filters import ContentFilters
from src.models import EntityKind, Post
from src.tools.content_api import ApiResponse, HttpEntityApi, Pagination, make_fetch_page

from conftest import FakeEntityApi, make_post


def _ok(data=None, pagination=None, status_code=200):
    body = {"success": True, "data": data}
    if pagination is not None:
        body["meta"] = {"pagination": pagination}
    return httpx.Response(status_code, json=body)


def _api(handler, token=None):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="http://test/api",
        headers=headers,
    )
    return HttpEntityApi("http://test/api", client=client), client


# =============================================================================
# Envelope
# =============================================================================


class TestEnvelope:
    """ApiResponse.from_envelope."""

    def test_success_with_pagination(self):
        response = ApiResponse.from_envelope(
            {
                "success": True,
                "data": [{"id": "p1"}],
                "meta": {"pagination": {"page": 1, "limit": 20, "total": 45, "totalPages": 3}},
            },
            status_code=200,
        )
        assert response.data == [{"id": "p1"}]
        assert response.pagination == Pagination(page=1, limit=20, total=45, total_pages=3)

    def test_success_false_raises(self):
        with pytest.raises(ApiError, match="Post not found") as exc_info:
            ApiResponse.from_envelope({"success": False, "error": "Post not found"}, 200)
        assert exc_info.value.payload == {"success": False, "error": "Post not found"}

    def test_http_error_status_raises(self):
        with pytest.raises(ApiError) as exc_info:
            ApiResponse.from_envelope({"success": True}, status_code=500)
        assert exc_info.value.status_code == 500

    @pytest.mark.parametrize("body", [None, [], {"data": []}])
    def test_malformed_envelope(self, body):
        with pytest.raises(ApiError, match="Malformed"):
            ApiResponse.from_envelope(body)


# =============================================================================
# HTTP client
# =============================================================================


class TestHttpEntityApi:
    """Requests are shaped as the content API expects."""

    @pytest.mark.asyncio
    async def test_list_sends_query_params(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return _ok([], {"page": 0, "limit": 20, "total": 0, "totalPages": 0})

        api, client = _api(handler)
        async with client:
            response = await api.list(EntityKind.POSTS, {"status": "approved", "limit": 20})

        assert seen == {
            "method": "GET",
            "path": "/api/entities/posts",
            "params": {"status": "approved", "limit": "20"},
        }
        assert response.pagination.total == 0

    @pytest.mark.asyncio
    async def test_update_is_patch_with_json(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return _ok({"id": "i1", "status": "approved"})

        api, client = _api(handler)
        async with client:
            await api.update(EntityKind.INSIGHTS, "i1", {"status": "approved"})

        assert seen["method"] == "PATCH"
        assert seen["path"] == "/api/entities/insights/i1"
        assert seen["body"] == {"status": "approved"}

    @pytest.mark.asyncio
    async def test_bulk_and_schedule_bodies(self):
        bodies = {}

        def handler(request):
            bodies[request.url.path] = json.loads(request.content)
            return _ok()

        api, client = _api(handler)
        async with client:
            await api.bulk(EntityKind.TRANSCRIPTS, "clean", ["t1", "t2"])
            await api.schedule("p1", "2024-01-15T14:00:00.000Z")
            await api.schedule_many([("p2", "2024-07-15T13:00:00.000Z")])

        assert bodies["/api/entities/transcripts/bulk"] == {"action": "clean", "ids": ["t1", "t2"]}
        assert bodies["/api/posts/p1/schedule"] == {"scheduledFor": "2024-01-15T14:00:00.000Z"}
        assert bodies["/api/posts/schedule"] == [
            {"postId": "p2", "scheduledFor": "2024-07-15T13:00:00.000Z"}
        ]

    @pytest.mark.asyncio
    async def test_delete(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            return _ok({"id": "p9"})

        api, client = _api(handler)
        async with client:
            response = await api.delete(EntityKind.POSTS, "p9")

        assert (seen["method"], seen["path"]) == ("DELETE", "/api/entities/posts/p9")
        assert response.data == {"id": "p9"}

    @pytest.mark.asyncio
    async def test_error_status_raises_api_error(self):
        def handler(request):
            return httpx.Response(404, json={"success": False, "error": "Not found"})

        api, client = _api(handler)
        async with client:
            with pytest.raises(ApiError, match="Not found") as exc_info:
                await api.delete(EntityKind.POSTS, "missing")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_non_json_body_raises_api_error(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad gateway</html>")

        api, client = _api(handler)
        async with client:
            with pytest.raises(ApiError, match="non-JSON"):
                await api.list(EntityKind.POSTS, {})

    @pytest.mark.asyncio
    async def test_transport_error_raises_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        api, client = _api(handler)
        async with client:
            with pytest.raises(NetworkError) as exc_info:
                await api.list(EntityKind.POSTS, {})
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_token_sets_bearer_header(self):
        api = HttpEntityApi("http://test/api/", token="secret")
        try:
            assert api.base_url == "http://test/api"
            assert api._client.headers["Authorization"] == "Bearer secret"
        finally:
            await api.aclose()

    def test_from_settings(self, settings):
        api = HttpEntityApi.from_settings(settings)
        assert api.base_url == settings.api_base_url
        assert "Authorization" not in api._client.headers


# =============================================================================
# Page adapter
# =============================================================================


class TestMakeFetchPage:
    """fetch_page(page, page_size, filters) -> EntityPage."""

    @pytest.mark.asyncio
    async def test_offset_is_zero_based(self):
        rows = [make_post(f"p{i}").to_dict() for i in range(45)]
        api = FakeEntityApi(rows={EntityKind.POSTS: rows})
        fetch_page = make_fetch_page(api, EntityKind.POSTS)

        page = await fetch_page(2, 20, ContentFilters(platform="linkedin"))

        kind, params = api.calls_named("list")[0]
        assert kind is EntityKind.POSTS
        assert params["offset"] == 40
        assert params["limit"] == 20
        assert params["platform"] == "linkedin"
        assert [item.id for item in page.items] == [f"p{i}" for i in range(40, 45)]
        assert all(isinstance(item, Post) for item in page.items)
        assert page.total == 45
        assert page.total_pages == 3
        assert page.page == 2
