"""
Async client for the content REST API.

The core talks to the server only through the narrow :class:`EntityApi`
contract.  :class:`HttpEntityApi` implements it over ``httpx`` and unwraps
the response envelope::

    {"success": bool, "data": ..., "meta": {"pagination": {...}}, "error": str}

Fail-fast philosophy: nothing is retried here.  ``{success: false}`` and
HTTP error codes raise ``ApiError``; transport failures raise
``NetworkError`` chained to the underlying ``httpx`` exception.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from src.data.prefetch import EntityPage, FetchPage
from src.exceptions import ApiError, NetworkError
from src.filters import ContentFilters
from src.models import EntityKind, entity_from_dict

logger = logging.getLogger(__name__)


# =============================================================================
# ENVELOPE
# =============================================================================


@dataclass
class Pagination:
    """Pagination block of a list response (``meta.pagination``)."""

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pagination":
        return cls(
            page=int(data.get("page", 0)),
            limit=int(data.get("limit", 0)),
            total=int(data.get("total", 0)),
            total_pages=int(data.get("totalPages", 0)),
        )


@dataclass
class ApiResponse:
    """Decoded response envelope."""

    success: bool
    data: Any = None
    pagination: Optional[Pagination] = None
    error: Optional[str] = None

    @classmethod
    def from_envelope(cls, body: Any, status_code: Optional[int] = None) -> "ApiResponse":
        """Parse an envelope, raising ``ApiError`` for a failed one.

        Raises:
            ApiError: If *body* is not an envelope, ``success`` is false,
                or *status_code* is 400 or above.
        """
        if not isinstance(body, dict) or "success" not in body:
            raise ApiError(
                "Malformed response envelope",
                status_code=status_code,
                payload=body,
            )

        success = bool(body.get("success"))
        error = body.get("error")
        if not success or (status_code is not None and status_code >= 400):
            raise ApiError(
                str(error or f"Request failed with status {status_code}"),
                status_code=status_code,
                payload=body,
            )

        meta = body.get("meta") or {}
        pagination = meta.get("pagination")
        return cls(
            success=success,
            data=body.get("data"),
            pagination=Pagination.from_dict(pagination) if pagination else None,
            error=error,
        )


# =============================================================================
# CONTRACT
# =============================================================================


class EntityApi(Protocol):
    """Async transport contract the mutation coordinator and pager use."""

    async def list(self, kind: EntityKind, params: Dict[str, Any]) -> ApiResponse:
        ...

    async def update(self, kind: EntityKind, entity_id: str, fields: Dict[str, Any]) -> ApiResponse:
        ...

    async def bulk(self, kind: EntityKind, action: str, ids: Sequence[str]) -> ApiResponse:
        ...

    async def schedule(self, post_id: str, scheduled_for_iso: str) -> ApiResponse:
        ...

    async def schedule_many(self, items: Sequence[Tuple[str, str]]) -> ApiResponse:
        ...

    async def delete(self, kind: EntityKind, entity_id: str) -> ApiResponse:
        ...


# =============================================================================
# HTTP IMPLEMENTATION
# =============================================================================


class HttpEntityApi:
    """``EntityApi`` over ``httpx.AsyncClient``.

    Args:
        base_url: API root, e.g. ``https://api.example.com/api``.
        token: Optional bearer token.
        timeout: Request timeout in seconds.
        client: Pre-built client (tests pass one with ``MockTransport``).

    Usage::

        async with HttpEntityApi("http://localhost:3000/api") as api:
            response = await api.list(EntityKind.POSTS, {"limit": 20, "offset": 0})
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "HttpEntityApi":
        """Build a client from :class:`~src.config.Settings`."""
        return cls(
            base_url=settings.api_base_url,
            token=settings.api_token,
            timeout=settings.api_timeout_seconds,
        )

    async def __aenter__(self) -> "HttpEntityApi":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("[API] %s %s failed: %s", method, path, exc)
            raise NetworkError(f"{method} {path} failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
                payload=response.text,
            ) from exc

        logger.debug("[API] %s %s -> %d", method, path, response.status_code)
        return ApiResponse.from_envelope(body, status_code=response.status_code)

    # ------------------------------------------------------------------
    # EntityApi
    # ------------------------------------------------------------------

    async def list(self, kind: EntityKind, params: Dict[str, Any]) -> ApiResponse:
        return await self._request("GET", f"/entities/{EntityKind(kind).value}", params=params)

    async def update(self, kind: EntityKind, entity_id: str, fields: Dict[str, Any]) -> ApiResponse:
        return await self._request(
            "PATCH", f"/entities/{EntityKind(kind).value}/{entity_id}", json=fields
        )

    async def bulk(self, kind: EntityKind, action: str, ids: Sequence[str]) -> ApiResponse:
        return await self._request(
            "POST",
            f"/entities/{EntityKind(kind).value}/bulk",
            json={"action": action, "ids": list(ids)},
        )

    async def schedule(self, post_id: str, scheduled_for_iso: str) -> ApiResponse:
        return await self._request(
            "POST", f"/posts/{post_id}/schedule", json={"scheduledFor": scheduled_for_iso}
        )

    async def schedule_many(self, items: Sequence[Tuple[str, str]]) -> ApiResponse:
        return await self._request(
            "POST",
            "/posts/schedule",
            json=[{"postId": post_id, "scheduledFor": iso} for post_id, iso in items],
        )

    async def delete(self, kind: EntityKind, entity_id: str) -> ApiResponse:
        return await self._request("DELETE", f"/entities/{EntityKind(kind).value}/{entity_id}")


# =============================================================================
# PAGE ADAPTER
# =============================================================================


def make_fetch_page(api: EntityApi, kind: EntityKind) -> FetchPage:
    """Adapt ``api.list`` to the ``fetch_page`` signature of the pager.

    Page indices are zero-based: ``offset = page_index * page_size``.
    """
    kind = EntityKind(kind)

    async def fetch_page(page: int, page_size: int, filters: ContentFilters) -> EntityPage:
        params = filters.to_query_params(kind)
        params["limit"] = page_size
        params["offset"] = page * page_size
        response = await api.list(kind, params)

        items: List[Any] = [entity_from_dict(kind, row) for row in response.data or []]
        total: Optional[int] = None
        total_pages: Optional[int] = None
        if response.pagination is not None:
            total = response.pagination.total
            total_pages = response.pagination.total_pages
        return EntityPage(
            items=items,
            page=page,
            page_size=page_size,
            total=total,
            total_pages=total_pages,
        )

    return fetch_page


__all__ = [
    "Pagination",
    "ApiResponse",
    "EntityApi",
    "HttpEntityApi",
    "make_fetch_page",
]
