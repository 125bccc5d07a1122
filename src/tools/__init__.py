"""
External service clients for the content pipeline core.

- HttpEntityApi: async ``httpx`` client for the content REST API
- EntityApi: transport contract the core depends on
- make_fetch_page: adapter from ``EntityApi.list`` to the pager's fetch function
"""

from src.tools.content_api import (
    ApiResponse,
    EntityApi,
    HttpEntityApi,
    Pagination,
    make_fetch_page,
)

__all__ = [
    "ApiResponse",
    "EntityApi",
    "HttpEntityApi",
    "Pagination",
    "make_fetch_page",
]
