"""Data loading: adaptive strategy selection, page cache, and prefetching."""

from src.data.prefetch import EntityPage, PageCache, PageCacheEntry, PaginationManager
from src.data.strategy import (
    DataLoadPlan,
    DataStrategy,
    DeviceClass,
    build_load_plan,
    device_class_for_width,
    select_strategy,
)

__all__ = [
    "DataLoadPlan",
    "DataStrategy",
    "DeviceClass",
    "build_load_plan",
    "device_class_for_width",
    "select_strategy",
    "EntityPage",
    "PageCache",
    "PageCacheEntry",
    "PaginationManager",
]
