"""
Adaptive data strategy selector.

Maps ``(total item count, device class)`` to a :class:`DataLoadPlan` that
decides where filtering, sorting and pagination happen:

- ``CLIENT``: the whole collection is loaded once and filtered in memory.
- ``SERVER``: every page and every filter change goes to the API.
- ``HYBRID``: the first page comes from the server with server filters,
  then refinement happens client-side within that page.

Everything here is pure: plans are derived, never persisted, and are
recomputed whenever the item count or the device class changes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from src.config import StrategyThresholds

# Below this many items loading overhead dominates any filtering benefit
CLIENT_FLOOR: int = 20

# Viewport breakpoints (CSS px), inclusive upper bounds
MOBILE_MAX_WIDTH: int = 768
TABLET_MAX_WIDTH: int = 1024


class DeviceClass(str, Enum):
    """Rough capability class of the rendering device."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class DataStrategy(str, Enum):
    """Where collection computation happens relative to the full dataset."""

    CLIENT = "client"
    SERVER = "server"
    HYBRID = "hybrid"


# Client mode needs no further round-trip, so pages can be large
CLIENT_PAGE_SIZES: Dict[DeviceClass, int] = {
    DeviceClass.MOBILE: 100,
    DeviceClass.TABLET: 200,
    DeviceClass.DESKTOP: 500,
}

# Server/hybrid pages bound transfer size
REMOTE_PAGE_SIZES: Dict[DeviceClass, int] = {
    DeviceClass.MOBILE: 20,
    DeviceClass.TABLET: 50,
    DeviceClass.DESKTOP: 100,
}

# Shorter cache for data more likely to go stale from concurrent edits
CACHE_TIME_MS: Dict[DataStrategy, int] = {
    DataStrategy.CLIENT: 10 * 60 * 1000,
    DataStrategy.HYBRID: 5 * 60 * 1000,
    DataStrategy.SERVER: 2 * 60 * 1000,
}


@dataclass(frozen=True)
class DataLoadPlan:
    """Loading parameters derived from the selected strategy.

    Attributes:
        strategy: Selected data strategy.
        page_size: Items per page for this device and strategy.
        should_paginate: Whether pages are fetched one at a time.
        should_use_server_filters: Whether filters are sent to the API.
        prefetch_distance: Pages to prefetch ahead of the current one.
        cache_time_ms: Lifetime of a cached page.
    """

    strategy: DataStrategy
    page_size: int
    should_paginate: bool
    should_use_server_filters: bool
    prefetch_distance: int
    cache_time_ms: int


def device_class_for_width(width_px: int) -> DeviceClass:
    """Classify a viewport width using the dashboard's media breakpoints."""
    if width_px <= MOBILE_MAX_WIDTH:
        return DeviceClass.MOBILE
    if width_px <= TABLET_MAX_WIDTH:
        return DeviceClass.TABLET
    return DeviceClass.DESKTOP


def _threshold(
    thresholds: Union[StrategyThresholds, Mapping[str, int], None],
    device_class: DeviceClass,
) -> int:
    if thresholds is None:
        thresholds = StrategyThresholds()
    if isinstance(thresholds, StrategyThresholds):
        return thresholds.for_device(device_class)
    return thresholds[device_class.value]


def select_strategy(
    total_items: int,
    device_class: Union[DeviceClass, str],
    thresholds: Union[StrategyThresholds, Mapping[str, int], None] = None,
    forced: Optional[Union[DataStrategy, str]] = None,
) -> DataStrategy:
    """Choose the data strategy for a collection.

    Args:
        total_items: Total size of the collection (server count).
        device_class: Device class of the client.
        thresholds: Per-device client-side limits; defaults to
            :class:`~src.config.StrategyThresholds`.
        forced: Test/debug override returned as is.

    Returns:
        ``CLIENT`` up to the floor or the device threshold.  Above the
        threshold, mobile clients go ``SERVER`` immediately and tablets go
        ``SERVER`` beyond twice the threshold; everything else is
        ``HYBRID``.
    """
    if forced is not None:
        return DataStrategy(forced)

    device = DeviceClass(device_class)
    if total_items <= CLIENT_FLOOR:
        return DataStrategy.CLIENT

    threshold = _threshold(thresholds, device)
    if total_items <= threshold:
        return DataStrategy.CLIENT

    # Small/weak clients must not hold large in-memory collections
    if device == DeviceClass.MOBILE:
        return DataStrategy.SERVER
    if device != DeviceClass.DESKTOP and total_items > 2 * threshold:
        return DataStrategy.SERVER

    return DataStrategy.HYBRID


def page_size_for(device_class: Union[DeviceClass, str], strategy: Union[DataStrategy, str]) -> int:
    device = DeviceClass(device_class)
    if DataStrategy(strategy) == DataStrategy.CLIENT:
        return CLIENT_PAGE_SIZES[device]
    return REMOTE_PAGE_SIZES[device]


def prefetch_distance_for(device_class: Union[DeviceClass, str], strategy: Union[DataStrategy, str]) -> int:
    if DataStrategy(strategy) == DataStrategy.CLIENT:
        return 0
    return 1 if DeviceClass(device_class) == DeviceClass.MOBILE else 2


def build_load_plan(
    total_items: int,
    device_class: Union[DeviceClass, str],
    thresholds: Union[StrategyThresholds, Mapping[str, int], None] = None,
    forced: Optional[Union[DataStrategy, str]] = None,
) -> DataLoadPlan:
    """Select a strategy and derive the full :class:`DataLoadPlan` for it."""
    device = DeviceClass(device_class)
    strategy = select_strategy(total_items, device, thresholds, forced)
    remote = strategy != DataStrategy.CLIENT
    return DataLoadPlan(
        strategy=strategy,
        page_size=page_size_for(device, strategy),
        should_paginate=remote,
        should_use_server_filters=remote,
        prefetch_distance=prefetch_distance_for(device, strategy),
        cache_time_ms=CACHE_TIME_MS[strategy],
    )


__all__ = [
    "CLIENT_FLOOR",
    "DeviceClass",
    "DataStrategy",
    "DataLoadPlan",
    "device_class_for_width",
    "select_strategy",
    "page_size_for",
    "prefetch_distance_for",
    "build_load_plan",
]
