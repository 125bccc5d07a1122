"""
Shared utility functions used throughout the content pipeline codebase.

Provides:
    - utc_now(): Timezone-aware UTC datetime
    - generate_id(): UUID4 string generator
    - ensure_utc(dt): Convert any datetime to timezone-aware UTC
    - parse_timestamp(value): Parse API ISO-8601 strings (``Z`` suffix aware)
    - format_timestamp(dt): Render a datetime as ``...T..:..:..mmmZ``
"""

from datetime import datetime, timezone
import uuid
from typing import Optional, Union


# ===========================================================================
# TIMEZONE UTILITIES
# All timestamps exchanged with the API are UTC instants
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    ALWAYS use this instead of ``datetime.now()`` or ``datetime.utcnow()``.

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """
    Generate a unique ID for locally created records.

    Returns:
        A unique UUID string.
    """
    return str(uuid.uuid4())


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware in UTC.

    Args:
        dt: Datetime to convert (naive or aware).

    Returns:
        Timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        # Assume naive datetime is UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from an API payload.

    Accepts the trailing ``Z`` designator that ``datetime.fromisoformat``
    rejects on older interpreters. Naive values are assumed to be UTC.

    Args:
        value: ISO string, datetime, or ``None``.

    Returns:
        Timezone-aware UTC datetime, or ``None`` when *value* is empty.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(dt: datetime) -> str:
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Example: ``2024-01-15T14:00:00.000Z``.
    """
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
