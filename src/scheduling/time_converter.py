"""
Wall-clock <-> UTC conversion for scheduling inputs.

A scheduling form yields a wall-clock string (``YYYY-MM-DDTHH:MM``) that
the user means in *their* IANA zone.  The only zone capability relied on
is "format an instant into zone-local fields" (``datetime.astimezone``);
offsets are recovered from that rather than looked up.

Algorithm for :func:`local_input_to_utc`:

1. Parse the wall-clock fields; seconds = 0.
2. Treat the fields as if they were already UTC (the *guess* instant).
3. Format the guess into the zone and read the resulting fields back as
   UTC; the difference to the guess is the zone offset at the guess.
4. The corrected instant is ``guess - offset``.

No DST-boundary iteration is performed, so an input whose result does not
round-trip is approximated: either it lies in a spring-forward gap and has
no exact instant, or it is a real time just after a transition where the
guess offset is the pre-transition one.  The offset computed at the guess
is used and a warning naming the case is logged (``strict=True`` raises
:class:`~src.exceptions.StaleScheduleComputation` instead).  Telling the
two cases apart asks ``zoneinfo`` whether the wall time exists; it does
not change the converted instant.
"""

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.exceptions import StaleScheduleComputation, ValidationError
from src.utils import ensure_utc, format_timestamp, utc_now

logger = logging.getLogger(__name__)

LOCAL_INPUT_FORMAT = "%Y-%m-%dT%H:%M"

_LOCAL_INPUT_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2}))?$"
)


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone '{name}'") from exc


def _parse_local_input(value: str) -> datetime:
    """Parse wall-clock fields into a naive datetime (seconds dropped)."""
    match = _LOCAL_INPUT_RE.match(value.strip()) if value else None
    if match is None:
        raise ValidationError(
            f"Invalid local date/time '{value}'. Expected YYYY-MM-DDTHH:MM"
        )
    year, month, day, hour, minute = (int(part) for part in match.groups()[:5])
    try:
        return datetime(year, month, day, hour, minute)
    except ValueError as exc:
        raise ValidationError(f"Invalid local date/time '{value}': {exc}") from exc


def _zone_offset_at(instant: datetime, tz: ZoneInfo) -> timedelta:
    """Offset of *tz* at *instant*, recovered by formatting into the zone."""
    local_fields = instant.astimezone(tz).replace(tzinfo=timezone.utc)
    return local_fields - instant


def _single_pass(fields: datetime, tz: ZoneInfo) -> datetime:
    guess = fields.replace(tzinfo=timezone.utc)
    return guess - _zone_offset_at(guess, tz)


def _round_trips(instant: datetime, fields: datetime, tz: ZoneInfo) -> bool:
    return instant.astimezone(tz).replace(tzinfo=None) == fields


def _wall_time_exists(fields: datetime, tz: ZoneInfo) -> bool:
    return _round_trips(fields.replace(tzinfo=tz).astimezone(timezone.utc), fields, tz)


# =============================================================================
# CONVERSIONS
# =============================================================================


def local_input_to_utc(value: str, zone: str, strict: bool = False) -> datetime:
    """Convert a wall-clock input in *zone* to the equivalent UTC instant.

    Args:
        value: ``YYYY-MM-DDTHH:MM`` (``:SS`` tolerated and ignored).
        zone: IANA zone name, e.g. ``"America/New_York"``.
        strict: Raise instead of returning an approximated instant.

    Returns:
        Timezone-aware UTC datetime.

    Raises:
        ValidationError: On malformed input or unknown zone.
        StaleScheduleComputation: In strict mode, for an input that does not
            round-trip (see :func:`is_approximated`).
    """
    tz = _zone(zone)
    fields = _parse_local_input(value)
    corrected = _single_pass(fields, tz)

    if not _round_trips(corrected, fields, tz):
        in_gap = not _wall_time_exists(fields, tz)
        if strict:
            raise StaleScheduleComputation(value, zone, in_gap=in_gap)
        if in_gap:
            logger.warning(
                "[SCHEDULER] '%s' does not exist in %s (skipped by a DST change); "
                "using best-effort instant %s",
                value,
                zone,
                format_timestamp(corrected),
            )
        else:
            logger.warning(
                "[SCHEDULER] '%s' in %s falls just after a DST change; "
                "single-pass conversion gives approximated instant %s",
                value,
                zone,
                format_timestamp(corrected),
            )
    return corrected


def utc_to_local_input(instant: datetime, zone: str) -> str:
    """Format a UTC instant as a ``YYYY-MM-DDTHH:MM`` wall-clock string in *zone*."""
    return ensure_utc(instant).astimezone(_zone(zone)).strftime(LOCAL_INPUT_FORMAT)


def to_utc_iso(instant: datetime) -> str:
    """Render an instant the way the API expects (``...T14:00:00.000Z``)."""
    return format_timestamp(instant)


def local_input_to_utc_iso(value: str, zone: str) -> str:
    """Shortcut for ``to_utc_iso(local_input_to_utc(value, zone))``."""
    return to_utc_iso(local_input_to_utc(value, zone))


def is_approximated(value: str, zone: str) -> bool:
    """True when *value* does not round-trip through a single-pass conversion.

    This covers spring-forward gaps and the hours right after a transition
    where the guess offset is the pre-transition one.
    """
    tz = _zone(zone)
    fields = _parse_local_input(value)
    return not _round_trips(_single_pass(fields, tz), fields, tz)


def is_in_dst_gap(value: str, zone: str) -> bool:
    """True when *value* names no real instant in *zone* (spring-forward gap)."""
    return not _wall_time_exists(_parse_local_input(value), _zone(zone))


# =============================================================================
# FORM DEFAULTS
# =============================================================================


def next_top_of_hour_local(zone: str, now: Optional[datetime] = None) -> str:
    """Next whole hour in *zone* as a wall-clock input string.

    If the current local time is already on the hour it is returned as is.
    The candidate is passed back through :func:`local_input_to_utc` and
    re-formatted so the result is always a valid local wall time, even
    across midnight or a DST change.
    """
    tz = _zone(zone)
    local = ensure_utc(now or utc_now()).astimezone(tz).replace(tzinfo=None)
    candidate = local.replace(minute=0, second=0, microsecond=0)
    if local.minute > 0 or local.second > 0 or local.microsecond > 0:
        candidate += timedelta(hours=1)

    instant = local_input_to_utc(candidate.strftime(LOCAL_INPUT_FORMAT), zone)
    return utc_to_local_input(instant, zone)


def plus_minutes_rounded_up(now: datetime, minutes: int, zone: str) -> str:
    """``now + minutes`` ceiled to the whole minute, formatted into *zone*.

    Used for the earliest allowed schedule time (lead time).  Rounding is
    always up so the suggested time is never earlier than the lead time.
    """
    target = ensure_utc(now) + timedelta(minutes=minutes)
    if target.second or target.microsecond:
        epoch_minutes = math.ceil(target.timestamp() / 60)
        target = datetime.fromtimestamp(epoch_minutes * 60, tz=timezone.utc)
    return utc_to_local_input(target, zone)


__all__ = [
    "LOCAL_INPUT_FORMAT",
    "local_input_to_utc",
    "utc_to_local_input",
    "to_utc_iso",
    "local_input_to_utc_iso",
    "is_approximated",
    "is_in_dst_gap",
    "next_top_of_hour_local",
    "plus_minutes_rounded_up",
]
