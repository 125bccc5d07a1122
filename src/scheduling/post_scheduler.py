"""
Post scheduling: validation of requested times and schedule/unschedule.

``PostScheduler`` turns wall-clock inputs expressed in the user's zone into
UTC instants, checks them against the scheduling rules, and hands the
request to the mutation coordinator.  "Scheduling" only attaches a future
UTC timestamp to a post; publishing is done downstream.

Rules:
    - the instant must lie in the future, and
    - at least ``lead_time_minutes`` ahead of now.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Tuple

from src.exceptions import ScheduleValidationError
from src.models import EntityKind, Post, PostStatus
from src.scheduling.time_converter import (
    local_input_to_utc,
    next_top_of_hour_local,
    plus_minutes_rounded_up,
    to_utc_iso,
)
from src.utils import ensure_utc, utc_now

if TYPE_CHECKING:
    from src.config import Settings
    from src.mutations import BulkOperationResult, OptimisticMutationCoordinator

logger = logging.getLogger(__name__)


class PostScheduler:
    """Schedules posts at user-chosen local times.

    Args:
        coordinator: Mutation coordinator used to send requests.
        zone: IANA zone wall-clock inputs are expressed in.
        lead_time_minutes: Minimum distance between now and a schedule.
        strict: Reject wall-clock inputs inside a DST transition instead
            of scheduling the approximated instant.
        clock: Source of "now" (UTC).
    """

    DEFAULT_LEAD_TIME_MINUTES: int = 30

    def __init__(
        self,
        coordinator: "OptimisticMutationCoordinator",
        zone: str,
        lead_time_minutes: int = DEFAULT_LEAD_TIME_MINUTES,
        strict: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if lead_time_minutes < 0:
            raise ValueError(f"lead_time_minutes must be >= 0, got {lead_time_minutes}")
        self.coordinator = coordinator
        self.zone = zone
        self.lead_time_minutes = lead_time_minutes
        self.strict = strict
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        coordinator: "OptimisticMutationCoordinator",
        settings: "Settings",
    ) -> "PostScheduler":
        return cls(
            coordinator,
            zone=settings.timezone,
            lead_time_minutes=settings.schedule_lead_time_minutes,
            strict=settings.schedule_strict_dst,
        )

    # ================================================================
    # SUGGESTED INPUTS
    # ================================================================

    def default_local_input(self, now: Optional[datetime] = None) -> str:
        """Pre-filled value for a schedule form: the next top of the hour."""
        return next_top_of_hour_local(self.zone, now or self._clock())

    def earliest_local_input(self, now: Optional[datetime] = None) -> str:
        """Earliest acceptable wall-clock input (now + lead time, minute-ceiled)."""
        return plus_minutes_rounded_up(now or self._clock(), self.lead_time_minutes, self.zone)

    # ================================================================
    # VALIDATION
    # ================================================================

    def validate_instant(self, instant: datetime, now: Optional[datetime] = None) -> None:
        """Check a UTC instant against the scheduling rules.

        Raises:
            ScheduleValidationError: If the instant is not in the future or
                is closer than the lead time.
        """
        instant = ensure_utc(instant)
        now = ensure_utc(now or self._clock())
        if instant <= now:
            raise ScheduleValidationError(
                f"Scheduled time must be in the future (got {to_utc_iso(instant)})"
            )
        earliest = now + timedelta(minutes=self.lead_time_minutes)
        if instant < earliest:
            raise ScheduleValidationError(
                f"Scheduled time must be at least {self.lead_time_minutes} minutes "
                f"from now (earliest {to_utc_iso(earliest)})"
            )

    def validate(self, local_value: str, now: Optional[datetime] = None) -> datetime:
        """Convert a wall-clock input and validate it; returns the UTC instant."""
        instant = local_input_to_utc(local_value, self.zone, strict=self.strict)
        self.validate_instant(instant, now)
        return instant

    # ================================================================
    # OPERATIONS
    # ================================================================

    async def schedule(self, post_id: str, local_value: str) -> Post:
        """Schedule (or reschedule) one post at a local wall-clock time."""
        instant = self.validate(local_value)
        logger.info(
            "[SCHEDULER] Scheduling post %s at %s (%s %s)",
            post_id,
            to_utc_iso(instant),
            local_value,
            self.zone,
        )
        return await self.coordinator.schedule(post_id, instant)

    async def unschedule(self, post_id: str) -> Post:
        """Return a scheduled post to ``approved``, clearing its instant."""
        logger.info("[SCHEDULER] Unscheduling post %s", post_id)
        return await self.coordinator.transition(
            EntityKind.POSTS, post_id, PostStatus.APPROVED
        )

    async def bulk_schedule(self, pairs: Sequence[Tuple[str, str]]) -> "BulkOperationResult":
        """Schedule several posts; invalid times fail only their own post."""
        return await self.coordinator.bulk_schedule(
            pairs,
            self.zone,
            strict=self.strict,
            validator=self.validate_instant,
        )


__all__ = ["PostScheduler"]
