"""Scheduling: wall-clock/UTC conversion and post schedule validation."""

from src.scheduling.post_scheduler import PostScheduler
from src.scheduling.time_converter import (
    LOCAL_INPUT_FORMAT,
    is_approximated,
    is_in_dst_gap,
    local_input_to_utc,
    local_input_to_utc_iso,
    next_top_of_hour_local,
    plus_minutes_rounded_up,
    to_utc_iso,
    utc_to_local_input,
)

__all__ = [
    "LOCAL_INPUT_FORMAT",
    "local_input_to_utc",
    "local_input_to_utc_iso",
    "utc_to_local_input",
    "to_utc_iso",
    "is_approximated",
    "is_in_dst_gap",
    "next_top_of_hour_local",
    "plus_minutes_rounded_up",
    "PostScheduler",
]
