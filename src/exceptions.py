"""
Custom exception classes for the content pipeline core.

This module defines all exception classes used throughout the codebase.
Exceptions follow the fail-fast philosophy: local validation and status
transition errors are raised at the call site before any request is
issued; transport failures surface to the caller of the mutation.

Hierarchy:
    Exception
    +-- PipelineBaseError (base for all pipeline-specific errors)
    |   +-- InvalidTransitionError
    |   +-- NetworkError
    |   +-- ApiError
    |   +-- PreferenceStoreError
    +-- ValidationError (ValueError)
    |   +-- ScheduleValidationError
    |   +-- StaleScheduleComputation
    +-- ConfigurationError

A partial bulk failure is *not* an exception: it is reported through
``BulkOperationResult.is_partial`` (see :mod:`src.mutations`).
"""

from typing import Any, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class PipelineBaseError(Exception):
    """Base exception for all content-pipeline errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when a required field is missing or malformed before submit."""

    pass


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


# =============================================================================
# STATUS MODEL EXCEPTIONS
# =============================================================================


class InvalidTransitionError(PipelineBaseError):
    """Raised when a requested status change is not a legal edge.

    Never sent to the network: the status model rejects the request locally.

    Attributes:
        kind: Entity kind value (``"transcripts"``, ``"insights"``, ``"posts"``).
        current: Status the entity currently has.
        target: Status that was requested.
    """

    def __init__(self, kind: str, current: str, target: str):
        self.kind = kind
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid {kind} transition: '{current}' -> '{target}'"
        )


# =============================================================================
# TRANSPORT EXCEPTIONS
# =============================================================================


class NetworkError(PipelineBaseError):
    """Raised when the transport fails before a response envelope arrives."""

    pass


class ApiError(PipelineBaseError):
    """Raised for ``{success: false, error}`` responses or HTTP error codes.

    Attributes:
        status_code: HTTP status code when known.
        payload: Decoded response body when available.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        self.status_code = status_code
        self.payload = payload
        super().__init__(message)


# =============================================================================
# SCHEDULING EXCEPTIONS
# =============================================================================


class ScheduleValidationError(ValidationError):
    """Raised when a requested schedule time is in the past or too soon."""

    pass


class StaleScheduleComputation(ValidationError):
    """Raised in strict mode for a wall-clock time next to a DST change.

    The default converter behaviour is best-effort: it logs a warning and
    returns an instant computed from the guess offset.

    Attributes:
        local_value: The wall-clock input that could not be converted exactly.
        zone: IANA zone name the input was interpreted in.
        in_gap: True when the input names no real instant (spring-forward
            gap); False for a real time just after the change.
    """

    def __init__(self, local_value: str, zone: str, in_gap: bool = True):
        self.local_value = local_value
        self.zone = zone
        self.in_gap = in_gap
        if in_gap:
            message = (
                f"Wall-clock time '{local_value}' does not exist in zone '{zone}' "
                "(daylight-saving gap)"
            )
        else:
            message = (
                f"Wall-clock time '{local_value}' in zone '{zone}' is too close "
                "to a daylight-saving change to convert exactly"
            )
        super().__init__(message)


# =============================================================================
# PREFERENCE EXCEPTIONS
# =============================================================================


class PreferenceStoreError(PipelineBaseError):
    """Raised when persisted preferences cannot be read or written."""

    pass


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "PipelineBaseError",
    # Core
    "ValidationError",
    "ConfigurationError",
    # Status model
    "InvalidTransitionError",
    # Transport
    "NetworkError",
    "ApiError",
    # Scheduling
    "ScheduleValidationError",
    "StaleScheduleComputation",
    # Preferences
    "PreferenceStoreError",
]
