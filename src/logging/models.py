"""Audit log data models: LogLevel, LogComponent, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log levels with numeric values for severity comparison.

    Values match the stdlib ``logging`` levels so entries can be mirrored
    into module loggers unchanged.
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def name_str(self) -> str:
        """Get lowercase name for display/serialization."""
        return self.name.lower()

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Parse a configured level name such as ``"info"`` or ``"WARNING"``.

        Raises:
            ValueError: If *name* is not a level.
        """
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(
                f"Unknown log level '{name}'. Valid levels: {[level.name for level in cls]}"
            ) from None


class LogComponent(Enum):
    """Pipeline components that produce audit entries."""

    MUTATIONS = "mutations"
    SESSION = "session"


@dataclass
class LogEntry:
    """Structured audit entry.

    Carries the entity context of the operation, optional error details
    and timing.  Serializes to one JSON line for the audit files.
    """

    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    session_id: Optional[str] = None
    entity_kind: Optional[str] = None
    entity_id: Optional[str] = None

    data: Dict[str, Any] = field(default_factory=dict)

    # Error details
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "session_id": self.session_id,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "data": self.data,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """One-line console format."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        msg = f"[{self.level.name}] [{time_str}] [{self.component.value}] {self.message}"
        if self.entity_id:
            msg += f" ({self.entity_kind}/{self.entity_id})"
        if self.duration_ms is not None:
            msg += f" ({self.duration_ms}ms)"
        return msg
