"""Structured audit logger writing JSON lines.

Provides the ``AuditLogger`` class that records structured entries for
mutations and bulk operations of a session.  Entries go to local JSON-lines
files (via ``aiofiles``) and a bounded in-memory buffer that backs
``get_recent()``; every entry is also mirrored into the stdlib logger of
this module so console handlers see it.

Global helpers:
    - ``init_logger()``  -- create and register a singleton ``AuditLogger``
    - ``get_logger()``   -- retrieve the singleton (raises if not initialised)
"""

import logging
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Union

import aiofiles

from src.logging.models import LogComponent, LogEntry, LogLevel
from src.utils import utc_now

stdlib_logger = logging.getLogger(__name__)


class AuditLogger:
    """Audit log for pipeline operations.

    Parameters:
        log_dir: Directory for log files (created if missing).  ``None``
            keeps entries in memory only.
        min_level: Minimum level written to the files.
        max_recent: Size of the in-memory buffer.
    """

    def __init__(
        self,
        log_dir: Optional[Union[str, Path]] = "logs",
        min_level: LogLevel = LogLevel.INFO,
        max_recent: int = 1000,
    ) -> None:
        self.log_dir: Optional[Path] = Path(log_dir) if log_dir is not None else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self.min_level = min_level

        self._session_id: Optional[str] = None

        self._recent: Deque[LogEntry] = deque(maxlen=max_recent)
        self._handlers: List[Callable[[LogEntry], None]] = []

    @property
    def audit_file(self) -> Optional[Path]:
        return self.log_dir / "audit.log" if self.log_dir is not None else None

    @property
    def error_file(self) -> Optional[Path]:
        return self.log_dir / "errors.log" if self.log_dir is not None else None

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def set_context(self, session_id: Optional[str] = None) -> None:
        """Set the session id stamped on subsequent entries."""
        if session_id is not None:
            self._session_id = session_id

    def clear_context(self) -> None:
        self._session_id = None

    def add_handler(self, handler: Callable[[LogEntry], None]) -> None:
        """Register a synchronous callback invoked for every entry."""
        self._handlers.append(handler)

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
        entity_kind: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> LogEntry:
        """Record a structured entry and return it."""
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            session_id=self._session_id,
            entity_kind=entity_kind,
            entity_id=entity_id,
            data=data or {},
            duration_ms=duration_ms,
        )
        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_message = str(error)

        self._recent.append(entry)
        stdlib_logger.log(level.value, entry.to_readable())

        if self.log_dir is not None and level.value >= self.min_level.value:
            await self._write_to_file(entry)

        for handler in self._handlers:
            try:
                handler(entry)
            except Exception:
                stdlib_logger.exception("[AUDIT] Log handler %r failed", handler)

        return entry

    async def debug(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.DEBUG, component, message, **kwargs)

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        return await self.log(LogLevel.ERROR, component, message, **kwargs)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        entity_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Return recent entries from the in-memory buffer, oldest first."""
        entries = list(self._recent)
        if level is not None:
            entries = [entry for entry in entries if entry.level == level]
        if component is not None:
            entries = [entry for entry in entries if entry.component == component]
        if entity_id is not None:
            entries = [entry for entry in entries if entry.entity_id == entity_id]
        return entries[-limit:]

    # ------------------------------------------------------------------
    # File output
    # ------------------------------------------------------------------

    async def _write_to_file(self, entry: LogEntry) -> None:
        """Append the entry to ``audit.log`` (and ``errors.log`` for ERROR+)."""
        json_line = entry.to_json() + "\n"

        async with aiofiles.open(self.audit_file, "a", encoding="utf-8") as f:
            await f.write(json_line)

        if entry.level.value >= LogLevel.ERROR.value:
            async with aiofiles.open(self.error_file, "a", encoding="utf-8") as f:
                await f.write(json_line)


# ======================================================================
# GLOBAL LOGGER SINGLETON
# ======================================================================

_logger: Optional[AuditLogger] = None


def init_logger(
    log_dir: Optional[Union[str, Path]] = "logs",
    min_level: LogLevel = LogLevel.INFO,
) -> AuditLogger:
    """Initialise and register the global ``AuditLogger`` singleton."""
    global _logger
    _logger = AuditLogger(log_dir=log_dir, min_level=min_level)
    return _logger


def get_logger() -> AuditLogger:
    """Retrieve the global ``AuditLogger`` singleton.

    Raises:
        RuntimeError: If ``init_logger()`` has not been called yet.
    """
    if _logger is None:
        raise RuntimeError("Audit logger not initialized. Call init_logger() first.")
    return _logger
