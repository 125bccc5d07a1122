"""Per-component audit logger wrapper and timed-operation context manager.

``ComponentLogger`` binds a fixed ``LogComponent`` (and optionally a
specific ``AuditLogger``) so a subsystem can log without repeating either.

``TimedOperation`` is an async context manager returned by
``ComponentLogger.timed()`` that logs the elapsed duration and the
success/failure of a block of code.
"""

import time
from typing import Any, Optional

from src.logging.audit_logger import AuditLogger, get_logger
from src.logging.models import LogComponent, LogEntry


class ComponentLogger:
    """Wrapper that binds a ``LogComponent`` to an audit logger.

    Falls back to the global singleton when no logger is given::

        audit = ComponentLogger(LogComponent.MUTATIONS, audit_logger)
        await audit.info("Bulk approve finished", data={"succeeded": 3})
    """

    def __init__(self, component: LogComponent, logger: Optional[AuditLogger] = None) -> None:
        self.component = component
        self._logger = logger

    @property
    def logger(self) -> AuditLogger:
        return self._logger if self._logger is not None else get_logger()

    async def debug(self, message: str, **kwargs: Any) -> LogEntry:
        return await self.logger.debug(self.component, message, **kwargs)

    async def info(self, message: str, **kwargs: Any) -> LogEntry:
        return await self.logger.info(self.component, message, **kwargs)

    async def warning(self, message: str, **kwargs: Any) -> LogEntry:
        return await self.logger.warning(self.component, message, **kwargs)

    async def error(
        self, message: str, error: Optional[BaseException] = None, **kwargs: Any
    ) -> LogEntry:
        return await self.logger.error(self.component, message, error=error, **kwargs)

    def timed(self, message: str, **kwargs: Any) -> "TimedOperation":
        """Return an async context manager that logs the outcome with duration.

        Usage::

            async with audit.timed("Bulk schedule", data={"count": 5}):
                result = await coordinator.bulk_schedule(pairs, zone)
        """
        return TimedOperation(self, message, **kwargs)


class TimedOperation:
    """Async context manager that measures and logs operation duration.

    On successful exit, logs INFO ``"Completed: <message>"`` with
    ``duration_ms``.  On exception, logs ERROR ``"Failed: <message>"`` and
    re-raises (the exception is never suppressed).
    """

    def __init__(self, logger: ComponentLogger, message: str, **kwargs: Any) -> None:
        self.logger = logger
        self.message = message
        self.kwargs = kwargs
        self.start_time: Optional[float] = None

    async def __aenter__(self) -> "TimedOperation":
        self.start_time = time.monotonic()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        assert self.start_time is not None
        duration_ms = int((time.monotonic() - self.start_time) * 1000)

        if exc_type is not None:
            await self.logger.error(
                f"Failed: {self.message}",
                error=exc_val,
                duration_ms=duration_ms,
                **self.kwargs,
            )
        else:
            await self.logger.info(
                f"Completed: {self.message}",
                duration_ms=duration_ms,
                **self.kwargs,
            )
