"""Structured audit logging for the content pipeline core."""
from src.logging.models import LogLevel, LogComponent, LogEntry
from src.logging.audit_logger import AuditLogger, init_logger, get_logger
from src.logging.component_logger import ComponentLogger, TimedOperation

__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "AuditLogger", "init_logger", "get_logger",
    "ComponentLogger", "TimedOperation",
]
