"""Session audit-trail logging for the Campaign Orchestrator."""
from src.logging.models import LogLevel, LogSource, LogEntry
from src.logging.audit_file import AuditFileWriter
from src.logging.session_logger import SessionLogger

__all__ = [
    "LogLevel", "LogSource", "LogEntry",
    "AuditFileWriter",
    "SessionLogger",
]
