"""Per-session, per-source logger that writes the console's audit trail.

``SessionLogger`` binds a session id and a log source (node identifier,
``SN-00`` or ``SYSTEM``) so nodes and the orchestrator can append entries
without repeating either.  Each entry is:

    1. appended to the session document via ``SessionStore.append_log``,
    2. mirrored to the stdlib ``logging`` hierarchy,
    3. optionally written to the JSON-lines audit files.

Usage::

    log = SessionLogger(store, session_id, "SP-01")
    await log.info("Grounded research started")
    await log.bind("SN-00").system("Phase 1 complete.")
"""

import logging
from typing import Any, Optional

from src.logging.audit_file import AuditFileWriter
from src.logging.models import LogEntry, LogLevel

logger = logging.getLogger(__name__)


class SessionLogger:
    """Append structured entries to one session's ``logs`` array.

    A failed store append is reported on the module logger and not raised:
    the audit trail must never be the reason a node or phase fails.  Store
    outages still surface through the status writes that follow.

    Parameters:
        store: A ``SessionStore``.
        session_id: Session the entries belong to.
        source: Value of the ``source`` field on every entry.
        audit: Optional file mirror.
    """

    def __init__(
        self,
        store: Any,
        session_id: str,
        source: str,
        audit: Optional[AuditFileWriter] = None,
    ) -> None:
        self.store = store
        self.session_id = session_id
        self.source = source
        self.audit = audit

    def bind(self, source: str) -> "SessionLogger":
        """Return a logger for the same session with a different source."""
        return SessionLogger(self.store, self.session_id, source, self.audit)

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(self, level: LogLevel, message: str) -> LogEntry:
        entry = LogEntry(level=level, source=self.source, message=message)

        logger.log(
            level.python_level,
            "[%s] [%s] %s",
            self.session_id[:8],
            self.source,
            message,
        )

        try:
            await self.store.append_log(self.session_id, entry)
        except Exception as exc:
            logger.error(
                "Failed to append log to session %s: %s: %s",
                self.session_id,
                type(exc).__name__,
                exc,
            )

        if self.audit is not None:
            try:
                await self.audit.write(self.session_id, entry)
            except OSError as exc:
                logger.warning("Audit file write failed: %s", exc)

        return entry

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def info(self, message: str) -> LogEntry:
        return await self.log(LogLevel.INFO, message)

    async def success(self, message: str) -> LogEntry:
        return await self.log(LogLevel.SUCCESS, message)

    async def warning(self, message: str) -> LogEntry:
        return await self.log(LogLevel.WARNING, message)

    async def error(self, message: str) -> LogEntry:
        return await self.log(LogLevel.ERROR, message)

    async def system(self, message: str) -> LogEntry:
        return await self.log(LogLevel.SYSTEM, message)

    async def node(self, message: str) -> LogEntry:
        return await self.log(LogLevel.NODE, message)
