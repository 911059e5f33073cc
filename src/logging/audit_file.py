"""JSON-lines audit trail of session log entries.

``AuditFileWriter`` mirrors every session log entry into local files using
``aiofiles`` so a run can be reconstructed even when the session store is
unavailable:

    - ``sessions.log`` -- all entries
    - ``errors.log``   -- ``error`` and ``warning`` entries only
"""

import asyncio
import json
from pathlib import Path
from typing import Set

import aiofiles

from src.logging.models import LogEntry, LogLevel

_ERROR_LEVELS: Set[LogLevel] = {LogLevel.ERROR, LogLevel.WARNING}


class AuditFileWriter:
    """Append session log entries to JSON-lines files.

    Parameters:
        log_dir: Directory for log files (created if missing).
    """

    def __init__(self, log_dir: str = "logs") -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._main_log = self.log_dir / "sessions.log"
        self._error_log = self.log_dir / "errors.log"

        # Concurrent node tasks write through one writer; keep lines whole
        self._lock = asyncio.Lock()

    @property
    def main_log(self) -> Path:
        return self._main_log

    @property
    def error_log(self) -> Path:
        return self._error_log

    async def write(self, session_id: str, entry: LogEntry) -> None:
        """Write one entry, tagged with its session id."""
        json_line = json.dumps(
            {"sessionId": session_id, **entry.to_dict()}, ensure_ascii=False
        ) + "\n"

        async with self._lock:
            async with aiofiles.open(self._main_log, "a", encoding="utf-8") as f:
                await f.write(json_line)

            if entry.level in _ERROR_LEVELS:
                async with aiofiles.open(self._error_log, "a", encoding="utf-8") as f:
                    await f.write(json_line)
