"""Session audit-trail models: LogLevel, LogSource, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from src.utils import epoch_ms, generate_entry_id


class LogLevel(str, Enum):
    """Levels shown in the console's session log.

    ``node`` marks lifecycle transitions written by the node executor and
    ``system`` marks orchestrator-level progress; the rest carry their usual
    meaning.
    """

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SYSTEM = "system"
    NODE = "node"

    @property
    def python_level(self) -> int:
        """Matching stdlib ``logging`` level for mirroring entries."""
        return _PYTHON_LEVELS[self]


_PYTHON_LEVELS = {
    LogLevel.INFO: 20,
    LogLevel.SUCCESS: 20,
    LogLevel.SYSTEM: 20,
    LogLevel.NODE: 10,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
}


class LogSource:
    """Log sources that are not node identifiers."""

    SYSTEM = "SYSTEM"
    MEMORY = "MEMORY"


@dataclass(frozen=True)
class LogEntry:
    """Immutable audit record appended to a session's ``logs`` array.

    ``timestamp`` is epoch milliseconds; ``source`` is a node identifier or
    one of the :class:`LogSource` constants.
    """

    level: LogLevel
    source: str
    message: str
    id: str = field(default_factory=generate_entry_id)
    timestamp: int = field(default_factory=epoch_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the session-document shape."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "level": self.level.value,
            "source": self.source,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            id=data["id"],
            timestamp=int(data["timestamp"]),
            level=LogLevel(data["level"]),
            source=data["source"],
            message=data["message"],
        )

    def to_json(self) -> str:
        """Serialize to a JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_readable(self) -> str:
        """Human-readable format for Telegram/console output."""
        time_str = datetime.fromtimestamp(
            self.timestamp / 1000, tz=timezone.utc
        ).strftime("%H:%M:%S")
        return f"[{self.level.value.upper()}] [{time_str}] [{self.source}] {self.message}"
