"""
Unified async Supabase client for all persistent state.

ALL database operations go through the SupabaseDB class defined here.
No direct Supabase calls should appear anywhere else in the codebase.

SupabaseDB implements :class:`src.session_store.SessionStore` on top of the
``campaign_sessions`` table.  Every scoped mutation (node field update, log
append, asset append, status transition, plan write) is a single Postgres
function call defined in ``sql/schema.sql``, so each one runs as one
``UPDATE`` statement and concurrent node tasks never overwrite each other's
changes.  It also backs the cross-session memory bank (``memory_bank`` and
``brand_settings`` tables).

Usage::

    from src.database import SupabaseDB, get_db

    # In async context:
    db = await get_db()
    session = await db.create_session(generate_id(), "Launch a productivity app")
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from supabase import AsyncClient, create_async_client

from src.exceptions import (
    DatabaseError,
    InvalidSessionStateError,
    SessionNotFoundError,
    ValidationError,
)
from src.logging.models import LogEntry
from src.models import (
    ExecutionPlan,
    GeneratedAsset,
    MemoryEntry,
    NodeStatus,
    Session,
    SessionStatus,
)
from src.session_store import SessionStore

logger = logging.getLogger(__name__)

# The Postgres functions in sql/schema.sql write to this table by name
SESSIONS_TABLE = "campaign_sessions"

# Column name -> session-document key
_SESSION_COLUMNS: Dict[str, str] = {
    "session_id": "sessionId",
    "intent": "intent",
    "status": "status",
    "execution_plan": "executionPlan",
    "nodes": "nodes",
    "logs": "logs",
    "assets": "assets",
    "metadata": "metadata",
    "final_result": "finalResult",
    "error": "error",
    "created_at": "createdAt",
    "completed_at": "completedAt",
    "failed_at": "failedAt",
}


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Args:
        value: The value to check.
        name: Human-readable field name used in error messages.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def validate_positive(value: Union[int, float], name: str) -> None:
    """Validate that *value* is strictly positive (> 0).

    Raises:
        ValidationError: If *value* is ``None`` or not positive.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The service-role key for full server-side access
            (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str  # service_role key for full server-side access

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Reads ``SUPABASE_URL`` and ``SUPABASE_SERVICE_KEY``.

        Raises:
            ValueError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# ROW MAPPING
# =============================================================================


def session_to_row(session: Session) -> Dict[str, Any]:
    """Map a session document onto ``campaign_sessions`` columns."""
    document = session.to_dict()
    return {
        column: document.get(key)
        for column, key in _SESSION_COLUMNS.items()
    }


def row_to_session(row: Dict[str, Any]) -> Session:
    """Map a ``campaign_sessions`` row back onto a :class:`Session`."""
    document = {
        key: row.get(column)
        for column, key in _SESSION_COLUMNS.items()
        if row.get(column) is not None
    }
    return Session.from_dict(document)


def allowed_sources(
    target: SessionStatus, expected: Optional[SessionStatus] = None
) -> List[str]:
    """Statuses from which a transition to *target* may be applied."""
    if expected is not None:
        return [expected.value] if expected.can_transition_to(target) else []
    return [s.value for s in SessionStatus if s.can_transition_to(target)]


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB(SessionStore):
    """Unified **async** database client for all persistent state.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` directly -- the underlying async client requires an
    ``await`` during initialisation.
    """

    def __init__(self, client: AsyncClient) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        self.client = client

    @classmethod
    async def create(
        cls,
        config: Optional[SupabaseConfig] = None,
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.

        Returns:
            A fully initialised :class:`SupabaseDB` instance.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(client)

    async def _rpc(self, function: str, params: Dict[str, Any]) -> Any:
        """Call a Postgres function and return its result payload."""
        result = await self.client.rpc(function, params).execute()
        return result.data

    # -----------------------------------------------------------------
    # SESSIONS
    # -----------------------------------------------------------------

    async def create_session(self, session_id: str, intent: str) -> Session:
        """Insert a new ``started`` session row.

        Raises:
            ValidationError: On blank ``session_id`` / ``intent``.
            DatabaseError: When the insert returns no data.
        """
        validate_not_empty(session_id, "session_id")
        validate_not_empty(intent, "intent")

        session = Session.new(session_id, intent)
        result = await (
            self.client.table(SESSIONS_TABLE)
            .insert(session_to_row(session))
            .execute()
        )
        if not result.data:
            raise DatabaseError("Insert succeeded but returned no data")
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        validate_not_empty(session_id, "session_id")

        result = await (
            self.client.table(SESSIONS_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        return row_to_session(result.data[0]) if result.data else None

    async def update_node(
        self,
        session_id: str,
        node_id: str,
        status: NodeStatus,
        progress: int,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        found = await self._rpc(
            "update_session_node",
            {
                "p_session_id": session_id,
                "p_node_id": node_id,
                "p_status": status.value,
                "p_progress": progress,
                "p_output": output,
                "p_error": error,
            },
        )
        if not found:
            raise SessionNotFoundError(session_id)

    async def append_log(self, session_id: str, entry: LogEntry) -> None:
        found = await self._rpc(
            "append_session_log",
            {"p_session_id": session_id, "p_entry": entry.to_dict()},
        )
        if not found:
            raise SessionNotFoundError(session_id)

    async def append_asset(self, session_id: str, asset: GeneratedAsset) -> None:
        found = await self._rpc(
            "append_session_asset",
            {"p_session_id": session_id, "p_asset": asset.to_dict()},
        )
        if not found:
            raise SessionNotFoundError(session_id)

    async def set_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        final_result: Optional[str] = None,
        error: Optional[str] = None,
        expected: Optional[SessionStatus] = None,
    ) -> None:
        """Conditional status update; see :meth:`SessionStore.set_session_status`.

        The Postgres function only updates when the current status is one of
        the allowed sources and reports ``{"updated", "current"}``.
        """
        outcome = await self._rpc(
            "transition_session_status",
            {
                "p_session_id": session_id,
                "p_from": allowed_sources(status, expected),
                "p_status": status.value,
                "p_final_result": final_result,
                "p_error": error,
            },
        ) or {}
        if outcome.get("updated"):
            return
        current = outcome.get("current")
        if current is None:
            raise SessionNotFoundError(session_id)
        raise InvalidSessionStateError(
            session_id, current, (expected or status).value
        )

    async def set_execution_plan(
        self,
        session_id: str,
        plan: ExecutionPlan,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        outcome = await self._rpc(
            "set_session_plan",
            {
                "p_session_id": session_id,
                "p_plan": plan.to_dict(),
                "p_metadata": metadata or {},
            },
        ) or {}
        if outcome.get("updated"):
            return
        if not outcome.get("exists"):
            raise SessionNotFoundError(session_id)
        raise InvalidSessionStateError(
            session_id, "plan recorded", "no plan recorded"
        )

    # -----------------------------------------------------------------
    # MEMORY BANK
    # -----------------------------------------------------------------

    async def query_memory_entries(
        self, tags: List[str], limit: int = 10
    ) -> List[MemoryEntry]:
        """Entries sharing at least one relevance tag with *tags*.

        Sorting happens in Python so the table needs no composite index.
        """
        validate_positive(limit, "limit")
        if not tags:
            return []

        result = await (
            self.client.table("memory_bank")
            .select("*")
            .ov("relevance_tags", tags)
            .limit(limit)
            .execute()
        )
        entries = [
            MemoryEntry.from_dict(
                {
                    "type": row["type"],
                    "content": row["content"],
                    "sourceSessionId": row.get("source_session_id", ""),
                    "relevanceTags": row.get("relevance_tags") or [],
                    "createdAt": row.get("created_at") or 0,
                }
            )
            for row in result.data or []
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries

    async def save_memory_entry(self, entry: MemoryEntry) -> str:
        """Insert a memory entry.

        Returns:
            The UUID of the inserted row.
        """
        validate_not_empty(entry.content, "content")

        result = await (
            self.client.table("memory_bank")
            .insert(
                {
                    "type": entry.type.value,
                    "content": entry.content,
                    "source_session_id": entry.source_session_id,
                    "relevance_tags": entry.relevance_tags,
                    "created_at": entry.created_at,
                }
            )
            .execute()
        )
        if not result.data:
            raise DatabaseError("Insert succeeded but returned no data")
        return result.data[0]["id"]

    async def get_brand_setting(self, key: str) -> Optional[str]:
        """Content of one ``brand_settings`` row, or ``None`` if absent."""
        result = await (
            self.client.table("brand_settings")
            .select("content")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        return result.data[0].get("content") if result.data else None


# =============================================================================
# GLOBAL DATABASE INSTANCE (Singleton)
# =============================================================================

# One async connection for the entire application.
_db_instance: Optional[SupabaseDB] = None
_db_lock: Optional[asyncio.Lock] = None

# Thread lock for safe initialisation of the async lock itself.
_init_lock = threading.Lock()


async def get_db() -> SupabaseDB:
    """Get the global async database instance.

    Thread-safe **and** async-safe.  The first call creates the
    :class:`SupabaseDB` singleton; subsequent calls return the same
    instance.

    Returns:
        The singleton :class:`SupabaseDB` instance.
    """
    global _db_instance, _db_lock

    # Thread-safe lazy initialisation of the async lock.
    if _db_lock is None:
        with _init_lock:
            # Double-check after acquiring thread lock.
            if _db_lock is None:
                _db_lock = asyncio.Lock()

    if _db_instance is None:
        async with _db_lock:
            # Double-check after acquiring async lock.
            if _db_instance is None:
                _db_instance = await SupabaseDB.create()

    return _db_instance


__all__ = [
    "SESSIONS_TABLE",
    "validate_not_empty",
    "validate_positive",
    "SupabaseConfig",
    "SupabaseDB",
    "session_to_row",
    "row_to_session",
    "allowed_sources",
    "get_db",
]
