"""
Session document store: interface and in-process implementation.

The orchestration core mutates a session only through the scoped
operations declared on :class:`SessionStore`: a per-node field update, an
append to ``logs`` or ``assets``, a status transition, and the one-time plan
write.  No caller ever replaces the whole document, so concurrent node
tasks writing their own node entries or appending to the same array cannot
clobber each other.

Provides:
    - SessionStore: abstract async interface
    - InMemorySessionStore: single-writer store guarded by an ``asyncio.Lock``

The Supabase-backed implementation lives in ``src.database``.
"""

import abc
import asyncio
import logging
from typing import Any, Dict, Optional

from src.exceptions import InvalidSessionStateError, SessionNotFoundError
from src.logging.models import LogEntry
from src.models import (
    ExecutionPlan,
    GeneratedAsset,
    NodeState,
    NodeStatus,
    Session,
    SessionStatus,
)
from src.utils import epoch_ms

logger = logging.getLogger(__name__)


# =============================================================================
# INTERFACE
# =============================================================================


class SessionStore(abc.ABC):
    """Async document store holding one document per session.

    Every mutating method raises :class:`SessionNotFoundError` when the
    session does not exist; none of them creates a session implicitly.
    """

    @abc.abstractmethod
    async def create_session(self, session_id: str, intent: str) -> Session:
        """Persist a new ``started`` session with every node ``idle``."""

    @abc.abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Return a snapshot of the session, or ``None`` if unknown."""

    @abc.abstractmethod
    async def update_node(
        self,
        session_id: str,
        node_id: str,
        status: NodeStatus,
        progress: int,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        """Update one node entry's status fields (field-path scoped)."""

    @abc.abstractmethod
    async def append_log(self, session_id: str, entry: LogEntry) -> None:
        """Append one entry to the session's ``logs`` array."""

    @abc.abstractmethod
    async def append_asset(self, session_id: str, asset: GeneratedAsset) -> None:
        """Append one asset to the session's ``assets`` array."""

    @abc.abstractmethod
    async def set_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        final_result: Optional[str] = None,
        error: Optional[str] = None,
        expected: Optional[SessionStatus] = None,
    ) -> None:
        """Move the session to *status*.

        Args:
            session_id: Target session.
            status: New status; must be a legal transition from the current
                one (see :meth:`SessionStatus.can_transition_to`).
            final_result: Written together with ``completed``.
            error: Written together with ``error``.
            expected: When given, the transition only happens if the session
                is currently in this status (compare-and-set).

        Raises:
            SessionNotFoundError: Unknown session.
            InvalidSessionStateError: Illegal transition or ``expected``
                mismatch.
        """

    @abc.abstractmethod
    async def set_execution_plan(
        self,
        session_id: str,
        plan: ExecutionPlan,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record the plan (once) and merge *metadata* into the session."""


# =============================================================================
# IN-MEMORY IMPLEMENTATION
# =============================================================================


class InMemorySessionStore(SessionStore):
    """Process-local store for the demo server and tests.

    All mutations go through one ``asyncio.Lock``, so the store behaves as a
    single writer that serializes update messages from concurrent node
    tasks.  Reads return deep copies; callers never hold a live reference
    into the store.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = asyncio.Lock()

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def create_session(self, session_id: str, intent: str) -> Session:
        async with self._lock:
            if session_id in self._sessions:
                raise InvalidSessionStateError(session_id, "exists", "absent")
            session = Session.new(session_id, intent)
            self._sessions[session_id] = session
            return session.copy()

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.copy() if session is not None else None

    async def update_node(
        self,
        session_id: str,
        node_id: str,
        status: NodeStatus,
        progress: int,
        output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        async with self._lock:
            session = self._require(session_id)
            state = session.nodes.get(node_id)
            if state is None:
                state = NodeState(id=node_id, name=node_id)
                session.nodes[node_id] = state
            state.status = status
            state.progress = progress
            state.updated_at = epoch_ms()
            if output is not None:
                state.output = output
            if error is not None:
                state.error = error

    async def append_log(self, session_id: str, entry: LogEntry) -> None:
        async with self._lock:
            self._require(session_id).logs.append(entry)

    async def append_asset(self, session_id: str, asset: GeneratedAsset) -> None:
        async with self._lock:
            self._require(session_id).assets.append(asset)

    async def set_session_status(
        self,
        session_id: str,
        status: SessionStatus,
        final_result: Optional[str] = None,
        error: Optional[str] = None,
        expected: Optional[SessionStatus] = None,
    ) -> None:
        async with self._lock:
            session = self._require(session_id)
            current = session.status
            if expected is not None and current is not expected:
                raise InvalidSessionStateError(
                    session_id, current.value, expected.value
                )
            if not current.can_transition_to(status):
                raise InvalidSessionStateError(session_id, current.value, status.value)

            session.status = status
            if status is SessionStatus.COMPLETED:
                session.final_result = final_result
                session.completed_at = epoch_ms()
            elif status is SessionStatus.ERROR:
                session.error = error
                session.failed_at = epoch_ms()

    async def set_execution_plan(
        self,
        session_id: str,
        plan: ExecutionPlan,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self._lock:
            session = self._require(session_id)
            if session.execution_plan is not None:
                raise InvalidSessionStateError(
                    session_id, "plan recorded", "no plan recorded"
                )
            session.execution_plan = ExecutionPlan.from_dict(plan.to_dict())
            if metadata:
                session.metadata.update(metadata)

    def __len__(self) -> int:
        return len(self._sessions)


__all__ = ["SessionStore", "InMemorySessionStore"]
