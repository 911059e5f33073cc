"""
Session State Machine -- resume-side execution graph.

Runs an approved plan as a LangGraph state machine:

    load_session -> phase_1 -> phase_2 -> finalize -> END

Every edge is error-aware: a node that raises is converted by
``@with_error_handling`` into ``{"critical_error": ...}`` and the router
sends the graph to ``handle_error``, which marks the session ``error`` and
terminates.

Key design decisions
--------------------
- **Phase barrier**: each phase is one ``asyncio.gather`` over its nodes;
  phase 2 starts only after every phase-1 execution has resolved.
- **Containment**: node failures are absorbed by ``NodeExecutor`` and never
  reach ``critical_error``.  Only store or orchestration failures do.
- **Context**: phase-2 nodes each receive a copy of the successful phase-1
  outputs; failed phase-1 nodes are absent from it.
- **Lenient plans**: identifiers missing from the node registry are logged
  as warnings and skipped.

The caller (``CampaignOrchestrator.resume``) moves the session to
``running`` before invoking the graph.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from langgraph.graph import END, StateGraph

from src.exceptions import SessionNotFoundError
from src.logging.audit_file import AuditFileWriter
from src.logging.session_logger import SessionLogger
from src.memory_bank import MemoryBank, tags_for_intent
from src.models import (
    MemoryEntry,
    MemoryType,
    NodeId,
    NodeOutput,
    NodeStatus,
    SessionGraphState,
    SessionStatus,
    default_plan,
)
from src.nodes import CampaignNode, NodeContext, NodeExecutor, NodeRegistry
from src.session_store import SessionStore
from src.utils import truncate

logger = logging.getLogger(__name__)

ORCHESTRATOR_ID = NodeId.ORCHESTRATOR.value


# =============================================================================
# DECORATORS
# =============================================================================


def with_error_handling(node_name: Optional[str] = None):
    """Convert unhandled graph-node exceptions into ``critical_error`` updates.

    The conditional edges check ``state.get("critical_error")`` and route to
    ``handle_error`` when present, so no exception silently kills the graph.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            name = node_name or func.__name__
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                error_msg = f"{type(exc).__name__}: {exc}"
                logger.error(
                    "[%s] Exception caught, routing to error handler: %s",
                    name,
                    error_msg,
                )
                return {"critical_error": error_msg, "error_stage": name}

        return wrapper

    return decorator


def make_error_aware_router(next_node: str):
    """Return ``handle_error`` if ``critical_error`` is set, else *next_node*."""

    def router(state: SessionGraphState) -> str:
        if state.get("critical_error"):
            return "handle_error"
        return next_node

    return router


# =============================================================================
# STATE MACHINE
# =============================================================================


class SessionStateMachine:
    """Executes an approved session's plan.

    Args:
        store: Session store; every write is field-scoped or an append.
        registry: Node id -> node.
        executor: Lifecycle wrapper shared by all nodes.
        memory_bank: Optional; receives an insight when a session completes.
        audit: Optional JSON-lines mirror for session log entries.
    """

    def __init__(
        self,
        store: SessionStore,
        registry: NodeRegistry,
        executor: NodeExecutor,
        memory_bank: Optional[MemoryBank] = None,
        audit: Optional[AuditFileWriter] = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.executor = executor
        self.memory_bank = memory_bank
        self.audit = audit
        self.graph = self._build_graph()

    def session_log(self, session_id: str, source: str = ORCHESTRATOR_ID) -> SessionLogger:
        return SessionLogger(self.store, session_id, source, self.audit)

    async def run(self, session_id: str) -> SessionGraphState:
        """Run the graph for one session and return the final graph state."""
        initial: SessionGraphState = {
            "session_id": session_id,
            "phase1_results": {},
            "phase2_results": {},
            "critical_error": None,
            "error_stage": None,
        }
        return await self.graph.ainvoke(initial)

    # -------------------------------------------------------------------------
    # Graph nodes
    # -------------------------------------------------------------------------

    @with_error_handling("load_session")
    async def load_session(self, state: SessionGraphState) -> Dict[str, Any]:
        session_id = state["session_id"]
        session = await self.store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        plan = session.execution_plan
        if plan is None:
            plan = default_plan()
            await self.session_log(session_id).warning(
                "[SN-00] No execution plan recorded, falling back to the default plan."
            )
        return {"intent": session.intent, "plan": plan}

    @with_error_handling("phase_1")
    async def run_phase_1(self, state: SessionGraphState) -> Dict[str, Any]:
        session_id = state["session_id"]
        await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.RUNNING, 30)

        results = await self._run_phase(
            session_id, state["intent"], state["plan"].parallel_phase_1, previous={}
        )
        await self.session_log(session_id).system("[SN-00] Phase 1 complete.")
        return {"phase1_results": results}

    @with_error_handling("phase_2")
    async def run_phase_2(self, state: SessionGraphState) -> Dict[str, Any]:
        session_id = state["session_id"]
        await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.RUNNING, 70)

        results = await self._run_phase(
            session_id,
            state["intent"],
            state["plan"].sequential_phase_2,
            previous=state.get("phase1_results") or {},
        )
        await self.session_log(session_id).system("[SN-00] Phase 2 complete.")
        return {"phase2_results": results}

    @with_error_handling("finalize")
    async def finalize(self, state: SessionGraphState) -> Dict[str, Any]:
        session_id = state["session_id"]
        plan = state["plan"]

        await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.COMPLETED, 100)
        final_result = (
            f"Orchestration complete. Session: {session_id}. "
            f"Nodes: {', '.join(plan.node_ids)}"
        )
        await self.store.set_session_status(
            session_id, SessionStatus.COMPLETED, final_result=final_result
        )
        log = self.session_log(session_id)
        await log.success("[SN-00] ORCHESTRATION COMPLETE.")

        await self._archive_insight(state, log)
        return {"final_result": final_result}

    async def handle_error(self, state: SessionGraphState) -> Dict[str, Any]:
        """Record a session-level failure; never raises."""
        session_id = state["session_id"]
        message = state.get("critical_error") or "Unknown error"
        logger.error(
            "Session %s failed at stage '%s': %s",
            session_id,
            state.get("error_stage"),
            message,
        )
        try:
            await self.store.set_session_status(session_id, SessionStatus.ERROR, error=message)
            await self.store.update_node(
                session_id, ORCHESTRATOR_ID, NodeStatus.ERROR, 0, error=message
            )
        except Exception as exc:
            logger.error(
                "Could not record failure of session %s: %s: %s",
                session_id,
                type(exc).__name__,
                exc,
            )
        await self.session_log(session_id).error(f"[SN-00] FAILED: {message}")
        return {}

    # -------------------------------------------------------------------------
    # Phase execution
    # -------------------------------------------------------------------------

    async def _run_phase(
        self,
        session_id: str,
        intent: str,
        node_ids: List[str],
        previous: Dict[str, str],
    ) -> Dict[str, str]:
        """Run *node_ids* concurrently; return successful outputs by node id."""
        nodes: List[CampaignNode] = []
        for node_id in node_ids:
            node = self.registry.get(node_id)
            if node is None:
                await self.session_log(session_id).warning(
                    f"[SN-00] Unknown node '{node_id}' in plan, skipped."
                )
                continue
            nodes.append(node)

        outcomes = await asyncio.gather(
            *(self._run_node(session_id, intent, node, previous) for node in nodes),
            return_exceptions=True,
        )

        # Only store failures reach here; siblings have all resolved.
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        return {
            node.node_id.value: output.data
            for node, output in zip(nodes, outcomes)
            if output.success
        }

    async def _run_node(
        self,
        session_id: str,
        intent: str,
        node: CampaignNode,
        previous: Dict[str, str],
    ) -> NodeOutput:
        node_id = node.node_id.value
        context = NodeContext(
            session_id=session_id,
            intent=intent,
            log=self.session_log(session_id, node_id),
            previous_outputs=dict(previous),
        )
        output = await self.executor.execute(node, context)
        if output.success:
            await self.store.append_asset(session_id, output.to_asset(node_id))
        return output

    async def _archive_insight(self, state: SessionGraphState, log: SessionLogger) -> None:
        if self.memory_bank is None:
            return
        delivered = [*state.get("phase1_results", {}), *state.get("phase2_results", {})]
        planned = state["plan"].node_ids
        entry = MemoryEntry(
            type=MemoryType.INSIGHT,
            content=(
                f"Campaign '{truncate(state['intent'], 80)}' delivered "
                f"{len(delivered)}/{len(planned)} assets ({', '.join(delivered) or 'none'})."
            ),
            source_session_id=state["session_id"],
            relevance_tags=tags_for_intent(state["intent"]),
        )
        try:
            await self.memory_bank.save_insight(entry, log=log)
        except Exception as exc:
            logger.warning("Insight archive failed: %s: %s", type(exc).__name__, exc)

    # -------------------------------------------------------------------------
    # Graph construction
    # -------------------------------------------------------------------------

    def _build_graph(self) -> Any:
        workflow = StateGraph(SessionGraphState)

        workflow.add_node("load_session", self.load_session)
        workflow.add_node("phase_1", self.run_phase_1)
        workflow.add_node("phase_2", self.run_phase_2)
        workflow.add_node("finalize", self.finalize)
        workflow.add_node("handle_error", self.handle_error)

        workflow.set_entry_point("load_session")

        workflow.add_conditional_edges(
            "load_session",
            make_error_aware_router("phase_1"),
            {"phase_1": "phase_1", "handle_error": "handle_error"},
        )
        workflow.add_conditional_edges(
            "phase_1",
            make_error_aware_router("phase_2"),
            {"phase_2": "phase_2", "handle_error": "handle_error"},
        )
        workflow.add_conditional_edges(
            "phase_2",
            make_error_aware_router("finalize"),
            {"finalize": "finalize", "handle_error": "handle_error"},
        )
        workflow.add_conditional_edges(
            "finalize",
            make_error_aware_router(END),
            {END: END, "handle_error": "handle_error"},
        )

        # Error handler always terminates
        workflow.add_edge("handle_error", END)

        return workflow.compile()


__all__ = [
    "SessionStateMachine",
    "with_error_handling",
    "make_error_aware_router",
]
