"""
Campaign Orchestrator -- the boundary operations of the orchestration core.

Provides:
    - CampaignOrchestrator: ``start``, ``resume``, ``submit_resume``,
      ``get_session``, ``evaluate_ab_test``
    - build_orchestrator(): wires real clients from ``Settings``
    - synthetic_performance(): the projection metadata shown by the console

Lifecycle
---------
``start(intent)`` creates the session, plans, stores the plan and returns at
``awaiting_approval``.  Nothing runs until ``resume`` is called with an
approval.  ``resume`` moves the session to ``running`` with a
compare-and-set on ``awaiting_approval`` and then drives the
:class:`SessionStateMachine` graph.  ``submit_resume`` validates the request
up front and runs ``resume`` as a tracked background task.

Every collaborator is passed in; nothing here reaches for a module-level
client.

Usage::

    orchestrator = await build_orchestrator()
    session_id = await orchestrator.start("Launch a productivity app")
    await orchestrator.submit_resume(session_id, ApprovalData(approved=True))
"""

import asyncio
import logging
import random
from typing import Any, Dict, Optional, Set

from src.config import Settings, get_settings
from src.database import SupabaseConfig, get_db
from src.evaluation import ABTestEvaluator
from src.exceptions import (
    InvalidSessionStateError,
    SessionNotFoundError,
    ValidationError,
)
from src.logging.audit_file import AuditFileWriter
from src.logging.session_logger import SessionLogger
from src.memory_bank import (
    InMemoryMemoryBank,
    MemoryBank,
    SupabaseMemoryBank,
    tags_for_intent,
)
from src.models import (
    ABResult,
    ApprovalData,
    MemoryEntry,
    MemoryType,
    NodeId,
    NodeStatus,
    Session,
    SessionStatus,
)
from src.nodes import NodeExecutor, NodeRegistry, build_node_registry
from src.planning import PlanEnrichment, PlanGenerator, UseDefault
from src.session_store import InMemorySessionStore, SessionStore
from src.state_machine import SessionStateMachine
from src.storage import build_blob_store
from src.tools.claude_client import ClaudeClient
from src.tools.nano_banana import NanoBananaClient
from src.tools.perplexity import PerplexityClient
from src.tools.speech import SpeechClient
from src.tools.veo import VeoClient
from src.utils import generate_id

logger = logging.getLogger(__name__)

ORCHESTRATOR_ID = NodeId.ORCHESTRATOR.value
REJECTED_MESSAGE = "Execution plan rejected by reviewer"


def synthetic_performance(rng: Optional[random.Random] = None) -> Dict[str, str]:
    """Projected campaign KPIs for the console's performance panel.

    Values are illustrative and flat (string -> string), matching what the
    console renders.
    """
    rng = rng or random.Random()
    return {
        "reach": f"{rng.uniform(0.8, 2.4):.1f}M",
        "engagement": f"{rng.uniform(3.0, 9.0):.1f}%",
        "roi": f"{rng.uniform(2.0, 6.0):.1f}x",
        "spendOpt": f"{rng.randint(10, 35)}%",
        "reachChange": f"+{rng.randint(5, 40)}%",
        "engagementChange": f"+{rng.uniform(0.5, 4.0):.1f}%",
        "roiChange": f"+{rng.uniform(0.2, 1.5):.1f}x",
        "spendChange": f"-{rng.randint(5, 20)}%",
    }


class CampaignOrchestrator:
    """Entry points the HTTP layer and the Telegram runner call.

    Args:
        store: Session document store.
        planner: Plan Generator.
        registry: Node id -> node.
        memory_bank: Cross-session memory (enrichment and insights).
        evaluator: A/B evaluator.
        audit: Optional JSON-lines mirror for session log entries.
    """

    def __init__(
        self,
        store: SessionStore,
        planner: PlanGenerator,
        registry: NodeRegistry,
        memory_bank: Optional[MemoryBank] = None,
        evaluator: Optional[ABTestEvaluator] = None,
        audit: Optional[AuditFileWriter] = None,
    ) -> None:
        self.store = store
        self.planner = planner
        self.registry = registry
        self.memory_bank = memory_bank
        self.evaluator = evaluator
        self.audit = audit
        self.executor = NodeExecutor(store)
        self.state_machine = SessionStateMachine(
            store, registry, self.executor, memory_bank=memory_bank, audit=audit
        )
        self._pending_tasks: Set[asyncio.Task] = set()

    def session_log(self, session_id: str, source: str = ORCHESTRATOR_ID) -> SessionLogger:
        return SessionLogger(self.store, session_id, source, self.audit)

    # =========================================================================
    # START
    # =========================================================================

    async def start(self, intent: str) -> str:
        """Create a session, plan it and stop at ``awaiting_approval``.

        Returns:
            The new session id.  A failure after the session exists marks it
            ``error``; the id is still returned so the console can show it.

        Raises:
            ValidationError: Blank intent.
        """
        if not isinstance(intent, str) or not intent.strip():
            raise ValidationError("'intent' required (string)")

        session_id = generate_id()
        await self.store.create_session(session_id, intent)
        log = self.session_log(session_id)
        await log.system(f"[SN-00] Orchestration started. Session: {session_id}")

        try:
            await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.RUNNING, 10)
            await log.system("[SN-00] Loading brand guidance and campaign memory...")
            enrichment = await self._load_enrichment(intent)

            await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.RUNNING, 15)
            await log.system("[SN-00] Intent analysis with extended thinking...")
            result = await self.planner.plan(intent, enrichment, log=log)
            plan = result.plan
            if isinstance(result, UseDefault):
                await log.warning(f"[SN-00] Using default plan: {result.reason}")

            await log.system(
                f"[SN-00] Plan: Phase 1 (parallel): [{', '.join(plan.parallel_phase_1)}] "
                f"-> Phase 2: [{', '.join(plan.sequential_phase_2)}]"
            )
            await self.store.update_node(session_id, ORCHESTRATOR_ID, NodeStatus.RUNNING, 30)
            await self.store.set_execution_plan(
                session_id, plan, metadata=synthetic_performance()
            )
            await self.store.set_session_status(
                session_id, SessionStatus.AWAITING_APPROVAL, expected=SessionStatus.STARTED
            )
            await log.system("[SN-00] Plan ready. Awaiting approval.")
        except Exception as exc:
            await self._fail(session_id, f"{type(exc).__name__}: {exc}")

        return session_id

    async def _load_enrichment(self, intent: str) -> PlanEnrichment:
        if self.memory_bank is None:
            return PlanEnrichment()
        return PlanEnrichment(
            brand_guidance=await self.memory_bank.get_brand_guidance(),
            insights=await self.memory_bank.query_insights(tags_for_intent(intent)),
        )

    async def _fail(self, session_id: str, message: str) -> None:
        logger.error("Session %s failed: %s", session_id, message)
        try:
            await self.store.set_session_status(session_id, SessionStatus.ERROR, error=message)
        except Exception as exc:
            logger.error("Could not record failure of session %s: %s", session_id, exc)
        await self.session_log(session_id).error(f"[SN-00] FAILED: {message}")

    # =========================================================================
    # RESUME
    # =========================================================================

    async def prepare_resume(self, session_id: str) -> Session:
        """Check a resume request without mutating anything.

        Raises:
            ValidationError: Missing session id.
            SessionNotFoundError: Unknown session.
            InvalidSessionStateError: Session is not ``awaiting_approval``.
        """
        if not session_id:
            raise ValidationError("'sessionId' required")

        session = await self.store.get_session(session_id)
        if session is None:
            logger.error("Resume requested for unknown session %s", session_id)
            raise SessionNotFoundError(session_id)
        if session.status is not SessionStatus.AWAITING_APPROVAL:
            raise InvalidSessionStateError(
                session_id, session.status.value, SessionStatus.AWAITING_APPROVAL.value
            )
        return session

    async def resume(self, session_id: str, approval: ApprovalData) -> None:
        """Apply the reviewer's decision and, if approved, run both phases.

        The ``awaiting_approval -> running`` step is a compare-and-set, so a
        second resume for the same session fails before any node runs.
        """
        session = await self.prepare_resume(session_id)
        log = self.session_log(session_id)

        if not approval.approved:
            await self.store.set_session_status(
                session_id,
                SessionStatus.ERROR,
                error=REJECTED_MESSAGE,
                expected=SessionStatus.AWAITING_APPROVAL,
            )
            await log.warning(f"[SN-00] {REJECTED_MESSAGE}.")
            await self._remember_feedback(session, approval.feedback)
            return

        await self.store.set_session_status(
            session_id, SessionStatus.RUNNING, expected=SessionStatus.AWAITING_APPROVAL
        )
        await log.system("[SN-00] Plan approved. Execution started.")
        await self._remember_feedback(session, approval.feedback)
        await self.state_machine.run(session_id)

    async def submit_resume(self, session_id: str, approval: ApprovalData) -> asyncio.Task:
        """Validate now, run ``resume`` in the background.

        Raises the same errors as :meth:`prepare_resume`; once the task is
        scheduled its failures are logged by the done-callback.
        """
        await self.prepare_resume(session_id)

        task = asyncio.create_task(
            self.resume(session_id, approval), name=f"resume-{session_id}"
        )
        self._pending_tasks.add(task)
        task.add_done_callback(self._on_resume_done)
        return task

    def _on_resume_done(self, task: asyncio.Task) -> None:
        self._pending_tasks.discard(task)
        if task.cancelled():
            logger.warning("Background %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background %s failed: %s: %s",
                task.get_name(),
                type(exc).__name__,
                exc,
            )

    async def wait_for_pending(self) -> None:
        """Wait for every scheduled resume task (shutdown, tests)."""
        if self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    async def _remember_feedback(self, session: Session, feedback: Optional[str]) -> None:
        """Archive reviewer feedback as memory for future plans; best-effort."""
        if self.memory_bank is None or not feedback:
            return
        entry = MemoryEntry(
            type=MemoryType.FEEDBACK,
            content=feedback,
            source_session_id=session.session_id,
            relevance_tags=tags_for_intent(session.intent),
        )
        try:
            await self.memory_bank.save_insight(
                entry, log=self.session_log(session.session_id)
            )
        except Exception as exc:
            logger.warning("Feedback archive failed: %s", exc)

    # =========================================================================
    # READS AND SIDE CAPABILITIES
    # =========================================================================

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.store.get_session(session_id)

    async def evaluate_ab_test(
        self, asset_a: Dict[str, Any], asset_b: Dict[str, Any]
    ) -> Optional[ABResult]:
        if self.evaluator is None:
            return None
        return await self.evaluator.evaluate(asset_a, asset_b)

    @property
    def pending_count(self) -> int:
        return len(self._pending_tasks)


# =============================================================================
# WIRING
# =============================================================================


async def build_orchestrator(settings: Optional[Settings] = None) -> CampaignOrchestrator:
    """Build an orchestrator with real clients for the configured backend."""
    settings = settings or get_settings()
    media = settings.media
    models = settings.models

    if settings.storage.backend == "supabase":
        db = await get_db()
        store: SessionStore = db
        memory_bank: MemoryBank = SupabaseMemoryBank(db)
        client, supabase_url = db.client, SupabaseConfig.from_env().url
    else:
        store = InMemorySessionStore()
        memory_bank = InMemoryMemoryBank()
        client, supabase_url = None, None
    blob_store = build_blob_store(
        settings.storage.backend,
        client=client,
        supabase_url=supabase_url,
        bucket=settings.storage.bucket,
        local_dir=settings.storage.local_dir,
    )
    memory_bank.insight_limit = settings.insight_limit

    claude = ClaudeClient(
        model=models.text_model,
        thinking_model=models.planning_model,
        thinking_budget_tokens=models.thinking_budget_tokens,
    )
    registry = build_node_registry(
        text_llm=claude,
        grounded=PerplexityClient(model=models.grounded_model),
        image_client=NanoBananaClient(
            model=media.image_model, size=media.image_size, style=media.image_style
        ),
        video_client=VeoClient(
            model=media.video_model,
            aspect_ratio=media.video_aspect_ratio,
            poll_attempts=media.video_poll_attempts,
            poll_interval=media.video_poll_interval,
        ),
        blob_store=blob_store,
        speech_client=(
            SpeechClient(model=media.speech_model, voice=media.speech_voice)
            if media.voiceover_enabled
            else None
        ),
    )
    audit = AuditFileWriter(settings.log_dir) if settings.audit_log_enabled else None

    logger.info(
        "Orchestrator ready: backend=%s nodes=%s",
        settings.storage.backend,
        ", ".join(registry),
    )
    return CampaignOrchestrator(
        store=store,
        planner=PlanGenerator(claude, trace_chars=settings.reasoning_trace_chars),
        registry=registry,
        memory_bank=memory_bank,
        evaluator=ABTestEvaluator(claude),
        audit=audit,
    )


__all__ = [
    "CampaignOrchestrator",
    "build_orchestrator",
    "synthetic_performance",
    "REJECTED_MESSAGE",
]
