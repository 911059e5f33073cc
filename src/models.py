"""
Centralized shared data types for the Campaign Orchestrator.

This module is THE single source of truth for the session document and the
values flowing between the planner, the node executor and the session state
machine.  Every type serializes to the camelCase JSON document the console
polls via ``to_dict()`` and reads back via ``from_dict()``.

Hierarchy of types
------------------
- **Enums**: ``NodeId``, ``SessionStatus``, ``NodeStatus``, ``AssetType``,
  ``MemoryType``
- **Plan**: ``ExecutionPlan`` and ``default_plan()``
- **Session document**: ``NodeState``, ``ImageData``, ``GeneratedAsset``,
  ``Session`` (logs use ``src.logging.models.LogEntry``)
- **Node I/O**: ``NodeOutput``
- **Auxiliary**: ``MemoryEntry``, ``ApprovalData``, ``ABMetrics``, ``ABResult``
- **State machine**: ``SessionGraphState`` (``TypedDict``)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

from src.exceptions import ValidationError
from src.logging.models import LogEntry, LogLevel
from src.utils import epoch_ms, generate_entry_id


# =============================================================================
# ENUMS
# =============================================================================


class NodeId(str, Enum):
    """Fixed node identifiers.

    Four work nodes plus ``SN-00``, the orchestrator itself, which is used
    only for coarse session-level progress reporting.
    """

    ORCHESTRATOR = "SN-00"
    STRATEGIST = "SP-01"
    AUDITOR = "RA-01"
    VIDEO_DIRECTOR = "CC-06"
    DESIGN_ARCHITECT = "DA-03"


NODE_NAMES: Dict[NodeId, str] = {
    NodeId.ORCHESTRATOR: "Orchestrator",
    NodeId.STRATEGIST: "Campaign Strategist",
    NodeId.AUDITOR: "Authority Auditor",
    NodeId.VIDEO_DIRECTOR: "Video Director",
    NodeId.DESIGN_ARCHITECT: "Design Architect",
}

WORK_NODE_IDS: List[NodeId] = [
    NodeId.STRATEGIST,
    NodeId.AUDITOR,
    NodeId.VIDEO_DIRECTOR,
    NodeId.DESIGN_ARCHITECT,
]


class SessionStatus(str, Enum):
    """Session lifecycle.

    ``started -> awaiting_approval -> running -> completed``; ``error`` is
    reachable from every non-terminal status. ``completed`` and ``error``
    are terminal.
    """

    STARTED = "started"
    AWAITING_APPROVAL = "awaiting_approval"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)

    def can_transition_to(self, target: "SessionStatus") -> bool:
        """Return ``True`` if moving from this status to *target* is legal."""
        if self.is_terminal:
            return False
        if target is SessionStatus.ERROR:
            return True
        return _NEXT_STATUS.get(self) is target


_NEXT_STATUS: Dict[SessionStatus, SessionStatus] = {
    SessionStatus.STARTED: SessionStatus.AWAITING_APPROVAL,
    SessionStatus.AWAITING_APPROVAL: SessionStatus.RUNNING,
    SessionStatus.RUNNING: SessionStatus.COMPLETED,
}


class NodeStatus(str, Enum):
    """Per-node status within one session."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (NodeStatus.COMPLETED, NodeStatus.ERROR)


class AssetType(str, Enum):
    """Kinds of generated work product."""

    STRATEGY = "strategy"
    RESEARCH_REPORT = "research_report"
    VIDEO_PROMPT = "video_prompt"
    DESIGN_BLUEPRINT = "design_blueprint"


FAILURE_ASSET_TYPE = "error"
"""``asset_type`` carried by a failed ``NodeOutput``; never persisted as an asset."""


class MemoryType(str, Enum):
    INSIGHT = "insight"
    FEEDBACK = "feedback"
    FACT = "fact"


# =============================================================================
# EXECUTION PLAN
# =============================================================================


@dataclass
class ExecutionPlan:
    """Node-to-phase assignment for one session.

    Serializes to exactly ``{"parallel_phase_1": [...],
    "sequential_phase_2": [...]}`` (plus ``summary`` when present), the shape
    persisted across the approval pause.  Identifiers are kept as plain
    strings because a model-derived plan may name nodes that do not exist.
    """

    parallel_phase_1: List[str]
    sequential_phase_2: List[str]
    summary: Optional[str] = None

    @property
    def node_ids(self) -> List[str]:
        """All identifiers in execution order (phase 1 first)."""
        return [*self.parallel_phase_1, *self.sequential_phase_2]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "parallel_phase_1": list(self.parallel_phase_1),
            "sequential_phase_2": list(self.sequential_phase_2),
        }
        if self.summary:
            data["summary"] = self.summary
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionPlan":
        return cls(
            parallel_phase_1=list(data["parallel_phase_1"]),
            sequential_phase_2=list(data["sequential_phase_2"]),
            summary=data.get("summary"),
        )


def default_plan() -> ExecutionPlan:
    """The fixed fallback plan: strategy and research, then video and design."""
    return ExecutionPlan(
        parallel_phase_1=[NodeId.STRATEGIST.value, NodeId.AUDITOR.value],
        sequential_phase_2=[
            NodeId.VIDEO_DIRECTOR.value,
            NodeId.DESIGN_ARCHITECT.value,
        ],
    )


# =============================================================================
# SESSION DOCUMENT
# =============================================================================


@dataclass
class NodeState:
    """Execution status of one node within a session."""

    id: str
    name: str
    status: NodeStatus = NodeStatus.IDLE
    progress: int = 0
    output: Optional[str] = None
    error: Optional[str] = None
    updated_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "progress": self.progress,
        }
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeState":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            status=NodeStatus(data.get("status", NodeStatus.IDLE.value)),
            progress=int(data.get("progress", 0)),
            output=data.get("output"),
            error=data.get("error"),
            updated_at=data.get("updatedAt"),
        )


@dataclass(frozen=True)
class ImageData:
    """Pointer to externally stored media plus the prompt that produced it."""

    url: str
    prompt: str
    mime_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"url": self.url, "prompt": self.prompt}
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageData":
        return cls(
            url=data["url"],
            prompt=data["prompt"],
            mime_type=data.get("mimeType"),
        )


@dataclass(frozen=True)
class GeneratedAsset:
    """Immutable work product appended once per successful node."""

    type: str
    title: str
    content: str
    generated_by: str
    id: str = field(default_factory=generate_entry_id)
    created_at: int = field(default_factory=epoch_ms)
    image_data: Optional[ImageData] = None
    sources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "content": self.content,
            "generatedBy": self.generated_by,
            "createdAt": self.created_at,
        }
        # Absent rather than null so the console can test for presence
        if self.image_data is not None:
            data["imageData"] = self.image_data.to_dict()
        if self.sources:
            data["sources"] = list(self.sources)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneratedAsset":
        image = data.get("imageData")
        return cls(
            id=data["id"],
            type=data["type"],
            title=data["title"],
            content=data["content"],
            generated_by=data["generatedBy"],
            created_at=int(data["createdAt"]),
            image_data=ImageData.from_dict(image) if image else None,
            sources=list(data.get("sources") or []),
        )


@dataclass
class Session:
    """Root aggregate of one orchestration run.

    ``final_result`` and ``error`` are mutually exclusive terminal payloads;
    ``logs`` and ``assets`` are append-only.
    """

    session_id: str
    intent: str
    status: SessionStatus = SessionStatus.STARTED
    execution_plan: Optional[ExecutionPlan] = None
    nodes: Dict[str, NodeState] = field(default_factory=dict)
    logs: List[LogEntry] = field(default_factory=list)
    assets: List[GeneratedAsset] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    final_result: Optional[str] = None
    error: Optional[str] = None
    created_at: int = field(default_factory=epoch_ms)
    completed_at: Optional[int] = None
    failed_at: Optional[int] = None

    @classmethod
    def new(cls, session_id: str, intent: str) -> "Session":
        """Create a ``started`` session with every known node ``idle``."""
        nodes = {
            node_id.value: NodeState(id=node_id.value, name=NODE_NAMES[node_id])
            for node_id in NodeId
        }
        return cls(session_id=session_id, intent=intent, nodes=nodes)

    def node(self, node_id: str) -> NodeState:
        return self.nodes[node_id]

    def logs_from(self, source: str) -> List[LogEntry]:
        """Entries written by one source, in append order."""
        return [entry for entry in self.logs if entry.source == source]

    def copy(self) -> "Session":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sessionId": self.session_id,
            "intent": self.intent,
            "status": self.status.value,
            "nodes": {key: state.to_dict() for key, state in self.nodes.items()},
            "logs": [entry.to_dict() for entry in self.logs],
            "assets": [asset.to_dict() for asset in self.assets],
            "metadata": copy.deepcopy(self.metadata),
            "createdAt": self.created_at,
        }
        if self.execution_plan is not None:
            data["executionPlan"] = self.execution_plan.to_dict()
        if self.final_result is not None:
            data["finalResult"] = self.final_result
        if self.error is not None:
            data["error"] = self.error
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.failed_at is not None:
            data["failedAt"] = self.failed_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        plan = data.get("executionPlan")
        return cls(
            session_id=data["sessionId"],
            intent=data["intent"],
            status=SessionStatus(data["status"]),
            execution_plan=ExecutionPlan.from_dict(plan) if plan else None,
            nodes={
                key: NodeState.from_dict({"id": key, **value})
                for key, value in (data.get("nodes") or {}).items()
            },
            logs=[LogEntry.from_dict(item) for item in data.get("logs") or []],
            assets=[
                GeneratedAsset.from_dict(item) for item in data.get("assets") or []
            ],
            metadata=dict(data.get("metadata") or {}),
            final_result=data.get("finalResult"),
            error=data.get("error"),
            created_at=int(data.get("createdAt") or 0),
            completed_at=data.get("completedAt"),
            failed_at=data.get("failedAt"),
        )


# =============================================================================
# NODE I/O
# =============================================================================


@dataclass
class NodeOutput:
    """Result of one node execution.

    On failure ``data`` holds the error message, ``asset_type`` is
    ``FAILURE_ASSET_TYPE`` and nothing is appended to the session's assets.
    """

    success: bool
    data: str
    asset_type: str
    asset_title: str
    sources: List[str] = field(default_factory=list)
    image_data: Optional[ImageData] = None

    @classmethod
    def failure(cls, node_id: str, message: str) -> "NodeOutput":
        return cls(
            success=False,
            data=message,
            asset_type=FAILURE_ASSET_TYPE,
            asset_title=f"{node_id} Error",
        )

    def to_asset(self, node_id: str) -> GeneratedAsset:
        """Build the session asset for a successful output."""
        return GeneratedAsset(
            type=self.asset_type,
            title=self.asset_title,
            content=self.data,
            generated_by=node_id,
            image_data=self.image_data,
            sources=list(self.sources),
        )


# =============================================================================
# AUXILIARY MODELS
# =============================================================================


@dataclass
class MemoryEntry:
    """Cross-session memory record used as planning context."""

    type: MemoryType
    content: str
    source_session_id: str
    relevance_tags: List[str] = field(default_factory=list)
    created_at: int = field(default_factory=epoch_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "content": self.content,
            "sourceSessionId": self.source_session_id,
            "relevanceTags": list(self.relevance_tags),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryEntry":
        return cls(
            type=MemoryType(data["type"]),
            content=data["content"],
            source_session_id=data.get("sourceSessionId", ""),
            relevance_tags=list(data.get("relevanceTags") or []),
            created_at=int(data.get("createdAt") or 0),
        )


@dataclass
class ApprovalData:
    """Reviewer decision passed to ``resume``."""

    approved: bool
    feedback: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalData":
        """Parse a resume payload.

        Raises:
            ValidationError: ``approved`` is missing or not a boolean, or
                ``feedback`` is not a string.
        """
        approved = data.get("approved")
        if not isinstance(approved, bool):
            raise ValidationError("'approvalData.approved' must be a boolean")
        feedback = data.get("feedback")
        if feedback is not None and not isinstance(feedback, str):
            raise ValidationError("'approvalData.feedback' must be a string")
        return cls(approved=approved, feedback=feedback)


@dataclass
class ABMetrics:
    ctr: float
    engagement: float
    conversion: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "ctr": self.ctr,
            "engagement": self.engagement,
            "conversion": self.conversion,
        }


@dataclass
class ABResult:
    """Outcome of comparing two assets."""

    winner: str
    metrics_a: ABMetrics
    metrics_b: ABMetrics
    confidence: float
    roi_lift: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "winner": self.winner,
            "metricsA": self.metrics_a.to_dict(),
            "metricsB": self.metrics_b.to_dict(),
            "confidence": self.confidence,
            "roiLift": self.roi_lift,
        }


# =============================================================================
# SESSION GRAPH STATE (LangGraph)
# =============================================================================


class SessionGraphState(TypedDict, total=False):
    """State threaded through the resume-side LangGraph graph."""

    session_id: str
    intent: str
    plan: ExecutionPlan
    phase1_results: Dict[str, str]
    phase2_results: Dict[str, str]
    final_result: str
    critical_error: Optional[str]
    error_stage: Optional[str]


__all__ = [
    "NodeId",
    "NODE_NAMES",
    "WORK_NODE_IDS",
    "SessionStatus",
    "NodeStatus",
    "AssetType",
    "FAILURE_ASSET_TYPE",
    "MemoryType",
    "ExecutionPlan",
    "default_plan",
    "NodeState",
    "ImageData",
    "GeneratedAsset",
    "Session",
    "NodeOutput",
    "MemoryEntry",
    "ApprovalData",
    "ABMetrics",
    "ABResult",
    "SessionGraphState",
    "LogEntry",
    "LogLevel",
]
