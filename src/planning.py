"""
Plan Generator: ask a reasoning model which nodes run in which phase.

Planning is advisory.  The model's answer is parsed into a tagged result,
either :class:`ValidPlan` or :class:`UseDefault`, and every path that
does not yield a structurally valid plan (no JSON, bad JSON, a missing or
mistyped field, a failing model call) ends in the fixed default plan.

Node identifiers are not checked against the registry here.  Unknown ids
stay in the plan and are skipped, with a warning, when the phases run.

Provides:
    - PlanEnrichment: brand guidance and historical insights for the prompt
    - ValidPlan / UseDefault: tagged parse result (``PlanResult``)
    - parse_plan(): text -> PlanResult
    - PlanGenerator: builds the prompt, calls the model, parses
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from src.logging.session_logger import SessionLogger
from src.models import NODE_NAMES, ExecutionPlan, MemoryEntry, NodeId, default_plan
from src.tools.claude_client import ClaudeClient
from src.utils import extract_json_object, truncate

logger = logging.getLogger(__name__)

PLAN_FIELDS = ("parallel_phase_1", "sequential_phase_2")

PLANNING_PROMPT = """Analyse this marketing request and create an execution plan.

Request: "{intent}"

Brand guidance:
{brand_guidance}

Relevant insights from previous campaigns:
{insights}

Decide which nodes to activate and in which phase.
Available nodes:
{nodes}
Rule: {strategist} and {auditor} can run in parallel in phase 1. {video} and {design} need {strategist} output and run in parallel in phase 2.

Answer in JSON:
{{"summary": "...", "parallel_phase_1": ["{strategist}", "{auditor}"], "sequential_phase_2": ["{video}", "{design}"]}}"""


# =============================================================================
# PARSE RESULT
# =============================================================================


@dataclass(frozen=True)
class ValidPlan:
    plan: ExecutionPlan


@dataclass(frozen=True)
class UseDefault:
    reason: str

    @property
    def plan(self) -> ExecutionPlan:
        return default_plan()


PlanResult = Union[ValidPlan, UseDefault]


@dataclass
class PlanEnrichment:
    """Best-effort context folded into the planning prompt."""

    brand_guidance: str = ""
    insights: List[MemoryEntry] = field(default_factory=list)


def _dedupe(ids: List[str], exclude: Optional[set] = None) -> List[str]:
    seen = set(exclude or ())
    result = []
    for node_id in ids:
        if node_id not in seen:
            seen.add(node_id)
            result.append(node_id)
    return result


def parse_plan(text: Optional[str]) -> PlanResult:
    """Parse model output into a :data:`PlanResult`.

    The first ``{...}`` substring is decoded; both phase fields must be
    lists of strings.  Duplicates inside a phase are dropped (first wins)
    and ids already in phase 1 are dropped from phase 2.
    """
    data = extract_json_object(text)
    if data is None:
        return UseDefault("no JSON object in planning response")

    phases = {}
    for name in PLAN_FIELDS:
        value: Any = data.get(name)
        if not isinstance(value, list):
            return UseDefault(f"'{name}' missing or not a list")
        if not all(isinstance(item, str) for item in value):
            return UseDefault(f"'{name}' contains non-string entries")
        phases[name] = value

    phase_1 = _dedupe(phases["parallel_phase_1"])
    phase_2 = _dedupe(phases["sequential_phase_2"], exclude=set(phase_1))
    summary = data.get("summary")
    return ValidPlan(
        ExecutionPlan(
            parallel_phase_1=phase_1,
            sequential_phase_2=phase_2,
            summary=summary if isinstance(summary, str) else None,
        )
    )


# =============================================================================
# GENERATOR
# =============================================================================


class PlanGenerator:
    """Produces an :class:`ExecutionPlan` for an intent.

    Args:
        text_llm: Client exposing ``generate_with_thinking``.
        trace_chars: How much of the reasoning trace goes into the session log.
    """

    def __init__(self, text_llm: ClaudeClient, trace_chars: int = 150) -> None:
        self.text_llm = text_llm
        self.trace_chars = trace_chars

    @staticmethod
    def build_prompt(intent: str, enrichment: PlanEnrichment) -> str:
        insights = "\n".join(f"- {entry.content}" for entry in enrichment.insights)
        nodes = "\n".join(
            f"- {node_id.value} ({NODE_NAMES[node_id]})"
            for node_id in NodeId
            if node_id is not NodeId.ORCHESTRATOR
        )
        return PLANNING_PROMPT.format(
            intent=intent,
            brand_guidance=enrichment.brand_guidance or "(none)",
            insights=insights or "(none)",
            nodes=nodes,
            strategist=NodeId.STRATEGIST.value,
            auditor=NodeId.AUDITOR.value,
            video=NodeId.VIDEO_DIRECTOR.value,
            design=NodeId.DESIGN_ARCHITECT.value,
        )

    async def plan(
        self,
        intent: str,
        enrichment: Optional[PlanEnrichment] = None,
        log: Optional[SessionLogger] = None,
    ) -> PlanResult:
        """Ask the model for a plan; never raises."""
        prompt = self.build_prompt(intent, enrichment or PlanEnrichment())
        try:
            result = await self.text_llm.generate_with_thinking(prompt)
        except Exception as exc:
            logger.warning("Planning call failed, using default plan: %s", exc)
            return UseDefault(f"planning call failed: {type(exc).__name__}: {exc}")

        if log is not None and result.trace:
            await log.system(f"[SN-00] Thinking: {truncate(result.trace, self.trace_chars)}")

        parsed = parse_plan(result.text)
        if isinstance(parsed, UseDefault):
            logger.info("Planning response unusable (%s); default plan applies", parsed.reason)
        return parsed


__all__ = [
    "PLAN_FIELDS",
    "PlanEnrichment",
    "ValidPlan",
    "UseDefault",
    "PlanResult",
    "parse_plan",
    "PlanGenerator",
]
