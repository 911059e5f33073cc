"""
Shared node types: the execution context and the node interface.

A node implements only its production step, :meth:`CampaignNode.produce`.
Status transitions, lifecycle logging and failure containment belong to
:class:`src.nodes.executor.NodeExecutor`, which runs every node kind the
same way.
"""

import abc
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict

from src.logging.session_logger import SessionLogger
from src.models import NODE_NAMES, NodeId, NodeOutput


@dataclass
class NodeContext:
    """Everything a node may read while producing its asset.

    Attributes:
        session_id: Session the execution belongs to.
        intent: The campaign intent, verbatim.
        previous_outputs: Output text of upstream nodes keyed by node id.
            Empty in phase 1.
        log: Session logger bound to the executing node's id.
    """

    session_id: str
    intent: str
    log: SessionLogger
    previous_outputs: Dict[str, str] = field(default_factory=dict)


class CampaignNode(abc.ABC):
    """One unit of generation work within a session."""

    node_id: ClassVar[NodeId]
    description: ClassVar[str] = ""

    @property
    def name(self) -> str:
        return NODE_NAMES[self.node_id]

    @abc.abstractmethod
    async def produce(self, context: NodeContext) -> NodeOutput:
        """Build the node's asset from *context*.

        May raise; the executor turns any exception into a failed
        :class:`NodeOutput`.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.node_id.value}>"


async def extract_tool_prompt(
    text_llm: Any, concept: str, subject: str, max_words: int
) -> str:
    """Reduce a long concept to the short prompt a media model accepts."""
    prompt = (
        f"From this concept, extract ONLY the {subject} as a single, "
        f"optimized prompt for AI generation (max {max_words} words, no markdown):\n\n"
        f"{concept}\n\n"
        "Return ONLY the prompt, nothing else."
    )
    extracted = await text_llm.generate(prompt, temperature=0.3)
    return extracted.strip().strip('"')


__all__ = ["NodeContext", "CampaignNode", "extract_tool_prompt"]
