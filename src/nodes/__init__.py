"""
Campaign nodes and their registry.

The node set is closed: four work nodes keyed by their identifier.  Plans
may name other identifiers; those are not in the registry and are skipped
at execution time.

Usage::

    registry = build_node_registry(text_llm, grounded, image, video, blob_store)
    node = registry.get("SP-01")
"""

from typing import Dict, Optional

from src.nodes.auditor import AuthorityAuditor
from src.nodes.base import CampaignNode, NodeContext
from src.nodes.design_architect import DesignArchitect
from src.nodes.executor import NodeExecutor
from src.nodes.strategist import CampaignStrategist
from src.nodes.video_director import VideoDirector
from src.storage import BlobStore
from src.tools.claude_client import ClaudeClient
from src.tools.nano_banana import NanoBananaClient
from src.tools.perplexity import PerplexityClient
from src.tools.speech import SpeechClient
from src.tools.veo import VeoClient

NodeRegistry = Dict[str, CampaignNode]


def build_node_registry(
    text_llm: ClaudeClient,
    grounded: PerplexityClient,
    image_client: NanoBananaClient,
    video_client: VeoClient,
    blob_store: BlobStore,
    speech_client: Optional[SpeechClient] = None,
) -> NodeRegistry:
    """Instantiate the four work nodes with their collaborators."""
    nodes = [
        CampaignStrategist(grounded),
        AuthorityAuditor(grounded),
        VideoDirector(text_llm, video_client, blob_store, speech_client),
        DesignArchitect(text_llm, image_client, blob_store),
    ]
    return {node.node_id.value: node for node in nodes}


__all__ = [
    "CampaignNode",
    "NodeContext",
    "NodeExecutor",
    "NodeRegistry",
    "CampaignStrategist",
    "AuthorityAuditor",
    "VideoDirector",
    "DesignArchitect",
    "build_node_registry",
]
