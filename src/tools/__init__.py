"""
External tool wrappers for the Campaign Orchestrator.

This package provides async clients for all external capability providers
used by the planner and the nodes:

- ClaudeClient: Anthropic Claude API (text generation, extended thinking)
- PerplexityClient: Perplexity AI grounded generation with citations
- NanoBananaClient: Image generation via Laozhang.ai (Nano Banana Pro)
- VeoClient: Video generation via Google Veo (long-running operations)
- SpeechClient: Text-to-speech for optional voice-overs
"""

from src.tools.claude_client import ClaudeClient, ThinkingResult
from src.tools.perplexity import GroundedResult, PerplexityClient
from src.tools.media import MediaPayload
from src.tools.nano_banana import NanoBananaClient
from src.tools.veo import VeoClient
from src.tools.speech import SpeechClient

__all__ = [
    "ClaudeClient",
    "ThinkingResult",
    "PerplexityClient",
    "GroundedResult",
    "MediaPayload",
    "NanoBananaClient",
    "VeoClient",
    "SpeechClient",
]
