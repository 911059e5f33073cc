"""
Async Perplexity AI client for grounded (web-cited) generation.

Uses ``httpx`` to call the Perplexity chat-completions endpoint.  The
Campaign Strategist and the Authority Auditor rely on this client for
market data and competitor research backed by live sources.

Transient HTTP errors are retried with exponential backoff; permanent
failures propagate immediately.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from src.utils import with_retry

logger = logging.getLogger(__name__)


@dataclass
class GroundedResult:
    """Answer text plus the source URLs it was grounded on."""

    text: str
    sources: List[str] = field(default_factory=list)


class PerplexityClient:
    """Async wrapper around the Perplexity AI chat-completions API.

    Args:
        api_key: Perplexity API key.  Falls back to the
            ``PERPLEXITY_API_KEY`` environment variable.
        model: Default Perplexity model (``sonar``, ``sonar-pro``, ...).

    Usage::

        client = PerplexityClient()
        result = await client.generate_grounded("Top competitors of Notion")
        print(result.text, result.sources)
    """

    BASE_URL: str = "https://api.perplexity.ai"

    def __init__(self, api_key: Optional[str] = None, model: str = "sonar-pro") -> None:
        self.api_key: str = api_key or os.environ.get("PERPLEXITY_API_KEY", "")
        self.model = model

    # ------------------------------------------------------------------
    # Core search
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=3,
        retryable_exceptions=(httpx.HTTPError, httpx.TimeoutException),
    )
    async def search(
        self,
        query: str,
        model: Optional[str] = None,
        max_tokens: int = 2048,
    ) -> Dict[str, Any]:
        """Execute a single query via the Perplexity API.

        Args:
            query: Natural-language prompt.
            model: Perplexity model name; defaults to the client's model.
            max_tokens: Maximum tokens in the response.

        Returns:
            Raw JSON response from the Perplexity API including
            ``choices``, ``citations``, and usage metadata.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses after retries.
        """
        model = model or self.model
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{self.BASE_URL}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": model,
                    "messages": [{"role": "user", "content": query}],
                    "max_tokens": max_tokens,
                },
            )
            response.raise_for_status()
            data = response.json()

            logger.debug(
                "Perplexity search completed: model=%s, query_len=%d",
                model,
                len(query),
            )
            return data

    async def generate_grounded(self, prompt: str) -> GroundedResult:
        """Run *prompt* with live web grounding.

        Returns:
            :class:`GroundedResult` with the answer and its citation URLs.
        """
        response = await self.search(prompt)
        return GroundedResult(
            text=self.extract_text(response),
            sources=self.extract_citations(response),
        )

    # ------------------------------------------------------------------
    # Content extraction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def extract_text(response: Dict[str, Any]) -> str:
        """Extract the plain-text answer from a Perplexity API response.

        Returns:
            Extracted text content, or an empty string if the response
            structure is unexpected.
        """
        try:
            return response["choices"][0]["message"]["content"]
        except (KeyError, IndexError):
            logger.warning("Failed to extract text from Perplexity response")
            return ""

    @staticmethod
    def extract_citations(response: Dict[str, Any]) -> List[str]:
        """Extract citation URLs from a Perplexity API response.

        Newer responses carry ``search_results`` objects instead of (or in
        addition to) the flat ``citations`` list; both are accepted.
        """
        citations = list(response.get("citations") or [])
        if not citations:
            citations = [
                item["url"]
                for item in response.get("search_results") or []
                if item.get("url")
            ]
        return citations
