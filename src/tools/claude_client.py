"""
Async Claude API client for the orchestrator's text capabilities.

Uses the ``anthropic`` Python SDK (``AsyncAnthropic``) to interact with
Anthropic's Messages API.  It backs three roles:

    - plain text generation for media concepts and prompt extraction
    - reasoning-trace generation (extended thinking) for the planner
    - the A/B evaluator's scoring call

Key features:
    - Automatic retry with exponential backoff via ``@with_retry``
    - Token usage tracking (input + output)
    - Configurable model, thinking budget, and max_tokens

If all retry attempts are exhausted the original ``anthropic`` exception
propagates wrapped in ``RetryExhaustedError``.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from src.utils import with_retry

logger = logging.getLogger(__name__)


@dataclass
class ThinkingResult:
    """Reasoning trace and final answer from an extended-thinking call."""

    trace: str
    text: str


class ClaudeClient:
    """Async Claude API client.

    Args:
        api_key: Anthropic API key.  Falls back to the
            ``ANTHROPIC_API_KEY`` environment variable.
        model: Model used by :meth:`generate`.
        thinking_model: Model used by :meth:`generate_with_thinking`.
            Defaults to *model*.
        thinking_budget_tokens: Token budget for the reasoning trace.

    Raises:
        KeyError: If no API key is provided and the environment variable
            is missing.

    Usage::

        client = ClaudeClient()
        answer = await client.generate("Summarise this brief in one line.")
        result = await client.generate_with_thinking("Plan the campaign ...")
        print(result.trace, result.text)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-sonnet-4-5-20250929",
        thinking_model: Optional[str] = None,
        thinking_budget_tokens: int = 4096,
    ) -> None:
        self.client = AsyncAnthropic(
            api_key=api_key or os.environ["ANTHROPIC_API_KEY"],
        )
        self.model = model
        self.thinking_model = thinking_model or model
        self.thinking_budget_tokens = thinking_budget_tokens
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

    def _track_usage(self, response: Any, label: str) -> None:
        self._total_input_tokens += response.usage.input_tokens
        self._total_output_tokens += response.usage.output_tokens
        logger.debug(
            "Claude %s: in=%d out=%d tokens",
            label,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )

    # ------------------------------------------------------------------
    # Text generation
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, retryable_exceptions=(Exception,))
    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Generate a plain-text response from the model.

        Args:
            prompt: The user message content.
            system: Optional system prompt.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0.0 -- 1.0).

        Returns:
            The model's text response (all text blocks joined).
        """
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)
        self._track_usage(response, "generate")

        return "".join(
            block.text for block in response.content if block.type == "text"
        )

    # ------------------------------------------------------------------
    # Extended thinking
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, retryable_exceptions=(Exception,))
    async def generate_with_thinking(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> ThinkingResult:
        """Generate a response together with the model's reasoning trace.

        Extended thinking does not accept a custom temperature, and
        ``max_tokens`` must exceed the thinking budget, so the default is
        the budget plus 4096 answer tokens.

        Args:
            prompt: The user message content.
            system: Optional system prompt.
            max_tokens: Total token cap (thinking + answer).

        Returns:
            :class:`ThinkingResult` with the concatenated ``thinking`` blocks
            as ``trace`` and the concatenated ``text`` blocks as ``text``.
        """
        kwargs: Dict[str, Any] = {
            "model": self.thinking_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens or self.thinking_budget_tokens + 4096,
            "thinking": {
                "type": "enabled",
                "budget_tokens": self.thinking_budget_tokens,
            },
        }
        if system:
            kwargs["system"] = system

        response = await self.client.messages.create(**kwargs)
        self._track_usage(response, "generate_with_thinking")

        trace_parts: List[str] = []
        text_parts: List[str] = []
        for block in response.content:
            if block.type == "thinking":
                trace_parts.append(block.thinking)
            elif block.type == "text":
                text_parts.append(block.text)

        return ThinkingResult(trace="\n".join(trace_parts), text="".join(text_parts))

    # ------------------------------------------------------------------
    # Usage tracking
    # ------------------------------------------------------------------

    @property
    def usage_stats(self) -> Dict[str, int]:
        """Cumulative token usage since this client was instantiated.

        Returns:
            Dict with ``input_tokens`` and ``output_tokens`` keys.
        """
        return {
            "input_tokens": self._total_input_tokens,
            "output_tokens": self._total_output_tokens,
        }

    def reset_usage(self) -> None:
        """Reset cumulative token counters to zero."""
        self._total_input_tokens = 0
        self._total_output_tokens = 0
