"""
A/B evaluator: ask a model which of two assets will perform better.

Stateless and outside the session lifecycle, so it is safe to call
concurrently.  The model answer is parsed the same best-effort way as the
plan (first JSON object substring); anything unusable yields ``None``.
"""

import json
import logging
from typing import Any, Dict, Optional

from src.models import ABMetrics, ABResult
from src.tools.claude_client import ClaudeClient
from src.utils import extract_json_object

logger = logging.getLogger(__name__)

AB_PROMPT = """You are a performance marketing analyst. Compare two campaign assets
and predict which one performs better.

Asset A:
{asset_a}

Asset B:
{asset_b}

Estimate click-through rate, engagement and conversion (percentages) for each,
your confidence (0-100) and the ROI lift of the winner over the loser (percent).

Answer in JSON only:
{{"winner": "A" or "B", "metricsA": {{"ctr": 0, "engagement": 0, "conversion": 0}}, "metricsB": {{"ctr": 0, "engagement": 0, "conversion": 0}}, "confidence": 0, "roiLift": 0}}"""


def _metrics(data: Any) -> ABMetrics:
    return ABMetrics(
        ctr=float(data["ctr"]),
        engagement=float(data["engagement"]),
        conversion=float(data["conversion"]),
    )


def parse_ab_result(text: Optional[str]) -> Optional[ABResult]:
    """Coerce model output into an :class:`ABResult`, or ``None``."""
    data = extract_json_object(text)
    if data is None:
        return None
    try:
        winner = str(data["winner"]).strip().upper()
        if winner not in ("A", "B"):
            return None
        return ABResult(
            winner=winner,
            metrics_a=_metrics(data["metricsA"]),
            metrics_b=_metrics(data["metricsB"]),
            confidence=float(data["confidence"]),
            roi_lift=float(data["roiLift"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("A/B response missing fields: %s", exc)
        return None


class ABTestEvaluator:
    """Scores two assets against each other with one model call."""

    def __init__(self, text_llm: ClaudeClient) -> None:
        self.text_llm = text_llm

    async def evaluate(
        self, asset_a: Dict[str, Any], asset_b: Dict[str, Any]
    ) -> Optional[ABResult]:
        prompt = AB_PROMPT.format(
            asset_a=json.dumps(asset_a, ensure_ascii=False, indent=2),
            asset_b=json.dumps(asset_b, ensure_ascii=False, indent=2),
        )
        try:
            text = await self.text_llm.generate(prompt, temperature=0.2)
        except Exception as exc:
            logger.error("A/B evaluation call failed: %s: %s", type(exc).__name__, exc)
            return None

        result = parse_ab_result(text)
        if result is None:
            logger.warning("A/B evaluation returned no usable JSON")
        return result


__all__ = ["ABTestEvaluator", "parse_ab_result"]
