"""Shared fixtures for the Campaign Orchestrator test suite."""

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from src.evaluation import ABTestEvaluator
from src.memory_bank import InMemoryMemoryBank
from src.models import AssetType, NodeId, NodeOutput
from src.nodes import CampaignNode, NodeContext, build_node_registry
from src.orchestrator import CampaignOrchestrator
from src.planning import PlanGenerator
from src.session_store import InMemorySessionStore
from src.tools.claude_client import ThinkingResult
from src.tools.media import MediaPayload
from src.tools.perplexity import GroundedResult


# ---------------------------------------------------------------------------
# Ensure we don't hit real APIs during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear all API keys so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "ANTHROPIC_API_KEY",
        "PERPLEXITY_API_KEY",
        "GOOGLE_API_KEY",
        "LAOZHANG_API_KEY",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHAT_ID",
        "SESSION_STORE_BACKEND",
        "ASSETS_BUCKET",
        "VIDEO_POLL_ATTEMPTS",
        "VIDEO_POLL_INTERVAL",
        "LOG_LEVEL",
        "PORT",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client with a chainable table() builder."""
    client = MagicMock()
    table_mock = MagicMock()
    for method in ("select", "insert", "update", "eq", "ov", "order", "limit"):
        getattr(table_mock, method).return_value = table_mock

    async def mock_execute():
        return MagicMock(data=[], count=0)

    table_mock.execute = mock_execute
    client.table.return_value = table_mock
    return client


# ---------------------------------------------------------------------------
# Fake capabilities
# ---------------------------------------------------------------------------

VALID_PLAN_TEXT = (
    "Here is the plan:\n"
    + json.dumps(
        {
            "summary": "Strategy first, then creative.",
            "parallel_phase_1": ["SP-01", "RA-01"],
            "sequential_phase_2": ["CC-06", "DA-03"],
        }
    )
)


class FakeTextLLM:
    """Stands in for ``ClaudeClient``; answers by prompt kind."""

    def __init__(
        self,
        plan_text: str = VALID_PLAN_TEXT,
        trace: str = "The user wants a launch campaign. Strategy comes first.",
        concept: str = "CONCEPT: neon palette, bold sans-serif, hero shot of a laptop.",
        extracted: str = '"A laptop glowing on a dark desk, cinematic lighting"',
        narration: str = "Work smarter from anywhere.",
        ab_text: Optional[str] = None,
        fail_generate: bool = False,
        fail_thinking: bool = False,
    ) -> None:
        self.plan_text = plan_text
        self.trace = trace
        self.concept = concept
        self.extracted = extracted
        self.narration = narration
        self.ab_text = ab_text
        self.fail_generate = fail_generate
        self.fail_thinking = fail_thinking
        self.prompts: List[str] = []

    async def generate(self, prompt: str, temperature: float = 0.7, **kwargs) -> str:
        self.prompts.append(prompt)
        if self.fail_generate:
            raise RuntimeError("text model unavailable")
        if "extract ONLY" in prompt:
            return self.extracted
        if "voice-over line" in prompt:
            return self.narration
        if "Asset A" in prompt and self.ab_text is not None:
            return self.ab_text
        return self.concept

    async def generate_with_thinking(self, prompt: str, **kwargs) -> ThinkingResult:
        self.prompts.append(prompt)
        if self.fail_thinking:
            raise RuntimeError("planning model unavailable")
        return ThinkingResult(trace=self.trace, text=self.plan_text)


class FakeGrounded:
    def __init__(self, fail: bool = False, sources: Optional[List[str]] = None) -> None:
        self.fail = fail
        self.sources = sources if sources is not None else [
            "https://example.com/market",
            "https://example.com/competitors",
        ]
        self.prompts: List[str] = []

    async def generate_grounded(self, prompt: str) -> GroundedResult:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("grounded search down")
        return GroundedResult(text=f"Grounded answer #{len(self.prompts)}", sources=self.sources)


class FakeImageClient:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.prompts: List[str] = []

    async def generate_image(self, prompt: str) -> MediaPayload:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("image quota exceeded")
        return MediaPayload(data=b"\x89PNG fake", mime_type="image/png")


class FakeVideoClient:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.prompts: List[str] = []

    async def generate_video(self, prompt: str) -> MediaPayload:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("video backend rejected the prompt")
        return MediaPayload(data=b"fake mp4", mime_type="video/mp4")


class FakeSpeechClient:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.texts: List[str] = []

    async def generate_speech(self, text: str) -> MediaPayload:
        self.texts.append(text)
        if self.fail:
            raise RuntimeError("tts down")
        return MediaPayload(data=b"fake mp3", mime_type="audio/mpeg")


class FakeBlobStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.uploads: Dict[str, bytes] = {}

    async def upload(self, data: bytes, mime_type: str, path: str) -> str:
        if self.fail:
            raise RuntimeError("bucket not found")
        self.uploads[path] = data
        return f"https://blobs.test/{path}"


class ScriptedNode(CampaignNode):
    """Node with a scripted outcome that records when it ran.

    ``events`` is shared between nodes so tests can check ordering across
    phases; ``seen_previous`` captures the context it was given.
    """

    def __init__(
        self,
        node_id: NodeId,
        events: List[tuple],
        delay: float = 0.0,
        error: Optional[str] = None,
    ) -> None:
        self.node_id = node_id
        self.events = events
        self.delay = delay
        self.error = error
        self.seen_previous: Optional[Dict[str, str]] = None
        self.calls = 0

    async def produce(self, context: NodeContext) -> NodeOutput:
        self.calls += 1
        self.seen_previous = dict(context.previous_outputs)
        self.events.append(("start", self.node_id.value))
        await asyncio.sleep(self.delay)
        self.events.append(("end", self.node_id.value))
        if self.error:
            raise RuntimeError(self.error)
        return NodeOutput(
            success=True,
            data=f"{self.node_id.value} output",
            asset_type=AssetType.STRATEGY.value,
            asset_title=f"{self.node_id.value} asset",
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def memory_bank():
    return InMemoryMemoryBank()


@pytest.fixture
def text_llm():
    return FakeTextLLM()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def events():
    return []


@pytest.fixture
def scripted_registry(events):
    """Four scripted nodes; phase-1 nodes are slow so overlap would show."""
    return {
        NodeId.STRATEGIST.value: ScriptedNode(NodeId.STRATEGIST, events, delay=0.02),
        NodeId.AUDITOR.value: ScriptedNode(NodeId.AUDITOR, events, delay=0.05),
        NodeId.VIDEO_DIRECTOR.value: ScriptedNode(NodeId.VIDEO_DIRECTOR, events),
        NodeId.DESIGN_ARCHITECT.value: ScriptedNode(NodeId.DESIGN_ARCHITECT, events),
    }


@pytest.fixture
def make_orchestrator(store, memory_bank):
    """Factory: orchestrator over the in-memory store with fakes wired in."""

    def _make(
        text_llm: Optional[FakeTextLLM] = None,
        registry: Optional[Dict[str, CampaignNode]] = None,
        bank=memory_bank,
    ) -> CampaignOrchestrator:
        llm = text_llm or FakeTextLLM()
        if registry is None:
            registry = build_node_registry(
                text_llm=llm,
                grounded=FakeGrounded(),
                image_client=FakeImageClient(),
                video_client=FakeVideoClient(),
                blob_store=FakeBlobStore(),
            )
        return CampaignOrchestrator(
            store=store,
            planner=PlanGenerator(llm),
            registry=registry,
            memory_bank=bank,
            evaluator=ABTestEvaluator(llm),
        )

    return _make
