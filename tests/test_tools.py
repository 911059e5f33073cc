"""
Tests for the external capability clients in src.tools.

HTTP clients are exercised against ``httpx.MockTransport``; the Claude
client gets a mocked ``messages.create``.
"""

import base64
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from src.exceptions import (
    MediaGenerationError,
    MediaGenerationTimeoutError,
    RetryExhaustedError,
)
from src.tools import (
    ClaudeClient,
    MediaPayload,
    NanoBananaClient,
    PerplexityClient,
    SpeechClient,
    VeoClient,
)


@pytest.fixture
def mock_http(monkeypatch):
    """Route every ``httpx.AsyncClient`` through a handler set by the test."""
    real_client = httpx.AsyncClient
    state = {"handler": None, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        return state["handler"](request)

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)
    return state


# =============================================================================
# MediaPayload
# =============================================================================


def test_media_payload_extension():
    assert MediaPayload(b"x", "video/mp4").extension == "mp4"
    assert MediaPayload(b"x", "audio/mpeg").extension == "mp3"
    assert MediaPayload(b"x", "application/zip").extension == "bin"
    assert len(MediaPayload(b"abc", "image/png")) == 3


# =============================================================================
# ClaudeClient
# =============================================================================


def _response(*blocks):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
    )


class TestClaudeClient:
    def test_requires_api_key(self):
        with pytest.raises(KeyError):
            ClaudeClient()

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks_and_tracks_usage(self):
        client = ClaudeClient(api_key="test")
        client.client.messages.create = AsyncMock(
            return_value=_response(
                SimpleNamespace(type="text", text="Hello "),
                SimpleNamespace(type="text", text="world"),
            )
        )

        assert await client.generate("hi", temperature=0.3) == "Hello world"
        assert client.usage_stats == {"input_tokens": 10, "output_tokens": 5}
        assert client.client.messages.create.await_args.kwargs["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_thinking_separates_trace_from_answer(self):
        client = ClaudeClient(api_key="test", thinking_model="planner", thinking_budget_tokens=2048)
        client.client.messages.create = AsyncMock(
            return_value=_response(
                SimpleNamespace(type="thinking", thinking="Consider phases."),
                SimpleNamespace(type="text", text='{"parallel_phase_1": []}'),
            )
        )

        result = await client.generate_with_thinking("plan it")

        assert result.trace == "Consider phases."
        assert result.text == '{"parallel_phase_1": []}'
        kwargs = client.client.messages.create.await_args.kwargs
        assert kwargs["model"] == "planner"
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert kwargs["max_tokens"] == 2048 + 4096
        assert "temperature" not in kwargs


# =============================================================================
# PerplexityClient
# =============================================================================


class TestPerplexityClient:
    def test_extract_citations_prefers_flat_list(self):
        response = {"citations": ["https://a"], "search_results": [{"url": "https://b"}]}
        assert PerplexityClient.extract_citations(response) == ["https://a"]

    def test_extract_citations_from_search_results(self):
        response = {"search_results": [{"url": "https://b"}, {"title": "no url"}]}
        assert PerplexityClient.extract_citations(response) == ["https://b"]

    def test_extract_text_handles_bad_shape(self):
        assert PerplexityClient.extract_text({"choices": []}) == ""

    @pytest.mark.asyncio
    async def test_generate_grounded(self, mock_http):
        mock_http["handler"] = lambda request: httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "Competitors: A, B"}}],
                "citations": ["https://a", "https://b"],
            },
        )
        client = PerplexityClient(api_key="pplx-test", model="sonar")

        result = await client.generate_grounded("Who competes with Notion?")

        assert result.text == "Competitors: A, B"
        assert result.sources == ["https://a", "https://b"]
        request = mock_http["requests"][0]
        assert request.headers["Authorization"] == "Bearer pplx-test"
        assert json.loads(request.content)["model"] == "sonar"


# =============================================================================
# NanoBananaClient / SpeechClient
# =============================================================================


@pytest.mark.asyncio
async def test_nano_banana_decodes_inline_image(mock_http):
    mock_http["handler"] = lambda request: httpx.Response(
        200, json={"data": [{"b64_json": base64.b64encode(b"PNGDATA").decode()}]}
    )
    client = NanoBananaClient(api_key="k", style="cinematic")

    payload = await client.generate_image("a desk")

    assert payload == MediaPayload(b"PNGDATA", "image/png")
    assert json.loads(mock_http["requests"][0].content)["prompt"] == "a desk. Style: cinematic"


@pytest.mark.asyncio
async def test_nano_banana_error_status(mock_http):
    mock_http["handler"] = lambda request: httpx.Response(402, text="quota")
    with pytest.raises(MediaGenerationError, match="402"):
        await NanoBananaClient(api_key="k").generate_image("a desk")


@pytest.mark.asyncio
async def test_speech_returns_mp3(mock_http):
    mock_http["handler"] = lambda request: httpx.Response(200, content=b"ID3audio")
    payload = await SpeechClient(api_key="k", voice="nova").generate_speech("Hello")
    assert payload.mime_type == "audio/mpeg"
    assert payload.data == b"ID3audio"
    assert json.loads(mock_http["requests"][0].content)["voice"] == "nova"


# =============================================================================
# VeoClient
# =============================================================================


class TestVeoClient:
    def test_extract_video_uri_nested_response(self):
        operation = {
            "done": True,
            "response": {
                "generateVideoResponse": {
                    "generatedSamples": [{"video": {"uri": "https://files/v1.mp4"}}]
                }
            },
        }
        assert VeoClient.extract_video_uri(operation) == "https://files/v1.mp4"

    def test_extract_video_uri_missing(self):
        assert VeoClient.extract_video_uri({"done": True, "response": {}}) is None

    @pytest.mark.asyncio
    async def test_start_generation_returns_operation(self, mock_http):
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"name": "models/veo/operations/op-1"}
        )
        veo = VeoClient(api_key="g-key", model="veo-test")

        assert await veo.start_generation("sunrise") == "models/veo/operations/op-1"
        request = mock_http["requests"][0]
        assert request.url.path.endswith("/models/veo-test:predictLongRunning")
        assert request.headers["x-goog-api-key"] == "g-key"

    @pytest.mark.asyncio
    async def test_poll_pending_then_done(self, mock_http):
        responses = iter(
            [
                httpx.Response(200, json={"done": False}),
                httpx.Response(
                    200,
                    json={
                        "done": True,
                        "response": {
                            "generateVideoResponse": {
                                "generatedSamples": [
                                    {"video": {"uri": "https://files.test/v.mp4"}}
                                ]
                            }
                        },
                    },
                ),
                httpx.Response(200, content=b"MP4BYTES"),
            ]
        )
        mock_http["handler"] = lambda request: next(responses)
        veo = VeoClient(api_key="g-key")

        assert await veo.poll_operation("operations/op-1") is None
        assert await veo.poll_operation("operations/op-1") == b"MP4BYTES"

    @pytest.mark.asyncio
    async def test_poll_operation_error(self, mock_http):
        mock_http["handler"] = lambda request: httpx.Response(
            200, json={"done": True, "error": {"message": "unsafe prompt"}}
        )
        with pytest.raises(MediaGenerationError, match="unsafe prompt"):
            await VeoClient(api_key="g-key").poll_operation("operations/op-1")

    @pytest.mark.asyncio
    async def test_start_generation_gives_up_after_retries(self, mock_http, monkeypatch):
        monkeypatch.setattr("src.utils.asyncio.sleep", AsyncMock())

        def fail(request):
            raise httpx.ConnectError("unreachable", request=request)

        mock_http["handler"] = fail

        with pytest.raises(RetryExhaustedError):
            await VeoClient(api_key="g-key").start_generation("sunrise")
        assert len(mock_http["requests"]) == 3

    @pytest.mark.asyncio
    async def test_generate_video_rides_out_transient_poll_errors(self, mock_http, monkeypatch):
        monkeypatch.setattr("src.tools.veo.asyncio.sleep", AsyncMock())

        def connect_error(request):
            raise httpx.ConnectError("reset", request=request)

        responses = iter(
            [
                httpx.Response(200, json={"name": "operations/op-2"}),
                httpx.Response(503, text="unavailable"),
                connect_error,
                httpx.Response(200, json=_finished_operation("https://files.test/v2.mp4")),
                httpx.Response(200, content=b"MP4"),
            ]
        )

        def handler(request):
            step = next(responses)
            return step(request) if callable(step) else step

        mock_http["handler"] = handler
        veo = VeoClient(api_key="g-key", poll_attempts=3, poll_interval=0)

        payload = await veo.generate_video("sunrise")

        assert payload == MediaPayload(b"MP4", "video/mp4")

    @pytest.mark.asyncio
    async def test_generate_video_times_out_when_every_poll_fails(self, mock_http, monkeypatch):
        monkeypatch.setattr("src.tools.veo.asyncio.sleep", AsyncMock())
        mock_http["handler"] = lambda request: (
            httpx.Response(200, json={"name": "operations/op-3"})
            if request.method == "POST"
            else httpx.Response(502, text="bad gateway")
        )
        veo = VeoClient(api_key="g-key", poll_attempts=2, poll_interval=0)

        with pytest.raises(MediaGenerationTimeoutError):
            await veo.generate_video("sunrise")
        assert len(mock_http["requests"]) == 3

    @pytest.mark.asyncio
    async def test_generate_video_stops_on_client_error(self, mock_http, monkeypatch):
        monkeypatch.setattr("src.tools.veo.asyncio.sleep", AsyncMock())
        mock_http["handler"] = lambda request: (
            httpx.Response(200, json={"name": "operations/op-4"})
            if request.method == "POST"
            else httpx.Response(403, text="forbidden")
        )
        veo = VeoClient(api_key="g-key", poll_attempts=5, poll_interval=0)

        with pytest.raises(httpx.HTTPStatusError):
            await veo.generate_video("sunrise")
        assert len(mock_http["requests"]) == 2


def _finished_operation(uri):
    return {
        "done": True,
        "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": uri}}]}},
    }
