"""
Video generation client for Google Veo via the Gemini API.

Veo runs as a long-running operation:

    1. ``POST models/{model}:predictLongRunning`` returns an operation name.
    2. ``GET {operation}`` is polled until ``done`` is true.
    3. The finished operation carries a video URI that is downloaded with
       the API key.

:meth:`VeoClient.generate_video` ties the three steps together with a
bounded poll loop (fixed attempt count, fixed delay).  A poll that hits a
network error, 429 or 5xx counts as still pending.  When the budget runs
out it raises ``MediaGenerationTimeoutError``, which the Video Director
turns into a text-only asset.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Optional

import httpx

from src.exceptions import MediaGenerationError, MediaGenerationTimeoutError
from src.tools.media import MediaPayload
from src.utils import with_retry

logger = logging.getLogger(__name__)


def _is_transient(error: httpx.HTTPError) -> bool:
    """Network failures, rate limits and 5xx answers are worth another poll."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return isinstance(error, httpx.TransportError)


class VeoClient:
    """Async client for Veo text-to-video generation.

    Args:
        api_key: Gemini API key.  Falls back to ``GOOGLE_API_KEY``.
        model: Veo model identifier.
        aspect_ratio: Output aspect ratio (``"16:9"`` or ``"9:16"``).
        poll_attempts: Maximum number of status polls per video.
        poll_interval: Seconds to wait before each poll.

    Usage::

        veo = VeoClient(poll_attempts=30, poll_interval=10.0)
        video = await veo.generate_video("Slow dolly shot across a desk ...")
    """

    BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "veo-3.1-generate-preview",
        aspect_ratio: str = "16:9",
        poll_attempts: int = 30,
        poll_interval: float = 10.0,
    ) -> None:
        self.api_key: str = api_key or os.environ.get("GOOGLE_API_KEY", "")
        self.model = model
        self.aspect_ratio = aspect_ratio
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval

    @property
    def _headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    # ------------------------------------------------------------------
    # Long-running operation steps
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=3,
        retryable_exceptions=(httpx.HTTPError, httpx.TimeoutException),
    )
    async def start_generation(self, prompt: str) -> str:
        """Submit a generation request.

        Returns:
            The operation name to poll.

        Raises:
            MediaGenerationError: On a non-2xx status or a response without
                an operation name.
        """
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{self.BASE_URL}/models/{self.model}:predictLongRunning",
                headers=self._headers,
                json={
                    "instances": [{"prompt": prompt}],
                    "parameters": {"aspectRatio": self.aspect_ratio},
                },
            )
        if response.status_code not in (200, 201):
            raise MediaGenerationError(
                f"Veo API error {response.status_code}: {response.text}"
            )
        operation_name = response.json().get("name")
        if not operation_name:
            raise MediaGenerationError("Veo returned no operation name")

        logger.info("Veo operation started: %s", operation_name)
        return operation_name

    async def poll_operation(self, operation_name: str) -> Optional[bytes]:
        """Check an operation once.

        Returns:
            The video bytes when the operation is done, ``None`` while it is
            still pending.

        Raises:
            MediaGenerationError: When the operation finished with an error
                or without a video.
        """
        async with httpx.AsyncClient(timeout=120.0, follow_redirects=True) as client:
            response = await client.get(
                f"{self.BASE_URL}/{operation_name}", headers=self._headers
            )
            response.raise_for_status()
            operation: Dict[str, Any] = response.json()

            if operation.get("error"):
                raise MediaGenerationError(f"Veo operation failed: {operation['error']}")
            if not operation.get("done"):
                return None

            video_uri = self.extract_video_uri(operation)
            if not video_uri:
                raise MediaGenerationError("Veo operation finished without a video URI")

            download = await client.get(video_uri, headers={"x-goog-api-key": self.api_key})
            download.raise_for_status()
            return download.content

    @staticmethod
    def extract_video_uri(operation: Dict[str, Any]) -> Optional[str]:
        """Pull the first generated sample's URI out of a finished operation."""
        response = operation.get("response") or {}
        generated = response.get("generateVideoResponse", response)
        samples = generated.get("generatedSamples") or []
        if not samples:
            return None
        return (samples[0].get("video") or {}).get("uri")

    # ------------------------------------------------------------------
    # Bounded end-to-end generation
    # ------------------------------------------------------------------

    async def generate_video(self, prompt: str) -> MediaPayload:
        """Start a generation and poll it to completion.

        Raises:
            MediaGenerationTimeoutError: When ``poll_attempts`` polls pass
                without a finished operation.
            MediaGenerationError: When the operation fails.
            httpx.HTTPStatusError: On a non-transient poll status (4xx
                other than 429).
        """
        operation_name = await self.start_generation(prompt)

        for attempt in range(1, self.poll_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            try:
                video = await self.poll_operation(operation_name)
            except httpx.HTTPError as e:
                if not _is_transient(e):
                    raise
                # Spends one poll attempt
                logger.warning(
                    "Veo poll %d/%d for %s failed: %s",
                    attempt,
                    self.poll_attempts,
                    operation_name,
                    e,
                )
                continue
            if video is not None:
                logger.info(
                    "Veo video ready after %d polls (%d bytes)", attempt, len(video)
                )
                return MediaPayload(data=video, mime_type="video/mp4")
            logger.debug("Veo operation %s pending (%d/%d)", operation_name, attempt, self.poll_attempts)

        raise MediaGenerationTimeoutError(
            operation_name, self.poll_attempts, self.poll_interval
        )
