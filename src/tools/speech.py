"""
Text-to-speech client for campaign voice-overs.

Calls the OpenAI-compatible ``/audio/speech`` endpoint exposed by
Laozhang.ai (the same gateway the image client uses) through ``httpx``.
Only the Video Director uses it, and only when voice-overs are enabled in
settings.
"""

import logging
import os
from typing import Optional

import httpx

from src.exceptions import MediaGenerationError
from src.tools.media import MediaPayload
from src.utils import with_retry

logger = logging.getLogger(__name__)


class SpeechClient:
    """Async text-to-speech client.

    Args:
        api_key: Laozhang API key.  Falls back to ``LAOZHANG_API_KEY``.
        model: Speech model (``tts-1``, ``tts-1-hd``, ...).
        voice: Voice preset name.
    """

    BASE_URL: str = "https://api.laozhang.ai/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "tts-1",
        voice: str = "alloy",
    ) -> None:
        self.api_key: str = api_key or os.environ.get("LAOZHANG_API_KEY", "")
        self.model = model
        self.voice = voice

    @with_retry(
        max_attempts=3,
        retryable_exceptions=(httpx.HTTPError, httpx.TimeoutException),
    )
    async def generate_speech(self, text: str) -> MediaPayload:
        """Synthesize *text* to MP3.

        Raises:
            MediaGenerationError: On a non-2xx status or an empty body.
        """
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{self.BASE_URL}/audio/speech",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "voice": self.voice,
                    "input": text,
                    "response_format": "mp3",
                },
            )
        if response.status_code != 200:
            raise MediaGenerationError(
                f"Speech API error {response.status_code}: {response.text}"
            )
        if not response.content:
            raise MediaGenerationError("Speech API returned an empty body")

        logger.info("Speech generated: chars=%d bytes=%d", len(text), len(response.content))
        return MediaPayload(data=response.content, mime_type="audio/mpeg")
