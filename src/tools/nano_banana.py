"""
Image generation client via Laozhang.ai (Nano Banana Pro).

Uses the ``gemini-3-pro-image-preview`` model exposed through the
Laozhang.ai OpenAI-compatible API to generate campaign hero images.  The
Design Architect node delegates all image generation to this client.

The client returns raw bytes; persisting them is the blob store's job.
Transient HTTP errors are retried with exponential backoff; a non-2xx
response or an unusable payload raises ``MediaGenerationError``.
"""

import base64
import logging
import os
from typing import Any, Dict, Optional

import httpx

from src.exceptions import MediaGenerationError
from src.tools.media import MediaPayload
from src.utils import with_retry

logger = logging.getLogger(__name__)


class NanoBananaClient:
    """Image generation client via Laozhang.ai Nano Banana Pro.

    Args:
        api_key: Laozhang API key.  Falls back to the
            ``LAOZHANG_API_KEY`` environment variable.
        model: Image model identifier.
        size: Default image size as ``"WxH"``.
        style: Default style hint appended to every prompt.

    Usage::

        client = NanoBananaClient()
        image = await client.generate_image(
            prompt="Minimal desk with a glowing productivity dashboard",
        )
        print(image.mime_type, len(image))
    """

    BASE_URL: str = "https://api.laozhang.ai/v1"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-3-pro-image-preview",
        size: str = "1536x864",
        style: str = "",
    ) -> None:
        self.api_key: str = api_key or os.environ.get("LAOZHANG_API_KEY", "")
        self.model = model
        self.size = size
        self.style = style

    # ------------------------------------------------------------------
    # Image generation
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=3,
        retryable_exceptions=(httpx.HTTPError, httpx.TimeoutException),
    )
    async def generate_image(
        self,
        prompt: str,
        size: Optional[str] = None,
        style: Optional[str] = None,
    ) -> MediaPayload:
        """Generate an image from a text prompt.

        Args:
            prompt: Text description of the desired image.
            size: Image dimensions as ``"WxH"``; defaults to the client's.
            style: Visual style hint appended to the prompt.

        Returns:
            :class:`MediaPayload` with the image bytes.

        Raises:
            MediaGenerationError: On a non-2xx status or an unexpected
                response format.
        """
        size = size or self.size
        style = self.style if style is None else style
        styled_prompt = f"{prompt}. Style: {style}" if style else prompt

        async with httpx.AsyncClient(timeout=120.0) as client:
            response = await client.post(
                f"{self.BASE_URL}/images/generations",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": self.model,
                    "prompt": styled_prompt,
                    "size": size,
                    "n": 1,
                },
            )

            if response.status_code != 200:
                raise MediaGenerationError(
                    f"Nano Banana API error {response.status_code}: {response.text}"
                )

            data = response.json()
            try:
                item: Dict[str, Any] = data["data"][0]
            except (KeyError, IndexError, TypeError) as exc:
                raise MediaGenerationError(
                    f"Unexpected API response format: {data!r:.200}"
                ) from exc

            # API may return base64 inline or a short-lived URL
            if item.get("b64_json"):
                payload = MediaPayload(
                    data=base64.b64decode(item["b64_json"]),
                    mime_type="image/png",
                )
            elif item.get("url"):
                download = await client.get(item["url"])
                download.raise_for_status()
                payload = MediaPayload(
                    data=download.content,
                    mime_type=download.headers.get("content-type", "image/png").split(";")[0],
                )
            else:
                raise MediaGenerationError(
                    f"Unexpected API response format: {list(item.keys())}"
                )

            logger.info(
                "NanoBanana image generated: size=%s, prompt_len=%d, bytes=%d",
                size,
                len(prompt),
                len(payload),
            )
            return payload
