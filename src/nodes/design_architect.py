"""
Design Architect (DA-03): visual identity concept plus an AI hero image.

Flow:
    1. concept (plain text generation, seeded with the SP-01 strategy)
    2. extraction of a short hero-image prompt from the concept
    3. image generation
    4. upload to object storage
    5. compose the asset content with the concept and the image URL

Steps 3 and 4 degrade gracefully: if either fails the node still succeeds
with the concept and the extracted prompt for manual generation, and no
``image_data``.
"""

import logging
from typing import Optional

from src.models import AssetType, ImageData, NodeId, NodeOutput
from src.nodes.base import CampaignNode, NodeContext, extract_tool_prompt
from src.storage import BlobStore, media_path
from src.tools.claude_client import ClaudeClient
from src.tools.nano_banana import NanoBananaClient
from src.utils import truncate

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY = "General marketing approach"

CONCEPT_PROMPT = """You are a world-class Design Architect and Creative Director.
Based on this strategy: "{strategy}"
And this intent: "{intent}"

Create a visual identity concept for the campaign:
1. Color palette (HEX codes and mood)
2. Typography selection
3. A single, detailed HERO IMAGE description (one paragraph, vivid and specific)
4. Layout recommendations for social media and web
5. Brand voice adaptation for visuals

Make the HERO IMAGE description suitable for AI image generation. Be specific
about style, colors and lighting, composition, mood and atmosphere."""


class DesignArchitect(CampaignNode):
    node_id = NodeId.DESIGN_ARCHITECT
    description = "Generates high-end visual concepts and actual AI images"

    def __init__(
        self,
        text_llm: ClaudeClient,
        image_client: NanoBananaClient,
        blob_store: BlobStore,
    ) -> None:
        self.text_llm = text_llm
        self.image_client = image_client
        self.blob_store = blob_store

    async def produce(self, context: NodeContext) -> NodeOutput:
        log = context.log
        await log.info("Creating visual identity and generating hero image...")

        strategy = context.previous_outputs.get(NodeId.STRATEGIST.value) or DEFAULT_STRATEGY
        concept = await self.text_llm.generate(
            CONCEPT_PROMPT.format(strategy=strategy, intent=context.intent)
        )
        await log.info("Visual concept ready. Extracting hero image prompt...")

        image_prompt = await extract_tool_prompt(
            self.text_llm, concept, "hero image description", max_words=200
        )

        image = await self._render_hero_image(context, image_prompt)

        if image is not None:
            content = (
                f"{concept}\n\n---\n\n## GENERATED HERO IMAGE\n\n"
                f"**Prompt used:** {image_prompt}\n\n**Image URL:** {image.url}"
            )
            title = "Visual Concept + AI Hero Image"
        else:
            content = (
                f"{concept}\n\n---\n\n## Image Generation Note\n\n"
                "The image model was unable to generate the image. "
                f'Prompt for manual generation:\n\n"{image_prompt}"'
            )
            title = "Visual Concept & Design Blueprints"

        await log.success("Visual Concept & Design Blueprints delivered.")
        return NodeOutput(
            success=True,
            data=content,
            asset_type=AssetType.DESIGN_BLUEPRINT.value,
            asset_title=title,
            image_data=image,
        )

    async def _render_hero_image(
        self, context: NodeContext, image_prompt: str
    ) -> Optional[ImageData]:
        """Generate and upload the hero image; ``None`` when either step fails."""
        log = context.log
        try:
            await log.info(f'Generating hero image: "{truncate(image_prompt, 80)}"')
            payload = await self.image_client.generate_image(image_prompt)
            await log.success("Hero image generated. Uploading to storage...")

            url = await self.blob_store.upload(
                payload.data,
                payload.mime_type,
                media_path("images", context.session_id, "hero-image", payload.extension),
            )
            await log.success(f"Image uploaded: {url}")
        except Exception as exc:
            logger.warning("Hero image failed for %s: %s", context.session_id, exc)
            await log.warning(f"Image generation failed: {exc}. Returning concept only.")
            return None

        return ImageData(url=url, prompt=image_prompt, mime_type=payload.mime_type)
