"""
Video Director (CC-06): scene-by-scene video script plus a generated clip.

Flow mirrors the Design Architect: concept, extraction of a short Veo
prompt, video generation (a long-running operation polled with a bounded
budget), upload, compose.  When voice-overs are enabled a one-line
narration is also synthesised and linked.

Video failures and poll timeouts degrade to a text-only asset.  Voice-over
failures only produce a warning.
"""

import logging
from typing import Optional

from src.models import AssetType, ImageData, NodeId, NodeOutput
from src.nodes.base import CampaignNode, NodeContext, extract_tool_prompt
from src.storage import BlobStore, media_path
from src.tools.claude_client import ClaudeClient
from src.tools.speech import SpeechClient
from src.tools.veo import VeoClient
from src.utils import truncate

logger = logging.getLogger(__name__)

STRATEGY_CONTEXT_CHARS = 600

SCRIPT_PROMPT = """You are a creative video director for Google's Veo video model.

Campaign: "{intent}"
{strategy_block}
Create:
1. A 30-second video concept (scene by scene)
2. An optimized Veo prompt for each scene (max 3 scenes)
3. Suggested music and soundscape
4. Text overlays and CTAs

Veo prompts: visually detailed, atmospheric, cinematic."""

NARRATION_PROMPT = """Write a single spoken voice-over line (max 30 words) for
this video script. Return ONLY the line, no quotes, no markdown.

{script}"""


class VideoDirector(CampaignNode):
    node_id = NodeId.VIDEO_DIRECTOR
    description = "Generates video scripts, Veo prompts and a rendered clip"

    def __init__(
        self,
        text_llm: ClaudeClient,
        video_client: VeoClient,
        blob_store: BlobStore,
        speech_client: Optional[SpeechClient] = None,
    ) -> None:
        self.text_llm = text_llm
        self.video_client = video_client
        self.blob_store = blob_store
        self.speech_client = speech_client

    async def produce(self, context: NodeContext) -> NodeOutput:
        log = context.log
        await log.info("Building video concept from the strategy...")

        strategy = context.previous_outputs.get(NodeId.STRATEGIST.value, "")
        strategy_block = (
            f"\nStrategy context:\n{strategy[:STRATEGY_CONTEXT_CHARS]}\n" if strategy else ""
        )
        script = await self.text_llm.generate(
            SCRIPT_PROMPT.format(intent=context.intent, strategy_block=strategy_block)
        )
        await log.info("Video concept and Veo prompts generated.")

        video_prompt = await extract_tool_prompt(
            self.text_llm, script, "single best scene as one Veo video prompt", max_words=120
        )

        video = await self._render_video(context, video_prompt)
        voiceover_url = await self._render_voiceover(context, script)

        if video is not None:
            content = (
                f"{script}\n\n---\n\n## GENERATED VIDEO\n\n"
                f"**Prompt used:** {video_prompt}\n\n**Video URL:** {video.url}"
            )
            title = "Video Script + AI Video"
        else:
            content = (
                f"{script}\n\n---\n\n## Video Generation Note\n\n"
                "The video model was unable to render the clip. "
                f'Prompt for manual generation:\n\n"{video_prompt}"'
            )
            title = "Video Script & Veo Prompts"
        if voiceover_url:
            content += f"\n\n**Voice-over:** {voiceover_url}"

        return NodeOutput(
            success=True,
            data=content,
            asset_type=AssetType.VIDEO_PROMPT.value,
            asset_title=title,
            image_data=video,
        )

    async def _render_video(
        self, context: NodeContext, video_prompt: str
    ) -> Optional[ImageData]:
        log = context.log
        try:
            await log.info(f'Veo generating: "{truncate(video_prompt, 80)}"')
            payload = await self.video_client.generate_video(video_prompt)
            await log.success("Video rendered. Uploading to storage...")

            url = await self.blob_store.upload(
                payload.data,
                payload.mime_type,
                media_path("videos", context.session_id, "campaign-video", payload.extension),
            )
            await log.success(f"Video uploaded: {url}")
        except Exception as exc:
            logger.warning("Video failed for %s: %s", context.session_id, exc)
            await log.warning(f"Video generation failed: {exc}. Returning script only.")
            return None

        return ImageData(url=url, prompt=video_prompt, mime_type=payload.mime_type)

    async def _render_voiceover(self, context: NodeContext, script: str) -> Optional[str]:
        if self.speech_client is None:
            return None
        try:
            narration = await self.text_llm.generate(
                NARRATION_PROMPT.format(script=script), temperature=0.5
            )
            payload = await self.speech_client.generate_speech(narration.strip())
            url = await self.blob_store.upload(
                payload.data,
                payload.mime_type,
                media_path("audio", context.session_id, "voiceover", payload.extension),
            )
        except Exception as exc:
            logger.warning("Voice-over failed for %s: %s", context.session_id, exc)
            await context.log.warning(f"Voice-over skipped: {exc}")
            return None

        await context.log.success(f"Voice-over uploaded: {url}")
        return url
