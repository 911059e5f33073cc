"""Campaign Strategist (SP-01): grounded marketing strategy with citations."""

from src.models import AssetType, NodeId, NodeOutput
from src.nodes.base import CampaignNode, NodeContext
from src.tools.perplexity import PerplexityClient

STRATEGY_PROMPT = """You are a senior marketing strategist.
Create a detailed marketing strategy for: "{intent}"

Cover:
1. Target audience analysis
2. Competitive landscape (use current market data)
3. Core messages (3-5)
4. Channel strategy (which platforms and why)
5. Content calendar (one month)
6. KPIs and success metrics

Be specific and actionable."""


class CampaignStrategist(CampaignNode):
    node_id = NodeId.STRATEGIST
    description = "Builds marketing strategies from live, cited market data"

    def __init__(self, grounded: PerplexityClient) -> None:
        self.grounded = grounded

    async def produce(self, context: NodeContext) -> NodeOutput:
        await context.log.info("Grounded search enabled, collecting market data...")

        result = await self.grounded.generate_grounded(
            STRATEGY_PROMPT.format(intent=context.intent)
        )

        await context.log.info(
            f"Strategy generated. {len(result.sources)} sources found."
        )
        return NodeOutput(
            success=True,
            data=result.text,
            asset_type=AssetType.STRATEGY.value,
            asset_title="Marketing Strategy",
            sources=result.sources,
        )
