"""Authority Auditor (RA-01): competitor research backed by live sources."""

from src.models import AssetType, NodeId, NodeOutput
from src.nodes.base import CampaignNode, NodeContext
from src.tools.perplexity import PerplexityClient

AUDIT_PROMPT = """You are a market researcher and competitive analyst.

Campaign: "{intent}"

Run a thorough competitive analysis:
1. Identify the 3-5 most important competitors
2. Analyse their current marketing strategies
3. Find gaps in the market
4. Rate each competitor's authority
5. Recommend a differentiation strategy

Use current data. Stay factual."""


class AuthorityAuditor(CampaignNode):
    node_id = NodeId.AUDITOR
    description = "Competitive analysis with real-time data"

    def __init__(self, grounded: PerplexityClient) -> None:
        self.grounded = grounded

    async def produce(self, context: NodeContext) -> NodeOutput:
        await context.log.info("Competitor audit: loading real-time market data...")

        result = await self.grounded.generate_grounded(
            AUDIT_PROMPT.format(intent=context.intent)
        )

        await context.log.info(
            f"Audit complete. {len(result.sources)} sources verified."
        )
        return NodeOutput(
            success=True,
            data=result.text,
            asset_type=AssetType.RESEARCH_REPORT.value,
            asset_title="Competitive Intelligence Report",
            sources=result.sources,
        )
