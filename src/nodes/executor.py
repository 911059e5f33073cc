"""
Generic node executor.

Wraps a node's production step with the lifecycle every node shares:

    1. ``initializing`` / 0, log "initialized"
    2. ``running`` / 25, log "processing started"
    3. ``node.produce(context)``
    4. success: ``completed`` / 100 with ``output``, success log
    5. failure: ``error`` / 0 with ``error``, error log, failed ``NodeOutput``

Exactly one terminal status is written per call, and a node's exception
never leaves :meth:`NodeExecutor.execute`, so siblings in the same phase are
unaffected.  Store failures in step 1 or in the terminal write itself do
propagate: they are session-level failures.
"""

import logging

from src.exceptions import NodeExecutionError
from src.models import NodeOutput, NodeStatus
from src.nodes.base import CampaignNode, NodeContext
from src.session_store import SessionStore

logger = logging.getLogger(__name__)


class NodeExecutor:
    """Runs any :class:`CampaignNode` against one session.

    Args:
        store: Session store receiving the node's status writes.
    """

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    async def execute(self, node: CampaignNode, context: NodeContext) -> NodeOutput:
        node_id = node.node_id.value
        session_id = context.session_id
        log = context.log

        await self.store.update_node(session_id, node_id, NodeStatus.INITIALIZING, 0)
        await log.node(f"[{node_id}] {node.name} initialized")

        try:
            await self.store.update_node(session_id, node_id, NodeStatus.RUNNING, 25)
            await log.node(f"[{node_id}] processing started")

            output = await node.produce(context)
            if not output.success:
                raise NodeExecutionError(node_id, output.data)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning("Node %s failed in session %s: %s", node_id, session_id, message)
            await self.store.update_node(
                session_id, node_id, NodeStatus.ERROR, 0, error=message
            )
            await log.error(f"[{node_id}] ERROR: {message}")
            return NodeOutput.failure(node_id, message)

        await self.store.update_node(
            session_id, node_id, NodeStatus.COMPLETED, 100, output=output.data
        )
        await log.success(f'[{node_id}] Success. Asset: "{output.asset_title}"')
        return output


__all__ = ["NodeExecutor"]
