"""Tests for src.nodes.executor.NodeExecutor lifecycle and containment."""

from typing import List, Tuple

import pytest

from conftest import ScriptedNode
from src.logging.models import LogLevel
from src.logging.session_logger import SessionLogger
from src.models import NodeId, NodeOutput, NodeStatus
from src.nodes import NodeContext, NodeExecutor
from src.nodes.base import CampaignNode


class RecordingStore:
    """Wraps a store and records every ``update_node`` status."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.statuses: List[Tuple[str, NodeStatus, int]] = []

    async def update_node(self, session_id, node_id, status, progress, output=None, error=None):
        self.statuses.append((node_id, status, progress))
        await self.inner.update_node(session_id, node_id, status, progress, output, error)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class UnsuccessfulNode(CampaignNode):
    node_id = NodeId.AUDITOR

    async def produce(self, context):
        return NodeOutput.failure(self.node_id.value, "no sources found")


def _context(store, node_id: str) -> NodeContext:
    return NodeContext(
        session_id="s-1",
        intent="Launch",
        log=SessionLogger(store, "s-1", node_id),
    )


@pytest.mark.asyncio
async def test_success_lifecycle(store, events):
    await store.create_session("s-1", "Launch")
    recording = RecordingStore(store)
    node = ScriptedNode(NodeId.STRATEGIST, events)

    output = await NodeExecutor(recording).execute(node, _context(recording, "SP-01"))

    assert output.success
    assert recording.statuses == [
        ("SP-01", NodeStatus.INITIALIZING, 0),
        ("SP-01", NodeStatus.RUNNING, 25),
        ("SP-01", NodeStatus.COMPLETED, 100),
    ]
    session = await store.get_session("s-1")
    assert session.node("SP-01").output == "SP-01 output"
    messages = [entry.message for entry in session.logs_from("SP-01")]
    assert messages == [
        "[SP-01] Campaign Strategist initialized",
        "[SP-01] processing started",
        '[SP-01] Success. Asset: "SP-01 asset"',
    ]


@pytest.mark.asyncio
async def test_exception_is_contained_with_one_terminal_write(store, events):
    await store.create_session("s-1", "Launch")
    recording = RecordingStore(store)
    node = ScriptedNode(NodeId.STRATEGIST, events, error="rate limited")

    output = await NodeExecutor(recording).execute(node, _context(recording, "SP-01"))

    assert output.success is False
    assert output.data == "rate limited"
    terminal = [s for _, s, _ in recording.statuses if s.is_terminal]
    assert terminal == [NodeStatus.ERROR]

    session = await store.get_session("s-1")
    assert session.node("SP-01").error == "rate limited"
    assert session.node("SP-01").progress == 0
    errors = [e for e in session.logs if e.level is LogLevel.ERROR]
    assert errors[-1].message == "[SP-01] ERROR: rate limited"
    assert session.assets == []


@pytest.mark.asyncio
async def test_unsuccessful_output_counts_as_failure(store):
    await store.create_session("s-1", "Launch")

    output = await NodeExecutor(store).execute(UnsuccessfulNode(), _context(store, "RA-01"))

    assert output.success is False
    assert "no sources found" in output.data
    assert (await store.get_session("s-1")).node("RA-01").status is NodeStatus.ERROR


@pytest.mark.asyncio
async def test_message_falls_back_to_exception_type(store):
    class Silent(CampaignNode):
        node_id = NodeId.DESIGN_ARCHITECT

        async def produce(self, context):
            raise KeyError()

    await store.create_session("s-1", "Launch")
    output = await NodeExecutor(store).execute(Silent(), _context(store, "DA-03"))
    assert output.data == "KeyError"
