"""Test EventBus."""

import asyncio
import json

from nodeflow.events import EventBus
from nodeflow.models import Event


def test_emit_and_recent():
    bus = EventBus()
    bus.emit(Event(type="node.entered", conversation_id="c1", data={"node_id": "A"}))
    bus.emit(Event(type="outcome.selected", conversation_id="c1", data={"outcome": "go"}))

    recent = bus.recent(limit=10)
    assert len(recent) == 2
    assert recent[0].type == "node.entered"
    assert recent[1].type == "outcome.selected"


def test_emit_simple():
    bus = EventBus()
    bus.emit_simple("node.entered", "c1", node_id="A", name="Start")

    recent = bus.recent()
    assert len(recent) == 1
    assert recent[0].data["node_id"] == "A"


def test_recent_pagination():
    bus = EventBus()
    for i in range(10):
        bus.emit_simple("event", "c1", i=i)

    assert len(bus.recent(limit=3)) == 3
    assert len(bus.recent(limit=100)) == 10
    assert [e.data["i"] for e in bus.recent(limit=2, offset=1)] == [7, 8]


def test_recent_filters_by_conversation():
    bus = EventBus()
    bus.emit_simple("turn.completed", "c1")
    bus.emit_simple("turn.completed", "c2")
    bus.emit_simple("turn.completed", "c1")

    assert len(bus.recent(conversation_id="c1")) == 2
    assert len(bus.recent(conversation_id="c3")) == 0


def test_history_is_bounded():
    bus = EventBus(max_history=5)
    for i in range(8):
        bus.emit_simple("event", "c1", i=i)
    assert [e.data["i"] for e in bus.recent(limit=100)] == [3, 4, 5, 6, 7]


def test_persist_to_jsonl(tmp_path):
    log_file = tmp_path / "logs" / "events.jsonl"
    bus = EventBus(log_file=log_file)
    bus.emit_simple("node.entered", "c1", node_id="A")
    bus.emit_simple("conversation.finished", "c1")

    lines = log_file.read_text().splitlines()
    assert [json.loads(line)["type"] for line in lines] == ["node.entered", "conversation.finished"]


def test_subscribe():
    async def scenario():
        bus = EventBus()
        queue = bus.subscribe()
        bus.emit_simple("node.entered", "c1", node_id="A")
        event = await asyncio.wait_for(queue.get(), timeout=1)
        bus.unsubscribe(queue)
        bus.emit_simple("node.entered", "c1", node_id="B")
        return event, queue.qsize()

    event, remaining = asyncio.run(scenario())
    assert event.data["node_id"] == "A"
    assert remaining == 0
