"""Core data structures for nodeflow."""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from typing import Any


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def copy_context(context: dict[str, Any]) -> dict[str, Any]:
    """Deep copy of an action context; values that refuse to be copied are shared."""
    try:
        return copy.deepcopy(context)
    except (TypeError, copy.Error):
        return {k: _copy_value(v) for k, v in context.items()}


def _copy_value(value: Any) -> Any:
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        return value


# ---------------------------------------------------------------------------
# Tool System
# ---------------------------------------------------------------------------


@dataclass
class ToolDef:
    """Canonical tool definition. Adapters translate this to provider-specific formats."""

    name: str
    description: str  # short, for the schema
    parameters: dict[str, Any]  # JSON Schema
    guidance: str = ""  # long, for the prompt


@dataclass
class ToolCall:
    name: str
    args: dict[str, Any]
    id: str = field(default_factory=lambda: f"tc_{uuid.uuid4().hex[:8]}")

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "args": self.args}


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: TokenUsage):
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens

    def to_dict(self) -> dict:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


@dataclass
class ModelResponse:
    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    raw: Any = None


# ---------------------------------------------------------------------------
# Graph Definition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Outcome:
    key: str
    description: str = ""
    next: str | None = None  # None = conversation ends

    @property
    def is_terminal(self) -> bool:
        return self.next is None

    def to_dict(self) -> dict:
        return {"description": self.description, "next": self.next}


@dataclass(frozen=True)
class Action:
    """A side effect bound to node entry or to an outcome."""

    type: str
    config: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, **self.config}


@dataclass(frozen=True)
class NodeActions:
    on_enter: tuple[Action, ...] = ()
    on_outcome: dict[str, tuple[Action, ...]] = field(default_factory=dict)

    def for_outcome(self, key: str) -> tuple[Action, ...]:
        return self.on_outcome.get(key, ())

    def is_empty(self) -> bool:
        return not self.on_enter and not any(self.on_outcome.values())

    def to_dict(self) -> dict:
        d: dict[str, Any] = {}
        if self.on_enter:
            d["on_enter"] = [a.to_dict() for a in self.on_enter]
        if self.on_outcome:
            d["on_outcome"] = {k: [a.to_dict() for a in v] for k, v in self.on_outcome.items()}
        return d


@dataclass(frozen=True)
class Node:
    """A single step in the conversation graph."""

    id: str
    name: str = ""
    instructions: str = ""
    outcomes: dict[str, Outcome] = field(default_factory=dict)
    actions: NodeActions = field(default_factory=NodeActions)
    requires_user_input: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "name": self.name,
            "instructions": self.instructions,
            "outcomes": {k: o.to_dict() for k, o in self.outcomes.items()},
        }
        if not self.actions.is_empty():
            d["actions"] = self.actions.to_dict()
        if self.requires_user_input:
            d["requires_user_input"] = True
        return d


@dataclass(frozen=True)
class Graph:
    start_node_id: str
    nodes: dict[str, Node] = field(default_factory=dict)

    def get(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def __getitem__(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def to_dict(self) -> dict:
        return {
            "start_node": self.start_node_id,
            "nodes": {nid: n.to_dict() for nid, n in self.nodes.items()},
        }


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Message:
    """One transcript entry. Never mutated after it is appended."""

    role: str  # system | user | assistant | tool
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None
    ts: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"role": self.role, "content": self.content, "ts": self.ts}
        if self.tool_calls:
            d["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id:
            d["tool_call_id"] = self.tool_call_id
            # providers look this up under the tool_use_id key
            d["tool_use_id"] = self.tool_call_id
        if self.name:
            d["name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        return cls(
            role=data["role"],
            content=data.get("content"),
            tool_calls=tuple(
                ToolCall(name=tc["name"], args=tc.get("args", {}), id=tc["id"])
                for tc in data.get("tool_calls", [])
            ),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            ts=data.get("ts", time.time()),
        )


@dataclass
class ExecutionState:
    """Per-conversation state: where we are, what was said, what actions returned."""

    current_node_id: str | None
    transcript: list[Message] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def finished(self) -> bool:
        return self.current_node_id is None

    def copy(self) -> ExecutionState:
        # Messages are immutable, so a shallow list copy is enough for the transcript
        return ExecutionState(
            current_node_id=self.current_node_id,
            transcript=list(self.transcript),
            context=copy_context(self.context),
        )

    def to_dict(self) -> dict:
        return {
            "current_node_id": self.current_node_id,
            "transcript": [m.to_dict() for m in self.transcript],
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ExecutionState:
        return cls(
            current_node_id=data.get("current_node_id"),
            transcript=[Message.from_dict(m) for m in data.get("transcript", [])],
            context=dict(data.get("context", {})),
        )


@dataclass
class ActionResult:
    type: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"type": self.type, "result": self.result}
        if self.error:
            d["error"] = self.error
        return d


@dataclass
class TurnResult:
    """What a single submit() call hands back to the caller."""

    reply: str | None = None
    finished: bool = False
    current_node_id: str | None = None
    visited: list[str] = field(default_factory=list)
    action_errors: list[ActionResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)  # summed over every model call in the turn

    def to_dict(self) -> dict:
        return {
            "reply": self.reply,
            "finished": self.finished,
            "current_node_id": self.current_node_id,
            "visited": self.visited,
            "action_errors": [a.to_dict() for a in self.action_errors],
            "errors": self.errors,
            "usage": self.usage.to_dict(),
        }


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass
class Event:
    type: str
    conversation_id: str
    ts: float = field(default_factory=time.time)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "conversation_id": self.conversation_id, "ts": self.ts, "data": self.data}
