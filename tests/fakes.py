"""Scripted stand-ins for the completion service and a small test graph."""

from __future__ import annotations

from nodeflow.models import ModelResponse, ToolCall, ToolDef
from nodeflow.outcome_tool import SELECT_OUTCOME
from nodeflow.providers.base import ModelProvider, ProviderAdapter


class ScriptedAdapter(ProviderAdapter):
    """Replays canned responses in order and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls: list[dict] = []

    def format_tools(self, tools: list[ToolDef]) -> list[ToolDef]:
        return tools

    async def generate(self, messages, tools=None, system=None, temperature=0.7, max_tokens=4096):
        self.calls.append({"messages": messages, "tools": tools, "system": system})
        if not self.responses:
            raise AssertionError("No scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def offered_outcomes(self, call_index: int) -> list[str] | None:
        tools = self.calls[call_index]["tools"]
        if not tools:
            return None
        return tools[0].parameters["properties"]["outcome"]["enum"]


def scripted(*responses) -> tuple[ModelProvider, ScriptedAdapter]:
    adapter = ScriptedAdapter(responses)
    return ModelProvider(adapter), adapter


def say(text: str) -> ModelResponse:
    return ModelResponse(text=text)


def pick(outcome, text: str | None = None, call_id: str | None = None) -> ModelResponse:
    tc = ToolCall(name=SELECT_OUTCOME, args={"outcome": outcome})
    if call_id:
        tc.id = call_id
    return ModelResponse(text=text, tool_calls=[tc])


def two_step_graph() -> dict:
    """A -(go)-> B -(end)-> END."""
    return {
        "start_node": "A",
        "nodes": {
            "A": {
                "name": "Start",
                "instructions": "Say hello.",
                "outcomes": {"go": {"description": "Move on", "next": "B"}},
            },
            "B": {
                "name": "Finish",
                "instructions": "Say goodbye.",
                "outcomes": {"end": {"description": "Done", "next": None}},
            },
        },
    }
